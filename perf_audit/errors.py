"""Exception types raised by the engine."""


class PerfAuditError(Exception):
    """Base class for engine errors."""


class SizeFormatError(PerfAuditError, ValueError):
    """A size string does not match ``<number><unit>``."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid size format: {value!r}")


class UnsupportedUnitError(PerfAuditError, ValueError):
    """A size string is well-formed but uses a unit we do not know."""

    def __init__(self, value: str, unit: str):
        self.value = value
        self.unit = unit
        super().__init__(f"Unsupported size unit {unit!r} in {value!r}")


class AnalysisError(PerfAuditError):
    """An analyzer pass could not read its output directory."""


class StoreError(PerfAuditError):
    """A transactional write to the build store failed and was rolled back."""
