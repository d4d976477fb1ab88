"""Human-readable size parsing and formatting."""

import math
import re

from perf_audit.errors import SizeFormatError, UnsupportedUnitError

BYTES_PER_KB = 1024

SIZE_UNITS = {
    "B": 1,
    "KB": 1024,
    "MB": 1024**2,
    "GB": 1024**3,
    "TB": 1024**4,
}

_FORMAT_UNITS = ["B", "KB", "MB", "GB", "TB"]

# Any alphabetic suffix ending in B is syntactically a unit; unknown ones are
# reported separately from malformed strings.
_SIZE_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*([A-Za-z]?B)$", re.IGNORECASE | re.ASCII)


def parse_size(size_string: str) -> int:
    """
    Parse a size string such as ``"150KB"`` or ``"1.5 MB"`` into bytes.

    Units are binary multiples and case-insensitive.

    Args:
        size_string: Size with unit

    Returns:
        Size in bytes, rounded half up to an integer

    Raises:
        SizeFormatError: The string is not ``<number><unit>``
        UnsupportedUnitError: The unit is not one of B, KB, MB, GB, TB
    """
    if not isinstance(size_string, str):
        raise SizeFormatError(str(size_string))

    match = _SIZE_PATTERN.match(size_string.strip())
    if not match:
        raise SizeFormatError(size_string)

    value, unit = match.groups()
    multiplier = SIZE_UNITS.get(unit.upper())
    if multiplier is None:
        raise UnsupportedUnitError(size_string, unit)

    return int(math.floor(float(value) * multiplier + 0.5))


def normalize_size(num_bytes: float, decimals: int = 1) -> float:
    """Scale ``num_bytes`` to its largest binary unit, without the unit."""
    if num_bytes <= 0:
        return 0
    index = _unit_index(num_bytes)
    return round(num_bytes / BYTES_PER_KB**index, max(decimals, 0))


def format_size(num_bytes: float, decimals: int = 1) -> str:
    """Format a byte count, e.g. ``format_size(153600) == "150KB"``."""
    if num_bytes <= 0:
        return "0B"
    index = _unit_index(num_bytes)
    value = round(num_bytes / BYTES_PER_KB**index, max(decimals, 0))
    if value == int(value):
        value = int(value)
    return f"{value}{_FORMAT_UNITS[index]}"


def format_delta(delta: float) -> str:
    """Signed size difference, e.g. ``"+10KB"`` or ``"-200B"``."""
    sign = "+" if delta >= 0 else "-"
    return f"{sign}{format_size(abs(delta))}"


def _unit_index(num_bytes: float) -> int:
    index = int(math.floor(math.log(num_bytes) / math.log(BYTES_PER_KB)))
    return min(max(index, 0), len(_FORMAT_UNITS) - 1)
