"""Budget and analysis configuration shapes consumed by the engine."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from perf_audit.schemas.bundle import BundleType
from perf_audit.utils.size import parse_size

DEFAULT_IGNORE_PATHS = ["**/*.test.js", "**/*.spec.js"]


class SizeBudget(BaseModel):
    """``{warning, max}`` pair of size strings such as ``"120KB"``."""

    max: str
    warning: str

    @field_validator("max", "warning")
    @classmethod
    def validate_size(cls, v: str) -> str:
        parse_size(v)
        return v

    @property
    def max_bytes(self) -> int:
        return parse_size(self.max)

    @property
    def warning_bytes(self) -> int:
        return parse_size(self.warning)


class MetricBudget(BaseModel):
    """Numeric ``{warning, max}`` pair; higher values are worse."""

    max: float
    warning: float


class ScoreBudget(BaseModel):
    """Category score floor; lower values are worse."""

    min: float = Field(ge=0, le=100)
    warning: Optional[float] = Field(default=None, ge=0, le=100)

    @model_validator(mode="after")
    def warning_above_min(self) -> "ScoreBudget":
        if self.warning is not None and self.warning < self.min:
            raise ValueError("score warning threshold must be >= min")
        return self


class BudgetConfig(BaseModel):
    """Budgets for one analysis target.

    ``bundles`` is keyed by budget category (main, vendor, runtime), ``metrics``
    by Core Web Vital (fcp, lcp, cls, tti) and ``lighthouse`` by category score.
    """

    bundles: dict[str, SizeBudget] = {}
    total: Optional[SizeBudget] = None
    metrics: dict[str, MetricBudget] = {}
    lighthouse: dict[str, ScoreBudget] = {}

    @model_validator(mode="before")
    @classmethod
    def lift_total_from_bundles(cls, values):
        # Config files keep the total budget alongside the per-category ones.
        if isinstance(values, dict):
            bundles = dict(values.get("bundles") or {})
            if "total" in bundles and values.get("total") is None:
                values = {**values, "total": bundles.pop("total"), "bundles": bundles}
        return values

    @classmethod
    def client_defaults(cls) -> "BudgetConfig":
        return cls(
            bundles={
                "main": SizeBudget(max="150KB", warning="120KB"),
                "vendor": SizeBudget(max="100KB", warning="80KB"),
            },
            total=SizeBudget(max="500KB", warning="400KB"),
            metrics={
                "fcp": MetricBudget(max=1500, warning=1000),
                "lcp": MetricBudget(max=2500, warning=2000),
                "cls": MetricBudget(max=0.1, warning=0.05),
                "tti": MetricBudget(max=3500, warning=3000),
            },
            lighthouse={
                "performance": ScoreBudget(min=90, warning=95),
                "accessibility": ScoreBudget(min=90, warning=95),
                "best_practices": ScoreBudget(min=90, warning=95),
                "seo": ScoreBudget(min=90, warning=95),
            },
        )

    @classmethod
    def server_defaults(cls) -> "BudgetConfig":
        return cls(
            bundles={
                "main": SizeBudget(max="200KB", warning="150KB"),
                "vendor": SizeBudget(max="150KB", warning="120KB"),
            },
            total=SizeBudget(max="800KB", warning="600KB"),
        )


class AnalyzeOptions(BaseModel):
    """One analysis target: where the build output lives and what to skip."""

    output_path: str
    gzip: bool = True
    ignore_paths: list[str] = Field(default_factory=lambda: list(DEFAULT_IGNORE_PATHS))
    bundle_type: Optional[BundleType] = None
