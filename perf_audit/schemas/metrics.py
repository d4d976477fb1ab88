"""Pydantic schemas for performance metrics."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

SCORE_FIELDS = ("performance", "accessibility", "best_practices", "seo")
VITAL_FIELDS = ("fcp", "lcp", "cls", "tti")


class PerformanceMetrics(BaseModel):
    """Lighthouse-style category scores plus Core Web Vitals for one build.

    Scores are 0-100; fcp, lcp and tti are milliseconds; cls is unitless.
    """

    model_config = {"from_attributes": True}

    performance: Optional[float] = Field(default=None, ge=0, le=100)
    accessibility: Optional[float] = Field(default=None, ge=0, le=100)
    best_practices: Optional[float] = Field(default=None, ge=0, le=100)
    seo: Optional[float] = Field(default=None, ge=0, le=100)
    fcp: Optional[float] = Field(default=None, ge=0)
    lcp: Optional[float] = Field(default=None, ge=0)
    cls: Optional[float] = Field(default=None, ge=0)
    tti: Optional[float] = Field(default=None, ge=0)

    def present_values(self) -> dict[str, float]:
        """Metric name -> value for every metric that was measured."""
        return {
            name: value
            for name, value in self.model_dump().items()
            if value is not None
        }

    def is_empty(self) -> bool:
        return not self.present_values()


class MetricDiff(BaseModel):
    """Change of one scalar metric between two builds."""

    name: str
    old_value: float
    new_value: float
    delta: float


class MetricHistoryPoint(BaseModel):
    build_id: int
    value: float
    timestamp: datetime


class MetricStats(BaseModel):
    """Aggregate of one metric over a trailing window."""

    metric: str
    average: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    count: int = 0
    history: list[MetricHistoryPoint] = []
