"""Pydantic schemas for builds and derived history views."""

import datetime as dt
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from perf_audit.schemas.bundle import BundleDiff, BundleHistoryItem, BundleInfo
from perf_audit.schemas.metrics import MetricDiff, MetricStats, PerformanceMetrics

Device = Literal["mobile", "desktop"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NewBuild(BaseModel):
    """Everything needed to record one build."""

    timestamp: datetime = Field(default_factory=_utcnow)
    branch: Optional[str] = None
    commit_hash: Optional[str] = None
    url: Optional[str] = None
    device: Optional[Device] = None
    bundles: list[BundleInfo] = []
    metrics: Optional[PerformanceMetrics] = None
    recommendations: list[str] = []

    @field_validator("bundles")
    @classmethod
    def unique_bundle_names(cls, v: list[BundleInfo]) -> list[BundleInfo]:
        seen: set[str] = set()
        for bundle in v:
            if bundle.name in seen:
                raise ValueError(f"Duplicate bundle name in build: {bundle.name}")
            seen.add(bundle.name)
        return v


class BuildRecord(BaseModel):
    """A stored build, hydrated with its children."""

    id: int
    timestamp: datetime
    branch: Optional[str] = None
    commit_hash: Optional[str] = None
    url: Optional[str] = None
    device: Optional[Device] = None
    bundles: list[BundleInfo] = []
    recommendations: list[str] = []
    metrics: Optional[PerformanceMetrics] = None


class TrendPoint(BaseModel):
    """Aggregate of every build recorded on one calendar date (UTC)."""

    date: dt.date
    build_count: int
    total_size: int
    total_gzip_size: Optional[int] = None
    performance_score: Optional[float] = None
    fcp: Optional[float] = None
    lcp: Optional[float] = None
    cls: Optional[float] = None
    tti: Optional[float] = None


class BuildComparison(BaseModel):
    """Differences between two builds over shared bundles and metrics."""

    old_build: Optional[BuildRecord] = None
    new_build: Optional[BuildRecord] = None
    bundle_diff: list[BundleDiff] = []
    metric_diff: list[MetricDiff] = []


class BundleStats(BaseModel):
    total_builds: int
    average_size: float
    largest_bundles: list[BundleHistoryItem] = []


class RecommendationFrequency(BaseModel):
    message: str
    count: int


class HistoryStats(BaseModel):
    """Summary served by the stats endpoint."""

    bundles: BundleStats
    performance: MetricStats
    recommendations: list[RecommendationFrequency] = []
