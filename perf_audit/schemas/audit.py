"""Pydantic schemas for analysis results and watch notifications."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel

from perf_audit.schemas.build import NewBuild
from perf_audit.schemas.bundle import BudgetStatus, BundleChange, BundleInfo
from perf_audit.schemas.metrics import PerformanceMetrics


class AuditResult(BaseModel):
    """Outcome of one analyzer + budget pass."""

    timestamp: datetime
    bundles: list[BundleInfo]
    total_size: int
    total_gzip_size: Optional[int] = None
    total_status: BudgetStatus = "ok"
    budget_status: BudgetStatus = "ok"
    recommendations: list[str] = []
    metrics: Optional[PerformanceMetrics] = None

    def to_new_build(self, **build_meta: Any) -> NewBuild:
        """Convert to a store payload; ``build_meta`` carries branch, commit_hash, url, device."""
        return NewBuild(
            timestamp=self.timestamp,
            bundles=self.bundles,
            metrics=self.metrics,
            recommendations=self.recommendations,
            **build_meta,
        )


class ChangeNotification(BaseModel):
    """Emitted by the change watcher when a cycle differs meaningfully from the last."""

    timestamp: datetime
    previous_total: int
    current_total: int
    total_delta: int
    previous_status: BudgetStatus
    current_status: BudgetStatus
    status_changed: bool
    has_regression: bool
    changes: list[BundleChange] = []
    result: AuditResult
