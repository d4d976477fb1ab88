"""Typed records exchanged at the engine boundary."""

from perf_audit.schemas.audit import AuditResult, ChangeNotification
from perf_audit.schemas.budget import (
    AnalyzeOptions,
    BudgetConfig,
    MetricBudget,
    ScoreBudget,
    SizeBudget,
)
from perf_audit.schemas.build import (
    BuildComparison,
    BuildRecord,
    BundleStats,
    HistoryStats,
    NewBuild,
    RecommendationFrequency,
    TrendPoint,
)
from perf_audit.schemas.bundle import (
    BudgetStatus,
    BundleChange,
    BundleDiff,
    BundleHistoryItem,
    BundleInfo,
)
from perf_audit.schemas.metrics import MetricDiff, MetricStats, PerformanceMetrics

__all__ = [
    "AnalyzeOptions",
    "AuditResult",
    "BudgetConfig",
    "BudgetStatus",
    "BuildComparison",
    "BuildRecord",
    "BundleChange",
    "BundleDiff",
    "BundleHistoryItem",
    "BundleInfo",
    "BundleStats",
    "HistoryStats",
    "ChangeNotification",
    "MetricBudget",
    "MetricDiff",
    "MetricStats",
    "NewBuild",
    "PerformanceMetrics",
    "RecommendationFrequency",
    "ScoreBudget",
    "SizeBudget",
    "TrendPoint",
]
