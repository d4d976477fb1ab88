"""One analysis pass: measure bundles, evaluate budgets, collect advice."""

from datetime import datetime, timezone
from typing import Optional, Sequence

from perf_audit.logging_config import get_logger
from perf_audit.schemas.audit import AuditResult
from perf_audit.schemas.budget import BudgetConfig
from perf_audit.schemas.bundle import BundleInfo
from perf_audit.schemas.metrics import PerformanceMetrics
from perf_audit.services.budget import evaluate_config
from perf_audit.services.bundle_analyzer import BundleAnalyzer
from perf_audit.services.recommendations import generate_recommendations

logger = get_logger(__name__)


def build_audit_result(
    bundles: Sequence[BundleInfo],
    budgets: BudgetConfig,
    metrics: Optional[PerformanceMetrics] = None,
    *,
    timestamp: Optional[datetime] = None,
) -> AuditResult:
    """Evaluate an already-collected set of bundles (and optional metrics)."""
    evaluated, total_status, status = evaluate_config(bundles, budgets, metrics)
    total_size, total_gzip = BundleAnalyzer.calculate_total_size(evaluated)
    return AuditResult(
        timestamp=timestamp or datetime.now(timezone.utc),
        bundles=evaluated,
        total_size=total_size,
        total_gzip_size=total_gzip,
        total_status=total_status,
        budget_status=status,
        recommendations=generate_recommendations(evaluated, metrics),
        metrics=metrics,
    )


def run_bundle_audit(analyzer: BundleAnalyzer, budgets: BudgetConfig) -> AuditResult:
    """
    Analyze the analyzer's output directory and evaluate it against ``budgets``.

    Budgets are applied only after the full set of bundles is collected.

    Raises:
        AnalysisError: The output directory could not be read
        SizeFormatError: A budget size string is malformed
    """
    bundles = analyzer.analyze_bundles()
    result = build_audit_result(bundles, budgets)
    logger.info(
        "Audit of %s: %d bundle(s), %d bytes, status=%s",
        analyzer.output_path,
        len(result.bundles),
        result.total_size,
        result.budget_status,
    )
    return result
