"""Budget evaluation: measured values against ``{warning, max}`` thresholds.

A value equal to a threshold counts as reaching it, so a bundle exactly at its
maximum budget is an error.
"""

from typing import Mapping, Optional, Sequence, Union

from pydantic import BaseModel

from perf_audit.schemas.budget import BudgetConfig, MetricBudget, ScoreBudget, SizeBudget
from perf_audit.schemas.bundle import BudgetStatus, BundleInfo
from perf_audit.schemas.metrics import SCORE_FIELDS, VITAL_FIELDS, PerformanceMetrics
from perf_audit.services.bundle_analyzer import BundleAnalyzer
from perf_audit.utils.size import parse_size

_SEVERITY: dict[str, int] = {"ok": 0, "warning": 1, "error": 2}

SizeBudgetLike = Union[SizeBudget, Mapping[str, str]]


class MetricEvaluation(BaseModel):
    """Per-metric statuses plus their combination."""

    statuses: dict[str, BudgetStatus] = {}
    status: BudgetStatus = "ok"


def get_status(current: float, warning: float, maximum: float) -> BudgetStatus:
    """``error`` at or above ``maximum``, ``warning`` at or above ``warning``, else ``ok``."""
    if current >= maximum:
        return "error"
    if current >= warning:
        return "warning"
    return "ok"


def score_status(score: float, warning: Optional[float], minimum: float) -> BudgetStatus:
    """Inverted scale for 0-100 scores: below ``minimum`` is an error."""
    if score < minimum:
        return "error"
    if warning is not None and score < warning:
        return "warning"
    return "ok"


def combine_statuses(*statuses: Optional[BudgetStatus]) -> BudgetStatus:
    """Most severe of the given statuses; ``None`` entries are skipped."""
    overall: BudgetStatus = "ok"
    for status in statuses:
        if status is not None and _SEVERITY[status] > _SEVERITY[overall]:
            overall = status
    return overall


def resolve_size_budget(budget: SizeBudgetLike) -> tuple[int, int]:
    """``(warning_bytes, max_bytes)`` for a budget model or a raw config mapping."""
    if isinstance(budget, SizeBudget):
        return budget.warning_bytes, budget.max_bytes
    return parse_size(budget["warning"]), parse_size(budget["max"])


def apply_budgets(
    bundles: Sequence[BundleInfo], budgets: Mapping[str, SizeBudgetLike]
) -> list[BundleInfo]:
    """
    Return copies of ``bundles`` with status set from their category budget.

    Bundles whose category has no budget are ``ok``.

    Raises:
        SizeFormatError: A budget size string is malformed
        UnsupportedUnitError: A budget size string uses an unknown unit
    """
    resolved: dict[str, tuple[int, int]] = {}
    result: list[BundleInfo] = []
    for bundle in bundles:
        key = BundleAnalyzer.get_budget_key(bundle.name)
        budget = budgets.get(key)
        if budget is None:
            result.append(bundle.model_copy(update={"status": "ok"}))
            continue
        if key not in resolved:
            resolved[key] = resolve_size_budget(budget)
        warning, maximum = resolved[key]
        result.append(bundle.model_copy(update={"status": get_status(bundle.size, warning, maximum)}))
    return result


def apply_budgets_by_type(
    bundles: Sequence[BundleInfo], budgets_by_type: Mapping[str, Mapping[str, SizeBudgetLike]]
) -> list[BundleInfo]:
    """Apply the client or server budget table to each bundle by its type.

    Untyped bundles use the client table. Input order is preserved.
    """
    result: list[BundleInfo] = []
    for bundle in bundles:
        table = budgets_by_type.get(bundle.type or "client", {})
        result.extend(apply_budgets([bundle], table))
    return result


def evaluate_total(
    bundles: Sequence[BundleInfo], budget: Optional[SizeBudgetLike]
) -> BudgetStatus:
    """Status of the summed raw size; ``ok`` when no total budget is configured."""
    if budget is None:
        return "ok"
    total_size, _ = BundleAnalyzer.calculate_total_size(bundles)
    warning, maximum = resolve_size_budget(budget)
    return get_status(total_size, warning, maximum)


def evaluate_metrics(
    metrics: Optional[PerformanceMetrics],
    metric_budgets: Mapping[str, MetricBudget],
    score_budgets: Optional[Mapping[str, ScoreBudget]] = None,
) -> MetricEvaluation:
    """Evaluate Core Web Vitals and category scores that are both measured and budgeted."""
    if metrics is None:
        return MetricEvaluation()

    statuses: dict[str, BudgetStatus] = {}
    for name in VITAL_FIELDS:
        value = getattr(metrics, name)
        budget = metric_budgets.get(name)
        if value is not None and budget is not None:
            statuses[name] = get_status(value, budget.warning, budget.max)

    for name in SCORE_FIELDS:
        value = getattr(metrics, name)
        budget = (score_budgets or {}).get(name)
        if value is not None and budget is not None:
            statuses[name] = score_status(value, budget.warning, budget.min)

    return MetricEvaluation(statuses=statuses, status=combine_statuses(*statuses.values()))


def overall_status(
    bundles: Sequence[BundleInfo],
    total_status: Optional[BudgetStatus] = None,
    metric_status: Optional[BudgetStatus] = None,
) -> BudgetStatus:
    """Combine every bundle status with the separately evaluated total and metric statuses."""
    return combine_statuses(*(b.status for b in bundles), total_status, metric_status)


def evaluate_config(
    bundles: Sequence[BundleInfo],
    budgets: BudgetConfig,
    metrics: Optional[PerformanceMetrics] = None,
) -> tuple[list[BundleInfo], BudgetStatus, BudgetStatus]:
    """Apply a BudgetConfig; returns ``(bundles, total_status, overall_status)``."""
    evaluated = apply_budgets(bundles, budgets.bundles)
    total = evaluate_total(evaluated, budgets.total)
    metric = evaluate_metrics(metrics, budgets.metrics, budgets.lighthouse).status
    return evaluated, total, overall_status(evaluated, total, metric)
