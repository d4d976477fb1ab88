"""Tests for budget evaluation."""

import pytest

from perf_audit.errors import SizeFormatError, UnsupportedUnitError
from perf_audit.schemas.budget import BudgetConfig, MetricBudget, ScoreBudget, SizeBudget
from perf_audit.schemas.bundle import BundleInfo
from perf_audit.schemas.metrics import PerformanceMetrics
from perf_audit.services.budget import (
    apply_budgets,
    apply_budgets_by_type,
    combine_statuses,
    evaluate_config,
    evaluate_metrics,
    evaluate_total,
    get_status,
    overall_status,
    score_status,
)

KB = 1024


class TestGetStatus:
    @pytest.mark.parametrize("warning,maximum", [(80, 150), (0, 1), (100, 100)])
    def test_boundaries_are_inclusive(self, warning, maximum):
        """Ensure a value equal to a threshold counts as reaching it."""
        assert get_status(maximum, warning, maximum) == "error"
        assert get_status(maximum - 1, warning, maximum) != "error"
        if warning < maximum:
            assert get_status(warning, warning, maximum) == "warning"

    def test_below_warning_is_ok(self):
        """Ensure values under the warning threshold are ok."""
        assert get_status(79, 80, 150) == "ok"

    def test_score_status_is_inverted(self):
        """Ensure category scores treat lower values as worse."""
        assert score_status(85, 95, 90) == "error"
        assert score_status(90, 95, 90) == "warning"
        assert score_status(95, 95, 90) == "ok"
        assert score_status(91, None, 90) == "ok"

    def test_combine_statuses(self):
        """Ensure the most severe status wins and None is skipped."""
        assert combine_statuses() == "ok"
        assert combine_statuses("ok", None, "warning") == "warning"
        assert combine_statuses("warning", "error", "ok") == "error"


class TestApplyBudgets:
    def test_main_bundle_between_thresholds_is_warning(self):
        """Ensure a 100KB main bundle under an 80KB/150KB budget is a warning."""
        bundles = [BundleInfo(name="main.js", size=100 * KB)]
        result = apply_budgets(bundles, {"main": SizeBudget(warning="80KB", max="150KB")})
        assert [b.status for b in result] == ["warning"]

    def test_categories_and_missing_budget(self):
        """Ensure bundles use their category budget and unbudgeted ones are ok."""
        bundles = [
            BundleInfo(name="index.js", size=200 * KB),
            BundleInfo(name="vendor.js", size=10 * KB),
            BundleInfo(name="runtime.js", size=500 * KB),
        ]
        budgets = {
            "main": SizeBudget(warning="80KB", max="150KB"),
            "vendor": SizeBudget(warning="80KB", max="100KB"),
        }
        result = apply_budgets(bundles, budgets)
        assert [b.status for b in result] == ["error", "ok", "ok"]

    def test_input_is_not_mutated(self):
        """Ensure apply_budgets returns copies."""
        bundle = BundleInfo(name="main.js", size=200 * KB)
        apply_budgets([bundle], {"main": SizeBudget(warning="80KB", max="150KB")})
        assert bundle.status == "ok"

    def test_raw_mapping_with_bad_size_raises(self):
        """Ensure malformed budget sizes propagate instead of defaulting."""
        bundles = [BundleInfo(name="main.js", size=1)]
        with pytest.raises(SizeFormatError):
            apply_budgets(bundles, {"main": {"warning": "eighty", "max": "150KB"}})
        with pytest.raises(UnsupportedUnitError):
            apply_budgets(bundles, {"main": {"warning": "80KB", "max": "1PB"}})

    def test_size_budget_rejects_malformed_strings(self):
        """Ensure SizeBudget validates its size strings."""
        with pytest.raises(ValueError):
            SizeBudget(warning="80", max="150KB")

    def test_by_type_uses_matching_table(self):
        """Ensure client and server bundles use their own budget tables."""
        bundles = [
            BundleInfo(name="main.js", size=180 * KB, type="server"),
            BundleInfo(name="main.js", size=180 * KB, type="client"),
            BundleInfo(name="main.js", size=180 * KB),
        ]
        result = apply_budgets_by_type(
            bundles,
            {
                "client": BudgetConfig.client_defaults().bundles,
                "server": BudgetConfig.server_defaults().bundles,
            },
        )
        assert [b.status for b in result] == ["warning", "error", "error"]


class TestTotalsAndMetrics:
    def test_evaluate_total(self):
        """Evaluate the summed size against the total budget."""
        bundles = [BundleInfo(name="a.js", size=300 * KB), BundleInfo(name="b.js", size=150 * KB)]
        assert evaluate_total(bundles, SizeBudget(warning="400KB", max="500KB")) == "warning"
        assert evaluate_total(bundles, None) == "ok"

    def test_evaluate_metrics(self):
        """Evaluate vitals and scores that are both measured and budgeted."""
        metrics = PerformanceMetrics(performance=92, fcp=1200, lcp=2600, cls=0.01)
        result = evaluate_metrics(
            metrics,
            {"fcp": MetricBudget(warning=1000, max=1500), "lcp": MetricBudget(warning=2000, max=2500)},
            {"performance": ScoreBudget(min=90, warning=95)},
        )
        assert result.statuses == {"fcp": "warning", "lcp": "error", "performance": "warning"}
        assert result.status == "error"

    def test_missing_metrics_are_ok(self):
        """No metrics means nothing to fail."""
        assert evaluate_metrics(None, {"fcp": MetricBudget(warning=1, max=2)}).status == "ok"

    def test_overall_status_combines_everything(self):
        """Ensure overall status folds in total and metric statuses."""
        bundles = [BundleInfo(name="main.js", size=1, status="ok")]
        assert overall_status(bundles) == "ok"
        assert overall_status(bundles, total_status="warning") == "warning"
        assert overall_status(bundles, "warning", "error") == "error"

    def test_evaluate_config(self):
        """Ensure a config-file shaped budget lifts the total entry."""
        config = BudgetConfig.model_validate(
            {
                "bundles": {
                    "main": {"warning": "80KB", "max": "150KB"},
                    "total": {"warning": "90KB", "max": "200KB"},
                }
            }
        )
        assert config.total is not None
        assert "total" not in config.bundles

        bundles, total, overall = evaluate_config([BundleInfo(name="main.js", size=50 * KB)], config)
        assert bundles[0].status == "ok"
        assert total == "ok"
        assert overall == "ok"
