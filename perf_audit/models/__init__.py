"""Database models package."""

from perf_audit.models.build import Build
from perf_audit.models.bundle import Bundle
from perf_audit.models.metric import Metric, METRIC_KEYS
from perf_audit.models.recommendation import Recommendation

__all__ = ["Build", "Bundle", "Metric", "METRIC_KEYS", "Recommendation"]
