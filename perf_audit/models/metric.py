"""Metric model: one row per scalar metric of a build."""

from sqlalchemy import Column, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from perf_audit.database import Base

METRIC_KEYS = (
    "performance",
    "accessibility",
    "best_practices",
    "seo",
    "fcp",
    "lcp",
    "cls",
    "tti",
)


class Metric(Base):
    """Key/value storage for a build's performance snapshot.

    Callers never see these rows; the store folds them into a single
    PerformanceMetrics record.
    """

    __tablename__ = "metrics"
    __table_args__ = (UniqueConstraint("build_id", "key", name="uq_metrics_build_key"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    build_id = Column(
        Integer, ForeignKey("builds.id", ondelete="CASCADE"), nullable=False, index=True
    )
    key = Column(String(32), nullable=False, index=True)
    value = Column(Float, nullable=False)

    # Relationships
    build = relationship("Build", back_populates="metrics")

    def __repr__(self) -> str:
        return f"<Metric(build_id={self.build_id}, key='{self.key}', value={self.value})>"
