"""Build model."""

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from perf_audit.database import Base


class Build(Base):
    """One recorded analysis run.

    Never updated after insert; removed only by retention cleanup or a full wipe,
    which cascades to bundles, metrics and recommendations.
    """

    __tablename__ = "builds"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, nullable=False, index=True)  # naive UTC
    branch = Column(String(255), nullable=True)
    commit_hash = Column(String(64), nullable=True)
    url = Column(String(2048), nullable=True)
    device = Column(String(20), nullable=True)  # mobile, desktop

    # Relationships
    bundles = relationship(
        "Bundle",
        back_populates="build",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Bundle.id",
    )
    metrics = relationship(
        "Metric",
        back_populates="build",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Metric.id",
    )
    recommendations = relationship(
        "Recommendation",
        back_populates="build",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Recommendation.id",
    )

    def __repr__(self) -> str:
        return f"<Build(id={self.id}, timestamp='{self.timestamp}', branch='{self.branch}')>"
