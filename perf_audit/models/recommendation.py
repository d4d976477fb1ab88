"""Recommendation model."""

from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from perf_audit.database import Base


class Recommendation(Base):
    """Free-text advisory attached to a build, kept in insertion order."""

    __tablename__ = "recommendations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    build_id = Column(
        Integer, ForeignKey("builds.id", ondelete="CASCADE"), nullable=False, index=True
    )
    message = Column(Text, nullable=False)

    # Relationships
    build = relationship("Build", back_populates="recommendations")

    def __repr__(self) -> str:
        return f"<Recommendation(id={self.id}, build_id={self.build_id})>"
