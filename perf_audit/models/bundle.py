"""Bundle model."""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from perf_audit.database import Base


class Bundle(Base):
    """One measured artifact within a build."""

    __tablename__ = "bundles"
    __table_args__ = (
        CheckConstraint("gzip_size IS NULL OR gzip_size <= size", name="ck_bundles_gzip_le_size"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    build_id = Column(
        Integer, ForeignKey("builds.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(1024), nullable=False, index=True)  # slash-separated relative path
    size = Column(Integer, nullable=False, index=True)  # bytes
    gzip_size = Column(Integer, nullable=True)  # bytes; NULL when not measured
    delta = Column(Integer, nullable=True)  # bytes vs. a prior bundle; NULL when unknown
    status = Column(String(10), nullable=False)  # ok, warning, error
    type = Column(String(10), nullable=True)  # client, server

    # Relationships
    build = relationship("Build", back_populates="bundles")

    def __repr__(self) -> str:
        return f"<Bundle(id={self.id}, build_id={self.build_id}, name='{self.name}', size={self.size})>"
