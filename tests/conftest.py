"""Shared fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from perf_audit.schemas.build import NewBuild
from perf_audit.schemas.bundle import BundleInfo
from perf_audit.schemas.metrics import PerformanceMetrics
from perf_audit.services.build_store import BuildStore


@pytest.fixture
async def store(tmp_path):
    """Fresh file-backed store per test."""
    url = f"sqlite+aiosqlite:///{(tmp_path / 'performance.db').as_posix()}"
    async with BuildStore.open(url) as handle:
        yield handle


def make_build(
    sizes: dict[str, int],
    *,
    timestamp: Optional[datetime] = None,
    days_ago: float = 0,
    metrics: Optional[PerformanceMetrics] = None,
    recommendations: Optional[list[str]] = None,
    with_gzip: bool = True,
    **meta,
) -> NewBuild:
    """NewBuild with one bundle per ``name -> size`` entry (gzip = size // 3)."""
    if timestamp is None:
        timestamp = datetime.now(timezone.utc) - timedelta(days=days_ago)
    return NewBuild(
        timestamp=timestamp,
        bundles=[
            BundleInfo(name=name, size=size, gzip_size=size // 3 if with_gzip else None)
            for name, size in sizes.items()
        ],
        metrics=metrics,
        recommendations=recommendations or [],
        **meta,
    )
