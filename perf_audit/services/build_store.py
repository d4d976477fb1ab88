"""Persistent build history: builds, bundles, metrics and recommendations.

Every multi-row write for one logical build runs in a single transaction, and
writes are serialized through a lock owned by the store handle. Readers only
ever observe committed builds, so they see a build with all of its children or
not at all.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncIterator, Literal, Optional, Sequence

from sqlalchemy import delete, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import selectinload

from perf_audit.database import create_engine, create_session_factory, init_schema
from perf_audit.errors import StoreError
from perf_audit.logging_config import get_logger
from perf_audit.models import METRIC_KEYS, Build, Bundle, Metric, Recommendation
from perf_audit.schemas.build import (
    BuildComparison,
    BuildRecord,
    BundleStats,
    NewBuild,
    RecommendationFrequency,
    TrendPoint,
)
from perf_audit.schemas.bundle import BundleDiff, BundleHistoryItem, BundleInfo
from perf_audit.schemas.metrics import (
    VITAL_FIELDS,
    MetricDiff,
    MetricHistoryPoint,
    MetricStats,
    PerformanceMetrics,
)

logger = get_logger(__name__)

SortOrder = Literal["asc", "desc"]

LARGE_BUNDLE_MIN_SIZE = 100_000
STATS_RECENT_BUILDS = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Storage form of a timestamp: UTC without tzinfo."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc)


def _metrics_from_rows(rows: Sequence[Metric]) -> Optional[PerformanceMetrics]:
    if not rows:
        return None
    return PerformanceMetrics(**{row.key: row.value for row in rows if row.key in METRIC_KEYS})


def _to_record(build: Build, *, include_metrics: bool) -> BuildRecord:
    return BuildRecord(
        id=build.id,
        timestamp=_as_utc(build.timestamp),
        branch=build.branch,
        commit_hash=build.commit_hash,
        url=build.url,
        device=build.device,
        bundles=[BundleInfo.model_validate(bundle) for bundle in build.bundles],
        recommendations=[rec.message for rec in build.recommendations],
        metrics=_metrics_from_rows(build.metrics) if include_metrics else None,
    )


class BuildStore:
    """Handle on one build history database.

    Create with :meth:`open` for scoped use, or construct around an engine and
    call :meth:`init_schema` / :meth:`close` explicitly.
    """

    def __init__(self, engine: AsyncEngine):
        self._engine = engine
        self._session_factory = create_session_factory(engine)
        self._write_lock = asyncio.Lock()

    @classmethod
    @asynccontextmanager
    async def open(cls, database_url: str, *, echo: bool = False) -> AsyncIterator["BuildStore"]:
        """Open the store at ``database_url``, ensure its schema, and always dispose it."""
        store = cls(create_engine(database_url, echo=echo))
        try:
            await store.init_schema()
            yield store
        finally:
            await store.close()

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def init_schema(self) -> None:
        await init_schema(self._engine)

    async def close(self) -> None:
        await self._engine.dispose()
        logger.debug("Build store closed")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save_build(self, data: NewBuild) -> int:
        """
        Insert a build and all of its children in one transaction.

        Args:
            data: Build payload with bundles, optional metrics and recommendations

        Returns:
            Identifier assigned to the new build

        Raises:
            StoreError: Any insert failed; nothing from this build was committed
        """
        async with self._write_lock:
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        build = Build(
                            timestamp=to_naive_utc(data.timestamp),
                            branch=data.branch,
                            commit_hash=data.commit_hash,
                            url=data.url,
                            device=data.device,
                        )
                        session.add(build)
                        await session.flush()
                        build_id = build.id

                        session.add_all(
                            Bundle(
                                build_id=build_id,
                                name=bundle.name,
                                size=bundle.size,
                                gzip_size=bundle.gzip_size,
                                delta=bundle.delta,
                                status=bundle.status,
                                type=bundle.type,
                            )
                            for bundle in data.bundles
                        )
                        if data.metrics is not None:
                            session.add_all(
                                Metric(build_id=build_id, key=key, value=value)
                                for key, value in data.metrics.present_values().items()
                            )
                        session.add_all(
                            Recommendation(build_id=build_id, message=message)
                            for message in data.recommendations
                        )
                        await session.flush()
            except SQLAlchemyError as exc:
                logger.error("Failed to save build: %s", exc)
                raise StoreError(f"Failed to save build: {exc}") from exc

        logger.info(
            "Saved build %s with %d bundle(s), %d recommendation(s)",
            build_id,
            len(data.bundles),
            len(data.recommendations),
        )
        return build_id

    async def cleanup(self, retention_days: int) -> int:
        """
        Delete builds strictly older than ``retention_days`` days, with their children.

        Returns:
            Number of builds removed (child rows are not counted)
        """
        if retention_days < 0:
            raise ValueError("retention_days must be >= 0")

        cutoff = _utcnow() - timedelta(days=retention_days)
        expired = select(Build.id).where(Build.timestamp < cutoff)

        async with self._write_lock:
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        for child in (Recommendation, Metric, Bundle):
                            await session.execute(
                                delete(child).where(child.build_id.in_(expired))
                            )
                        result = await session.execute(
                            delete(Build).where(Build.timestamp < cutoff)
                        )
                        deleted = result.rowcount or 0
            except SQLAlchemyError as exc:
                logger.error("Cleanup failed: %s", exc)
                raise StoreError(f"Cleanup failed: {exc}") from exc

        logger.info("Cleanup removed %d build(s) older than %d day(s)", deleted, retention_days)
        return deleted

    async def clean_database(self) -> int:
        """Empty every table in one transaction; returns the number of builds removed."""
        async with self._write_lock:
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        for child in (Recommendation, Metric, Bundle):
                            await session.execute(delete(child))
                        result = await session.execute(delete(Build))
                        deleted = result.rowcount or 0
            except SQLAlchemyError as exc:
                logger.error("Database wipe failed: %s", exc)
                raise StoreError(f"Database wipe failed: {exc}") from exc

        logger.info("Database wiped (%d build(s) removed)", deleted)
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_recent_builds(
        self,
        limit: int = 10,
        order: SortOrder = "desc",
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[BuildRecord]:
        """Up to ``limit`` builds by timestamp with bundles and recommendations (no metrics)."""
        if order not in ("asc", "desc"):
            raise ValueError(f"order must be 'asc' or 'desc', got {order!r}")

        stmt = select(Build).options(
            selectinload(Build.bundles), selectinload(Build.recommendations)
        )
        if start is not None:
            stmt = stmt.where(Build.timestamp >= to_naive_utc(start))
        if end is not None:
            stmt = stmt.where(Build.timestamp <= to_naive_utc(end))
        if order == "asc":
            stmt = stmt.order_by(Build.timestamp.asc(), Build.id.asc())
        else:
            stmt = stmt.order_by(Build.timestamp.desc(), Build.id.desc())
        stmt = stmt.limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            builds = result.scalars().all()
            return [_to_record(build, include_metrics=False) for build in builds]

    async def get_build(self, build_id: int) -> Optional[BuildRecord]:
        """Fully hydrated build including metrics, or ``None`` if it does not exist."""
        async with self._session_factory() as session:
            build = await self._load_full(session, build_id)
            if build is None:
                return None
            return _to_record(build, include_metrics=True)

    async def get_trend_data(self, days: int = 30) -> list[TrendPoint]:
        """
        One aggregate per UTC calendar date over the trailing ``days`` days, newest first.

        Sizes are summed over the day's bundles and the performance score is
        averaged over builds that have one. Core Web Vitals come from the last
        build of the day that recorded metrics, never averaged.
        """
        cutoff = _utcnow() - timedelta(days=days)
        stmt = (
            select(Build)
            .where(Build.timestamp >= cutoff)
            .options(selectinload(Build.bundles), selectinload(Build.metrics))
            .order_by(Build.timestamp.asc(), Build.id.asc())
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            builds = result.scalars().all()

            by_date: dict[date, list[Build]] = {}
            for build in builds:
                by_date.setdefault(build.timestamp.date(), []).append(build)

            points = [self._trend_point(day, day_builds) for day, day_builds in by_date.items()]

        points.sort(key=lambda point: point.date, reverse=True)
        return points

    @staticmethod
    def _trend_point(day: date, builds: list[Build]) -> TrendPoint:
        """Aggregate one day. Vitals are taken from the last build of the day that recorded metrics."""
        bundles = [bundle for build in builds for bundle in build.bundles]
        gzip_sizes = [b.gzip_size for b in bundles if b.gzip_size is not None]

        scores: list[float] = []
        latest_metrics: Optional[PerformanceMetrics] = None
        for build in builds:  # chronological
            metrics = _metrics_from_rows(build.metrics)
            if metrics is None:
                continue
            if metrics.performance is not None:
                scores.append(metrics.performance)
            latest_metrics = metrics

        vitals = {
            name: getattr(latest_metrics, name) if latest_metrics else None
            for name in VITAL_FIELDS
        }
        return TrendPoint(
            date=day,
            build_count=len(builds),
            total_size=sum(b.size for b in bundles),
            total_gzip_size=sum(gzip_sizes) if gzip_sizes else None,
            performance_score=sum(scores) / len(scores) if scores else None,
            **vitals,
        )

    async def get_build_comparison(self, old_id: int, new_id: int) -> BuildComparison:
        """
        Diff two builds over the bundles and metrics they share.

        Bundles present in only one of the builds are left out of the diff.
        """
        async with self._session_factory() as session:
            old = await self._load_full(session, old_id)
            new = await self._load_full(session, new_id)
            old_record = _to_record(old, include_metrics=True) if old else None
            new_record = _to_record(new, include_metrics=True) if new else None

        if old_record is None or new_record is None:
            return BuildComparison(old_build=old_record, new_build=new_record)

        new_bundles = {bundle.name: bundle for bundle in new_record.bundles}
        bundle_diff: list[BundleDiff] = []
        for old_bundle in sorted(old_record.bundles, key=lambda b: b.name):
            new_bundle = new_bundles.get(old_bundle.name)
            if new_bundle is None:
                continue
            gzip_delta = None
            if old_bundle.gzip_size is not None and new_bundle.gzip_size is not None:
                gzip_delta = new_bundle.gzip_size - old_bundle.gzip_size
            bundle_diff.append(
                BundleDiff(
                    name=old_bundle.name,
                    old_size=old_bundle.size,
                    new_size=new_bundle.size,
                    delta=new_bundle.size - old_bundle.size,
                    old_gzip_size=old_bundle.gzip_size,
                    new_gzip_size=new_bundle.gzip_size,
                    gzip_delta=gzip_delta,
                )
            )

        old_values = old_record.metrics.present_values() if old_record.metrics else {}
        new_values = new_record.metrics.present_values() if new_record.metrics else {}
        metric_diff = [
            MetricDiff(
                name=name,
                old_value=old_values[name],
                new_value=new_values[name],
                delta=new_values[name] - old_values[name],
            )
            for name in METRIC_KEYS
            if name in old_values and name in new_values
        ]

        return BuildComparison(
            old_build=old_record,
            new_build=new_record,
            bundle_diff=bundle_diff,
            metric_diff=metric_diff,
        )

    async def get_bundle_stats(self, days: int = 30) -> BundleStats:
        """Build count in the window, mean bundle size of its latest builds, and the largest bundles."""
        cutoff = _utcnow() - timedelta(days=days)
        async with self._session_factory() as session:
            total_builds = await session.scalar(
                select(func.count(Build.id)).where(Build.timestamp >= cutoff)
            )
            recent_ids = (
                select(Build.id)
                .where(Build.timestamp >= cutoff)
                .order_by(Build.timestamp.desc(), Build.id.desc())
                .limit(STATS_RECENT_BUILDS)
            )
            average = await session.scalar(
                select(func.avg(Bundle.size)).where(Bundle.build_id.in_(recent_ids))
            )

        largest = await self.find_large_bundles(LARGE_BUNDLE_MIN_SIZE, STATS_RECENT_BUILDS)
        return BundleStats(
            total_builds=total_builds or 0,
            average_size=float(average or 0),
            largest_bundles=largest,
        )

    async def get_metric_stats(self, metric: str = "performance", days: int = 30) -> MetricStats:
        """Average, min, max and history (newest first) of one metric over the window."""
        if metric not in METRIC_KEYS:
            raise ValueError(f"Unknown metric {metric!r}; expected one of {', '.join(METRIC_KEYS)}")

        cutoff = _utcnow() - timedelta(days=days)
        window = (Metric.key == metric, Build.timestamp >= cutoff)
        async with self._session_factory() as session:
            stats = (
                await session.execute(
                    select(
                        func.avg(Metric.value),
                        func.min(Metric.value),
                        func.max(Metric.value),
                        func.count(Metric.value),
                    )
                    .join(Build, Metric.build_id == Build.id)
                    .where(*window)
                )
            ).one()
            rows = (
                await session.execute(
                    select(Metric.build_id, Metric.value, Build.timestamp)
                    .join(Build, Metric.build_id == Build.id)
                    .where(*window)
                    .order_by(Build.timestamp.desc(), Build.id.desc())
                )
            ).all()

        average, minimum, maximum, count = stats
        return MetricStats(
            metric=metric,
            average=average,
            min=minimum,
            max=maximum,
            count=count or 0,
            history=[
                MetricHistoryPoint(build_id=build_id, value=value, timestamp=_as_utc(ts))
                for build_id, value, ts in rows
            ],
        )

    async def get_frequent_recommendations(
        self, days: int = 30, limit: int = 10
    ) -> list[RecommendationFrequency]:
        cutoff = _utcnow() - timedelta(days=days)
        count = func.count(Recommendation.id).label("count")
        stmt = (
            select(Recommendation.message, count)
            .join(Build, Recommendation.build_id == Build.id)
            .where(Build.timestamp >= cutoff)
            .group_by(Recommendation.message)
            .order_by(count.desc(), Recommendation.message)
            .limit(limit)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return [RecommendationFrequency(message=message, count=n) for message, n in rows]

    async def find_bundle_history(self, name: str, limit: int = 10) -> list[BundleHistoryItem]:
        """Stored bundles whose name contains ``name``, newest build first."""
        stmt = (
            select(Bundle)
            .where(Bundle.name.contains(name, autoescape=True))
            .order_by(Bundle.build_id.desc(), Bundle.id)
            .limit(limit)
        )
        async with self._session_factory() as session:
            bundles = (await session.execute(stmt)).scalars().all()
            return [BundleHistoryItem.model_validate(bundle) for bundle in bundles]

    async def find_large_bundles(self, min_size: int, limit: int = 10) -> list[BundleHistoryItem]:
        stmt = (
            select(Bundle)
            .where(Bundle.size >= min_size)
            .order_by(Bundle.size.desc(), Bundle.id)
            .limit(limit)
        )
        async with self._session_factory() as session:
            bundles = (await session.execute(stmt)).scalars().all()
            return [BundleHistoryItem.model_validate(bundle) for bundle in bundles]

    # ------------------------------------------------------------------
    # Maintenance (SQLite only)
    # ------------------------------------------------------------------

    async def backup(self, destination: str | Path) -> Path:
        """Write a consistent copy of the database to ``destination`` (must not exist)."""
        self._require_sqlite("Backup")
        target = Path(destination).resolve()
        if target.exists():
            raise FileExistsError(f"Backup destination already exists: {target}")
        target.parent.mkdir(parents=True, exist_ok=True)

        async with self._write_lock:
            async with self._engine.connect() as conn:
                conn = await conn.execution_options(isolation_level="AUTOCOMMIT")
                await conn.execute(text("VACUUM INTO :path"), {"path": str(target)})
        logger.info("Database backed up to %s", target)
        return target

    async def vacuum(self) -> None:
        self._require_sqlite("Vacuum")
        async with self._write_lock:
            async with self._engine.connect() as conn:
                conn = await conn.execution_options(isolation_level="AUTOCOMMIT")
                await conn.execute(text("VACUUM"))

    def _require_sqlite(self, operation: str) -> None:
        url = self._engine.url
        if not url.get_backend_name().startswith("sqlite"):
            raise NotImplementedError(f"{operation} is only supported for SQLite databases")
        if not url.database or url.database == ":memory:":
            raise NotImplementedError(f"{operation} requires a file-backed SQLite database")

    @staticmethod
    async def _load_full(session, build_id: int) -> Optional[Build]:
        return await session.get(
            Build,
            build_id,
            options=[
                selectinload(Build.bundles),
                selectinload(Build.metrics),
                selectinload(Build.recommendations),
            ],
        )
