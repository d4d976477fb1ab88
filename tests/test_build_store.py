"""Tests for the build record store."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from perf_audit.errors import StoreError
from perf_audit.schemas.build import NewBuild
from perf_audit.schemas.bundle import BundleInfo
from perf_audit.schemas.metrics import PerformanceMetrics
from perf_audit.services.build_store import BuildStore
from tests.conftest import make_build

KB = 1024


def noon(days_ago: int) -> datetime:
    today = datetime.now(timezone.utc).replace(hour=12, minute=0, second=0, microsecond=0)
    return today - timedelta(days=days_ago)


class TestSaveAndLoad:
    async def test_round_trip(self, store):
        """Ensure a saved build hydrates with identical bundles, metrics and meta."""
        metrics = PerformanceMetrics(performance=92.5, fcp=1200, cls=0.02)
        build_id = await store.save_build(
            make_build(
                {"main.js": 100000, "vendor.js": 50000, "runtime.js": 1200},
                metrics=metrics,
                recommendations=["Consider code splitting"],
                branch="main",
                commit_hash="abc123",
                device="desktop",
            )
        )

        build = await store.get_build(build_id)
        assert build is not None
        assert build.id == build_id
        assert build.branch == "main"
        assert build.commit_hash == "abc123"
        assert build.device == "desktop"
        assert {(b.name, b.size, b.gzip_size) for b in build.bundles} == {
            ("main.js", 100000, 33333),
            ("vendor.js", 50000, 16666),
            ("runtime.js", 1200, 400),
        }
        assert build.metrics == metrics
        assert build.recommendations == ["Consider code splitting"]

    async def test_missing_build_is_none(self, store):
        """Unknown ids are an absence, not an error."""
        assert await store.get_build(12345) is None

    async def test_build_without_metrics(self, store):
        """Ensure a build without metrics reports metrics=None."""
        build_id = await store.save_build(make_build({"main.js": 10}, with_gzip=False))
        build = await store.get_build(build_id)
        assert build.metrics is None
        assert build.bundles[0].gzip_size is None

    async def test_timestamps_come_back_as_utc(self, store):
        """Ensure aware timestamps are stored as UTC and returned aware."""
        local = timezone(timedelta(hours=2))
        stamp = datetime(2024, 3, 1, 14, 30, tzinfo=local)
        build_id = await store.save_build(make_build({"main.js": 1}, timestamp=stamp))
        build = await store.get_build(build_id)
        assert build.timestamp == stamp
        assert build.timestamp.utcoffset() == timedelta(0)

    async def test_failed_child_insert_rolls_back(self, store):
        """Ensure a failing child insert leaves no partial build behind."""
        bad_bundle = BundleInfo.model_construct(
            name="main.js", size=10, gzip_size=20, delta=None, status="ok", type=None
        )
        with pytest.raises(StoreError):
            await store.save_build(NewBuild(bundles=[bad_bundle], recommendations=["x"]))

        assert await store.get_recent_builds() == []
        assert await store.find_large_bundles(0) == []
        assert await store.get_frequent_recommendations() == []

    async def test_concurrent_saves_do_not_interleave(self, store):
        """Ensure parallel saves each commit exactly their own bundles."""
        builds = [
            make_build({f"b{i}-chunk-{j}.js": 1000 + j for j in range(20)}, branch=f"b{i}")
            for i in range(10)
        ]
        ids = await asyncio.gather(*(store.save_build(build) for build in builds))

        assert len(set(ids)) == 10
        for i, build_id in enumerate(ids):
            record = await store.get_build(build_id)
            assert record.branch == f"b{i}"
            assert len(record.bundles) == 20
            assert {b.name for b in record.bundles} == {f"b{i}-chunk-{j}.js" for j in range(20)}

    def test_duplicate_bundle_names_rejected(self):
        """Bundle names must be unique within a build."""
        with pytest.raises(ValueError):
            NewBuild(bundles=[BundleInfo(name="a.js", size=1), BundleInfo(name="a.js", size=2)])


class TestRecentBuilds:
    async def test_order_and_limit(self, store):
        """Recent builds honour limit and sort order."""
        for days_ago in (3, 1, 2):
            await store.save_build(make_build({"main.js": days_ago}, days_ago=days_ago))

        newest_first = await store.get_recent_builds(limit=2)
        assert [b.bundles[0].size for b in newest_first] == [1, 2]
        assert all(b.metrics is None for b in newest_first)

        oldest_first = await store.get_recent_builds(order="asc")
        assert [b.bundles[0].size for b in oldest_first] == [3, 2, 1]

    async def test_date_range(self, store):
        """Ensure the start/end filter is applied."""
        for days_ago in (10, 5, 1):
            await store.save_build(make_build({"main.js": days_ago}, days_ago=days_ago))
        now = datetime.now(timezone.utc)
        builds = await store.get_recent_builds(start=now - timedelta(days=7), end=now - timedelta(days=2))
        assert [b.bundles[0].size for b in builds] == [5]

    async def test_invalid_order(self, store):
        """Reject unknown sort orders."""
        with pytest.raises(ValueError):
            await store.get_recent_builds(order="sideways")


class TestCleanup:
    async def test_cleanup_is_idempotent(self, store):
        """Ensure a second cleanup with the same window deletes nothing."""
        await store.save_build(make_build({"old.js": 1}, days_ago=40, recommendations=["old"]))
        await store.save_build(make_build({"new.js": 1}, days_ago=10))

        assert await store.cleanup(30) == 1
        assert await store.cleanup(30) == 0

        remaining = await store.get_recent_builds()
        assert [b.bundles[0].name for b in remaining] == ["new.js"]
        assert await store.find_bundle_history("old.js") == []
        assert await store.get_frequent_recommendations(days=365) == []

    async def test_negative_retention_rejected(self, store):
        """Reject negative retention windows."""
        with pytest.raises(ValueError):
            await store.cleanup(-1)

    async def test_clean_database(self, store):
        """Ensure a wipe removes builds and every child row."""
        for _ in range(3):
            await store.save_build(
                make_build({"main.js": 1}, metrics=PerformanceMetrics(performance=80), recommendations=["r"])
            )
        assert await store.clean_database() == 3
        assert await store.get_recent_builds() == []
        assert (await store.get_metric_stats()).count == 0


class TestTrends:
    async def test_one_point_per_date(self, store):
        """Ensure trends aggregate per UTC date, newest first."""
        await store.save_build(make_build({"main.js": 100, "vendor.js": 50}, timestamp=noon(2)))
        await store.save_build(
            make_build(
                {"main.js": 200},
                timestamp=noon(1),
                metrics=PerformanceMetrics(performance=80, fcp=1000, lcp=2000),
            )
        )
        await store.save_build(
            make_build(
                {"main.js": 300},
                timestamp=noon(1) + timedelta(hours=1),
                metrics=PerformanceMetrics(performance=90, fcp=1500),
            )
        )
        await store.save_build(make_build({"main.js": 400}, timestamp=noon(0), with_gzip=False))

        points = await store.get_trend_data(days=30)

        assert [p.date for p in points] == [noon(0).date(), noon(1).date(), noon(2).date()]
        assert [p.total_size for p in points] == [400, 500, 150]
        assert [p.build_count for p in points] == [1, 2, 1]
        assert points[0].total_gzip_size is None
        assert points[1].total_gzip_size == 66 + 100
        assert points[1].performance_score == pytest.approx(85)
        # vitals come from the day's last build with metrics
        assert points[1].fcp == 1500
        assert points[1].lcp is None
        assert points[2].performance_score is None

    async def test_window_excludes_old_builds(self, store):
        """Builds outside the window are not aggregated."""
        await store.save_build(make_build({"main.js": 1}, days_ago=40))
        assert await store.get_trend_data(days=30) == []


class TestComparison:
    async def test_delta_and_symmetry(self, store):
        """Ensure comparison deltas are exact and antisymmetric."""
        a = await store.save_build(
            make_build({"main.js": 100 * KB, "vendor.js": 50 * KB, "gone.js": 1}, metrics=PerformanceMetrics(performance=90))
        )
        b = await store.save_build(
            make_build({"main.js": 110 * KB, "vendor.js": 50 * KB, "added.js": 1}, metrics=PerformanceMetrics(performance=85, fcp=900))
        )

        forward = await store.get_build_comparison(a, b)
        backward = await store.get_build_comparison(b, a)

        assert [d.name for d in forward.bundle_diff] == ["main.js", "vendor.js"]
        main = forward.bundle_diff[0]
        assert main.delta == 10240
        assert main.gzip_delta == (110 * KB) // 3 - (100 * KB) // 3
        assert forward.bundle_diff[1].delta == 0
        for f, r in zip(forward.bundle_diff, backward.bundle_diff):
            assert f.name == r.name
            assert f.delta == -r.delta

        assert [(m.name, m.delta) for m in forward.metric_diff] == [("performance", -5)]

    async def test_gzip_delta_absent_when_unmeasured(self, store):
        """gzip delta is None unless both sides were measured."""
        a = await store.save_build(make_build({"main.js": 10}))
        b = await store.save_build(make_build({"main.js": 20}, with_gzip=False))
        diff = (await store.get_build_comparison(a, b)).bundle_diff[0]
        assert diff.delta == 10
        assert diff.gzip_delta is None

    async def test_missing_build(self, store):
        """Ensure a missing side yields empty diffs."""
        a = await store.save_build(make_build({"main.js": 10}))
        comparison = await store.get_build_comparison(a, 999)
        assert comparison.old_build is not None
        assert comparison.new_build is None
        assert comparison.bundle_diff == []


class TestStats:
    async def test_bundle_stats(self, store):
        """Bundle stats cover the window and the largest bundles."""
        await store.save_build(make_build({"main.js": 200000, "vendor.js": 100}))
        await store.save_build(make_build({"main.js": 150000, "vendor.js": 100}))
        await store.save_build(make_build({"main.js": 1}, days_ago=60))

        stats = await store.get_bundle_stats(days=30)
        assert stats.total_builds == 2
        assert stats.average_size == pytest.approx((200000 + 100 + 150000 + 100) / 4)
        assert [b.size for b in stats.largest_bundles] == [200000, 150000]

    async def test_metric_stats(self, store):
        """Metric stats aggregate the window, history newest first."""
        first = await store.save_build(make_build({"a.js": 1}, days_ago=2, metrics=PerformanceMetrics(performance=80)))
        second = await store.save_build(make_build({"a.js": 1}, days_ago=1, metrics=PerformanceMetrics(performance=90)))
        await store.save_build(make_build({"a.js": 1}))

        stats = await store.get_metric_stats("performance", days=30)
        assert stats.count == 2
        assert stats.average == pytest.approx(85)
        assert (stats.min, stats.max) == (80, 90)
        assert [p.build_id for p in stats.history] == [second, first]

    async def test_unknown_metric(self, store):
        """Reject metric names outside the known set."""
        with pytest.raises(ValueError):
            await store.get_metric_stats("speed")

    async def test_frequent_recommendations(self, store):
        """Recommendations are counted and ordered by frequency."""
        await store.save_build(make_build({"a.js": 1}, recommendations=["split", "merge"]))
        await store.save_build(make_build({"a.js": 1}, recommendations=["split"]))
        result = await store.get_frequent_recommendations()
        assert [(r.message, r.count) for r in result] == [("split", 2), ("merge", 1)]

    async def test_find_bundle_history(self, store):
        """Bundle history matches by substring, newest build first."""
        first = await store.save_build(make_build({"main.js": 1, "vendor.js": 2}))
        second = await store.save_build(make_build({"main.js": 3}))
        history = await store.find_bundle_history("main")
        assert [(h.build_id, h.size) for h in history] == [(second, 3), (first, 1)]


class TestMaintenance:
    async def test_backup(self, store, tmp_path):
        """Ensure a backup is a usable copy and never overwrites."""
        await store.save_build(make_build({"main.js": 10}))
        target = await store.backup(tmp_path / "backups" / "copy.db")
        assert target.exists()

        async with BuildStore.open(f"sqlite+aiosqlite:///{target.as_posix()}") as copy:
            assert len(await copy.get_recent_builds()) == 1

        with pytest.raises(FileExistsError):
            await store.backup(target)

    async def test_vacuum(self, store):
        """Vacuum runs on a file-backed store."""
        await store.save_build(make_build({"main.js": 10}))
        await store.clean_database()
        await store.vacuum()
        assert await store.get_recent_builds() == []
