"""Debounced, single-flight re-analysis on file changes.

The watcher is a two-state machine (idle / running) driven by ``notify()``
calls. A burst of events while idle collapses into one cycle after the
debounce interval; events arriving while a cycle runs leave exactly one more
cycle owed, which is scheduled once the current cycle finishes.
"""

import asyncio
import inspect
import os
from contextlib import suppress
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Sequence, Union

from perf_audit.errors import StoreError
from perf_audit.logging_config import get_logger
from perf_audit.schemas.audit import AuditResult, ChangeNotification
from perf_audit.schemas.budget import BudgetConfig
from perf_audit.schemas.bundle import BundleChange, BundleInfo
from perf_audit.services.audit import run_bundle_audit
from perf_audit.services.budget import combine_statuses
from perf_audit.services.build_store import BuildStore
from perf_audit.services.bundle_analyzer import BundleAnalyzer

logger = get_logger(__name__)

DEFAULT_DEBOUNCE_MS = 1000
DEFAULT_THRESHOLD_BYTES = 5 * 1024
DEFAULT_POLL_INTERVAL_MS = 100

# A per-bundle change is reported when it moves by more than either of these.
SIGNIFICANT_CHANGE_BYTES = 1024
SIGNIFICANT_CHANGE_PERCENT = 5.0

CycleFn = Callable[[], Awaitable[AuditResult]]
ChangeHandler = Callable[[ChangeNotification], Union[Awaitable[None], None]]
Snapshot = dict[str, tuple[int, int]]


class WatcherState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


def compare_results(
    previous: Sequence[BundleInfo], current: Sequence[BundleInfo]
) -> list[BundleChange]:
    """Significant per-bundle changes between two cycles, including added and removed bundles."""
    before = {bundle.name: bundle for bundle in previous}
    after_names = {bundle.name for bundle in current}
    changes: list[BundleChange] = []

    for bundle in current:
        old = before.get(bundle.name)
        if old is None:
            changes.append(
                BundleChange(
                    name=bundle.name,
                    previous_size=0,
                    current_size=bundle.size,
                    delta=bundle.size,
                    percentage=100.0,
                    is_regression=True,
                    added=True,
                )
            )
            continue

        delta = bundle.size - old.size
        if old.size:
            percentage = delta / old.size * 100
        else:
            percentage = 100.0 if delta else 0.0
        if abs(delta) > SIGNIFICANT_CHANGE_BYTES or abs(percentage) > SIGNIFICANT_CHANGE_PERCENT:
            changes.append(
                BundleChange(
                    name=bundle.name,
                    previous_size=old.size,
                    current_size=bundle.size,
                    delta=delta,
                    percentage=percentage,
                    is_regression=delta > 0,
                )
            )

    for name, old in before.items():
        if name not in after_names:
            changes.append(
                BundleChange(
                    name=name,
                    previous_size=old.size,
                    current_size=0,
                    delta=-old.size,
                    percentage=-100.0,
                    is_regression=False,
                    removed=True,
                )
            )
    return changes


def build_change_notification(
    previous: AuditResult, current: AuditResult, threshold_bytes: int
) -> Optional[ChangeNotification]:
    """
    Notification for ``current`` relative to ``previous``, or ``None``.

    A notification is produced when the absolute total delta exceeds
    ``threshold_bytes`` or the overall budget status changed.
    """
    total_delta = current.total_size - previous.total_size
    status_changed = previous.budget_status != current.budget_status
    if abs(total_delta) <= threshold_bytes and not status_changed:
        return None

    status_worsened = status_changed and (
        combine_statuses(previous.budget_status, current.budget_status) == current.budget_status
    )
    return ChangeNotification(
        timestamp=current.timestamp,
        previous_total=previous.total_size,
        current_total=current.total_size,
        total_delta=total_delta,
        previous_status=previous.budget_status,
        current_status=current.budget_status,
        status_changed=status_changed,
        has_regression=total_delta > 0 or status_worsened,
        changes=compare_results(previous.bundles, current.bundles),
        result=current,
    )


def audit_cycle(analyzer: BundleAnalyzer, budgets: BudgetConfig) -> CycleFn:
    """Cycle callable running :func:`run_bundle_audit` in a worker thread."""

    async def cycle() -> AuditResult:
        return await asyncio.to_thread(run_bundle_audit, analyzer, budgets)

    return cycle


class ChangeWatcher:
    """Re-runs an analysis cycle when watched files change.

    Only one cycle ever runs at a time. The first completed cycle becomes the
    baseline and is never reported; each later cycle is compared against the
    previous successful one.
    """

    def __init__(
        self,
        cycle: CycleFn,
        *,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        threshold_bytes: int = DEFAULT_THRESHOLD_BYTES,
        on_change: Optional[ChangeHandler] = None,
        store: Optional[BuildStore] = None,
        build_meta: Optional[Mapping[str, Any]] = None,
        paths: Iterable[Union[str, Path]] = (),
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    ):
        if debounce_ms < 0:
            raise ValueError("debounce_ms must be >= 0")
        self._cycle = cycle
        self._debounce = debounce_ms / 1000
        self._threshold = threshold_bytes
        self._on_change = on_change
        self._store = store
        self._build_meta = dict(build_meta or {})
        self._paths = [Path(p) for p in paths]
        self._poll_interval_ms = poll_interval_ms

        self._state = WatcherState.IDLE
        self._pending = False
        self._stopped = True
        self._timer: Optional[asyncio.TimerHandle] = None
        self._cycle_task: Optional[asyncio.Task] = None
        self._source: Optional["PollingFileSource"] = None
        self._baseline: Optional[AuditResult] = None
        self.cycles_run = 0
        self._logger = get_logger(__name__)

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def baseline(self) -> Optional[AuditResult]:
        """Result of the last successful cycle."""
        return self._baseline

    @property
    def pending(self) -> bool:
        return self._pending

    async def start(self, *, run_baseline: bool = True) -> None:
        """Optionally run a baseline cycle, then begin polling the watched paths."""
        if not self._stopped:
            return
        self._stopped = False
        if run_baseline:
            self._state = WatcherState.RUNNING
            await self._run_cycle()
        if self._paths:
            self._source = PollingFileSource(
                self._paths, self, poll_interval_ms=self._poll_interval_ms
            )
            await self._source.start()
        self._logger.info(
            "Watching %d path(s) (debounce=%.0fms, threshold=%d bytes)",
            len(self._paths),
            self._debounce * 1000,
            self._threshold,
        )

    async def stop(self) -> None:
        """Stop reacting to events; an in-flight cycle is allowed to finish."""
        self._stopped = True
        self._pending = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._source is not None:
            await self._source.stop()
            self._source = None
        task = self._cycle_task
        # A handler may stop the watcher from inside the cycle task itself.
        if task is not None and not task.done() and task is not asyncio.current_task():
            await task
        self._cycle_task = None
        self._logger.info("Watcher stopped after %d cycle(s)", self.cycles_run)

    async def __aenter__(self) -> "ChangeWatcher":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    def notify(self, path: Union[str, Path, None] = None) -> None:
        """Record a file change event. Must be called from the event loop thread."""
        if self._stopped:
            return
        self._logger.debug("Change event: %s", path)
        if self._state is WatcherState.RUNNING:
            self._pending = True
            return
        self._arm_timer()

    def _arm_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().call_later(self._debounce, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        if self._stopped:
            return
        if self._state is WatcherState.RUNNING:
            self._pending = True
            return
        self._state = WatcherState.RUNNING
        self._cycle_task = asyncio.get_running_loop().create_task(self._run_cycle())

    async def _run_cycle(self) -> None:
        try:
            result = await self._cycle()
        except Exception:
            # Baseline stays at the last good result.
            self._logger.exception("Analysis cycle failed")
        else:
            self.cycles_run += 1
            await self._handle_result(result)
        finally:
            self._state = WatcherState.IDLE
            if self._pending and not self._stopped:
                self._pending = False
                self._arm_timer()

    async def _handle_result(self, result: AuditResult) -> None:
        previous = self._baseline
        self._baseline = result

        if self._store is not None:
            try:
                build_id = await self._store.save_build(result.to_new_build(**self._build_meta))
                self._logger.debug("Cycle saved as build %s", build_id)
            except StoreError:
                self._logger.exception("Could not save cycle result")

        if previous is None:
            self._logger.info(
                "Baseline: %d bundle(s), %d bytes, status=%s",
                len(result.bundles),
                result.total_size,
                result.budget_status,
            )
            return

        notification = build_change_notification(previous, result, self._threshold)
        if notification is None:
            self._logger.debug("No significant change (delta=%d bytes)", result.total_size - previous.total_size)
            return

        self._logger.info(
            "Change detected: %+d bytes, status %s -> %s",
            notification.total_delta,
            notification.previous_status,
            notification.current_status,
        )
        if self._on_change is not None:
            try:
                outcome = self._on_change(notification)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                self._logger.exception("Change handler failed")


class PollingFileSource:
    """Feeds a watcher by diffing ``(mtime_ns, size)`` snapshots of the watched paths."""

    def __init__(
        self,
        paths: Iterable[Union[str, Path]],
        watcher: ChangeWatcher,
        *,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    ):
        if poll_interval_ms <= 0:
            raise ValueError("poll_interval_ms must be > 0")
        self.paths = [Path(p) for p in paths]
        self._watcher = watcher
        self._interval = poll_interval_ms / 1000
        self._snapshot: Snapshot = {}
        self._task: Optional[asyncio.Task] = None

    def snapshot(self) -> Snapshot:
        """Current ``path -> (mtime_ns, size)`` for every file under the watched paths."""
        result: Snapshot = {}
        for root in self.paths:
            if root.is_file():
                self._record(result, str(root))
                continue
            for dirpath, _dirnames, filenames in os.walk(root):
                for filename in filenames:
                    self._record(result, os.path.join(dirpath, filename))
        return result

    @staticmethod
    def _record(snapshot: Snapshot, path: str) -> None:
        try:
            stat = os.stat(path)
        except FileNotFoundError:
            # Deleted between listing and stat; the next poll sees it as removed.
            return
        snapshot[path] = (stat.st_mtime_ns, stat.st_size)

    @staticmethod
    def diff(before: Snapshot, after: Snapshot) -> list[str]:
        """Paths added, removed or modified between two snapshots."""
        changed = [path for path, sig in after.items() if before.get(path) != sig]
        changed.extend(path for path in before if path not in after)
        return sorted(changed)

    async def start(self) -> None:
        if self._task is not None:
            return
        self._snapshot = await asyncio.to_thread(self.snapshot)
        self._task = asyncio.create_task(self._poll())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                current = await asyncio.to_thread(self.snapshot)
            except OSError as exc:
                logger.warning("Polling failed: %s", exc)
                continue
            for path in self.diff(self._snapshot, current):
                self._watcher.notify(path)
            self._snapshot = current
