"""Status snapshot: counts per lifecycle state plus overdue ACTIVE processes.

The refresher is a read-only periodic task. It reads through the same store
calls as listings and never writes, so its timing has no effect on results.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from process_tracker.lifecycle.deadlines import Clock, epoch_seconds, is_overdue, utc_now
from process_tracker.lifecycle.errors import StoreUnavailableError
from process_tracker.lifecycle.models import StatusSnapshot
from process_tracker.storage.base import ProcessStore

logger = logging.getLogger(__name__)


def collect_status_snapshot(store: ProcessStore, clock: Clock = utc_now) -> StatusSnapshot:
    now = clock()
    active = store.find_processes(status="ACTIVE")
    return StatusSnapshot(
        active=len(active),
        completed=store.count_by_status("COMPLETED"),
        failed=store.count_by_status("FAILED"),
        overdue=sum(1 for record in active if is_overdue(record, now)),
        generated_at=epoch_seconds(now),
    )


class StatusSnapshotRefresher:
    """Recompute the snapshot every ``interval_s`` seconds on the event loop."""

    def __init__(
        self,
        store: ProcessStore,
        *,
        interval_s: float,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.interval_s = interval_s
        self.clock = clock
        self.latest: StatusSnapshot | None = None
        self._task: asyncio.Task[None] | None = None

    def refresh(self) -> StatusSnapshot:
        snapshot = collect_status_snapshot(self.store, self.clock)
        self.latest = snapshot
        logger.debug(
            "status_snapshot event=refreshed active=%s completed=%s failed=%s overdue=%s",
            snapshot.active,
            snapshot.completed,
            snapshot.failed,
            snapshot.overdue,
        )
        return snapshot

    async def run(self) -> None:
        while True:
            try:
                await asyncio.to_thread(self.refresh)
            except StoreUnavailableError as exc:
                logger.warning("status_snapshot event=refresh_failed error=%s", exc)
            except Exception:
                logger.exception("status_snapshot event=refresh_crashed")
            await asyncio.sleep(self.interval_s)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name="status-snapshot-refresher")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
