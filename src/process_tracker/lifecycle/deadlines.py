"""Read-time derivation of deadline status and duration.

Nothing here is persisted: every read recomputes against the caller's ``now``
so ACTIVE processes age without a background updater.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

from process_tracker.lifecycle.models import DeadlineStatus
from process_tracker.storage.models import ProcessRecord

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def epoch_seconds(value: datetime) -> int:
    return int(value.timestamp())


def from_epoch_seconds(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=UTC)


def deadline_status(record: ProcessRecord, now: datetime) -> DeadlineStatus | None:
    """Classify a process against its deadline.

    FAILED processes get no status, matching COMPLETED only when a completion
    timestamp exists.
    """
    if record.deadline is None:
        return None
    if record.status == "ACTIVE":
        return "MISSED" if now > record.deadline else "ON_TRACK"
    if record.status == "COMPLETED" and record.completed_at is not None:
        if record.completed_at <= record.deadline:
            return "COMPLETED_ON_TIME"
        return "COMPLETED_LATE"
    return None


def duration_seconds(record: ProcessRecord, now: datetime) -> int:
    """Whole seconds from start to completion, or to ``now`` while still running."""
    end = record.completed_at if record.completed_at is not None else now
    return max(0, epoch_seconds(end) - epoch_seconds(record.started_at))


def is_overdue(record: ProcessRecord, now: datetime) -> bool:
    return record.status == "ACTIVE" and record.deadline is not None and now > record.deadline
