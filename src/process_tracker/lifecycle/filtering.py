"""Filter, sort and paginate pipeline for process listings.

Processing order is fixed:

1. the store returns candidates matching the pushdown-safe fields
   (name, process_id, status);
2. in-memory criteria that depend on derived or serialized fields run next
   (deadline status, deadline range, running duration, tag);
3. ``total`` is counted on the filtered set;
4. the filtered set is sorted;
5. the sorted set is sliced by offset/limit.

Counting after sorting or slicing would make ``total`` and ``has_more`` lie.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, get_args

from pydantic import BaseModel, Field, field_validator

from process_tracker.lifecycle.deadlines import deadline_status, duration_seconds, epoch_seconds
from process_tracker.lifecycle.models import (
    DeadlineStatus,
    ProcessStatus,
    ProcessTag,
    SortDirection,
    SortField,
)
from process_tracker.storage.models import ProcessRecord

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
MAX_LIMIT = 100
DEFAULT_SORT_FIELD: SortField = "started_at"
DEFAULT_SORT_DIRECTION: SortDirection = "desc"
SORT_FIELDS: tuple[str, ...] = get_args(SortField)


class ProcessFilter(BaseModel):
    """Declarative listing criteria; every field is optional and they are ANDed."""

    name: str | None = None
    process_id: str | None = None
    status: ProcessStatus | None = None
    deadline_status: DeadlineStatus | None = None
    # Exclusive epoch-second bounds on the raw deadline.
    deadline_before: int | None = None
    deadline_after: int | None = None
    running_duration_min: int | None = None
    # Only the first pair is honoured.
    tags: list[ProcessTag] = Field(default_factory=list)
    sort_by: SortField = DEFAULT_SORT_FIELD
    sort_direction: SortDirection = DEFAULT_SORT_DIRECTION


class Pageable(BaseModel):
    """Offset pagination. Out-of-range values are clamped instead of rejected."""

    limit: int = DEFAULT_LIMIT
    offset: int = 0

    @field_validator("limit", mode="before")
    @classmethod
    def _clamp_limit(cls, value: Any) -> int:
        if value is None:
            return DEFAULT_LIMIT
        return min(max(int(value), 1), MAX_LIMIT)

    @field_validator("offset", mode="before")
    @classmethod
    def _clamp_offset(cls, value: Any) -> int:
        if value is None:
            return 0
        return max(int(value), 0)


class Criterion(Protocol):
    def matches(self, record: ProcessRecord, now: datetime) -> bool: ...


@dataclass(frozen=True)
class DeadlineStatusCriterion:
    expected: DeadlineStatus

    def matches(self, record: ProcessRecord, now: datetime) -> bool:
        return deadline_status(record, now) == self.expected


@dataclass(frozen=True)
class DeadlineRangeCriterion:
    before: int | None = None
    after: int | None = None

    def matches(self, record: ProcessRecord, now: datetime) -> bool:
        if record.deadline is None:
            return self.before is None and self.after is None
        deadline = epoch_seconds(record.deadline)
        if self.before is not None and deadline >= self.before:
            return False
        if self.after is not None and deadline <= self.after:
            return False
        return True


@dataclass(frozen=True)
class RunningDurationCriterion:
    """Minimum running time for ACTIVE processes; terminal processes pass through."""

    min_seconds: int

    def matches(self, record: ProcessRecord, now: datetime) -> bool:
        if record.status != "ACTIVE":
            return True
        return duration_seconds(record, now) >= self.min_seconds


@dataclass(frozen=True)
class TagCriterion:
    key: str
    value: str

    def matches(self, record: ProcessRecord, now: datetime) -> bool:
        return any(tag.key == self.key and tag.value == self.value for tag in record.tags)


def build_criteria(process_filter: ProcessFilter) -> list[Criterion]:
    """Translate the derived-field parts of a filter into in-memory criteria."""
    criteria: list[Criterion] = []
    if process_filter.deadline_status is not None:
        criteria.append(DeadlineStatusCriterion(process_filter.deadline_status))
    if process_filter.deadline_before is not None or process_filter.deadline_after is not None:
        criteria.append(
            DeadlineRangeCriterion(
                before=process_filter.deadline_before,
                after=process_filter.deadline_after,
            )
        )
    if process_filter.running_duration_min is not None:
        criteria.append(RunningDurationCriterion(process_filter.running_duration_min))
    if process_filter.tags:
        first = process_filter.tags[0]
        criteria.append(TagCriterion(key=first.key, value=first.value))
    return criteria


def apply_criteria(
    records: Sequence[ProcessRecord],
    criteria: Sequence[Criterion],
    now: datetime,
) -> list[ProcessRecord]:
    if not criteria:
        return list(records)
    return [record for record in records if all(c.matches(record, now) for c in criteria)]


def _sort_key(field: str, now: datetime) -> Callable[[ProcessRecord], Any]:
    if field == "completed_at":
        return lambda record: record.completed_at
    if field == "deadline":
        return lambda record: record.deadline
    if field == "name":
        return lambda record: record.name
    if field == "status":
        return lambda record: record.status
    if field == "duration":
        return lambda record: duration_seconds(record, now)
    return lambda record: record.started_at


def sort_records(
    records: Sequence[ProcessRecord],
    *,
    sort_by: str,
    direction: str,
    now: datetime,
) -> list[ProcessRecord]:
    """Stable single-field sort with missing values always placed last."""
    key = _sort_key(sort_by, now)
    present = [record for record in records if key(record) is not None]
    missing = [record for record in records if key(record) is None]
    present.sort(key=key, reverse=direction == "desc")
    return present + missing


def paginate(records: Sequence[ProcessRecord], pageable: Pageable) -> list[ProcessRecord]:
    start = min(pageable.offset, len(records))
    return list(records[start : start + pageable.limit])


def select_page(
    candidates: Sequence[ProcessRecord],
    process_filter: ProcessFilter,
    pageable: Pageable,
    now: datetime,
) -> tuple[list[ProcessRecord], int]:
    """Run steps 2-5 of the listing pipeline and return (page, total)."""
    filtered = apply_criteria(candidates, build_criteria(process_filter), now)
    total = len(filtered)
    ordered = sort_records(
        filtered,
        sort_by=process_filter.sort_by,
        direction=process_filter.sort_direction,
        now=now,
    )
    page = paginate(ordered, pageable)
    logger.debug(
        "process_listing candidates=%s filtered=%s returned=%s",
        len(candidates),
        total,
        len(page),
    )
    return page, total


def parse_sort_param(raw: str | None) -> tuple[SortField, SortDirection]:
    """Parse ``field[:dir][,...]``; only the first entry counts.

    Empty input gives the default (started_at, desc). A bare field sorts
    ascending, an unknown field falls back to started_at.
    """
    if raw is None or not raw.strip():
        return DEFAULT_SORT_FIELD, DEFAULT_SORT_DIRECTION
    first = raw.split(",")[0].strip()
    field, _, direction = first.partition(":")
    field = field.strip().lower()
    direction = direction.strip().lower() or "asc"
    sort_field: SortField = field if field in SORT_FIELDS else DEFAULT_SORT_FIELD  # type: ignore[assignment]
    sort_direction: SortDirection = "asc" if direction == "asc" else "desc"
    return sort_field, sort_direction


def parse_tags_param(raw: str | None) -> list[ProcessTag]:
    """Parse ``key:value[,...]`` into at most one tag; malformed input means no tag filter."""
    if raw is None or not raw.strip():
        return []
    first = raw.split(",")[0].strip()
    key, separator, value = first.partition(":")
    if not separator:
        logger.warning("process_listing event=ignored_tag_filter raw=%s", raw)
        return []
    return [ProcessTag(key=key.strip(), value=value.strip())]
