"""Process lifecycle service: create, get, complete and list.

Beginner terms used in this file:
- Clock: a zero-argument callable returning "now". Injected so tests can
  freeze time instead of reading the wall clock.
- Draft: a process that has not been stored yet and has no internal id.
- Pushdown: filters the store can evaluate itself (name, id, status).
"""

from __future__ import annotations

import logging
import re
from datetime import datetime

from process_tracker.lifecycle.deadlines import (
    Clock,
    deadline_status,
    duration_seconds,
    epoch_seconds,
    from_epoch_seconds,
    utc_now,
)
from process_tracker.lifecycle.errors import (
    InvalidArgumentError,
    ProcessAlreadyCompletedError,
    ProcessAlreadyExistsError,
    ProcessNotFoundError,
    ProcessValidationError,
)
from process_tracker.lifecycle.filtering import Pageable, ProcessFilter, select_page
from process_tracker.lifecycle.models import (
    NewProcessRequest,
    PagedResult,
    ProcessResponse,
    ProcessStatus,
    TERMINAL_STATUSES,
)
from process_tracker.storage.base import ActiveProcessConflict, ProcessStore
from process_tracker.storage.models import ProcessDraft, ProcessRecord

logger = logging.getLogger(__name__)

NAME_PATTERN = re.compile(r"[A-Za-z0-9_-]+")
MAX_NAME_LENGTH = 100
MAX_PROCESS_ID_LENGTH = 50
MAX_TAGS = 20
MAX_TAG_KEY_LENGTH = 50
MAX_TAG_VALUE_LENGTH = 100
DEFAULT_DEADLINE_SKEW_S = 60


class ProcessService:
    """Coordinates the store and the read-time calculators."""

    def __init__(
        self,
        store: ProcessStore,
        *,
        clock: Clock = utc_now,
        deadline_skew_s: int = DEFAULT_DEADLINE_SKEW_S,
    ) -> None:
        self.store = store
        self.clock = clock
        self.deadline_skew_s = deadline_skew_s

    def create_process(self, name: str, request: NewProcessRequest) -> ProcessResponse:
        """Register a new ACTIVE process.

        Uniqueness among ACTIVE processes is enforced by the store's atomic
        insert, so concurrent creators of the same (name, id) see exactly one
        success.
        """
        now = self.clock()
        self._validate_create(name, request, now_epoch=epoch_seconds(now))

        deadline = from_epoch_seconds(request.deadline) if request.deadline is not None else None
        draft = ProcessDraft(
            name=name,
            process_id=request.id,
            status="ACTIVE",
            started_at=now,
            deadline=deadline,
            tags=list(request.tags),
            context=dict(request.context),
        )
        try:
            record = self.store.insert_process(draft)
        except ActiveProcessConflict as exc:
            logger.info("process_create event=conflict name=%s id=%s", name, request.id)
            raise ProcessAlreadyExistsError(name, request.id) from exc

        logger.info(
            "process_create event=created name=%s id=%s internal_id=%s deadline=%s",
            name,
            request.id,
            record.internal_id,
            request.deadline,
        )
        return self.to_response(record)

    def get_process(self, name: str, process_id: str) -> ProcessResponse:
        self._validate_identity(name, process_id)
        record = self.store.find_process(name, process_id)
        if record is None:
            raise ProcessNotFoundError(name, process_id)
        return self.to_response(record)

    def complete_process(
        self,
        name: str,
        process_id: str,
        status: ProcessStatus = "COMPLETED",
    ) -> ProcessResponse:
        """Move an ACTIVE process to COMPLETED or FAILED, exactly once."""
        if status not in TERMINAL_STATUSES:
            raise InvalidArgumentError(f"Cannot complete process with {status} status")
        self._validate_identity(name, process_id)

        record = self.store.find_process(name, process_id)
        if record is None:
            raise ProcessNotFoundError(name, process_id)
        if record.status != "ACTIVE":
            raise ProcessAlreadyCompletedError(name, process_id)

        completed_at = self.clock()
        updated = self.store.update_process(
            record.internal_id,
            status=status,
            completed_at=completed_at,
        )
        if updated is None:
            # Another caller completed it between our read and write.
            raise ProcessAlreadyCompletedError(name, process_id)

        logger.info(
            "process_complete event=completed name=%s id=%s status=%s duration_s=%s",
            name,
            process_id,
            status,
            duration_seconds(updated, completed_at),
        )
        return self.to_response(updated, now=completed_at)

    def list_processes(
        self,
        process_filter: ProcessFilter | None = None,
        pageable: Pageable | None = None,
    ) -> PagedResult[ProcessResponse]:
        process_filter = process_filter or ProcessFilter()
        pageable = pageable or Pageable()
        now = self.clock()

        candidates = self.store.find_processes(
            name=process_filter.name,
            process_id=process_filter.process_id,
            status=process_filter.status,
        )
        page, total = select_page(candidates, process_filter, pageable, now)
        data = [self.to_response(record, now=now) for record in page]
        logger.info(
            "process_list event=listed returned=%s total=%s limit=%s offset=%s",
            len(data),
            total,
            pageable.limit,
            pageable.offset,
        )
        return PagedResult[ProcessResponse](
            data=data,
            total=total,
            limit=pageable.limit,
            offset=pageable.offset,
            has_more=(pageable.offset + len(data)) < total,
        )

    def to_response(
        self, record: ProcessRecord, *, now: datetime | None = None
    ) -> ProcessResponse:
        """Map a stored record to the client view, deriving time-based fields."""
        now = now or self.clock()
        return ProcessResponse(
            id=record.process_id,
            name=record.name,
            status=record.status,
            deadline_status=deadline_status(record, now),
            started_at=epoch_seconds(record.started_at),
            completed_at=epoch_seconds(record.completed_at) if record.completed_at else None,
            deadline=epoch_seconds(record.deadline) if record.deadline else None,
            tags=[tag.model_copy() for tag in record.tags],
            context=dict(record.context),
            duration=duration_seconds(record, now),
        )

    def _validate_identity(self, name: str, process_id: str) -> None:
        if not name or not name.strip():
            raise ProcessValidationError("Process name cannot be null or empty")
        if len(name) > MAX_NAME_LENGTH:
            raise ProcessValidationError(
                f"Process name cannot exceed {MAX_NAME_LENGTH} characters"
            )
        if not NAME_PATTERN.fullmatch(name):
            raise ProcessValidationError(
                "Process name can only contain letters, numbers, underscores, and hyphens"
            )
        if not process_id or not process_id.strip():
            raise ProcessValidationError("Process ID cannot be null or empty")
        if len(process_id) > MAX_PROCESS_ID_LENGTH:
            raise ProcessValidationError(
                f"Process ID cannot exceed {MAX_PROCESS_ID_LENGTH} characters"
            )

    def _validate_create(self, name: str, request: NewProcessRequest, *, now_epoch: int) -> None:
        self._validate_identity(name, request.id)

        if request.deadline is not None:
            if request.deadline <= 0:
                raise ProcessValidationError("Deadline must be a positive timestamp")
            if request.deadline < now_epoch - self.deadline_skew_s:
                raise ProcessValidationError("Deadline cannot be in the past")
            try:
                from_epoch_seconds(request.deadline)
            except (ValueError, OverflowError, OSError) as exc:
                raise ProcessValidationError("Deadline is out of range") from exc

        if len(request.tags) > MAX_TAGS:
            raise ProcessValidationError(f"Cannot have more than {MAX_TAGS} tags per process")
        for tag in request.tags:
            if not tag.key.strip():
                raise ProcessValidationError("Tag key cannot be null or empty")
            if not tag.value.strip():
                raise ProcessValidationError("Tag value cannot be null or empty")
            if len(tag.key) > MAX_TAG_KEY_LENGTH:
                raise ProcessValidationError(
                    f"Tag key cannot exceed {MAX_TAG_KEY_LENGTH} characters"
                )
            if len(tag.value) > MAX_TAG_VALUE_LENGTH:
                raise ProcessValidationError(
                    f"Tag value cannot exceed {MAX_TAG_VALUE_LENGTH} characters"
                )
