"""Storage interface for the process lifecycle."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from process_tracker.lifecycle.models import ProcessStatus
from process_tracker.storage.models import ProcessDraft, ProcessRecord


class ActiveProcessConflict(Exception):
    """Raised by ``insert_process`` when an ACTIVE row already holds (name, process_id)."""

    def __init__(self, name: str, process_id: str) -> None:
        super().__init__(f"active process exists for name={name} process_id={process_id}")
        self.name = name
        self.process_id = process_id


class ProcessStore(Protocol):
    def migrate(self) -> None: ...

    def ping(self) -> None: ...

    def insert_process(self, draft: ProcessDraft) -> ProcessRecord:
        """Insert atomically, raising ActiveProcessConflict on an active duplicate."""
        ...

    def find_process(self, name: str, process_id: str) -> ProcessRecord | None:
        """Return the most recently started row for (name, process_id)."""
        ...

    def update_process(
        self,
        internal_id: int,
        *,
        status: ProcessStatus,
        completed_at: datetime,
    ) -> ProcessRecord | None:
        """Move an ACTIVE row to a terminal state; None when it is no longer ACTIVE."""
        ...

    def find_processes(
        self,
        *,
        name: str | None = None,
        process_id: str | None = None,
        status: ProcessStatus | None = None,
    ) -> list[ProcessRecord]: ...

    def count_by_status(self, status: ProcessStatus) -> int: ...
