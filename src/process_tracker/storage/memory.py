"""In-memory storage backend for tests and local runs."""

from __future__ import annotations

import threading
from datetime import datetime

from process_tracker.lifecycle.models import ProcessStatus
from process_tracker.storage.base import ActiveProcessConflict
from process_tracker.storage.models import ProcessDraft, ProcessRecord


class InMemoryProcessStore:
    """Dict-backed store; one lock makes each operation atomic."""

    def __init__(self) -> None:
        self._records: dict[int, ProcessRecord] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def migrate(self) -> None:
        return None

    def ping(self) -> None:
        return None

    def insert_process(self, draft: ProcessDraft) -> ProcessRecord:
        with self._lock:
            for existing in self._records.values():
                if (
                    existing.status == "ACTIVE"
                    and existing.name == draft.name
                    and existing.process_id == draft.process_id
                ):
                    raise ActiveProcessConflict(draft.name, draft.process_id)
            record = ProcessRecord(internal_id=self._next_id, **draft.model_dump())
            self._next_id += 1
            self._records[record.internal_id] = record
            return record.model_copy(deep=True)

    def find_process(self, name: str, process_id: str) -> ProcessRecord | None:
        with self._lock:
            matches = [
                record
                for record in self._records.values()
                if record.name == name and record.process_id == process_id
            ]
        if not matches:
            return None
        latest = max(matches, key=lambda record: (record.started_at, record.internal_id))
        return latest.model_copy(deep=True)

    def update_process(
        self,
        internal_id: int,
        *,
        status: ProcessStatus,
        completed_at: datetime,
    ) -> ProcessRecord | None:
        with self._lock:
            current = self._records.get(internal_id)
            if current is None:
                raise KeyError(f"Process {internal_id} does not exist")
            if current.status != "ACTIVE":
                return None
            updated = current.model_copy(update={"status": status, "completed_at": completed_at})
            self._records[internal_id] = updated
            return updated.model_copy(deep=True)

    def find_processes(
        self,
        *,
        name: str | None = None,
        process_id: str | None = None,
        status: ProcessStatus | None = None,
    ) -> list[ProcessRecord]:
        with self._lock:
            snapshot = list(self._records.values())
        output: list[ProcessRecord] = []
        for record in snapshot:
            if name is not None and record.name != name:
                continue
            if process_id is not None and record.process_id != process_id:
                continue
            if status is not None and record.status != status:
                continue
            output.append(record.model_copy(deep=True))
        # Same default order as the SQL backend: newest first.
        output.sort(key=lambda record: (record.started_at, record.internal_id), reverse=True)
        return output

    def count_by_status(self, status: ProcessStatus) -> int:
        with self._lock:
            return sum(1 for record in self._records.values() if record.status == status)
