"""Storage models shared by the lifecycle service and persistence backends."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from process_tracker.lifecycle.models import ProcessStatus, ProcessTag


class ProcessDraft(BaseModel):
    """A process about to be inserted; the store assigns its identity."""

    name: str
    process_id: str
    status: ProcessStatus = "ACTIVE"
    started_at: datetime
    deadline: datetime | None = None
    tags: list[ProcessTag] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)


class ProcessRecord(ProcessDraft):
    """Persisted process row."""

    internal_id: int
    completed_at: datetime | None = None
