"""Pydantic models shared by the lifecycle service, the filter engine and the API.

Timestamps cross the API boundary as integer epoch seconds; inside the
service they are timezone-aware UTC datetimes.
"""

from __future__ import annotations

from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, Field

# Stored lifecycle states. ACTIVE is the only initial state, the others are terminal.
ProcessStatus = Literal["ACTIVE", "COMPLETED", "FAILED"]
TERMINAL_STATUSES: tuple[ProcessStatus, ...] = ("COMPLETED", "FAILED")

# Derived at read time, never persisted.
DeadlineStatus = Literal["ON_TRACK", "MISSED", "COMPLETED_ON_TIME", "COMPLETED_LATE"]

SortField = Literal["started_at", "completed_at", "deadline", "name", "status", "duration"]
SortDirection = Literal["asc", "desc"]

T = TypeVar("T")


class ProcessTag(BaseModel):
    """One ordered key/value label attached to a process."""

    key: str
    value: str


class NewProcessRequest(BaseModel):
    """Request body for POST /processes/{name}.

    Bounds are checked by the service so that direct callers and HTTP callers
    see the same errors.
    """

    id: str
    # Epoch seconds.
    deadline: int | None = None
    tags: list[ProcessTag] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)


class CompleteProcessRequest(BaseModel):
    """Request body for PUT /processes/{name}/{id}/complete."""

    status: ProcessStatus = "COMPLETED"


class ProcessResponse(BaseModel):
    """Client-facing view of a process, including derived fields."""

    id: str
    name: str
    status: ProcessStatus
    deadline_status: DeadlineStatus | None = None
    started_at: int
    completed_at: int | None = None
    deadline: int | None = None
    tags: list[ProcessTag] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)
    duration: int = 0


class PagedResult(BaseModel, Generic[T]):
    data: list[T] = Field(default_factory=list)
    total: int = 0
    limit: int
    offset: int
    has_more: bool = False


class ValidationDetail(BaseModel):
    field: str
    message: str
    rejected_value: Any = None


class ErrorResponse(BaseModel):
    """Uniform error body returned by every exception handler."""

    error: str
    message: str
    timestamp: int
    path: str
    details: list[ValidationDetail] | None = None


class StatusSnapshot(BaseModel):
    """Point-in-time counts used by the stats endpoint and the refresher task."""

    active: int = 0
    completed: int = 0
    failed: int = 0
    overdue: int = 0
    generated_at: int
