"""Error taxonomy raised by the lifecycle service and store backends."""

from __future__ import annotations


class ProcessTrackerError(Exception):
    """Base class for every error surfaced to API callers."""

    code = "INTERNAL_SERVER_ERROR"


class ProcessValidationError(ProcessTrackerError):
    """Malformed input. Never retried."""

    code = "VALIDATION_ERROR"


class InvalidArgumentError(ProcessValidationError):
    """Well-formed input that names an operation the lifecycle does not allow."""

    code = "INVALID_ARGUMENT"


class ProcessAlreadyExistsError(ProcessTrackerError):
    code = "PROCESS_ALREADY_EXISTS"

    def __init__(self, name: str, process_id: str) -> None:
        super().__init__(f"Active process already exists: name='{name}', id='{process_id}'")
        self.name = name
        self.process_id = process_id


class ProcessNotFoundError(ProcessTrackerError):
    code = "PROCESS_NOT_FOUND"

    def __init__(self, name: str, process_id: str) -> None:
        super().__init__(f"Process not found: name='{name}', id='{process_id}'")
        self.name = name
        self.process_id = process_id


class ProcessAlreadyCompletedError(ProcessTrackerError):
    code = "PROCESS_ALREADY_COMPLETED"

    def __init__(self, name: str, process_id: str) -> None:
        super().__init__(f"Process already completed: name='{name}', id='{process_id}'")
        self.name = name
        self.process_id = process_id


class StoreUnavailableError(ProcessTrackerError):
    """Transient infrastructure failure reported by a store backend."""

    code = "STORE_UNAVAILABLE"
