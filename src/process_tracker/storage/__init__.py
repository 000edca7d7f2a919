"""Storage backends and models."""

from process_tracker.storage.base import ActiveProcessConflict, ProcessStore
from process_tracker.storage.memory import InMemoryProcessStore
from process_tracker.storage.models import ProcessDraft, ProcessRecord
from process_tracker.storage.postgres import PostgresProcessStore

__all__ = [
    "ActiveProcessConflict",
    "InMemoryProcessStore",
    "PostgresProcessStore",
    "ProcessDraft",
    "ProcessRecord",
    "ProcessStore",
]
