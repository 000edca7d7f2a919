from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from process_tracker.api.main import create_app
from process_tracker.config.settings import Settings
from process_tracker.lifecycle.service import ProcessService
from process_tracker.storage.memory import InMemoryProcessStore

T0 = datetime(2025, 3, 1, 12, 0, 0, tzinfo=UTC)


class FrozenClock:
    """Test clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now

    @property
    def epoch(self) -> int:
        return int(self.now.timestamp())


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store() -> InMemoryProcessStore:
    return InMemoryProcessStore()


@pytest.fixture
def service(store: InMemoryProcessStore, clock: FrozenClock) -> ProcessService:
    return ProcessService(store, clock=clock)


@pytest.fixture
def client(store: InMemoryProcessStore, clock: FrozenClock) -> TestClient:
    app = create_app(
        storage=store,
        settings_override=Settings(storage_backend="memory", snapshot_interval_s=0),
        clock=clock,
    )
    return TestClient(app)
