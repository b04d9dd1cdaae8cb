"""
Shared fixtures: an in-memory store, a controllable clock, services wired to
both, and a TestClient whose store dependency is overridden.
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from resetai.models.domain.context import ContextCapture
from resetai.services.context_service import ContextService
from resetai.services.neuroflow_service import NeuroFlowService
from resetai.services.session_service import SessionService
from resetai.store.memory_store import InMemoryStore

T0 = datetime(2024, 3, 5, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_row(
    context_id: str,
    *,
    user_id: str = "user-1",
    url: str = "https://example.com/page",
    normalized_url: str = None,
    type: str = "tab",
    title: str = "Page",
    status: str = "active",
    captured_at: datetime = T0,
    last_visited: datetime = None,
) -> dict:
    """A stored-context dict, for seeding the store directly."""
    intent = ContextCapture(
        user_id=user_id,
        type=type,
        url=url,
        normalized_url=url.lower() if normalized_url is None else normalized_url,
        title=title,
    )
    row = intent.to_new_row(context_id=context_id, now=captured_at)
    row["status"] = status
    row["last_visited"] = last_visited or captured_at
    return row


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def context_service(store, clock):
    return ContextService(store, clock=clock)


@pytest.fixture
def session_service(store, clock):
    return SessionService(store, clock=clock)


@pytest.fixture
def neuroflow_service(store, clock):
    return NeuroFlowService(store, clock=clock)


@pytest.fixture
def client(store):
    from resetai.main import app
    from resetai.store.provider import get_store

    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
