"""
Tests for the Supabase-backed store against a fake client (no network)
"""

import uuid

import pytest

from resetai.services.context_service import ContextService
from resetai.services.errors import NotFoundError
from resetai.services.session_service import SessionService
from resetai.store.supabase_store import SupabaseStore

from conftest import T0


class _Query:
    """Stands in for a PostgREST builder: every filter returns itself."""

    def __init__(self, data):
        self.data = data

    def __getattr__(self, name):
        return lambda *args, **kwargs: self

    def execute(self):
        return self


class FakeSupabase:
    def __init__(self, data=None):
        self.data = data
        self.calls = []

    def table(self, name):
        self.calls.append(("table", name))
        return _Query(self.data)

    def rpc(self, name, params):
        self.calls.append(("rpc", name, params))
        return _Query(self.data)


class TestIdsThatCannotMatch:
    """ids that are not UUIDs are misses, and never reach Postgres"""

    @pytest.fixture
    def client(self):
        return FakeSupabase(data=[{"id": "should-not-be-returned"}])

    @pytest.fixture
    def store(self, client):
        return SupabaseStore(client)

    def test_lookups_return_none(self, store, client):
        assert store.get_context("nope") is None
        assert store.get_session("abc") is None
        assert store.update_context_fields("nope", {"summary": "x"}) is None
        assert store.transition_context("nope", from_statuses=["active"], patch={}) is None
        assert store.recover_context("nope", from_statuses=["active"], at=T0) is None
        assert store.complete_session("abc", end_time=T0) is None
        assert (
            store.increment_session_counter(
                "abc", field="interruptions", amount=1, only_status="active"
            )
            is None
        )
        assert client.calls == []

    def test_services_report_not_found(self, store):
        with pytest.raises(NotFoundError):
            ContextService(store).get_context("nope")
        with pytest.raises(NotFoundError):
            SessionService(store).end("abc")
        with pytest.raises(NotFoundError):
            SessionService(store).record_interruption("abc")


class TestRpcResults:
    def test_recover_context_unpacks_row_and_user(self):
        context_id = str(uuid.uuid4())
        client = FakeSupabase(
            data={
                "row": {"id": context_id, "user_id": "user-1", "status": "recovered"},
                "user": {"id": "user-1", "total_recoveries": 3},
            }
        )

        row, user = SupabaseStore(client).recover_context(
            context_id, from_statuses=["active"], at=T0
        )

        assert row["status"] == "recovered"
        assert user["total_recoveries"] == 3
        name, params = client.calls[0][1], client.calls[0][2]
        assert name == "recover_context"
        assert params == {
            "p_context_id": context_id,
            "p_from_statuses": ["active"],
            "p_at": T0.isoformat(),
        }

    def test_recover_context_no_match(self):
        store = SupabaseStore(FakeSupabase(data=None))
        assert store.recover_context(str(uuid.uuid4()), from_statuses=["active"], at=T0) is None

    def test_complete_session(self):
        session_id = str(uuid.uuid4())
        client = FakeSupabase(data={"id": session_id, "user_id": "user-1", "status": "completed"})

        row = SupabaseStore(client).complete_session(session_id, end_time=T0)

        assert row["status"] == "completed"
        assert client.calls[0][1] == "complete_session"

    def test_complete_session_not_active(self):
        store = SupabaseStore(FakeSupabase(data=None))
        assert store.complete_session(str(uuid.uuid4()), end_time=T0) is None

    def test_get_context_with_uuid_queries(self):
        context_id = str(uuid.uuid4())
        client = FakeSupabase(data=[{"id": context_id}])

        assert SupabaseStore(client).get_context(context_id) == {"id": context_id}
        assert client.calls == [("table", "contexts")]
