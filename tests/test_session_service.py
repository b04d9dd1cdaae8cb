"""
Tests for the session tracker
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from resetai.models.domain.session import SessionStatus
from resetai.services.errors import (
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    StoreError,
)
from resetai.services.session_service import SessionService
from resetai.store.memory_store import InMemoryStore


class TestLifecycle:
    def test_start(self, session_service, clock):
        session_id = session_service.start("user-1")
        session = session_service.get_session(session_id)

        assert session.status is SessionStatus.ACTIVE
        assert session.start_time == clock.now
        assert session.end_time is None
        assert (session.interruptions, session.context_loss_events, session.time_recovered) == (0, 0, 0)

    def test_start_requires_user(self, session_service):
        with pytest.raises(InvalidInputError):
            session_service.start("")

    def test_end(self, session_service, clock):
        session_id = session_service.start("user-1")
        clock.advance(minutes=25)

        ended = session_service.end(session_id)

        assert ended.status is SessionStatus.COMPLETED
        assert ended.end_time == clock.now
        assert ended.duration_ms == 25 * 60_000

    def test_end_twice_rejected(self, session_service):
        session_id = session_service.start("user-1")
        session_service.end(session_id)

        with pytest.raises(InvalidTransitionError):
            session_service.end(session_id)

    def test_end_unknown(self, session_service):
        with pytest.raises(NotFoundError):
            session_service.end("missing")

    def test_end_appends_history(self, session_service):
        session_id = session_service.start("user-1")
        session_service.record_interruption(session_id)
        session_service.end(session_id)

        history = session_service.list_history("user-1")

        assert len(history) == 1
        entry = history[0]
        assert entry["session_id"] == session_id
        assert entry["status"] == "completed"
        assert entry["interruptions"] == 1
        assert entry["archived_at"]

    def test_history_is_a_copy(self, session_service, store):
        session_id = session_service.start("user-1")
        session_service.end(session_id)

        store.get_session(session_id)["status"] = "tampered"
        history = session_service.list_history("user-1")
        history[0]["status"] = "tampered"

        assert session_service.list_history("user-1")[0]["status"] == "completed"

    def test_concurrent_end_completes_once(self, session_service):
        session_id = session_service.start("user-1")

        def end(_):
            try:
                session_service.end(session_id)
                return True
            except InvalidTransitionError:
                return False

        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(end, range(8)))

        assert outcomes.count(True) == 1
        assert len(session_service.list_history("user-1")) == 1

    def test_failed_history_write_leaves_session_active(self, clock):
        class FlakyHistory(InMemoryStore):
            failures = 1

            def _append_history(self, user_id, entry):
                if self.failures:
                    self.failures -= 1
                    raise StoreError("history write timed out")
                super()._append_history(user_id, entry)

        flaky = FlakyHistory()
        svc = SessionService(flaky, clock=clock)
        session_id = svc.start("user-1")

        with pytest.raises(StoreError):
            svc.end(session_id)
        assert svc.get_session(session_id).status is SessionStatus.ACTIVE
        assert svc.list_history("user-1") == []

        assert svc.end(session_id).status is SessionStatus.COMPLETED
        assert [e["session_id"] for e in svc.list_history("user-1")] == [session_id]


class TestCounters:
    def test_increments(self, session_service):
        session_id = session_service.start("user-1")

        session_service.record_interruption(session_id)
        session_service.record_interruption(session_id)
        session_service.record_context_loss(session_id)
        session_service.record_time_recovered(session_id, 30)
        session = session_service.record_time_recovered(session_id, 45)

        assert session.interruptions == 2
        assert session.context_loss_events == 1
        assert session.time_recovered == 75

    def test_negative_rejected(self, session_service):
        session_id = session_service.start("user-1")
        with pytest.raises(InvalidInputError):
            session_service.record_time_recovered(session_id, -10)
        assert session_service.get_session(session_id).time_recovered == 0

    def test_closed_after_end(self, session_service):
        session_id = session_service.start("user-1")
        session_service.record_interruption(session_id)
        session_service.end(session_id)

        with pytest.raises(InvalidTransitionError):
            session_service.record_interruption(session_id)
        assert session_service.get_session(session_id).interruptions == 1

    def test_unknown_session(self, session_service):
        with pytest.raises(NotFoundError):
            session_service.record_context_loss("missing")

    def test_concurrent_increments(self, session_service):
        session_id = session_service.start("user-1")

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda _: session_service.record_interruption(session_id), range(50)))

        assert session_service.get_session(session_id).interruptions == 50


class TestStats:
    def test_empty(self, session_service):
        stats = session_service.get_stats("nobody")

        assert stats.total_sessions == 0
        assert stats.average_session_duration == 0
        assert stats.sessions == []

    def test_totals_and_average(self, session_service, clock):
        first = session_service.start("user-1")
        session_service.record_interruption(first)
        session_service.record_time_recovered(first, 120)
        clock.advance(minutes=30)
        session_service.end(first)

        second = session_service.start("user-1")
        session_service.record_context_loss(second)
        clock.advance(minutes=45)
        session_service.end(second)

        clock.advance(minutes=1)
        session_service.start("user-1")   # still running, excluded from the average

        stats = session_service.get_stats("user-1")

        assert stats.total_sessions == 3
        assert stats.total_interruptions == 1
        assert stats.total_context_loss_events == 1
        assert stats.total_time_recovered == 120
        assert stats.average_session_duration == 38   # 37.5 rounds half-up
        assert stats.sessions[0].status is SessionStatus.ACTIVE

    def test_window_is_last_thirty(self, session_service, clock):
        for _ in range(35):
            session_service.start("user-1")
            clock.advance(minutes=1)

        assert session_service.get_stats("user-1").total_sessions == 30

    def test_other_users_excluded(self, session_service):
        session_service.start("user-1")
        session_service.start("user-2")
        assert session_service.get_stats("user-1").total_sessions == 1
