"""
Tests for context capture, deduplication and lifecycle

Covers:
- create vs. revisit on the normalized URL key
- one live context per key under concurrent captures
- enrichment as a separate, failure-tolerant phase
- update / list / recover / archive semantics
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from resetai.models.domain.context import ContextRow, ContextStatus
from resetai.services.context_service import ContextService
from resetai.services.errors import (
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    StoreError,
)
from resetai.store.memory_store import InMemoryStore

from conftest import make_row

PR_URL = "https://github.com/acme/widgets/pull/42"


def _capture(svc, url=PR_URL, user_id="user-1", **kwargs):
    return svc.capture(user_id=user_id, type=kwargs.pop("type", "code"), url=url, title="PR", **kwargs)


class TestCapture:
    """Create-or-revisit"""

    def test_first_capture_creates(self, context_service, store, clock):
        result = _capture(context_service)

        assert result.was_update is False
        assert result.needs_enrichment
        row = store.get_context(result.context_id)
        assert row["visit_count"] == 1
        assert row["status"] == "active"
        assert row["normalized_url"] == PR_URL
        assert row["captured_at"] == clock.now
        assert row["summary"] == ""

    def test_same_key_revisits(self, context_service, store, clock):
        first = _capture(context_service, scroll_position=10, duration_ms=1000)
        clock.advance(minutes=5)
        second = _capture(
            context_service,
            url="HTTPS://GitHub.com/acme/widgets/pull/42/?tab=files#diff",
            scroll_position=250,
            selected_text="def handler():",
            duration_ms=4000,
        )

        assert second.was_update is True
        assert second.context_id == first.context_id
        row = store.get_context(first.context_id)
        assert row["visit_count"] == 2
        assert row["scroll_position"] == 250
        assert row["selected_text"] == "def handler():"
        assert row["total_duration"] == 5000
        assert row["last_visited"] == clock.now
        assert len(store.query_contexts(user_id="user-1")) == 1

    def test_keys_are_per_user(self, context_service, store):
        a = _capture(context_service, user_id="alice")
        b = _capture(context_service, user_id="bob")

        assert a.context_id != b.context_id
        assert not b.was_update

    def test_empty_url_never_deduplicates(self, context_service, store):
        a = context_service.capture(user_id="user-1", type="note", url="", title="Scratch")
        b = context_service.capture(user_id="user-1", type="note", url=None, title="Scratch")

        assert a.context_id != b.context_id
        assert not a.was_update and not b.was_update

    def test_revisit_reactivates_recovered(self, context_service, store):
        first = _capture(context_service)
        context_service.mark_recovered(first.context_id)

        again = _capture(context_service)

        assert again.context_id == first.context_id
        assert store.get_context(first.context_id)["status"] == "active"

    def test_archived_context_is_not_revisited(self, context_service, store):
        first = _capture(context_service)
        context_service.archive(first.context_id)

        again = _capture(context_service)

        assert again.context_id != first.context_id
        assert again.was_update is False
        assert store.get_context(first.context_id)["status"] == "archived"

    def test_selected_text_truncated(self, context_service, store):
        result = _capture(context_service, selected_text="x" * 800)
        assert len(store.get_context(result.context_id)["selected_text"]) == 500

    def test_defaults(self, context_service, store):
        result = context_service.capture(user_id="user-1", url="https://example.com")
        row = store.get_context(result.context_id)
        assert row["type"] == "tab"
        assert row["title"] == "Untitled"
        assert row["page_metadata"] == {}

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"user_id": ""},
            {"user_id": "user-1", "type": "podcast"},
            {"user_id": "user-1", "scroll_position": -1},
            {"user_id": "user-1", "duration_ms": -5},
            {"user_id": "user-1", "page_metadata": ["not", "a", "dict"]},
        ],
    )
    def test_invalid_input_writes_nothing(self, context_service, store, kwargs):
        with pytest.raises(InvalidInputError):
            context_service.capture(url=PR_URL, **kwargs)
        assert store.query_contexts(user_id="user-1") == []


class TestConcurrentCapture:
    """One live context per (user, key) no matter how captures interleave"""

    def test_parallel_captures_collapse(self, context_service, store):
        n = 40
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: _capture(context_service), range(n)))

        ids = {r.context_id for r in results}
        assert len(ids) == 1
        assert sum(1 for r in results if not r.was_update) == 1

        live = store.query_contexts(user_id="user-1", include_archived=False)
        assert len(live) == 1
        assert live[0]["visit_count"] == n

    def test_visit_count_never_decreases(self, context_service, store):
        first = _capture(context_service)
        seen = []

        def capture_and_read(_):
            _capture(context_service)
            seen.append(store.get_context(first.context_id)["visit_count"])

        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(capture_and_read, range(20)))

        assert max(seen) == 21
        assert store.get_context(first.context_id)["visit_count"] == 21


class TestEnrich:
    def test_populates_summary(self, context_service, store):
        result = _capture(context_service)

        assert context_service.enrich(result.context_id) is True
        row = store.get_context(result.context_id)
        assert row["summary"] == "Reviewing a pull request in acme/widgets"
        assert "Repository: widgets" in row["key_points"]
        assert row["next_steps"] == ["Complete code review"]

    def test_idempotent(self, context_service, store):
        result = _capture(context_service)
        context_service.enrich(result.context_id)
        store.update_context_fields(result.context_id, {"summary": "kept"})

        assert context_service.enrich(result.context_id) is True
        assert store.get_context(result.context_id)["summary"] == "kept"

    def test_missing_context(self, context_service):
        assert context_service.enrich("nope") is False

    def test_store_failure_does_not_raise(self, clock):
        class FailingStore(InMemoryStore):
            def update_context_fields(self, context_id, patch):
                raise StoreError("write timed out")

        failing = FailingStore()
        svc = ContextService(failing, clock=clock)
        result = _capture(svc)

        assert svc.enrich(result.context_id) is False
        # the capture itself is untouched
        assert failing.get_context(result.context_id)["visit_count"] == 1


class TestUpdateActivity:
    def test_revisits_by_key(self, context_service, store, clock):
        first = _capture(context_service)
        clock.advance(seconds=30)

        context_id = context_service.update_activity(
            user_id="user-1", normalized_url=PR_URL, scroll_position=900, duration_ms=30000,
        )

        assert context_id == first.context_id
        row = store.get_context(context_id)
        assert row["visit_count"] == 2
        assert row["scroll_position"] == 900
        assert row["total_duration"] == 30000
        assert row["last_visited"] == clock.now

    def test_keeps_scroll_when_not_sent(self, context_service, store):
        first = _capture(context_service, scroll_position=120)
        context_service.update_activity(user_id="user-1", normalized_url=PR_URL)
        assert store.get_context(first.context_id)["scroll_position"] == 120

    def test_does_not_reactivate_recovered(self, context_service, store):
        first = _capture(context_service)
        context_service.mark_recovered(first.context_id)

        context_service.update_activity(user_id="user-1", normalized_url=PR_URL)

        assert store.get_context(first.context_id)["status"] == "recovered"

    def test_unknown_key(self, context_service):
        with pytest.raises(NotFoundError):
            context_service.update_activity(user_id="user-1", normalized_url="https://nowhere.example")

    def test_archived_key_is_not_found(self, context_service):
        first = _capture(context_service)
        context_service.archive(first.context_id)
        with pytest.raises(NotFoundError):
            context_service.update_activity(user_id="user-1", normalized_url=PR_URL)

    def test_empty_key(self, context_service):
        with pytest.raises(InvalidInputError):
            context_service.update_activity(user_id="user-1", normalized_url="")


class TestListing:
    def test_active_sorted_by_last_visit(self, context_service, clock):
        a = _capture(context_service, url="https://a.example/1")
        clock.advance(minutes=1)
        b = _capture(context_service, url="https://b.example/1")
        clock.advance(minutes=1)
        _capture(context_service, url="https://a.example/1")   # a becomes newest

        contexts = context_service.list_active("user-1")

        assert [c.id for c in contexts] == [a.context_id, b.context_id]
        assert all(isinstance(c, ContextRow) for c in contexts)

    def test_active_excludes_archived(self, context_service):
        a = _capture(context_service, url="https://a.example/1")
        _capture(context_service, url="https://b.example/1")
        context_service.archive(a.context_id)

        assert [c.url for c in context_service.list_active("user-1")] == ["https://b.example/1"]

    def test_active_collapses_legacy_duplicates(self, context_service, store, clock):
        older = clock.now
        newer = clock.advance(minutes=10)
        store.insert_context(make_row("old", url="https://dup.example", last_visited=older))
        store.insert_context(make_row("new", url="https://dup.example", last_visited=newer))
        store.insert_context(make_row("other", url="https://other.example", last_visited=older))

        contexts = context_service.list_active("user-1")

        assert [c.id for c in contexts] == ["new", "other"]

    def test_active_limit(self, context_service, clock):
        for i in range(6):
            _capture(context_service, url=f"https://example.com/{i}")
            clock.advance(seconds=1)

        contexts = context_service.list_active("user-1", limit=3)

        assert [c.url for c in contexts] == [f"https://example.com/{i}" for i in (5, 4, 3)]

    def test_history_includes_archived(self, context_service, clock):
        a = _capture(context_service, url="https://a.example/1")
        clock.advance(minutes=1)
        b = _capture(context_service, url="https://b.example/1")
        context_service.archive(a.context_id)

        history = context_service.list_history("user-1")

        assert [c.id for c in history] == [b.context_id, a.context_id]
        assert history[1].is_archived

    def test_invalid_limit(self, context_service):
        with pytest.raises(InvalidInputError):
            context_service.list_active("user-1", limit=0)

    def test_get_context_checks_owner(self, context_service):
        result = _capture(context_service)
        assert context_service.get_context(result.context_id, "user-1").id == result.context_id
        with pytest.raises(NotFoundError):
            context_service.get_context(result.context_id, "someone-else")


class TestTransitions:
    def test_mark_recovered(self, context_service, store, clock):
        result = _capture(context_service)

        context = context_service.mark_recovered(result.context_id, "user-1")

        assert context.status is ContextStatus.RECOVERED
        assert context.is_recovered
        assert context.recovered_at == clock.now
        user = store.get_user("user-1")
        assert user["total_recoveries"] == 1
        assert user["last_recovery"] == clock.now

    def test_mark_recovered_twice_counts_once(self, context_service, store):
        result = _capture(context_service)
        context_service.mark_recovered(result.context_id)
        again = context_service.mark_recovered(result.context_id)

        assert again.is_recovered
        assert store.get_user("user-1")["total_recoveries"] == 1

    def test_concurrent_recover_counts_once(self, context_service, store):
        result = _capture(context_service)

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda _: context_service.mark_recovered(result.context_id), range(16)))

        assert store.get_user("user-1")["total_recoveries"] == 1

    def test_failed_stats_write_leaves_context_for_retry(self, clock):
        class FlakyUsers(InMemoryStore):
            failures = 1

            def _bump_recovery(self, user_id, at):
                if self.failures:
                    self.failures -= 1
                    raise StoreError("users write timed out")
                return super()._bump_recovery(user_id, at)

        flaky = FlakyUsers()
        svc = ContextService(flaky, clock=clock)
        result = _capture(svc)

        with pytest.raises(StoreError):
            svc.mark_recovered(result.context_id)
        assert flaky.get_context(result.context_id)["status"] == "active"
        assert flaky.get_user("user-1") is None

        assert svc.mark_recovered(result.context_id).is_recovered
        assert flaky.get_user("user-1")["total_recoveries"] == 1

    def test_recover_archived_rejected(self, context_service, store):
        result = _capture(context_service)
        context_service.archive(result.context_id)

        with pytest.raises(InvalidTransitionError):
            context_service.mark_recovered(result.context_id)
        assert store.get_user("user-1") is None

    def test_recover_wrong_owner(self, context_service):
        result = _capture(context_service)
        with pytest.raises(NotFoundError):
            context_service.mark_recovered(result.context_id, "intruder")

    def test_recover_unknown(self, context_service):
        with pytest.raises(NotFoundError):
            context_service.mark_recovered("missing")

    def test_archive_is_terminal(self, context_service, clock):
        result = _capture(context_service)
        context_service.mark_recovered(result.context_id)

        archived = context_service.archive(result.context_id)
        again = context_service.archive(result.context_id)

        assert archived.is_archived and not archived.is_recovered
        assert archived.archived_at == clock.now
        assert again.status is ContextStatus.ARCHIVED

    def test_transition_table(self):
        assert ContextStatus.ACTIVE.can_become(ContextStatus.RECOVERED)
        assert ContextStatus.RECOVERED.can_become(ContextStatus.ACTIVE)
        assert not ContextStatus.ARCHIVED.can_become(ContextStatus.ACTIVE)
        assert ContextStatus.sources_of(ContextStatus.ARCHIVED) == {
            ContextStatus.ACTIVE,
            ContextStatus.RECOVERED,
        }
