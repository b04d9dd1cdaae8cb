"""
In-process store for local development and tests.

A single re-entrant lock plays the role of the database transaction: every
public method runs entirely inside it, so each call is one atomic
read-modify-write. Rows are deep-copied on the way in and out so callers can
never mutate stored state behind the store's back.
"""
from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime
from typing import Any, Collection, Dict, List, Optional, Tuple

from resetai.store.base import ContextStore, JsonDict, Revisit, jsonable

logger = logging.getLogger(__name__)

_ARCHIVED = "archived"
_RECOVERED = "recovered"
_ACTIVE = "active"
_COMPLETED = "completed"


def _apply_revisit(row: JsonDict, revisit: Revisit) -> None:
    row["visit_count"] = int(row.get("visit_count") or 0) + 1
    row["total_duration"] = int(row.get("total_duration") or 0) + max(0, revisit.duration_ms)
    row["last_visited"] = revisit.visited_at
    if revisit.scroll_position is not None:
        row["scroll_position"] = revisit.scroll_position
    if revisit.selected_text is not None:
        row["selected_text"] = revisit.selected_text
    if revisit.reactivate and row.get("status") == _RECOVERED:
        row["status"] = _ACTIVE


def _sort_key(row: JsonDict, column: str) -> Any:
    value = row.get(column)
    # rows with no timestamp sink to the end of a newest-first listing
    return (1, value) if value is not None else (0, 0)


class InMemoryStore(ContextStore):
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._contexts: Dict[str, JsonDict] = {}
        self._sessions: Dict[str, JsonDict] = {}
        self._users: Dict[str, JsonDict] = {}
        self._history: Dict[str, List[JsonDict]] = {}

    # ── Contexts ──────────────────────────────────────────────────────────────

    def _find_active(self, user_id: str, normalized_url: str) -> Optional[JsonDict]:
        for row in self._contexts.values():
            if (
                row["user_id"] == user_id
                and row.get("normalized_url") == normalized_url
                and row.get("status") != _ARCHIVED
            ):
                return row
        return None

    def capture_context(self, new_row: JsonDict, revisit: Revisit) -> Tuple[JsonDict, bool]:
        key = new_row.get("normalized_url") or ""
        if not key:
            raise ValueError("capture_context requires a non-empty normalized_url")
        with self._lock:
            existing = self._find_active(new_row["user_id"], key)
            if existing is not None:
                _apply_revisit(existing, revisit)
                return copy.deepcopy(existing), True
            row = copy.deepcopy(new_row)
            self._contexts[row["id"]] = row
            return copy.deepcopy(row), False

    def insert_context(self, row: JsonDict) -> JsonDict:
        with self._lock:
            if row["id"] in self._contexts:
                raise ValueError(f"Context '{row['id']}' already exists")
            self._contexts[row["id"]] = copy.deepcopy(row)
            return copy.deepcopy(row)

    def get_context(self, context_id: str) -> Optional[JsonDict]:
        with self._lock:
            row = self._contexts.get(context_id)
            return copy.deepcopy(row) if row is not None else None

    def revisit_context(
        self,
        *,
        user_id: str,
        normalized_url: str,
        revisit: Revisit,
    ) -> Optional[JsonDict]:
        with self._lock:
            existing = self._find_active(user_id, normalized_url)
            if existing is None:
                return None
            _apply_revisit(existing, revisit)
            return copy.deepcopy(existing)

    def transition_context(
        self,
        context_id: str,
        *,
        from_statuses: Collection[str],
        patch: JsonDict,
    ) -> Optional[JsonDict]:
        with self._lock:
            row = self._contexts.get(context_id)
            if row is None or row.get("status") not in set(from_statuses):
                return None
            row.update(copy.deepcopy(patch))
            return copy.deepcopy(row)

    def recover_context(
        self,
        context_id: str,
        *,
        from_statuses: Collection[str],
        at: datetime,
    ) -> Optional[Tuple[JsonDict, JsonDict]]:
        with self._lock:
            row = self._contexts.get(context_id)
            if row is None or row.get("status") not in set(from_statuses):
                return None
            # the user write goes first so a failure leaves the context untouched
            user = self._bump_recovery(row["user_id"], at)
            row.update({"status": _RECOVERED, "recovered_at": at})
            return copy.deepcopy(row), copy.deepcopy(user)

    def update_context_fields(self, context_id: str, patch: JsonDict) -> Optional[JsonDict]:
        with self._lock:
            row = self._contexts.get(context_id)
            if row is None:
                return None
            row.update(copy.deepcopy(patch))
            return copy.deepcopy(row)

    def query_contexts(
        self,
        *,
        user_id: str,
        include_archived: bool = True,
        captured_from: Optional[datetime] = None,
        captured_to: Optional[datetime] = None,
        order_by: str = "captured_at",
        limit: Optional[int] = None,
    ) -> List[JsonDict]:
        with self._lock:
            rows = [r for r in self._contexts.values() if r["user_id"] == user_id]
            if not include_archived:
                rows = [r for r in rows if r.get("status") != _ARCHIVED]
            if captured_from is not None:
                rows = [r for r in rows if r.get("captured_at") and r["captured_at"] >= captured_from]
            if captured_to is not None:
                rows = [r for r in rows if r.get("captured_at") and r["captured_at"] <= captured_to]
            rows.sort(key=lambda r: _sort_key(r, order_by), reverse=True)
            if limit is not None:
                rows = rows[:limit]
            return copy.deepcopy(rows)

    # ── Sessions ──────────────────────────────────────────────────────────────

    def insert_session(self, row: JsonDict) -> JsonDict:
        with self._lock:
            if row["id"] in self._sessions:
                raise ValueError(f"Session '{row['id']}' already exists")
            self._sessions[row["id"]] = copy.deepcopy(row)
            return copy.deepcopy(row)

    def get_session(self, session_id: str) -> Optional[JsonDict]:
        with self._lock:
            row = self._sessions.get(session_id)
            return copy.deepcopy(row) if row is not None else None

    def complete_session(self, session_id: str, *, end_time: datetime) -> Optional[JsonDict]:
        with self._lock:
            row = self._sessions.get(session_id)
            if row is None or row.get("status") != _ACTIVE:
                return None
            completed = {**row, "status": _COMPLETED, "end_time": end_time}
            entry = jsonable({k: v for k, v in completed.items() if k != "id"})
            entry.update({"session_id": session_id, "archived_at": end_time.isoformat()})
            self._append_history(row["user_id"], entry)
            row.update(status=_COMPLETED, end_time=end_time)
            return copy.deepcopy(row)

    def increment_session_counter(
        self,
        session_id: str,
        *,
        field: str,
        amount: int,
        only_status: str,
    ) -> Optional[JsonDict]:
        with self._lock:
            row = self._sessions.get(session_id)
            if row is None or row.get("status") != only_status:
                return None
            row[field] = int(row.get(field) or 0) + amount
            return copy.deepcopy(row)

    def query_sessions(self, *, user_id: str, limit: int = 30) -> List[JsonDict]:
        with self._lock:
            rows = [r for r in self._sessions.values() if r["user_id"] == user_id]
            rows.sort(key=lambda r: _sort_key(r, "start_time"), reverse=True)
            return copy.deepcopy(rows[:limit])

    # ── Users & history ───────────────────────────────────────────────────────

    def _user(self, user_id: str) -> JsonDict:
        return self._users.setdefault(
            user_id,
            {"id": user_id, "total_recoveries": 0, "last_recovery": None,
             "focus_score": None, "focus_score_at": None},
        )

    def _bump_recovery(self, user_id: str, at: datetime) -> JsonDict:
        user = self._user(user_id)
        user["total_recoveries"] += 1
        user["last_recovery"] = at
        return user

    def set_user_focus_score(self, user_id: str, *, score: int, at: datetime) -> JsonDict:
        with self._lock:
            user = self._user(user_id)
            user["focus_score"] = score
            user["focus_score_at"] = at
            return copy.deepcopy(user)

    def get_user(self, user_id: str) -> Optional[JsonDict]:
        with self._lock:
            user = self._users.get(user_id)
            return copy.deepcopy(user) if user is not None else None

    def _append_history(self, user_id: str, entry: JsonDict) -> None:
        self._history.setdefault(user_id, []).append(entry)
        logger.debug("Appended session %s to history of %s", entry.get("session_id"), user_id)

    def list_session_history(self, user_id: str, *, limit: int = 30) -> List[JsonDict]:
        with self._lock:
            entries = list(reversed(self._history.get(user_id, [])))
            return copy.deepcopy(entries[:limit])
