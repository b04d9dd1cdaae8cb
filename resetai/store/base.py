"""
resetai/store/base.py
---------------------
Abstract transactional document store used by every service.

Rows are plain dicts keyed by snake_case column names, the same shape a
Supabase row has. Every method is a single atomic operation against the
backing store; services never compose a read and a write themselves where
correctness depends on it.

Collections
-----------
  contexts         — one row per captured resource (see ContextRow)
  sessions         — bounded work sessions (see SessionRow)
  users            — external user aggregate; the core only increments/sets stats
  session_history  — immutable copies of completed sessions, per user

Import
------
    from resetai.store.base import ContextStore, Revisit
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Collection, Dict, List, Optional, Tuple

JsonDict = Dict[str, Any]


def jsonable(value: Any) -> Any:
    """Datetimes to ISO strings, recursively; the shape PostgREST sends back."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    return value


@dataclass(frozen=True)
class Revisit:
    """Mutation applied when an existing context is seen again."""

    visited_at: datetime
    duration_ms: int = 0
    scroll_position: Optional[int] = None   # None → leave unchanged
    selected_text: Optional[str] = None     # None → leave unchanged
    reactivate: bool = True                 # recovered → active


class ContextStore(ABC):

    # ── Contexts ──────────────────────────────────────────────────────────────

    @abstractmethod
    def capture_context(self, new_row: JsonDict, revisit: Revisit) -> Tuple[JsonDict, bool]:
        """
        Atomically revisit the unique non-archived context for
        (new_row["user_id"], new_row["normalized_url"]) or insert new_row.

        Returns (row, was_update). new_row["normalized_url"] must be non-empty.
        """

    @abstractmethod
    def insert_context(self, row: JsonDict) -> JsonDict:
        ...

    @abstractmethod
    def get_context(self, context_id: str) -> Optional[JsonDict]:
        ...

    @abstractmethod
    def revisit_context(
        self,
        *,
        user_id: str,
        normalized_url: str,
        revisit: Revisit,
    ) -> Optional[JsonDict]:
        """Atomically apply `revisit` to the active context for the key, or None."""

    @abstractmethod
    def transition_context(
        self,
        context_id: str,
        *,
        from_statuses: Collection[str],
        patch: JsonDict,
    ) -> Optional[JsonDict]:
        """
        Conditional update: apply `patch` only if the row's current status is
        in `from_statuses`. Returns the updated row, or None when the row is
        missing or its status did not match.
        """

    @abstractmethod
    def recover_context(
        self,
        context_id: str,
        *,
        from_statuses: Collection[str],
        at: datetime,
    ) -> Optional[Tuple[JsonDict, JsonDict]]:
        """
        In one step: move the context to recovered (status in `from_statuses`
        only) and bump its owner's total_recoveries / last_recovery.
        Returns (context row, user row), or None when nothing changed.
        """

    @abstractmethod
    def update_context_fields(self, context_id: str, patch: JsonDict) -> Optional[JsonDict]:
        ...

    @abstractmethod
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
        """Rows for one user, newest first on `order_by`."""

    # ── Sessions ──────────────────────────────────────────────────────────────

    @abstractmethod
    def insert_session(self, row: JsonDict) -> JsonDict:
        ...

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[JsonDict]:
        ...

    @abstractmethod
    def complete_session(self, session_id: str, *, end_time: datetime) -> Optional[JsonDict]:
        """
        In one step: active → completed with `end_time`, and append a copy of
        the completed row to the owner's session history (without `id`, plus
        `session_id` and `archived_at`). Returns the row, or None when the
        session is missing or not active.
        """

    @abstractmethod
    def increment_session_counter(
        self,
        session_id: str,
        *,
        field: str,
        amount: int,
        only_status: str,
    ) -> Optional[JsonDict]:
        """Atomic `field += amount` when status == only_status, else None."""

    @abstractmethod
    def query_sessions(self, *, user_id: str, limit: int = 30) -> List[JsonDict]:
        """Newest start_time first."""

    # ── Users & history ───────────────────────────────────────────────────────

    @abstractmethod
    def set_user_focus_score(self, user_id: str, *, score: int, at: datetime) -> JsonDict:
        ...

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[JsonDict]:
        ...

    @abstractmethod
    def list_session_history(self, user_id: str, *, limit: int = 30) -> List[JsonDict]:
        ...

    # ── Ops ───────────────────────────────────────────────────────────────────

    def ping(self) -> bool:
        """Cheap liveness probe."""
        return True
