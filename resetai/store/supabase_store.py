"""
resetai/store/supabase_store.py
-------------------------------
ContextStore backed by Supabase (PostgREST + SQL RPCs in sql/).

Single-row conditional updates go through PostgREST filters, which Postgres
executes atomically. Anything that needs `col = col + n`, insert-or-update, or
two writes in one transaction goes through an RPC:

  capture_context           (sql/04_rpc.sql) — INSERT … ON CONFLICT on the
                                               partial unique index
                                               contexts_one_active_per_url
  revisit_context           (sql/04_rpc.sql)
  recover_context           (sql/04_rpc.sql) — status change + user stats
  complete_session          (sql/04_rpc.sql) — status change + history row
  increment_session_counter (sql/04_rpc.sql)

Context and session ids are uuid columns: an id that is not a UUID cannot
match a row, so lookups short-circuit to "not found" instead of sending it.

Import
------
    from resetai.store.supabase_store import SupabaseStore
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Collection, List, Optional, Tuple

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from resetai.services.errors import StoreError
from resetai.store.base import ContextStore, JsonDict, Revisit, jsonable

logger = logging.getLogger(__name__)


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


def _execute(query, what: str):
    try:
        return query.execute()
    except (APIError, httpx.HTTPError) as e:
        logger.error("Supabase %s failed: %s", what, e)
        raise StoreError(f"{what} failed: {e}") from e


def _first(res) -> Optional[JsonDict]:
    rows = res.data or []
    if isinstance(rows, dict):
        return rows
    return rows[0] if rows else None


def _payload(res) -> JsonDict:
    data = res.data or {}
    if isinstance(data, list):
        data = data[0] if data else {}
    return data or {}


class SupabaseStore(ContextStore):
    def __init__(self, supabase: Client):
        self.sb = supabase

    # ── Contexts ──────────────────────────────────────────────────────────────

    def _revisit_params(self, revisit: Revisit) -> JsonDict:
        return {
            "p_visited_at": revisit.visited_at.isoformat(),
            "p_duration_ms": max(0, revisit.duration_ms),
            "p_scroll_position": revisit.scroll_position,
            "p_selected_text": revisit.selected_text,
            "p_reactivate": revisit.reactivate,
        }

    def capture_context(self, new_row: JsonDict, revisit: Revisit) -> Tuple[JsonDict, bool]:
        if not new_row.get("normalized_url"):
            raise ValueError("capture_context requires a non-empty normalized_url")
        res = _execute(
            self.sb.rpc(
                "capture_context",
                {"p_row": jsonable(new_row), **self._revisit_params(revisit)},
            ),
            "capture_context",
        )
        payload = _payload(res)
        if not payload.get("row"):
            raise StoreError("capture_context returned no row")
        return payload["row"], bool(payload.get("was_update"))

    def insert_context(self, row: JsonDict) -> JsonDict:
        res = _execute(self.sb.table("contexts").insert(jsonable(row)), "contexts insert")
        inserted = _first(res)
        if inserted is None:
            raise StoreError("contexts insert returned no rows")
        return inserted

    def get_context(self, context_id: str) -> Optional[JsonDict]:
        if not _is_uuid(context_id):
            return None
        res = _execute(
            self.sb.table("contexts").select("*").eq("id", context_id).limit(1),
            "contexts select",
        )
        return _first(res)

    def revisit_context(
        self,
        *,
        user_id: str,
        normalized_url: str,
        revisit: Revisit,
    ) -> Optional[JsonDict]:
        res = _execute(
            self.sb.rpc(
                "revisit_context",
                {
                    "p_user_id": user_id,
                    "p_normalized_url": normalized_url,
                    **self._revisit_params(revisit),
                },
            ),
            "revisit_context",
        )
        return _first(res)

    def transition_context(
        self,
        context_id: str,
        *,
        from_statuses: Collection[str],
        patch: JsonDict,
    ) -> Optional[JsonDict]:
        if not _is_uuid(context_id):
            return None
        res = _execute(
            self.sb.table("contexts")
            .update(jsonable(patch))
            .eq("id", context_id)
            .in_("status", list(from_statuses)),
            "contexts transition",
        )
        return _first(res)

    def recover_context(
        self,
        context_id: str,
        *,
        from_statuses: Collection[str],
        at: datetime,
    ) -> Optional[Tuple[JsonDict, JsonDict]]:
        if not _is_uuid(context_id):
            return None
        res = _execute(
            self.sb.rpc(
                "recover_context",
                {
                    "p_context_id": context_id,
                    "p_from_statuses": list(from_statuses),
                    "p_at": at.isoformat(),
                },
            ),
            "recover_context",
        )
        payload = _payload(res)
        row = payload.get("row")
        if not row:
            return None
        return row, payload.get("user") or {"id": row["user_id"]}

    def update_context_fields(self, context_id: str, patch: JsonDict) -> Optional[JsonDict]:
        if not _is_uuid(context_id):
            return None
        res = _execute(
            self.sb.table("contexts").update(jsonable(patch)).eq("id", context_id),
            "contexts update",
        )
        return _first(res)

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
        q = self.sb.table("contexts").select("*").eq("user_id", user_id)
        if not include_archived:
            q = q.neq("status", "archived")
        if captured_from is not None:
            q = q.gte("captured_at", captured_from.isoformat())
        if captured_to is not None:
            q = q.lte("captured_at", captured_to.isoformat())
        q = q.order(order_by, desc=True)
        if limit is not None:
            q = q.limit(limit)
        return _execute(q, "contexts query").data or []

    # ── Sessions ──────────────────────────────────────────────────────────────

    def insert_session(self, row: JsonDict) -> JsonDict:
        res = _execute(self.sb.table("sessions").insert(jsonable(row)), "sessions insert")
        inserted = _first(res)
        if inserted is None:
            raise StoreError("sessions insert returned no rows")
        return inserted

    def get_session(self, session_id: str) -> Optional[JsonDict]:
        if not _is_uuid(session_id):
            return None
        res = _execute(
            self.sb.table("sessions").select("*").eq("id", session_id).limit(1),
            "sessions select",
        )
        return _first(res)

    def complete_session(self, session_id: str, *, end_time: datetime) -> Optional[JsonDict]:
        if not _is_uuid(session_id):
            return None
        res = _execute(
            self.sb.rpc(
                "complete_session",
                {"p_session_id": session_id, "p_end_time": end_time.isoformat()},
            ),
            "complete_session",
        )
        return _payload(res) or None

    def increment_session_counter(
        self,
        session_id: str,
        *,
        field: str,
        amount: int,
        only_status: str,
    ) -> Optional[JsonDict]:
        if not _is_uuid(session_id):
            return None
        res = _execute(
            self.sb.rpc(
                "increment_session_counter",
                {
                    "p_session_id": session_id,
                    "p_field": field,
                    "p_amount": amount,
                    "p_only_status": only_status,
                },
            ),
            "increment_session_counter",
        )
        return _first(res)

    def query_sessions(self, *, user_id: str, limit: int = 30) -> List[JsonDict]:
        q = (
            self.sb.table("sessions")
            .select("*")
            .eq("user_id", user_id)
            .order("start_time", desc=True)
            .limit(limit)
        )
        return _execute(q, "sessions query").data or []

    # ── Users & history ───────────────────────────────────────────────────────

    def set_user_focus_score(self, user_id: str, *, score: int, at: datetime) -> JsonDict:
        res = _execute(
            self.sb.table("users").upsert(
                {"id": user_id, "focus_score": score, "focus_score_at": at.isoformat()}
            ),
            "users upsert",
        )
        return _first(res) or {"id": user_id, "focus_score": score}

    def get_user(self, user_id: str) -> Optional[JsonDict]:
        res = _execute(
            self.sb.table("users").select("*").eq("id", user_id).limit(1),
            "users select",
        )
        return _first(res)

    def list_session_history(self, user_id: str, *, limit: int = 30) -> List[JsonDict]:
        q = (
            self.sb.table("session_history")
            .select("entry")
            .eq("user_id", user_id)
            .order("archived_at", desc=True)
            .limit(limit)
        )
        rows = _execute(q, "session_history query").data or []
        return [r["entry"] for r in rows if r.get("entry")]

    # ── Ops ───────────────────────────────────────────────────────────────────

    def ping(self) -> bool:
        try:
            self.sb.table("contexts").select("id").limit(1).execute()
            return True
        except Exception as e:
            logger.error("Supabase unreachable: %s", e)
            return False
