"""
resetai/services/context_service.py
-----------------------------------
Capture, deduplication and lifecycle of contexts.
No FastAPI / HTTP coupling — call from a router, background task, or worker.

Responsibilities
----------------
  - capture          — create-or-revisit for one activity sample; the
                       one-active-context-per-URL invariant is enforced by a
                       single atomic store call (ContextStore.capture_context)
  - enrich           — second phase after a create: fill summary / key points /
                       next steps from the recovery templates. Best effort.
  - update_activity  — revisit an existing active context by its URL key
  - list_active / list_history / get_context
  - mark_recovered / archive — explicit status transitions

Import
------
    from resetai.services.context_service import ContextService, CaptureResult
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from resetai.models.domain._time import utcnow
from resetai.models.domain.context import (
    ActivityType,
    ContextCapture,
    ContextRow,
    ContextStatus,
)
from resetai.models.domain.user import UserStats
from resetai.services.errors import InvalidInputError, InvalidTransitionError, NotFoundError
from resetai.services.recovery_service import generate_recovery
from resetai.services.url_normalizer import normalize_url
from resetai.store.base import ContextStore, Revisit

logger = logging.getLogger(__name__)

JsonDict = Dict[str, Any]


# ─────────────────────────────────────────────────────────────────────────────
# DTOs
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class CaptureResult:
    context_id: str
    was_update: bool

    @property
    def needs_enrichment(self) -> bool:
        return not self.was_update


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _require(value: Optional[str], name: str) -> str:
    if not value or not str(value).strip():
        raise InvalidInputError(f"{name} is required")
    return str(value)


def _non_negative(value: Optional[int], name: str) -> Optional[int]:
    if value is None:
        return None
    if value < 0:
        raise InvalidInputError(f"{name} must be >= 0, got {value}")
    return int(value)


def _statuses(target: ContextStatus) -> List[str]:
    return sorted(s.value for s in ContextStatus.sources_of(target))


# ─────────────────────────────────────────────────────────────────────────────
# Service
# ─────────────────────────────────────────────────────────────────────────────

class ContextService:
    def __init__(self, store: ContextStore, *, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    # ── Capture ───────────────────────────────────────────────────────────────

    def capture(
        self,
        *,
        user_id: str,
        type: Optional[str] = None,
        url: Optional[str] = None,
        title: Optional[str] = None,
        session_id: Optional[str] = None,
        scroll_position: Optional[int] = None,
        selected_text: Optional[str] = None,
        page_metadata: Optional[JsonDict] = None,
        duration_ms: int = 0,
    ) -> CaptureResult:
        """
        Record one activity sample.

        1. Validate inputs (nothing is written on failure)
        2. Normalize the URL into the dedup key
        3. Non-empty key → atomic revisit-or-insert; empty key → plain insert

        The caller schedules enrich() for new contexts (result.needs_enrichment).
        """
        user_id = _require(user_id, "userId")
        try:
            activity_type = ActivityType(type or ActivityType.TAB.value)
        except ValueError:
            raise InvalidInputError(
                f"Unknown activity type '{type}'. Must be one of: {[t.value for t in ActivityType]}"
            )
        scroll = _non_negative(scroll_position, "scrollPosition") or 0
        duration = _non_negative(duration_ms, "durationMs") or 0

        normalized = normalize_url(url)
        try:
            intent = ContextCapture(
                user_id=user_id,
                session_id=session_id or None,
                type=activity_type,
                url=url or "",
                normalized_url=normalized,
                title=title or "Untitled",
                scroll_position=scroll,
                selected_text=selected_text or "",
                page_metadata=page_metadata or {},
            )
        except ValidationError as e:
            raise InvalidInputError(f"Invalid capture payload: {e}") from e

        now = self.clock()
        new_row = intent.to_new_row(context_id=str(uuid.uuid4()), now=now, duration_ms=duration)

        if not normalized:
            row = self.store.insert_context(new_row)
            logger.info("Captured context %s for %s (no URL, dedup skipped)", row["id"], user_id)
            return CaptureResult(context_id=row["id"], was_update=False)

        revisit = Revisit(
            visited_at=now,
            duration_ms=duration,
            scroll_position=intent.scroll_position,
            selected_text=intent.selected_text,
            reactivate=True,
        )
        row, was_update = self.store.capture_context(new_row, revisit)
        if was_update:
            logger.debug(
                "Revisited context %s (%s), visit_count=%s",
                row["id"], normalized, row.get("visit_count"),
            )
        else:
            logger.info("Captured new context %s for %s: %s", row["id"], user_id, normalized)
        return CaptureResult(context_id=row["id"], was_update=was_update)

    def enrich(self, context_id: str) -> bool:
        """
        Populate summary / key_points / next_steps for a freshly created context.

        Safe to retry: a context that already has a summary is left alone.
        Never raises — a failure here must not affect the capture that preceded it.
        """
        try:
            row = self.store.get_context(context_id)
            if row is None:
                logger.warning("Enrichment skipped: context %s not found", context_id)
                return False
            context = ContextRow.model_validate(row)
            if context.summary:
                return True
            recovery = generate_recovery(context)
            self.store.update_context_fields(
                context_id,
                {
                    "summary": recovery.summary,
                    "key_points": recovery.key_points,
                    "next_steps": recovery.next_steps,
                },
            )
            return True
        except Exception:
            logger.exception("Enrichment failed for context %s", context_id)
            return False

    # ── Update ────────────────────────────────────────────────────────────────

    def update_activity(
        self,
        *,
        user_id: str,
        normalized_url: str,
        scroll_position: Optional[int] = None,
        duration_ms: int = 0,
    ) -> str:
        """Revisit the active context for a URL key. Returns its id."""
        user_id = _require(user_id, "userId")
        key = normalize_url(normalized_url)
        if not key:
            raise InvalidInputError("normalizedUrl is required")
        scroll = _non_negative(scroll_position, "scrollPosition")
        duration = _non_negative(duration_ms, "durationMs") or 0

        row = self.store.revisit_context(
            user_id=user_id,
            normalized_url=key,
            revisit=Revisit(
                visited_at=self.clock(),
                duration_ms=duration,
                scroll_position=scroll,
                reactivate=False,
            ),
        )
        if row is None:
            raise NotFoundError(f"No active context for '{key}'")
        return row["id"]

    # ── Read ──────────────────────────────────────────────────────────────────

    def list_active(self, user_id: str, limit: int = 20) -> List[ContextRow]:
        """Non-archived contexts, one per URL key, most recently visited first."""
        user_id = _require(user_id, "userId")
        if limit < 1:
            raise InvalidInputError("limit must be >= 1")
        rows = self.store.query_contexts(
            user_id=user_id,
            include_archived=False,
            order_by="last_visited",
            limit=limit * 3,
        )
        unique: Dict[str, ContextRow] = {}
        for row in rows:
            context = ContextRow.model_validate(row)
            unique.setdefault(context.normalized_url or context.id, context)
        ordered = sorted(unique.values(), key=lambda c: c.last_visited, reverse=True)
        return ordered[:limit]

    def list_history(self, user_id: str, limit: int = 50) -> List[ContextRow]:
        """Every context incl. archived ones, newest capture first."""
        user_id = _require(user_id, "userId")
        if limit < 1:
            raise InvalidInputError("limit must be >= 1")
        rows = self.store.query_contexts(user_id=user_id, order_by="captured_at", limit=limit)
        return [ContextRow.model_validate(r) for r in rows]

    def get_context(self, context_id: str, user_id: Optional[str] = None) -> ContextRow:
        context_id = _require(context_id, "contextId")
        row = self.store.get_context(context_id)
        if row is None or (user_id and row.get("user_id") != user_id):
            raise NotFoundError(f"Context '{context_id}' not found")
        return ContextRow.model_validate(row)

    # ── Transitions ───────────────────────────────────────────────────────────

    def _should_move(self, context: ContextRow, target: ContextStatus) -> bool:
        """False when the context already sits at `target` (no-op). Raises on illegal moves."""
        if context.status is target:
            return False
        if not context.status.can_become(target):
            raise InvalidTransitionError(
                f"Context '{context.id}' cannot go from {context.status.value} to {target.value}"
            )
        return True

    def _settle_lost_race(self, context_id: str, target: ContextStatus) -> ContextRow:
        latest = self.get_context(context_id)
        if latest.status is target:
            return latest
        raise InvalidTransitionError(
            f"Context '{context_id}' cannot go from {latest.status.value} to {target.value}"
        )

    def mark_recovered(self, context_id: str, user_id: Optional[str] = None) -> ContextRow:
        """
        active → recovered. The status change and the owner's recovery stats
        are one store operation, so only the call that performs the transition
        counts, and a failed call leaves both untouched for a retry.
        """
        context = self.get_context(context_id, user_id)
        if not self._should_move(context, ContextStatus.RECOVERED):
            return context
        result = self.store.recover_context(
            context.id,
            from_statuses=_statuses(ContextStatus.RECOVERED),
            at=self.clock(),
        )
        if result is None:
            return self._settle_lost_race(context.id, ContextStatus.RECOVERED)

        row, user_row = result
        user = UserStats.model_validate(user_row)
        logger.info(
            "Context %s recovered by %s (total recoveries: %s)",
            context_id, user.id, user.total_recoveries,
        )
        return ContextRow.model_validate(row)

    def archive(self, context_id: str, user_id: Optional[str] = None) -> ContextRow:
        """One-way: archived contexts never come back."""
        context = self.get_context(context_id, user_id)
        if not self._should_move(context, ContextStatus.ARCHIVED):
            return context
        row = self.store.transition_context(
            context.id,
            from_statuses=_statuses(ContextStatus.ARCHIVED),
            patch={"status": ContextStatus.ARCHIVED.value, "archived_at": self.clock()},
        )
        if row is None:
            return self._settle_lost_race(context.id, ContextStatus.ARCHIVED)
        logger.info("Context %s archived", context_id)
        return ContextRow.model_validate(row)
