"""
resetai/services/session_service.py
-----------------------------------
Work-session lifecycle and counters.

  start / end                        — active → completed, once
  record_interruption / record_context_loss / record_time_recovered
                                     — atomic increments, active sessions only
  get_stats                          — aggregates over the last 30 sessions
  get_session / list_history         — reads

Completing a session appends an immutable copy to the user's session history.
"""
from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List

from resetai.models.domain._time import utcnow
from resetai.models.domain.session import (
    SessionCounter,
    SessionRow,
    SessionStats,
    SessionStatus,
    new_session_row,
)
from resetai.services.errors import InvalidInputError, InvalidTransitionError, NotFoundError
from resetai.store.base import ContextStore

logger = logging.getLogger(__name__)

JsonDict = Dict[str, Any]

STATS_WINDOW = 30


class SessionService:
    def __init__(self, store: ContextStore, *, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self, user_id: str) -> str:
        if not user_id:
            raise InvalidInputError("userId is required")
        session_id = str(uuid.uuid4())
        self.store.insert_session(
            new_session_row(session_id=session_id, user_id=user_id, now=self.clock())
        )
        logger.info("Session %s started for %s", session_id, user_id)
        return session_id

    def get_session(self, session_id: str) -> SessionRow:
        if not session_id:
            raise InvalidInputError("sessionId is required")
        row = self.store.get_session(session_id)
        if row is None:
            raise NotFoundError(f"Session '{session_id}' not found")
        return SessionRow.model_validate(row)

    def end(self, session_id: str) -> SessionRow:
        session = self.get_session(session_id)
        if session.status is not SessionStatus.ACTIVE:
            raise InvalidTransitionError(f"Session '{session_id}' is already {session.status.value}")

        # completion and the history copy commit together
        row = self.store.complete_session(session_id, end_time=self.clock())
        if row is None:
            raise InvalidTransitionError(f"Session '{session_id}' is already completed")

        ended = SessionRow.model_validate(row)
        logger.info("Session %s completed after %s ms", session_id, ended.duration_ms)
        return ended

    # ── Counters ──────────────────────────────────────────────────────────────

    def _increment(self, session_id: str, counter: SessionCounter, amount: int) -> SessionRow:
        if not session_id:
            raise InvalidInputError("sessionId is required")
        if amount < 0:
            raise InvalidInputError(f"{counter.value} increment must be >= 0, got {amount}")
        row = self.store.increment_session_counter(
            session_id,
            field=counter.value,
            amount=int(amount),
            only_status=SessionStatus.ACTIVE.value,
        )
        if row is not None:
            return SessionRow.model_validate(row)

        # tell "missing" apart from "no longer active"
        session = self.get_session(session_id)
        raise InvalidTransitionError(
            f"Session '{session_id}' is {session.status.value}; counters are closed"
        )

    def record_interruption(self, session_id: str) -> SessionRow:
        return self._increment(session_id, SessionCounter.INTERRUPTIONS, 1)

    def record_context_loss(self, session_id: str) -> SessionRow:
        return self._increment(session_id, SessionCounter.CONTEXT_LOSS_EVENTS, 1)

    def record_time_recovered(self, session_id: str, seconds: int) -> SessionRow:
        return self._increment(session_id, SessionCounter.TIME_RECOVERED, seconds)

    # ── Stats ─────────────────────────────────────────────────────────────────

    def get_stats(self, user_id: str) -> SessionStats:
        if not user_id:
            raise InvalidInputError("userId is required")
        sessions = [
            SessionRow.model_validate(r)
            for r in self.store.query_sessions(user_id=user_id, limit=STATS_WINDOW)
        ]

        durations = [s.duration_ms for s in sessions if s.duration_ms is not None]
        average_minutes = 0
        if durations:
            average_minutes = int(math.floor(sum(durations) / len(durations) / 60_000 + 0.5))

        return SessionStats(
            total_sessions=len(sessions),
            total_interruptions=sum(s.interruptions for s in sessions),
            total_time_recovered=sum(s.time_recovered for s in sessions),
            total_context_loss_events=sum(s.context_loss_events for s in sessions),
            average_session_duration=average_minutes,
            sessions=sessions,
        )

    def list_history(self, user_id: str, limit: int = 30) -> List[JsonDict]:
        if not user_id:
            raise InvalidInputError("userId is required")
        if limit < 1:
            raise InvalidInputError("limit must be >= 1")
        return self.store.list_session_history(user_id, limit=limit)
