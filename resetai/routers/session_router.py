"""
/sessions router
----------------
Work sessions and their counters.

POST /sessions/start                          — Open a session for a user
POST /sessions/{session_id}/end               — active → completed (once); copies it to history
POST /sessions/{session_id}/interruptions     — +1 interruption
POST /sessions/{session_id}/context-loss      — +1 context-loss event
POST /sessions/{session_id}/time-recovered    — +N seconds recovered
GET  /sessions/stats                          — Totals over the user's last 30 sessions
GET  /sessions/history                        — Completed-session history, newest first
GET  /sessions/{session_id}                   — One session

Counters only move while a session is active; a completed session answers 409.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, status

from resetai.models.api.session import (
    SessionHistoryResponse,
    StartSessionRequest,
    StartSessionResponse,
    TimeRecoveredRequest,
)
from resetai.models.domain.session import SessionRow, SessionStats
from resetai.services.session_service import SessionService
from resetai.store.base import ContextStore
from resetai.store.provider import get_store

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("/start", response_model=StartSessionResponse, status_code=status.HTTP_201_CREATED)
def start_session(
    req: StartSessionRequest,
    store: ContextStore = Depends(get_store),
) -> StartSessionResponse:
    return StartSessionResponse(session_id=SessionService(store).start(req.user_id))


@router.get("/stats", response_model=SessionStats)
def session_stats(
    user_id: str = Query(..., alias="userId"),
    store: ContextStore = Depends(get_store),
) -> SessionStats:
    """averageSessionDuration is in minutes, over sessions that have ended."""
    return SessionService(store).get_stats(user_id)


@router.get("/history", response_model=SessionHistoryResponse)
def session_history(
    user_id: str = Query(..., alias="userId"),
    limit: int = Query(30, ge=1, le=200),
    store: ContextStore = Depends(get_store),
) -> SessionHistoryResponse:
    entries = SessionService(store).list_history(user_id, limit=limit)
    return SessionHistoryResponse(entries=entries, count=len(entries))


@router.get("/{session_id}", response_model=SessionRow)
def get_session(session_id: str, store: ContextStore = Depends(get_store)) -> SessionRow:
    return SessionService(store).get_session(session_id)


@router.post("/{session_id}/end", response_model=SessionRow)
def end_session(session_id: str, store: ContextStore = Depends(get_store)) -> SessionRow:
    return SessionService(store).end(session_id)


# ── Counters ─────────────────────────────────────────────────────────────────

@router.post("/{session_id}/interruptions", response_model=SessionRow)
def record_interruption(session_id: str, store: ContextStore = Depends(get_store)) -> SessionRow:
    return SessionService(store).record_interruption(session_id)


@router.post("/{session_id}/context-loss", response_model=SessionRow)
def record_context_loss(session_id: str, store: ContextStore = Depends(get_store)) -> SessionRow:
    return SessionService(store).record_context_loss(session_id)


@router.post("/{session_id}/time-recovered", response_model=SessionRow)
def record_time_recovered(
    session_id: str,
    req: TimeRecoveredRequest,
    store: ContextStore = Depends(get_store),
) -> SessionRow:
    return SessionService(store).record_time_recovered(session_id, req.seconds)
