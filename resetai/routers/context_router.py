"""
/contexts router
----------------
Capture, deduplication and lifecycle of contexts.

POST /contexts/capture             — Record an activity sample (201 new, 200 revisit)
POST /contexts/update              — Revisit the active context for a URL key
GET  /contexts/active              — Deduplicated non-archived contexts, newest visit first
GET  /contexts/history             — Every context incl. archived, newest capture first
GET  /contexts/{context_id}        — One context
POST /contexts/{context_id}/recover — active → recovered (bumps the user's recovery stats)
POST /contexts/{context_id}/archive — → archived (terminal)

New contexts get their summary / key points / next steps in a background task
after the response is sent; a failure there never affects the capture.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response, status

from resetai.models.api.context import (
    CaptureRequest,
    CaptureResponse,
    ContextActionRequest,
    ContextListResponse,
    ContextResponse,
    UpdateActivityRequest,
    UpdateActivityResponse,
)
from resetai.models.domain.context import ContextRow
from resetai.services.context_service import ContextService
from resetai.store.base import ContextStore
from resetai.store.provider import get_store

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/contexts", tags=["contexts"])


# ── Helpers ──────────────────────────────────────────────────────────────────

def _row_to_response(context: ContextRow) -> ContextResponse:
    return ContextResponse.model_validate(context.model_dump(mode="json"))


def _list_response(contexts: List[ContextRow]) -> ContextListResponse:
    items = [_row_to_response(c) for c in contexts]
    return ContextListResponse(contexts=items, count=len(items))


def _enrich_in_background(store: ContextStore, context_id: str) -> None:
    """Background task: fill the recovery prompt for a new context."""
    if not ContextService(store).enrich(context_id):
        logger.warning("Context %s left without a recovery summary", context_id)


# ── Capture / update ─────────────────────────────────────────────────────────

@router.post("/capture", response_model=CaptureResponse, status_code=status.HTTP_201_CREATED)
def capture_context(
    req: CaptureRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    store: ContextStore = Depends(get_store),
) -> CaptureResponse:
    """
    Create-or-revisit. At most one non-archived context exists per user and
    normalized URL; a repeat visit bumps its visit count instead of creating
    a duplicate, and reactivates it if it had been recovered.
    """
    result = ContextService(store).capture(**req.service_kwargs())
    if result.needs_enrichment:
        background_tasks.add_task(_enrich_in_background, store, result.context_id)
    else:
        response.status_code = status.HTTP_200_OK
    return CaptureResponse(context_id=result.context_id, is_update=result.was_update)


@router.post("/update", response_model=UpdateActivityResponse)
def update_activity(
    req: UpdateActivityRequest,
    store: ContextStore = Depends(get_store),
) -> UpdateActivityResponse:
    scroll = req.scroll_position if req.scroll_position is not None else req.data.scroll_position
    context_id = ContextService(store).update_activity(
        user_id=req.user_id,
        normalized_url=req.normalized_url,
        scroll_position=scroll,
        duration_ms=req.duration_ms,
    )
    return UpdateActivityResponse(context_id=context_id)


# ── Read ─────────────────────────────────────────────────────────────────────

@router.get("/active", response_model=ContextListResponse)
def list_active(
    user_id: str = Query(..., alias="userId"),
    limit: int = Query(20, ge=1, le=200),
    store: ContextStore = Depends(get_store),
) -> ContextListResponse:
    return _list_response(ContextService(store).list_active(user_id, limit=limit))


@router.get("/history", response_model=ContextListResponse)
def list_history(
    user_id: str = Query(..., alias="userId"),
    limit: int = Query(50, ge=1, le=500),
    store: ContextStore = Depends(get_store),
) -> ContextListResponse:
    return _list_response(ContextService(store).list_history(user_id, limit=limit))


@router.get("/{context_id}", response_model=ContextResponse)
def get_context(
    context_id: str,
    user_id: Optional[str] = Query(None, alias="userId"),
    store: ContextStore = Depends(get_store),
) -> ContextResponse:
    return _row_to_response(ContextService(store).get_context(context_id, user_id))


# ── Transitions ──────────────────────────────────────────────────────────────

@router.post("/{context_id}/recover", response_model=ContextResponse)
def mark_recovered(
    context_id: str,
    req: Optional[ContextActionRequest] = None,
    store: ContextStore = Depends(get_store),
) -> ContextResponse:
    """Idempotent: recovering an already-recovered context changes nothing."""
    user_id = req.user_id if req else None
    return _row_to_response(ContextService(store).mark_recovered(context_id, user_id))


@router.post("/{context_id}/archive", response_model=ContextResponse)
def archive_context(
    context_id: str,
    req: Optional[ContextActionRequest] = None,
    store: ContextStore = Depends(get_store),
) -> ContextResponse:
    user_id = req.user_id if req else None
    return _row_to_response(ContextService(store).archive(context_id, user_id))
