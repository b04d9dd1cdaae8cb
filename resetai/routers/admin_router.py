"""
/admin router
-------------
Operational endpoints.

GET  /admin/health   — Liveness check (configured context store reachable)
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from resetai.config import Settings, get_settings
from resetai.models.api.admin import HealthResponse
from resetai.store.base import ContextStore
from resetai.store.provider import get_store

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/health", response_model=HealthResponse)
def health(
    store: ContextStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> HealthResponse:
    """Runs the store's lightweight ping; never raises."""
    detail = None
    try:
        store_ok = store.ping()
    except Exception as e:
        store_ok = False
        detail = f"Store unreachable: {e}"
        logger.error(detail)

    if not store_ok and detail is None:
        detail = f"{settings.store_backend} store did not answer"

    return HealthResponse(
        status="ok" if store_ok else "degraded",
        store=settings.store_backend,
        store_ok=store_ok,
        detail=detail,
    )
