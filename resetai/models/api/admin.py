"""Pydantic models for the /admin router."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str             # "ok" | "degraded"
    store: str              # "memory" | "supabase"
    store_ok: bool
    detail: Optional[str] = None
