"""Pydantic models for the /sessions router."""
from __future__ import annotations

from typing import Any, Dict, List

from pydantic import Field

from resetai.models.domain._base import CamelModel


class StartSessionRequest(CamelModel):
    user_id: str


class StartSessionResponse(CamelModel):
    session_id: str


class TimeRecoveredRequest(CamelModel):
    seconds: int


class SessionHistoryResponse(CamelModel):
    entries: List[Dict[str, Any]] = Field(default_factory=list)
    count: int = 0
