"""Pydantic models for the /contexts router."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from resetai.models.domain._base import CamelModel


class CaptureData(CamelModel):
    """Nested payload shape sent by the browser extension."""
    url: Optional[str] = None
    normalized_url: Optional[str] = None
    title: Optional[str] = None
    scroll_position: Optional[int] = None
    selected_text: Optional[str] = None
    page_metadata: Optional[Dict[str, Any]] = None


class CaptureRequest(CamelModel):
    """
    One activity sample. Top-level fields win over the nested `data` block.

    Time spent is `durationMs`, or `timestampEnd - timestampStart` (epoch ms)
    when only the two timestamps are sent.
    """
    user_id: str
    session_id: Optional[str] = None
    type: Optional[str] = None
    url: Optional[str] = None
    title: Optional[str] = None
    scroll_position: Optional[int] = None
    selected_text: Optional[str] = None
    page_metadata: Optional[Dict[str, Any]] = None
    duration_ms: Optional[int] = None
    timestamp_start: Optional[int] = None
    timestamp_end: Optional[int] = None
    data: CaptureData = Field(default_factory=CaptureData)

    def resolved_url(self) -> Optional[str]:
        return self.url or self.data.url or self.data.normalized_url

    def resolved_duration(self) -> int:
        if self.duration_ms is not None:
            return self.duration_ms
        if self.timestamp_start is not None and self.timestamp_end is not None:
            return max(0, self.timestamp_end - self.timestamp_start)
        return 0

    def service_kwargs(self) -> Dict[str, Any]:
        d = self.data
        return {
            "user_id": self.user_id,
            "session_id": self.session_id,
            "type": self.type,
            "url": self.resolved_url(),
            "title": self.title or d.title,
            "scroll_position": self.scroll_position if self.scroll_position is not None else d.scroll_position,
            "selected_text": self.selected_text if self.selected_text is not None else d.selected_text,
            "page_metadata": self.page_metadata if self.page_metadata is not None else d.page_metadata,
            "duration_ms": self.resolved_duration(),
        }


class CaptureResponse(CamelModel):
    context_id: str
    is_update: bool


class UpdateActivityRequest(CamelModel):
    user_id: str
    normalized_url: str
    scroll_position: Optional[int] = None
    duration_ms: int = 0
    data: CaptureData = Field(default_factory=CaptureData)


class UpdateActivityResponse(CamelModel):
    success: bool = True
    context_id: str


class ContextResponse(CamelModel):
    id: str
    user_id: str
    session_id: Optional[str] = None
    type: str
    url: str
    normalized_url: str
    title: str
    scroll_position: int = 0
    selected_text: str = ""
    page_metadata: Dict[str, Any] = Field(default_factory=dict)
    visit_count: int
    total_duration: int = 0
    summary: str = ""
    key_points: List[str] = Field(default_factory=list)
    next_steps: List[str] = Field(default_factory=list)
    status: str
    is_recovered: bool
    is_archived: bool
    captured_at: Optional[datetime] = None
    last_visited: Optional[datetime] = None
    recovered_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None


class ContextListResponse(CamelModel):
    contexts: List[ContextResponse]
    count: int


class ContextActionRequest(CamelModel):
    """Optional owner check for recover / archive."""
    user_id: Optional[str] = None
