"""Domain models for captured contexts."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import Field, computed_field, field_validator

from resetai.models.domain._base import CamelModel
from resetai.models.domain._time import utcnow

JsonDict = Dict[str, Any]

MAX_SELECTED_TEXT = 500


class ActivityType(str, Enum):
    CODE = "code"
    DOCUMENT = "document"
    NOTE = "note"
    VIDEO = "video"
    EMAIL = "email"
    TAB = "tab"


class ContextStatus(str, Enum):
    ACTIVE = "active"
    RECOVERED = "recovered"
    ARCHIVED = "archived"

    def can_become(self, target: "ContextStatus") -> bool:
        return target in _CONTEXT_TRANSITIONS[self]

    @classmethod
    def sources_of(cls, target: "ContextStatus") -> FrozenSet["ContextStatus"]:
        """Statuses from which `target` is reachable in one step."""
        return frozenset(s for s in cls if s.can_become(target))


# Archived is terminal; there is no way back.
_CONTEXT_TRANSITIONS: Dict[ContextStatus, FrozenSet[ContextStatus]] = {
    ContextStatus.ACTIVE: frozenset({ContextStatus.RECOVERED, ContextStatus.ARCHIVED}),
    ContextStatus.RECOVERED: frozenset({ContextStatus.ACTIVE, ContextStatus.ARCHIVED}),
    ContextStatus.ARCHIVED: frozenset(),
}


class ContextCapture(CamelModel):
    """
    Capture intent for one activity sample.

    Natural key: (user_id, normalized_url)
    One non-archived context per key when normalized_url is non-empty.
    """

    user_id: str
    session_id: Optional[str] = None
    type: ActivityType = ActivityType.TAB

    url: str = ""
    normalized_url: str = ""
    title: str = "Untitled"

    scroll_position: int = Field(default=0, ge=0)
    selected_text: str = ""
    page_metadata: JsonDict = Field(default_factory=dict)

    @field_validator("selected_text", mode="before")
    @classmethod
    def _truncate_selection(cls, value: Any) -> str:
        return (value or "")[:MAX_SELECTED_TEXT]

    def to_new_row(self, *, context_id: str, now: datetime, duration_ms: int = 0) -> JsonDict:
        row = self.model_dump(mode="python")
        row["type"] = self.type.value
        row.update(
            id=context_id,
            visit_count=1,
            total_duration=duration_ms,
            summary="",
            key_points=[],
            next_steps=[],
            status=ContextStatus.ACTIVE.value,
            captured_at=now,
            last_visited=now,
            recovered_at=None,
            archived_at=None,
        )
        return row


class ContextRow(ContextCapture):
    """Full stored context as read back from the store."""

    id: str
    visit_count: int = Field(default=1, ge=1)
    total_duration: int = Field(default=0, ge=0)

    summary: str = ""
    key_points: List[str] = Field(default_factory=list)
    next_steps: List[str] = Field(default_factory=list)

    status: ContextStatus = ContextStatus.ACTIVE

    captured_at: datetime = Field(default_factory=utcnow)
    last_visited: datetime = Field(default_factory=utcnow)
    recovered_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None

    @field_validator("type", mode="before")
    @classmethod
    def _unknown_type_is_tab(cls, value: Any) -> Any:
        if isinstance(value, ActivityType):
            return value
        try:
            return ActivityType(value)
        except ValueError:
            return ActivityType.TAB

    @field_validator("title", "url", "normalized_url", "summary", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("key_points", "next_steps", "page_metadata", mode="before")
    @classmethod
    def _none_to_empty_container(cls, value: Any, info) -> Any:
        if value is None:
            return {} if info.field_name == "page_metadata" else []
        return value

    @computed_field
    @property
    def is_recovered(self) -> bool:
        return self.status is ContextStatus.RECOVERED

    @computed_field
    @property
    def is_archived(self) -> bool:
        return self.status is ContextStatus.ARCHIVED

    @property
    def dedup_key(self) -> str:
        return self.normalized_url or self.url
