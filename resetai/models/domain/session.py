from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from resetai.models.domain._base import CamelModel
from resetai.models.domain._time import utcnow

JsonDict = Dict[str, Any]


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


class SessionCounter(str, Enum):
    INTERRUPTIONS = "interruptions"
    CONTEXT_LOSS_EVENTS = "context_loss_events"
    TIME_RECOVERED = "time_recovered"


class SessionRow(CamelModel):
    id: str
    user_id: str
    status: SessionStatus = SessionStatus.ACTIVE
    start_time: Optional[datetime] = Field(default_factory=utcnow)
    end_time: Optional[datetime] = None

    interruptions: int = 0
    context_loss_events: int = 0
    time_recovered: int = 0  # seconds

    @field_validator("interruptions", "context_loss_events", "time_recovered", mode="before")
    @classmethod
    def _none_is_zero(cls, value: Any) -> Any:
        return 0 if value is None else value

    @property
    def duration_ms(self) -> Optional[int]:
        if self.start_time is None or self.end_time is None:
            return None
        return int((self.end_time - self.start_time).total_seconds() * 1000)


def new_session_row(*, session_id: str, user_id: str, now: datetime) -> JsonDict:
    return {
        "id": session_id,
        "user_id": user_id,
        "status": SessionStatus.ACTIVE.value,
        "start_time": now,
        "end_time": None,
        "interruptions": 0,
        "context_loss_events": 0,
        "time_recovered": 0,
    }


class SessionStats(CamelModel):
    total_sessions: int = 0
    total_interruptions: int = 0
    total_time_recovered: int = 0
    total_context_loss_events: int = 0
    average_session_duration: int = 0   # minutes
    sessions: List[SessionRow] = Field(default_factory=list)
