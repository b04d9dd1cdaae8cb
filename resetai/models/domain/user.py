from __future__ import annotations

from datetime import datetime
from typing import Optional

from resetai.models.domain._base import CamelModel


class UserStats(CamelModel):
    """The slice of the external user record that the core writes."""

    id: str
    total_recoveries: int = 0
    last_recovery: Optional[datetime] = None
    focus_score: Optional[int] = None
    focus_score_at: Optional[datetime] = None
