from __future__ import annotations

from typing import List

from pydantic import Field

from resetai.models.domain._base import CamelModel


class NeuroFlowScore(CamelModel):
    score: int = Field(ge=0, le=100)
    level: str
    distractions: int = 0
    focus_streak: int = 0
    suggestions: List[str] = Field(default_factory=list)
    unique_workspaces: int = 0
    total_switches: int = 0
    recoveries: int = 0
