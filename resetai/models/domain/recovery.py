from __future__ import annotations

from typing import List, Optional

from pydantic import Field

from resetai.models.domain._base import CamelModel


class RecoverySummary(CamelModel):
    summary: str
    key_points: List[str] = Field(default_factory=list)
    next_steps: List[str] = Field(default_factory=list)


class Workspace(CamelModel):
    title: Optional[str] = None
    type: str
    url: Optional[str] = None
    visit_count: int = 1


class ResumeInsights(CamelModel):
    unique_domains: int = 0
    total_workspaces: int = 0
    recovered_count: int = 0


class CognitiveResume(CamelModel):
    what_you_were_doing: str
    why_you_were_doing_it: str
    next_logical_step: str
    absence_duration: str = ""
    workspaces: List[Workspace] = Field(default_factory=list)
    insights: ResumeInsights = Field(default_factory=ResumeInsights)
    confidence: str = "medium"   # "high" | "medium" | "low"
