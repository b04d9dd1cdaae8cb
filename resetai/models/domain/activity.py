"""Live activity signals and the predictor's outputs."""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from pydantic import ConfigDict, Field, ValidationError

from resetai.models.domain._base import CamelModel


class ScrollSample(CamelModel):
    model_config = ConfigDict(allow_inf_nan=False)

    position: float
    timestamp: Optional[float] = None


class ActivitySnapshot(CamelModel):
    """
    Caller-assembled view of recent behaviour. Durations are milliseconds.

    Nothing here is persisted; the predictor reads it and forgets it.
    """

    model_config = ConfigDict(allow_inf_nan=False)

    recent_tab_switches: List[Any] = Field(default_factory=list)
    idle_duration: float = 0
    unique_domains: int = 0
    domain_changed: bool = False
    scroll_patterns: List[ScrollSample] = Field(default_factory=list)
    reread_count: int = 0
    session_duration: float = 0
    time_since_last_interaction: float = 0
    local_hour: Optional[int] = Field(default=None, ge=0, le=23)

    @classmethod
    def lenient(cls, data: Optional[Mapping[str, Any]]) -> "ActivitySnapshot":
        """Build a snapshot, dropping any field that fails validation."""
        if not isinstance(data, Mapping):
            return cls()
        payload: Dict[str, Any] = dict(data)
        for _ in range(len(payload) + 1):
            try:
                return cls.model_validate(payload)
            except ValidationError as e:
                bad = {err["loc"][0] for err in e.errors() if err.get("loc")}
                drop = set()
                for name, info in cls.model_fields.items():
                    names = {name, info.alias or name}
                    if names & bad:
                        drop |= names
                drop &= payload.keys()
                if not drop:
                    break
                for key in drop:
                    del payload[key]
        return cls()


class Trigger(CamelModel):
    name: str
    description: str
    impact: float


class DistractionPrediction(CamelModel):
    probability: float
    risk_level: str          # "High" | "Medium" | "Low"
    triggers: List[Trigger] = Field(default_factory=list)
    recommendation: str
    timestamp: int           # epoch ms


class ContextLossDetection(CamelModel):
    detected: bool
    probability: float
    confidence: str          # "high" | "medium" | "low"
    factors: List[Trigger] = Field(default_factory=list)
    recommendation: str
