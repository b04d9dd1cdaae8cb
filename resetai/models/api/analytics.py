"""Pydantic models for the /analytics router."""
from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import Field

from resetai.models.domain._base import CamelModel


class ResumeRequest(CamelModel):
    user_id: str
    absence_duration: Optional[float] = Field(default=0, allow_inf_nan=False)   # ms


class PredictRequest(CamelModel):
    """
    `snapshot` is taken as-is: malformed fields inside it are ignored rather
    than rejected, so a partially broken client still gets a prediction.
    """
    snapshot: Dict[str, Any] = Field(default_factory=dict)
    sensitivity: Optional[Any] = None
