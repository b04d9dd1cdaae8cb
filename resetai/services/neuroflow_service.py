"""
resetai/services/neuroflow_service.py
-------------------------------------
Neuro-Flow focus score for the user's current local day, plus the focus streak.

Pure parts
----------
  score_contexts(contexts)  — score / level / suggestions for one day's contexts
  focus_streak(days)        — consecutive focused days, days[0] being today

Service
-------
  NeuroFlowService.get_score(user_id) — one store query covering the last
  7 local days, bucketed by local date in the configured timezone.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, tzinfo
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from resetai.models.domain._time import as_utc, utcnow
from resetai.models.domain.context import ContextRow
from resetai.models.domain.neuroflow import NeuroFlowScore
from resetai.services.errors import InvalidInputError, StoreError
from resetai.store.base import ContextStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NeuroFlowConfig:
    base_score: float = 100
    switch_free: int = 20
    switch_penalty: float = 1.5
    unique_free: int = 10
    unique_penalty: float = 2
    recovery_bonus: float = 3
    distraction_free: int = 10
    empty_score: int = 75

    # lower bound → level, checked top-down
    levels: Tuple[Tuple[float, str], ...] = (
        (85, "Deep Focus"),
        (70, "Good Flow"),
        (50, "Moderate"),
        (30, "Scattered"),
    )
    floor_level: str = "Distracted"

    streak_days: int = 7
    streak_max_switches: int = 30
    streak_max_unique: int = 15


DEFAULT_CONFIG = NeuroFlowConfig()


# ─────────────────────────────────────────────────────────────────────────────
# Pure scoring
# ─────────────────────────────────────────────────────────────────────────────

def _unique_workspaces(contexts: Sequence[ContextRow]) -> int:
    return len({c.dedup_key for c in contexts})


def _level_for(score: float, config: NeuroFlowConfig) -> str:
    for bound, label in config.levels:
        if score >= bound:
            return label
    return config.floor_level


def score_contexts(
    contexts: Sequence[ContextRow],
    config: NeuroFlowConfig = DEFAULT_CONFIG,
) -> NeuroFlowScore:
    """Score one day of contexts. focus_streak is left at 0 for the caller to fill."""
    if not contexts:
        return NeuroFlowScore(
            score=config.empty_score,
            level=_level_for(config.empty_score, config),
            distractions=0,
            focus_streak=0,
            suggestions=["Start working to see your focus metrics"],
        )

    switches = len(contexts)
    unique = _unique_workspaces(contexts)
    recovered = sum(1 for c in contexts if c.is_recovered)

    raw = (
        config.base_score
        - max(0, switches - config.switch_free) * config.switch_penalty
        - max(0, unique - config.unique_free) * config.unique_penalty
        + recovered * config.recovery_bonus
    )
    raw = min(100.0, max(0.0, raw))
    distractions = max(0, switches - config.distraction_free)

    suggestions: List[str] = []
    if distractions > 5:
        suggestions.append("Try closing unnecessary tabs to reduce distractions")
    if raw < 50:
        suggestions.append("Consider using focus mode for deep work sessions")
    if unique > 8:
        suggestions.append("You have many active contexts. Consider archiving some.")
    if not suggestions:
        suggestions.append("Great focus today! Keep up the momentum.")

    return NeuroFlowScore(
        score=int(math.floor(raw + 0.5)),
        level=_level_for(raw, config),
        distractions=distractions,
        suggestions=suggestions,
        unique_workspaces=unique,
        total_switches=switches,
        recoveries=recovered,
    )


def focus_streak(
    days: Sequence[Sequence[ContextRow]],
    config: NeuroFlowConfig = DEFAULT_CONFIG,
) -> int:
    """A day with no contexts ends the streak, as does a scattered one."""
    streak = 0
    for contexts in list(days)[: config.streak_days]:
        if not contexts:
            break
        if len(contexts) > config.streak_max_switches:
            break
        if _unique_workspaces(contexts) > config.streak_max_unique:
            break
        streak += 1
    return streak


# ─────────────────────────────────────────────────────────────────────────────
# Service
# ─────────────────────────────────────────────────────────────────────────────

class NeuroFlowService:
    def __init__(
        self,
        store: ContextStore,
        *,
        tz: Optional[tzinfo] = None,
        clock: Callable[[], datetime] = utcnow,
        config: NeuroFlowConfig = DEFAULT_CONFIG,
    ):
        self.store = store
        self.tz = tz or ZoneInfo("UTC")
        self.clock = clock
        self.config = config

    def _days(self, user_id: str, now: datetime) -> List[List[ContextRow]]:
        today = as_utc(now).astimezone(self.tz).date()
        window = self.config.streak_days
        first_day = today - timedelta(days=window - 1)
        start = datetime.combine(first_day, time.min, tzinfo=self.tz)

        rows = self.store.query_contexts(user_id=user_id, captured_from=as_utc(start))
        buckets: Dict[int, List[ContextRow]] = {}
        for row in rows:
            context = ContextRow.model_validate(row)
            offset = (today - as_utc(context.captured_at).astimezone(self.tz).date()).days
            if 0 <= offset < window:
                buckets.setdefault(offset, []).append(context)
        return [buckets.get(i, []) for i in range(window)]

    def get_score(self, user_id: str, now: Optional[datetime] = None) -> NeuroFlowScore:
        if not user_id:
            raise InvalidInputError("userId is required")
        now = now or self.clock()
        days = self._days(user_id, now)
        result = score_contexts(days[0], self.config)

        if days[0]:
            try:
                streak = focus_streak(days, self.config)
            except Exception:
                logger.warning("Focus streak failed for %s; reporting 0", user_id, exc_info=True)
                streak = 0
            result = result.model_copy(update={"focus_streak": streak})

        try:
            self.store.set_user_focus_score(user_id, score=result.score, at=as_utc(now))
        except StoreError as e:
            logger.warning("Could not persist focus score for %s: %s", user_id, e)

        logger.info("Neuro-Flow for %s: %s (%s)", user_id, result.score, result.level)
        return result
