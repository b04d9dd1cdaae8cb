"""
resetai/services/distraction_service.py
---------------------------------------
Weighted-factor heuristics over an ActivitySnapshot.

  predict_distraction  — probability + risk level + triggers + recommendation
  detect_context_loss  — same factors, stronger idle weight, yes/no verdict

Both are pure: they read the snapshot and the clock, and touch no storage.
Every factor's contribution is capped on its own, scaled by sensitivity/10,
summed, clamped to [0, 1] and rounded to two decimals.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any, List, Mapping, Optional, Tuple, Union

from resetai.models.domain._time import utcnow
from resetai.models.domain.activity import (
    ActivitySnapshot,
    ContextLossDetection,
    DistractionPrediction,
    Trigger,
)

logger = logging.getLogger(__name__)

SnapshotLike = Union[ActivitySnapshot, Mapping[str, Any], None]

DEFAULT_SENSITIVITY = 5
MIN_SENSITIVITY = 1
MAX_SENSITIVITY = 10


@dataclass(frozen=True)
class FactorWeights:
    tab_switch_free: int = 5
    tab_switch_weight: float = 0.05
    tab_switch_cap: float = 0.30

    idle_min_minutes: float = 2
    idle_weight: float = 0.08
    idle_cap: float = 0.30

    domains_free: int = 5
    domains_weight: float = 0.04
    domains_cap: float = 0.20

    domain_change: float = 0.20

    back_scroll_min: int = 3
    back_scroll_weight: float = 0.05
    back_scroll_cap: float = 0.25

    afternoon_hours: Tuple[int, int] = (14, 16)
    afternoon: float = 0.10

    long_session_ms: float = 2 * 60 * 60 * 1000
    long_session: float = 0.15

    reread_min: int = 3          # fires strictly above
    reread: float = 0.10

    hesitation_free_s: float = 30
    hesitation_weight: float = 0.005
    hesitation_cap: float = 0.20


PREDICTION_WEIGHTS = FactorWeights()
DETECTION_WEIGHTS = FactorWeights(idle_weight=0.10, idle_cap=0.40)

DETECTION_THRESHOLD = 0.5


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def round_half_up(value: float, digits: int = 0) -> float:
    if not math.isfinite(value):
        return value
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def clamp_sensitivity(sensitivity: Optional[Any]) -> int:
    try:
        value = int(sensitivity) if sensitivity is not None else DEFAULT_SENSITIVITY
    except (TypeError, ValueError, OverflowError):
        logger.warning("Ignoring malformed sensitivity %r", sensitivity)
        value = DEFAULT_SENSITIVITY
    return max(MIN_SENSITIVITY, min(MAX_SENSITIVITY, value))


def _as_snapshot(snapshot: SnapshotLike) -> ActivitySnapshot:
    if isinstance(snapshot, ActivitySnapshot):
        return snapshot
    return ActivitySnapshot.lenient(snapshot)


def _local_hour(snapshot: ActivitySnapshot, now: Optional[datetime], tz: Optional[tzinfo]) -> int:
    if snapshot.local_hour is not None:
        return snapshot.local_hour
    moment = now or utcnow()
    if tz is not None:
        moment = moment.astimezone(tz)
    return moment.hour


def _back_scrolls(snapshot: ActivitySnapshot) -> int:
    positions = [s.position for s in snapshot.scroll_patterns]
    return sum(1 for prev, cur in zip(positions, positions[1:]) if cur < prev)


# ─────────────────────────────────────────────────────────────────────────────
# Factor evaluation
# ─────────────────────────────────────────────────────────────────────────────

def evaluate_factors(
    snapshot: ActivitySnapshot,
    weights: FactorWeights,
    sensitivity: int,
    hour: int,
) -> Tuple[float, List[Trigger]]:
    """Returns (unrounded probability in [0, 1], triggers in firing order)."""
    scale = sensitivity / 10
    triggers: List[Trigger] = []

    def fire(name: str, description: str, contribution: float) -> None:
        triggers.append(Trigger(name=name, description=description, impact=contribution * scale))

    switches = len(snapshot.recent_tab_switches)
    if switches > weights.tab_switch_free:
        fire(
            "Rapid tab switching",
            f"{switches} tab switches in the last minute",
            min(weights.tab_switch_cap, (switches - weights.tab_switch_free) * weights.tab_switch_weight),
        )

    idle_minutes = max(0.0, snapshot.idle_duration) / 60_000
    if idle_minutes > weights.idle_min_minutes:
        fire(
            "Extended idle time",
            f"{int(round_half_up(idle_minutes))} minutes of inactivity",
            min(weights.idle_cap, idle_minutes * weights.idle_weight),
        )

    if snapshot.unique_domains > weights.domains_free:
        fire(
            "Many different sites",
            f"{snapshot.unique_domains} different sites visited",
            min(weights.domains_cap, (snapshot.unique_domains - weights.domains_free) * weights.domains_weight),
        )

    if snapshot.domain_changed:
        fire("Domain switch", "Switched to a different website", weights.domain_change)

    back = _back_scrolls(snapshot)
    if back >= weights.back_scroll_min:
        fire(
            "Re-reading behavior",
            "Scrolling back to re-read content",
            min(weights.back_scroll_cap, back * weights.back_scroll_weight),
        )

    start, end = weights.afternoon_hours
    if start <= hour <= end:
        fire("Afternoon productivity dip", "Focus tends to drop mid-afternoon", weights.afternoon)

    if snapshot.session_duration > weights.long_session_ms:
        hours = snapshot.session_duration / 3_600_000
        fire("Long session without break", f"{hours:.1f} hours without a break", weights.long_session)

    if snapshot.reread_count > weights.reread_min:
        fire("Confusion detected", f"Re-read the same content {snapshot.reread_count} times", weights.reread)

    seconds = max(0.0, snapshot.time_since_last_interaction) / 1000
    if seconds > weights.hesitation_free_s:
        fire(
            "Hesitation detected",
            f"{int(round_half_up(seconds))} seconds without interaction",
            min(weights.hesitation_cap, (seconds - weights.hesitation_free_s) * weights.hesitation_weight),
        )

    probability = max(0.0, min(1.0, sum(t.impact for t in triggers)))
    return probability, triggers


# ─────────────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────────────

def predict_distraction(
    snapshot: SnapshotLike,
    sensitivity: Optional[Any] = DEFAULT_SENSITIVITY,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
    weights: FactorWeights = PREDICTION_WEIGHTS,
) -> DistractionPrediction:
    snap = _as_snapshot(snapshot)
    now = now or utcnow()
    probability, triggers = evaluate_factors(
        snap, weights, clamp_sensitivity(sensitivity), _local_hour(snap, now, tz)
    )

    if probability > 0.7:
        risk, recommendation = "High", "High distraction risk. Consider taking a short break or entering focus mode."
    elif probability > 0.4:
        risk, recommendation = "Medium", "Moderate distraction risk. Stay aware of your focus."
    else:
        risk, recommendation = "Low", "Focus looks good. Keep up the momentum!"

    return DistractionPrediction(
        probability=round_half_up(probability, 2),
        risk_level=risk,
        triggers=triggers,
        recommendation=recommendation,
        timestamp=int(now.timestamp() * 1000),
    )


def detect_context_loss(
    snapshot: SnapshotLike,
    sensitivity: Optional[Any] = DEFAULT_SENSITIVITY,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
    weights: FactorWeights = DETECTION_WEIGHTS,
) -> ContextLossDetection:
    snap = _as_snapshot(snapshot)
    probability, factors = evaluate_factors(
        snap, weights, clamp_sensitivity(sensitivity), _local_hour(snap, now, tz)
    )
    detected = probability >= DETECTION_THRESHOLD
    if probability >= 0.7:
        confidence = "high"
    elif probability >= 0.4:
        confidence = "medium"
    else:
        confidence = "low"

    return ContextLossDetection(
        detected=detected,
        probability=round_half_up(probability, 2),
        confidence=confidence,
        factors=factors,
        recommendation="Consider showing context recovery prompt" if detected else "No action needed",
    )
