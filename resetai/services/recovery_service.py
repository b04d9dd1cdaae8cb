"""
resetai/services/recovery_service.py
------------------------------------
Templated recovery prompts for captured contexts.

  generate_recovery      — summary / key points / next steps for one context,
                           dispatched on its ActivityType. Never raises.
  deep_cognitive_resume  — narrative over the user's most recent contexts after
                           an absence. Never raises.
  ResumeService          — reads the recent contexts from the store and feeds
                           deep_cognitive_resume.

Import
------
    from resetai.services.recovery_service import (
        generate_recovery, deep_cognitive_resume, ResumeService,
    )
"""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple, assert_never
from urllib.parse import urlsplit

from resetai.models.domain.context import ActivityType, ContextRow
from resetai.models.domain.recovery import (
    CognitiveResume,
    RecoverySummary,
    ResumeInsights,
    Workspace,
)
from resetai.services.errors import InvalidInputError
from resetai.services.url_normalizer import domain_of
from resetai.store.base import ContextStore

logger = logging.getLogger(__name__)

JsonDict = Dict[str, Any]

_EXCERPT_CHARS = 100
_RESUME_WORKSPACES = 5

# third path segment on github.com → (key point, next step)
_GITHUB_ACTIVITIES: Dict[str, Tuple[str, str]] = {
    "pull": ("Reviewing a pull request", "Complete code review"),
    "issues": ("Working on an issue", "Continue issue resolution"),
    "blob": ("Viewing source code", "Continue code review"),
}


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _path_segments(url: str) -> List[str]:
    try:
        path = urlsplit(url).path
    except ValueError:
        return []
    return [s for s in path.split("/") if s]


def _first_heading(metadata: JsonDict) -> Optional[str]:
    headings = metadata.get("headings") if isinstance(metadata, dict) else None
    if not isinstance(headings, (list, tuple)) or not headings:
        return None
    first = str(headings[0] or "").strip()
    return first or None


def _excerpt(text: str) -> str:
    return text.strip()[:_EXCERPT_CHARS] + "..."


# ─────────────────────────────────────────────────────────────────────────────
# Per-type templates
# ─────────────────────────────────────────────────────────────────────────────

def _code_summary(title: str, url: str, metadata: JsonDict) -> RecoverySummary:
    domain = domain_of(url)
    summary = f"Working on code at {domain}"
    key_points: List[str] = []
    next_steps: List[str] = []

    if domain == "github.com":
        segments = _path_segments(url)
        repo_label = None
        if len(segments) >= 2:
            repo_label = f"{segments[0]}/{segments[1]}"
            summary = f"Working on {repo_label}"
            key_points.append(f"Repository: {segments[1]}")
        activity = _GITHUB_ACTIVITIES.get(segments[2]) if len(segments) >= 3 else None
        if activity:
            label, step = activity
            key_points.append(label)
            next_steps.append(step)
            if repo_label:
                summary = f"{label} in {repo_label}"
    elif domain.endswith("stackoverflow.com"):
        summary = "Researching a coding solution"
        key_points.append("Looking up Stack Overflow")
        next_steps.append("Apply the solution to your code")

    heading = _first_heading(metadata)
    if heading:
        key_points.append(f"Topic: {heading}")

    if not key_points:
        key_points.append(f"Page: {title}")
    if not next_steps:
        next_steps.append("Continue your coding task")
    return RecoverySummary(summary=summary, key_points=key_points, next_steps=next_steps)


def _document_summary(title: str, url: str, metadata: JsonDict) -> RecoverySummary:
    domain = domain_of(url)
    summary = f"Editing document: {title}"
    key_points = [f"Document: {title}"]
    next_steps = ["Continue editing your document"]

    if domain == "docs.google.com":
        summary = f"Working in Google Docs: {title}"
        segments = _path_segments(url)
        if "spreadsheets" in segments:
            key_points.append("Google Sheet")
            next_steps[0] = "Continue your spreadsheet work"
        elif "presentation" in segments:
            key_points.append("Google Slides")
            next_steps[0] = "Continue your presentation"
    elif domain.endswith("notion.so"):
        summary = f"Working in Notion: {title}"
        key_points.append("Notion page")

    return RecoverySummary(summary=summary, key_points=key_points, next_steps=next_steps)


def _note_summary(title: str, url: str, metadata: JsonDict) -> RecoverySummary:
    return RecoverySummary(
        summary=f"Taking notes: {title}",
        key_points=[f"Note: {title}"],
        next_steps=["Continue adding to your notes"],
    )


def _video_summary(title: str, url: str, metadata: JsonDict) -> RecoverySummary:
    return RecoverySummary(
        summary=f"Watching video: {title}",
        key_points=[f"Video: {title}"],
        next_steps=["Continue watching or take notes"],
    )


def _email_summary(title: str, url: str, metadata: JsonDict) -> RecoverySummary:
    return RecoverySummary(
        summary=f"Email: {title}",
        key_points=["Managing email"],
        next_steps=["Respond or follow up on email"],
    )


def _tab_summary(title: str, url: str, metadata: JsonDict) -> RecoverySummary:
    key_points = [f"Site: {domain_of(url)}"]
    heading = _first_heading(metadata)
    if heading:
        key_points.append(f"Topic: {heading}")
    return RecoverySummary(
        summary=f"Browsing: {title}",
        key_points=key_points,
        next_steps=["Continue reading"],
    )


def _summary_for(activity_type: ActivityType, title: str, url: str, metadata: JsonDict) -> RecoverySummary:
    if activity_type is ActivityType.CODE:
        return _code_summary(title, url, metadata)
    if activity_type is ActivityType.DOCUMENT:
        return _document_summary(title, url, metadata)
    if activity_type is ActivityType.NOTE:
        return _note_summary(title, url, metadata)
    if activity_type is ActivityType.VIDEO:
        return _video_summary(title, url, metadata)
    if activity_type is ActivityType.EMAIL:
        return _email_summary(title, url, metadata)
    if activity_type is ActivityType.TAB:
        return _tab_summary(title, url, metadata)
    assert_never(activity_type)


# ─────────────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────────────

def generate_recovery(context: ContextRow) -> RecoverySummary:
    """
    Build the recovery prompt for one context.

    Unknown activity types were already coerced to "tab" when the row was
    validated. Any failure degrades to a generic prompt so the caller can
    always populate summary / key_points / next_steps.
    """
    title = "a page"
    try:
        title = context.title or "Untitled"
        result = _summary_for(context.type, title, context.url or "", context.page_metadata or {})
        if context.selected_text:
            result.key_points.append(f'Selected text: "{_excerpt(context.selected_text)}"')
        return result
    except Exception:
        logger.exception("Recovery generation failed for context %s", getattr(context, "id", "?"))
        return RecoverySummary(
            summary=f"You were viewing: {title}",
            key_points=["Continue where you left off"],
            next_steps=["Review your previous work"],
        )


def _absence_label(absence_ms: Optional[float]) -> str:
    if absence_ms is None or not math.isfinite(absence_ms):
        absence_ms = 0
    ms = max(0, int(absence_ms))
    hours = ms // 3_600_000
    if hours > 0:
        return f"{hours} hours"
    return f"{ms // 60_000} minutes"


def _purpose(contexts: Sequence[ContextRow]) -> str:
    types = [c.type for c in contexts]
    if ActivityType.CODE in types:
        return "You were likely debugging or implementing a feature"
    if ActivityType.DOCUMENT in types:
        return "You were working on documentation or writing"
    if types.count(ActivityType.TAB) > 3:
        return "You were researching across multiple sources"
    return "Based on your workflow pattern"


def deep_cognitive_resume(
    contexts: Optional[Sequence[ContextRow]],
    absence_ms: Optional[float] = 0,
) -> CognitiveResume:
    """contexts[0] is treated as the primary (most recently visited) one."""
    label = _absence_label(absence_ms)
    if not contexts:
        return CognitiveResume(
            what_you_were_doing="No recent activity found",
            why_you_were_doing_it="Start a new task",
            next_logical_step="Begin your work session",
            absence_duration=label,
            workspaces=[],
            confidence="low",
        )

    primary = contexts[0]
    domains = {domain_of(c.url) for c in contexts}
    return CognitiveResume(
        what_you_were_doing=primary.summary or primary.title or "Working on multiple tasks",
        why_you_were_doing_it=_purpose(contexts),
        next_logical_step=primary.next_steps[0] if primary.next_steps else "Continue where you left off",
        absence_duration=label,
        workspaces=[
            Workspace(title=c.title, type=c.type.value, url=c.url, visit_count=c.visit_count or 1)
            for c in contexts[:_RESUME_WORKSPACES]
        ],
        insights=ResumeInsights(
            unique_domains=len(domains),
            total_workspaces=len(contexts),
            recovered_count=sum(1 for c in contexts if c.is_recovered),
        ),
        confidence="high" if len(contexts) > 3 else "medium",
    )


# ─────────────────────────────────────────────────────────────────────────────
# Service
# ─────────────────────────────────────────────────────────────────────────────

class ResumeService:
    def __init__(self, store: ContextStore):
        self.store = store

    def get_resume(self, user_id: str, absence_ms: Optional[float] = 0) -> CognitiveResume:
        if not user_id:
            raise InvalidInputError("userId is required")
        rows = self.store.query_contexts(
            user_id=user_id,
            include_archived=False,
            order_by="last_visited",
            limit=_RESUME_WORKSPACES,
        )
        contexts = [ContextRow.model_validate(r) for r in rows]
        return deep_cognitive_resume(contexts, absence_ms)
