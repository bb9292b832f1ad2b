"""Capture helpers for each kind of source.

These wrap `BlipStore.capture` with consistent source metadata and turn
empty input into a failed result instead of an empty blip.
"""

from __future__ import annotations

import re

from pydantic import BaseModel

from .sources import (
    BlipSource,
    ClipperSource,
    DailyNoteSource,
    DiscordSource,
    ManualSource,
    ObsidianInboxSource,
)
from .store import BlipStore


class CaptureResult(BaseModel):
    success: bool
    blip_id: str | None = None
    error: str | None = None


def _capture(store: BlipStore, content: str, source: BlipSource, category: str | None) -> CaptureResult:
    if not content.strip():
        return CaptureResult(success=False, error="Empty content")
    blip = store.capture(content, source, category)
    return CaptureResult(success=True, blip_id=blip.id)


def capture_from_discord(
    store: BlipStore,
    content: str,
    channel_id: str,
    message_id: str,
    user_id: str,
    category: str | None = None,
) -> CaptureResult:
    source = DiscordSource(channel_id=channel_id, message_id=message_id, user_id=user_id)
    return _capture(store, content, source, category)


def capture_from_inbox(
    store: BlipStore,
    content: str,
    file_path: str,
    category: str | None = None,
) -> CaptureResult:
    return _capture(store, content, ObsidianInboxSource(file_path=file_path), category)


def capture_from_clipper(
    store: BlipStore,
    content: str,
    file_path: str,
    highlight_id: str,
    category: str | None = None,
) -> CaptureResult:
    source = ClipperSource(file_path=file_path, highlight_id=highlight_id)
    return _capture(store, content, source, category)


def capture_from_daily_note(
    store: BlipStore,
    content: str,
    date: str,
    category: str | None = None,
) -> CaptureResult:
    return _capture(store, content, DailyNoteSource(date=date), category)


def capture_manual(
    store: BlipStore,
    content: str,
    category: str | None = None,
    context: str | None = None,
) -> CaptureResult:
    return _capture(store, content, ManualSource(context=context), category)


# Checked in order; first match wins
_CATEGORY_RULES: list[tuple[str, re.Pattern[str]]] = [
    ("goal", re.compile(r"\b(want|goal|should|need to|must)\b")),
    ("todo", re.compile(r"\b(todo|task|do|finish|complete)\b")),
    ("quote", re.compile(r"^[\"'“]")),
    ("reference", re.compile(r"\b(article|book|paper|video|podcast)\b")),
    ("curiosity", re.compile(r"\b(wonder|curious|why|how)\b")),
    ("idea", re.compile(r"\b(idea|what if|could|maybe)\b")),
]


def guess_category(content: str) -> str:
    """Guess a category from keywords. Questions win over everything else."""
    lower = content.lower()
    if "?" in lower:
        return "question"
    for category, pattern in _CATEGORY_RULES:
        if pattern.search(lower):
            return category
    return "other"
