"""Surfacing: pick which blips deserve another look.

This is a priority heuristic, not a correctness-critical ordering. Each
candidate starts at 0 and collects points:

    never surfaced            +100   "New blip"
    otherwise                 +10/day since last surfaced   "Not seen in N days"
    captured < 24h ago        +50    "Recently captured"
    state == active           +30    "Active blip"
    has notes                 +20
    surfaced fewer than 3x    +15

Later reasons overwrite earlier ones. Ties keep their input order.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from .constants import (
    CONNECT_AFTER_NOTES,
    DEFAULT_SURFACE_LIMIT,
    LOW_SURFACE_COUNT,
    MAX_SUGGESTED_MOVES,
    PROMOTE_AFTER_SURFACES,
    RECENT_CAPTURE_HOURS,
    SCORE_ACTIVE,
    SCORE_HAS_NOTES,
    SCORE_LOW_SURFACE_COUNT,
    SCORE_NEVER_SURFACED,
    SCORE_PER_DAY_UNSEEN,
    SCORE_RECENTLY_CAPTURED,
    SECONDS_PER_DAY,
    SECONDS_PER_HOUR,
    SURFACEABLE_STATES,
)
from .models import Blip, BlipMove, SurfaceResult
from .timeutil import utc_now


def is_surfaceable(blip: Blip, now: datetime) -> bool:
    """Open state and not snoozed past `now`."""
    if blip.state not in SURFACEABLE_STATES:
        return False
    if blip.next_surface_after is not None and blip.next_surface_after > now:
        return False
    return True


def score_blip(blip: Blip, now: datetime) -> tuple[int, str]:
    """Return (score, reason) for one candidate."""
    score = 0

    if blip.last_surfaced_at is None:
        score += SCORE_NEVER_SURFACED
        reason = "New blip"
    else:
        days = int((now - blip.last_surfaced_at).total_seconds() // SECONDS_PER_DAY)
        score += days * SCORE_PER_DAY_UNSEEN
        reason = f"Not seen in {days} days"

    hours_since_capture = (now - blip.captured_at).total_seconds() // SECONDS_PER_HOUR
    if hours_since_capture < RECENT_CAPTURE_HOURS:
        score += SCORE_RECENTLY_CAPTURED
        reason = "Recently captured"

    if blip.state == "active":
        score += SCORE_ACTIVE
        reason = "Active blip"

    if blip.notes:
        score += SCORE_HAS_NOTES

    if blip.surface_count < LOW_SURFACE_COUNT:
        score += SCORE_LOW_SURFACE_COUNT

    return score, reason


def suggest_moves(blip: Blip) -> list[BlipMove]:
    """Suggested next moves, most specific first, at most four."""
    moves: list[BlipMove] = ["elaborate", "snooze", "archive"]

    if blip.surface_count >= PROMOTE_AFTER_SURFACES:
        moves.insert(0, "promote")
    if blip.state == "captured":
        moves.insert(0, "question")
    if len(blip.notes) >= CONNECT_AFTER_NOTES:
        moves.insert(0, "connect")

    return moves[:MAX_SUGGESTED_MOVES]


def rank_blips(
    blips: list[Blip],
    limit: int = DEFAULT_SURFACE_LIMIT,
    now: datetime | None = None,
) -> list[SurfaceResult]:
    """Filter, score and rank blips; return the top `limit`."""
    now = now or utc_now()
    scored = []
    for blip in blips:
        if not is_surfaceable(blip, now):
            continue
        score, reason = score_blip(blip, now)
        scored.append((score, reason, blip))

    # sorted() is stable, so equal scores keep input order
    scored = sorted(scored, key=lambda item: item[0], reverse=True)

    return [
        SurfaceResult(blip=blip, reason=reason, score=score, suggested_moves=suggest_moves(blip))
        for score, reason, blip in scored[:max(limit, 0)]
    ]


class SurfacingEngine:
    """Ranks blips supplied by a callable, usually `BlipStore.all`."""

    def __init__(
        self,
        get_blips: Callable[[], list[Blip]],
        clock: Callable[[], datetime] = utc_now,
    ):
        self._get_blips = get_blips
        self._clock = clock

    def get_surfaceable(
        self,
        limit: int = DEFAULT_SURFACE_LIMIT,
        now: datetime | None = None,
    ) -> list[SurfaceResult]:
        return rank_blips(self._get_blips(), limit=limit, now=now or self._clock())
