"""Core data models for blips.

Uses Pydantic v2 for validation, ULID for sortable unique IDs.

A blip moves through a small lifecycle:

    captured --(add_note)--> incubating
    captured|incubating|active --(snooze)--> incubating
    captured|incubating|active --(archive)--> archived      [terminal]
    captured|incubating|active --(promote)--> promoted      [terminal]
    any --(mark_surfaced)--> same state

Mutating methods here only change the in-memory record; persisting is the
store's job.
"""

import re
from datetime import datetime, timedelta
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator
from ulid import ULID

from .constants import NOTES_HEADING
from .sources import BlipSource, ManualSource
from .timeutil import parse_timestamp, utc_now


def generate_id() -> str:
    """Generate a ULID (sortable, unique identifier)."""
    return str(ULID())


BlipState = Literal[
    "captured",    # just captured, not yet processed
    "incubating",  # being held for later surfacing
    "active",      # currently being worked on
    "archived",    # done, kept for reference
    "promoted",    # turned into a goal/project/task/note elsewhere
]

TERMINAL_STATES = frozenset({"archived", "promoted"})

BlipMove = Literal[
    "elaborate",  # add more detail
    "question",   # ask a clarifying question
    "connect",    # link to another blip or vault note
    "schedule",   # set when to resurface
    "promote",    # move to vault as goal/project/task
    "archive",    # done with this blip
    "incubate",   # put aside for later
    "snooze",     # don't show for a while
]

PromotionType = Literal["goal", "project", "task", "note"]

BLIP_CATEGORIES = ("idea", "question", "goal", "todo", "quote", "reference", "curiosity", "other")

_RESERVED_HEADING = re.compile(rf"^{re.escape(NOTES_HEADING)}[^\S\n]*$", re.MULTILINE)


class InvalidTransitionError(ValueError):
    """Raised when a lifecycle transition leaves a terminal state."""


def _str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def _dedupe(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


class PromotedTo(BaseModel):
    """Where a promoted blip went."""

    type: PromotionType
    vault_path: str = Field(validation_alias=AliasChoices("vault_path", "vaultPath"))
    promoted_at: datetime = Field(
        default_factory=utc_now,
        validation_alias=AliasChoices("promoted_at", "promotedAt"),
    )

    @field_validator("promoted_at", mode="before")
    @classmethod
    def _coerce_promoted_at(cls, v: Any) -> Any:
        return parse_timestamp(v) or v


class Blip(BaseModel):
    """A small captured note awaiting further processing."""

    id: str = Field(default_factory=generate_id)
    content: str
    source: BlipSource = Field(default_factory=ManualSource)
    state: BlipState = "captured"
    category: str | None = None

    captured_at: datetime = Field(default_factory=utc_now)
    last_updated_at: datetime | None = None
    last_surfaced_at: datetime | None = None

    surface_count: int = Field(default=0, ge=0)
    next_surface_after: datetime | None = None  # snoozed until

    tags: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)
    linked_blips: list[str] = Field(default_factory=list)
    linked_vault_paths: list[str] = Field(default_factory=list)

    promoted_to: PromotedTo | None = None

    # Frontmatter keys this model does not own; written back untouched
    extra: dict[str, Any] = Field(default_factory=dict)

    @field_validator("captured_at", mode="before")
    @classmethod
    def _coerce_captured_at(cls, v: Any) -> Any:
        parsed = parse_timestamp(v)
        if parsed is None:
            raise ValueError(f"Invalid capture timestamp: {v!r}")
        return parsed

    @field_validator("last_updated_at", "last_surfaced_at", "next_surface_after", mode="before")
    @classmethod
    def _coerce_optional_timestamp(cls, v: Any) -> datetime | None:
        # Unparseable optional timestamps are dropped so the blip stays usable
        return parse_timestamp(v)

    @field_validator("tags", "linked_blips", "linked_vault_paths", mode="before")
    @classmethod
    def _coerce_unique_list(cls, v: Any) -> list[str]:
        return _dedupe(_str_list(v))

    @field_validator("notes", mode="before")
    @classmethod
    def _coerce_notes(cls, v: Any) -> list[str]:
        # Stored notes are trimmed bullets; blank ones cannot be written
        notes = (note.strip() for note in _str_list(v))
        return [note for note in notes if note]

    @field_validator("content")
    @classmethod
    def _normalize_content(cls, v: str) -> str:
        v = v.strip()
        if _RESERVED_HEADING.search(v):
            raise ValueError(f"Content may not contain a '{NOTES_HEADING}' heading line")
        return v

    @field_validator("extra")
    @classmethod
    def _drop_empty_extra(cls, v: dict[str, Any]) -> dict[str, Any]:
        return {k: val for k, val in v.items() if val is not None}

    @model_validator(mode="after")
    def _check_promotion(self) -> "Blip":
        if (self.state == "promoted") != (self.promoted_to is not None):
            raise ValueError("promoted_to must be set exactly when state is 'promoted'")
        return self

    # ─────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def touch(self, now: datetime | None = None) -> None:
        self.last_updated_at = now or utc_now()

    def _require_open(self, target: BlipState) -> None:
        if self.is_terminal and self.state != target:
            raise InvalidTransitionError(
                f"Blip {self.id} is {self.state}; cannot move to {target}"
            )

    def transition(self, state: BlipState, now: datetime | None = None) -> None:
        """Move to a new state. Promotion has its own method."""
        if state == "promoted":
            raise ValueError("Use promote() to promote a blip")
        self._require_open(state)
        self.state = state
        self.touch(now)

    def add_note(self, note: str, now: datetime | None = None) -> None:
        """Append a note. The first engagement moves captured -> incubating."""
        note = note.strip()
        if not note:
            raise ValueError("Note is empty")
        self.notes.append(note)
        if self.state == "captured":
            self.state = "incubating"
        self.touch(now)

    def snooze(self, days: float, now: datetime | None = None) -> None:
        now = now or utc_now()
        self._require_open("incubating")
        self.next_surface_after = now + timedelta(days=days)
        self.state = "incubating"
        self.touch(now)

    def archive(self, now: datetime | None = None) -> None:
        self.transition("archived", now)

    def promote(
        self,
        promotion_type: PromotionType,
        vault_path: str,
        now: datetime | None = None,
    ) -> None:
        now = now or utc_now()
        self._require_open("promoted")
        self.promoted_to = PromotedTo(type=promotion_type, vault_path=vault_path, promoted_at=now)
        self.state = "promoted"
        self.touch(now)

    def mark_surfaced(self, now: datetime | None = None) -> None:
        """Record that the blip was shown. Not a transition."""
        self.surface_count += 1
        self.last_surfaced_at = now or utc_now()

    # ─────────────────────────────────────────────────────────────────────
    # Tags and links
    # ─────────────────────────────────────────────────────────────────────

    def add_tags(self, tags: list[str], now: datetime | None = None) -> bool:
        """Add tags not already present. Returns True if anything changed."""
        new = [t for t in _dedupe(tags) if t and t not in self.tags]
        if not new:
            return False
        self.tags.extend(new)
        self.touch(now)
        return True

    def link(self, other_id: str, now: datetime | None = None) -> bool:
        """Record a link to another blip (one side only)."""
        if other_id == self.id:
            raise ValueError("A blip cannot link to itself")
        if other_id in self.linked_blips:
            return False
        self.linked_blips.append(other_id)
        self.touch(now)
        return True

    def link_vault(self, vault_path: str, now: datetime | None = None) -> bool:
        if vault_path in self.linked_vault_paths:
            return False
        self.linked_vault_paths.append(vault_path)
        self.touch(now)
        return True

    def to_summary(self) -> dict:
        """Return a compact summary of this blip."""
        return {
            "id": self.id,
            "state": self.state,
            "category": self.category,
            "content": self.content[:80],
            "note_count": len(self.notes),
            "captured_at": self.captured_at.isoformat(),
        }


class IndexEntry(BaseModel):
    """Frontmatter-only view of a blip, cheap to build for every file."""

    id: str
    state: BlipState = "captured"
    category: str | None = None
    summary: str = ""
    tags: list[str] = Field(default_factory=list)
    captured: datetime
    surfaced: datetime | None = None

    @field_validator("captured", mode="before")
    @classmethod
    def _coerce_captured(cls, v: Any) -> Any:
        parsed = parse_timestamp(v)
        if parsed is None:
            raise ValueError(f"Invalid capture timestamp: {v!r}")
        return parsed

    @field_validator("surfaced", mode="before")
    @classmethod
    def _coerce_surfaced(cls, v: Any) -> datetime | None:
        return parse_timestamp(v)

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, v: Any) -> list[str]:
        return _dedupe(_str_list(v))


class SurfaceResult(BaseModel):
    """A blip picked for resurfacing, with why and what to do next."""

    blip: Blip
    reason: str
    score: int
    suggested_moves: list[BlipMove]


class BlipStats(BaseModel):
    total: int = 0
    by_state: dict[str, int] = Field(default_factory=dict)
    by_category: dict[str, int] = Field(default_factory=dict)
