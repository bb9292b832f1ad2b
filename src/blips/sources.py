"""Where a blip came from.

Each origin is its own model carrying only its own fields; `BlipSource` is
the discriminated union over them. The colon-packed reference string exists
only at the storage boundary (`encode_source_ref` / `decode_source`).

Storage encoding (source_type -> source_ref):
    discord         channel_id:message_id:user_id
    obsidian-inbox  file_path
    clipper         file_path:highlight_id
    daily-note      date
    manual          context (omitted when there is none)
"""

from __future__ import annotations

from typing import Annotated, Literal, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import BaseModel, Field, field_validator


def _reject_colon(value: str) -> str:
    # ":" separates packed fields in source_ref
    if ":" in value:
        raise ValueError(f"':' is not allowed here: {value!r}")
    return value


class DiscordSource(BaseModel):
    """A message posted in a chat channel."""

    type: Literal["discord"] = "discord"
    channel_id: str
    message_id: str
    user_id: str

    @field_validator("channel_id", "message_id")
    @classmethod
    def _no_separator(cls, v: str) -> str:
        return _reject_colon(v)

    def identity(self) -> str | None:
        return f"discord:{self.channel_id}:{self.message_id}"


class ObsidianInboxSource(BaseModel):
    """A line taken from the vault's inbox note."""

    type: Literal["obsidian-inbox"] = "obsidian-inbox"
    file_path: str

    def identity(self) -> str | None:
        return None  # many blips per inbox file


class ClipperSource(BaseModel):
    """A highlight saved by the web clipper."""

    type: Literal["clipper"] = "clipper"
    file_path: str
    highlight_id: str

    @field_validator("highlight_id")
    @classmethod
    def _no_separator(cls, v: str) -> str:
        return _reject_colon(v)

    def identity(self) -> str | None:
        return f"clipper:{self.file_path}:{self.highlight_id}"


class DailyNoteSource(BaseModel):
    """A line pulled from a daily note."""

    type: Literal["daily-note"] = "daily-note"
    date: str

    def identity(self) -> str | None:
        return None


class ManualSource(BaseModel):
    """Typed in directly, with optional free-text context."""

    type: Literal["manual"] = "manual"
    context: str | None = None

    def identity(self) -> str | None:
        return None


BlipSource = Annotated[
    Union[DiscordSource, ObsidianInboxSource, ClipperSource, DailyNoteSource, ManualSource],
    Field(discriminator="type"),
]

SourceType = Literal["discord", "obsidian-inbox", "clipper", "daily-note", "manual"]


def encode_source_ref(source: BlipSource) -> str | None:
    """Pack a source into its stored reference string."""
    if isinstance(source, DiscordSource):
        return f"{source.channel_id}:{source.message_id}:{source.user_id}"
    if isinstance(source, ObsidianInboxSource):
        return source.file_path
    if isinstance(source, ClipperSource):
        return f"{source.file_path}:{source.highlight_id}"
    if isinstance(source, DailyNoteSource):
        return source.date
    return source.context


def decode_source(source_type: object, source_ref: object) -> BlipSource:
    """Rebuild a source from stored fields.

    Unknown or missing types fall back to a manual source whose context is
    the raw reference, so a record with odd source fields still loads.
    """
    ref = None if source_ref is None else str(source_ref)
    text = ref or ""

    if source_type == "discord":
        parts = text.split(":", 2)
        parts += [""] * (3 - len(parts))
        return DiscordSource(channel_id=parts[0], message_id=parts[1], user_id=parts[2])
    if source_type == "obsidian-inbox":
        return ObsidianInboxSource(file_path=text)
    if source_type == "clipper":
        file_path, sep, highlight_id = text.rpartition(":")
        if not sep:
            return ClipperSource(file_path=text, highlight_id="")
        return ClipperSource(file_path=file_path, highlight_id=highlight_id)
    if source_type == "daily-note":
        return DailyNoteSource(date=text)
    return ManualSource(context=ref)


# ─────────────────────────────────────────────────────────────────────────────
# Canonical source URLs
# ─────────────────────────────────────────────────────────────────────────────

_DROPPED_PARAMS = frozenset({
    "mcp_test",
    "gclid",
    "fbclid",
    "mc_cid",
    "mc_eid",
    "ref",
    "ref_src",
    "source",
})


def canonicalize_source_url(source: str) -> str:
    """Normalize a capture origin so duplicates share one key.

    Drops the fragment and tracking parameters (utm_*, click ids, ref,
    source, mcp_test), lower-cases scheme and host, and removes a trailing
    slash unless the path is just "/". Strings that are not absolute URLs
    are returned trimmed.
    """
    raw = (source or "").strip()
    if not raw:
        return ""

    try:
        parts = urlsplit(raw)
    except ValueError:
        return raw
    if not parts.scheme or not parts.netloc:
        return raw

    scheme = parts.scheme.lower()
    path = parts.path
    if not path and scheme in ("http", "https"):
        path = "/"

    params = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if not k.lower().startswith("utm_") and k not in _DROPPED_PARAMS
    ]

    canonical = urlunsplit((scheme, parts.netloc.lower(), path, urlencode(params), ""))
    if canonical.endswith("/") and path != "/":
        canonical = canonical[:-1]
    return canonical
