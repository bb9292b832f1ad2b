"""File-per-blip store.

Layout:
    <blips_dir>/
        <id>.md          # frontmatter + content + optional "## Notes" section

Every write goes to a temp file in the same directory and is renamed over
the target, so a crash never leaves a half-written record under its final
name. Reads are tolerant: a missing or corrupt file is "not found" for
single lookups and is skipped (with a warning) for bulk listing.

The store keeps no in-memory cache; each call reads what is on disk. It is
meant for one process at a time. Callers that mutate the same id from
several threads must serialize those calls themselves.

Links between blips are not cascaded on delete. Resolve them lazily with
`resolve_links()`.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from .constants import (
    BLIP_FILE_SUFFIX,
    CONTEXT_SUMMARY_CHARS,
    DEFAULT_RECENT_LIMIT,
    DEFAULT_SURFACE_LIMIT,
    INDEX_SUMMARY_CHARS,
    NOTES_HEADING,
)
from .frontmatter import DELIMITER, parse_frontmatter, serialize_frontmatter
from .models import (
    Blip,
    BlipState,
    BlipStats,
    IndexEntry,
    PromotedTo,
    PromotionType,
    SurfaceResult,
)
from .sources import BlipSource, ManualSource, decode_source, encode_source_ref
from .surfacing import SurfacingEngine
from .timeutil import format_timestamp, utc_now

logger = logging.getLogger(__name__)

# Frontmatter keys owned by the store; anything else is carried in Blip.extra
OWNED_KEYS = (
    "id",
    "state",
    "category",
    "captured",
    "surfaced",
    "updated",
    "surface_count",
    "next_surface",
    "tags",
    "source_type",
    "source_ref",
    "linked_blips",
    "linked_vault",
    "promoted_to",
)


# ─────────────────────────────────────────────────────────────────────────────
# Atomic file writes
# ─────────────────────────────────────────────────────────────────────────────


def _stage(path: Path, text: str) -> Path:
    """Write text to a temp file next to `path` and return the temp path."""
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    return tmp


def write_atomic(path: Path, text: str) -> None:
    """Replace `path` with `text` via temp file + rename."""
    _stage(path, text).replace(path)


def write_many_atomic(items: list[tuple[Path, str]]) -> None:
    """Stage every file first, then rename them all.

    If any staging write fails nothing is renamed.
    """
    staged: list[tuple[Path, Path]] = []
    try:
        for path, text in items:
            staged.append((_stage(path, text), path))
    except BaseException:
        for tmp, _ in staged:
            tmp.unlink(missing_ok=True)
        raise
    for tmp, path in staged:
        tmp.replace(path)


# ─────────────────────────────────────────────────────────────────────────────
# Record <-> document
# ─────────────────────────────────────────────────────────────────────────────


def _is_notes_heading(line: str) -> bool:
    return line.rstrip() == NOTES_HEADING


def render_body(content: str, notes: list[str]) -> str:
    """Content, then a "## Notes" bullet list. Multi-line notes are indented."""
    if not notes:
        return content

    lines = [NOTES_HEADING]
    for note in notes:
        first, *rest = note.split("\n")
        lines.append(f"- {first}")
        lines.extend(f"  {line}" if line else "" for line in rest)

    notes_block = "\n".join(lines)
    return f"{content}\n\n{notes_block}" if content else notes_block


def _parse_notes(lines: list[str]) -> list[str]:
    notes: list[list[str]] = []
    for line in lines:
        if line.startswith("- ") or line == "-":
            notes.append([line[2:]])
        elif notes:
            notes[-1].append(line[2:] if line.startswith("  ") else line)
    parsed = ("\n".join(note).strip() for note in notes)
    return [note for note in parsed if note]


def split_body(body: str) -> tuple[str, list[str]]:
    """Recover (content, notes) from a stored body.

    The notes section runs from the "## Notes" heading to the next "## "
    heading or the end. Text outside it, before or after, is content.
    """
    lines = body.split("\n")
    start = next((i for i, line in enumerate(lines) if _is_notes_heading(line)), None)
    if start is None:
        return body.strip(), []

    end = next(
        (j for j in range(start + 1, len(lines)) if lines[j].startswith("## ")),
        len(lines),
    )
    notes = _parse_notes(lines[start + 1:end])
    before = "\n".join(lines[:start]).strip()
    after = "\n".join(lines[end:]).strip()
    content = "\n\n".join(part for part in (before, after) if part)
    return content, notes


def _opt_str(value: Any) -> str | None:
    return str(value) if value is not None else None


def _opt_timestamp(dt: datetime | None) -> str | None:
    return format_timestamp(dt) if dt is not None else None


def render_blip(blip: Blip) -> str:
    """Serialize a blip to its on-disk document."""
    metadata: dict[str, Any] = {
        "id": blip.id,
        "state": blip.state,
        "category": blip.category,
        "captured": format_timestamp(blip.captured_at),
        "surfaced": _opt_timestamp(blip.last_surfaced_at),
        "updated": _opt_timestamp(blip.last_updated_at),
        "surface_count": blip.surface_count,
        "next_surface": _opt_timestamp(blip.next_surface_after),
        "tags": blip.tags or None,
        "source_type": blip.source.type,
        "source_ref": encode_source_ref(blip.source),
        "linked_blips": blip.linked_blips or None,
        "linked_vault": blip.linked_vault_paths or None,
        "promoted_to": (
            json.dumps(blip.promoted_to.model_dump(mode="json"))
            if blip.promoted_to is not None
            else None
        ),
    }
    for key, value in blip.extra.items():
        if key not in metadata:
            metadata[key] = value

    return serialize_frontmatter(metadata, render_body(blip.content, blip.notes))


def _parse_promoted_to(value: Any) -> PromotedTo | None:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = json.loads(value)
    return PromotedTo.model_validate(value)


def parse_blip(raw: str, fallback_id: str) -> Blip:
    """Parse an on-disk document into a Blip.

    The file's base name is the id; a differing frontmatter id is ignored.

    Raises:
        ValueError: If the document has no frontmatter or fails validation
    """
    metadata, body = parse_frontmatter(raw)
    if not metadata:
        raise ValueError("Missing frontmatter")

    stored_id = metadata.get("id")
    if stored_id is not None and str(stored_id) != fallback_id:
        logger.debug(f"Frontmatter id {stored_id!r} differs from file name {fallback_id!r}")

    content, notes = split_body(body)

    return Blip(
        id=fallback_id,
        content=content,
        source=decode_source(metadata.get("source_type"), metadata.get("source_ref")),
        state=metadata.get("state") or "captured",
        category=_opt_str(metadata.get("category")),
        captured_at=metadata.get("captured"),
        last_surfaced_at=metadata.get("surfaced"),
        last_updated_at=metadata.get("updated"),
        surface_count=metadata.get("surface_count") or 0,
        next_surface_after=metadata.get("next_surface"),
        tags=metadata.get("tags"),
        notes=notes,
        linked_blips=metadata.get("linked_blips"),
        linked_vault_paths=metadata.get("linked_vault"),
        promoted_to=_parse_promoted_to(metadata.get("promoted_to")),
        extra={k: v for k, v in metadata.items() if k not in OWNED_KEYS},
    )


def _is_safe_id(blip_id: str) -> bool:
    return bool(blip_id) and not (
        blip_id.startswith(".")
        or "/" in blip_id
        or "\\" in blip_id
        or "\x00" in blip_id
    )


class BlipStore:
    """Markdown-file-backed blip store.

    Construct one per data directory and pass it to whoever needs it.
    """

    def __init__(self, blips_dir: Path | str, clock: Callable[[], datetime] = utc_now):
        """Initialize the store.

        Args:
            blips_dir: Directory holding one <id>.md file per blip
            clock: Returns "now"; injectable for tests
        """
        self.blips_dir = Path(blips_dir)
        self.blips_dir.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._surfacing = SurfacingEngine(self.all, clock)

    # ─────────────────────────────────────────────────────────────────────────
    # Paths
    # ─────────────────────────────────────────────────────────────────────────

    def _blip_path(self, blip_id: str) -> Path | None:
        if not _is_safe_id(blip_id):
            return None
        return self.blips_dir / f"{blip_id}{BLIP_FILE_SUFFIX}"

    def _list_blip_files(self) -> list[Path]:
        try:
            return sorted(
                p for p in self.blips_dir.iterdir()
                if p.suffix == BLIP_FILE_SUFFIX and not p.name.startswith(".") and p.is_file()
            )
        except OSError as e:
            logger.warning(f"Cannot list blips in {self.blips_dir}: {e}")
            return []

    # ─────────────────────────────────────────────────────────────────────────
    # Read
    # ─────────────────────────────────────────────────────────────────────────

    def _load(self, path: Path) -> Blip | None:
        try:
            return parse_blip(path.read_text(encoding="utf-8"), path.stem)
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, ValueError) as e:
            # ValidationError and JSONDecodeError are both ValueErrors
            logger.warning(f"Skipping malformed blip file {path.name}: {e}")
            return None

    def find_by_id(self, blip_id: str) -> Blip | None:
        """Load one blip. Missing or corrupt files return None."""
        path = self._blip_path(blip_id)
        if path is None:
            return None
        return self._load(path)

    def exists(self, blip_id: str) -> bool:
        path = self._blip_path(blip_id)
        return path is not None and path.exists()

    def all(self) -> list[Blip]:
        """Load every blip. Reads every file in full; prefer build_index()."""
        blips = []
        for path in self._list_blip_files():
            blip = self._load(path)
            if blip is not None:
                blips.append(blip)
        return blips

    def _read_head(self, path: Path) -> tuple[dict[str, Any], str]:
        """Read frontmatter plus just enough body for a summary."""
        with path.open(encoding="utf-8") as f:
            first = f.readline()
            if first.strip() != DELIMITER:
                return {}, ""
            header = [first]
            while True:
                line = f.readline()
                if not line:
                    return {}, ""
                header.append(line)
                if line.strip() == DELIMITER:
                    break

            metadata, _ = parse_frontmatter("".join(header))

            body = ""
            while len(body.lstrip()) < INDEX_SUMMARY_CHARS:
                chunk = f.read(INDEX_SUMMARY_CHARS)
                if not chunk:
                    break
                body += chunk

        summary = body.strip()[:INDEX_SUMMARY_CHARS].replace("\n", " ").strip()
        return metadata, summary

    def build_index(self) -> list[IndexEntry]:
        """Lightweight index from frontmatter only, newest capture first."""
        entries = []
        for path in self._list_blip_files():
            try:
                metadata, summary = self._read_head(path)
                if not metadata:
                    raise ValueError("Missing frontmatter")
                entries.append(IndexEntry(
                    id=path.stem,
                    state=metadata.get("state") or "captured",
                    category=_opt_str(metadata.get("category")),
                    summary=summary,
                    tags=metadata.get("tags"),
                    captured=metadata.get("captured"),
                    surfaced=metadata.get("surfaced"),
                ))
            except (OSError, UnicodeDecodeError, ValueError) as e:
                logger.warning(f"Skipping malformed blip file {path.name}: {e}")

        return sorted(entries, key=lambda e: e.captured, reverse=True)

    def format_index_for_context(self, limit: int | None = None) -> str:
        """Render the index as a markdown table for an assistant prompt."""
        index = self.build_index()
        entries = index[:limit] if limit else index

        if not entries:
            return "## Blips\n\nNo blips yet."

        lines = [
            f"## Blips Index ({len(index)} total)",
            "",
            "| ID | State | Category | Summary | Tags |",
            "|----|-------|----------|---------|------|",
        ]
        for entry in entries:
            summary = entry.summary[:CONTEXT_SUMMARY_CHARS]
            if len(entry.summary) > CONTEXT_SUMMARY_CHARS:
                summary += "..."
            summary = summary.replace("|", "\\|")
            tags = ", ".join(entry.tags)
            lines.append(
                f"| {entry.id} | {entry.state} | {entry.category or '-'} | {summary} | {tags} |"
            )

        lines.extend(["", f"To read full blip: {self.blips_dir}/<id>{BLIP_FILE_SUFFIX}"])
        return "\n".join(lines)

    # ─────────────────────────────────────────────────────────────────────────
    # Write
    # ─────────────────────────────────────────────────────────────────────────

    def _save(self, blip: Blip) -> None:
        path = self._blip_path(blip.id)
        if path is None:
            raise ValueError(f"Unsafe blip id: {blip.id!r}")
        write_atomic(path, render_blip(blip))

    def _mutate(self, blip_id: str, change: Callable[[Blip], Any]) -> bool:
        """Load, apply `change`, persist. False if the blip does not exist."""
        blip = self.find_by_id(blip_id)
        if blip is None:
            return False
        change(blip)
        self._save(blip)
        return True

    def capture(
        self,
        content: str,
        source: BlipSource | None = None,
        category: str | None = None,
    ) -> Blip:
        """Create and persist a new blip.

        Raises:
            ValueError: If the content contains the reserved notes heading
            OSError: If the file cannot be written
        """
        blip = Blip(
            content=content.strip(),
            source=source or ManualSource(),
            category=category,
            captured_at=self._clock(),
        )
        self._save(blip)
        logger.debug(f"Captured blip {blip.id} from {blip.source.type}")
        return blip

    def update_state(self, blip_id: str, state: BlipState) -> bool:
        now = self._clock()
        return self._mutate(blip_id, lambda b: b.transition(state, now))

    def add_note(self, blip_id: str, note: str) -> bool:
        now = self._clock()
        return self._mutate(blip_id, lambda b: b.add_note(note, now))

    def snooze(self, blip_id: str, days: float) -> bool:
        """Hide a blip from surfacing for `days` days."""
        now = self._clock()
        return self._mutate(blip_id, lambda b: b.snooze(days, now))

    def archive(self, blip_id: str) -> bool:
        now = self._clock()
        return self._mutate(blip_id, lambda b: b.archive(now))

    def mark_surfaced(self, blip_id: str) -> bool:
        now = self._clock()
        return self._mutate(blip_id, lambda b: b.mark_surfaced(now))

    def promote(self, blip_id: str, promotion_type: PromotionType, vault_path: str) -> bool:
        now = self._clock()
        return self._mutate(blip_id, lambda b: b.promote(promotion_type, vault_path, now))

    def add_tags(self, blip_id: str, tags: list[str]) -> bool:
        now = self._clock()
        return self._mutate(blip_id, lambda b: b.add_tags(tags, now))

    def link_to_vault(self, blip_id: str, vault_path: str) -> bool:
        now = self._clock()
        return self._mutate(blip_id, lambda b: b.link_vault(vault_path, now))

    def link_blips(self, first_id: str, second_id: str) -> bool:
        """Link two blips to each other. Both sides are written, or neither."""
        if first_id == second_id:
            return False
        first = self.find_by_id(first_id)
        second = self.find_by_id(second_id)
        if first is None or second is None:
            return False

        now = self._clock()
        changed_first = first.link(second_id, now)
        changed_second = second.link(first_id, now)
        if changed_first or changed_second:
            write_many_atomic([
                (self._blip_path(first.id), render_blip(first)),
                (self._blip_path(second.id), render_blip(second)),
            ])
        return True

    def delete(self, blip_id: str) -> bool:
        """Remove a blip's file. Links pointing at it are left dangling."""
        path = self._blip_path(blip_id)
        if path is None or not path.exists():
            return False
        path.unlink()
        return True

    # ─────────────────────────────────────────────────────────────────────────
    # Queries (all built on all())
    # ─────────────────────────────────────────────────────────────────────────

    def get_surfaceable_blips(
        self,
        limit: int = DEFAULT_SURFACE_LIMIT,
        now: datetime | None = None,
    ) -> list[SurfaceResult]:
        return self._surfacing.get_surfaceable(limit, now=now)

    def get_by_state(self, state: BlipState) -> list[Blip]:
        return [b for b in self.all() if b.state == state]

    def get_by_category(self, category: str) -> list[Blip]:
        return [b for b in self.all() if b.category == category]

    def get_recent(self, limit: int = DEFAULT_RECENT_LIMIT) -> list[Blip]:
        return sorted(self.all(), key=lambda b: b.captured_at, reverse=True)[:limit]

    def search(self, query: str) -> list[Blip]:
        """Case-insensitive substring match on content, notes and tags."""
        needle = query.lower()
        return [
            b for b in self.all()
            if needle in b.content.lower()
            or any(needle in n.lower() for n in b.notes)
            or any(needle in t.lower() for t in b.tags)
        ]

    def get_stats(self) -> BlipStats:
        stats = BlipStats()
        for blip in self.all():
            stats.total += 1
            stats.by_state[blip.state] = stats.by_state.get(blip.state, 0) + 1
            category = blip.category or "uncategorized"
            stats.by_category[category] = stats.by_category.get(category, 0) + 1
        return stats

    def resolve_links(self, blip_id: str) -> list[str] | None:
        """Linked blip ids that still exist. None if the blip itself is missing."""
        blip = self.find_by_id(blip_id)
        if blip is None:
            return None
        return [other for other in blip.linked_blips if self.exists(other)]
