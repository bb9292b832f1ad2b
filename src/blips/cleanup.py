"""Dedup and cleanup pass over the blips directory.

A maintenance job, run with exclusive access to the directory. It works on
raw files rather than through BlipStore so it also handles vault-style
documents (title/status/source/capture keys) that are not store records.

Passes, in order:
    1. Quarantine: test-harness documents move to _Trash/test-harness/
    2. Dedup: documents sharing a canonical source are ranked; the
       best two stay, the rest move to _Duplicates/by-source/<slug>/
    3. Backfill: canonicalize `source`, attach `capture` from the
       captures directory, make sure the body links to it

Nothing is deleted. A dry run plans exactly the moves and edits an apply
run performs, and running apply twice leaves the second run with nothing
to do.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, NamedTuple

from pydantic import BaseModel, Field

from .constants import (
    BLIP_FILE_SUFFIX,
    BODY_LENGTH_BONUS_CAP,
    BODY_LENGTH_DIVISOR,
    CAPTURE_HEADING,
    DUPLICATE_KEEP_COUNT,
    DUPLICATES_SUBDIR,
    SOURCE_SLUG_MAX,
    SUBSTANTIVE_BODY_CHARS,
    TEST_HARNESS_MARKER,
    TEST_HARNESS_PENALTY,
    TEST_HARNESS_TITLE,
    TRASH_SUBDIR,
)
from .frontmatter import parse_frontmatter, serialize_frontmatter
from .sources import canonicalize_source_url, decode_source
from .store import write_atomic

logger = logging.getLogger(__name__)

_TEST_MARKER = re.compile(re.escape(TEST_HARNESS_MARKER), re.IGNORECASE)
_TEST_URL_PARAM = re.compile(r"\bmcp_test=", re.IGNORECASE)
_CAPTURE_HEADING = re.compile(rf"^{re.escape(CAPTURE_HEADING)}[ \t]*$", re.MULTILINE)
_CAPTURE_LINE = re.compile(r"^- Full capture: .*$", re.MULTILINE)

# Status weights; "bumped" is the vault-folder name for a promoted blip
_STATUS_SCORES = {
    "bumped": 20,
    "promoted": 20,
    "snoozed": 5,
    "incubating": 5,
    "archived": 1,
}


class CaptureInfo(NamedTuple):
    filename: str
    url: str
    canonical_url: str


class CleanupAction(BaseModel):
    """One planned (or performed) change to one file."""

    kind: Literal["trash", "duplicate", "fix"]
    filename: str
    destination: str | None = None  # relative to the blips directory
    detail: str = ""

    def describe(self) -> str:
        if self.kind == "trash":
            return f"TRASH {self.filename} -> {self.destination}"
        if self.kind == "duplicate":
            return f"DUP   {self.filename} -> {self.destination} ({self.detail})"
        return f"FIX   {self.filename} ({self.detail})"


class CleanupReport(BaseModel):
    applied: bool
    scanned: int = 0
    trashed: int = 0
    duplicates: int = 0
    modified: int = 0
    canonicalized: int = 0
    capture_linked: int = 0
    capture_lines: int = 0
    actions: list[CleanupAction] = Field(default_factory=list)

    @property
    def moved(self) -> int:
        return self.trashed + self.duplicates

    def summary_lines(self) -> list[str]:
        return [
            f"Scanned: {self.scanned}",
            f"Trashed: {self.trashed}",
            f"Duplicates moved: {self.duplicates}",
            f"Files modified: {self.modified}",
            f"- canonicalized source: {self.canonicalized}",
            f"- added capture field: {self.capture_linked}",
            f"- added capture line: {self.capture_lines}",
            "Applied." if self.applied else "Dry run (no changes). Use --apply to write/move.",
        ]


@dataclass
class _Document:
    filename: str
    path: Path
    raw: str
    metadata: dict[str, Any]
    body: str
    title: str
    canonical_source: str = ""
    score: int = 0


@dataclass
class _Mover:
    """Plans destinations so dry run and apply pick the same names."""

    root: Path
    apply: bool
    claimed: set[Path] = field(default_factory=set)

    def destination(self, directory: Path, filename: str) -> Path:
        candidate = directory / filename
        stem = Path(filename).stem
        suffix = Path(filename).suffix
        n = 2
        while candidate.exists() or candidate in self.claimed:
            candidate = directory / f"{stem}-{n}{suffix}"
            n += 1
        self.claimed.add(candidate)
        return candidate

    def move(self, doc: _Document, directory: Path) -> str:
        dest = self.destination(directory, doc.filename)
        if self.apply:
            directory.mkdir(parents=True, exist_ok=True)
            doc.path.rename(dest)
        return str(dest.relative_to(self.root))


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


def is_test_harness(raw: str, title: str | None = None) -> bool:
    if title and title.strip().lower() == TEST_HARNESS_TITLE:
        return True
    return bool(_TEST_MARKER.search(raw))


def canonical_identity(metadata: dict[str, Any]) -> str:
    """Dedup key for a document, or "" if it has none.

    A `source` URL wins; store records fall back to their typed source.
    """
    source = metadata.get("source")
    if isinstance(source, str) and source.strip():
        return canonicalize_source_url(source)
    if metadata.get("source_type") in ("discord", "clipper"):
        source_obj = decode_source(metadata.get("source_type"), metadata.get("source_ref"))
        return source_obj.identity() or ""
    return ""


def measured_length(body: str) -> int:
    """Body length ignoring what backfill itself adds."""
    trimmed = _CAPTURE_LINE.sub("", _CAPTURE_HEADING.sub("", body))
    return len(trimmed.strip())


def score_document(doc: _Document) -> int:
    metadata = doc.metadata
    score = 0

    status = metadata.get("status") or metadata.get("state")
    if isinstance(status, str):
        score += _STATUS_SCORES.get(status, 0)

    if isinstance(metadata.get("tags"), list) and metadata["tags"]:
        score += 3
    if isinstance(metadata.get("capture"), str) and metadata["capture"]:
        score += 8
    if metadata.get("bumped_to") or metadata.get("promoted_to"):
        score += 10

    if _TEST_MARKER.search(doc.raw):
        score -= TEST_HARNESS_PENALTY

    score += min(BODY_LENGTH_BONUS_CAP, measured_length(doc.body) // BODY_LENGTH_DIVISOR)
    return score


def source_slug(canonical_source: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", canonical_source, flags=re.IGNORECASE)[:SOURCE_SLUG_MAX]
    return slug or "source"


def display_path(path: Path) -> str:
    """Path with the home directory shortened to ~."""
    try:
        return "~/" + path.relative_to(Path.home()).as_posix()
    except ValueError:
        return path.as_posix()


def ensure_capture_line(body: str, capture_filename: str, captures_label: str) -> str:
    """Make sure the body links to its capture under the capture heading.

    The line goes right after an existing heading; otherwise a heading and
    line are appended. Bodies that already have the line are unchanged.
    """
    line = f"- Full capture: {captures_label}/{capture_filename}"
    if line in body:
        return body

    match = _CAPTURE_HEADING.search(body)
    if match is None:
        prefix = f"{body.rstrip()}\n\n" if body.strip() else ""
        return f"{prefix}{CAPTURE_HEADING}\n\n{line}"

    head = body[:match.end()]
    tail = body[match.end():].lstrip("\n")
    if tail:
        return f"{head}\n\n{line}\n{tail}".rstrip()
    return f"{head}\n\n{line}"


def _read_document(path: Path) -> _Document | None:
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Skipping unreadable file {path.name}: {e}")
        return None

    metadata, body = parse_frontmatter(raw)
    title = metadata.get("title")
    return _Document(
        filename=path.name,
        path=path,
        raw=raw,
        metadata=metadata,
        body=body,
        title=title if isinstance(title, str) else path.stem,
        canonical_source=canonical_identity(metadata),
    )


def build_capture_index(captures_dir: Path) -> dict[str, CaptureInfo]:
    """Map canonical URL -> capture file.

    On collisions a capture without a test marker in its URL wins, then the
    first file name in sort order.
    """
    index: dict[str, CaptureInfo] = {}
    if not captures_dir.is_dir():
        return index

    for path in sorted(captures_dir.glob(f"*{BLIP_FILE_SUFFIX}")):
        try:
            metadata, _ = parse_frontmatter(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Skipping unreadable capture {path.name}: {e}")
            continue

        url = metadata.get("url")
        if not isinstance(url, str):
            continue
        canonical = canonicalize_source_url(url)
        if not canonical:
            continue

        info = CaptureInfo(filename=path.name, url=url, canonical_url=canonical)
        existing = index.get(canonical)
        if existing is None:
            index[canonical] = info
        elif _TEST_URL_PARAM.search(existing.url) and not _TEST_URL_PARAM.search(url):
            index[canonical] = info

    return index


# ─────────────────────────────────────────────────────────────────────────────
# Passes
# ─────────────────────────────────────────────────────────────────────────────


def run_cleanup(blips_dir: Path | str, captures_dir: Path | str, apply: bool = False) -> CleanupReport:
    """Run all three passes. With apply=False nothing on disk changes.

    Raises:
        OSError: If a move or write fails in apply mode
    """
    blips_dir = Path(blips_dir)
    captures_dir = Path(captures_dir)
    report = CleanupReport(applied=apply)
    mover = _Mover(root=blips_dir, apply=apply)

    trash_dir = blips_dir.joinpath(*TRASH_SUBDIR)
    duplicates_dir = blips_dir.joinpath(*DUPLICATES_SUBDIR)
    captures = build_capture_index(captures_dir)
    captures_label = display_path(captures_dir)

    paths = sorted(
        p for p in blips_dir.glob(f"*{BLIP_FILE_SUFFIX}")
        if p.is_file() and not p.name.startswith(".")
    )
    report.scanned = len(paths)
    documents = [doc for doc in map(_read_document, paths) if doc is not None]

    # Pass 1: quarantine test-harness documents
    kept: list[_Document] = []
    for doc in documents:
        if is_test_harness(doc.raw, doc.title):
            dest = mover.move(doc, trash_dir)
            report.trashed += 1
            report.actions.append(CleanupAction(kind="trash", filename=doc.filename, destination=dest))
            continue
        kept.append(doc)

    # Pass 2: dedupe by canonical source
    groups: dict[str, list[_Document]] = {}
    for doc in kept:
        if doc.canonical_source:
            groups.setdefault(doc.canonical_source, []).append(doc)

    moved: set[str] = set()
    for source, group in groups.items():
        if len(group) <= 1:
            continue

        for doc in group:
            doc.score = score_document(doc)
        ranked = sorted(group, key=lambda d: d.score, reverse=True)
        substantive = [
            d for d in ranked
            if measured_length(d.body) >= SUBSTANTIVE_BODY_CHARS and not _TEST_MARKER.search(d.raw)
        ]
        keepers = (substantive or ranked)[:DUPLICATE_KEEP_COUNT]
        keep_names = {d.filename for d in keepers}
        keep_label = "keep " + ", ".join(d.filename for d in keepers)

        for doc in ranked:
            if doc.filename in keep_names:
                continue
            dest = mover.move(doc, duplicates_dir / source_slug(source))
            moved.add(doc.filename)
            report.duplicates += 1
            report.actions.append(CleanupAction(
                kind="duplicate", filename=doc.filename, destination=dest, detail=keep_label,
            ))

    # Pass 3: canonicalize source, backfill capture, ensure capture line
    for doc in kept:
        if doc.filename in moved:
            continue

        metadata = dict(doc.metadata)
        body = doc.body
        changes = []

        source = metadata.get("source")
        if isinstance(source, str) and source:
            canonical = canonicalize_source_url(source)
            if canonical and canonical != source:
                metadata["source"] = canonical
                report.canonicalized += 1
                changes.append("canonicalized source")

        capture = metadata.get("capture")
        source = metadata.get("source")
        if isinstance(source, str) and source and not (isinstance(capture, str) and capture):
            info = captures.get(canonicalize_source_url(source))
            if info is not None:
                metadata["capture"] = info.filename
                report.capture_linked += 1
                changes.append(f"capture {info.filename}")

        capture = metadata.get("capture")
        if isinstance(capture, str) and capture:
            updated = ensure_capture_line(body, capture, captures_label)
            if updated != body:
                body = updated
                report.capture_lines += 1
                changes.append("capture line")

        if not changes:
            continue

        report.modified += 1
        report.actions.append(CleanupAction(kind="fix", filename=doc.filename, detail=", ".join(changes)))
        if apply:
            write_atomic(doc.path, serialize_frontmatter(metadata, body))

    for action in report.actions:
        logger.info(action.describe())

    return report
