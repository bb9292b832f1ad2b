"""Shared test fixtures and helpers for blips tests."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from blips.frontmatter import serialize_frontmatter
from blips.models import Blip
from blips.store import BlipStore


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# --- Fixtures ---


@pytest.fixture
def temp_dir():
    """Provide a temporary directory, cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(temp_dir, clock):
    """Provide a fresh BlipStore on an empty directory with a fixed clock."""
    return BlipStore(temp_dir / "blips", clock=clock)


# --- Helper Functions (not fixtures) ---


def make_blip(**overrides) -> Blip:
    """Build a Blip with sensible defaults captured at NOW."""
    data = {"content": "A passing thought", "captured_at": NOW}
    data.update(overrides)
    return Blip(**data)


def write_doc(directory: Path, filename: str, metadata: dict, body: str) -> Path:
    """Write a frontmatter document directly, bypassing the store."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.write_text(serialize_frontmatter(metadata, body), encoding="utf-8")
    return path


def snapshot(directory: Path) -> dict[str, str]:
    """Relative path -> content for every file under a directory."""
    return {
        str(p.relative_to(directory)): p.read_text(encoding="utf-8")
        for p in sorted(directory.rglob("*"))
        if p.is_file()
    }
