"""Tests for the dedup and cleanup pass."""

import pytest

from blips.cleanup import (
    build_capture_index,
    canonical_identity,
    display_path,
    ensure_capture_line,
    is_test_harness,
    run_cleanup,
    source_slug,
)
from blips.frontmatter import parse_frontmatter
from blips.models import Blip
from blips.sources import DiscordSource
from blips.store import BlipStore, render_blip, write_atomic

from conftest import NOW, snapshot, write_doc

SUBSTANTIVE = "A long considered write-up. " * 30
SOURCE = "https://example.com/post"


@pytest.fixture
def blips_dir(temp_dir):
    path = temp_dir / "blips"
    path.mkdir()
    return path


@pytest.fixture
def captures_dir(temp_dir):
    path = temp_dir / "captures"
    path.mkdir()
    return path


def write_capture(captures_dir, filename, url):
    write_doc(captures_dir, filename, {"url": url}, "Full page text")


class TestHelpers:
    def test_is_test_harness(self):
        assert is_test_harness("anything", "Example Domain")
        assert is_test_harness("body\ncaptured from test harness.\n", "Real title")
        assert not is_test_harness("body", "Real title")

    def test_canonical_identity(self):
        assert canonical_identity({"source": "https://Example.com/a/?utm_source=x"}) == "https://example.com/a"
        assert canonical_identity({"source_type": "discord", "source_ref": "1:2:3"}) == "discord:1:2"
        assert canonical_identity({"source_type": "clipper", "source_ref": "a.md:h1"}) == "clipper:a.md:h1"
        assert canonical_identity({"source_type": "manual", "source_ref": "ctx"}) == ""
        assert canonical_identity({}) == ""

    def test_source_slug(self):
        assert source_slug("https://example.com/a") == "https-example-com-a"
        assert len(source_slug("https://example.com/" + "a" * 200)) == 80
        assert source_slug("///") == "-"
        assert source_slug("") == "source"

    def test_ensure_capture_line_appends_heading(self):
        assert ensure_capture_line("Body", "x.md", "~/c") == "Body\n\n## Capture\n\n- Full capture: ~/c/x.md"

    def test_ensure_capture_line_empty_body(self):
        assert ensure_capture_line("", "x.md", "~/c") == "## Capture\n\n- Full capture: ~/c/x.md"

    def test_ensure_capture_line_under_existing_heading(self):
        body = "Intro\n\n## Capture\n\nOther stuff\n\n## Later\nmore"
        assert ensure_capture_line(body, "x.md", "L") == (
            "Intro\n\n## Capture\n\n- Full capture: L/x.md\nOther stuff\n\n## Later\nmore"
        )

    def test_ensure_capture_line_is_idempotent(self):
        once = ensure_capture_line("Body", "x.md", "L")
        assert ensure_capture_line(once, "x.md", "L") == once

    def test_capture_index_prefers_non_test_url(self, captures_dir):
        write_capture(captures_dir, "a.md", SOURCE + "?mcp_test=1")
        write_capture(captures_dir, "b.md", SOURCE)
        write_capture(captures_dir, "c.md", SOURCE + "/")
        index = build_capture_index(captures_dir)
        assert index[SOURCE].filename == "b.md"

    def test_capture_index_missing_dir(self, temp_dir):
        assert build_capture_index(temp_dir / "nope") == {}


class TestQuarantine:
    def test_test_harness_documents_move_to_trash(self, blips_dir, captures_dir):
        write_doc(blips_dir, "example.md", {"title": "Example Domain"}, "stub")
        write_doc(blips_dir, "marked.md", {"title": "x"}, "Captured from test harness.")
        write_doc(blips_dir, "real.md", {"title": "Real"}, "keep me")

        report = run_cleanup(blips_dir, captures_dir, apply=True)

        assert report.trashed == 2
        assert sorted(p.name for p in (blips_dir / "_Trash" / "test-harness").iterdir()) == [
            "example.md",
            "marked.md",
        ]
        assert (blips_dir / "real.md").exists()

    def test_name_collisions_get_suffixes(self, blips_dir, captures_dir):
        trash = blips_dir / "_Trash" / "test-harness"
        write_doc(trash, "example.md", {"title": "Example Domain"}, "earlier")
        write_doc(blips_dir, "example.md", {"title": "Example Domain"}, "again")

        report = run_cleanup(blips_dir, captures_dir, apply=True)

        assert report.actions[0].destination == "_Trash/test-harness/example-2.md"
        assert (trash / "example-2.md").exists()


class TestDedup:
    def test_substantive_document_wins(self, blips_dir, captures_dir):
        write_doc(blips_dir, "a-stub.md", {"source": SOURCE + "?utm_source=rss"}, "short")
        write_doc(blips_dir, "b-full.md", {"source": SOURCE}, SUBSTANTIVE)
        write_doc(blips_dir, "c-stub.md", {"source": SOURCE + "#top", "tags": ["x"]}, "short too")

        report = run_cleanup(blips_dir, captures_dir, apply=True)

        assert report.duplicates == 2
        remaining = sorted(p.name for p in blips_dir.glob("*.md"))
        assert remaining == ["b-full.md"]
        moved = blips_dir / "_Duplicates" / "by-source" / "https-example-com-post"
        assert sorted(p.name for p in moved.iterdir()) == ["a-stub.md", "c-stub.md"]

    def test_harness_stubs_and_substantive(self, blips_dir, captures_dir):
        write_doc(blips_dir, "stub1.md", {"source": SOURCE}, "Captured from test harness.")
        write_doc(blips_dir, "stub2.md", {"source": SOURCE, "title": "Example Domain"}, "tiny")
        write_doc(blips_dir, "full.md", {"source": SOURCE}, SUBSTANTIVE)

        run_cleanup(blips_dir, captures_dir, apply=True)

        assert sorted(p.name for p in blips_dir.glob("*.md")) == ["full.md"]

    def test_without_substantive_top_two_stay(self, blips_dir, captures_dir):
        write_doc(blips_dir, "plain.md", {"source": SOURCE}, "short")
        write_doc(blips_dir, "bumped.md", {"source": SOURCE, "status": "bumped"}, "short")
        write_doc(blips_dir, "tagged.md", {"source": SOURCE, "tags": ["a"]}, "short")

        report = run_cleanup(blips_dir, captures_dir, apply=True)

        assert sorted(p.name for p in blips_dir.glob("*.md")) == ["bumped.md", "tagged.md"]
        [action] = [a for a in report.actions if a.kind == "duplicate"]
        assert action.filename == "plain.md"
        assert action.detail == "keep bumped.md, tagged.md"

    def test_ties_keep_sorted_file_order(self, blips_dir, captures_dir):
        for name in ("c.md", "a.md", "b.md"):
            write_doc(blips_dir, name, {"source": SOURCE}, "same")

        run_cleanup(blips_dir, captures_dir, apply=True)

        assert sorted(p.name for p in blips_dir.glob("*.md")) == ["a.md", "b.md"]

    def test_store_records_dedupe_by_typed_source(self, temp_dir, captures_dir, clock):
        store = BlipStore(temp_dir / "blips", clock=clock)
        source = DiscordSource(channel_id="c", message_id="m", user_id="u")
        ids = [store.capture(f"copy {i}", source).id for i in range(3)]
        store.capture("different", DiscordSource(channel_id="c", message_id="other", user_id="u"))

        report = run_cleanup(store.blips_dir, captures_dir, apply=True)

        assert report.duplicates == 1
        assert len(store.all()) == 3
        assert sum(store.exists(blip_id) for blip_id in ids) == 2


class TestBackfill:
    def test_canonicalize_and_attach_capture(self, blips_dir, captures_dir):
        write_capture(captures_dir, "post.md", SOURCE)
        write_doc(blips_dir, "note.md", {"title": "Post", "source": SOURCE + "/?utm_medium=feed"}, "Body")

        report = run_cleanup(blips_dir, captures_dir, apply=True)

        metadata, body = parse_frontmatter((blips_dir / "note.md").read_text())
        assert metadata["source"] == SOURCE
        assert metadata["capture"] == "post.md"
        assert body == f"Body\n\n## Capture\n\n- Full capture: {display_path(captures_dir)}/post.md"
        assert report.modified == 1
        assert report.canonicalized == 1
        assert report.capture_linked == 1
        assert report.capture_lines == 1

    def test_existing_capture_gets_line_only(self, blips_dir, captures_dir):
        write_doc(blips_dir, "note.md", {"capture": "kept.md"}, "Body")

        report = run_cleanup(blips_dir, captures_dir, apply=True)

        _, body = parse_frontmatter((blips_dir / "note.md").read_text())
        assert body.endswith("/kept.md")
        assert report.capture_linked == 0
        assert report.capture_lines == 1

    def test_store_record_keeps_notes(self, temp_dir, captures_dir, clock):
        store = BlipStore(temp_dir / "blips", clock=clock)
        blip = Blip(
            content="Read this later",
            captured_at=NOW,
            notes=["first note"],
            extra={"source": SOURCE + "?fbclid=abc"},
        )
        write_atomic(store.blips_dir / f"{blip.id}.md", render_blip(blip))
        write_capture(captures_dir, "post.md", SOURCE)

        run_cleanup(store.blips_dir, captures_dir, apply=True)

        reloaded = store.find_by_id(blip.id)
        assert reloaded.notes == ["first note"]
        assert reloaded.extra["source"] == SOURCE
        assert reloaded.extra["capture"] == "post.md"
        assert "- Full capture: " in reloaded.content
        assert reloaded.content.startswith("Read this later")


class TestRunModes:
    def _populate(self, blips_dir, captures_dir):
        write_capture(captures_dir, "post.md", SOURCE)
        write_doc(blips_dir, "example.md", {"title": "Example Domain"}, "stub")
        write_doc(blips_dir, "a.md", {"source": SOURCE + "?ref=hn"}, "short")
        write_doc(blips_dir, "b.md", {"source": SOURCE}, SUBSTANTIVE)
        write_doc(blips_dir, "c.md", {"source": "https://other.example/x"}, "unrelated")

    def test_dry_run_changes_nothing(self, blips_dir, captures_dir):
        self._populate(blips_dir, captures_dir)
        before = snapshot(blips_dir)

        report = run_cleanup(blips_dir, captures_dir, apply=False)

        assert snapshot(blips_dir) == before
        assert report.applied is False
        assert report.scanned == 4
        assert report.trashed == 1
        assert report.duplicates == 1

    def test_dry_run_matches_apply(self, blips_dir, captures_dir):
        self._populate(blips_dir, captures_dir)

        dry = run_cleanup(blips_dir, captures_dir, apply=False)
        applied = run_cleanup(blips_dir, captures_dir, apply=True)

        assert [a.describe() for a in dry.actions] == [a.describe() for a in applied.actions]
        assert dry.model_dump(exclude={"applied"}) == applied.model_dump(exclude={"applied"})

    def test_apply_is_idempotent(self, blips_dir, captures_dir):
        self._populate(blips_dir, captures_dir)
        run_cleanup(blips_dir, captures_dir, apply=True)
        after_first = snapshot(blips_dir)

        second = run_cleanup(blips_dir, captures_dir, apply=True)

        assert second.actions == []
        assert second.modified == 0
        assert snapshot(blips_dir) == after_first

    def test_summary_lines(self, blips_dir, captures_dir):
        self._populate(blips_dir, captures_dir)
        lines = run_cleanup(blips_dir, captures_dir).summary_lines()
        assert lines[0] == "Scanned: 4"
        assert lines[-1].startswith("Dry run")
