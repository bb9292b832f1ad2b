"""Command-line interface for the blip store and cleanup pass."""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .capture import guess_category
from .cleanup import run_cleanup
from .config import load_config
from .constants import DEFAULT_RECENT_LIMIT, DEFAULT_SURFACE_LIMIT
from .models import Blip
from .sources import ManualSource
from .store import BlipStore
from .timeutil import format_relative_time

console = Console()


def _store(ctx: click.Context) -> BlipStore:
    return BlipStore(ctx.obj["config"].blips_dir)


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/red] {escape(message)}")
    sys.exit(1)


def _require(found: bool, blip_id: str) -> None:
    if not found:
        _fail(f"Blip '{blip_id}' not found")


def _run_mutation(ctx: click.Context, blip_id: str, action, done: str) -> None:
    """Call a store mutator; report not-found and refused transitions."""
    try:
        found = action(_store(ctx))
    except ValueError as e:
        _fail(str(e))
        return
    _require(found, blip_id)
    console.print(f"[green]✓[/green] {escape(done)}")


def _blip_table(blips: list[Blip], title: str | None = None) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("State", style="green")
    table.add_column("Category")
    table.add_column("Captured")
    table.add_column("Content")
    for blip in blips:
        table.add_row(
            blip.id,
            blip.state,
            blip.category or "-",
            format_relative_time(blip.captured_at),
            escape(blip.content[:60]),
        )
    return table


@click.group()
@click.option(
    "--blips-dir",
    type=click.Path(path_type=Path),
    help="Directory holding blip files (default: $BLIPS_DIR or ~/.assistant/blips)",
)
@click.option(
    "--captures-dir",
    type=click.Path(path_type=Path),
    help="Directory holding full captures (default: ~/.assistant/captures)",
)
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr")
@click.pass_context
def cli(ctx, blips_dir, captures_dir, verbose):
    """Blips - capture small notes and resurface the ones worth another look."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(message)s",
        stream=sys.stderr,
    )
    ctx.ensure_object(dict)
    ctx.obj["config"] = load_config(blips_dir=blips_dir, captures_dir=captures_dir)


@cli.command()
@click.argument("text", nargs=-1, required=True)
@click.option("-c", "--category", help="Category tag")
@click.option("--context", help="Free-text context for the manual source")
@click.option("--guess", is_flag=True, help="Guess the category from the text")
@click.pass_context
def capture(ctx, text, category, context, guess):
    """Capture a new blip."""
    content = " ".join(text)
    if not content.strip():
        _fail("Empty content")
    if category is None and guess:
        category = guess_category(content)
    try:
        blip = _store(ctx).capture(content, ManualSource(context=context), category)
    except ValueError as e:
        _fail(str(e))
        return
    console.print(f"[green]✓[/green] Captured [cyan]{blip.id}[/cyan]")


@cli.command()
@click.argument("blip_id")
@click.pass_context
def show(ctx, blip_id):
    """Show one blip in full."""
    blip = _store(ctx).find_by_id(blip_id)
    _require(blip is not None, blip_id)

    console.print(f"[cyan]{blip.id}[/cyan]  [green]{blip.state}[/green]  {blip.category or '-'}")
    console.print(f"Source: {blip.source.type}")
    console.print(f"Captured: {format_relative_time(blip.captured_at)}")
    if blip.tags:
        console.print(f"Tags: {escape(', '.join(blip.tags))}")
    console.print()
    console.print(escape(blip.content))
    if blip.notes:
        console.print()
        console.print("[bold]Notes[/bold]")
        for note in blip.notes:
            console.print(f"  - {escape(note)}")
    if blip.linked_blips:
        console.print(f"\nLinked: {', '.join(blip.linked_blips)}")
    if blip.promoted_to:
        console.print(f"\nPromoted to {blip.promoted_to.type}: {escape(blip.promoted_to.vault_path)}")


@cli.command()
@click.option("-n", "--limit", type=int, default=None, help="Maximum entries to show")
@click.pass_context
def index(ctx, limit):
    """Print the lightweight index as a markdown table."""
    click.echo(_store(ctx).format_index_for_context(limit))


@cli.command()
@click.option("-n", "--limit", type=int, default=DEFAULT_SURFACE_LIMIT, help="Number of blips")
@click.option("--mark", is_flag=True, help="Record these blips as surfaced")
@click.pass_context
def surface(ctx, limit, mark):
    """Show the blips most worth another look."""
    store = _store(ctx)
    results = store.get_surfaceable_blips(limit)
    if not results:
        console.print("Nothing to surface.")
        return

    table = Table(title="Surfaced blips")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Score", justify="right", style="yellow")
    table.add_column("Reason")
    table.add_column("Moves")
    table.add_column("Content")
    for result in results:
        table.add_row(
            result.blip.id,
            str(result.score),
            result.reason,
            ", ".join(result.suggested_moves),
            escape(result.blip.content[:60]),
        )
        if mark:
            store.mark_surfaced(result.blip.id)
    console.print(table)


@cli.command()
@click.argument("blip_id")
@click.argument("text", nargs=-1, required=True)
@click.pass_context
def note(ctx, blip_id, text):
    """Add a note to a blip."""
    content = " ".join(text)
    _run_mutation(ctx, blip_id, lambda s: s.add_note(blip_id, content), f"Noted {blip_id}")


@cli.command()
@click.argument("blip_id")
@click.argument("days", type=int)
@click.pass_context
def snooze(ctx, blip_id, days):
    """Hide a blip from surfacing for DAYS days."""
    _run_mutation(ctx, blip_id, lambda s: s.snooze(blip_id, days), f"Snoozed {blip_id} for {days} days")


@cli.command()
@click.argument("blip_id")
@click.pass_context
def archive(ctx, blip_id):
    """Archive a blip."""
    _run_mutation(ctx, blip_id, lambda s: s.archive(blip_id), f"Archived {blip_id}")


@cli.command()
@click.argument("blip_id")
@click.argument("promotion_type", type=click.Choice(["goal", "project", "task", "note"]))
@click.argument("vault_path")
@click.pass_context
def promote(ctx, blip_id, promotion_type, vault_path):
    """Promote a blip to a goal, project, task or note."""
    _run_mutation(
        ctx,
        blip_id,
        lambda s: s.promote(blip_id, promotion_type, vault_path),
        f"Promoted {blip_id} to {promotion_type}: {vault_path}",
    )


@cli.command()
@click.argument("first_id")
@click.argument("second_id")
@click.pass_context
def link(ctx, first_id, second_id):
    """Link two blips to each other."""
    if first_id == second_id:
        _fail("A blip cannot link to itself")
    store = _store(ctx)
    for blip_id in (first_id, second_id):
        _require(store.find_by_id(blip_id) is not None, blip_id)
    # Either file can disappear between the check and the write
    if not store.link_blips(first_id, second_id):
        _fail(f"Could not link {first_id} and {second_id}; a blip is missing or unreadable")
    console.print(f"[green]✓[/green] Linked {first_id} <-> {second_id}")


@cli.command("link-vault")
@click.argument("blip_id")
@click.argument("vault_path")
@click.pass_context
def link_vault(ctx, blip_id, vault_path):
    """Point a blip at a vault document."""
    _run_mutation(ctx, blip_id, lambda s: s.link_to_vault(blip_id, vault_path), f"Linked {blip_id} -> {vault_path}")


@cli.command()
@click.argument("blip_id")
@click.argument("tags", nargs=-1, required=True)
@click.pass_context
def tag(ctx, blip_id, tags):
    """Add tags to a blip."""
    _run_mutation(ctx, blip_id, lambda s: s.add_tags(blip_id, list(tags)), f"Tagged {blip_id}")


@cli.command()
@click.argument("blip_id")
@click.pass_context
def delete(ctx, blip_id):
    """Delete a blip file."""
    _run_mutation(ctx, blip_id, lambda s: s.delete(blip_id), f"Deleted {blip_id}")


@cli.command()
@click.argument("query")
@click.pass_context
def search(ctx, query):
    """Find blips whose content, notes or tags contain QUERY."""
    blips = _store(ctx).search(query)
    if not blips:
        console.print("No blips found.")
        return
    console.print(_blip_table(blips, title=f"Matches for '{escape(query)}'"))


@cli.command()
@click.option("-n", "--limit", type=int, default=DEFAULT_RECENT_LIMIT, help="Number of blips")
@click.pass_context
def recent(ctx, limit):
    """List the most recently captured blips."""
    blips = _store(ctx).get_recent(limit)
    if not blips:
        console.print("No blips yet.")
        return
    console.print(_blip_table(blips, title="Recent blips"))


@cli.command()
@click.pass_context
def stats(ctx):
    """Show counts by state and category."""
    result = _store(ctx).get_stats()
    console.print(f"Total blips: [bold]{result.total}[/bold]")
    for title, counts in (("By state", result.by_state), ("By category", result.by_category)):
        if not counts:
            continue
        console.print(f"\n[bold]{title}[/bold]")
        for key, count in sorted(counts.items()):
            console.print(f"  {key}: {count}")


@cli.command()
@click.option("--apply", is_flag=True, help="Move and rewrite files (default is a dry run)")
@click.pass_context
def cleanup(ctx, apply):
    """Quarantine test blips, move duplicates, backfill capture links."""
    config = ctx.obj["config"]
    try:
        report = run_cleanup(config.blips_dir, config.captures_dir, apply=apply)
    except OSError as e:
        _fail(f"Cleanup failed: {e}")
        return

    for action in report.actions:
        click.echo(action.describe())
    click.echo("")
    for line in report.summary_lines():
        click.echo(line)


def main():
    """Console script entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
