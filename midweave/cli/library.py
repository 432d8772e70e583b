"""
Browse Commands
---------------

Read-only commands answered from the local cache. An empty cache is filled
by a resync first.

Commands:
    - list: List entries, newest first
    - search: Case-insensitive search over text and AI-analysis fields
    - show: Print one entry as JSON
    - stats: Cache and sync summary
"""
import click

from midweave.core.exceptions import MidweaveError
from midweave.core.logging_manager import handle_cli_error
from . import run_with_storage


def _echo_entry_line(entry) -> None:
    star = "⭐ " if entry.admin_metadata.featured else ""
    click.echo(
        f"  {entry.id:>5}  {star}{entry.title}  "
        f"[--sref {entry.parameters.sref}]  ({len(entry.images)} image(s))"
    )


@click.command("list")
@click.option("--featured", is_flag=True, help="Only featured entries")
@click.pass_context
def list_entries(ctx, featured):
    """List library entries, most recently modified first."""
    try:

        async def operation(storage):
            if featured:
                return await storage.get_featured_entries()
            return await storage.get_all_entries(revalidate=False)

        entries = run_with_storage(ctx, operation)

        if not entries:
            click.echo("No entries found")
            return

        label = "Featured entries" if featured else "Entries"
        click.echo(f"\n📚 {label} ({len(entries)})")
        click.echo("=" * 70)
        for entry in entries:
            _echo_entry_line(entry)

    except MidweaveError as e:
        handle_cli_error(ctx, e, "list", {"featured": featured})


@click.command()
@click.argument("query")
@click.pass_context
def search(ctx, query):
    """Search entries by title, description, prompt and analysis."""
    try:
        entries = run_with_storage(ctx, lambda storage: storage.search_entries(query))

        if not entries:
            click.echo(f"No entries match '{query}'")
            return

        click.echo(f"\n🔍 {len(entries)} match(es) for '{query}'")
        click.echo("=" * 70)
        for entry in entries:
            _echo_entry_line(entry)

    except MidweaveError as e:
        handle_cli_error(ctx, e, "search", {"query": query})


@click.command()
@click.argument("entry_id")
@click.pass_context
def show(ctx, entry_id):
    """Print one entry as JSON."""
    try:
        entry = run_with_storage(ctx, lambda storage: storage.get_entry(entry_id))
        if entry is None:
            click.echo(f"⚠️  Entry not found: {entry_id}", err=True)
            ctx.exit(1)
        click.echo(entry.to_json())

    except MidweaveError as e:
        handle_cli_error(ctx, e, "show", {"entry_id": entry_id})


@click.command()
@click.pass_context
def stats(ctx):
    """Show cache and sync statistics."""
    try:

        async def operation(storage):
            entries = await storage.get_all_entries(revalidate=False)
            return entries, storage.cache.last_sync(), storage.is_stale()

        entries, state, stale = run_with_storage(ctx, operation)

        featured = sum(1 for e in entries if e.admin_metadata.featured)
        images = sum(len(e.images) for e in entries)

        click.echo("\n📊 Library Statistics")
        click.echo("=" * 70)
        click.echo(f"Entries:  {len(entries)}")
        click.echo(f"Featured: {featured}")
        click.echo(f"Images:   {images}")

        if state is not None:
            click.echo(f"\nLast sync: {state.synced_at_utc.isoformat()}")
            click.echo(f"  Success:  {state.success}")
            click.echo(f"  Listed:   {state.entries_listed}")
            click.echo(f"  Rejected: {state.entries_rejected}")
            click.echo(f"  Pruned:   {state.orphans_pruned}")
            if state.error_message:
                click.echo(f"  Error:    {state.error_message}")
        click.echo(f"\nCache is {'stale' if stale else 'fresh'}")

    except MidweaveError as e:
        handle_cli_error(ctx, e, "stats")
