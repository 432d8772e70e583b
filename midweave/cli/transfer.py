"""
Transfer Commands
-----------------

Export the cached library to JSON and load an export back into the cache.

Commands:
    - export: Write every cached entry to a JSON file (or stdout)
    - import: Replace the cache with the contents of an export
"""
import json
from pathlib import Path

import click

from midweave.core.exceptions import MidweaveError, ValidationError
from midweave.core.logging_manager import handle_cli_error
from . import require_admin, run_with_storage


@click.command("export")
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False),
    default=None,
    help="Output file (stdout when omitted)",
)
@click.pass_context
def export_library(ctx, output):
    """Export the cached library as JSON."""
    try:

        async def operation(storage):
            await storage.get_all_entries(revalidate=False)
            return storage.export_library()

        data = run_with_storage(ctx, operation)
        text = json.dumps(data, indent=2, ensure_ascii=False)
        if output:
            Path(output).write_text(text + "\n", encoding="utf-8")
            click.echo(f"\n✅ Exported {len(data['entries'])} entries to {output}")
        else:
            click.echo(text)

    except MidweaveError as e:
        handle_cli_error(ctx, e, "export", {"output": output})


@click.command("import")
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def import_library(ctx, source):
    """
    Replace the local cache with the export in SOURCE.

    The remote store is not modified; run `resync` to realign the cache.
    """
    try:
        require_admin(ctx)
        try:
            data = json.loads(Path(source).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ValidationError(f"Cannot read {source}: {e}")

        async def operation(storage):
            return storage.import_library(data)

        count = run_with_storage(ctx, operation)
        click.echo(f"\n✅ Imported {count} entries into the cache")

    except MidweaveError as e:
        handle_cli_error(ctx, e, "import", {"source": source})
