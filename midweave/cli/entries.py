"""
Entry Commands
--------------

Admin commands that write entries through to the remote store.

Commands:
    - add: Create an entry from a JSON file plus image files
    - update: Change fields of an existing entry
    - delete: Delete one or more entries
"""
import json
from pathlib import Path

import click

from midweave.core.exceptions import MidweaveError, PartialBatchError, ValidationError
from midweave.core.logging_manager import handle_cli_error
from midweave.dataclasses import EntryDraft, ImageRecord, ImageUpload
from . import require_admin, run_with_storage


def _load_json(path: str) -> dict:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ValidationError(f"Cannot read {path}: {e}")
    if not isinstance(data, dict):
        raise ValidationError(f"{path} must contain a JSON object")
    return data


@click.command()
@click.argument("metadata", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--image",
    "images",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Image file to upload with the entry (repeatable)",
)
@click.option("--featured", is_flag=True, help="Mark the entry as featured")
@click.pass_context
def add(ctx, metadata, images, featured):
    """
    Create an entry from METADATA (JSON with title, parameters, ...).

    Images already hosted elsewhere can be listed in the JSON `images`
    array; local files are passed with --image and committed together
    with the metadata.
    """
    try:
        require_admin(ctx)
        data = _load_json(metadata)
        admin = data.get("adminMetadata") or {}
        draft = EntryDraft(
            title=str(data.get("title") or ""),
            parameters=dict(data.get("parameters") or {}),
            description=str(data.get("description") or ""),
            images=[
                ImageRecord(
                    url=img["url"],
                    thumbnail=img.get("thumbnail", ""),
                    size=int(img.get("size", 0)),
                )
                for img in data.get("images") or []
                if isinstance(img, dict) and img.get("url")
            ],
            uploads=[
                ImageUpload(filename=Path(p).name, data=Path(p).read_bytes())
                for p in images
            ],
            ai_analysis=data.get("aiAnalysis"),
            featured=featured or bool(admin.get("featured", False)),
            curator_notes=str(admin.get("curatorNotes") or ""),
        )

        entry_id = run_with_storage(ctx, lambda storage: storage.save_entry(draft))
        click.echo(f"\n✅ Created entry {entry_id}")

    except MidweaveError as e:
        handle_cli_error(ctx, e, "add", {"file": metadata})


@click.command()
@click.argument("entry_id")
@click.option("--title", default=None, help="New title")
@click.option("--description", default=None, help="New description")
@click.option("--notes", default=None, help="New curator notes")
@click.option(
    "--featured/--not-featured",
    default=None,
    help="Set or clear the featured flag",
)
@click.option(
    "--param",
    "params",
    multiple=True,
    metavar="KEY=VALUE",
    help="Set a generation parameter (repeatable)",
)
@click.pass_context
def update(ctx, entry_id, title, description, notes, featured, params):
    """Update fields of entry ENTRY_ID."""
    try:
        require_admin(ctx)
        partial = {}
        if title is not None:
            partial["title"] = title
        if description is not None:
            partial["description"] = description
        if notes is not None:
            partial["curatorNotes"] = notes
        if featured is not None:
            partial["featured"] = featured
        if params:
            parameters = {}
            for item in params:
                key, sep, value = item.partition("=")
                if not sep or not key:
                    raise ValidationError(f"Expected KEY=VALUE, got '{item}'")
                parameters[key.strip()] = value
            partial["parameters"] = parameters

        if not partial:
            click.echo("Nothing to update")
            return

        entry = run_with_storage(
            ctx, lambda storage: storage.update_entry(entry_id, partial)
        )
        click.echo(f"\n✅ Updated entry {entry.id} ({', '.join(sorted(partial))})")

    except MidweaveError as e:
        handle_cli_error(ctx, e, "update", {"entry_id": entry_id})


@click.command()
@click.argument("entry_ids", nargs=-1, required=True)
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete(ctx, entry_ids, yes):
    """Delete entries ENTRY_IDS from the remote store and the cache."""
    try:
        require_admin(ctx)
        if not yes:
            click.confirm(f"Delete {len(entry_ids)} entr(y/ies)?", abort=True)

        deleted = run_with_storage(
            ctx, lambda storage: storage.delete_entries(list(entry_ids))
        )
        click.echo(f"\n✅ Deleted {len(deleted)} entr(y/ies): {', '.join(deleted)}")

    except PartialBatchError as e:
        if e.succeeded:
            click.echo(f"\n✅ Deleted: {', '.join(e.succeeded)}")
        click.echo(f"⚠️  Failed: {', '.join(e.failures)}")
        handle_cli_error(ctx, e, "delete", {"entry_ids": list(entry_ids)})
    except MidweaveError as e:
        handle_cli_error(ctx, e, "delete", {"entry_ids": list(entry_ids)})
