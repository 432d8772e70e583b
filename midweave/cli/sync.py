"""
Sync Commands
-------------

Commands that reconcile the local cache with the remote store.

Commands:
    - resync: Rebuild the cache from the remote (optionally from scratch)
    - deploy: Write a deployment marker so the static site rebuilds
"""
import click

from midweave.core.exceptions import MidweaveError
from midweave.core.logging_manager import handle_cli_error
from . import require_admin, run_with_storage


@click.command()
@click.option(
    "--force",
    is_flag=True,
    help="Delete the cache database and rebuild it from the remote",
)
@click.pass_context
def resync(ctx, force):
    """Rebuild the local cache from the remote store."""
    try:
        if force:
            require_admin(ctx)

        async def operation(storage):
            if force:
                return await storage.force_resync_and_clear_cache()
            return await storage.resync_library()

        report = run_with_storage(ctx, operation)

        click.echo("\n🔄 Resync complete")
        click.echo("=" * 70)
        click.echo(f"Entries listed:   {report.total}")
        click.echo(f"Entries accepted: {report.accepted}")
        click.echo(f"Entries cached:   {report.added}")
        click.echo(f"Orphans pruned:   {len(report.pruned)}")
        click.echo(f"Duration:         {report.duration_seconds:.2f}s")

        if report.rejected:
            click.echo(f"\n⚠️  Rejected entries ({len(report.rejected)}):")
            for entry_id, reason in sorted(report.rejected.items()):
                click.echo(f"  {entry_id}: {reason}")
        if report.skipped:
            click.echo(f"\n⚠️  Skipped non-numeric ids: {', '.join(report.skipped)}")

    except MidweaveError as e:
        handle_cli_error(ctx, e, "resync", {"force": force})


@click.command()
@click.pass_context
def deploy(ctx):
    """Request a static-site rebuild."""
    try:
        require_admin(ctx)
        path = run_with_storage(ctx, lambda storage: storage.request_deployment())
        if path:
            click.echo(f"\n✅ Deployment requested: {path}")
        else:
            click.echo("\n⚠️  Could not write the deployment marker (see logs)")
            ctx.exit(1)

    except MidweaveError as e:
        handle_cli_error(ctx, e, "deploy")
