"""CLI entry point for StyleStudio.

Wraps the same library calls as the admin API so that migrations and history
maintenance can be run from a terminal::

    stylestudio check
    stylestudio migrate --file prompt/prompt.txt
    stylestudio history stats
    stylestudio cleanup --yes

Destructive commands ask for confirmation unless ``--yes`` is given.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

import click

from stylestudio.core.config import config
from stylestudio.core.errors import StyleStudioError
from stylestudio.core.models import MigrationOptions
from stylestudio.core.services import Services, build_services


def _services(ctx: click.Context) -> Services:
    """Build the service handles on first use and keep them on the context."""
    obj = ctx.ensure_object(dict)
    if "services" not in obj:
        obj["services"] = build_services(config)
    return obj["services"]


def _format_ms(timestamp: int) -> str:
    try:
        moment = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        # Outside the platform's datetime range; show the stored value.
        return str(timestamp)
    return moment.strftime("%Y-%m-%d %H:%M:%S")


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log at DEBUG level.")
@click.pass_context
def main(ctx: click.Context, verbose: bool):
    """Manage StyleStudio history and template storage."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    ctx.ensure_object(dict)


@main.command()
@click.option("--port", default=config.server_port, help="Port to serve on.")
@click.option("--host", default=config.server_host, help="Host to bind to.")
def serve(port: int, host: str):
    """Start the REST API server."""
    import uvicorn

    click.echo(f"Starting StyleStudio API on http://{host}:{port}")
    uvicorn.run("stylestudio.api.main:app", host=host, port=port, reload=False)


# ---------------------------------------------------------------------------
# Migration commands.
# ---------------------------------------------------------------------------


@main.command()
@click.option(
    "--file",
    "file_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Legacy catalog to migrate (defaults to the configured catalog).",
)
@click.option("--force", is_flag=True, help="Re-run even if a migration already completed.")
@click.option("--validate-only", is_flag=True, help="Only validate the stored templates.")
@click.option("--no-backup", is_flag=True, help="Do not snapshot current templates first.")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def migrate(
    ctx: click.Context,
    file_path: Path | None,
    force: bool,
    validate_only: bool,
    no_backup: bool,
    yes: bool,
):
    """Migrate the legacy prompt catalog into templates."""
    orchestrator = _services(ctx).orchestrator

    if not validate_only:
        preflight = orchestrator.handle_migration_exceptions(file_path, force_remigration=force)
        if not preflight.success:
            click.echo("Pre-flight check found problems:")
            for action in preflight.recovery_actions:
                click.echo(f"  - {action}")
            if not force:
                raise click.ClickException("Migration blocked; fix the problems or use --force")

        if force and not yes:
            click.confirm("Replace all stored templates with the catalog contents?", abort=True)

    options = MigrationOptions(
        file_path=file_path,
        force_remigration=force,
        validate_only=validate_only,
        create_backup=not no_backup,
    )
    result = orchestrator.execute_full_migration(options)
    click.echo(orchestrator.build_summary(result))
    if not result.success:
        ctx.exit(1)


@main.command()
@click.pass_context
def status(ctx: click.Context):
    """Show the migration status."""
    services = _services(ctx)
    current = services.migration.status()
    last_run = current.last_migration_time
    click.echo(f"Migrated:       {'yes' if current.has_migrated else 'no'}")
    click.echo(f"Templates:      {current.template_count}")
    click.echo(f"Last migration: {last_run.isoformat() if last_run else 'never'}")


@main.command()
@click.pass_context
def validate(ctx: click.Context):
    """Validate the stored templates."""
    report = _services(ctx).migration.validate()
    click.echo(f"Templates: {report.template_count}")
    if report.is_valid:
        click.echo("All templates are valid.")
        return

    for error in report.errors:
        click.echo(f"  - {error}")
    ctx.exit(1)


@main.command()
@click.option(
    "--file",
    "file_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Legacy catalog to check (defaults to the configured catalog).",
)
@click.pass_context
def check(ctx: click.Context, file_path: Path | None):
    """Look for problems that would affect a migration."""
    report = _services(ctx).orchestrator.handle_migration_exceptions(file_path)
    if report.success:
        click.echo("No problems found.")
        return

    click.echo("Recovery actions:")
    for action in report.recovery_actions:
        click.echo(f"  - {action}")
    ctx.exit(1)


@main.command()
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def cleanup(ctx: click.Context, yes: bool):
    """Delete all migrated templates and reset the migration status."""
    if not yes:
        click.confirm("Delete all migrated templates? Backups are kept.", abort=True)
    if not _services(ctx).orchestrator.cleanup_migration_data():
        raise click.ClickException("Cleanup failed, see the log for details")
    click.echo("Migration data removed.")


@main.command()
@click.pass_context
def backups(ctx: click.Context):
    """List template backups, newest first."""
    found = _services(ctx).migration.list_backups()
    if not found:
        click.echo("No backups.")
        return

    for backup in found:
        click.echo(
            f"{backup.key}  {backup.created_at.strftime('%Y-%m-%d %H:%M:%S')}  "
            f"{backup.template_count} template(s)"
        )


@main.command()
@click.argument("key")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def restore(ctx: click.Context, key: str, yes: bool):
    """Restore templates and status from backup KEY."""
    if not yes:
        click.confirm(f"Overwrite current templates with backup {key}?", abort=True)
    try:
        restored = _services(ctx).migration.restore_backup(key)
    except (StyleStudioError, LookupError, ValueError) as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Restored {restored.template_count} template(s) from {key}.")


# ---------------------------------------------------------------------------
# History commands.
# ---------------------------------------------------------------------------


@main.group()
def history():
    """Inspect or clear the generation history."""


@history.command("list")
@click.option("--limit", default=20, show_default=True, help="Maximum records to show.")
@click.pass_context
def list_history(ctx: click.Context, limit: int):
    """Show the newest history records."""
    records = _services(ctx).history.load_all()[:limit]
    if not records:
        click.echo("History is empty.")
        return

    for record in records:
        click.echo(f"{_format_ms(record.timestamp)}  {record.template}  {record.id}")


@history.command()
@click.pass_context
def stats(ctx: click.Context):
    """Show the number of records and the stored size."""
    current = _services(ctx).history.stats()
    click.echo(f"Records: {current.count}")
    click.echo(f"Size:    {current.storage_size_bytes} bytes")


@history.command()
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def clear(ctx: click.Context, yes: bool):
    """Delete the whole history."""
    if not yes:
        click.confirm("Delete every history record?", abort=True)
    try:
        _services(ctx).history.clear()
    except StyleStudioError as e:
        raise click.ClickException(str(e)) from e
    click.echo("History cleared.")


if __name__ == "__main__":
    main()
