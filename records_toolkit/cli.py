#!/usr/bin/env python3
"""
Command-line interface for the Records Toolkit.

Provides cascade delete/restore, retention sweep and inspection tools.
"""

import logging
import sys
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import click
from dateutil import parser as date_parser
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from . import __version__
from .config import get_config
from .database import create_db_engine, create_session_factory, init_db
from .retention import (
    LocalDirectoryBlobStore,
    NullBlobStore,
    PurgeReport,
    PurgeScheduler,
    PurgeService,
    build_policies,
)
from .soft_delete import (
    CascadeResult,
    DeleteOptions,
    RestoreOptions,
    SoftDeleteError,
    SoftDeleteService,
    describe,
)
from .soft_delete.mixins import utcnow

console = Console()


def _parse_as_of(value: Optional[str]) -> Optional[datetime]:
    """Parse a user supplied timestamp into naive UTC."""
    if not value:
        return None
    try:
        parsed = date_parser.parse(value)
    except (ValueError, OverflowError) as e:
        raise click.BadParameter(f"Invalid date '{value}': {e}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _session_factory(ctx: click.Context) -> Callable[[], Any]:
    obj = ctx.ensure_object(dict)
    if "session_factory" not in obj:
        engine = create_db_engine(obj.get("database_url") or get_config().database_url)
        init_db(engine)
        obj["session_factory"] = create_session_factory(engine)
    return obj["session_factory"]


def _purge_service(ctx: click.Context) -> PurgeService:
    config = get_config()
    blob_store = (
        LocalDirectoryBlobStore(config.blob_storage_path)
        if config.blob_storage_path
        else NullBlobStore()
    )
    return PurgeService(_session_factory(ctx), blob_store=blob_store, config=config)


def _print_result(result: CascadeResult, count: int, verb: str, format: str) -> None:
    if format == "json":
        console.print_json(data=result.to_dict())
        return

    status = "[green]✓ Committed[/green]" if result.success else "[red]✗ Rolled back[/red]"
    console.print(
        Panel.fit(
            f"[bold]{verb.capitalize()} {result.kind} {result.entity_id}[/bold]\n\n"
            f"Status: {status}\n"
            f"Records {verb}: [cyan]{count}[/cyan]\n"
            f"Records visited: [dim]{result.visited_count}[/dim]",
            border_style="green" if result.success else "red",
        )
    )

    if result.errors or result.warnings:
        table = Table(show_header=True)
        table.add_column("Level")
        table.add_column("Code", style="cyan")
        table.add_column("Entity", style="dim")
        table.add_column("Message")
        for issue in result.errors:
            table.add_row(
                "[red]error[/red]",
                issue.code,
                f"{issue.kind or ''} {issue.entity_id or ''}".strip(),
                issue.message,
            )
        for issue in result.warnings:
            table.add_row(
                "[yellow]warning[/yellow]",
                issue.code,
                f"{issue.kind or ''} {issue.entity_id or ''}".strip(),
                issue.message,
            )
        console.print(table)


def _print_purge_report(report: PurgeReport, format: str) -> None:
    if format == "json":
        console.print_json(data=report.to_dict())
        return

    title = "Retention Sweep Preview" if report.dry_run else "Retention Sweep"
    table = Table(title=title, show_header=True)
    table.add_column("Kind", style="cyan")
    table.add_column("Cutoff", style="dim")
    table.add_column("Purged" if not report.dry_run else "Due", style="green")
    table.add_column("Deferred", style="yellow")
    table.add_column("Blobs released")
    table.add_column("Blobs failed", style="red")

    for result in report.results:
        table.add_row(
            result.kind,
            result.cutoff.strftime("%Y-%m-%d %H:%M") if result.cutoff else "-",
            str(result.purged),
            str(result.deferred),
            str(result.blobs_released),
            str(result.blobs_failed),
        )

    console.print(table)
    console.print(
        f"\nTotal: [green]{report.total_purged}[/green] records in "
        f"{report.duration_seconds:.2f}s"
    )


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.option(
    "--database-url", envvar="RECORDS_DATABASE_URL", help="Database connection URL"
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level (defaults to the configured level)",
)
@click.pass_context
def cli(ctx: click.Context, database_url: Optional[str], log_level: Optional[str]) -> None:
    """Records Toolkit - cascade soft delete and retention for tenant data."""
    obj = ctx.ensure_object(dict)
    if database_url:
        obj["database_url"] = database_url

    logging.basicConfig(
        level=(log_level or get_config().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if ctx.invoked_subcommand is None:
        console.print(
            Panel.fit(
                f"[bold blue]Records Toolkit[/bold blue] v{__version__}\n"
                "[dim]Cascade soft delete and retention for tenant data[/dim]\n\n"
                "Use [bold]records --help[/bold] to see available commands.",
                border_style="blue",
            )
        )


@cli.group()
def config() -> None:
    """Inspect toolkit configuration."""
    pass


@config.command("show")
@click.option("--format", type=click.Choice(["table", "json", "yaml"]), default="table")
def config_show(format: str) -> None:
    """Display current configuration."""
    try:
        config_dict = get_config().to_dict()

        if format == "json":
            console.print_json(data=config_dict)
        elif format == "yaml":
            import yaml

            console.print(yaml.dump(config_dict, default_flow_style=False))
        else:
            table = Table(title="Records Configuration", show_header=True)
            table.add_column("Setting", style="cyan")
            table.add_column("Value", style="green")

            categories: Dict[str, Any] = {
                "General": [
                    "application_name",
                    "environment",
                    "database_url",
                    "log_level",
                ],
                "Cascade": [
                    "cascade_max_depth",
                    "department_principal_warning_threshold",
                    "department_work_item_warning_threshold",
                    "department_material_warning_threshold",
                    "tenant_cascade_warning_threshold",
                ],
                "Retention Sweep": [
                    "purge_enabled",
                    "purge_interval_hours",
                    "purge_run_on_start",
                    "blob_storage_path",
                ],
                "Retention Windows (days)": [
                    key for key in config_dict if key.endswith("_retention_days")
                ],
            }

            for category, settings in categories.items():
                table.add_row(f"[bold]{category}[/bold]", "")
                for setting in settings:
                    value = config_dict.get(setting)
                    if value is None:
                        value = "[dim]Not configured[/dim]"
                    elif isinstance(value, bool):
                        value = "✓" if value else "✗"
                    table.add_row(f"  {setting}", str(value))

            console.print(table)

    except Exception as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        sys.exit(1)


@cli.group()
def db() -> None:
    """Manage the records database."""
    pass


@db.command("init")
@click.pass_context
def db_init(ctx: click.Context) -> None:
    """Create the schema for all record tables."""
    try:
        _session_factory(ctx)
        console.print("[green]✓[/green] Database schema initialized")
    except Exception as e:
        console.print(f"[red]Error initializing database: {e}[/red]")
        sys.exit(1)


@cli.command()
def graph() -> None:
    """Show the cascade graph between entity kinds."""
    tables = describe()

    def add_children(branch: Tree, kind: str, path: tuple) -> None:
        for edge in tables["cascade"].get(kind, []):
            child = edge["child"]
            label = f"[cyan]{child}[/cyan] [dim]via {edge['field']}[/dim]"
            if child in path:
                branch.add(f"{label} [yellow](recursive)[/yellow]")
                continue
            add_children(branch.add(label), child, path + (child,))

    tree = Tree(f"[bold]{tables['root']}[/bold]")
    add_children(tree, tables["root"], (tables["root"],))
    console.print(tree)

    references = Tree("[bold]Reference-only links[/bold] [dim](pruned, not cascaded)[/dim]")
    for kind, edges in tables["references"].items():
        branch = references.add(f"[cyan]{kind}[/cyan]")
        for edge in edges:
            branch.add(f"{edge['source']}.{edge['field']} [dim]({edge['mode']})[/dim]")
    console.print(references)


@cli.command()
@click.argument("kind")
@click.argument("entity_id")
@click.option("--actor", required=True, help="ID of the principal deleting")
@click.option("--force", is_flag=True, help="Override soft validation errors")
@click.option("--skip-validation", is_flag=True, help="Skip pre-deletion checks")
@click.option("--max-depth", type=click.IntRange(1, 100), help="Maximum cascade depth")
@click.option("--format", type=click.Choice(["table", "json"]), default="table")
@click.pass_context
def delete(
    ctx: click.Context,
    kind: str,
    entity_id: str,
    actor: str,
    force: bool,
    skip_validation: bool,
    max_depth: Optional[int],
    format: str,
) -> None:
    """Cascade soft delete KIND ENTITY_ID."""
    try:
        options = DeleteOptions(
            force=force,
            skip_validation=skip_validation,
            max_depth=max_depth or get_config().cascade_max_depth,
        )
        service = SoftDeleteService(_session_factory(ctx))
        result = service.cascade_delete(kind, entity_id, actor, options)
    except (SoftDeleteError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    _print_result(result, result.deleted_count, "deleted", format)
    if not result.success:
        sys.exit(1)


@cli.command()
@click.argument("kind")
@click.argument("entity_id")
@click.option("--skip-validation", is_flag=True, help="Skip pre-restoration checks")
@click.option(
    "--no-validate-parents",
    is_flag=True,
    help="Allow restoring under a soft-deleted owner",
)
@click.option("--max-depth", type=click.IntRange(1, 100), help="Maximum cascade depth")
@click.option("--format", type=click.Choice(["table", "json"]), default="table")
@click.pass_context
def restore(
    ctx: click.Context,
    kind: str,
    entity_id: str,
    skip_validation: bool,
    no_validate_parents: bool,
    max_depth: Optional[int],
    format: str,
) -> None:
    """Cascade restore KIND ENTITY_ID."""
    try:
        options = RestoreOptions(
            skip_validation=skip_validation,
            validate_parents=not no_validate_parents,
            max_depth=max_depth or get_config().cascade_max_depth,
        )
        service = SoftDeleteService(_session_factory(ctx))
        result = service.cascade_restore(kind, entity_id, options)
    except (SoftDeleteError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    _print_result(result, result.restored_count, "restored", format)
    if not result.success:
        sys.exit(1)


@cli.command()
@click.option("--days", type=int, default=30, help="Number of days to analyze")
@click.pass_context
def report(ctx: click.Context, days: int) -> None:
    """Summarize soft deletions in the last DAYS days."""
    try:
        end_date = utcnow()
        start_date = end_date - timedelta(days=days)
        service = SoftDeleteService(_session_factory(ctx))
        deletion_report = service.generate_deletion_report(start_date, end_date)
    except Exception as e:
        console.print(f"[red]Error generating report: {e}[/red]")
        sys.exit(1)

    if not deletion_report.total_deletions:
        console.print(f"[yellow]No soft deletions in the last {days} days[/yellow]")
        return

    console.print(
        Panel.fit(
            f"[bold]Soft Deletions[/bold]\nLast {days} days\n\n"
            f"Total records: [cyan]{deletion_report.total_deletions:,}[/cyan]\n"
            f"Actors: [green]{len(deletion_report.by_actor)}[/green]",
            border_style="blue",
        )
    )

    table = Table(title="By Kind")
    table.add_column("Kind", style="cyan")
    table.add_column("Count", style="green")
    for kind, count in sorted(
        deletion_report.by_kind.items(), key=lambda x: x[1], reverse=True
    ):
        table.add_row(kind, str(count))
    console.print(table)


@cli.group()
def purge() -> None:
    """Run and inspect the retention sweep."""
    pass


@purge.command("run")
@click.option("--as-of", help="Reference time for retention cutoffs")
@click.option("--format", type=click.Choice(["table", "json"]), default="table")
@click.pass_context
def purge_run(ctx: click.Context, as_of: Optional[str], format: str) -> None:
    """Permanently erase expired soft-deleted records."""
    now = _parse_as_of(as_of)
    try:
        purge_report = _purge_service(ctx).purge(now)
    except Exception as e:
        console.print(f"[red]Retention sweep failed and was rolled back: {e}[/red]")
        sys.exit(1)
    _print_purge_report(purge_report, format)


@purge.command("preview")
@click.option("--as-of", help="Reference time for retention cutoffs")
@click.option("--format", type=click.Choice(["table", "json"]), default="table")
@click.pass_context
def purge_preview(ctx: click.Context, as_of: Optional[str], format: str) -> None:
    """Show what a sweep would erase without changing anything."""
    now = _parse_as_of(as_of)
    try:
        purge_report = _purge_service(ctx).preview(now)
    except Exception as e:
        console.print(f"[red]Error previewing retention sweep: {e}[/red]")
        sys.exit(1)
    _print_purge_report(purge_report, format)


@purge.command("policies")
def purge_policies() -> None:
    """List the retention policy of every kind."""
    table = Table(title="Retention Policies", show_header=True)
    table.add_column("Kind", style="cyan")
    table.add_column("Category")
    table.add_column("Retention (days)", style="green")
    table.add_column("Purged")

    for kind, policy in build_policies().items():
        table.add_row(
            kind.value,
            policy.category.value,
            str(policy.retention_days) if policy.retention_days else "-",
            "✓" if policy.purge_allowed else "[red]never[/red]",
        )
    console.print(table)


@purge.command("serve")
@click.option("--interval-hours", type=float, help="Hours between sweeps")
@click.option(
    "--run-on-start/--no-run-on-start",
    default=None,
    help="Sweep immediately on startup",
)
@click.pass_context
def purge_serve(
    ctx: click.Context, interval_hours: Optional[float], run_on_start: Optional[bool]
) -> None:
    """Run the retention sweep on an interval until interrupted."""
    config = get_config()
    if not config.purge_enabled:
        console.print("[yellow]Retention sweep is disabled in configuration[/yellow]")
        return

    scheduler = PurgeScheduler(
        _purge_service(ctx),
        interval_hours=interval_hours or config.purge_interval_hours,
        run_on_start=config.purge_run_on_start if run_on_start is None else run_on_start,
    )
    scheduler.start()
    console.print(
        f"[green]✓[/green] Retention sweep scheduled every "
        f"{scheduler.interval_hours}h. Press Ctrl+C to stop."
    )
    try:
        while scheduler.is_running():
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()
        console.print("Retention scheduler stopped")


if __name__ == "__main__":
    cli()
