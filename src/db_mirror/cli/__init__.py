"""CLI for database mirroring and atomic restore.

Provides commands to initialize the backup database, run backups and
restores, inspect status and health, and run the backup scheduler.

Usage:
    db-mirror init
    db-mirror backup
    db-mirror restore --yes
    db-mirror status
    db-mirror health
    db-mirror auto off
    db-mirror schedule
    db-mirror --config /etc/db-mirror.toml --verbose backup

Commands:
    init      - Recreate the primary's schema (no rows) in the backup database
    backup    - Copy every primary table into the backup database
    restore   - Replace the primary's tables with the backup's, all or nothing
    status    - Show the persisted backup status
    health    - Check both databases with a round-trip query
    auto      - Turn automatic backups on or off
    schedule  - Run the backup scheduler in the foreground
"""

import argparse
import asyncio
import logging
import sys

from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Confirm
from rich.table import Table

from db_mirror.config.loader import load_mirror_config
from db_mirror.errors import ConfigError
from db_mirror.factory import create_mirror_service, create_scheduler
from db_mirror.mirror.service import MirrorService

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _setup_logging(verbose: bool) -> None:
    """Send library log records through rich on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), markup=False)],
    )


def _load_service(args: argparse.Namespace) -> MirrorService | None:
    """Build the service from config, printing config errors."""
    try:
        config = load_mirror_config(getattr(args, "config", None))
        return create_mirror_service(config)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        return None


def _print_report(service: MirrorService) -> None:
    report = service.last_report
    if report is None:
        return
    style = "green" if report.success else "red"
    console.print(f"[{style}]{report.format_report()}[/{style}]")


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_init(args: argparse.Namespace) -> int:
    """Async implementation for init command.

    Returns:
        0 on success, 1 on failure.
    """
    service = _load_service(args)
    if service is None:
        return 1

    try:
        console.print("Initializing backup database...", style="dim")
        if await service.initialize():
            console.print("[bold green]v[/bold green] Backup database initialized")
            return 0
        console.print("[bold red]x[/bold red] Initialization failed (see log)")
        return 1
    finally:
        await service.close()


async def _async_backup(args: argparse.Namespace) -> int:
    """Async implementation for backup command.

    Returns:
        0 on success, 1 on failure.
    """
    service = _load_service(args)
    if service is None:
        return 1

    try:
        console.print("Backing up primary database...", style="dim")
        ok = await service.backup()
        _print_report(service)
        if ok:
            console.print("[bold green]v[/bold green] Backup complete")
            return 0
        console.print("[bold red]x[/bold red] Backup failed")
        return 1
    finally:
        await service.close()


async def _async_restore(args: argparse.Namespace) -> int:
    """Async implementation for restore command.

    The confirmation prompt is answered before this runs.

    Returns:
        0 on success, 1 on failure.
    """
    service = _load_service(args)
    if service is None:
        return 1

    try:
        console.print("Restoring primary database from backup...", style="dim")
        ok = await service.restore(confirm=True)
        _print_report(service)
        if ok:
            console.print("[bold green]v[/bold green] Restore complete")
            return 0
        console.print("[bold red]x[/bold red] Restore failed")
        return 1
    finally:
        await service.close()


async def _async_status(args: argparse.Namespace) -> int:
    """Async implementation for status command.

    Returns:
        0 on success, 1 if the status cannot be read.
    """
    service = _load_service(args)
    if service is None:
        return 1

    try:
        try:
            status = await service.status()
        except Exception as e:
            console.print(f"[red]Error reading status: {e}[/red]")
            return 1

        table = Table(title="Backup Status", show_header=False)
        table.add_column("Key", style="dim")
        table.add_column("Value")

        last_time = (
            status.last_backup_time.isoformat(timespec="seconds")
            if status.last_backup_time
            else "[dim]never[/dim]"
        )
        table.add_row("Last backup", last_time)
        table.add_row(
            "Last result",
            "[green]success[/green]" if status.last_backup_success else "[red]failed[/red]",
        )
        if status.last_backup_error:
            table.add_row("Last error", f"[red]{status.last_backup_error}[/red]")
        table.add_row("Successful backups", str(status.backup_count))
        table.add_row(
            "Automatic backups",
            "[green]on[/green]" if status.is_auto_backup_enabled else "[yellow]off[/yellow]",
        )
        table.add_row("Interval (hours)", str(service.settings.interval_hours))

        console.print(table)
        return 0
    finally:
        await service.close()


async def _async_health(args: argparse.Namespace) -> int:
    """Async implementation for health command.

    Returns:
        0 if both databases are healthy, 1 otherwise.
    """
    service = _load_service(args)
    if service is None:
        return 1

    try:
        reports = {
            "primary": await service.check_health(),
            "backup": await service.check_backup_health(),
        }
    finally:
        await service.close()

    table = Table(title="Database Health", show_header=True, header_style="bold")
    table.add_column("Database", style="dim")
    table.add_column("Healthy")
    table.add_column("Response (ms)", justify="right")
    table.add_column("Error")

    for name, report in reports.items():
        table.add_row(
            name,
            "[green]yes[/green]" if report.healthy else "[red]no[/red]",
            f"{report.response_time_ms:.1f}",
            report.error or "",
        )

    console.print(table)
    return 0 if all(r.healthy for r in reports.values()) else 1


async def _async_auto(args: argparse.Namespace) -> int:
    """Async implementation for auto command.

    Returns:
        0 on success, 1 on failure.
    """
    service = _load_service(args)
    if service is None:
        return 1

    enabled = args.state == "on"
    try:
        await service.set_auto_backup_enabled(enabled)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    finally:
        await service.close()

    console.print(
        f"[bold green]v[/bold green] Automatic backups "
        f"{'enabled' if enabled else 'disabled'}"
    )
    return 0


async def _async_schedule(args: argparse.Namespace) -> int:
    """Async implementation for schedule command.

    Runs until cancelled (Ctrl+C).

    Returns:
        1 on configuration error; otherwise does not return normally.
    """
    service = _load_service(args)
    if service is None:
        return 1

    scheduler = create_scheduler(service)
    scheduler.start()
    console.print(
        f"Scheduler running every [bold cyan]{scheduler.interval_hours()}[/bold cyan] "
        f"hours. Press Ctrl+C to stop.",
        style="dim",
    )
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.shutdown()
        await service.close()
    return 0


# ============================================================================
# Sync command wrappers
# ============================================================================


def cmd_init(args: argparse.Namespace) -> int:
    """Recreate the primary's schema in the backup database.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_init(args))


def cmd_backup(args: argparse.Namespace) -> int:
    """Back up the primary database.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_backup(args))


def cmd_restore(args: argparse.Namespace) -> int:
    """Restore the primary database from the backup.

    Asks for confirmation unless ``--yes`` is given, then wraps the async
    implementation with ``asyncio.run()``.

    Returns:
        0 on success or when the user declines, 1 on failure.
    """
    if not args.yes:
        console.print(
            "[bold yellow]Restore replaces every table in the primary "
            "database with the backup's copy.[/bold yellow]"
        )
        if not Confirm.ask("Continue?", console=console, default=False):
            console.print("[dim]Restore cancelled.[/dim]")
            return 0

    return asyncio.run(_async_restore(args))


def cmd_status(args: argparse.Namespace) -> int:
    """Show the persisted backup status.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_status(args))


def cmd_health(args: argparse.Namespace) -> int:
    """Check both databases.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_health(args))


def cmd_auto(args: argparse.Namespace) -> int:
    """Turn automatic backups on or off.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_auto(args))


def cmd_schedule(args: argparse.Namespace) -> int:
    """Run the backup scheduler until interrupted.

    Wraps the async implementation with ``asyncio.run()``.
    """
    try:
        return asyncio.run(_async_schedule(args))
    except KeyboardInterrupt:
        console.print("\n[dim]Scheduler stopped.[/dim]")
        return 0


# ============================================================================
# Main entry point
# ============================================================================


def main() -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="db-mirror",
        description="Database mirroring and atomic restore",
    )

    parser.add_argument(
        "--config",
        "-c",
        default=None,
        help="Path to db-mirror.toml (default: $DB_MIRROR_CONFIG or ./db-mirror.toml)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_init = subparsers.add_parser(
        "init",
        help="Recreate the primary's schema (no rows) in the backup database",
    )
    p_init.set_defaults(func=cmd_init)

    p_backup = subparsers.add_parser(
        "backup",
        help="Copy every primary table into the backup database",
    )
    p_backup.set_defaults(func=cmd_backup)

    p_restore = subparsers.add_parser(
        "restore",
        help="Replace the primary's tables with the backup's",
    )
    p_restore.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Skip the confirmation prompt",
    )
    p_restore.set_defaults(func=cmd_restore)

    p_status = subparsers.add_parser(
        "status",
        help="Show the persisted backup status",
    )
    p_status.set_defaults(func=cmd_status)

    p_health = subparsers.add_parser(
        "health",
        help="Check both databases",
    )
    p_health.set_defaults(func=cmd_health)

    p_auto = subparsers.add_parser(
        "auto",
        help="Turn automatic backups on or off",
    )
    p_auto.add_argument("state", choices=["on", "off"])
    p_auto.set_defaults(func=cmd_auto)

    p_schedule = subparsers.add_parser(
        "schedule",
        help="Run the backup scheduler in the foreground",
    )
    p_schedule.set_defaults(func=cmd_schedule)

    args = parser.parse_args()
    _setup_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
