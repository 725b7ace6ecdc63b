from __future__ import annotations

import asyncio
import sys
from functools import wraps
from pathlib import Path
from typing import Any, Callable, TypeVar

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import GeoSettings
from .errors import GeoLookupError
from .logging_config import setup_logging
from .service import GeoLookupService

console = Console()

F = TypeVar("F", bound=Callable[..., Any])


def handle_cli_errors(context: str = "") -> Callable[[F], F]:
    """Decorator turning service errors into a message and an exit code."""

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except KeyboardInterrupt:
                click.echo("\n⚠️  Operation cancelled by user", err=True)
                sys.exit(130)
            except GeoLookupError as e:
                prefix = f"{context or e.context}: " if (context or e.context) else ""
                click.echo(f"❌ {prefix}{type(e).__name__} - {e.message}", err=True)
                sys.exit(e.exit_code)

        return wrapper  # type: ignore

    return decorator


@click.group()
@click.version_option(version=__version__)
@click.option("--db-path", type=click.Path(dir_okay=False), help="Override GEOLITE_DB_PATH.")
@click.option("--log-level", default=None, help="Override LOG_LEVEL.")
@click.pass_context
@handle_cli_errors(context="Configuration")
def cli(ctx: click.Context, db_path: str | None, log_level: str | None) -> None:
    """
    geolookup: GeoLite2 City lookups and database updates.
    """
    settings = GeoSettings()
    if db_path:
        settings.db_path = Path(db_path)
    if log_level:
        settings.log_level = log_level
    setup_logging(settings.log_level, settings.mask_sensitive_data, format_style="simple")
    ctx.obj = GeoLookupService(settings)


@cli.command()
@click.argument("addresses", nargs=-1, required=True)
@click.pass_obj
@handle_cli_errors(context="Lookup")
def lookup(service: GeoLookupService, addresses: tuple[str, ...]) -> None:
    """Look up the country and city of one or more IP addresses."""
    table = Table(title="GeoLite2 City")
    table.add_column("IP address")
    table.add_column("Country")
    table.add_column("City")

    for address in addresses:
        location = service.lookup(address)
        table.add_row(address, location.country or "-", location.city or "-")

    console.print(table)


@cli.command()
@click.pass_obj
@handle_cli_errors(context="Update")
def update(service: GeoLookupService) -> None:
    """Download a new database if the installed one is stale."""
    if service.updater_disabled:
        click.echo("Updater disabled: set MAXMIND_LICENSE_KEY to enable database updates.")
        return

    updated = asyncio.run(service.update_database())
    if updated:
        click.echo("✅ GeoLite2 City database updated.")
    else:
        click.echo("GeoLite2 City database is up-to-date.")


@cli.command()
@click.pass_obj
def status(service: GeoLookupService) -> None:
    """Show the installed database and updater state."""
    info = service.status()

    table = Table(show_header=False)
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("Path", info.path)
    table.add_row("Exists", "yes" if info.exists else "no")
    if info.exists:
        table.add_row("Size", f"{info.size_bytes or 0:,} bytes")
        table.add_row("Age", f"{info.age_days:.1f} days")
        table.add_row("Up to date", "yes" if info.up_to_date else "no")
    table.add_row("Updater", "disabled" if info.updater_disabled else "enabled")

    console.print(table)


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":  # pragma: no cover - module execution convenience
    main()
