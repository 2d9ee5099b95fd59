"""Main CLI application."""

import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from redtimer import __version__
from redtimer.cli.config_commands import config
from redtimer.core.config import ConfigManager
from redtimer.core.errors import TrackerError
from redtimer.redmine.client import RedmineClient
from redtimer.runtime.app import AppError, RedTimerApp, setup_logging

console = Console()
error_console = Console(stderr=True)


def get_config(config_path: Optional[str] = None) -> ConfigManager:
    """Get ConfigManager instance with optional custom config file."""
    try:
        return ConfigManager(Path(config_path) if config_path else None)
    except ValueError as e:
        error_console.print(f"[yellow]Warning:[/yellow] {e}")
        return ConfigManager(Path(config_path) if config_path else None)


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", help="Custom configuration file", type=click.Path())
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], no_color: bool) -> None:
    """RedTimer - Redmine time tracking from the command line.

    Track time on Redmine issues and save it as time entries.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path

    if no_color:
        console.no_color = True


cli.add_command(config)


@cli.command()
@click.argument("issue_id", type=int, required=False)
@click.option("--no-start", is_flag=True, help="Do not start the timer after loading the issue")
@click.pass_context
def run(ctx: click.Context, issue_id: Optional[int], no_start: bool) -> None:
    """Start an interactive tracking session.

    Example:
        redtimer run
        redtimer run 42
        redtimer run 42 --no-start
    """
    config_mgr = get_config(ctx.obj.get("config_path"))

    try:
        app = RedTimerApp(config_mgr, console)
    except AppError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    log_file = setup_logging(config_mgr)
    console.print(f"[green]✓[/green] Connected to {app.client.base_url}")
    console.print(f"  Log file: {log_file}")
    console.print("  Type [cyan]help[/cyan] for commands\n")

    app.run(issue_id=issue_id, start_timer=False if no_start else None)


@cli.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Check the Redmine connection settings.

    Example:
        redtimer check
    """
    config_mgr = get_config(ctx.obj.get("config_path"))
    if not config_mgr.is_connection_configured:
        error_console.print("[red]Error:[/red] Redmine URL and API key are not configured")
        sys.exit(1)

    client = RedmineClient(
        url=config_mgr.get("redmine.url"),
        api_key=config_mgr.get("redmine.api_key"),
        dispatch=lambda callback, *args: callback(*args),
        verify_ssl=config_mgr.get("redmine.verify_ssl", True),
        timeout=config_mgr.get("redmine.timeout", 10),
    )
    try:
        login = client.check_connection()
    except TrackerError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    finally:
        client.close()

    console.print(f"[green]✓[/green] Connected to {client.base_url} as {login}")


if __name__ == "__main__":
    cli(obj={})
