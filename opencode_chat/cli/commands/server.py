import asyncio

import click
from rich.table import Table

from opencode_chat.cli.utils import console, handle_exception, run_async, with_client
from opencode_chat.utils.errors import OpenCodeError, ResourceError
from opencode_chat.utils.logging import get_logger

logger = get_logger(__name__)


@click.command()
@click.argument("url")
@click.pass_obj
def connect(obj, url: str):
    """Connect to an OpenCode server and remember it

    \b
    Examples:
      opencode-chat connect 192.168.1.20:4096
      opencode-chat connect https://opencode.example.com
    """
    app = obj["app"]
    debug = obj.get("debug", False)

    base_url, health = run_async(app.connection.connect(url), debug)
    console.print(f"[green]✓[/green] Connected to OpenCode [cyan]{health.version}[/cyan] at {base_url}")

    try:
        _, selection = asyncio.run(with_client(app, app.connection.refresh_selection))
    except OpenCodeError as e:
        logger.warning(f"Provider refresh after connect failed: {e}")
        console.print("[yellow]Could not load providers; choose a model later with `opencode-chat use`[/yellow]")
        return
    console.print(f"  Model: [green]{selection}[/green]")


@click.command()
@click.pass_obj
def disconnect(obj):
    """Forget the saved server"""
    obj["app"].connection.disconnect()
    console.print("[dim]Disconnected. Run `opencode-chat connect URL` to reconnect.[/dim]")


@click.command()
@click.pass_obj
def health(obj):
    """Check that the saved server is healthy"""
    app = obj["app"]
    result = run_async(with_client(app, lambda client: client.health_check()), obj.get("debug", False))
    if not result.healthy:
        handle_exception(ResourceError(f"Server at {app.base_url} reported unhealthy"))
    console.print(f"[green]✓[/green] Healthy, version [cyan]{result.version}[/cyan]")


async def _load_info(client):
    return await client.get_current_project(), await client.get_path_info()


@click.command()
@click.pass_obj
def info(obj):
    """Show the server's current project and paths"""
    app = obj["app"]
    project, paths = run_async(with_client(app, _load_info), obj.get("debug", False))

    table = Table(title=f"OpenCode at {app.base_url}", show_header=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value")

    if project is not None:
        table.add_row("Project", project.name or project.id or "-")
        table.add_row("Worktree", project.worktree or "-")
        table.add_row("VCS", project.vcs or "-")
    else:
        table.add_row("Project", "[dim]unavailable[/dim]")

    if paths is not None:
        table.add_row("Directory", paths.directory or "-")
        table.add_row("Config", paths.config or "-")
        table.add_row("State", paths.state or "-")
    else:
        table.add_row("Paths", "[dim]unavailable[/dim]")

    console.print(table)


connect_command = connect
disconnect_command = disconnect
health_command = health
info_command = info

__all__ = ["connect_command", "disconnect_command", "health_command", "info_command"]
