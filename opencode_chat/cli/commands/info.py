import click
from rich.table import Table

from opencode_chat.cli.utils import console, run_async, with_client
from opencode_chat.utils.errors import UsageError

VERSION = "0.1.0"


def _load_providers(obj):
    app = obj["app"]
    return run_async(with_client(app, lambda client: client.get_providers()), obj.get("debug", False))


@click.command()
@click.option("-p", "--provider", help="Filter by provider id")
@click.pass_obj
def models(obj, provider):
    """List models offered by the server"""
    response = _load_providers(obj)
    selection = obj["app"].connection.selection

    providers = response.all
    if provider:
        providers = [p for p in providers if p.id == provider]

    if not providers:
        console.print("[yellow]No models available.[/yellow]")
        return

    for p in providers:
        table = Table(title=f"{p.display_name} Models", show_header=True)
        table.add_column("Model ID", style="cyan")
        table.add_column("Name")
        table.add_column("Context", justify="right", style="green")
        table.add_column("Reasoning", justify="center")
        table.add_column("Tools", justify="center")

        for model in p.models.values():
            marker = " *" if (selection.provider_id, selection.model_id) == (p.id, model.id) else ""
            context = model.limit.context if model.limit and model.limit.context else None
            table.add_row(
                f"{model.id}{marker}",
                model.display_name,
                f"{context:,}" if context else "-",
                "✓" if model.supports_reasoning else "✗",
                "✓" if model.supports_tool_call else "✗",
            )

        console.print(table)
        console.print()


@click.command()
@click.pass_obj
def providers(obj):
    """List providers configured on the server"""
    response = _load_providers(obj)

    table = Table(title="Providers", show_header=True)
    table.add_column("Provider", style="cyan")
    table.add_column("Name")
    table.add_column("Models", justify="right")
    table.add_column("Connected", justify="center")
    table.add_column("Default Model", style="green")

    for p in response.all:
        connected = p.id in response.connected
        status_color = "green" if connected else "red"
        table.add_row(
            p.id,
            p.display_name,
            str(len(p.models)),
            f"[{status_color}]{'✓' if connected else '✗'}[/{status_color}]",
            response.default.get(p.id, "-"),
        )

    console.print(table)


@click.command()
@click.argument("target")
@click.pass_obj
def use(obj, target: str):
    """Select the model for new prompts (PROVIDER/MODEL, or PROVIDER for its first model)

    \b
    Examples:
      opencode-chat use anthropic/claude-sonnet-4
      opencode-chat use openai
    """
    app = obj["app"]
    response = _load_providers(obj)

    provider_id, _, model_id = target.partition("/")
    if not provider_id:
        raise click.UsageError("Expected PROVIDER/MODEL")

    try:
        if model_id:
            selection = app.connection.select_model(response, provider_id, model_id)
        else:
            selection = app.connection.select_provider(response, provider_id)
    except UsageError as e:
        raise click.UsageError(str(e)) from e

    console.print(f"[green]✓[/green] Using [cyan]{selection}[/cyan]")


@click.command()
@click.pass_obj
def config(obj):
    """Show current configuration"""
    cfg = obj["app"].config_manager

    console.print("\n[bold cyan]Configuration[/bold cyan]")
    console.print(f"  Config file: [yellow]{cfg.config_path}[/yellow]")
    console.print("\n[bold cyan]Server[/bold cyan]")
    console.print(f"  URL: [green]{cfg.base_url or 'not connected'}[/green]")
    if cfg.base_url_override:
        console.print("  [dim](from OPENCODE_BASE_URL)[/dim]")
    console.print(f"  Setup complete: [green]{cfg.get('server.setup_complete')}[/green]")
    console.print(f"  Request timeout: [green]{cfg.get('server.request_timeout')}s[/green]")
    console.print("\n[bold cyan]Selection[/bold cyan]")
    console.print(f"  Provider: [green]{cfg.get('selection.provider_id') or 'server default'}[/green]")
    console.print(f"  Model: [green]{cfg.get('selection.model_id') or 'server default'}[/green]")
    console.print("\n[bold cyan]Stream[/bold cyan]")
    console.print(f"  Enabled: [green]{cfg.get('stream.enabled')}[/green]")
    console.print(
        f"  Reconnect backoff: [green]{cfg.get('stream.reconnect_base_ms')}ms"
        f" up to {cfg.get('stream.reconnect_max_ms')}ms[/green]"
    )
    console.print()


@click.command()
def version():
    """Show version information"""
    console.print(f"[cyan]OpenCode Chat[/cyan] v{VERSION}")
    console.print("Terminal client for OpenCode servers")


# Export individual commands for top-level CLI registration
models_command = models
providers_command = providers
use_command = use
config_command = config
version_command = version

__all__ = [
    "models_command",
    "providers_command",
    "use_command",
    "config_command",
    "version_command",
]
