import logging
import sys

import click

from opencode_chat.cli.commands import (
    chat_command,
    config_command,
    connect_command,
    disconnect_command,
    health_command,
    info_command,
    models_command,
    providers_command,
    send_command,
    sessions_group,
    use_command,
    version_command,
)
from opencode_chat.cli.utils import console, handle_exception
from opencode_chat.core.app import OpenCodeApp
from opencode_chat.utils.errors import OpenCodeError
from opencode_chat.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

_debug_mode = False


def excepthook(exc_type, exc_value, exc_traceback) -> None:
    """Global exception handler."""
    if exc_type is KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
        sys.exit(130)
    handle_exception(exc_value, debug_mode=_debug_mode)


@click.group(
    invoke_without_command=True,
    context_settings=dict(help_option_names=["-h", "--help"]),
)
@click.option("-c", "--config", "config_path", default=None, type=click.Path(), help="Config file path")
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.pass_context
def cli(ctx, config_path, debug):
    """OpenCode Chat - terminal client for OpenCode servers

    \b
    Examples:
      opencode-chat connect 192.168.1.20:4096   # Save a server
      opencode-chat sessions                    # List sessions
      opencode-chat chat                        # Chat in the latest session
      opencode-chat send ses_abc "hello"        # One-shot prompt
      opencode-chat use anthropic/claude-sonnet-4
    """
    global _debug_mode
    _debug_mode = debug
    sys.excepthook = excepthook

    try:
        app = OpenCodeApp(config_path)
    except OpenCodeError as e:
        handle_exception(e, debug)

    log_config = app.config_manager.config.logging
    level = logging.DEBUG if debug else getattr(logging, log_config.level.upper(), logging.INFO)
    setup_logging(level=level, log_file=log_config.file, recent_entries=log_config.recent_entries)

    ctx.obj = {
        "app": app,
        "debug": debug,
    }

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


cli.add_command(connect_command, "connect")
cli.add_command(disconnect_command, "disconnect")
cli.add_command(health_command, "health")
cli.add_command(info_command, "info")
cli.add_command(config_command, "config")
cli.add_command(version_command, "version")
cli.add_command(providers_command, "providers")
cli.add_command(models_command, "models")
cli.add_command(use_command, "use")
cli.add_command(sessions_group, "sessions")
cli.add_command(send_command, "send")
cli.add_command(chat_command, "chat")


if __name__ == "__main__":
    cli()
