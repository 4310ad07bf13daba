"""Interactive REPL chat mode for OpenCode sessions."""

import os
from typing import Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.markup import escape

from opencode_chat.api.client import OpenCodeClient
from opencode_chat.api.models import Session
from opencode_chat.cli.utils import format_timestamp, print_entry
from opencode_chat.core.chat import ChatController, EntryKind, TranscriptEntry
from opencode_chat.utils.errors import OpenCodeError
from opencode_chat.utils.logging import get_logger, get_recent_entries

logger = get_logger(__name__)
console = Console()

REPL_COMMANDS = {
    "/exit",
    "/quit",
    "/help",
    "/sessions",
    "/switch",
    "/model",
    "/stream",
    "/logs",
    "/clear",
}

# Upper bound on waiting for one assistant turn
TURN_TIMEOUT = 600.0
HISTORY_PREVIEW = 10

# Create completer for REPL commands
repl_completer = WordCompleter(
    list(REPL_COMMANDS),
    ignore_case=True,
    sentence=True,
)


class StreamPrinter:
    """Prints controller updates as they arrive."""

    def __init__(self):
        self.in_reply = False

    def delta(self, message_id: str, delta: str) -> None:
        self.in_reply = True
        print(delta, end="", flush=True)

    def entry(self, entry: TranscriptEntry) -> None:
        if entry.kind == EntryKind.USER:
            return
        if self.in_reply:
            print()
            self.in_reply = False
        print_entry(entry, console)

    def turn_end(self, error: Optional[str]) -> None:
        if self.in_reply:
            print()
        self.in_reply = False


async def _resolve_session(client: OpenCodeClient, session_id: Optional[str], new: bool, title: Optional[str]) -> Session:
    if new:
        return await client.create_session(title)

    sessions = await client.list_sessions()
    if session_id:
        for session in sessions:
            if session.id == session_id:
                return session
        # Unlisted ids are still usable; the server decides whether they exist
        return Session(id=session_id)
    if sessions:
        return max(sessions, key=lambda s: s.updated)
    return await client.create_session(title)


async def repl_main(
    app,
    session_id: Optional[str] = None,
    new: bool = False,
    title: Optional[str] = None,
) -> None:
    """Interactive chat REPL.

    Args:
        app: OpenCodeApp with a saved server.
        session_id: Session to open (defaults to the most recently updated).
        new: Create a fresh session instead.
        title: Title for a created session.
    """
    printer = StreamPrinter()
    async with app.create_client() as client:
        chat = app.create_chat(
            client,
            on_delta=printer.delta,
            on_entry=printer.entry,
            on_turn_end=printer.turn_end,
        )

        session = await _resolve_session(client, session_id, new, title)
        await switch_session(chat, session)

        if app.config_manager.get("stream.enabled", True):
            await chat.start_stream()

        # Header
        console.print("[bold cyan]OpenCode Chat[/bold cyan]")
        console.print(f"[dim]Server: {client.base_url}[/dim]")
        console.print(f"[dim]Model: {app.connection.selection}[/dim]")
        console.print("[dim]Type /help for commands, Ctrl+D or /exit to quit[/dim]")

        prompt_session = PromptSession(completer=repl_completer)

        # REPL Loop
        with patch_stdout():
            while True:
                try:
                    print()
                    # A failed send leaves its text in the draft so it can be retried
                    user_input = (await prompt_session.prompt_async("You: ", default=chat.draft)).strip()

                    if not user_input:
                        continue

                    if user_input.startswith("/"):
                        should_continue = await handle_repl_command(user_input, app, client, chat)
                        if not should_continue:
                            break
                        continue

                    print()
                    console.print("[bold green]Assistant:[/bold green]")
                    try:
                        await chat.send(user_input)
                    except OpenCodeError:
                        continue

                    if not chat.stream_connected and not client.events.is_running:
                        console.print("[dim]Streaming is off; use /stream on to see replies[/dim]")
                        continue
                    if not await chat.wait_for_turn(TURN_TIMEOUT):
                        console.print("\n[yellow]Still waiting for the reply; it will keep streaming here[/yellow]")

                except KeyboardInterrupt:
                    print()
                    continue
                except EOFError:
                    console.print("\n[dim]Goodbye![/dim]")
                    break
                except Exception as e:
                    logger.exception(f"REPL error: {e}")
                    console.print(f"[red]Error: {e}[/red]")


async def switch_session(chat: ChatController, session: Session) -> None:
    chat.set_session(session.id)
    try:
        entries = await chat.load_history()
    except OpenCodeError as e:
        logger.warning(f"Could not load history for {session.id}: {e}")
        console.print(f"[yellow]Could not load history: {e}[/yellow]")
        entries = []

    console.print(f"[bold]Session:[/bold] {session.display_title} [dim]({session.id})[/dim]")
    if entries:
        shown = entries[-HISTORY_PREVIEW:]
        if len(entries) > len(shown):
            console.print(f"[dim]... {len(entries) - len(shown)} earlier entries[/dim]")
        for entry in shown:
            print_entry(entry, console)


async def handle_repl_command(cmd: str, app, client: OpenCodeClient, chat: ChatController) -> bool:
    """Handle REPL commands.

    Returns:
        False if should exit, True otherwise.
    """
    parts = cmd.split(maxsplit=1)
    command = parts[0].lower()
    args = parts[1].strip() if len(parts) > 1 else ""

    if command in ("/exit", "/quit"):
        console.print("[dim]Goodbye![/dim]")
        return False

    try:
        if command == "/help":
            show_help()

        elif command == "/clear":
            os.system("clear" if os.name != "nt" else "cls")
            chat.transcript = []
            console.print("[dim]Screen cleared[/dim]")

        elif command == "/sessions":
            await show_sessions(client, chat.session_id)

        elif command == "/switch":
            if not args:
                console.print("[yellow]Usage: /switch <session-id> | /switch new \\[title][/yellow]")
            elif args.split()[0] == "new":
                new_title = args[3:].strip() or None
                await switch_session(chat, await client.create_session(new_title))
            else:
                await switch_session(chat, await _resolve_session(client, args, False, None))

        elif command == "/model":
            if not args:
                console.print(f"[dim]Current model: {app.connection.selection}[/dim]")
            else:
                providers = await client.get_providers()
                provider_id, _, model_id = args.partition("/")
                if model_id:
                    selection = app.connection.select_model(providers, provider_id, model_id)
                else:
                    selection = app.connection.select_provider(providers, provider_id)
                console.print(f"[green]✓[/green] Switched to model: {selection}")

        elif command == "/stream":
            await toggle_stream(chat, client, args)

        elif command == "/logs":
            limit = int(args) if args.isdigit() else 20
            show_logs(limit)

        else:
            console.print(f"[red]Unknown command: {command}[/red]")
            console.print("[dim]Type /help for available commands[/dim]")

    except OpenCodeError as e:
        console.print(f"[red]Error: {e}[/red]")

    return True


async def toggle_stream(chat: ChatController, client: OpenCodeClient, args: str) -> None:
    running = client.events.is_running
    if args not in ("", "on", "off"):
        console.print("[yellow]Usage: /stream \\[on|off][/yellow]")
        return
    if not args:
        console.print(f"[dim]Stream: {client.connection_state.describe()}[/dim]")
    elif args == "on" and not running:
        await chat.start_stream()
        console.print("[dim]Streaming resumed[/dim]")
    elif args == "off" and running:
        await chat.stop_stream()


async def show_sessions(client: OpenCodeClient, current: Optional[str]) -> None:
    sessions = sorted(await client.list_sessions(), key=lambda s: s.updated, reverse=True)
    if not sessions:
        console.print("[yellow]No sessions found[/yellow]")
        return
    for s in sessions:
        marker = "[green]*[/green]" if s.id == current else " "
        console.print(
            f"{marker} [cyan]{s.id}[/cyan] {s.display_title} [dim]{format_timestamp(s.updated)}[/dim]",
            highlight=False,
        )


def show_logs(limit: int) -> None:
    """Display the most recent in-memory log entries."""
    entries = get_recent_entries()[-limit:]
    if not entries:
        console.print("[dim]No log entries[/dim]")
        return
    for entry in entries:
        stamp = format_timestamp(int(entry.time * 1000))
        console.print(f"[dim]{stamp}[/dim] {entry.level:<7} {escape(entry.name)}: {escape(entry.message)}", highlight=False)


def show_help() -> None:
    """Display help text for REPL commands."""
    help_text = r"""
[bold]REPL Commands:[/bold]

  [cyan]/help[/cyan]                 Show this help
  [cyan]/exit, /quit[/cyan]         Exit REPL (also Ctrl+D)
  [cyan]/sessions[/cyan]             List sessions on the server
  [cyan]/switch <id>[/cyan]          Switch session (/switch new \[title] creates one)
  [cyan]/model \[p\[/m]][/cyan]        Show or change provider/model
  [cyan]/stream \[on|off][/cyan]      Show, resume or pause the event stream
  [cyan]/logs \[n][/cyan]             Show recent log entries
  [cyan]/clear[/cyan]                Clear the screen
"""
    console.print(help_text)
