import asyncio
import sys
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, TypeVar

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from opencode_chat.api.client import OpenCodeClient
from opencode_chat.core.chat import EntryKind, TranscriptEntry
from opencode_chat.utils.errors import OpenCodeError
from opencode_chat.utils.logging import get_logger

console = Console()
logger = get_logger(__name__)

T = TypeVar("T")


def handle_exception(e: BaseException, debug_mode: bool = False) -> None:
    """Handle exceptions with clean output."""
    exit_code = 1

    if isinstance(e, OpenCodeError):
        exit_code = getattr(e, "exit_code", 1)
        notes = getattr(e, "__notes__", [])
        hint_text = "\n".join([f"[dim]💡 {note}[/dim]" for note in notes])
        body = f"[red]Error[/red]: {escape(str(e))}"
        if hint_text:
            body += f"\n\n{hint_text}"
        console.print(Panel(body, title="[bold]OpenCode Error[/bold]", border_style="red"))
    elif isinstance(e, KeyboardInterrupt):
        console.print("[yellow]Interrupted[/yellow]")
        exit_code = 130
    else:
        console.print(
            Panel(
                f"[red]Unexpected Error[/red]: {e}\n\n"
                f"[dim]Run again with --debug for the full traceback[/dim]",
                title="[bold]OpenCode Error[/bold]",
                border_style="red",
            )
        )

    if debug_mode:
        logger.exception(f"Unhandled exception: {e}")
        console.print_exception(show_locals=True)

    sys.exit(exit_code)


def run_async(coro: Awaitable[T], debug_mode: bool = False) -> T:
    """Run ``coro`` to completion; OpenCode errors exit with their code."""
    try:
        return asyncio.run(coro)
    except OpenCodeError as e:
        handle_exception(e, debug_mode)


async def with_client(app, fn: Callable[[OpenCodeClient], Awaitable[T]]) -> T:
    """Open a client for the saved server, run ``fn`` with it, then close it."""
    async with app.create_client() as client:
        return await fn(client)


def format_timestamp(ms: Optional[int]) -> str:
    if not ms:
        return "-"
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


ENTRY_STYLES = {
    EntryKind.USER: ("You", "bold cyan"),
    EntryKind.ASSISTANT: ("Assistant", "bold green"),
    EntryKind.REASONING: ("Reasoning", "dim italic"),
    EntryKind.TOOL_CALL: ("Tool", "magenta"),
    EntryKind.TOOL_RESULT: ("Result", "magenta"),
    EntryKind.SYSTEM: ("System", "dim"),
    EntryKind.ERROR: ("Error", "bold red"),
    EntryKind.OTHER: ("Other", "yellow"),
}


def print_entry(entry: TranscriptEntry, out: Any = None) -> None:
    """Print one transcript entry with a role label."""
    out = out or console
    label, style = ENTRY_STYLES.get(entry.kind, ("?", "white"))
    if entry.kind in (EntryKind.SYSTEM, EntryKind.ERROR):
        out.print(f"[{style}]{escape(entry.text)}[/{style}]", highlight=False)
        return

    out.print(f"[{style}]{label}:[/{style}]")
    text = entry.text
    if entry.kind == EntryKind.TOOL_RESULT and entry.is_error:
        text = f"[error] {text}"
    out.print(text, markup=False, highlight=False)
    if entry.kind == EntryKind.TOOL_CALL and entry.detail:
        detail = entry.detail if len(entry.detail) <= 200 else entry.detail[:200] + "..."
        out.print(f"  {detail}", style="dim", markup=False, highlight=False)
