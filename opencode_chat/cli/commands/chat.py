import click

from opencode_chat.cli.repl import StreamPrinter, repl_main
from opencode_chat.cli.utils import console, run_async
from opencode_chat.utils.errors import ResourceError
from opencode_chat.utils.logging import get_logger

logger = get_logger(__name__)

# How long a one-shot send waits for the event stream before posting anyway
STREAM_READY_TIMEOUT = 5.0


@click.command(name="chat")
@click.argument("session_id", required=False)
@click.option("--new", "new", is_flag=True, help="Start a new session")
@click.option("-t", "--title", default=None, help="Title for a new session")
@click.pass_obj
def chat_command(obj, session_id, new, title):
    """Start interactive chat REPL

    \b
    Examples:
      opencode-chat chat                  # Resume the most recent session
      opencode-chat chat ses_abc123       # Open a specific session
      opencode-chat chat --new -t "Docs"  # Start a new session
    """
    run_async(repl_main(obj["app"], session_id=session_id, new=new, title=title), obj.get("debug", False))


async def send_once(app, session_id: str, text: str, timeout: float) -> bool:
    """Send ``text`` and print the streamed reply until the turn ends.

    Returns False if the turn did not finish within ``timeout`` seconds.
    """
    printer = StreamPrinter()
    async with app.create_client() as client:
        chat = app.create_chat(client, session_id=session_id, on_delta=printer.delta, on_turn_end=printer.turn_end)
        await chat.start_stream()
        if not await chat.wait_connected(STREAM_READY_TIMEOUT):
            logger.warning("Event stream not connected yet; the start of the reply may be missed")

        await chat.send(text)
        finished = await chat.wait_for_turn(timeout)
        if chat.last_error:
            raise ResourceError(f"Session error: {chat.last_error}")
        return finished


@click.command(name="send")
@click.argument("session_id")
@click.argument("text", nargs=-1, required=True)
@click.option("--timeout", type=float, default=300.0, show_default=True, help="Seconds to wait for the reply")
@click.pass_obj
def send_command(obj, session_id, text, timeout):
    """Send one prompt to a session and print the streamed reply

    \b
    Examples:
      opencode-chat send ses_abc123 "summarize the README"
    """
    finished = run_async(send_once(obj["app"], session_id, " ".join(text), timeout), obj.get("debug", False))
    if not finished:
        console.print(f"[yellow]No end of turn after {timeout:.0f}s; the reply may still be running[/yellow]")
