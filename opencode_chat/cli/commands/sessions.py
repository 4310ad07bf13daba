import click
from rich.table import Table

from opencode_chat.cli.utils import console, format_timestamp, print_entry, run_async, with_client
from opencode_chat.core.chat import entries_from_message


@click.group(name="sessions", invoke_without_command=True)
@click.pass_context
def sessions_group(ctx):
    """Manage sessions on the server

    \b
    Commands:
      opencode-chat sessions              List all sessions
      opencode-chat sessions new          Create a session
      opencode-chat sessions show <id>    Display conversation
      opencode-chat sessions delete <id>  Delete a session
    """
    if ctx.invoked_subcommand is None:
        ctx.invoke(sessions_list)


@sessions_group.command(name="list")
@click.option("--recent", "-r", type=int, help="Show N most recently updated sessions")
@click.pass_obj
def sessions_list(obj, recent: int):
    """List all sessions"""
    sessions = run_async(with_client(obj["app"], lambda client: client.list_sessions()), obj.get("debug", False))

    if not sessions:
        console.print("[yellow]No sessions found[/yellow]")
        return

    sessions = sorted(sessions, key=lambda s: s.updated, reverse=True)
    if recent:
        sessions = sessions[:recent]

    table = Table(show_header=True)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Changes", style="dim")
    table.add_column("Updated", style="dim")

    for s in sessions:
        table.add_row(s.id, s.display_title, s.change_summary, format_timestamp(s.updated))

    console.print(table)


@sessions_group.command(name="new")
@click.option("--title", "-t", default=None, help="Session title")
@click.pass_obj
def sessions_new(obj, title):
    """Create a session"""
    session = run_async(
        with_client(obj["app"], lambda client: client.create_session(title)), obj.get("debug", False)
    )
    console.print(f"[green]✓[/green] Created session [cyan]{session.id}[/cyan] ({session.display_title})")


@sessions_group.command(name="show")
@click.argument("session_id")
@click.option("--limit", "-n", type=int, help="Show only the last N entries")
@click.pass_obj
def sessions_show(obj, session_id: str, limit: int):
    """Display session conversation"""
    messages = run_async(
        with_client(obj["app"], lambda client: client.get_session_messages(session_id)), obj.get("debug", False)
    )
    entries = [entry for message in messages for entry in entries_from_message(message, session_id)]

    if not entries:
        console.print(f"[yellow]Session '{session_id}' has no messages[/yellow]")
        return
    if limit:
        entries = entries[-limit:]

    console.print(f"\n[bold]Session: {session_id}[/bold]\n")
    for entry in entries:
        print_entry(entry)
        console.print()


@sessions_group.command(name="delete")
@click.argument("session_id")
@click.option("--force", "-f", is_flag=True, help="Skip confirmation prompt")
@click.pass_obj
def sessions_delete(obj, session_id: str, force: bool):
    """Delete a session"""
    if not force:
        if not click.confirm(f"Delete session '{session_id}'?"):
            return

    deleted = run_async(
        with_client(obj["app"], lambda client: client.delete_session(session_id)), obj.get("debug", False)
    )
    if deleted:
        console.print(f"[green]✓[/green] Session '{session_id}' deleted")
    else:
        console.print(f"[red]Server did not delete session '{session_id}'[/red]")
