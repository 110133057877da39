"""Main CLI application using Typer."""
import asyncio
from uuid import uuid4

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..api import RAGFlowError, StreamInterruptedError
from ..config import Settings, configure_logging
from ..conversation import ChatMessage
from ..notes import NoteWriteError, clean_message_content
from ..notes.cleanup import truncate
from .providers import get_client, get_note_writer, get_store, require_assistant_id

# Load environment variables
load_dotenv()

# Create Typer app
app = typer.Typer(
    name="ragvault",
    help="Chat with RAGFlow assistants and save conversations to a Markdown vault",
    no_args_is_help=True,
    add_completion=True,
)
config_app = typer.Typer(help="Show and change settings", no_args_is_help=True)
app.add_typer(config_app, name="config")

# Console for rich output
console = Console()


@app.callback()
def main_callback(
    ctx: typer.Context,
    log_level: str = typer.Option(
        "warning",
        "--log-level",
        "-l",
        help="Log level: debug, info, warning, or error",
    ),
):
    """Chat with RAGFlow assistants from the terminal."""
    # The TUI routes records to its own log panel
    if ctx.invoked_subcommand != "chat":
        configure_logging(log_level, console=Console(stderr=True))


@app.command()
def chat(
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Show log panel with level: debug (all), info, warning, or error",
    ),
):
    """Launch the interactive TUI chat interface."""
    from ..ui import run_textual_tui

    store = get_store(console)
    try:
        asyncio.run(run_textual_tui(store, log_level=log_level))
    except KeyboardInterrupt:
        pass
    console.print("[dim]Goodbye![/dim]")


@app.command()
def ask(
    question: str = typer.Argument(..., help="Question for the assistant"),
    assistant: str | None = typer.Option(
        None,
        "--assistant",
        "-a",
        help="Chat assistant ID (defaults to the configured assistant)",
    ),
    no_stream: bool = typer.Option(
        False,
        "--no-stream",
        help="Wait for the whole answer instead of streaming it",
    ),
    session: bool = typer.Option(
        False,
        "--session",
        help="Ask through a new RAGFlow session (answer includes references)",
    ),
    save: bool = typer.Option(
        False,
        "--save",
        "-s",
        help="Save the question and answer to the vault",
    ),
):
    """Ask a single question and print the answer."""
    store = get_store(console)
    settings = store.settings
    assistant_id = require_assistant_id(settings, assistant, console)

    async def _ask() -> ChatMessage:
        async with get_client(settings, console) as client:
            if session:
                chat_session = await client.create_session(assistant_id)
                reply = await client.send_session_message(assistant_id, chat_session.id, question)
                console.print(reply.content, markup=False, highlight=False)
                return ChatMessage.assistant(reply.content, references=list(reply.references))

            def on_delta(delta: str, is_final: bool) -> None:
                if delta:
                    console.print(delta, end="", markup=False, highlight=False, soft_wrap=True)
                if is_final:
                    console.print()

            result = await client.complete(assistant_id, question, on_delta, stream=not no_stream)
            return ChatMessage.assistant(result.answer or "No response from RAGFlow")

    try:
        reply = asyncio.run(_ask())
    except StreamInterruptedError as e:
        console.print()
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e
    except (RAGFlowError, ValueError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e

    for i, ref in enumerate(reply.references, 1):
        preview = truncate(" ".join(ref.content.split()), 100)
        console.print(f"[dim]{i}. [bold]{escape(ref.document_name)}[/bold]: {escape(preview)}[/dim]")

    if save:
        if assistant_id == settings.chat_assistant_id and settings.chat_assistant_name:
            assistant_name = settings.chat_assistant_name
        else:
            assistant_name = assistant_id
        try:
            path = get_note_writer(settings).save(
                [ChatMessage.user(question), reply], assistant_name, uuid4().hex
            )
        except NoteWriteError as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            raise typer.Exit(code=1) from e
        console.print(f"[green]Saved to {path}[/green]")


@app.command()
def assistants():
    """List the chat assistants available to the API key."""
    settings = get_store(console).settings

    async def _list():
        async with get_client(settings, console) as client:
            return await client.list_chat_assistants()

    try:
        items = asyncio.run(_list())
    except RAGFlowError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e

    if not items:
        console.print("[yellow]No chat assistants found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("", width=1)
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    for item in items:
        current = "[green]*[/green]" if item.id == settings.chat_assistant_id else ""
        table.add_row(current, item.id, item.name)
    console.print(table)


@app.command()
def datasets():
    """List the datasets (knowledge bases) available to the API key."""
    settings = get_store(console).settings

    async def _list():
        async with get_client(settings, console) as client:
            return await client.list_datasets()

    try:
        items = asyncio.run(_list())
    except RAGFlowError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e

    if not items:
        console.print("[yellow]No datasets found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    for item in items:
        table.add_row(item.id, item.name)
    console.print(table)


@app.command(name="create-assistant")
def create_assistant(
    name: str = typer.Argument(..., help="Assistant name (a timestamp suffix is added)"),
    dataset: str = typer.Option(..., "--dataset", "-d", help="Dataset ID to attach"),
    select: bool = typer.Option(
        False,
        "--select",
        help="Make the new assistant the configured one",
    ),
):
    """Create a chat assistant bound to a dataset."""
    store = get_store(console)
    settings = store.settings

    async def _create():
        async with get_client(settings, console) as client:
            return await client.create_chat_assistant(name, dataset)

    try:
        created = asyncio.run(_create())
    except (RAGFlowError, ValueError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e

    console.print(f"[green]Created chat assistant {escape(created.name)}[/green] [dim]({created.id})[/dim]")
    if select:
        store.update(chat_assistant_id=created.id, chat_assistant_name=created.name)
        console.print("[dim]Selected as the default assistant[/dim]")


@app.command()
def history(
    assistant_id: str = typer.Argument(..., help="Chat assistant ID"),
    session_id: str = typer.Argument(..., help="Chat session ID"),
):
    """Show the stored messages of a RAGFlow chat session."""
    settings = get_store(console).settings

    async def _history():
        async with get_client(settings, console) as client:
            return await client.get_history(assistant_id, session_id)

    try:
        messages = asyncio.run(_history())
    except (RAGFlowError, ValueError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e

    if not messages:
        console.print("[yellow]No messages in this session[/yellow]")
        return

    for message in messages:
        label = "[bold yellow]You:[/bold yellow]" if message.role == "user" else "[bold green]RAGFlow:[/bold green]"
        console.print(label, escape(clean_message_content(message.content)))
        if message.references:
            console.print(f"[dim]  {len(message.references)} reference(s)[/dim]")
        console.print()


@app.command()
def health():
    """Check settings and the RAGFlow connection."""
    settings = get_store(console).settings
    all_healthy = True

    for label, value in (
        ("RAGFlow URL", settings.ragflow_url),
        ("API key", settings.masked_api_key),
        ("Chat assistant", settings.chat_assistant_name or settings.chat_assistant_id),
    ):
        if value:
            console.print(f"[green]+[/green] {label}: {escape(value)}")
        else:
            console.print(f"[red]x[/red] {label}: NOT SET")
            all_healthy = False

    if settings.api_key:
        async def _check():
            async with get_client(settings, console) as client:
                if not await client.test_connection():
                    return False, []
                return True, await client.list_chat_assistants()

        try:
            connected, items = asyncio.run(_check())
        except RAGFlowError as e:
            connected, items = False, []
            console.print(f"[red]x[/red] Assistant lookup: FAILED ({escape(str(e))})")

        if connected:
            console.print("[green]+[/green] RAGFlow connection: OK")
            if settings.chat_assistant_id:
                if any(item.id == settings.chat_assistant_id for item in items):
                    console.print("[green]+[/green] Configured assistant: FOUND")
                else:
                    console.print("[red]x[/red] Configured assistant: NOT FOUND on server")
                    all_healthy = False
        else:
            console.print("[red]x[/red] RAGFlow connection: FAILED")
            all_healthy = False

    note_folder = settings.resolved_vault_path / settings.save_folder_path
    console.print(f"[dim]Conversations are saved to {note_folder}[/dim]")

    if not all_healthy:
        raise typer.Exit(code=1)


@config_app.command("show")
def config_show():
    """Show the current settings (API key masked)."""
    store = get_store(console)
    settings = store.settings

    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="bold cyan")
    table.add_column("Value")
    for field_name in Settings.model_fields:
        value = settings.masked_api_key if field_name == "api_key" else getattr(settings, field_name)
        table.add_row(field_name, escape(str(value)))
    console.print(table)
    console.print(f"[dim]{store.path}[/dim]")


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Setting name, e.g. ragflow_url"),
    value: str = typer.Argument(..., help="New value"),
):
    """Change one setting and save it."""
    store = get_store(console)
    try:
        store.update(**{key: value})
    except KeyError as e:
        console.print(f"[red]Error: Unknown setting: {escape(key)}[/red]")
        console.print(f"[dim]Valid settings: {', '.join(Settings.model_fields)}[/dim]")
        raise typer.Exit(code=1) from e
    except ValidationError as e:
        console.print(f"[red]Error: Invalid value for {escape(key)}: {escape(e.errors()[0]['msg'])}[/red]")
        raise typer.Exit(code=1) from e

    shown = "*" * 8 if key == "api_key" else value
    console.print(f"[green]Set {escape(key)} = {escape(shown)}[/green]")


@config_app.command("path")
def config_path():
    """Print the settings file path."""
    console.print(str(get_store(console).path), markup=False, highlight=False, soft_wrap=True)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
