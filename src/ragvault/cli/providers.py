"""Factory functions for CLI commands.

Centralizes creation of the settings store, API client and note writer.
Hides configuration details from command implementations.
"""

import typer
from rich.console import Console

from ..api import RAGFlowClient
from ..config import Settings, SettingsStore
from ..notes import NoteWriter

# Default console for output
_console = Console()


def get_store(console: Console | None = None) -> SettingsStore:
    """Load the settings store (``RAGVAULT_CONFIG`` or ~/.ragvault/settings.json).

    Raises:
        typer.Exit: If the settings file cannot be parsed
    """
    con = console or _console
    store = SettingsStore()
    try:
        store.load()
    except ValueError as e:
        con.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from e
    return store


def get_client(settings: Settings, console: Console | None = None) -> RAGFlowClient:
    """Create an API client, exiting if the connection settings are incomplete.

    Environment variables:
        RAGFLOW_URL: RAGFlow server URL
        RAGFLOW_API_KEY: RAGFlow API key
    """
    con = console or _console
    if not settings.api_key:
        con.print("[red]Error: RAGFlow API key is not set[/red]")
        con.print("[dim]Run: ragvault config set api_key <key>  (or set RAGFLOW_API_KEY)[/dim]")
        raise typer.Exit(code=1)
    return RAGFlowClient.from_settings(settings)


def require_assistant_id(
    settings: Settings,
    override: str | None = None,
    console: Console | None = None,
) -> str:
    """Return the assistant to talk to, exiting if none is configured."""
    con = console or _console
    assistant_id = override or settings.chat_assistant_id
    if not assistant_id:
        con.print("[red]Error: No chat assistant selected[/red]")
        con.print("[dim]Pass --assistant or run: ragvault config set chat_assistant_id <id>[/dim]")
        raise typer.Exit(code=1)
    return assistant_id


def get_note_writer(settings: Settings) -> NoteWriter:
    """Create the note writer for the configured vault folder."""
    return NoteWriter(settings.resolved_vault_path, settings.save_folder_path)
