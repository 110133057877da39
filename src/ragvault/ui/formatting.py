"""Text formatting utilities for the TUI.

Hides how chat messages, references and connection state are turned
into display strings.
"""

import re

from rich.markup import escape

from ..api import Reference
from ..conversation import ChatMessage, ConversationState, Degraded, Role
from ..notes.cleanup import strip_html, truncate
from .config import REFERENCE_PREVIEW_LENGTH, TIMESTAMP_FORMAT

_MARKDOWN_SPECIAL = re.compile(r"([\\`*_\[\]])")


def escape_markdown(text: str) -> str:
    """Backslash-escape characters that would start inline Markdown."""
    return _MARKDOWN_SPECIAL.sub(r"\\\1", text)


def message_header(message: ChatMessage) -> str:
    """Header line shown above a message, with Rich markup."""
    if message.role == Role.USER:
        icon, sender = ">", "You"
    else:
        icon, sender = "<", "RAGFlow"

    header = f"{icon} {sender} [dim]\\[{message.timestamp.strftime(TIMESTAMP_FORMAT)}][/]"
    if message.error:
        header += " [bold red]error[/]"
    elif message.incomplete:
        header += " [yellow]incomplete[/]"
    return header


def display_content(message: ChatMessage) -> str:
    """Markdown body of a message as rendered in the chat history."""
    content = message.content
    if message.temporary:
        return f"_{content}_"
    if message.incomplete:
        content += "\n\n_(response interrupted)_"
    return content


def format_reference(reference: Reference) -> str:
    """One-line preview of a reference."""
    name = escape_markdown(reference.document_name or "Unknown document")
    preview = truncate(" ".join(strip_html(reference.content).split()), REFERENCE_PREVIEW_LENGTH)
    return f"**{name}**: {preview}" if preview else f"**{name}**"


def format_references(references: list[Reference]) -> str:
    """Markdown list of references, or an empty string."""
    if not references:
        return ""
    lines = ["**References:**"]
    lines.extend(f"- {format_reference(ref)}" for ref in references)
    return "\n".join(lines)


def format_status(state: ConversationState) -> str:
    """Status line text with Rich markup."""
    if isinstance(state, Degraded):
        return f"[bold yellow]Test mode[/] [dim]{escape(truncate(state.reason, 120))}[/]"
    name = state.assistant_name or state.assistant_id
    return f"[bold green]Connected[/] to [bold]{escape(name)}[/]"
