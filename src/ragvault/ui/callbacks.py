"""Controller and logging integration for the TUI.

Hides the details of how the TUI receives updates: conversation events
are mirrored onto widgets, and log records are routed to the log panel.
"""

import logging
import threading
from typing import TYPE_CHECKING, Any

from ..conversation import ChatMessage, ConversationEvents, ConversationState

if TYPE_CHECKING:
    from textual.app import App

    from .widgets import ChatHistoryWidget, DebugPanel, StatusBar


def _call_thread_safe(app: "App | None", func: Any, *args: Any) -> None:
    """Call ``func`` on the app thread."""
    if app is not None and app._thread_id != threading.get_ident():
        app.call_from_thread(func, *args)
    else:
        func(*args)


class TUIConversationEvents(ConversationEvents):
    """Mirrors controller changes onto the chat history and status bar."""

    def __init__(
        self,
        chat: "ChatHistoryWidget",
        status: "StatusBar",
        app: "App | None" = None,
    ) -> None:
        self.chat = chat
        self.status = status
        self.app = app

    def message_added(self, message: ChatMessage) -> None:
        _call_thread_safe(self.app, self.chat.add_message, message)

    def message_updated(self, message: ChatMessage) -> None:
        _call_thread_safe(self.app, self.chat.update_message, message)

    def message_removed(self, message_id: str) -> None:
        _call_thread_safe(self.app, self.chat.remove_message, message_id)

    def messages_cleared(self) -> None:
        _call_thread_safe(self.app, self.chat.clear_history)

    def state_changed(self, state: ConversationState) -> None:
        _call_thread_safe(self.app, self.status.set_state, state)


class LogPanelHandler(logging.Handler):
    """Logging handler that writes records to the log panel.

    Records from the ``ragvault`` package show the module path without the
    package prefix as their component.
    """

    def __init__(self, panel: "DebugPanel", app: "App | None" = None) -> None:
        super().__init__(level=logging.DEBUG)
        self.panel = panel
        self.app = app

    def emit(self, record: logging.LogRecord) -> None:
        try:
            component = record.name.removeprefix("ragvault.")
            message = record.getMessage()
            if record.exc_info and record.exc_info[1] is not None:
                message += f" ({record.exc_info[1]})"
            _call_thread_safe(self.app, self.panel.write_entry, component, message, record.levelno)
        except Exception:
            self.handleError(record)
