"""Widgets of the chat screen.

Each widget hides one rendering concern:
- question entry and history browsing
- message rendering with in-place streaming updates
- the connection status line
- log rendering and level filtering
"""

from datetime import datetime

from rich.text import Text
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.events import Click
from textual.message import Message
from textual.widgets import Button, Markdown, RichLog, Static, TextArea

from ..conversation import ChatMessage, ConversationState, Role
from .config import (
    INPUT_HISTORY_MAX_SIZE,
    LOG_MAX_MESSAGE_LENGTH,
    LOG_TIMESTAMP_FORMAT,
    STREAM_BUFFER_THRESHOLD,
    STREAM_FLUSH_DELAY,
    LogLevel,
)
from .formatting import display_content, format_references, format_status, message_header


class InputHistory:
    """Previously submitted inputs, browsed with up/down.

    Consecutive duplicates are stored once and the oldest entries are
    dropped past ``max_size``.
    """

    def __init__(self, max_size: int = INPUT_HISTORY_MAX_SIZE) -> None:
        self._entries: list[str] = []
        self._max_size = max_size
        self._cursor: int | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def push(self, value: str) -> None:
        if not self._entries or self._entries[-1] != value:
            self._entries.append(value)
            del self._entries[:-self._max_size]
        self._cursor = None

    def older(self) -> str | None:
        """Step back; stays on the oldest entry."""
        if not self._entries:
            return None
        if self._cursor is None:
            self._cursor = len(self._entries) - 1
        else:
            self._cursor = max(self._cursor - 1, 0)
        return self._entries[self._cursor]

    def newer(self) -> str | None:
        """Step forward; past the newest entry returns "" (a fresh line)."""
        if self._cursor is None:
            return None
        if self._cursor >= len(self._entries) - 1:
            self._cursor = None
            return ""
        self._cursor += 1
        return self._entries[self._cursor]


class ChatInputBar(Horizontal):
    """Multi-line question box with a Send button.

    ctrl+j or Send submits; up on the first line and down on the last line
    browse earlier questions.
    """

    class Submitted(Message):
        """Posted with the stripped text of a submitted question."""

        def __init__(self, value: str) -> None:
            super().__init__()
            self.value = value

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.history = InputHistory()

    @property
    def _text_area(self) -> TextArea:
        return self.query_one("#chat-input", TextArea)

    def compose(self):
        text_area = TextArea(id="chat-input", show_line_numbers=False)
        text_area.cursor_blink = False
        text_area.highlight_cursor_line = False
        yield text_area
        yield Button("Send", id="send-btn", variant="success").with_tooltip("Send message (Ctrl+J)")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "send-btn":
            event.stop()
            self.submit()

    def on_key(self, event) -> None:
        # Terminals report Enter without modifiers, so ctrl+j submits
        text_area = self._text_area
        row, column = text_area.cursor_location
        lines = text_area.text.split("\n")

        if event.key == "ctrl+j":
            self.submit()
        elif event.key == "up" and (row, column) == (0, 0):
            self._recall(self.history.older())
        elif event.key == "down" and (row, column) == (len(lines) - 1, len(lines[-1])):
            self._recall(self.history.newer())
        else:
            return
        event.prevent_default()
        event.stop()

    def _recall(self, value: str | None) -> None:
        if value is not None:
            self._text_area.text = value

    def submit(self) -> None:
        """Post the current text as a Submitted message and clear the box."""
        value = self._text_area.text.strip()
        if not value:
            return
        self.history.push(value)
        self._text_area.text = ""
        self.post_message(self.Submitted(value))

    def focus_input(self) -> None:
        self._text_area.focus()


def _render_key(message: ChatMessage) -> tuple:
    return (message.temporary, message.error, message.incomplete, len(message.references))


class MessageView(Vertical):
    """One rendered chat message; clicking copies its content.

    Streamed text is rendered in batches of STREAM_BUFFER_THRESHOLD
    characters; a smaller tail is flushed after STREAM_FLUSH_DELAY.
    """

    def __init__(self, message: ChatMessage, **kwargs) -> None:
        classes = "chat-message " + ("user-message" if message.role == Role.USER else "assistant-message")
        if message.temporary:
            classes += " temporary"
        if message.error:
            classes += " error"
        if message.incomplete:
            classes += " incomplete"
        super().__init__(classes=classes, **kwargs)
        self.message = message
        self.rendered_length = len(message.content)
        self._rendered_key = _render_key(message)
        self._flush_timer = None

    def compose(self):
        yield Static(message_header(self.message), classes="message-header")
        if self.message.role == Role.USER:
            yield Static(Text(self.message.content), classes="message-content")
        else:
            yield Markdown(display_content(self.message), classes="message-content")
        references = Markdown(format_references(self.message.references), classes="message-references")
        references.display = bool(self.message.references)
        yield references

    @property
    def has_pending_text(self) -> bool:
        return len(self.message.content) != self.rendered_length

    def refresh_from(self, message: ChatMessage) -> None:
        """Re-render after the message grew or its flags changed."""
        self.message = message
        grown = len(message.content) - self.rendered_length
        if _render_key(message) != self._rendered_key or not 0 <= grown < STREAM_BUFFER_THRESHOLD:
            self._render_now()
        elif self._flush_timer is None:
            self._flush_timer = self.set_timer(STREAM_FLUSH_DELAY, self._render_now)

    def _render_now(self) -> None:
        if self._flush_timer is not None:
            self._flush_timer.stop()
            self._flush_timer = None
        message = self.message
        self.rendered_length = len(message.content)
        self._rendered_key = _render_key(message)
        self.set_class(message.incomplete, "incomplete")
        self.set_class(message.error, "error")
        self.query_one(".message-header", Static).update(message_header(message))
        content = self.query_one(".message-content")
        if isinstance(content, Markdown):
            content.update(display_content(message))
        else:
            content.update(Text(message.content))
        references = self.query_one(".message-references", Markdown)
        references.display = bool(message.references)
        if message.references:
            references.update(format_references(message.references))

    def on_click(self, event: Click) -> None:
        """Copy message content to the clipboard."""
        event.stop()
        self.app.copy_to_clipboard(self.message.content)
        self.app.notify("Copied to clipboard", timeout=2)


class ChatHistoryWidget(VerticalScroll):
    """Scrollable chat history mirroring the controller's message list."""

    BORDER_TITLE = "Chat"
    BORDER_SUBTITLE = "Conversation history"
    ALLOW_MAXIMIZE = True

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._views: dict[str, MessageView] = {}

    def _update_subtitle(self) -> None:
        count = sum(1 for view in self._views.values() if not view.message.temporary)
        self.border_subtitle = f"{count} messages" if count else "Conversation history"

    def add_message(self, message: ChatMessage) -> None:
        """Append a message view."""
        view = MessageView(message, id=f"view-{message.id}")
        self._views[message.id] = view
        self.mount(view)
        self._update_subtitle()
        self.scroll_end(animate=False)

    def update_message(self, message: ChatMessage) -> None:
        """Re-render a message that is already displayed."""
        view = self._views.get(message.id)
        if view is None:
            self.add_message(message)
            return
        if view.is_mounted:
            view.refresh_from(message)
        self.scroll_end(animate=False)

    def remove_message(self, message_id: str) -> None:
        view = self._views.pop(message_id, None)
        if view is not None:
            view.remove()
        self._update_subtitle()

    def clear_history(self) -> None:
        """Remove every message view."""
        self._views.clear()
        self.remove_children()
        self._update_subtitle()

    def get_last_response(self) -> str | None:
        """Content of the last assistant reply that is not a placeholder or error."""
        for view in reversed(list(self._views.values())):
            message = view.message
            if message.role == Role.ASSISTANT and not (message.temporary or message.error):
                return message.content
        return None


class StatusBar(Static):
    """One-line connection status."""

    def set_state(self, state: ConversationState) -> None:
        self.update(format_status(state))

    def set_busy(self, text: str) -> None:
        self.update(f"[dim]{text}[/]")


class DebugPanel(RichLog):
    """Log panel with level filtering.

    Hidden by default, shown with --log-level or toggled with Ctrl+D.
    """

    BORDER_TITLE = "Log"
    BORDER_SUBTITLE = "Hidden"

    _level_colors = {
        LogLevel.DEBUG: "dim white",
        LogLevel.INFO: "cyan",
        LogLevel.WARNING: "yellow",
        LogLevel.ERROR: "red",
    }

    def __init__(self, *args, log_level: int = LogLevel.INFO, **kwargs) -> None:
        super().__init__(*args, markup=True, highlight=False, auto_scroll=True, wrap=True, **kwargs)
        self._log_level = log_level
        self.display = False

    @property
    def log_level(self) -> int:
        return self._log_level

    @log_level.setter
    def log_level(self, level: int) -> None:
        self._log_level = level
        self._update_subtitle()

    def _update_subtitle(self) -> None:
        if self.display:
            self.border_subtitle = f"Level: {LogLevel.name(self._log_level)}"
        else:
            self.border_subtitle = "Hidden"

    def write_entry(self, component: str, message: str, level: int = LogLevel.DEBUG) -> None:
        """Add a log line if ``level`` meets the panel threshold."""
        if level < self._log_level:
            return

        if len(message) > LOG_MAX_MESSAGE_LENGTH:
            message = message[:LOG_MAX_MESSAGE_LENGTH] + "..."
        color = self._level_colors.get(min(level, LogLevel.ERROR), "white")
        line = Text.assemble(
            (datetime.now().strftime(LOG_TIMESTAMP_FORMAT) + " ", "dim"),
            (f"{LogLevel.name(level):<5} ", color),
            (f"[{component}] ", "bold"),
            message,
        )
        self.write(line)

    def show(self) -> None:
        self.display = True
        self._update_subtitle()

    def hide(self) -> None:
        self.display = False
        self._update_subtitle()

    def toggle(self) -> bool:
        """Toggle visibility. Returns new state."""
        if self.display:
            self.hide()
        else:
            self.show()
        return bool(self.display)
