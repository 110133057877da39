"""Main Textual TUI application.

Orchestrates the UI components and handles user interaction with the
conversation controller.
"""

import asyncio
import logging
from collections.abc import Callable

from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.widgets import Button, Footer, Header, Select

from ..api import ConfigurationError, RAGFlowClient, RAGFlowError
from ..config import Settings, SettingsStore
from ..conversation import ConversationController, SendInProgressError, UnknownAssistantError
from ..notes import NoteWriteError, NoteWriter
from .callbacks import LogPanelHandler, TUIConversationEvents
from .config import LogLevel
from .screens import ConfirmationScreen, SettingsScreen
from .styles import APP_CSS
from .themes import VAULT_NIGHT
from .widgets import ChatHistoryWidget, ChatInputBar, DebugPanel, StatusBar

logger = logging.getLogger(__name__)

# Changing any of these restarts the conversation
CONNECTION_FIELDS = ("ragflow_url", "api_key", "chat_assistant_id", "timeout")


class RAGVaultApp(App):
    """Textual TUI for chatting with a RAGFlow assistant."""

    CSS = APP_CSS
    TITLE = "RAGVault"

    BINDINGS = [
        Binding("ctrl+c", "quit", "Quit"),
        Binding("ctrl+s", "save", "Save"),
        Binding("ctrl+k", "new_conversation", "New"),
        Binding("ctrl+p", "settings", "Settings"),
        Binding("ctrl+r", "copy_last_response", "Copy Response"),
        Binding("escape", "cancel_send", "Cancel"),
        Binding("ctrl+d", "toggle_log", "Log"),
    ]

    def __init__(
        self,
        store: SettingsStore,
        log_level: str | None = None,
        client_factory: Callable[[Settings], RAGFlowClient] = RAGFlowClient.from_settings,
    ) -> None:
        super().__init__()
        self._store = store
        self._log_level = log_level
        self._client_factory = client_factory
        self._send_worker = None
        self._log_handler: LogPanelHandler | None = None
        self._unsubscribe: Callable[[], None] | None = None

        settings = store.settings
        self.controller = ConversationController(
            settings,
            client_factory=client_factory,
            note_writer=NoteWriter(settings.resolved_vault_path, settings.save_folder_path),
            settings_store=store,
        )

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Horizontal(id="toolbar"):
            yield Select([], prompt="Chat assistant", id="assistant-select")
            yield StatusBar("", id="status")
            yield Button("Save", id="save-note-btn", variant="primary").with_tooltip(
                "Save conversation to the vault (Ctrl+S)"
            )
        yield ChatHistoryWidget(id="chat-history")
        yield DebugPanel(id="debug-panel")
        yield ChatInputBar(id="chat-input-bar")
        yield Footer()

    def on_mount(self) -> None:
        self.register_theme(VAULT_NIGHT)
        self.theme = "vault-night"

        log_panel = self.query_one("#debug-panel", DebugPanel)
        self._log_handler = LogPanelHandler(log_panel, app=self)
        package_logger = logging.getLogger("ragvault")
        package_logger.addHandler(self._log_handler)
        package_logger.setLevel(logging.DEBUG)
        if self._log_level is not None:
            log_panel.log_level = LogLevel.from_string(self._log_level)
            log_panel.show()

        self.controller.set_events(
            TUIConversationEvents(
                self.query_one("#chat-history", ChatHistoryWidget),
                self.query_one("#status", StatusBar),
                app=self,
            )
        )
        self._unsubscribe = self._store.subscribe(self._on_settings_saved)
        self._update_save_button(self.controller.settings)
        self._initialize()
        self.query_one("#chat-input-bar", ChatInputBar).focus_input()

    def on_unmount(self) -> None:
        if self._log_handler is not None:
            logging.getLogger("ragvault").removeHandler(self._log_handler)
            self._log_handler = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _update_save_button(self, settings: Settings) -> None:
        self.query_one("#save-note-btn", Button).display = not settings.auto_save

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    @work(exclusive=True, group="connect")
    async def _initialize(self) -> None:
        """Connect the controller and fill the assistant selector."""
        self.query_one("#status", StatusBar).set_busy("Connecting to RAGFlow...")
        try:
            assistants = await self.controller.initialize()
        except RAGFlowError as e:
            self.notify(str(e), title="Test mode", severity="warning", timeout=6)
            return

        select = self.query_one("#assistant-select", Select)
        select.set_options([(a.name, a.id) for a in assistants])
        select.value = self.controller.settings.chat_assistant_id

    def on_select_changed(self, event: Select.Changed) -> None:
        if event.select.id != "assistant-select" or not isinstance(event.value, str):
            return
        if event.value == self.controller.settings.chat_assistant_id:
            return
        self._change_assistant(event.value)

    @work(exclusive=True, group="connect")
    async def _change_assistant(self, assistant_id: str) -> None:
        if self.controller.is_sending and self._send_worker is not None:
            self._send_worker.cancel()
        try:
            assistant = await self.controller.change_assistant(assistant_id)
        except UnknownAssistantError as e:
            self.notify(str(e), severity="error")
            return
        self.notify(f"Switched to {assistant.name}", timeout=2)

    def _on_settings_saved(self, settings: Settings) -> None:
        self._update_save_button(settings)
        current = self.controller.settings
        if settings == current:
            return
        reconnect = any(
            getattr(settings, name) != getattr(current, name)
            for name in CONNECTION_FIELDS
        )
        self._apply_settings(settings, reconnect)

    @work(exclusive=True, group="connect")
    async def _apply_settings(self, settings: Settings, reconnect: bool) -> None:
        """Rebuild the client for new settings, reconnecting if needed."""
        await self.controller.apply_settings(settings)
        if reconnect:
            self._initialize()

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def on_chat_input_bar_submitted(self, event: ChatInputBar.Submitted) -> None:
        if self.controller.is_sending:
            self.notify("Wait for the current answer to finish", severity="warning", timeout=2)
            return
        self._send_worker = self._send(event.value)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "save-note-btn":
            self.action_save()

    @work(group="send")
    async def _send(self, text: str) -> None:
        send_button = self.query_one("#send-btn", Button)
        send_button.disabled = True
        try:
            await self.controller.send(text)
        except SendInProgressError as e:
            self.notify(str(e), severity="warning", timeout=2)
        except asyncio.CancelledError:
            self.notify("Cancelled", severity="warning", timeout=2)
        finally:
            send_button.disabled = False

    def action_cancel_send(self) -> None:
        """Cancel the answer being streamed."""
        if self._send_worker is not None and self._send_worker.is_running:
            self._send_worker.cancel()

    # ------------------------------------------------------------------
    # Persistence and housekeeping
    # ------------------------------------------------------------------

    def action_save(self) -> None:
        if not self.controller.messages:
            self.notify("Nothing to save", severity="warning", timeout=2)
            return
        self._save()

    @work(exclusive=True, group="save")
    async def _save(self) -> None:
        try:
            path = await self.controller.save()
        except (NoteWriteError, ConfigurationError) as e:
            logger.error("Error saving conversation: %s", e)
            self.notify(f"Failed to save conversation: {e}", severity="error", timeout=5)
            return
        if path is not None:
            self.notify(f"Conversation saved to {path.name}", timeout=3)

    def action_new_conversation(self) -> None:
        settings = self.controller.settings
        has_user_messages = any(m.role == "user" for m in self.controller.messages)
        if settings.auto_save or not has_user_messages:
            self._start_new_conversation()
            return

        def _confirmed(discard: bool | None) -> None:
            if discard:
                self._start_new_conversation()

        self.push_screen(ConfirmationScreen("Discard the unsaved conversation?"), _confirmed)

    def _start_new_conversation(self) -> None:
        self.action_cancel_send()
        self.controller.clear()
        self.notify("New conversation", timeout=2)

    def action_settings(self) -> None:
        def _closed(settings: Settings | None) -> None:
            if settings is not None:
                self._store.save(settings)
                self.notify("Settings saved", timeout=2)

        self.push_screen(SettingsScreen(self.controller.settings, self._client_factory), _closed)

    def action_toggle_log(self) -> None:
        log_panel = self.query_one("#debug-panel", DebugPanel)
        is_visible = log_panel.toggle()
        self.notify(f"Log panel {'shown' if is_visible else 'hidden'}", timeout=2)

    def action_copy_last_response(self) -> None:
        chat = self.query_one("#chat-history", ChatHistoryWidget)
        response = chat.get_last_response()
        if response:
            self.copy_to_clipboard(response)
            self.notify("Response copied")
        else:
            self.notify("No response to copy", severity="warning")


async def run_textual_tui(store: SettingsStore, log_level: str | None = None) -> None:
    """Run the Textual TUI.

    Args:
        store: Settings store (read at startup, written by the settings screen)
        log_level: Log panel level (debug/info/warning/error), None to hide
    """
    app = RAGVaultApp(store, log_level=log_level)
    try:
        await app.run_async()
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    finally:
        await app.controller.close()
