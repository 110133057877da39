"""Modal screens for the TUI.

This module hides the design decisions about:
- Settings form layout and validation
- Connection testing and assistant lookup from the form
- Confirmation dialog appearance

To change how settings are edited, modify only this file.
"""

import logging
from collections.abc import Callable

from pydantic import ValidationError
from textual import work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, Select, Static, Switch

from ..api import RAGFlowClient, RAGFlowError
from ..config import Settings
from .config import STATUS_CONNECTED, STATUS_FAILED, STATUS_TESTING

logger = logging.getLogger(__name__)


class SettingsScreen(ModalScreen[Settings | None]):
    """Settings dialog. Dismisses with the new settings, or None on cancel."""

    CSS = """
    SettingsScreen {
        align: center middle;
        background: $background 70%;
    }

    #settings-dialog {
        width: 76;
        height: auto;
        max-height: 90%;
        border: tall $primary;
        background: $surface;
        padding: 1 2;
    }

    #settings-title {
        width: 100%;
        text-align: center;
        text-style: bold;
        color: $primary;
        padding-bottom: 1;
        border-bottom: solid $border;
        margin-bottom: 1;
    }

    #settings-form {
        height: auto;
        max-height: 30;
    }

    #settings-form Label {
        margin-top: 1;
        color: $text-muted;
    }

    .settings-row {
        height: auto;
    }

    .settings-row Select {
        width: 1fr;
    }

    #connection-status {
        height: 1;
        margin: 1 0 0 1;
    }

    #settings-buttons {
        height: 3;
        align: right middle;
        margin-top: 1;
    }

    #settings-buttons Button {
        margin-left: 1;
    }
    """

    BINDINGS = [
        Binding("escape", "cancel", "Cancel", show=False),
    ]

    def __init__(
        self,
        settings: Settings,
        client_factory: Callable[[Settings], RAGFlowClient] = RAGFlowClient.from_settings,
    ) -> None:
        super().__init__()
        self._settings = settings
        self._client_factory = client_factory
        self._options = self._initial_options()

    def compose(self) -> ComposeResult:
        settings = self._settings
        with Vertical(id="settings-dialog"):
            yield Static("RAGFlow Settings", id="settings-title")
            with VerticalScroll(id="settings-form"):
                yield Label("RAGFlow URL")
                yield Input(settings.ragflow_url, placeholder="http://localhost:9380", id="ragflow-url")
                yield Label("API key")
                yield Input(settings.api_key, password=True, placeholder="ragflow-...", id="api-key")
                with Horizontal(classes="settings-row"):
                    yield Button("Test connection", id="test-btn")
                    yield Static("", id="connection-status")
                yield Label("Chat assistant")
                with Horizontal(classes="settings-row"):
                    yield Select(self._options, value=self._initial_value(), id="settings-assistant")
                    yield Button("Refresh", id="refresh-btn")
                yield Label("Conversation folder")
                yield Input(settings.save_folder_path, id="save-folder")
                yield Label("Vault path")
                yield Input(settings.vault_path, id="vault-path")
                with Horizontal(classes="settings-row"):
                    yield Switch(settings.auto_save, id="auto-save")
                    yield Label("Save conversations automatically")
            with Horizontal(id="settings-buttons"):
                yield Button("Cancel", id="cancel-btn", variant="error")
                yield Button("Save", id="save-btn", variant="success")

    def _initial_options(self) -> list[tuple[str, str]]:
        if not self._settings.chat_assistant_id:
            return []
        label = self._settings.chat_assistant_name or self._settings.chat_assistant_id
        return [(label, self._settings.chat_assistant_id)]

    def _initial_value(self):
        return self._settings.chat_assistant_id or Select.BLANK

    def _form_settings(self) -> Settings:
        """Settings built from the current form values."""
        select = self.query_one("#settings-assistant", Select)
        assistant_id = select.value if isinstance(select.value, str) else ""
        assistant_name = ""
        for label, value in self._options:
            if value == assistant_id:
                assistant_name = label
        changes = {
            "ragflow_url": self.query_one("#ragflow-url", Input).value.strip().rstrip("/"),
            "api_key": self.query_one("#api-key", Input).value.strip(),
            "chat_assistant_id": assistant_id,
            "chat_assistant_name": assistant_name or self._settings.chat_assistant_name,
            "save_folder_path": self.query_one("#save-folder", Input).value.strip(),
            "vault_path": self.query_one("#vault-path", Input).value.strip() or ".",
            "auto_save": self.query_one("#auto-save", Switch).value,
        }
        return Settings(**{**self._settings.model_dump(), **changes})

    def on_mount(self) -> None:
        if self._settings.api_key:
            self._refresh_assistants()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id
        if button_id == "test-btn":
            self._test_connection()
        elif button_id == "refresh-btn":
            self._refresh_assistants()
        elif button_id == "save-btn":
            self.action_save()
        elif button_id == "cancel-btn":
            self.action_cancel()

    def _set_status(self, text: str, style: str = "") -> None:
        status = self.query_one("#connection-status", Static)
        status.update(f"[{style}]{text}[/]" if style else text)

    @work(exclusive=True, group="settings-test")
    async def _test_connection(self) -> None:
        self._set_status(STATUS_TESTING, "dim")
        try:
            client = self._client_factory(self._form_settings())
        except ValidationError as e:
            self._set_status(f"{STATUS_FAILED}: {e.errors()[0]['msg']}", "red")
            return
        async with client:
            connected = await client.test_connection()
        if connected:
            self._set_status(STATUS_CONNECTED, "green")
        else:
            self._set_status(STATUS_FAILED, "red")

    @work(exclusive=True, group="settings-assistants")
    async def _refresh_assistants(self) -> None:
        try:
            async with self._client_factory(self._form_settings()) as client:
                assistants = await client.list_chat_assistants()
        except (RAGFlowError, ValidationError) as e:
            logger.warning("Could not load chat assistants: %s", e)
            self.notify(f"Could not load assistants: {e}", severity="warning", timeout=4)
            return

        select = self.query_one("#settings-assistant", Select)
        current = select.value
        self._options = [(assistant.name, assistant.id) for assistant in assistants]
        select.set_options(self._options)
        if isinstance(current, str) and any(value == current for _, value in self._options):
            select.value = current
        self.notify(f"Loaded {len(assistants)} assistants", timeout=2)

    def action_save(self) -> None:
        try:
            settings = self._form_settings()
        except ValidationError as e:
            self.notify(f"Invalid settings: {e.errors()[0]['msg']}", severity="error")
            return
        self.dismiss(settings)

    def action_cancel(self) -> None:
        self.dismiss(None)


class ConfirmationScreen(ModalScreen[bool]):
    """Yes/no dialog."""

    CSS = """
    ConfirmationScreen {
        align: center middle;
        background: $background 70%;
    }

    #confirmation-dialog {
        width: 60;
        height: auto;
        border: tall $accent;
        background: $surface;
        padding: 1 2;
    }

    #confirmation-prompt {
        width: 100%;
        text-align: center;
        padding: 1 2;
    }

    #confirmation-buttons {
        width: 100%;
        height: 3;
        align: center middle;
    }

    #confirmation-buttons Button {
        margin: 0 1;
    }
    """

    BINDINGS = [
        Binding("y", "answer(True)", "Yes", show=False),
        Binding("n", "answer(False)", "No", show=False),
        Binding("escape", "answer(False)", "Cancel", show=False),
    ]

    def __init__(self, prompt: str) -> None:
        super().__init__()
        self._prompt = prompt

    def compose(self) -> ComposeResult:
        with Vertical(id="confirmation-dialog"):
            yield Static(self._prompt, id="confirmation-prompt")
            with Horizontal(id="confirmation-buttons"):
                yield Button("Yes", id="btn-yes", variant="success")
                yield Button("No", id="btn-no", variant="error")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "btn-yes")

    def action_answer(self, value: bool) -> None:
        self.dismiss(value)
