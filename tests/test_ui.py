"""Tests for TUI formatting helpers and the Textual app."""
from datetime import datetime

import pytest
from textual.app import App
from textual.widgets import Select, TextArea

from ragvault.api import Reference
from ragvault.config import SettingsStore
from ragvault.conversation import ChatMessage, Degraded, Live
from ragvault.ui import RAGVaultApp
from ragvault.ui.config import STREAM_BUFFER_THRESHOLD, STREAM_FLUSH_DELAY, LogLevel
from ragvault.ui.formatting import (
    display_content,
    format_reference,
    format_references,
    format_status,
    message_header,
)
from ragvault.ui.widgets import ChatHistoryWidget, DebugPanel, InputHistory, MessageView

from .conftest import ASSISTANT_ID, envelope, sse_body, sse_response

COMPLETIONS = f"/api/v1/chats_openai/{ASSISTANT_ID}/chat/completions"


class TestFormatting:
    """Tests for display strings."""

    def test_message_header(self):
        """Test sender, timestamp and flags in the header."""
        message = ChatMessage.user("hi")
        message.timestamp = datetime(2024, 5, 1, 9, 5, 7)
        assert "You" in message_header(message)
        assert "09:05:07" in message_header(message)

        error = ChatMessage.assistant("**Error**: boom", error=True)
        assert "RAGFlow" in message_header(error)
        assert "error" in message_header(error)

    def test_display_content_flags(self):
        """Test placeholder and interrupted rendering."""
        assert display_content(ChatMessage.assistant("Thinking...", temporary=True)) == "_Thinking..._"
        assert "interrupted" in display_content(ChatMessage.assistant("Part", incomplete=True))
        assert display_content(ChatMessage.assistant("Done")) == "Done"

    def test_format_reference(self):
        """Test reference preview cleanup and truncation."""
        reference = Reference(document_name="a.pdf", content="<p>Some   text</p> " + "y" * 200)
        line = format_reference(reference)
        assert line.startswith("**a.pdf**: Some text y")
        assert line.endswith("...")
        assert format_reference(Reference()) == "**Unknown document**"

    def test_reference_name_escaped_for_markdown(self):
        """Test that brackets and emphasis characters in names render literally."""
        line = format_reference(Reference(document_name="notes [v2]_*draft*.md"))
        assert line == r"**notes \[v2\]\_\*draft\*.md**"

    def test_format_references(self):
        """Test the references block."""
        assert format_references([]) == ""
        block = format_references([Reference(document_name="a.md"), Reference(document_name="b.md")])
        assert block.splitlines() == ["**References:**", "- **a.md**", "- **b.md**"]

    def test_format_status(self):
        """Test live and test-mode status lines."""
        assert "Handbook" in format_status(Live(assistant_id="a1", assistant_name="Handbook"))
        assert "a1" in format_status(Live(assistant_id="a1"))
        assert "Test mode" in format_status(Degraded("no key"))


class TestLogLevel:
    """Tests for log level parsing."""

    @pytest.mark.parametrize(
        "text, level",
        [("debug", LogLevel.DEBUG), ("INFO", LogLevel.INFO), ("warning", LogLevel.WARNING), ("bogus", LogLevel.DEBUG)],
    )
    def test_from_string(self, text: str, level: int):
        """Test case-insensitive parsing with a fallback."""
        assert LogLevel.from_string(text) == level


class TestInputHistory:
    """Tests for question history browsing."""

    def test_browse_back_and_forward(self):
        """Test up/down order and the fresh line after the newest entry."""
        history = InputHistory()
        for value in ("one", "two", "three"):
            history.push(value)

        assert [history.older() for _ in range(4)] == ["three", "two", "one", "one"]
        assert [history.newer() for _ in range(3)] == ["two", "three", ""]
        assert history.newer() is None

    def test_duplicates_and_limit(self):
        """Test consecutive duplicates are skipped and old entries dropped."""
        history = InputHistory(max_size=2)
        for value in ("a", "a", "b", "c"):
            history.push(value)

        assert len(history) == 2
        assert history.older() == "c"
        assert history.older() == "b"
        assert history.older() == "b"

    def test_empty(self):
        """Test browsing with no entries."""
        assert InputHistory().older() is None


class ChatHarness(App):
    def compose(self):
        yield ChatHistoryWidget(id="chat-history")


class TestMessageView:
    """Tests for batched rendering of streamed replies."""

    @pytest.mark.asyncio
    async def test_streamed_text_rendered_in_batches(self):
        """Test that small deltas wait and a full batch renders at once."""
        app = ChatHarness()
        async with app.run_test() as pilot:
            chat = app.query_one(ChatHistoryWidget)
            reply = ChatMessage.assistant("")
            chat.add_message(reply)
            await pilot.pause()
            view = app.query_one(MessageView)

            reply.content += "a" * 10
            chat.update_message(reply)
            assert view.has_pending_text
            assert view.rendered_length == 0

            reply.content += "b" * STREAM_BUFFER_THRESHOLD
            chat.update_message(reply)
            assert view.rendered_length == 10 + STREAM_BUFFER_THRESHOLD

            reply.content += "tail"
            chat.update_message(reply)
            assert view.has_pending_text
            await pilot.pause(STREAM_FLUSH_DELAY * 5)
            assert not view.has_pending_text

    @pytest.mark.asyncio
    async def test_flag_change_renders_immediately(self):
        """Test that marking a reply incomplete flushes buffered text."""
        app = ChatHarness()
        async with app.run_test() as pilot:
            chat = app.query_one(ChatHistoryWidget)
            reply = ChatMessage.assistant("")
            chat.add_message(reply)
            await pilot.pause()
            view = app.query_one(MessageView)

            reply.content += "Par"
            chat.update_message(reply)
            reply.incomplete = True
            chat.update_message(reply)

            assert not view.has_pending_text
            assert view.has_class("incomplete")


@pytest.fixture
def store(tmp_path, settings):
    store = SettingsStore(tmp_path / "settings.json", use_env=False)
    store.save(settings.model_copy(update={"auto_save": True}))
    return store


class TestApp:
    """Tests for the Textual app, run headless."""

    @pytest.mark.asyncio
    async def test_connect_send_and_auto_save(self, server, store, client_factory):
        """Test startup, one streamed exchange and the auto-saved note."""
        server.route("GET", "/api/v1/chats", envelope([
            {"id": ASSISTANT_ID, "name": "Handbook"},
            {"id": "asst-2", "name": "Policies"},
        ]))
        server.route("POST", COMPLETIONS, lambda request: sse_response([sse_body("25 ", "days.")]))
        app = RAGVaultApp(store, client_factory=client_factory)

        async with app.run_test() as pilot:
            await app.workers.wait_for_complete()
            await pilot.pause()

            assert isinstance(app.controller.state, Live)
            assert app.query_one("#assistant-select", Select).value == ASSISTANT_ID

            app.query_one("#chat-input", TextArea).text = "How much leave"
            await pilot.click("#send-btn")
            await pilot.pause()
            await app.workers.wait_for_complete()
            await pilot.pause()

            assert app.controller.messages[-1].content == "25 days."
            chat = app.query_one("#chat-history", ChatHistoryWidget)
            assert chat.get_last_response() == "25 days."
            assert app.controller.note_path is not None
            assert app.controller.note_path.name == "How much leave.md"
            assert app.controller.note_path.exists()

        await app.controller.close()

    @pytest.mark.asyncio
    async def test_test_mode_when_unreachable(self, server, store, client_factory):
        """Test that a failed connection shows the test-mode warning."""
        server.route("GET", "/api/v1/chats", envelope(None, code=109, message="Authentication error"))
        app = RAGVaultApp(store, client_factory=client_factory)

        async with app.run_test() as pilot:
            await app.workers.wait_for_complete()
            await pilot.pause()

            assert isinstance(app.controller.state, Degraded)
            assert "**Warning**" in app.controller.messages[0].content

        await app.controller.close()

    @pytest.mark.asyncio
    async def test_log_panel_toggle(self, server, store, client_factory):
        """Test that the log panel starts hidden and can be toggled."""
        server.route("GET", "/api/v1/chats", envelope([{"id": ASSISTANT_ID, "name": "Handbook"}]))
        app = RAGVaultApp(store, client_factory=client_factory)

        async with app.run_test() as pilot:
            await app.workers.wait_for_complete()
            panel = app.query_one("#debug-panel", DebugPanel)
            assert not panel.display

            app.action_toggle_log()
            await pilot.pause()

            assert panel.display
            assert panel.border_subtitle == "Level: INFO"

        await app.controller.close()
