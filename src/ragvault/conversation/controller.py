"""Conversation controller.

Orchestrates one chat thread:
- the ordered message list and its temporary "thinking" placeholder
- live vs degraded (offline) operation
- delegating sends to the API client and persistence to the note writer
- rebuilding the API client when settings change
"""

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from uuid import uuid4

from ..api import (
    ChatAssistant,
    ConfigurationError,
    InvalidResponseError,
    RAGFlowClient,
    RAGFlowConnectionError,
    RAGFlowError,
    StreamInterruptedError,
)
from ..config import Settings, SettingsStore
from ..notes import NoteWriter
from .errors import SendInProgressError, UnknownAssistantError
from .events import ConversationEvents
from .models import ChatMessage, ConversationState, Degraded, Live

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Settings], RAGFlowClient]

THINKING_TEXT = "Thinking..."
EMPTY_ANSWER_TEXT = "No response from RAGFlow"
MOCK_WELCOME_TEXT = (
    "This is a mock conversation for testing. Your messages will not be sent to RAGFlow."
)
MOCK_REPLY_TEXT = (
    "This is a mock response. The conversation is in test mode because it could not "
    "connect to RAGFlow. Please check your settings and try again."
)


def welcome_text(assistant_name: str) -> str:
    return (
        f"Hi! I am your RAGFlow assistant using **{assistant_name or 'default assistant'}**. "
        "How can I help you with your knowledge base today?"
    )


def degraded_warning_text(reason: str) -> str:
    return (
        "**Warning**: Could not connect to RAGFlow API. "
        "This is running in test mode and will not use your knowledge base. "
        "Please check your settings and try again.\n\n"
        f"Error: {reason}"
    )


class ConversationController:
    """Controller for a single conversation with a RAGFlow chat assistant.

    Only one send is active at a time; a second send while an answer is
    streaming raises SendInProgressError.

    Usage:
        controller = ConversationController(settings, note_writer=writer, events=view)
        try:
            await controller.initialize()
        except RAGFlowError:
            pass  # controller is now Degraded and still usable
        await controller.send("What does the handbook say about leave?")
    """

    def __init__(
        self,
        settings: Settings,
        client_factory: ClientFactory = RAGFlowClient.from_settings,
        note_writer: NoteWriter | None = None,
        events: ConversationEvents | None = None,
        settings_store: SettingsStore | None = None,
        mock_delay: float = 1.0,
    ) -> None:
        self._settings = settings
        self._client_factory = client_factory
        self._client = client_factory(settings)
        self._note_writer = note_writer
        self._events = events or ConversationEvents()
        self._settings_store = settings_store
        self._mock_delay = mock_delay

        self._messages: list[ChatMessage] = []
        self._state: ConversationState = Degraded("Not initialized")
        self._assistants: list[ChatAssistant] = []
        self._sending = False
        self._saving = False
        self._conversation_id = uuid4().hex
        self._note_path: Path | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    @property
    def state(self) -> ConversationState:
        return self._state

    @property
    def is_sending(self) -> bool:
        return self._sending

    @property
    def assistants(self) -> list[ChatAssistant]:
        return list(self._assistants)

    @property
    def client(self) -> RAGFlowClient:
        return self._client

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def note_path(self) -> Path | None:
        """Note the conversation was last saved to."""
        return self._note_path

    def set_events(self, events: ConversationEvents) -> None:
        self._events = events

    # ------------------------------------------------------------------
    # Message list bookkeeping
    # ------------------------------------------------------------------

    def _add(self, message: ChatMessage) -> ChatMessage:
        self._messages.append(message)
        self._events.message_added(message)
        return message

    def _is_listed(self, message: ChatMessage) -> bool:
        return any(existing is message for existing in self._messages)

    def _updated(self, message: ChatMessage) -> None:
        # Replies of a cleared conversation are no longer shown
        if self._is_listed(message):
            self._events.message_updated(message)

    def _remove(self, message_id: str) -> bool:
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                del self._messages[index]
                self._events.message_removed(message_id)
                return True
        return False

    def _replace(self, old_id: str, message: ChatMessage) -> bool:
        """Remove a placeholder and append ``message`` at the end.

        Returns False, adding nothing, if the placeholder is gone because
        the conversation was cleared.
        """
        if not self._remove(old_id):
            return False
        self._add(message)
        return True

    def _add_error(self, text: str) -> ChatMessage:
        return self._add(ChatMessage.assistant(f"**Error**: {text}", error=True))

    def _set_state(self, state: ConversationState) -> None:
        self._state = state
        self._events.state_changed(state)

    def clear(self) -> None:
        """Start a fresh conversation (new note on next save).

        A send still in flight finishes without touching the new message list.
        """
        self._messages.clear()
        self._conversation_id = uuid4().hex
        self._note_path = None
        self._events.messages_cleared()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _enter_degraded(self, reason: str) -> None:
        logger.warning("Entering test mode: %s", reason)
        self._set_state(Degraded(reason))
        if not self._messages:
            self._add(ChatMessage.assistant(degraded_warning_text(reason)))
            self._add(ChatMessage.assistant(MOCK_WELCOME_TEXT))

    async def initialize(self) -> list[ChatAssistant]:
        """Connect to the configured assistant.

        Returns:
            Assistants available on the server (for a selector)

        Raises:
            ConfigurationError: A required setting is missing
            RAGFlowError: The server is unreachable or the assistant is unknown
        """
        try:
            if not self._settings.ragflow_url:
                raise ConfigurationError("RAGFlow URL is not set. Please set it in the settings.")
            if not self._settings.api_key:
                raise ConfigurationError("RAGFlow API key is not set. Please set it in the settings.")
            if not self._settings.chat_assistant_id:
                raise ConfigurationError(
                    "No chat assistant selected. Please select a chat assistant in the settings."
                )

            if not await self._client.test_connection():
                raise RAGFlowConnectionError("please check your settings")

            self._assistants = await self._client.list_chat_assistants()
            assistant_id = self._settings.chat_assistant_id
            match = next((a for a in self._assistants if a.id == assistant_id), None)
            if match is None:
                raise ConfigurationError(
                    "Selected chat assistant does not exist on the server. "
                    "Please select a different assistant."
                )
        except RAGFlowError as e:
            self._enter_degraded(str(e))
            raise

        name = self._settings.chat_assistant_name or match.name
        self._set_state(Live(assistant_id=match.id, assistant_name=name))
        self.clear()
        self._add(ChatMessage.assistant(welcome_text(name)))
        logger.info("Conversation initialized with assistant %s (%s)", name, match.id)
        return self.assistants

    async def apply_settings(self, settings: Settings) -> None:
        """Rebuild the API client after a settings change."""
        old_client = self._client
        self._settings = settings
        self._client = self._client_factory(settings)
        await old_client.close()
        if self._note_writer is not None:
            self._note_writer = NoteWriter(settings.resolved_vault_path, settings.save_folder_path)
        logger.debug("API client rebuilt for %s", settings.ragflow_url)

    async def change_assistant(self, assistant_id: str) -> ChatAssistant:
        """Switch to another assistant and start a fresh conversation."""
        assistant = next((a for a in self._assistants if a.id == assistant_id), None)
        if assistant is None:
            raise UnknownAssistantError(assistant_id)

        self._settings = self._settings.model_copy(
            update={"chat_assistant_id": assistant.id, "chat_assistant_name": assistant.name}
        )
        if self._settings_store is not None:
            self._settings_store.save(self._settings)

        self._set_state(Live(assistant_id=assistant.id, assistant_name=assistant.name))
        self.clear()
        self._add(ChatMessage.assistant(welcome_text(assistant.name)))
        logger.info("Switched to chat assistant %s", assistant.name)
        return assistant

    async def close(self) -> None:
        await self._client.close()

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(self, text: str) -> ChatMessage | None:
        """Send a user message and collect the assistant reply.

        Send failures become visible error messages and are not raised;
        the conversation stays ready for the next send.

        Returns:
            The assistant reply (None for blank input or a failed send)

        Raises:
            SendInProgressError: Another send has not finished
            asyncio.CancelledError: The send was cancelled
        """
        text = text.strip()
        if not text:
            return None
        if self._sending:
            raise SendInProgressError()

        self._sending = True
        try:
            self._add(ChatMessage.user(text))
            state = self._state
            if isinstance(state, Degraded):
                reply = await self._send_degraded()
            else:
                reply = await self._send_live(state, text)
        finally:
            self._sending = False

        if reply is not None and self._settings.auto_save and self._note_writer is not None:
            await self._auto_save()
        return reply

    async def _send_degraded(self) -> ChatMessage:
        logger.debug("Sending message in test mode")
        await asyncio.sleep(self._mock_delay)
        return self._add(ChatMessage.assistant(MOCK_REPLY_TEXT))

    async def _send_live(self, state: Live, text: str) -> ChatMessage | None:
        placeholder = self._add(ChatMessage.assistant(THINKING_TEXT, temporary=True))
        conversation_id = self._conversation_id
        # Created before the call, listed once the first delta arrives
        reply = ChatMessage.assistant("")
        reply_listed = False

        def on_delta(delta: str, is_final: bool) -> None:
            nonlocal reply_listed
            if not reply_listed and (delta or is_final):
                reply_listed = self._replace(placeholder.id, reply)
            if delta:
                reply.content += delta
                self._updated(reply)

        try:
            completion = await self._client.send_completion(state.assistant_id, text)
            async with completion:
                result = await completion.process(on_delta)
        except asyncio.CancelledError:
            self._abandon(placeholder, reply, reply_listed)
            logger.info("Send cancelled after %d chars", len(reply.content))
            raise
        except StreamInterruptedError as e:
            self._abandon(placeholder, reply, reply_listed)
            logger.error("Answer interrupted: %s", e)
            if self._conversation_id == conversation_id:
                self._add_error(f"{e}. The answer above is incomplete.")
            return None
        except (RAGFlowError, ValueError) as e:
            self._remove(placeholder.id)
            if reply_listed:
                self._remove(reply.id)
            logger.error("Failed to send message: %s", e)
            if self._conversation_id == conversation_id:
                self._add_error(
                    f"Failed to send message: {e}. Please check your connection and settings."
                )
            return None

        if self._conversation_id != conversation_id:
            logger.info("Conversation was cleared, dropping answer (%d chars)", len(reply.content))
            return None
        if not reply_listed:
            self._replace(placeholder.id, reply)
        if not reply.content:
            reply.content = result.answer or EMPTY_ANSWER_TEXT
            self._updated(reply)
        if result.references:
            reply.references = list(result.references)
            self._updated(reply)
        if result.session_id:
            self._set_state(Live(state.assistant_id, state.assistant_name, result.session_id))

        logger.debug("Received answer (%d chars)", len(reply.content))
        return reply

    def _abandon(self, placeholder: ChatMessage, reply: ChatMessage, reply_listed: bool) -> None:
        """Drop the placeholder; keep any partial reply, marked incomplete.

        Nothing is reported for a conversation that was cleared meanwhile.
        """
        self._remove(placeholder.id)
        if reply_listed and reply.content:
            reply.incomplete = True
            self._updated(reply)
        elif reply_listed:
            self._remove(reply.id)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _assistant_label(self) -> str:
        state = self._state
        if isinstance(state, Live):
            return state.assistant_name or state.assistant_id
        return self._settings.chat_assistant_name or self._settings.chat_assistant_id or "test mode"

    async def save(self) -> Path | None:
        """Save the conversation through the note writer.

        Returns:
            The note path, or None if there is nothing to save or a save is
            already running

        Raises:
            NoteWriteError: The note could not be written
        """
        if self._note_writer is None:
            raise ConfigurationError("No note writer configured")
        if self._saving or not self._messages:
            return None

        self._saving = True
        try:
            self._note_path = await asyncio.to_thread(
                self._note_writer.save,
                list(self._messages),
                self._assistant_label(),
                self._conversation_id,
                self._note_path,
            )
        finally:
            self._saving = False
        return self._note_path

    async def _auto_save(self) -> None:
        try:
            await self.save()
        except Exception as e:
            logger.error("Error auto-saving conversation: %s", e)
            self._add_error(f"Failed to save conversation: {e}")
