"""Event interface between the conversation controller and its views.

Hides how a front end mirrors the message list. Every hook is called
synchronously, in the same turn as the change it reports.
"""

from .models import ChatMessage, ConversationState


class ConversationEvents:
    """No-op base class; views override the hooks they need."""

    def message_added(self, message: ChatMessage) -> None:
        """A message was appended."""

    def message_updated(self, message: ChatMessage) -> None:
        """A message's content or flags changed."""

    def message_removed(self, message_id: str) -> None:
        """A message was removed (superseded placeholder)."""

    def messages_cleared(self) -> None:
        """The message list was reset."""

    def state_changed(self, state: ConversationState) -> None:
        """The conversation switched between live and degraded."""
