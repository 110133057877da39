"""Conversation module.

Owns the ordered message list of one chat thread, the live/degraded state
and the orchestration between the API client, the note writer and views.
"""

from .controller import ConversationController
from .errors import ConversationError, SendInProgressError, UnknownAssistantError
from .events import ConversationEvents
from .models import ChatMessage, ConversationState, Degraded, Live, Role

__all__ = [
    "ChatMessage",
    "ConversationController",
    "ConversationError",
    "ConversationEvents",
    "ConversationState",
    "Degraded",
    "Live",
    "Role",
    "SendInProgressError",
    "UnknownAssistantError",
]
