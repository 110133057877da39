"""Data models for a conversation thread.

ChatMessage is mutable: an assistant reply grows in place while it streams.
ConversationState is a tagged variant; code branches on its type.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import uuid4

from ..api.models import Reference


class Role(str, Enum):
    """Sender of a chat message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


def new_message_id() -> str:
    return f"msg_{uuid4().hex[:12]}"


@dataclass
class ChatMessage:
    """A message in the conversation."""

    role: Role
    content: str
    references: list[Reference] = field(default_factory=list)
    temporary: bool = False  # placeholder, never saved
    id: str = field(default_factory=new_message_id)
    timestamp: datetime = field(default_factory=datetime.now)
    error: bool = False
    incomplete: bool = False  # reply cut off; content is partial

    def __post_init__(self) -> None:
        self.role = Role(self.role)

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str = "", **kwargs) -> "ChatMessage":
        return cls(role=Role.ASSISTANT, content=content, **kwargs)


@dataclass(frozen=True)
class Live:
    """Connected to a RAGFlow chat assistant."""

    assistant_id: str
    assistant_name: str = ""
    session_id: str = ""  # empty for the session-less completion endpoint


@dataclass(frozen=True)
class Degraded:
    """Service unreachable; replies are synthesized locally."""

    reason: str


ConversationState = Live | Degraded
