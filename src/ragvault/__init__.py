"""
RAGVault: a terminal client for RAGFlow chat assistants.

Conversations are streamed from a RAGFlow server and saved as Markdown
notes in a local vault. Each module hides one design decision:
api (wire protocol), conversation (message flow), notes (persistence),
config (settings), ui and cli (front ends).
"""

__version__ = "0.1.0"

from .api import RAGFlowClient, RAGFlowError, StreamDecoder
from .config import Settings, SettingsStore
from .conversation import ChatMessage, ConversationController
from .notes import NoteWriter

__all__ = [
    "ChatMessage",
    "ConversationController",
    "NoteWriter",
    "RAGFlowClient",
    "RAGFlowError",
    "Settings",
    "SettingsStore",
    "StreamDecoder",
]
