"""RAGFlow API client module.

Hides HTTP transport, authentication, response envelopes and the streamed
completion wire format from the rest of the application.
"""

from .client import CompletionStream, RAGFlowClient
from .errors import (
    ConfigurationError,
    InvalidResponseError,
    RAGFlowAPIError,
    RAGFlowConnectionError,
    RAGFlowError,
    StreamInterruptedError,
)
from .models import ChatAssistant, ChatSession, Dataset, Reference, SessionMessage, StreamResult
from .streaming import DeltaCallback, StreamDecoder, decode_stream, parse_completion

__all__ = [
    "ChatAssistant",
    "ChatSession",
    "CompletionStream",
    "ConfigurationError",
    "Dataset",
    "DeltaCallback",
    "InvalidResponseError",
    "RAGFlowAPIError",
    "RAGFlowClient",
    "RAGFlowConnectionError",
    "RAGFlowError",
    "Reference",
    "SessionMessage",
    "StreamDecoder",
    "StreamInterruptedError",
    "StreamResult",
    "decode_stream",
    "parse_completion",
]
