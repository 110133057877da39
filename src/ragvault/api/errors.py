"""Error taxonomy for the RAGFlow API client.

Frame-level decode problems never surface here; they are logged and skipped
by the stream decoder. Everything below propagates to the caller.
"""


class RAGFlowError(Exception):
    """Base class for RAGFlow client errors."""


class ConfigurationError(RAGFlowError):
    """Required setting (URL, API key, assistant) is missing."""


class RAGFlowConnectionError(RAGFlowError):
    """Transport failure before any response bytes arrived."""

    def __init__(self, message: str):
        super().__init__(f"Could not connect to RAGFlow: {message}")


class RAGFlowAPIError(RAGFlowError):
    """Server answered with an HTTP error or an error envelope."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: int | None = None,
    ):
        if status_code is not None:
            text = f"RAGFlow API error ({status_code}): {message}"
        elif code is not None:
            text = f"RAGFlow API error: {message} (code: {code})"
        else:
            text = f"RAGFlow API error: {message}"
        super().__init__(text)
        self.status_code = status_code
        self.code = code


class InvalidResponseError(RAGFlowError):
    """Response payload is missing fields the client relies on."""


class StreamInterruptedError(RAGFlowError):
    """Reading or decoding a streamed answer failed part way through.

    The text decoded before the abort is kept in ``partial_answer``.
    """

    def __init__(self, message: str, partial_answer: str = ""):
        super().__init__(f"Stream interrupted: {message}")
        self.partial_answer = partial_answer
