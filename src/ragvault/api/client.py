import json
import logging
import time
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

import httpx

from .errors import (
    ConfigurationError,
    InvalidResponseError,
    RAGFlowAPIError,
    RAGFlowConnectionError,
    StreamInterruptedError,
)
from .models import ChatAssistant, ChatSession, Dataset, SessionMessage, StreamResult
from .streaming import DeltaCallback, StreamDecoder, decode_stream, parse_completion

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def _check_envelope(payload: Any) -> None:
    """Raise if a RAGFlow JSON envelope reports an error."""
    if isinstance(payload, dict) and payload.get("code") and payload.get("message"):
        raise RAGFlowAPIError(str(payload["message"]), code=payload["code"])


def _envelope_data(payload: Any, what: str) -> Any:
    """Return ``payload['data']`` after checking the error envelope."""
    if not payload:
        raise InvalidResponseError("Empty response from RAGFlow API")
    _check_envelope(payload)
    if not isinstance(payload, dict) or not payload.get("data"):
        raise InvalidResponseError(f"Invalid {what} response: missing data field")
    return payload["data"]


def _is_event_stream(response: httpx.Response) -> bool:
    content_type = response.headers.get("content-type", "")
    return "application/json" not in content_type


class CompletionStream:
    """Handle on an open completion response.

    Hidden design decisions:
    - whether the server answered with an event stream or a JSON document
    - when the underlying HTTP response is released

    Usage:
        async with await client.send_completion(assistant_id, question) as stream:
            result = await stream.process(on_delta)

    or, to consume deltas as an async iterator:
        async for delta in stream:
            print(delta, end="")
        print(stream.result.answer)
    """

    def __init__(self, response: httpx.Response):
        self._response = response
        self._result: StreamResult | None = None

    @property
    def is_streaming(self) -> bool:
        """True if the body is an event stream rather than one JSON document."""
        return _is_event_stream(self._response)

    @property
    def result(self) -> StreamResult | None:
        """Decode result (available once the stream has been consumed)."""
        return self._result

    async def process(self, on_delta: DeltaCallback | None = None) -> StreamResult:
        """Consume the response, forwarding deltas to ``on_delta``.

        Raises:
            StreamInterruptedError: Transport aborted mid-stream
            InvalidResponseError: Non-streaming payload is malformed
            RAGFlowAPIError: JSON body is an error envelope
        """
        try:
            if self.is_streaming:
                self._result = await decode_stream(self._response.aiter_bytes(), on_delta)
            else:
                self._result = await self._process_document(on_delta)
            return self._result
        finally:
            await self.aclose()

    async def _process_document(self, on_delta: DeltaCallback | None) -> StreamResult:
        try:
            body = await self._response.aread()
        except httpx.RequestError as e:
            raise StreamInterruptedError(str(e) or type(e).__name__) from e
        try:
            payload = json.loads(body)
        except ValueError as e:
            raise InvalidResponseError(f"Completion response is not valid JSON: {e}") from e
        _check_envelope(payload)
        return parse_completion(payload, on_delta)

    async def _iter_deltas(self) -> AsyncIterator[str]:
        try:
            if not self.is_streaming:
                self._result = await self._process_document(None)
                yield self._result.answer
                return

            decoder = StreamDecoder()
            try:
                async for chunk in self._response.aiter_bytes():
                    for delta in decoder.feed(chunk):
                        yield delta
            except httpx.RequestError as e:
                raise StreamInterruptedError(str(e) or type(e).__name__, decoder.answer) from e
            for delta in decoder.finish():
                yield delta
            self._result = StreamResult(answer=decoder.answer)
        finally:
            await self.aclose()

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iter_deltas()

    async def aclose(self) -> None:
        """Release the HTTP response."""
        await self._response.aclose()

    async def __aenter__(self) -> "CompletionStream":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()


class RAGFlowClient:
    """Client for the RAGFlow HTTP API.

    Hidden design decisions:
    - URL construction and bearer authentication
    - RAGFlow's ``{code, message, data}`` envelope
    - Mapping transport and HTTP failures to typed errors
    - Streaming vs single-document completion bodies

    Supports the async context manager protocol:
        async with RAGFlowClient(url, key) as client:
            assistants = await client.list_chat_assistants()
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: RAGFlow server URL, e.g. http://localhost:9380
            api_key: RAGFlow API key
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self._base_url = (base_url or "").rstrip("/")
        self._api_key = api_key or ""
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    @classmethod
    def from_settings(cls, settings: "Settings", **kwargs: Any) -> "RAGFlowClient":
        """Build a client from application settings."""
        return cls(
            base_url=settings.ragflow_url,
            api_key=settings.api_key,
            timeout=settings.timeout,
            **kwargs,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

    def _url(self, endpoint: str) -> str:
        if not self._api_key:
            raise ConfigurationError("RAGFlow API key is not set")
        if not self._base_url:
            raise ConfigurationError("RAGFlow URL is not set")
        return f"{self._base_url}{endpoint}"

    async def _send(self, request: httpx.Request, stream: bool = False) -> httpx.Response:
        """Send a request, mapping transport failures and HTTP errors."""
        logger.debug("RAGFlow API request: %s %s", request.method, request.url)
        try:
            response = await self._http.send(request, stream=stream)
        except httpx.RequestError as e:
            logger.error("RAGFlow API request to %s failed: %s", request.url, e)
            raise RAGFlowConnectionError(str(e) or type(e).__name__) from e

        if response.is_error:
            try:
                detail = (await response.aread()).decode("utf-8", errors="replace")
            except httpx.HTTPError:
                detail = ""
            finally:
                await response.aclose()
            logger.error("RAGFlow API error response (%d): %s", response.status_code, detail)
            raise RAGFlowAPIError(detail or response.reason_phrase, status_code=response.status_code)

        return response

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        """Make an authenticated request and return the decoded body.

        Bodies that are not JSON are wrapped as ``{"code": 0, "data": text}``.
        """
        request = self._http.build_request(
            method, self._url(endpoint), headers=self._headers(), json=json_body
        )
        response = await self._send(request)
        try:
            return response.json()
        except ValueError:
            logger.debug("RAGFlow API response is not JSON, returning text")
            return {"code": 0, "data": response.text}

    async def list_chat_assistants(self) -> list[ChatAssistant]:
        """List the chat assistants available to this API key."""
        payload = await self._request("GET", f"{API_PREFIX}/chats")
        _check_envelope(payload)
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            logger.warning("Invalid chat assistants response: %.200r", payload)
            return []
        return [
            ChatAssistant(id=item.get("id") or "", name=item.get("name") or "Unnamed Assistant")
            for item in data
            if isinstance(item, dict)
        ]

    async def list_datasets(self) -> list[Dataset]:
        """List the datasets (knowledge bases) available to this API key."""
        payload = await self._request("GET", f"{API_PREFIX}/datasets")
        _check_envelope(payload)
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            logger.warning("Invalid datasets response: %.200r", payload)
            return []
        return [
            Dataset(id=item.get("id") or "", name=item.get("name") or "Unnamed Dataset")
            for item in data
            if isinstance(item, dict)
        ]

    async def create_chat_assistant(self, name: str, dataset_id: str) -> ChatAssistant:
        """Create a chat assistant over one dataset.

        A millisecond timestamp is appended to ``name`` to avoid clashes.
        """
        if not dataset_id:
            raise ValueError("Dataset ID is required")

        unique_name = f"{name}_{int(time.time() * 1000)}"
        payload = await self._request(
            "POST",
            f"{API_PREFIX}/chats",
            {"name": unique_name, "dataset_ids": [dataset_id]},
        )
        data = _envelope_data(payload, "chat assistant")
        if not isinstance(data, dict) or not data.get("id"):
            raise InvalidResponseError("Invalid response: missing chat assistant ID")

        assistant = ChatAssistant(id=data["id"], name=data.get("name") or unique_name)
        logger.info("Created chat assistant %s (%s)", assistant.name, assistant.id)
        return assistant

    async def create_session(
        self,
        assistant_id: str,
        name: str = "ragvault session",
    ) -> ChatSession:
        """Create a chat session on an assistant."""
        if not assistant_id:
            raise ValueError("Chat assistant ID is required")

        unique_name = f"{name}_{int(time.time() * 1000)}"
        payload = await self._request(
            "POST",
            f"{API_PREFIX}/chats/{assistant_id}/sessions",
            {"name": unique_name},
        )
        data = _envelope_data(payload, "chat session")
        if not isinstance(data, dict) or not data.get("id"):
            raise InvalidResponseError("Invalid response: missing session ID")

        return ChatSession(
            id=data["id"],
            name=data.get("name") or unique_name,
            messages=[
                SessionMessage.from_payload(m)
                for m in data.get("messages") or []
                if isinstance(m, dict)
            ],
        )

    async def send_session_message(
        self,
        assistant_id: str,
        session_id: str,
        message: str,
    ) -> SessionMessage:
        """Send a message to a session and return the answer with references."""
        if not assistant_id:
            raise ValueError("Chat assistant ID is required")
        if not session_id:
            raise ValueError("Chat session ID is required")
        if not message.strip():
            raise ValueError("Message cannot be empty")

        payload = await self._request(
            "POST",
            f"{API_PREFIX}/chats/{assistant_id}/sessions/{session_id}/messages",
            {"content": message},
        )
        if isinstance(payload, dict) and payload.get("code") and "404: Not Found" in str(
            payload.get("message", "")
        ):
            raise RAGFlowAPIError(
                "Chat assistant or session not found. "
                "The assistant or session may have been deleted.",
                code=payload["code"],
            )
        data = _envelope_data(payload, "message")
        if not isinstance(data, dict):
            raise InvalidResponseError("Invalid message response: data is not an object")

        reply = SessionMessage.from_payload({**data, "role": "assistant"})
        if not reply.content:
            reply = reply.model_copy(update={"content": "No response from RAGFlow"})
        return reply

    async def get_history(self, assistant_id: str, session_id: str) -> list[SessionMessage]:
        """Fetch the stored messages of a session."""
        if not assistant_id:
            raise ValueError("Chat assistant ID is required")
        if not session_id:
            raise ValueError("Chat session ID is required")

        payload = await self._request(
            "GET", f"{API_PREFIX}/chats/{assistant_id}/sessions/{session_id}/messages"
        )
        _check_envelope(payload)
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            logger.warning("Invalid conversation history response: %.200r", payload)
            return []
        return [SessionMessage.from_payload(m) for m in data if isinstance(m, dict)]

    async def send_completion(
        self,
        assistant_id: str,
        question: str,
        stream: bool = True,
    ) -> CompletionStream:
        """Open a completion on the OpenAI-compatible endpoint.

        Connection and HTTP errors are raised here, before any body bytes
        are consumed. The returned handle must be processed or closed.

        Args:
            assistant_id: Chat assistant to ask
            question: User question
            stream: Ask the server for an event stream

        Returns:
            CompletionStream over the open response
        """
        if not assistant_id:
            raise ValueError("Chat assistant ID is required")
        if not question.strip():
            raise ValueError("Message cannot be empty")

        body = {
            "model": "model",  # resolved server-side from the assistant
            "messages": [{"role": "user", "content": question}],
            "stream": stream,
        }
        request = self._http.build_request(
            "POST",
            self._url(f"{API_PREFIX}/chats_openai/{assistant_id}/chat/completions"),
            headers=self._headers(),
            json=body,
        )
        response = await self._send(request, stream=True)
        return CompletionStream(response)

    async def complete(
        self,
        assistant_id: str,
        question: str,
        on_delta: DeltaCallback | None = None,
        stream: bool = True,
    ) -> StreamResult:
        """Send a question and consume the whole answer."""
        completion = await self.send_completion(assistant_id, question, stream=stream)
        async with completion:
            return await completion.process(on_delta)

    async def test_connection(self) -> bool:
        """Return True if the server accepts our credentials."""
        try:
            payload = await self._request("GET", f"{API_PREFIX}/chats")
            _check_envelope(payload)
            return True
        except (ConfigurationError, RAGFlowConnectionError, RAGFlowAPIError) as e:
            logger.warning("Connection test failed: %s", e)
            return False

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.aclose()

    async def __aenter__(self) -> "RAGFlowClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Close on exit, tolerating a loop already shut down (httpx/anyio race)."""
        try:
            await self.close()
        except RuntimeError as e:
            if "Event loop is closed" not in str(e):
                raise
