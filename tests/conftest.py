"""Pytest configuration and shared fixtures."""
import json
import logging
from collections.abc import Callable, Iterable

import httpx
import pytest

from ragvault.api import RAGFlowClient
from ragvault.config import Settings
from ragvault.conversation import ChatMessage, ConversationEvents, ConversationState

BASE_URL = "http://ragflow.test"
API_KEY = "ragflow-test-key"
ASSISTANT_ID = "asst-1"

Handler = Callable[[httpx.Request], httpx.Response]


class ChunkStream(httpx.AsyncByteStream):
    """Response body delivered as the given reads, optionally failing afterwards."""

    def __init__(self, chunks: Iterable[bytes], error: Exception | None = None):
        self._chunks = list(chunks)
        self._error = error

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk
        if self._error is not None:
            raise self._error


def sse_frame(content: str) -> str:
    """One ``data:`` line carrying a delta."""
    frame = {"choices": [{"delta": {"content": content}}]}
    return "data: " + json.dumps(frame, ensure_ascii=False) + "\n"


def sse_body(*deltas: str, done: bool = True) -> bytes:
    """Event-stream body for the given deltas."""
    body = "".join(sse_frame(delta) for delta in deltas)
    if done:
        body += "data: [DONE]\n"
    return body.encode("utf-8")


def sse_response(
    chunks: Iterable[bytes],
    error: Exception | None = None,
) -> httpx.Response:
    return httpx.Response(
        200,
        headers={"content-type": "text/event-stream"},
        stream=ChunkStream(chunks, error),
    )


def envelope(data, code: int = 0, message: str = "") -> dict:
    payload = {"code": code, "data": data}
    if message:
        payload["message"] = message
    return payload


class RecordingEvents(ConversationEvents):
    """Records every controller event in order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []

    def message_added(self, message: ChatMessage) -> None:
        self.events.append(("added", message.id))

    def message_updated(self, message: ChatMessage) -> None:
        self.events.append(("updated", message.id))

    def message_removed(self, message_id: str) -> None:
        self.events.append(("removed", message_id))

    def messages_cleared(self) -> None:
        self.events.append(("cleared", None))

    def state_changed(self, state: ConversationState) -> None:
        self.events.append(("state", state))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


class FakeServer:
    """Routes requests to handlers by ``(method, path)`` and records them."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Handler] = {}
        self.requests: list[httpx.Request] = []

    def route(self, method: str, path: str, handler: Handler | dict | httpx.Response) -> None:
        if isinstance(handler, dict):
            payload = handler
            handler = lambda request: httpx.Response(200, json=payload)  # noqa: E731
        elif isinstance(handler, httpx.Response):
            response = handler
            handler = lambda request: response  # noqa: E731
        self.routes[(method, path)] = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, text="Not Found")
        return handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture(autouse=True)
def _restore_ragvault_logger():
    """Undo handler and level changes made by configure_logging."""
    logger = logging.getLogger("ragvault")
    saved = (logger.handlers[:], logger.level, logger.propagate)
    yield
    logger.handlers, logger.level, logger.propagate = saved


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        ragflow_url=BASE_URL,
        api_key=API_KEY,
        chat_assistant_id=ASSISTANT_ID,
        chat_assistant_name="Handbook",
        vault_path=str(tmp_path / "vault"),
        auto_save=False,
    )


@pytest.fixture
def client_factory(server) -> Callable[[Settings], RAGFlowClient]:
    """Client factory whose clients talk to the fake server."""

    def _factory(settings: Settings) -> RAGFlowClient:
        return RAGFlowClient.from_settings(settings, transport=server.transport)

    return _factory


@pytest.fixture
async def client(server):
    async with RAGFlowClient(BASE_URL, API_KEY, transport=server.transport) as c:
        yield c


@pytest.fixture
def events() -> RecordingEvents:
    return RecordingEvents()
