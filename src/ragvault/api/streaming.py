"""Decoder for streamed chat completions.

Hides the wire format of the OpenAI-compatible completion stream:
- ``data: <json>`` lines terminated by ``\\n``
- the ``data: [DONE]`` sentinel
- lines split across network reads, including mid UTF-8 sequence
- the single-document (non-streaming) response shape
"""

import codecs
import json
import logging
from collections.abc import AsyncIterable, Callable
from typing import Any

import httpx

from .errors import InvalidResponseError, StreamInterruptedError
from .models import StreamResult

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"

# on_delta(text, is_final)
DeltaCallback = Callable[[str, bool], None]


def _frame_content(frame: Any) -> str | None:
    """Return ``choices[0].delta.content`` if the frame carries text."""
    if not isinstance(frame, dict):
        return None
    choices = frame.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    if isinstance(content, str) and content:
        return content
    return None


class StreamDecoder:
    """Incremental line decoder for one completion stream.

    Keeps a single rolling text buffer. Only complete lines are parsed; the
    trailing partial line waits for the next ``feed``.
    """

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._parts: list[str] = []

    @property
    def answer(self) -> str:
        """Concatenation of every delta produced so far."""
        return "".join(self._parts)

    def feed(self, data: bytes) -> list[str]:
        """Consume one transport read and return the deltas it completed."""
        self._buffer += self._utf8.decode(data)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return self._parse_lines(lines)

    def finish(self) -> list[str]:
        """Flush the decoder at end of stream and parse what is left."""
        self._buffer += self._utf8.decode(b"", final=True)
        remaining, self._buffer = self._buffer, ""
        if not remaining.strip():
            return []
        return self._parse_lines(remaining.split("\n"))

    def _parse_lines(self, lines: list[str]) -> list[str]:
        deltas = []
        for line in lines:
            content = self._parse_line(line)
            if content:
                self._parts.append(content)
                deltas.append(content)
        return deltas

    def _parse_line(self, line: str) -> str | None:
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX):].strip()
        if not payload or payload == DONE_SENTINEL:
            return None

        try:
            frame = json.loads(payload)
        except json.JSONDecodeError as e:
            logger.warning("Skipping malformed stream frame (%s): %.200s", e, line)
            return None

        return _frame_content(frame)


async def decode_stream(
    chunks: AsyncIterable[bytes],
    on_delta: DeltaCallback | None = None,
) -> StreamResult:
    """Decode a streamed completion body into deltas.

    Args:
        chunks: Raw body reads, in arrival order
        on_delta: Called with ``(text, False)`` per delta and once with
            ``("", True)`` after the stream ends

    Returns:
        StreamResult with the full answer; references and session id are
        always empty for this transport

    Raises:
        StreamInterruptedError: If reading or decoding the body fails
            mid-stream
    """
    decoder = StreamDecoder()

    def _emit(deltas: list[str]) -> None:
        if on_delta is None:
            return
        for delta in deltas:
            on_delta(delta, False)

    try:
        async for chunk in chunks:
            _emit(decoder.feed(chunk))
    except httpx.RequestError as e:
        logger.error("Completion stream aborted after %d chars: %s", len(decoder.answer), e)
        raise StreamInterruptedError(str(e) or type(e).__name__, decoder.answer) from e

    _emit(decoder.finish())
    if on_delta is not None:
        on_delta("", True)

    logger.debug("Completion stream finished (%d chars)", len(decoder.answer))
    return StreamResult(answer=decoder.answer)


def parse_completion(
    payload: Any,
    on_delta: DeltaCallback | None = None,
) -> StreamResult:
    """Extract the answer from a non-streaming completion document.

    Delivers the whole answer as a single final callback.

    Raises:
        InvalidResponseError: If ``choices[0].message.content`` is missing
    """
    choices = payload.get("choices") if isinstance(payload, dict) else None
    if not isinstance(choices, list) or not choices:
        raise InvalidResponseError("Invalid response format: missing choices")

    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str) or not content:
        raise InvalidResponseError("Invalid choice format: missing message content")

    if on_delta is not None:
        on_delta(content, True)
    return StreamResult(answer=content)
