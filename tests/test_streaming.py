"""Unit tests for the streaming completion decoder."""
import httpx
import pytest
from hypothesis import given
from hypothesis import strategies as st

from ragvault.api import (
    InvalidResponseError,
    StreamDecoder,
    StreamInterruptedError,
    decode_stream,
    parse_completion,
)

from .conftest import sse_body, sse_frame


async def _chunks(*parts: bytes, error: Exception | None = None):
    for part in parts:
        yield part
    if error is not None:
        raise error


class Recorder:
    """on_delta callback that records every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, bool]] = []

    def __call__(self, text: str, is_final: bool) -> None:
        self.calls.append((text, is_final))

    @property
    def deltas(self) -> list[str]:
        return [text for text, final in self.calls if not final]


def _split(data: bytes, cuts: list[int]) -> list[bytes]:
    points = sorted({c for c in cuts if 0 < c < len(data)})
    bounds = [0, *points, len(data)]
    return [data[a:b] for a, b in zip(bounds, bounds[1:], strict=False)]


class TestStreamDecoder:
    """Tests for the incremental line decoder."""

    def test_partial_line_waits_for_newline(self):
        """Test that an unterminated line produces nothing until completed."""
        decoder = StreamDecoder()
        frame = sse_frame("Hello").encode()

        assert decoder.feed(frame[:10]) == []
        assert decoder.feed(frame[10:]) == ["Hello"]
        assert decoder.answer == "Hello"

    def test_sentinel_contributes_nothing(self):
        """Test that data: [DONE] is ignored."""
        decoder = StreamDecoder()
        assert decoder.feed(b"data: [DONE]\n") == []
        assert decoder.answer == ""

    def test_non_data_lines_ignored(self):
        """Test that comments, events and blank lines are skipped."""
        decoder = StreamDecoder()
        data = b": keep-alive\nevent: message\n\n" + sse_frame("ok").encode()
        assert decoder.feed(data) == ["ok"]

    def test_crlf_line_endings(self):
        """Test that a trailing carriage return is stripped."""
        decoder = StreamDecoder()
        data = sse_frame("Hi").replace("\n", "\r\n").encode()
        assert decoder.feed(data) == ["Hi"]

    def test_frames_without_content_ignored(self):
        """Test that role-only, empty and odd-shaped frames add nothing."""
        decoder = StreamDecoder()
        data = (
            b'data: {"choices":[{"delta":{"role":"assistant"}}]}\n'
            b'data: {"choices":[{"delta":{"content":""}}]}\n'
            b'data: {"choices":[]}\n'
            b'data: {"choices":[{"delta":{"content":42}}]}\n'
            b"data: [1, 2]\n"
        )
        assert decoder.feed(data) == []

    def test_malformed_line_does_not_block_valid_lines(self, caplog):
        """Test that bad JSON is logged and skipped."""
        decoder = StreamDecoder()
        data = b"data: {bad json\n" + sse_frame("fine").encode()

        with caplog.at_level("WARNING", logger="ragvault.api.streaming"):
            assert decoder.feed(data) == ["fine"]
        assert "malformed" in caplog.text

    def test_finish_parses_unterminated_last_line(self):
        """Test that the final flush handles a missing trailing newline."""
        decoder = StreamDecoder()
        assert decoder.feed(sse_frame("tail").rstrip("\n").encode()) == []
        assert decoder.finish() == ["tail"]
        assert decoder.answer == "tail"

    def test_multibyte_split_across_reads(self):
        """Test that a UTF-8 sequence split between reads is reassembled."""
        decoder = StreamDecoder()
        data = sse_frame("héllo ✓").encode()
        cut = data.index("✓".encode()) + 1

        deltas = decoder.feed(data[:cut]) + decoder.feed(data[cut:])
        assert deltas == ["héllo ✓"]

    @given(
        st.lists(st.text(min_size=1, max_size=12), min_size=1, max_size=6),
        st.lists(st.integers(min_value=0, max_value=400), max_size=12),
    )
    def test_arbitrary_splits_give_same_answer(self, deltas: list[str], cuts: list[int]):
        """Property test: any chunking of the body yields the single-read answer."""
        body = sse_body(*deltas)

        whole = StreamDecoder()
        whole.feed(body)
        whole.finish()

        split = StreamDecoder()
        for chunk in _split(body, cuts):
            split.feed(chunk)
        split.finish()

        assert split.answer == whole.answer == "".join(deltas)


class TestDecodeStream:
    """Tests for decode_stream over an async byte source."""

    @pytest.mark.asyncio
    async def test_reference_scenario(self):
        """Test Hel / lo / [DONE] delivers two deltas then one final callback."""
        on_delta = Recorder()
        chunks = _chunks(
            b'data: {"choices":[{"delta":{"content":"Hel"}}]}\n',
            b'data: {"choices":[{"delta":{"content":"lo"}}]}\n',
            b"data: [DONE]\n",
        )

        result = await decode_stream(chunks, on_delta)

        assert on_delta.calls == [("Hel", False), ("lo", False), ("", True)]
        assert result.answer == "Hello"
        assert result.references == []
        assert result.session_id == ""

    @pytest.mark.asyncio
    async def test_exactly_one_final_callback_last(self):
        """Test that the final callback is delivered once, after all deltas."""
        on_delta = Recorder()
        body = sse_body("a", "b", "c")

        await decode_stream(_chunks(*_split(body, [3, 17, 40, 61])), on_delta)

        finals = [i for i, (_, final) in enumerate(on_delta.calls) if final]
        assert finals == [len(on_delta.calls) - 1]
        assert on_delta.deltas == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_bad_json_then_valid_line(self):
        """Test the malformed-frame scenario delivers the valid content."""
        on_delta = Recorder()
        chunks = _chunks(b"data: {bad json\n", b'data: {"choices":[{"delta":{"content":"ok"}}]}\n')

        result = await decode_stream(chunks, on_delta)

        assert result.answer == "ok"
        assert on_delta.calls == [("ok", False), ("", True)]

    @pytest.mark.asyncio
    async def test_stream_closed_without_trailing_newline(self):
        """Test that the last frame is delivered before the final callback."""
        on_delta = Recorder()
        body = sse_body("x", done=False).rstrip(b"\n")

        result = await decode_stream(_chunks(body), on_delta)

        assert result.answer == "x"
        assert on_delta.calls == [("x", False), ("", True)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [httpx.ReadError("connection reset"), httpx.DecodingError("connection reset")],
        ids=["read", "decoding"],
    )
    async def test_abort_keeps_partial_answer(self, error):
        """Test that an abort raises with the partial answer and no final callback."""
        on_delta = Recorder()
        chunks = _chunks(sse_body("Par", done=False), error=error)

        with pytest.raises(StreamInterruptedError) as exc_info:
            await decode_stream(chunks, on_delta)

        assert exc_info.value.partial_answer == "Par"
        assert "connection reset" in str(exc_info.value)
        assert on_delta.calls == [("Par", False)]

    @pytest.mark.asyncio
    async def test_without_callback(self):
        """Test that deltas are accumulated when no callback is given."""
        result = await decode_stream(_chunks(sse_body("only", "text")))
        assert result.answer == "onlytext"


class TestParseCompletion:
    """Tests for the non-streaming fallback."""

    def test_single_final_callback(self):
        """Test that a full document produces exactly one final callback."""
        on_delta = Recorder()
        payload = {"choices": [{"message": {"content": "Hi there"}}]}

        result = parse_completion(payload, on_delta)

        assert on_delta.calls == [("Hi there", True)]
        assert result.answer == "Hi there"

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"choices": []},
            {"choices": "nope"},
            {"choices": [{}]},
            {"choices": [{"message": {}}]},
            {"choices": [{"message": {"content": 7}}]},
            ["not", "a", "dict"],
        ],
    )
    def test_invalid_payloads(self, payload):
        """Test that structurally invalid documents raise InvalidResponseError."""
        on_delta = Recorder()
        with pytest.raises(InvalidResponseError):
            parse_completion(payload, on_delta)
        assert on_delta.calls == []
