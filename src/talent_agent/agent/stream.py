"""Decoder for the agent's streamed chat response.

The chat endpoint streams one event per line in one of two framings,
depending on the server version:

* legacy, ``TYPE_CODE:JSON`` (``0`` text, ``9`` tool call, ``a`` tool
  result, ``3`` error; other codes are progress markers)
* Server-Sent Events, ``data: {"type": ...}`` terminated by ``data: [DONE]``

The framing is recognised per line, so a stream can be decoded without
knowing the server version. Chunks may split lines (and UTF-8 characters)
anywhere; incomplete trailing data is held until the next chunk. A line
that cannot be parsed is skipped without affecting the rest of the stream.
"""

import codecs
import json
import logging
from collections.abc import AsyncIterable, Iterable
from dataclasses import dataclass, field
from typing import Any, Union

import httpx

logger = logging.getLogger(__name__)

SSE_PREFIX = "data:"
SSE_DONE = "[DONE]"
UNKNOWN_TOOL = "unknown"

LEGACY_TEXT = "0"
LEGACY_ERROR = "3"
LEGACY_TOOL_CALL = "9"
LEGACY_TOOL_RESULT = "a"

SSE_TEXT_TYPES = {"text-delta"}
SSE_TOOL_CALL_TYPES = {"tool-call", "tool-input-available"}
SSE_TOOL_RESULT_TYPES = {"tool-result", "tool-output-available"}
SSE_ERROR_TYPES = {"error"}


# ── Events ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolCallStarted:
    call_id: str
    tool_name: str
    args: Any = None


@dataclass(frozen=True)
class ToolOutput:
    call_id: str
    output: Any = None


@dataclass(frozen=True)
class StreamError:
    message: str


@dataclass(frozen=True)
class Ignored:
    pass


StreamEvent = Union[TextDelta, ToolCallStarted, ToolOutput, StreamError, Ignored]

IGNORED = Ignored()


# ── Accumulated result ───────────────────────────────────────────


@dataclass
class ToolCall:
    tool_call_id: str
    tool_name: str
    args: Any = None


@dataclass
class ToolResult:
    tool_call_id: str
    tool_name: str
    output: Any = None


@dataclass
class ParsedStream:
    text_parts: list[str] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    error: str | None = None

    @property
    def text(self) -> str:
        return "".join(self.text_parts)

    @property
    def tools_called(self) -> list[str]:
        """Tool names in call order, duplicates kept."""
        return [call.tool_name for call in self.tool_calls]

    def tool_outputs(self) -> list[tuple[str, Any]]:
        return [(r.tool_name, r.output) for r in self.tool_results]


# ── Line parsing ─────────────────────────────────────────────────


def parse_line(line: str) -> StreamEvent:
    """Parse one complete line of either framing into an event.

    Lines that match neither framing, or whose payload is malformed,
    come back as ``Ignored``.
    """
    line = line.strip()
    if not line:
        return IGNORED

    try:
        if line.startswith(SSE_PREFIX):
            return _parse_sse(line[len(SSE_PREFIX):].strip())
        code, sep, payload = line.partition(":")
        if not sep:
            return IGNORED
        return _parse_legacy(code, payload)
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        logger.debug("Skipping malformed stream line %r: %s", line[:200], exc)
        return IGNORED


def _parse_legacy(code: str, payload: str) -> StreamEvent:
    if code == LEGACY_TEXT:
        text = json.loads(payload)
        return TextDelta(text) if isinstance(text, str) else IGNORED
    if code == LEGACY_TOOL_CALL:
        data = json.loads(payload)
        return ToolCallStarted(
            call_id=data["toolCallId"], tool_name=data["toolName"], args=data.get("args")
        )
    if code == LEGACY_TOOL_RESULT:
        data = json.loads(payload)
        return ToolOutput(call_id=data["toolCallId"], output=data.get("result"))
    if code == LEGACY_ERROR:
        return StreamError(str(json.loads(payload)))
    # d (finish message), e (finish step), f (start step) and friends
    return IGNORED


def _parse_sse(payload: str) -> StreamEvent:
    if not payload or payload == SSE_DONE:
        return IGNORED
    data = json.loads(payload)
    kind = data.get("type")

    if kind in SSE_TEXT_TYPES:
        text = data.get("delta", data.get("textDelta", data.get("text")))
        return TextDelta(text) if isinstance(text, str) else IGNORED
    if kind in SSE_TOOL_CALL_TYPES:
        return ToolCallStarted(
            call_id=data["toolCallId"],
            tool_name=data["toolName"],
            args=data.get("input", data.get("args")),
        )
    if kind in SSE_TOOL_RESULT_TYPES:
        return ToolOutput(call_id=data["toolCallId"], output=data.get("output", data.get("result")))
    if kind in SSE_ERROR_TYPES:
        message = data.get("errorText") or data.get("error") or data.get("message")
        return StreamError(str(message) if message else "Unknown stream error")
    return IGNORED


# ── Decoder ──────────────────────────────────────────────────────


class StreamDecoder:
    """Incremental decoder: ``feed`` chunks, then ``close``."""

    def __init__(self) -> None:
        self.result = ParsedStream()
        self._buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        # toolCallId -> toolName, filled as tool calls arrive
        self._call_names: dict[str, str] = {}

    def feed(self, chunk: bytes | str) -> None:
        text = chunk if isinstance(chunk, str) else self._utf8.decode(chunk)
        if not text:
            return
        *lines, self._buffer = (self._buffer + text).split("\n")
        for line in lines:
            self.apply(parse_line(line))

    def close(self) -> ParsedStream:
        """Flush the trailing fragment and return the accumulated result.

        The fragment has no terminating newline, so only a text delta is
        taken from it.
        """
        tail = self._buffer + self._utf8.decode(b"", final=True)
        self._buffer = ""
        event = parse_line(tail)
        if isinstance(event, TextDelta):
            self.apply(event)
        return self.result

    def fail(self, message: str) -> ParsedStream:
        self.result.error = message
        return self.result

    def apply(self, event: StreamEvent) -> None:
        result = self.result
        if isinstance(event, TextDelta):
            if event.text:
                result.text_parts.append(event.text)
        elif isinstance(event, ToolCallStarted):
            result.tool_calls.append(ToolCall(event.call_id, event.tool_name, event.args))
            self._call_names[event.call_id] = event.tool_name
        elif isinstance(event, ToolOutput):
            # A result whose call was never seen keeps the "unknown" name.
            name = self._call_names.get(event.call_id, UNKNOWN_TOOL)
            if name == UNKNOWN_TOOL:
                logger.warning("Tool result for unseen call id %s", event.call_id)
            result.tool_results.append(ToolResult(event.call_id, name, event.output))
        elif isinstance(event, StreamError):
            result.error = event.message
        elif isinstance(event, Ignored):
            pass
        else:
            raise TypeError(f"Unhandled stream event: {event!r}")


def decode(chunks: Iterable[bytes | str]) -> ParsedStream:
    """Decode a complete stream from an iterable of chunks."""
    decoder = StreamDecoder()
    for chunk in chunks:
        decoder.feed(chunk)
    return decoder.close()


async def adecode(chunks: AsyncIterable[bytes | str]) -> ParsedStream:
    """Decode a stream pulled from an async source such as ``Response.aiter_bytes()``.

    A read failure ends decoding and is reported through ``error``.
    """
    decoder = StreamDecoder()
    try:
        async for chunk in chunks:
            decoder.feed(chunk)
    except (httpx.HTTPError, OSError) as exc:
        logger.warning("Stream read failed: %s", exc)
        return decoder.fail(str(exc) or exc.__class__.__name__)
    return decoder.close()
