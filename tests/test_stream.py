"""Tests for the chat stream decoder."""

import json

import httpx
import pytest

from talent_agent.agent.stream import (
    Ignored,
    StreamDecoder,
    StreamError,
    TextDelta,
    ToolCallStarted,
    ToolOutput,
    adecode,
    decode,
    parse_line,
)


def sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n"


LEGACY_STREAM = (
    '0:"Found "\n'
    '9:{"toolCallId":"c1","toolName":"searchProfiles","args":{"q":"rust"}}\n'
    'a:{"toolCallId":"c1","result":{"profiles":[{"id":"p1"}],"totalMatches":1}}\n'
    '0:"one match."\n'
    'd:{"finishReason":"stop"}\n'
)

SSE_STREAM = (
    sse({"type": "start"})
    + sse({"type": "text-delta", "id": "t1", "delta": "Héllo"})
    + sse(
        {
            "type": "tool-input-available",
            "toolCallId": "c1",
            "toolName": "getProfileDetails",
            "input": {"id": "p1"},
        }
    )
    + sse({"type": "tool-output-available", "toolCallId": "c1", "output": {"success": True}})
    + sse({"type": "finish"})
    + "data: [DONE]\n"
)


class TestParseLine:
    def test_legacy_text(self):
        assert parse_line('0:"Hello"') == TextDelta("Hello")

    def test_legacy_tool_call(self):
        event = parse_line('9:{"toolCallId":"x","toolName":"searchProfiles","args":{"a":1}}')
        assert event == ToolCallStarted("x", "searchProfiles", {"a": 1})

    def test_legacy_tool_result(self):
        assert parse_line('a:{"toolCallId":"x","result":[1,2]}') == ToolOutput("x", [1, 2])

    def test_legacy_error(self):
        assert parse_line('3:"rate_limit exceeded"') == StreamError("rate_limit exceeded")

    def test_legacy_progress_codes_ignored(self):
        assert isinstance(parse_line('e:{"finishReason":"stop"}'), Ignored)
        assert isinstance(parse_line('f:{"messageId":"m"}'), Ignored)

    def test_sse_text_delta(self):
        assert parse_line('data: {"type":"text-delta","delta":"Hi"}') == TextDelta("Hi")

    def test_sse_tool_call_aliases(self):
        a = parse_line('data: {"type":"tool-call","toolCallId":"x","toolName":"n","args":{}}')
        b = parse_line(
            'data: {"type":"tool-input-available","toolCallId":"x","toolName":"n","input":{}}'
        )
        assert a == b == ToolCallStarted("x", "n", {})

    def test_sse_error(self):
        assert parse_line('data: {"type":"error","errorText":"boom"}') == StreamError("boom")

    @pytest.mark.parametrize(
        "line",
        [
            "",
            "   ",
            "data: [DONE]",
            "event: message",
            ": keep-alive",
            "no colon here",
            '0:not json',
            "data: {broken",
            '9:{"toolCallId":"x"}',
            'data: ["not", "an", "object"]',
            'data: {"type":"start-step"}',
        ],
    )
    def test_unrecognized_or_malformed_lines_are_ignored(self, line):
        assert isinstance(parse_line(line), Ignored)


class TestDecode:
    def test_legacy_text_chunks(self):
        result = decode([b'0:"Hello"\n', b'0:" world"\n'])
        assert result.text_parts == ["Hello", " world"]
        assert result.error is None

    def test_legacy_full_turn(self):
        result = decode([LEGACY_STREAM.encode()])
        assert result.text == "Found one match."
        assert [c.tool_name for c in result.tool_calls] == ["searchProfiles"]
        assert result.tool_results[0].tool_name == "searchProfiles"
        assert result.tool_results[0].output["totalMatches"] == 1

    def test_sse_full_turn(self):
        result = decode([SSE_STREAM.encode()])
        assert result.text_parts == ["Héllo"]
        assert result.tool_calls[0].args == {"id": "p1"}
        assert result.tool_outputs() == [("getProfileDetails", {"success": True})]

    def test_tool_result_for_unseen_call_is_unknown(self):
        result = decode(
            [b'data: {"type":"tool-output-available","toolCallId":"x","output":{"a":1}}\n']
        )
        assert len(result.tool_results) == 1
        assert result.tool_results[0].tool_name == "unknown"
        assert result.tool_results[0].output == {"a": 1}

    def test_empty_stream(self):
        result = decode([])
        assert result.text_parts == []
        assert result.tool_calls == []
        assert result.tool_results == []
        assert result.error is None

    def test_only_terminator(self):
        result = decode([b"data: [DONE]\n"])
        assert result.text_parts == []
        assert result.error is None

    def test_last_error_wins(self):
        result = decode([b'3:"first"\n', b'data: {"type":"error","errorText":"second"}\n'])
        assert result.error == "second"

    def test_malformed_lines_interleaved(self):
        stream = (
            '0:"a"\n'
            "garbage\n"
            '0:{not json}\n'
            'data: {"type":"text-delta","delta":"b"}\n'
            "data: nope\n"
            '0:"c"\n'
        )
        result = decode([stream.encode()])
        assert result.text_parts == ["a", "b", "c"]

    def test_empty_text_delta_skipped(self):
        result = decode([b'0:""\n0:"x"\n'])
        assert result.text_parts == ["x"]

    def test_duplicate_tool_calls_kept_in_order(self):
        stream = (
            '9:{"toolCallId":"1","toolName":"searchProfiles","args":{}}\n'
            '9:{"toolCallId":"2","toolName":"searchInTable","args":{}}\n'
            '9:{"toolCallId":"3","toolName":"searchProfiles","args":{}}\n'
        )
        result = decode([stream.encode()])
        assert result.tools_called == ["searchProfiles", "searchInTable", "searchProfiles"]

    def test_trailing_fragment_text_flushed(self):
        result = decode([b'0:"a"\n0:"tail"'])
        assert result.text_parts == ["a", "tail"]

    def test_trailing_fragment_only_honors_text(self):
        result = decode([b'0:"a"\n9:{"toolCallId":"1","toolName":"n","args":{}}'])
        assert result.text_parts == ["a"]
        assert result.tool_calls == []

    def test_crlf_lines(self):
        result = decode([b'data: {"type":"text-delta","delta":"x"}\r\n\r\n'])
        assert result.text_parts == ["x"]

    def test_mixed_dialects_line_by_line(self):
        result = decode([b'0:"legacy"\ndata: {"type":"text-delta","delta":" sse"}\n'])
        assert result.text == "legacy sse"


class TestChunkBoundaries:
    @pytest.mark.parametrize("stream", [LEGACY_STREAM, SSE_STREAM])
    def test_any_two_way_split_matches_whole(self, stream):
        data = stream.encode()
        whole = decode([data])
        for offset in range(len(data) + 1):
            split = decode([data[:offset], data[offset:]])
            assert split == whole, f"split at byte {offset}"

    def test_event_split_exactly_at_boundary(self):
        result = decode([b'0:"Hel', b'lo"\n'])
        assert result.text_parts == ["Hello"]

    def test_multibyte_character_split(self):
        data = '0:"naïve"\n'.encode()
        cut = data.index("ï".encode()) + 1
        result = decode([data[:cut], data[cut:]])
        assert result.text_parts == ["naïve"]

    def test_byte_by_byte(self):
        data = SSE_STREAM.encode()
        assert decode([data[i : i + 1] for i in range(len(data))]) == decode([data])


class TestStreamDecoder:
    def test_feed_accepts_str(self):
        decoder = StreamDecoder()
        decoder.feed('0:"x"\n')
        assert decoder.close().text_parts == ["x"]

    def test_fail_sets_error(self):
        decoder = StreamDecoder()
        decoder.feed('0:"x"\n')
        result = decoder.fail("read failed")
        assert result.error == "read failed"
        assert result.text_parts == ["x"]


class TestAsyncDecode:
    @pytest.mark.asyncio
    async def test_adecode_chunks(self):
        async def chunks():
            yield b'0:"Hello"\n'
            yield b'0:" world"\n'

        result = await adecode(chunks())
        assert result.text == "Hello world"

    @pytest.mark.asyncio
    async def test_read_error_populates_error(self):
        async def chunks():
            yield b'0:"partial"\n'
            raise httpx.ReadError("connection lost")

        result = await adecode(chunks())
        assert result.text_parts == ["partial"]
        assert result.error == "connection lost"
