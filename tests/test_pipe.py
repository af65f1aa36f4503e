"""Tests for JSONL pipe mode."""

import io
import json

import pytest

from talent_agent.agent.models import (
    AgentMeta,
    ErrorResult,
    ProfileSummary,
    QueryResponse,
    SearchResult,
)
from talent_agent.errors import ErrorCode
from talent_agent.pipe import (
    INVALID_INPUT,
    DetailRequest,
    SearchRequest,
    handle_line,
    parse_request,
    run_pipe,
)


class FakeAgent:
    def __init__(self, result=None):
        self.calls = []
        self.result = result

    async def query(self, text, session_id=None, options=None):
        self.calls.append(("query", text, session_id))
        result = self.result or SearchResult(
            session=session_id or "new",
            query=text,
            profiles=[ProfileSummary(id="p1")],
            total_matches=1,
        )
        return QueryResponse(result, AgentMeta(duration_ms=5, tools_called=["searchProfiles"]))

    async def get_detail(self, session_id, index, options=None):
        self.calls.append(("detail", session_id, index))
        return QueryResponse(
            ErrorResult(
                session=session_id,
                error="Profile index 9 out of range. Last search had 1 results.",
                code=ErrorCode.INDEX_OUT_OF_RANGE,
            )
        )


class TestParseRequest:
    def test_search(self):
        request = parse_request({"action": "search", "query": "q", "session": "s"})
        assert request == SearchRequest(action="search", query="q", session="s")

    def test_detail(self):
        request = parse_request({"action": "detail", "session": "s", "index": 2, "id": "r1"})
        assert request == DetailRequest(action="detail", session="s", index=2, id="r1")

    def test_legacy_query(self):
        assert isinstance(parse_request({"query": "q"}), SearchRequest)

    def test_legacy_detail(self):
        request = parse_request({"detail": 0, "session": "s"})
        assert isinstance(request, DetailRequest)
        assert request.index == 0

    @pytest.mark.parametrize(
        "raw",
        [
            {},
            {"action": "search"},
            {"action": "search", "query": ""},
            {"action": "detail", "session": "s"},
            {"action": "detail", "session": "s", "index": -1},
            {"action": "delete", "session": "s"},
            {"detail": 0},
            ["query"],
            "query",
        ],
    )
    def test_invalid(self, raw):
        assert parse_request(raw) is None


class TestHandleLine:
    @pytest.mark.asyncio
    async def test_blank_line_skipped(self):
        assert await handle_line(FakeAgent(), "   \n") is None

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        envelope = await handle_line(FakeAgent(), "{nope")
        assert envelope["success"] is False
        assert envelope["code"] == "VALIDATION_ERROR"
        assert envelope["error"].startswith("Invalid JSON")

    @pytest.mark.asyncio
    async def test_unrecognized_request_echoes_id(self):
        envelope = await handle_line(FakeAgent(), '{"id": "r7", "action": "bogus"}')
        assert envelope == {
            "success": False,
            "error": INVALID_INPUT,
            "code": "VALIDATION_ERROR",
            "id": "r7",
        }

    @pytest.mark.asyncio
    async def test_search_success(self):
        agent = FakeAgent()
        envelope = await handle_line(
            agent, '{"action": "search", "query": "rust", "session": "s1", "id": 1}'
        )
        assert agent.calls == [("query", "rust", "s1")]
        assert envelope["success"] is True
        assert envelope["data"]["type"] == "search"
        assert envelope["data"]["totalMatches"] == 1
        assert envelope["meta"] == {
            "durationMs": 5,
            "tokensUsed": 0,
            "toolsCalled": ["searchProfiles"],
        }

    @pytest.mark.asyncio
    async def test_error_result_becomes_error_envelope(self):
        agent = FakeAgent()
        envelope = await handle_line(
            agent, '{"action": "detail", "session": "s1", "index": 9, "id": "x"}'
        )
        assert agent.calls == [("detail", "s1", 9)]
        assert envelope["success"] is False
        assert envelope["code"] == "INDEX_OUT_OF_RANGE"
        assert envelope["id"] == "x"

    @pytest.mark.asyncio
    async def test_error_without_code_is_classified(self):
        agent = FakeAgent(ErrorResult(session="s", error="429 Too Many Requests"))
        envelope = await handle_line(agent, '{"query": "q"}')
        assert envelope["code"] == "RATE_LIMIT"


class TestRunPipe:
    @pytest.mark.asyncio
    async def test_one_envelope_per_request(self):
        stdin = io.StringIO('{"query": "a"}\n\n{bad\n{"action": "search", "query": "b"}\n')
        stdout = io.StringIO()

        await run_pipe(FakeAgent(), stdin, stdout)

        lines = stdout.getvalue().splitlines()
        assert len(lines) == 3
        assert [json.loads(line)["success"] for line in lines] == [True, False, True]
