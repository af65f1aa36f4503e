"""JSONL pipe mode: one request per stdin line, one envelope per stdout line.

Requests::

    {"action": "search", "query": "Find React developers in Lisbon"}
    {"action": "search", "query": "Only seniors", "session": "abc123"}
    {"action": "detail", "session": "abc123", "index": 0}

The older shapes ``{"query": ...}`` and ``{"detail": 0, "session": ...}``
are still accepted. An ``id`` field is echoed back on the envelope.
"""

import json
import logging
from typing import Annotated, Any, Literal, TextIO, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from talent_agent.agent.models import ErrorResult, QueryResponse
from talent_agent.agent.orchestrator import Agent, QueryOptions
from talent_agent.errors import ErrorCode, to_friendly_error
from talent_agent.format import error_envelope, success_envelope

logger = logging.getLogger(__name__)

INVALID_INPUT = (
    'Invalid input: must provide "action" + "query" or "action" + "session" + "index". '
    'Legacy format: "query" or "detail" + "session".'
)


class SearchRequest(BaseModel):
    action: Literal["search"]
    id: str | int | None = None
    query: str = Field(min_length=1)
    session: str | None = None


class DetailRequest(BaseModel):
    action: Literal["detail"]
    id: str | int | None = None
    session: str
    index: int = Field(ge=0)


PipeRequest = Annotated[Union[SearchRequest, DetailRequest], Field(discriminator="action")]
_request_adapter = TypeAdapter(PipeRequest)


def parse_request(raw: Any) -> SearchRequest | DetailRequest | None:
    """Validate a decoded line, falling back to the legacy shapes."""
    try:
        return _request_adapter.validate_python(raw)
    except ValidationError:
        pass

    if not isinstance(raw, dict):
        return None
    request_id = raw.get("id")
    try:
        if raw.get("detail") is not None and raw.get("session"):
            return DetailRequest(
                action="detail", id=request_id, session=raw["session"], index=raw["detail"]
            )
        if raw.get("query"):
            return SearchRequest(
                action="search", id=request_id, query=raw["query"], session=raw.get("session")
            )
    except ValidationError:
        return None
    return None


def _envelope(response: QueryResponse) -> dict:
    result = response.result
    if isinstance(result, ErrorResult):
        code = result.code or to_friendly_error(result.error).code
        return error_envelope(result.error, code.value)
    return success_envelope(result, response.meta)


async def handle_line(agent: Agent, line: str, debug: bool = False) -> dict | None:
    line = line.strip()
    if not line:
        return None

    try:
        raw = json.loads(line)
    except ValueError as exc:
        return error_envelope(f"Invalid JSON: {exc}", ErrorCode.VALIDATION_ERROR.value)

    request = parse_request(raw)
    if request is None:
        envelope = error_envelope(INVALID_INPUT, ErrorCode.VALIDATION_ERROR.value)
        if isinstance(raw, dict) and raw.get("id") is not None:
            envelope["id"] = raw["id"]
        return envelope

    options = QueryOptions(debug=debug)
    if isinstance(request, DetailRequest):
        response = await agent.get_detail(request.session, request.index, options)
    else:
        response = await agent.query(request.query, request.session, options)

    envelope = _envelope(response)
    if request.id is not None:
        envelope["id"] = request.id
    return envelope


async def run_pipe(agent: Agent, stdin: TextIO, stdout: TextIO, debug: bool = False) -> None:
    """Process requests until stdin closes. Requests run one at a time."""
    for line in stdin:
        envelope = await handle_line(agent, line, debug)
        if envelope is None:
            continue
        stdout.write(json.dumps(envelope) + "\n")
        stdout.flush()
