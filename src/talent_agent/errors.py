"""Error taxonomy, friendly error rewriting and process exit codes.

Raw exceptions and backend error strings are mapped onto a small set of
codes so that every front end (CLI, pipe, MCP) can report failures in a
form that both people and calling agents can act on.
"""

from dataclasses import dataclass
from enum import Enum

import httpx

EXIT_SUCCESS = 0
EXIT_APP_ERROR = 1
EXIT_USAGE_ERROR = 2
EXIT_AUTH_ERROR = 3
EXIT_TRANSIENT_ERROR = 4


class ErrorCode(str, Enum):
    CONNECTION_ERROR = "CONNECTION_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    RATE_LIMIT = "RATE_LIMIT"
    CONTEXT_OVERFLOW = "CONTEXT_OVERFLOW"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    INDEX_OUT_OF_RANGE = "INDEX_OUT_OF_RANGE"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class TalentAgentError(Exception):
    """Base class for errors raised by talent_agent."""


class ConfigError(TalentAgentError):
    """Required configuration is missing or invalid."""


class ApiError(TalentAgentError):
    """A remote endpoint answered with a non-success status."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.message = message
        self.status = status


class ChatApiError(ApiError):
    """The chat, session or profile endpoint rejected a request."""


class AuthApiError(ApiError):
    """An auth endpoint rejected a request."""


class SessionNotFoundError(TalentAgentError, KeyError):
    def __init__(self, session_id: str):
        super().__init__(f'Session "{session_id}" not found.')
        self.session_id = session_id

    def __str__(self) -> str:
        return self.args[0]


class CredentialStoreError(TalentAgentError):
    """Credentials could not be written to any storage backend."""


@dataclass(frozen=True)
class FriendlyError:
    message: str
    code: ErrorCode


# Ordered: first matching pattern wins.
_PATTERNS: list[tuple[tuple[str, ...], str | None, ErrorCode]] = [
    (
        ("ECONNREFUSED", "Connection refused", "All connection attempts failed"),
        "Talent Pro is not reachable. Check TALENT_PRO_URL and that the service is up.",
        ErrorCode.CONNECTION_ERROR,
    ),
    (
        ("401", "Unauthorized", "Not authenticated"),
        "Authentication failed or expired. Run 'talent-agent login' again.",
        ErrorCode.AUTH_ERROR,
    ),
    (
        ("rate_limit", "429", "Too Many Requests"),
        "Rate limit hit. Wait 60s and retry.",
        ErrorCode.RATE_LIMIT,
    ),
    (
        ("context_length_exceeded",),
        "Session history too long. Start a new session.",
        ErrorCode.CONTEXT_OVERFLOW,
    ),
    (
        (
            "ENOTFOUND",
            "ETIMEDOUT",
            "Name or service not known",
            "nodename nor servname",
            "timed out",
        ),
        "Network error. Check your internet connection and endpoint URLs.",
        ErrorCode.CONNECTION_ERROR,
    ),
    (
        ("ECONNRESET", "Connection reset"),
        "Connection was reset. Retry the request.",
        ErrorCode.CONNECTION_ERROR,
    ),
]


def to_friendly_error(error: BaseException | str) -> FriendlyError:
    """Classify an exception or message into the error taxonomy.

    Matching is a best-effort substring heuristic. Unmatched messages keep
    their original text and map to ``UNKNOWN_ERROR``.
    """
    msg = str(error)

    for needles, message, code in _PATTERNS:
        if any(n in msg for n in needles):
            return FriendlyError(message=message or msg, code=code)

    if isinstance(error, httpx.TimeoutException):
        return FriendlyError(
            "Network error. Check your internet connection and endpoint URLs.",
            ErrorCode.CONNECTION_ERROR,
        )
    if isinstance(error, httpx.TransportError):
        return FriendlyError(
            f"Could not reach the backend: {msg}" if msg else "Could not reach the backend.",
            ErrorCode.CONNECTION_ERROR,
        )
    if isinstance(error, ApiError) and error.status == 401:
        return FriendlyError(msg, ErrorCode.AUTH_ERROR)

    return FriendlyError(message=msg, code=ErrorCode.UNKNOWN_ERROR)


def exit_code_for_error(code: ErrorCode | str) -> int:
    """Map an error code to the process exit status."""
    code = ErrorCode(code)
    if code is ErrorCode.AUTH_ERROR:
        return EXIT_AUTH_ERROR
    if code in (ErrorCode.RATE_LIMIT, ErrorCode.CONNECTION_ERROR):
        return EXIT_TRANSIENT_ERROR
    if code is ErrorCode.VALIDATION_ERROR:
        return EXIT_USAGE_ERROR
    return EXIT_APP_ERROR


def api_error_message(response: httpx.Response, fallback: str) -> str:
    """Pull ``error`` or ``message`` out of an error body, else use ``fallback``."""
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict):
        return body.get("error") or body.get("message") or fallback
    return fallback
