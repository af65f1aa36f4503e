"""Query entry point tying auth, sessions, the chat stream and synthesis together.

One call runs: token check, session resolution, user turn appended, full
history sent, reply decoded, result synthesized, assistant turn appended.
Failures come back as ``ErrorResult`` values; nothing is raised to the caller.
"""

import logging
import time
from dataclasses import dataclass

from talent_agent.agent.client import ChatClient
from talent_agent.agent.models import (
    AgentMeta,
    DetailResult,
    ErrorResult,
    Message,
    QueryResponse,
    SearchResult,
    Session,
)
from talent_agent.agent.sessions import RemoteSessionManager, SessionManager
from talent_agent.agent.synthesis import build_result
from talent_agent.auth.client import AuthClient
from talent_agent.auth.store import CredentialStore
from talent_agent.config import Settings, get_settings
from talent_agent.errors import ErrorCode, to_friendly_error

logger = logging.getLogger(__name__)

NOT_AUTHENTICATED = "Not authenticated. Run 'talent-agent login' first."


@dataclass
class QueryOptions:
    debug: bool = False


class Agent:
    """Conversational talent search over the remote agent."""

    def __init__(
        self,
        sessions: SessionManager,
        credentials: CredentialStore,
        client: ChatClient,
    ):
        self.sessions = sessions
        self.credentials = credentials
        self.client = client

    async def query(
        self,
        text: str,
        session_id: str | None = None,
        options: QueryOptions | None = None,
    ) -> QueryResponse:
        """Run one turn in ``session_id`` (a new session when omitted)."""
        options = options or QueryOptions()

        token = await self.credentials.get_valid_token()
        if not token:
            return QueryResponse(
                ErrorResult(
                    session=session_id or "",
                    error=NOT_AUTHENTICATED,
                    code=ErrorCode.AUTH_ERROR,
                )
            )

        start = time.perf_counter()
        try:
            session = await self.sessions.resolve(session_id, token)
        except Exception as exc:
            return QueryResponse(
                self._error(session_id or "", exc), AgentMeta(duration_ms=_ms(start))
            )

        user_message = Message.user(text)
        self.sessions.append(session, user_message)

        try:
            return await self._complete_turn(session, text, user_message, token, options, start)
        except Exception as exc:
            session.last_result = self._error(session.id, exc)
            return QueryResponse(session.last_result, AgentMeta(duration_ms=_ms(start)))

    async def _complete_turn(
        self,
        session: Session,
        text: str,
        user_message: Message,
        token: str,
        options: QueryOptions,
        start: float,
    ) -> QueryResponse:
        history = [m.text_only() for m in session.messages]
        stream = await self.client.chat(history, token)
        duration_ms = _ms(start)

        if stream.error is not None:
            session.last_result = ErrorResult(
                session=session.id,
                error=stream.error,
                code=to_friendly_error(stream.error).code,
            )
            return QueryResponse(session.last_result, AgentMeta(duration_ms=duration_ms))

        if options.debug:
            for call in stream.tool_calls:
                logger.debug("Agent called %s with %s", call.tool_name, call.args)
            logger.debug("Agent turn took %.1fs", duration_ms / 1000)

        result = build_result(session.id, text, stream.text, stream.tool_outputs())
        assistant_message = Message.assistant(stream.text)
        self.sessions.append(session, assistant_message)
        session.last_result = result

        await self.sessions.record_turn(session, [user_message, assistant_message], token)

        return QueryResponse(
            result,
            AgentMeta(duration_ms=duration_ms, tokens_used=0, tools_called=stream.tools_called),
        )

    async def get_detail(
        self,
        session_id: str,
        index: int,
        options: QueryOptions | None = None,
    ) -> QueryResponse:
        """Ask for the full profile at ``index`` of the session's last search.

        Both checks are local and happen before any network access.
        """
        session = self.sessions.get(session_id)
        last = session.last_result if session else None
        if not isinstance(last, SearchResult):
            return QueryResponse(
                ErrorResult(
                    session=session_id,
                    error="No search results in this session. Run a search first.",
                    code=ErrorCode.SESSION_NOT_FOUND,
                )
            )

        if index < 0 or index >= len(last.profiles):
            return QueryResponse(
                ErrorResult(
                    session=session_id,
                    error=(
                        f"Profile index {index} out of range. "
                        f"Last search had {len(last.profiles)} results."
                    ),
                    code=ErrorCode.INDEX_OUT_OF_RANGE,
                )
            )

        profile = last.profiles[index]
        return await self.query(
            f"Show me the full profile details for {profile.label} (ID: {profile.id})",
            session_id,
            options,
        )

    async def get_profile(self, profile_id: str) -> QueryResponse:
        """Fetch one profile straight from the detail endpoint, outside any session."""
        token = await self.credentials.get_valid_token()
        if not token:
            return QueryResponse(
                ErrorResult(session="", error=NOT_AUTHENTICATED, code=ErrorCode.AUTH_ERROR)
            )

        start = time.perf_counter()
        try:
            profile = await self.client.fetch_profile_detail(profile_id, token)
        except Exception as exc:
            return QueryResponse(self._error("", exc), AgentMeta(duration_ms=_ms(start)))
        return QueryResponse(
            DetailResult(session="", profile=profile),
            AgentMeta(duration_ms=_ms(start)),
        )

    @staticmethod
    def _error(session_id: str, exc: BaseException) -> ErrorResult:
        friendly = to_friendly_error(exc)
        logger.info("Query failed (%s): %s", friendly.code.value, exc)
        return ErrorResult(session=session_id, error=friendly.message, code=friendly.code)


def _ms(start: float) -> int:
    return round((time.perf_counter() - start) * 1000)


def create_agent(settings: Settings | None = None) -> Agent:
    """Wire an Agent from environment settings.

    Raises ConfigError when a required endpoint is not configured.
    """
    settings = settings or get_settings()
    settings.require("pro_url", "api_url", "api_key")

    client = ChatClient(settings.chat_base_url, timeout=settings.http_timeout)
    auth = AuthClient(settings.api_url, settings.api_key)
    sessions = (
        RemoteSessionManager(client) if settings.session_mode == "remote" else SessionManager()
    )
    return Agent(sessions, CredentialStore(refresh=auth.refresh_auth_token), client)
