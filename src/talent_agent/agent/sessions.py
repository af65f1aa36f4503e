"""Conversation session management.

``SessionManager`` keeps sessions in process memory with client-generated
ids. ``RemoteSessionManager`` additionally mirrors them to the Talent Pro
session endpoints: unknown ids are hydrated from the server and new
sessions get server-assigned ids.

Both check the local cache first, so one process never holds two session
objects for the same id. Turns within one session must not run
concurrently; nothing here serializes them.
"""

import asyncio
import json
import logging
from pathlib import Path
from uuid import uuid4

import httpx

from talent_agent.agent.client import ChatClient
from talent_agent.agent.models import Message, Session, SessionSummary
from talent_agent.errors import ChatApiError, SessionNotFoundError

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return uuid4().hex[:12]


class SessionManager:
    """Local, in-memory session store."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def create(self) -> str:
        session = Session(id=new_session_id())
        self._sessions[session.id] = session
        return session.id

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def get_or_create(self, session_id: str | None = None) -> Session:
        """Return the cached session for ``session_id``, creating it if needed.

        Without an id a fresh random id is used.
        """
        if session_id:
            existing = self._sessions.get(session_id)
            if existing is not None:
                return existing
        session = Session(id=session_id or new_session_id())
        self._sessions[session.id] = session
        return session

    def append(self, session: Session, message: Message) -> None:
        session.messages.append(message)

    def all(self) -> list[Session]:
        return list(self._sessions.values())

    def save(self, session_id: str, path: Path) -> None:
        """Write a session to ``path`` as JSON."""
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        Path(path).write_text(json.dumps(session.to_dict(), indent=2), encoding="utf-8")

    def load(self, path: Path) -> str:
        """Restore a session from ``path``, replacing any cached one with the same id."""
        session = Session.model_validate_json(Path(path).read_text(encoding="utf-8"))
        self._sessions[session.id] = session
        return session.id

    async def resolve(self, session_id: str | None, token: str) -> Session:
        """Session to use for a turn."""
        return self.get_or_create(session_id)

    async def record_turn(self, session: Session, messages: list[Message], token: str) -> None:
        """Hook called with the messages a completed turn added."""


class RemoteSessionManager(SessionManager):
    """Session store backed by the server's session endpoints."""

    def __init__(self, client: ChatClient) -> None:
        super().__init__()
        self.client = client
        self._locks: dict[str, asyncio.Lock] = {}

    async def resolve(self, session_id: str | None, token: str) -> Session:
        if not session_id:
            server_id = await self.client.create_session(token)
            logger.debug("Created server session %s", server_id)
            return self.get_or_create(server_id)

        existing = self.get(session_id)
        if existing is not None:
            return existing

        # One hydrate per id; later callers find the cached session.
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        try:
            async with lock:
                existing = self.get(session_id)
                if existing is not None:
                    return existing
                fetched = await self.client.fetch_session(session_id, token)
                if fetched is None:
                    logger.info("Session %s not found on server; starting empty", session_id)
                    fetched = Session(id=session_id)
                else:
                    fetched.id = session_id
                self._sessions[session_id] = fetched
        finally:
            self._locks.pop(session_id, None)
        return fetched

    async def record_turn(self, session: Session, messages: list[Message], token: str) -> None:
        """Bulk-append the turn to the server. Failures are logged only."""
        if not messages:
            return
        try:
            await self.client.append_messages(session.id, messages, token)
        except (ChatApiError, httpx.HTTPError) as exc:
            logger.warning("Could not sync session %s to server: %s", session.id, exc)

    async def list_recent(
        self, token: str, page: int = 1, per_page: int = 20
    ) -> list[SessionSummary]:
        return await self.client.list_sessions(token, page=page, per_page=per_page)
