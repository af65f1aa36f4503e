"""HTTP client for the Talent Pro agent API.

Covers the streamed chat endpoint, the server-side session endpoints and
the direct profile detail endpoint. Every request is bearer-authenticated.
"""

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from talent_agent.agent.models import DetailedProfile, Message, Session, SessionSummary
from talent_agent.agent.stream import ParsedStream, adecode
from talent_agent.errors import ChatApiError, api_error_message

logger = logging.getLogger(__name__)


class ChatClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        )

    @staticmethod
    def _headers(token: str) -> dict[str, str]:
        return {"Content-Type": "application/json", "Authorization": f"Bearer {token}"}

    async def chat(self, messages: Sequence[Message], token: str) -> ParsedStream:
        """POST the conversation to ``/chat`` and decode the streamed reply.

        A non-2xx status raises ``ChatApiError`` carrying the body's error
        message. Failures while reading the stream are reported through the
        returned ``ParsedStream.error`` instead.
        """
        payload = {"messages": [m.to_dict() for m in messages]}
        async with self._client() as client:
            async with client.stream(
                "POST", "/chat", json=payload, headers=self._headers(token)
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise ChatApiError(
                        api_error_message(response, f"Chat API error: {response.status_code}"),
                        response.status_code,
                    )
                return await adecode(response.aiter_bytes())

    async def _request(
        self,
        method: str,
        path: str,
        token: str,
        fallback_message: str,
        **kwargs: Any,
    ) -> httpx.Response:
        async with self._client() as client:
            response = await client.request(method, path, headers=self._headers(token), **kwargs)
        if response.is_error and response.status_code != 404:
            raise ChatApiError(api_error_message(response, fallback_message), response.status_code)
        return response

    @staticmethod
    def _json(response: httpx.Response, fallback_message: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ChatApiError(
                f"{fallback_message}: response was not JSON", response.status_code
            ) from exc

    @classmethod
    def _session_body(cls, response: httpx.Response, fallback_message: str) -> dict[str, Any]:
        body = cls._json(response, fallback_message)
        data = body.get("session", body) if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise ChatApiError(
                f"{fallback_message}: unexpected response body", response.status_code
            )
        return data

    # ── Sessions ─────────────────────────────────────────────────

    async def create_session(self, token: str) -> str:
        """Create a server-side session and return its id."""
        response = await self._request(
            "POST", "/sessions", token, "Failed to create session", json={}
        )
        if response.status_code == 404:
            raise ChatApiError("Session endpoint not available", 404)
        data = self._session_body(response, "Failed to create session")
        if not data.get("id"):
            raise ChatApiError("Failed to create session: no session id in response")
        return str(data["id"])

    async def fetch_session(self, session_id: str, token: str) -> Session | None:
        """Fetch a session with its messages, or None if the server has no such id."""
        response = await self._request(
            "GET", f"/sessions/{session_id}", token, "Failed to load session"
        )
        if response.status_code == 404:
            return None
        data = self._session_body(response, "Failed to load session")
        return Session(
            id=str(data.get("id", session_id)),
            messages=[Message.model_validate(m) for m in data.get("messages") or []],
        )

    async def append_messages(
        self, session_id: str, messages: Sequence[Message], token: str
    ) -> None:
        response = await self._request(
            "POST",
            f"/sessions/{session_id}/messages/bulk",
            token,
            "Failed to append session messages",
            json={"messages": [m.to_dict() for m in messages]},
        )
        if response.status_code == 404:
            raise ChatApiError(f'Session "{session_id}" not found on server', 404)

    async def list_sessions(
        self, token: str, page: int = 1, per_page: int = 20
    ) -> list[SessionSummary]:
        response = await self._request(
            "GET",
            "/sessions",
            token,
            "Failed to list sessions",
            params={"page": page, "per_page": per_page},
        )
        if response.status_code == 404:
            return []
        body = self._json(response, "Failed to list sessions")
        items = body.get("sessions", []) if isinstance(body, dict) else body
        if not isinstance(items, list):
            raise ChatApiError("Failed to list sessions: unexpected response body")
        return [SessionSummary.model_validate(s) for s in items]

    # ── Profiles ─────────────────────────────────────────────────

    async def fetch_profile_detail(self, profile_id: str, token: str) -> DetailedProfile:
        response = await self._request(
            "GET", f"/profile/{profile_id}/detail", token, "Failed to load profile"
        )
        if response.status_code == 404:
            raise ChatApiError(
                api_error_message(response, f'Profile "{profile_id}" not found'), 404
            )
        body = self._json(response, "Failed to load profile")
        if not isinstance(body, dict) or not isinstance(body.get("profile"), dict):
            raise ChatApiError("Failed to load profile: unexpected response body")
        return DetailedProfile.model_validate(body["profile"])
