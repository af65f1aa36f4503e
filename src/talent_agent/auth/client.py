"""HTTP client for the Talent Protocol auth endpoints.

Every request carries the ``X-API-KEY`` header. Requests that act on an
existing session also carry the bearer token.
"""

from typing import Any

import httpx

from talent_agent.auth.models import AuthTokenResponse
from talent_agent.errors import AuthApiError, api_error_message


class AuthClient:
    """Stateless wrapper around the auth endpoints."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _headers(self, token: str | None = None) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "X-API-KEY": self.api_key}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _post(
        self,
        path: str,
        payload: dict[str, Any],
        fallback_message: str,
        token: str | None = None,
    ) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                f"{self.base_url}{path}",
                json=payload,
                headers=self._headers(token),
            )
        if response.is_error:
            raise AuthApiError(api_error_message(response, fallback_message), response.status_code)
        try:
            body = response.json()
        except ValueError as exc:
            raise AuthApiError(
                f"{fallback_message}: response was not JSON", response.status_code
            ) from exc
        if not isinstance(body, dict):
            raise AuthApiError(
                f"{fallback_message}: unexpected response body", response.status_code
            )
        return body

    async def email_request_code(self, email: str) -> dict[str, Any]:
        """Request a 6-digit verification code for ``email``."""
        return await self._post(
            "/auth/email_request_code", {"email": email}, "Failed to request email code"
        )

    async def email_verify_code(self, email: str, code: str) -> AuthTokenResponse:
        body = await self._post(
            "/auth/email_verify_code",
            {"email": email, "code": code},
            "Failed to verify email code",
        )
        return AuthTokenResponse.model_validate(body)

    async def google_sign_in(self, id_token: str) -> AuthTokenResponse:
        body = await self._post(
            "/auth/google", {"id_token": id_token}, "Failed to sign in with Google"
        )
        return AuthTokenResponse.model_validate(body)

    async def create_nonce(self, address: str) -> str:
        body = await self._post(
            "/auth/create_nonce", {"address": address}, "Failed to create nonce"
        )
        nonce = body.get("nonce")
        if not nonce:
            raise AuthApiError("Failed to create nonce: no nonce in response")
        return str(nonce)

    async def create_auth_token(
        self, address: str, signature: str, chain_id: int, siwe_message: str
    ) -> AuthTokenResponse:
        """Exchange a signed SIWE message for an auth token."""
        body = await self._post(
            "/auth/create_auth_token",
            {
                "address": address,
                "signature": signature,
                "chain_id": chain_id,
                "siwe_message": siwe_message,
            },
            "Failed to create auth token",
        )
        return AuthTokenResponse.model_validate(body)

    async def refresh_auth_token(self, token: str) -> AuthTokenResponse:
        body = await self._post(
            "/auth/refresh_auth_token", {}, "Failed to refresh auth token", token=token
        )
        return AuthTokenResponse.model_validate(body)
