"""
HTTP adapter between the client core and the admin API.

Every failure is translated into the package error taxonomy:

    401 / 403            -> AuthError
    timeout, transport   -> NetworkError
    5xx                  -> NetworkError
    unreadable payload   -> ProtocolError
"""

from typing import Any, Optional

import httpx
from pydantic import ValidationError

from barista.notifications.schemas import NotificationCounts
from barista.utils import Logger
from barista.utils.exceptions import (
    INVALID_CREDENTIALS,
    AuthError,
    NetworkError,
    ProtocolError,
)
from .schemas import User

logger = Logger("barista.client.api")


class ApiClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    # ── Endpoints ────────────────────────────────────────────────

    async def login(self, identifier: str, password: str) -> tuple[str, User]:
        """POST /api/auth/login. Returns (token, user)."""
        body = await self._request(
            "POST",
            "/api/auth/login",
            json={"identifier": identifier, "password": password},
            auth_message=INVALID_CREDENTIALS,
        )
        data = body.get("data") or {}
        token = data.get("token")
        if not isinstance(token, str) or not token:
            raise ProtocolError("Login response carries no token")
        return token, self._parse_user(data.get("user"))

    async def me(self, token: str) -> User:
        """GET /api/auth/me. Raises AuthError when the token is rejected."""
        body = await self._request("GET", "/api/auth/me", token=token)
        data = body.get("data") or {}
        return self._parse_user(data.get("user"))

    async def logout(self, token: str) -> None:
        await self._request("POST", "/api/auth/logout", token=token)

    async def notification_counts(self, token: str) -> NotificationCounts:
        body = await self._request(
            "GET", "/api/admin/notifications/count", token=token
        )
        try:
            return NotificationCounts.model_validate(body)
        except ValidationError as e:
            raise ProtocolError(f"Malformed notification counts: {e}") from e

    # ── Plumbing ─────────────────────────────────────────────────

    @staticmethod
    def _parse_user(raw: Any) -> User:
        try:
            return User.model_validate(raw)
        except ValidationError as e:
            raise ProtocolError(f"Malformed user payload: {e}") from e

    async def _request(
        self,
        method: str,
        path: str,
        token: Optional[str] = None,
        json: Optional[dict] = None,
        auth_message: Optional[str] = None,
    ) -> dict:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(
                    method, path, headers=headers, json=json
                )
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {path} timed out")
            raise NetworkError(f"Request to {path} timed out") from e
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise NetworkError(f"Request to {path} failed: {e}") from e

        status = response.status_code
        if status in (401, 403):
            raise AuthError(
                auth_message or self._error_message(response) or INVALID_CREDENTIALS,
                status_code=status,
            )
        if status >= 500:
            logger.warning(f"{method} {path} returned {status}")
            raise NetworkError(f"Server error {status} on {path}")
        if status >= 400:
            raise ProtocolError(
                f"Unexpected status {status} on {path}", raw=response.text
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ProtocolError(f"Non-JSON response from {path}", raw=response.text) from e
        if not isinstance(body, dict):
            raise ProtocolError(f"Unexpected response shape from {path}", raw=response.text)
        return body

    @staticmethod
    def _error_message(response: httpx.Response) -> Optional[str]:
        try:
            body = response.json()
        except ValueError:
            return None
        if not isinstance(body, dict):
            return None
        detail = body.get("detail")
        if isinstance(detail, str):
            return detail
        if isinstance(detail, dict):
            return detail.get("message")
        error = body.get("error")
        if isinstance(error, dict):
            return error.get("message")
        return None
