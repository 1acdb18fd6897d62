"""Authenticated HTTP access to the telephony platform.

The gateway performs exactly one request per call and never retries or
re-authenticates. Failures are classified into ``ApiError`` (any non-2xx or
transport failure) and its ``AuthorizationExpiredError`` subclass (401); it is
the caller's job to react to them.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx
import structlog

from voicemail_sync.config import Settings
from voicemail_sync.exceptions import ApiError, AuthorizationExpiredError

logger = structlog.get_logger()

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


class ApiGateway:
    """Thin wrapper around a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            settings: Application settings. If None, uses default settings.
            client: HTTP client to use. If None, the gateway creates and owns one.
        """
        from voicemail_sync.config import get_settings

        self.settings = settings or get_settings()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.settings.http_timeout_seconds)

    async def call(
        self,
        endpoint: str,
        method: str,
        body: Any = None,
        *,
        access_token: str,
    ) -> Any:
        """Issue an authenticated JSON request against the platform API.

        Args:
            endpoint: Path below the API host, e.g. ``/api/v2/users/me``.
            method: HTTP method.
            body: JSON payload, only sent for POST, PUT and PATCH.
            access_token: Bearer token; callers re-read it from the token store.

        Returns:
            The decoded JSON response, or None for an empty body.

        Raises:
            AuthorizationExpiredError: On a 401 response.
            ApiError: On any other non-2xx response or transport failure.
        """

        method = method.upper()
        url = self.settings.api_base_url + endpoint
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }
        json_body = body if body is not None and method in _BODY_METHODS else None

        logger.debug("api_call", method=method, endpoint=endpoint)
        try:
            response = await self._client.request(method, url, headers=headers, json=json_body)
        except httpx.HTTPError as exc:
            logger.error("api_call_failed", method=method, endpoint=endpoint, error=str(exc))
            raise ApiError(None, str(exc)) from exc

        return self._decode(response, method=method, endpoint=endpoint)

    async def post_form(self, url: str, data: Mapping[str, str]) -> Any:
        """POST a form-encoded, unauthenticated request (used for the token endpoint).

        Raises:
            ApiError: On a non-2xx response or transport failure.
        """

        try:
            response = await self._client.post(url, data=dict(data))
        except httpx.HTTPError as exc:
            logger.error("form_post_failed", url=url, error=str(exc))
            raise ApiError(None, str(exc)) from exc

        return self._decode(response, method="POST", endpoint=url)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _decode(self, response: httpx.Response, *, method: str, endpoint: str) -> Any:
        if response.status_code == 401:
            logger.warning("api_authorization_expired", method=method, endpoint=endpoint)
            raise AuthorizationExpiredError(response.text)

        if not response.is_success:
            logger.error(
                "api_error_response",
                method=method,
                endpoint=endpoint,
                status_code=response.status_code,
            )
            raise ApiError(response.status_code, response.text)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(response.status_code, f"Invalid JSON response: {exc}") from exc
