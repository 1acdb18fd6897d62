"""Popup-based OAuth 2.0 authorization code + PKCE login.

State machine::

    UNAUTHENTICATED --login()--> AWAITING_POPUP_CALLBACK --code exchanged--> AUTHENTICATED
           ^                                                                     |
           +------------- invalidate() (401 seen) / expiry seen on read ---------+

The host relays messages posted by the redirect page to
``handle_callback_message``; only a message from the host's own origin that
carries the callback marker and a code is acted on.
"""

from __future__ import annotations

import webbrowser
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol
from urllib.parse import parse_qs, urlencode, urlsplit

import structlog
from pydantic import ValidationError

from voicemail_sync.api.gateway import ApiGateway
from voicemail_sync.auth.pkce import derive_challenge, generate_verifier
from voicemail_sync.auth.token_store import (
    Clock,
    PendingAuthorizationStore,
    TokenStore,
    epoch_ms,
)
from voicemail_sync.config import Settings
from voicemail_sync.exceptions import (
    ApiError,
    MissingVerifierError,
    TokenExchangeError,
)
from voicemail_sync.models import AuthState, PendingAuthorization, Session
from voicemail_sync.utils import BackgroundTasks

logger = structlog.get_logger()

POPUP_NAME = "VoicemailAuth"
POPUP_WIDTH = 600
POPUP_HEIGHT = 700

POPUP_BLOCKED_MESSAGE = "Popup blocked. Please allow popups for this site."
TOKEN_EXCHANGE_FAILED_MESSAGE = "Failed to exchange authorization code for token"

_DEFAULT_EXPIRES_IN = 3600

AuthenticatedListener = Callable[[str], Awaitable[None]]
InvalidatedListener = Callable[[], Awaitable[None]]


class PopupLauncher(Protocol):
    """Opens the authorization page; returns False when the popup was blocked."""

    def open(self, url: str, name: str, width: int, height: int) -> bool:
        ...


class BrowserPopupLauncher:
    """Opens the authorization page in the system browser."""

    def open(self, url: str, name: str, width: int, height: int) -> bool:
        return webbrowser.open(url, new=1)


def callback_message_from_redirect(
    redirect_url: str, message_type: str = "AUTH_CALLBACK"
) -> dict[str, str] | None:
    """Build the message the redirect page posts to its opener.

    Args:
        redirect_url: Full URL the platform redirected the popup to.
        message_type: Callback marker expected by ``handle_callback_message``.

    Returns:
        ``{"type": ..., "code": ...}``, or None when the URL carries no code.
    """

    query = parse_qs(urlsplit(redirect_url).query)
    codes = query.get("code")
    if not codes or not codes[0]:
        return None
    return {"type": message_type, "code": codes[0]}


class SessionManager:
    """Owns the login flow and the authenticated/unauthenticated state."""

    def __init__(
        self,
        gateway: ApiGateway,
        token_store: TokenStore,
        popup: PopupLauncher | None = None,
        pending_store: PendingAuthorizationStore | None = None,
        settings: Settings | None = None,
        clock: Clock = epoch_ms,
    ) -> None:
        from voicemail_sync.config import get_settings

        self.settings = settings or get_settings()
        self._gateway = gateway
        self._token_store = token_store
        self._popup = popup or BrowserPopupLauncher()
        self._pending_store = pending_store or PendingAuthorizationStore()
        self._clock = clock
        self._listeners: list[AuthenticatedListener] = []
        self._invalidated_listeners: list[InvalidatedListener] = []
        self._tasks = BackgroundTasks("session")
        self._awaiting_callback = False
        self._closed = False

        self.error_message: str | None = None
        self.state = (
            AuthState.AUTHENTICATED
            if self._token_store.read() is not None
            else AuthState.UNAUTHENTICATED
        )

    @property
    def is_authenticated(self) -> bool:
        return self.access_token() is not None

    def access_token(self) -> str | None:
        """Re-read the token store; an expired token demotes the state."""

        session = self._token_store.read()
        if session is None:
            if self.state is AuthState.AUTHENTICATED:
                self.state = AuthState.UNAUTHENTICATED
                logger.info("session_expired")
                if self._invalidated_listeners and not self._closed:
                    self._tasks.spawn(self._run_invalidated_listeners(), "expired")
            return None
        if self.state is AuthState.UNAUTHENTICATED:
            self.state = AuthState.AUTHENTICATED
        return session.access_token

    def add_authenticated_listener(self, listener: AuthenticatedListener) -> None:
        """Register a coroutine run (with the new token) after the settle delay."""
        self._listeners.append(listener)

    def add_invalidated_listener(self, listener: InvalidatedListener) -> None:
        """Register a coroutine run whenever the session stops being valid."""
        self._invalidated_listeners.append(listener)

    def authorize_url(self, code_challenge: str) -> str:
        params = {
            "client_id": self.settings.client_id,
            "response_type": "code",
            "redirect_uri": self.settings.redirect_uri,
            "scope": self.settings.oauth_scope,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{self.settings.login_base_url}/oauth/authorize?{urlencode(params)}"

    async def login(self) -> None:
        """Start a popup login. A blocked popup is reported through ``error_message``."""

        if self._closed:
            return

        verifier = generate_verifier()
        challenge = await derive_challenge(verifier)
        self._pending_store.write(PendingAuthorization(code_verifier=verifier))

        url = self.authorize_url(challenge)
        self.state = AuthState.AWAITING_POPUP_CALLBACK
        self._awaiting_callback = True
        logger.info("login_started", region=self.settings.region)

        if not self._popup.open(url, POPUP_NAME, POPUP_WIDTH, POPUP_HEIGHT):
            logger.warning("login_popup_blocked")
            self.error_message = POPUP_BLOCKED_MESSAGE

    async def handle_callback_message(self, origin: str, data: Any) -> bool:
        """Handle a message relayed from the redirect page.

        Returns:
            True if the message was accepted as this login's callback.
        """

        if not self._is_auth_callback(origin, data):
            return False

        self._awaiting_callback = False
        access_token = await self.exchange_code_for_token(data["code"])
        if access_token is None:
            self.state = AuthState.UNAUTHENTICATED
            return True

        self.state = AuthState.AUTHENTICATED
        self.error_message = None
        logger.info("login_completed")
        if not self._closed:
            self._tasks.spawn_later(
                self.settings.settle_delay_seconds, self._run_authenticated_listeners, "bootstrap"
            )
        return True

    async def exchange_code_for_token(self, code: str) -> str | None:
        """Exchange an authorization code for an access token.

        Returns:
            The access token, or None on failure (``error_message`` is set).
        """

        try:
            pending = self._pending_store.read()
            if pending is None:
                raise MissingVerifierError("Code verifier not found")

            form = {
                "grant_type": "authorization_code",
                "client_id": self.settings.client_id,
                "code": code,
                "redirect_uri": self.settings.redirect_uri,
                "code_verifier": pending.code_verifier,
            }
            try:
                payload = await self._gateway.post_form(
                    f"{self.settings.login_base_url}/oauth/token", form
                )
            except ApiError as exc:
                raise TokenExchangeError(str(exc)) from exc

            session = self._session_from_token_response(payload)
            self._token_store.write(session)
            return session.access_token
        except (MissingVerifierError, TokenExchangeError) as exc:
            logger.error("token_exchange_failed", error=str(exc))
            self.error_message = TOKEN_EXCHANGE_FAILED_MESSAGE
            return None
        finally:
            self._pending_store.clear()

    async def invalidate(self) -> None:
        """Forget the stored token after the platform rejected it.

        Invalidation listeners have finished by the time this returns.
        """

        self._token_store.clear()
        self.state = AuthState.UNAUTHENTICATED
        logger.info("session_invalidated")
        await self._run_invalidated_listeners()

    def close(self) -> None:
        self._closed = True
        self._awaiting_callback = False
        self._tasks.cancel_all()

    def _is_auth_callback(self, origin: str, data: Any) -> bool:
        if not self._awaiting_callback or self._closed:
            return False
        if origin != self.settings.host_origin:
            return False
        if not isinstance(data, Mapping):
            return False
        code = data.get("code")
        return data.get("type") == self.settings.callback_message_type and isinstance(
            code, str
        ) and bool(code)

    def _session_from_token_response(self, payload: Any) -> Session:
        if not isinstance(payload, Mapping) or not payload.get("access_token"):
            raise TokenExchangeError("Token response did not include an access token")
        try:
            expires_in = int(payload.get("expires_in", _DEFAULT_EXPIRES_IN))
        except (TypeError, ValueError) as exc:
            raise TokenExchangeError(f"Invalid expires_in: {exc}") from exc
        try:
            return Session(
                access_token=payload["access_token"],
                expires_at_epoch_ms=self._clock() + expires_in * 1000,
            )
        except ValidationError as exc:
            raise TokenExchangeError(f"Malformed token response: {exc}") from exc

    async def _run_authenticated_listeners(self) -> None:
        access_token = self.access_token()
        if access_token is None or self._closed:
            return
        for listener in list(self._listeners):
            await listener(access_token)

    async def _run_invalidated_listeners(self) -> None:
        for listener in list(self._invalidated_listeners):
            await listener()
