"""Widget orchestration.

This module provides the object a host embeds. It wires the session manager,
the notification channel and the resource synchronizer together and exposes
the host-facing lifecycle: ``mount``, ``unmount``, window-message relay and
the record-binding input hook.
"""

from __future__ import annotations

import httpx
import structlog

from voicemail_sync.api.gateway import ApiGateway
from voicemail_sync.auth.session import PopupLauncher, SessionManager
from voicemail_sync.auth.token_store import SqliteTokenStore, TokenStore
from voicemail_sync.config import Settings
from voicemail_sync.exceptions import ConfigurationError
from voicemail_sync.models import CallContext
from voicemail_sync.notifications.channel import NotificationChannel, SocketConnector
from voicemail_sync.sync.callback_lookup import CallbackVoicemailLookup
from voicemail_sync.sync.synchronizer import ResourceSynchronizer
from voicemail_sync.utils import BackgroundTasks

logger = structlog.get_logger()


class VoicemailWidget:
    """Main voicemail widget.

    This widget coordinates authentication, the voicemail list and
    real-time notifications.
    """

    def __init__(
        self,
        settings: Settings,
        gateway: ApiGateway,
        session: SessionManager,
        channel: NotificationChannel,
        synchronizer: ResourceSynchronizer,
        callback_lookup: CallbackVoicemailLookup,
    ) -> None:
        self.settings = settings
        self.gateway = gateway
        self.session = session
        self.channel = channel
        self.synchronizer = synchronizer
        self.callback_lookup = callback_lookup
        self.call_context: CallContext | None = None
        self._tasks = BackgroundTasks("widget")
        self._mounted = False

        session.add_authenticated_listener(self._start_after_login)
        session.add_invalidated_listener(self._on_session_invalidated)
        channel.add_voicemail_listener(self._on_voicemail_event)
        logger.info("voicemail_widget_initialized", region=settings.region)

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        *,
        popup: PopupLauncher | None = None,
        token_store: TokenStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        connector: SocketConnector | None = None,
    ) -> VoicemailWidget:
        """Build a widget with every component wired.

        Args:
            settings: Application settings. If None, uses default settings.
            popup: Launcher for the authorization popup. Defaults to the browser.
            token_store: Token persistence. Defaults to SQLite at ``token_db_path``.
            http_client: HTTP client for the gateway. Defaults to a new one.
            connector: Websocket connector for the notification channel.

        Raises:
            ConfigurationError: If no OAuth client ID is configured.
        """
        from voicemail_sync.config import get_settings

        settings = settings or get_settings()
        if not settings.client_id:
            raise ConfigurationError("OAuth client ID is not set (VOICEMAIL_SYNC_CLIENT_ID)")
        if token_store is None:
            sqlite_store = SqliteTokenStore(settings.token_db_path)
            sqlite_store.initialize()
            token_store = sqlite_store

        gateway = ApiGateway(settings, client=http_client)
        session = SessionManager(gateway, token_store, popup=popup, settings=settings)
        channel = NotificationChannel(gateway, token_store, settings=settings, connector=connector)
        synchronizer = ResourceSynchronizer(gateway, session, settings=settings)
        lookup = CallbackVoicemailLookup(gateway, session, synchronizer.audio_cache)
        return cls(settings, gateway, session, channel, synchronizer, lookup)

    @property
    def error_message(self) -> str | None:
        return (
            self.synchronizer.error_message
            or self.session.error_message
            or self.callback_lookup.error_message
        )

    async def mount(self) -> None:
        """Start the widget: load voicemails if a session exists, else log in."""

        self._mounted = True
        self.synchronizer.reset_badge()

        access_token = self.session.access_token()
        if access_token is None:
            await self.session.login()
            return

        await self.synchronizer.fetch(show_busy=True)
        await self.channel.connect(self.session.access_token())

    async def unmount(self) -> None:
        """Tear the widget down; nothing it owns keeps running afterwards."""

        self._mounted = False
        self._tasks.cancel_all()
        await self.channel.disconnect()
        self.synchronizer.close()
        self.session.close()
        await self.gateway.aclose()
        logger.info("voicemail_widget_unmounted")

    async def handle_window_message(self, origin: str, data: object) -> bool:
        """Relay a window message (e.g. from the auth popup) to the session manager."""
        return await self.session.handle_callback_message(origin, data)

    async def refresh(self) -> None:
        await self.synchronizer.fetch(show_busy=True)

    async def on_call_context_changed(self, context: CallContext) -> None:
        """Host binding hook: the call record shown next to the widget changed."""

        self.call_context = context
        if not self._mounted or not self.session.is_authenticated:
            return
        self._tasks.spawn_later(
            self.settings.settle_delay_seconds, self._load_for_context, "context"
        )

    async def _load_for_context(self) -> None:
        await self.synchronizer.fetch(show_busy=True)
        context = self.call_context
        if context is not None and self.callback_lookup.applies_to(context):
            await self.callback_lookup.retrieve(context)

    async def _start_after_login(self, access_token: str) -> None:
        if not self._mounted:
            return
        await self.synchronizer.fetch(show_busy=True)
        # The fetch may have invalidated the session; re-read before connecting.
        await self.channel.connect(self.session.access_token())

    async def _on_session_invalidated(self) -> None:
        # No channel outlives the session it was opened with.
        await self.channel.teardown()

    async def _on_voicemail_event(self) -> None:
        if self._mounted and self.session.is_authenticated:
            await self.synchronizer.fetch(show_busy=False)
