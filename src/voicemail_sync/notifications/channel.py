"""Push-notification channel for voicemail events.

Setup is a fixed sequence against the platform: resolve the current user,
create a notification channel, subscribe it to
``v2.users.<userId>.voicemail.messages``, then open a websocket to the
channel's ``connectUri``. Frames on that topic trigger a debounced refresh.

When the socket drops the channel goes back to DISCONNECTED and tries again
after a fixed delay, for as long as the token store still holds a session.
Setup failures are logged and never raised: without the channel the widget
simply stops receiving live updates.

``teardown`` drops the socket and timers but leaves the channel reusable; the
widget calls it when the session is invalidated and connects again after the
next login. ``disconnect`` is the permanent close used on unmount.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Protocol

import structlog
from websockets.asyncio.client import connect as websocket_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from voicemail_sync.api.gateway import ApiGateway
from voicemail_sync.auth.token_store import TokenStore
from voicemail_sync.config import Settings
from voicemail_sync.exceptions import ApiError, ChannelSetupError
from voicemail_sync.models import ConnectionState
from voicemail_sync.utils import BackgroundTasks

logger = structlog.get_logger()

VOICEMAIL_TOPIC_MARKER = "voicemail.messages"


class NotificationSocket(Protocol):
    """The part of a websocket connection the channel relies on."""

    def __aiter__(self) -> AsyncIterator[str | bytes]:
        ...

    async def close(self) -> None:
        ...


SocketConnector = Callable[[str], Awaitable[NotificationSocket]]
VoicemailEventHandler = Callable[[], Awaitable[None]]
StateListener = Callable[[ConnectionState], None]


async def _default_connector(uri: str) -> NotificationSocket:
    return await websocket_connect(uri)


def voicemail_topic(user_id: str) -> str:
    return f"v2.users.{user_id}.{VOICEMAIL_TOPIC_MARKER}"


class NotificationChannel:
    """Reconnecting subscription to this user's voicemail events."""

    def __init__(
        self,
        gateway: ApiGateway,
        token_store: TokenStore,
        settings: Settings | None = None,
        connector: SocketConnector | None = None,
    ) -> None:
        from voicemail_sync.config import get_settings

        self.settings = settings or get_settings()
        self._gateway = gateway
        self._token_store = token_store
        self._connector = connector or _default_connector
        self._tasks = BackgroundTasks("notifications")
        self._handlers: list[VoicemailEventHandler] = []
        self._state_listeners: list[StateListener] = []
        self._socket: NotificationSocket | None = None
        self._debounce_task: asyncio.Task[Any] | None = None
        self._closed = False

        self.channel_id: str | None = None
        self.state = ConnectionState.DISCONNECTED

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def add_voicemail_listener(self, handler: VoicemailEventHandler) -> None:
        """Register a coroutine run once per debounced burst of voicemail events."""
        self._handlers.append(handler)

    def add_state_listener(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    async def connect(self, access_token: str | None) -> bool:
        """Create, subscribe and open the channel.

        Args:
            access_token: Token the caller just read from the token store.

        Returns:
            True if the socket is open.
        """

        if self._closed:
            return False
        if not access_token:
            logger.info("notification_channel_skipped", reason="no_access_token")
            return False
        if self.state is not ConnectionState.DISCONNECTED:
            logger.debug("notification_channel_already_active", state=self.state.value)
            return self.is_connected

        self._set_state(ConnectionState.CONNECTING)
        try:
            socket = await self._open(access_token)
        except (ApiError, ChannelSetupError, WebSocketException, OSError) as exc:
            logger.error("notification_channel_setup_failed", error=str(exc))
            self.channel_id = None
            self._set_state(ConnectionState.DISCONNECTED)
            return False

        if self._closed or self._token_store.read() is None:
            await socket.close()
            self.channel_id = None
            self._set_state(ConnectionState.DISCONNECTED)
            return False

        self._socket = socket
        self._set_state(ConnectionState.CONNECTED)
        logger.info("notification_channel_connected", channel_id=self.channel_id)
        self._tasks.spawn(self._read_loop(socket), "reader")
        return True

    def handle_frame(self, raw: str | bytes) -> bool:
        """Route one inbound frame.

        Returns:
            True if the frame was a voicemail event and a refresh was scheduled.
        """

        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("notification_frame_malformed")
            return False

        topic = message.get("topicName") if isinstance(message, dict) else None
        if not isinstance(topic, str) or VOICEMAIL_TOPIC_MARKER not in topic:
            return False

        logger.info("voicemail_event_received", topic=topic)
        self._schedule_refresh()
        return True

    async def disconnect(self) -> None:
        """Close the channel for good; later ``connect`` calls are refused."""

        self._closed = True
        await self.teardown()
        logger.info("notification_channel_disconnected")

    async def teardown(self) -> None:
        """Close the socket and stop every pending timer.

        Unlike ``disconnect`` the channel can be connected again afterwards,
        e.g. once a new login has produced a fresh token.
        """

        self._tasks.cancel_all()
        self._debounce_task = None

        socket, self._socket = self._socket, None
        if socket is not None:
            try:
                await socket.close()
            except (WebSocketException, OSError) as exc:
                logger.warning("notification_socket_close_failed", error=str(exc))

        self.channel_id = None
        self._set_state(ConnectionState.DISCONNECTED)

    async def _open(self, access_token: str) -> NotificationSocket:
        user = await self._gateway.call("/api/v2/users/me", "GET", access_token=access_token)
        user_id = user.get("id") if isinstance(user, dict) else None
        if not user_id:
            raise ChannelSetupError("Current user has no id")

        channel = await self._gateway.call(
            "/api/v2/notifications/channels", "POST", {}, access_token=self._current_token()
        )
        if not isinstance(channel, dict) or not channel.get("id") or not channel.get("connectUri"):
            raise ChannelSetupError("Channel response is missing id or connectUri")
        self.channel_id = channel["id"]

        topic = voicemail_topic(user_id)
        await self._gateway.call(
            f"/api/v2/notifications/channels/{self.channel_id}/subscriptions",
            "POST",
            [{"id": topic}],
            access_token=self._current_token(),
        )
        logger.info("notification_channel_subscribed", topic=topic, channel_id=self.channel_id)

        return await self._connector(channel["connectUri"])

    def _current_token(self) -> str:
        session = self._token_store.read()
        if session is None:
            raise ChannelSetupError("Session ended during channel setup")
        return session.access_token

    async def _read_loop(self, socket: NotificationSocket) -> None:
        try:
            async for frame in socket:
                self.handle_frame(frame)
            logger.info("notification_socket_closed")
        except (ConnectionClosed, OSError) as exc:
            logger.warning("notification_socket_error", error=str(exc))
        self._on_socket_closed(socket)

    def _on_socket_closed(self, socket: NotificationSocket) -> None:
        if socket is not self._socket:
            return
        self._socket = None
        self.channel_id = None
        self._set_state(ConnectionState.DISCONNECTED)
        if not self._closed:
            self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        self._tasks.spawn_later(
            self.settings.reconnect_delay_seconds, self._reconnect, "reconnect"
        )

    async def _reconnect(self) -> None:
        if self._closed:
            return
        session = self._token_store.read()
        if session is None:
            logger.info("notification_reconnect_skipped", reason="session_invalid")
            return

        logger.info("notification_channel_reconnecting")
        if not await self.connect(session.access_token) and not self._closed:
            self._schedule_reconnect()

    def _schedule_refresh(self) -> None:
        if self._closed:
            return
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = self._tasks.spawn_later(
            self.settings.debounce_delay_seconds, self._fire_voicemail_event, "debounce"
        )

    async def _fire_voicemail_event(self) -> None:
        # Past the delay: a new event must start a fresh timer, not cancel this run.
        self._debounce_task = None
        for handler in list(self._handlers):
            await handler()

    def _set_state(self, state: ConnectionState) -> None:
        if state is self.state:
            return
        self.state = state
        for listener in list(self._state_listeners):
            listener(state)
