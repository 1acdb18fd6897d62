"""Unit tests for widget orchestration."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from voicemail_sync.exceptions import ConfigurationError
from voicemail_sync.models import CallContext, ConnectionState
from voicemail_sync.widget import VoicemailWidget

HOST = "https://host.example.test"
SEARCH = "/api/v2/voicemail/search"
TOPIC = "v2.users.user-1.voicemail.messages"


@pytest.fixture
def widget(settings, popup, token_store, http_client, connector) -> VoicemailWidget:
    return VoicemailWidget.create(
        settings,
        popup=popup,
        token_store=token_store,
        http_client=http_client,
        connector=connector,
    )


@pytest.fixture
def routes(platform, make_voicemail):
    platform.add(
        "POST", SEARCH, {"results": [make_voicemail("vm-1"), make_voicemail("vm-2")], "pageCount": 1}
    )
    platform.add("GET", "/api/v2/users/me", {"id": "user-1"})
    platform.add(
        "POST", "/api/v2/notifications/channels", {"id": "chan-1", "connectUri": "wss://stream/1"}
    )
    platform.add("POST", "/api/v2/notifications/channels/chan-1/subscriptions", {})
    platform.add("POST", "/oauth/token", {"access_token": "fresh-token", "expires_in": 3600})
    return platform


class TestMount:
    """Test suite for mounting the widget."""

    @pytest.mark.asyncio
    async def test_mount_with_session(
        self, widget: VoicemailWidget, routes, logged_in, connector
    ) -> None:
        badge: list[int] = []
        widget.synchronizer.add_unread_listener(lambda event: badge.append(event.count))

        await widget.mount()

        assert [vm.id for vm in widget.synchronizer.voicemails] == ["vm-1", "vm-2"]
        assert widget.channel.state is ConnectionState.CONNECTED
        assert connector.uris == ["wss://stream/1"]
        assert badge == [0, 2]

        await widget.unmount()

    @pytest.mark.asyncio
    async def test_mount_without_session_logs_in(
        self, widget: VoicemailWidget, routes, popup
    ) -> None:
        await widget.mount()

        assert len(popup.opened) == 1
        assert routes.calls("POST", SEARCH) == []
        assert widget.channel.state is ConnectionState.DISCONNECTED

        await widget.unmount()

    @pytest.mark.asyncio
    async def test_login_then_bootstrap(
        self, widget: VoicemailWidget, routes, connector, eventually
    ) -> None:
        await widget.mount()

        accepted = await widget.handle_window_message(
            HOST, {"type": "AUTH_CALLBACK", "code": "auth-code"}
        )

        assert accepted is True
        await eventually(lambda: widget.channel.is_connected)
        search = routes.calls("POST", SEARCH)
        assert len(search) == 1
        assert search[0].headers["Authorization"] == "Bearer fresh-token"

        await widget.unmount()

    @pytest.mark.asyncio
    async def test_blocked_popup_is_reported(
        self, widget: VoicemailWidget, routes, popup
    ) -> None:
        popup.blocked = True

        await widget.mount()

        assert widget.error_message == "Popup blocked. Please allow popups for this site."
        await widget.unmount()


class TestLiveUpdates:
    """Test suite for push-driven refreshes."""

    @pytest.mark.asyncio
    async def test_voicemail_event_refreshes_list(
        self, widget: VoicemailWidget, routes, logged_in, connector, eventually
    ) -> None:
        await widget.mount()

        connector.sockets[0].push({"topicName": TOPIC, "eventBody": {}})
        connector.sockets[0].push({"topicName": TOPIC, "eventBody": {}})

        await eventually(lambda: len(routes.calls("POST", SEARCH)) == 2)
        await asyncio.sleep(0.1)
        assert len(routes.calls("POST", SEARCH)) == 2

        await widget.unmount()

    @pytest.mark.asyncio
    async def test_unmount_stops_everything(
        self, widget: VoicemailWidget, routes, logged_in, connector
    ) -> None:
        await widget.mount()
        connector.sockets[0].push({"topicName": TOPIC, "eventBody": {}})

        await widget.unmount()
        await asyncio.sleep(0.1)

        assert connector.sockets[0].closed is True
        assert widget.channel.state is ConnectionState.DISCONNECTED
        assert len(routes.calls("POST", SEARCH)) == 1
        assert len(connector.uris) == 1


class TestCallContext:
    """Test suite for the record-binding hook."""

    @pytest.mark.asyncio
    async def test_callback_record_loads_voicemail(
        self, widget: VoicemailWidget, routes, logged_in, eventually
    ) -> None:
        routes.add(
            "GET",
            "/api/v2/conversations/callbacks/conv-1",
            {"participants": [{"voicemail": {"id": "vm-9"}}]},
        )
        routes.add(
            "GET",
            "/api/v2/voicemail/messages/vm-9/media",
            {"mediaFileUri": "https://media.example.test/vm-9.wav"},
        )
        await widget.mount()

        await widget.on_call_context_changed(
            CallContext(record_id="rec-1", vendor_call_key="cb:conv-1:0", call_type="Callback")
        )

        await eventually(lambda: widget.callback_lookup.has_voicemail)
        assert widget.callback_lookup.audio_url == "https://media.example.test/vm-9.wav"
        assert len(routes.calls("POST", SEARCH)) == 2

        await widget.unmount()

    @pytest.mark.asyncio
    async def test_context_before_mount_is_only_stored(
        self, widget: VoicemailWidget, routes, logged_in
    ) -> None:
        context = CallContext(record_id="rec-1", vendor_call_key="cb:conv-1:0", call_type="Callback")

        await widget.on_call_context_changed(context)
        await asyncio.sleep(0.05)

        assert widget.call_context == context
        assert routes.requests == []


class TestSessionInvalidation:
    """Test suite for widget behaviour after the platform rejects the token."""

    @pytest.mark.asyncio
    async def test_rejected_token_tears_channel_down(
        self, widget: VoicemailWidget, routes, logged_in, connector, popup, make_voicemail
    ) -> None:
        await widget.mount()
        routes.add("POST", SEARCH, status=401)

        await widget.refresh()

        assert len(popup.opened) == 1
        assert widget.channel.state is ConnectionState.DISCONNECTED
        assert widget.channel.channel_id is None
        assert connector.sockets[0].closed is True

        # Late frames must not reopen the popup or replace the pending verifier.
        widget.channel.handle_frame('{"topicName": "%s"}' % TOPIC)
        widget.channel.handle_frame('{"topicName": "%s"}' % TOPIC)
        await asyncio.sleep(0.1)
        assert len(popup.opened) == 1

        await widget.unmount()

    @pytest.mark.asyncio
    async def test_channel_reconnects_after_new_login(
        self, widget: VoicemailWidget, routes, logged_in, connector, make_voicemail, eventually
    ) -> None:
        await widget.mount()
        routes.add("POST", SEARCH, status=401)
        await widget.refresh()

        routes.add("POST", SEARCH, {"results": [make_voicemail("vm-3")], "pageCount": 1})
        accepted = await widget.handle_window_message(
            HOST, {"type": "AUTH_CALLBACK", "code": "auth-code"}
        )

        assert accepted is True
        await eventually(lambda: widget.channel.is_connected and len(connector.uris) == 2)
        assert [vm.id for vm in widget.synchronizer.voicemails] == ["vm-3"]

        await widget.unmount()


class TestPushRefresh:
    """Test suite for how push events drive the list."""

    @pytest.mark.asyncio
    async def test_push_refresh_is_not_busy(
        self, widget: VoicemailWidget, routes, logged_in, connector, make_voicemail, eventually
    ) -> None:
        busy: list[bool] = []

        def search(request: httpx.Request) -> httpx.Response:
            busy.append(widget.synchronizer.is_loading)
            return httpx.Response(200, json={"results": [make_voicemail("vm-1")], "pageCount": 1})

        routes.add("POST", SEARCH, handler=search)
        await widget.mount()

        connector.sockets[0].push({"topicName": TOPIC, "eventBody": {}})

        await eventually(lambda: len(busy) == 2)
        assert busy == [True, False]
        assert widget.synchronizer.is_loading is False

        await widget.unmount()

    @pytest.mark.asyncio
    async def test_unrelated_topic_does_not_fetch(
        self, widget: VoicemailWidget, routes, logged_in, connector
    ) -> None:
        await widget.mount()

        connector.sockets[0].push({"topicName": "channel.metadata", "eventBody": {}})
        connector.sockets[0].push({"topicName": "v2.users.user-1.presence", "eventBody": {}})
        await asyncio.sleep(0.15)

        assert len(routes.calls("POST", SEARCH)) == 1

        await widget.unmount()


def test_create_requires_client_id(settings, popup, token_store, http_client, connector) -> None:
    with pytest.raises(ConfigurationError):
        VoicemailWidget.create(
            settings.model_copy(update={"client_id": ""}),
            popup=popup,
            token_store=token_store,
            http_client=http_client,
            connector=connector,
        )
