"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import pytest

from voicemail_sync.api.gateway import ApiGateway
from voicemail_sync.auth.session import SessionManager
from voicemail_sync.auth.token_store import InMemoryTokenStore
from voicemail_sync.config import Settings
from voicemail_sync.models import Session

START_MS = 1_700_000_000_000


class FakeClock:
    """Epoch-millisecond clock the tests move by hand."""

    def __init__(self, now_ms: int = START_MS) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float) -> None:
        self.now_ms += int(seconds * 1000)


class FakePlatform:
    """Routes ``httpx.MockTransport`` requests to canned platform responses."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}

    def add(
        self,
        method: str,
        path: str,
        json_body: Any = None,
        status: int = 200,
        handler: Callable[[httpx.Request], httpx.Response] | None = None,
    ) -> None:
        if handler is None:

            def handler(request: httpx.Request) -> httpx.Response:
                if json_body is None:
                    return httpx.Response(status, text="" if status < 400 else "error")
                return httpx.Response(status, json=json_body)

        self._routes[(method, path)] = handler

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self._routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, text=f"no route for {request.method} {request.url.path}")
        return route(request)


class RecordingPopup:
    """Popup launcher that records URLs instead of opening windows."""

    def __init__(self, blocked: bool = False) -> None:
        self.blocked = blocked
        self.opened: list[str] = []
        self.on_open: Callable[[], None] | None = None

    def open(self, url: str, name: str, width: int, height: int) -> bool:
        self.opened.append(url)
        if self.on_open is not None:
            self.on_open()
        return not self.blocked


class FakeSocket:
    """In-memory stand-in for a websocket connection."""

    def __init__(self) -> None:
        self._frames: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False

    def __aiter__(self) -> Any:
        return self._iterate()

    async def _iterate(self) -> Any:
        while True:
            frame = await self._frames.get()
            if frame is None:
                return
            if isinstance(frame, Exception):
                raise frame
            yield frame

    def push(self, message: Any) -> None:
        self._frames.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def drop(self, error: Exception | None = None) -> None:
        self._frames.put_nowait(error)

    async def close(self) -> None:
        self.closed = True
        self._frames.put_nowait(None)


class FakeConnector:
    """Socket connector that hands out ``FakeSocket`` instances."""

    def __init__(self) -> None:
        self.uris: list[str] = []
        self.sockets: list[FakeSocket] = []
        self.fail = False

    async def __call__(self, uri: str) -> FakeSocket:
        self.uris.append(uri)
        if self.fail:
            raise OSError("connection refused")
        socket = FakeSocket()
        self.sockets.append(socket)
        return socket


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Provide settings with short timers for testing."""
    return Settings(
        region="example.test",
        client_id="test-client",
        host_origin="https://host.example.test",
        settle_delay_seconds=0.01,
        debounce_delay_seconds=0.05,
        reconnect_delay_seconds=0.01,
        token_db_path=tmp_path / "session.sqlite3",
        log_level="DEBUG",
        debug=True,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def http_client(platform: FakePlatform) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(platform.handle))


@pytest.fixture
def gateway(settings: Settings, http_client: httpx.AsyncClient) -> ApiGateway:
    return ApiGateway(settings, client=http_client)


@pytest.fixture
def token_store(clock: FakeClock) -> InMemoryTokenStore:
    return InMemoryTokenStore(clock=clock)


@pytest.fixture
def logged_in(token_store: InMemoryTokenStore, clock: FakeClock) -> Session:
    """Store a session valid for one hour."""
    session = Session(access_token="access-token", expires_at_epoch_ms=clock() + 3_600_000)
    token_store.write(session)
    return session


@pytest.fixture
def popup() -> RecordingPopup:
    return RecordingPopup()


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def session_manager(
    gateway: ApiGateway,
    token_store: InMemoryTokenStore,
    popup: RecordingPopup,
    settings: Settings,
    clock: FakeClock,
) -> SessionManager:
    return SessionManager(gateway, token_store, popup=popup, settings=settings, clock=clock)


@pytest.fixture
def eventually() -> Callable[[Callable[[], bool]], Awaitable[None]]:
    """Poll a condition on the event loop until it holds (or fail after a second)."""

    async def _wait(condition: Callable[[], bool], timeout: float = 1.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not condition():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.005)

    return _wait


@pytest.fixture
def make_voicemail() -> Callable[..., dict[str, Any]]:
    return voicemail_json


def voicemail_json(
    voicemail_id: str,
    *,
    read: bool = False,
    note: str | None = None,
    caller: str = "tel:+1 (555) 010-9999",
    duration: int = 65,
    created: str = "2025-03-14T09:05:00Z",
    deleted: bool = False,
) -> dict[str, Any]:
    """Build a voicemail record as the platform's search endpoint returns it."""
    return {
        "id": voicemail_id,
        "callerAddress": caller,
        "createdDate": created,
        "audioRecordingDurationSeconds": duration,
        "read": read,
        "note": note,
        "deleted": deleted,
    }
