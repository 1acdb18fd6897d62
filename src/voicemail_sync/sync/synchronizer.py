"""Paginated voicemail cache kept in step with the platform.

The synchronizer owns the list the widget renders. Every fetch replaces the
server half of the list through ``merge_page`` while carrying each surviving
record's UI state forward, and every mutation is applied locally only once
the platform has accepted it.

Overlapping fetches are not serialized: whichever response resolves last
becomes the list.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import structlog

from voicemail_sync.api.gateway import ApiGateway
from voicemail_sync.auth.session import SessionManager
from voicemail_sync.config import Settings
from voicemail_sync.exceptions import ApiError, AuthorizationExpiredError, MediaUnavailableError
from voicemail_sync.models import PageState, UnreadCountEvent, VoicemailView
from voicemail_sync.sync.media import AudioUrlCache
from voicemail_sync.sync.merge import merge_page, parse_records

logger = structlog.get_logger()

SEARCH_ENDPOINT = "/api/v2/voicemail/search"

FETCH_FAILED_MESSAGE = "An error occurred while retrieving voicemails"

UnreadListener = Callable[[UnreadCountEvent], None]
Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResourceSynchronizer:
    """Fetches, merges and mutates the current page of voicemails."""

    def __init__(
        self,
        gateway: ApiGateway,
        session: SessionManager,
        settings: Settings | None = None,
        audio_cache: AudioUrlCache | None = None,
        clock: Clock = _utcnow,
    ) -> None:
        """Initialize the synchronizer.

        Args:
            gateway: Platform API gateway.
            session: Token source; also restarts login on a 401.
            settings: Application settings. If None, uses default settings.
            audio_cache: Shared audio URL cache. If None, a new one is created.
            clock: Source of "now" for relative timestamps.
        """
        from voicemail_sync.config import get_settings

        self.settings = settings or get_settings()
        self._gateway = gateway
        self._session = session
        self._clock = clock
        self._unread_listeners: list[UnreadListener] = []
        self._closed = False

        self.audio_cache = audio_cache or AudioUrlCache(gateway, self.settings.media_format)
        self.page = PageState(page_size=self.settings.page_size)
        self.voicemails: tuple[VoicemailView, ...] = ()
        self.is_loading = False
        self.error_message: str | None = None
        self.last_updated: datetime | None = None

    # -- derived state ----------------------------------------------------

    @property
    def unread_count(self) -> int:
        return sum(1 for vm in self.voicemails if not vm.record.read and not vm.record.deleted)

    @property
    def has_voicemail(self) -> bool:
        return bool(self.voicemails)

    @property
    def display_count(self) -> int:
        return len(self.voicemails)

    @property
    def last_updated_label(self) -> str:
        if self.last_updated is None:
            return ""
        return f"Last updated: {self.last_updated.astimezone().strftime('%I:%M:%S %p')}"

    def get(self, voicemail_id: str) -> VoicemailView | None:
        for vm in self.voicemails:
            if vm.id == voicemail_id:
                return vm
        return None

    # -- badge ------------------------------------------------------------

    def add_unread_listener(self, listener: UnreadListener) -> None:
        """Register a badge observer; it receives every unread-count update."""
        self._unread_listeners.append(listener)

    def reset_badge(self) -> None:
        self._publish(UnreadCountEvent(count=0))

    # -- fetching ---------------------------------------------------------

    async def fetch(self, page_number: int | None = None, show_busy: bool = True) -> None:
        """Fetch a page and merge it into the cache.

        Args:
            page_number: Page to load; defaults to the current page.
            show_busy: Whether ``is_loading`` is raised while the request runs.
        """

        if self._closed:
            return
        if page_number is not None:
            self.page.page_number = page_number

        access_token = self._session.access_token()
        if access_token is None:
            await self._session.login()
            return

        requested_page = self.page.page_number
        self.is_loading = show_busy
        self.error_message = None
        try:
            response = await self._gateway.call(
                SEARCH_ENDPOINT, "POST", self._search_body(requested_page), access_token=access_token
            )
        except AuthorizationExpiredError:
            self.is_loading = False
            await self._reauthenticate()
            return
        except ApiError as exc:
            logger.error("voicemail_fetch_failed", page=requested_page, error=str(exc))
            if not self._closed:
                self.error_message = str(exc) or FETCH_FAILED_MESSAGE
            return
        finally:
            self.is_loading = False

        if self._closed:
            return

        payload: dict[str, Any] = response if isinstance(response, dict) else {}
        records = parse_records(payload.get("results") or [])
        now = self._clock()
        self.voicemails = merge_page(self.voicemails, records, now)
        self.page.total_page_count = int(payload.get("pageCount") or 0)
        self.last_updated = now
        logger.info(
            "voicemails_fetched",
            page=requested_page,
            count=len(self.voicemails),
            page_count=self.page.total_page_count,
        )
        self._publish_unread_count()

    async def next_page(self) -> None:
        if self._closed or not self.page.has_next_page:
            return
        self.page.page_number += 1
        await self.fetch(show_busy=True)

    async def previous_page(self) -> None:
        if self._closed or not self.page.has_previous_page:
            return
        self.page.page_number -= 1
        await self.fetch(show_busy=True)

    # -- audio ------------------------------------------------------------

    async def load_audio(self, voicemail_id: str) -> str | None:
        """Resolve the playable URL for a voicemail, at most once per id.

        Returns:
            The media URL, or None if it could not be resolved.
        """

        cached = self.audio_cache.get(voicemail_id)
        if cached is not None:
            self._update_ui(voicemail_id, audio_url=cached)
            return cached

        if self._closed or self.get(voicemail_id) is None:
            return None

        access_token = await self._require_token()
        if access_token is None:
            return None

        self._update_ui(voicemail_id, is_loading_audio=True)
        try:
            url = await self.audio_cache.resolve(voicemail_id, access_token)
        except AuthorizationExpiredError:
            self._update_ui(voicemail_id, is_loading_audio=False)
            await self._reauthenticate()
            return None
        except (ApiError, MediaUnavailableError) as exc:
            logger.error("voicemail_audio_failed", voicemail_id=voicemail_id, error=str(exc))
            self.error_message = f"Failed to load audio: {exc}"
            return None
        finally:
            self._update_ui(voicemail_id, is_loading_audio=False)

        self._update_ui(voicemail_id, audio_url=url)
        return url

    # -- mutations --------------------------------------------------------

    async def set_read(self, voicemail_id: str, read: bool) -> bool:
        if not await self._patch(voicemail_id, {"read": read}):
            return False
        self._replace(voicemail_id, lambda vm: vm.with_record(read=read))
        self._publish_unread_count()
        return True

    async def set_note(self, voicemail_id: str, note: str) -> bool:
        if not await self._patch(voicemail_id, {"note": note}):
            return False
        self._replace(
            voicemail_id,
            lambda vm: vm.with_record(note=note).with_ui(original_note=note, is_editing=False),
        )
        self._publish_unread_count()
        return True

    async def delete(self, voicemail_id: str) -> bool:
        """Soft-delete a voicemail and drop it from the list.

        Removing the only voicemail of the last page steps back one page so
        the widget never shows an empty trailing page.
        """

        if not await self._patch(voicemail_id, {"deleted": True}):
            return False

        was_only_item = len(self.voicemails) == 1 and self.get(voicemail_id) is not None
        on_last_page = self.page.page_number == self.page.total_page_count

        self.voicemails = tuple(vm for vm in self.voicemails if vm.id != voicemail_id)
        self._publish_unread_count()
        logger.info("voicemail_deleted", voicemail_id=voicemail_id)

        if was_only_item and on_last_page and self.page.page_number > 1:
            self.page.page_number -= 1
            await self.fetch(show_busy=True)
        return True

    # -- card UI state ----------------------------------------------------

    def toggle_menu(self, voicemail_id: str) -> None:
        self.voicemails = tuple(
            vm.with_ui(show_menu=(vm.id == voicemail_id and not vm.ui.show_menu))
            for vm in self.voicemails
        )

    def close_menus(self) -> None:
        if any(vm.ui.show_menu for vm in self.voicemails):
            self.voicemails = tuple(vm.with_ui(show_menu=False) for vm in self.voicemails)

    async def toggle_expanded(self, voicemail_id: str) -> None:
        """Expand or collapse a card; expanding loads its audio."""

        vm = self.get(voicemail_id)
        if vm is None:
            return

        self.close_menus()
        expanded = not vm.ui.is_expanded
        if expanded:
            self._update_ui(voicemail_id, is_expanded=True)
            if vm.ui.audio_url is None:
                await self.load_audio(voicemail_id)
        else:
            self._update_ui(voicemail_id, is_expanded=False, is_editing=False)

    def start_editing(self, voicemail_id: str) -> None:
        self._update_ui(voicemail_id, is_editing=True)

    def cancel_editing(self, voicemail_id: str) -> None:
        self._update_ui(voicemail_id, is_editing=False)

    async def audio_finished(self, voicemail_id: str) -> None:
        vm = self.get(voicemail_id)
        if vm is not None and not vm.record.read:
            await self.set_read(voicemail_id, True)

    def close(self) -> None:
        """Stop issuing requests; responses still in flight are discarded."""
        self._closed = True

    # -- internals --------------------------------------------------------

    def _search_body(self, page_number: int) -> dict[str, Any]:
        return {
            "sortOrder": "DESC",
            "sortBy": "createdTime",
            "pageSize": self.page.page_size,
            "pageNumber": page_number,
            "query": [
                {"type": "EXACT", "fields": ["owner"], "value": "ALL"},
                {"type": "EXACT", "fields": ["deleted"], "value": "false"},
            ],
        }

    async def _require_token(self) -> str | None:
        access_token = self._session.access_token()
        if access_token is None:
            await self._session.login()
        return access_token

    async def _reauthenticate(self) -> None:
        logger.warning("voicemail_authorization_expired")
        await self._session.invalidate()
        if not self._closed:
            await self._session.login()

    async def _patch(self, voicemail_id: str, updates: dict[str, Any]) -> bool:
        if self._closed:
            return False
        access_token = await self._require_token()
        if access_token is None:
            return False

        try:
            await self._gateway.call(
                f"/api/v2/voicemail/messages/{voicemail_id}",
                "PATCH",
                updates,
                access_token=access_token,
            )
        except AuthorizationExpiredError:
            await self._reauthenticate()
            return False
        except ApiError as exc:
            logger.error(
                "voicemail_update_failed",
                voicemail_id=voicemail_id,
                fields=sorted(updates),
                error=str(exc),
            )
            self.error_message = f"Failed to update voicemail: {exc}"
            return False
        return not self._closed

    def _replace(self, voicemail_id: str, change: Callable[[VoicemailView], VoicemailView]) -> None:
        self.voicemails = tuple(
            change(vm) if vm.id == voicemail_id else vm for vm in self.voicemails
        )

    def _update_ui(self, voicemail_id: str, **changes: Any) -> None:
        self._replace(voicemail_id, lambda vm: vm.with_ui(**changes))

    def _publish_unread_count(self) -> None:
        self._publish(UnreadCountEvent(count=self.unread_count))

    def _publish(self, event: UnreadCountEvent) -> None:
        for listener in list(self._unread_listeners):
            listener(event)
