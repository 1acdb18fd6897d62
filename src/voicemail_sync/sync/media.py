"""Resolved audio URLs, cached for the lifetime of the session."""

from __future__ import annotations

import structlog

from voicemail_sync.api.gateway import ApiGateway
from voicemail_sync.exceptions import MediaUnavailableError

logger = structlog.get_logger()


class AudioUrlCache:
    """Append-only mapping of voicemail id to playable media URL.

    Entries are never evicted; they survive paging and re-fetches, so a card
    that is scrolled away and back does not hit the platform again.
    """

    def __init__(self, gateway: ApiGateway, media_format: str = "WAV") -> None:
        self._gateway = gateway
        self._media_format = media_format
        self._urls: dict[str, str] = {}

    def get(self, voicemail_id: str) -> str | None:
        return self._urls.get(voicemail_id)

    def __contains__(self, voicemail_id: object) -> bool:
        return voicemail_id in self._urls

    def __len__(self) -> int:
        return len(self._urls)

    async def resolve(self, voicemail_id: str, access_token: str) -> str:
        """Return the media URL for ``voicemail_id``, fetching it on a cache miss.

        Raises:
            ApiError: If the media request fails.
            MediaUnavailableError: If the response has no ``mediaFileUri``.
        """

        cached = self._urls.get(voicemail_id)
        if cached is not None:
            return cached

        media = await self._gateway.call(
            f"/api/v2/voicemail/messages/{voicemail_id}/media?formatId={self._media_format}",
            "GET",
            access_token=access_token,
        )
        uri = media.get("mediaFileUri") if isinstance(media, dict) else None
        if not uri:
            raise MediaUnavailableError("Failed to retrieve voicemail audio")

        self._urls[voicemail_id] = uri
        logger.info("voicemail_audio_resolved", voicemail_id=voicemail_id)
        return uri
