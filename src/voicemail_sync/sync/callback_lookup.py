"""Voicemail lookup for the callback call on screen.

A callback voice call record carries a vendor call key whose middle segment is
the platform conversation id. The conversation's first participant holds the
voicemail left by the caller, whose audio is resolved through the shared
``AudioUrlCache``.
"""

from __future__ import annotations

from typing import Any

import structlog

from voicemail_sync.api.gateway import ApiGateway
from voicemail_sync.auth.session import SessionManager
from voicemail_sync.exceptions import (
    ApiError,
    AuthorizationExpiredError,
    MediaUnavailableError,
    VoicemailNotFoundError,
)
from voicemail_sync.models import CallContext
from voicemail_sync.sync.media import AudioUrlCache

logger = structlog.get_logger()

CALLBACK_CALL_TYPE = "Callback"

NO_CONVERSATION_MESSAGE = "No Conversation ID found in this record"


def _voicemail_id(conversation: Any) -> str | None:
    if not isinstance(conversation, dict):
        return None
    participants = conversation.get("participants") or []
    if not participants or not isinstance(participants[0], dict):
        return None
    voicemail = participants[0].get("voicemail") or {}
    return voicemail.get("id") if isinstance(voicemail, dict) else None


class CallbackVoicemailLookup:
    """Resolves the voicemail audio attached to a callback conversation."""

    def __init__(
        self,
        gateway: ApiGateway,
        session: SessionManager,
        audio_cache: AudioUrlCache,
    ) -> None:
        self._gateway = gateway
        self._session = session
        self._audio_cache = audio_cache

        self.audio_url: str | None = None
        self.voicemail_id: str | None = None
        self.is_loading = False
        self.error_message: str | None = None

    @property
    def has_voicemail(self) -> bool:
        return self.audio_url is not None

    @staticmethod
    def applies_to(context: CallContext) -> bool:
        return context.call_type == CALLBACK_CALL_TYPE

    async def retrieve(self, context: CallContext) -> str | None:
        """Find the voicemail audio for ``context``; a found voicemail is kept."""

        if self.has_voicemail:
            return self.audio_url
        if not self.applies_to(context):
            return None

        conversation_id = context.conversation_id
        if not conversation_id:
            self.error_message = NO_CONVERSATION_MESSAGE
            return None

        access_token = self._session.access_token()
        if access_token is None:
            await self._session.login()
            return None

        self.is_loading = True
        self.error_message = None
        try:
            conversation = await self._gateway.call(
                f"/api/v2/conversations/callbacks/{conversation_id}",
                "GET",
                access_token=access_token,
            )
            voicemail_id = _voicemail_id(conversation)
            if not voicemail_id:
                raise VoicemailNotFoundError("No voicemail found for this conversation")

            access_token = self._session.access_token()
            if access_token is None:
                await self._session.login()
                return None
            url = await self._audio_cache.resolve(voicemail_id, access_token)
        except AuthorizationExpiredError:
            logger.warning("callback_lookup_authorization_expired")
            self.is_loading = False
            await self._session.invalidate()
            await self._session.login()
            return None
        except (ApiError, MediaUnavailableError, VoicemailNotFoundError) as exc:
            logger.error(
                "callback_lookup_failed", conversation_id=conversation_id, error=str(exc)
            )
            self.error_message = str(exc)
            return None
        finally:
            self.is_loading = False

        self.voicemail_id = voicemail_id
        self.audio_url = url
        logger.info("callback_voicemail_found", conversation_id=conversation_id)
        return url
