"""Data models for voicemail-sync.

This module contains Pydantic models for data validation and serialization.
"""

from voicemail_sync.models.session import AuthState, PendingAuthorization, Session
from voicemail_sync.models.voicemail import (
    CallContext,
    ConnectionState,
    PageState,
    UnreadCountEvent,
    VoicemailRecord,
    VoicemailUiState,
    VoicemailView,
)

__all__ = [
    "AuthState",
    "CallContext",
    "ConnectionState",
    "PageState",
    "PendingAuthorization",
    "Session",
    "UnreadCountEvent",
    "VoicemailRecord",
    "VoicemailUiState",
    "VoicemailView",
]
