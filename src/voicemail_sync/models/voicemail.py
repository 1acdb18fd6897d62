"""Voicemail models.

A ``VoicemailRecord`` holds only what the platform owns. Everything the widget
keeps about a record between fetches (expanded card, edit mode, resolved audio
URL, ...) lives in ``VoicemailUiState`` so that a re-fetch can replace the
server half without touching the other.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from voicemail_sync.sync.formatting import card_class, parse_value_between_colons


class ConnectionState(str, Enum):
    """Notification channel connection state."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class VoicemailRecord(BaseModel):
    """Server-owned voicemail fields, parsed from the platform's JSON."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1, description="Voicemail message ID")
    caller_address: str = Field(default="", alias="callerAddress")
    created_date: datetime | None = Field(default=None, alias="createdDate")
    audio_recording_duration_seconds: int = Field(
        default=0, alias="audioRecordingDurationSeconds"
    )
    read: bool = False
    note: str = ""
    deleted: bool = False

    @field_validator("caller_address", "note", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("audio_recording_duration_seconds", "read", "deleted", mode="before")
    @classmethod
    def _none_to_falsy(cls, v: Any) -> Any:
        return 0 if v is None else v


class VoicemailUiState(BaseModel):
    """Client-side state layered on a record; never sent to the platform."""

    model_config = ConfigDict(frozen=True)

    audio_url: str | None = None
    is_expanded: bool = False
    is_editing: bool = False
    original_note: str = ""
    show_menu: bool = False
    is_loading_audio: bool = False


class VoicemailView(BaseModel):
    """One entry of the cached list: record, UI state and display strings."""

    model_config = ConfigDict(frozen=True)

    record: VoicemailRecord
    ui: VoicemailUiState = Field(default_factory=VoicemailUiState)

    formatted_duration: str = "0:00"
    formatted_date: str = ""
    relative_time: str = ""
    caller_display: str = ""
    phone_number: str | None = None

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def card_class(self) -> str:
        return card_class(self.record.read, self.ui.is_expanded)

    @property
    def caller_class(self) -> str:
        return "read-text" if self.record.read else "unread-text"

    @property
    def read_menu_label(self) -> str:
        return "Mark as Unread" if self.record.read else "Mark as Read"

    def with_record(self, **changes: Any) -> VoicemailView:
        return self.model_copy(update={"record": self.record.model_copy(update=changes)})

    def with_ui(self, **changes: Any) -> VoicemailView:
        return self.model_copy(update={"ui": self.ui.model_copy(update=changes)})


class PageState(BaseModel):
    """Pagination position; ``total_page_count`` is overwritten by every fetch."""

    model_config = ConfigDict(validate_assignment=True)

    page_number: int = Field(default=1, ge=1)
    page_size: int = Field(default=25, ge=1)
    total_page_count: int = Field(default=0, ge=0)

    @property
    def has_next_page(self) -> bool:
        return self.page_number < self.total_page_count

    @property
    def has_previous_page(self) -> bool:
        return self.page_number > 1


class UnreadCountEvent(BaseModel):
    """Payload handed to the notification-badge collaborator."""

    model_config = ConfigDict(frozen=True)

    count: int = Field(ge=0)


class CallContext(BaseModel):
    """Host record binding input: the call record currently on screen."""

    model_config = ConfigDict(frozen=True)

    record_id: str | None = None
    vendor_call_key: str | None = None
    call_type: str | None = None

    @property
    def conversation_id(self) -> str | None:
        return parse_value_between_colons(self.vendor_call_key)
