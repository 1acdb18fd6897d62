"""Authentication state models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class AuthState(str, Enum):
    """Session manager state."""

    UNAUTHENTICATED = "unauthenticated"
    AWAITING_POPUP_CALLBACK = "awaiting_popup_callback"
    AUTHENTICATED = "authenticated"


class Session(BaseModel):
    """A persisted access token and the instant it stops being valid."""

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(min_length=1, description="Bearer token for platform calls")
    expires_at_epoch_ms: int = Field(description="Expiry as milliseconds since the epoch")

    def is_expired(self, now_ms: int) -> bool:
        return now_ms >= self.expires_at_epoch_ms


class PendingAuthorization(BaseModel):
    """PKCE verifier held between opening the popup and receiving its code."""

    model_config = ConfigDict(frozen=True)

    code_verifier: str = Field(min_length=1)
