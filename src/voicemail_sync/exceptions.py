"""Custom exceptions for voicemail-sync."""

from __future__ import annotations


class VoicemailSyncError(Exception):
    """Base exception for all voicemail-sync errors."""


class ConfigurationError(VoicemailSyncError):
    """Exception raised for configuration related errors."""


class ApiError(VoicemailSyncError):
    """Exception raised when a platform request does not succeed.

    ``status_code`` is None when no HTTP response was received at all
    (connection refused, timeout, ...).
    """

    def __init__(self, status_code: int | None, text: str) -> None:
        self.status_code = status_code
        self.text = text
        if status_code is None:
            super().__init__(f"API request failed: {text}")
        else:
            super().__init__(f"API error ({status_code}): {text}")


class AuthorizationExpiredError(ApiError):
    """Exception raised for a 401: the access token expired or was revoked."""

    def __init__(self, text: str = "") -> None:
        super().__init__(401, text)


class MissingVerifierError(VoicemailSyncError):
    """Exception raised when a code arrives with no pending PKCE verifier."""


class TokenExchangeError(VoicemailSyncError):
    """Exception raised when the authorization code cannot be exchanged."""


class ChannelSetupError(VoicemailSyncError):
    """Exception raised when the notification channel cannot be set up."""


class MediaUnavailableError(VoicemailSyncError):
    """Exception raised when the platform returns no playable media URL."""


class VoicemailNotFoundError(VoicemailSyncError):
    """Exception raised when a callback conversation carries no voicemail."""
