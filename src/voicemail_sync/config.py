"""Configuration management for voicemail-sync.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the VOICEMAIL_SYNC_ prefix (e.g., VOICEMAIL_SYNC_REGION).
    """

    model_config = SettingsConfigDict(
        env_prefix="VOICEMAIL_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Platform / OAuth Configuration
    region: str = Field(
        default="mypurecloud.com",
        description="Telephony platform region domain (api.<region>, login.<region>)",
    )
    client_id: str = Field(
        default="",
        description="OAuth client ID registered for the PKCE authorization code grant",
    )
    host_origin: str = Field(
        default="http://localhost:8080",
        description="Origin of the hosting window; popup callbacks must come from it",
    )
    redirect_path: str = Field(
        default="/resource/AuthCallback",
        description="Path of the static redirect page served under host_origin",
    )
    oauth_scope: str = Field(
        default="conversations voicemail",
        description="Space separated OAuth scopes requested at authorization",
    )
    callback_message_type: str = Field(
        default="AUTH_CALLBACK",
        description="Marker the redirect page puts in the 'type' field of its message",
    )

    # Voicemail list
    page_size: int = Field(
        default=25,
        ge=1,
        description="Number of voicemails requested per page",
    )
    media_format: str = Field(
        default="WAV",
        description="Media format requested when resolving playable audio URLs",
    )

    # Timing
    settle_delay_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Delay between a successful login and the first fetch/channel setup",
    )
    debounce_delay_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Delay between a voicemail push event and the resulting re-fetch",
    )
    reconnect_delay_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="Delay before reopening the notification channel after it drops",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for platform HTTP requests in seconds",
    )

    # Persistence
    token_db_path: Path = Field(
        default=Path("voicemail_session.sqlite3"),
        description="Path to the SQLite database holding the persisted access token",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    @property
    def api_base_url(self) -> str:
        return f"https://api.{self.region}"

    @property
    def login_base_url(self) -> str:
        return f"https://login.{self.region}"

    @property
    def redirect_uri(self) -> str:
        return self.host_origin.rstrip("/") + self.redirect_path


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
