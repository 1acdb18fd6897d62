"""Platform REST access."""

from voicemail_sync.api.gateway import ApiGateway

__all__ = ["ApiGateway"]
