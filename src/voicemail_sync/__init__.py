"""voicemail-sync - OAuth (PKCE) voicemail client with live updates.

This package authenticates against a cloud telephony platform, keeps a
paginated list of voicemails synchronized through a push-notification
channel, and applies read/note/delete changes back to the platform.
"""

__version__ = "0.1.0"

from voicemail_sync.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]
