"""Authentication: token persistence, PKCE and the popup login flow."""

from voicemail_sync.auth.session import (
    BrowserPopupLauncher,
    PopupLauncher,
    SessionManager,
    callback_message_from_redirect,
)
from voicemail_sync.auth.token_store import (
    InMemoryTokenStore,
    PendingAuthorizationStore,
    SqliteTokenStore,
    TokenStore,
)

__all__ = [
    "BrowserPopupLauncher",
    "InMemoryTokenStore",
    "PendingAuthorizationStore",
    "PopupLauncher",
    "SessionManager",
    "SqliteTokenStore",
    "TokenStore",
    "callback_message_from_redirect",
]
