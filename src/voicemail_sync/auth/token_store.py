"""Access-token and PKCE-verifier persistence.

The access token is durable (it should survive a reload of the host), so the
default store keeps it in a small SQLite database. The PKCE verifier is only
meaningful to the login attempt that created it and must not outlive the
process, so it is only ever held in memory.
"""

from __future__ import annotations

import sqlite3
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol

import structlog

from voicemail_sync.models import PendingAuthorization, Session

logger = structlog.get_logger()


_SCHEMA_VERSION = 1

Clock = Callable[[], int]


def epoch_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return time.time_ns() // 1_000_000


class TokenStore(Protocol):
    """Read/write/clear contract shared by the token store implementations.

    ``read`` never returns an expired session: an expired one is deleted as a
    side effect and ``None`` is returned. ``None`` means "not authenticated",
    not an error.
    """

    def read(self) -> Session | None:
        ...

    def write(self, session: Session) -> None:
        ...

    def clear(self) -> None:
        ...


class InMemoryTokenStore:
    """Process-local token store."""

    def __init__(self, clock: Clock = epoch_ms) -> None:
        self._clock = clock
        self._session: Session | None = None

    def read(self) -> Session | None:
        session = self._session
        if session is None:
            return None
        if session.is_expired(self._clock()):
            logger.info("access_token_expired", expires_at_epoch_ms=session.expires_at_epoch_ms)
            self._session = None
            return None
        return session

    def write(self, session: Session) -> None:
        self._session = session

    def clear(self) -> None:
        self._session = None


class SqliteTokenStore:
    """Durable token store backed by a single-row SQLite table."""

    def __init__(self, db_path: Path, clock: Clock = epoch_ms) -> None:
        """Create a store.

        Args:
            db_path: Path to the SQLite database file.
            clock: Source of "now" in epoch milliseconds.
        """

        self._db_path = db_path
        self._clock = clock

    def initialize(self) -> None:
        """Create or validate the store schema."""

        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS _schema_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );
                """
            )

            row = conn.execute(
                "SELECT value FROM _schema_meta WHERE key = 'schema_version';"
            ).fetchone()
            if row is None:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS session (
                        id INTEGER PRIMARY KEY CHECK (id = 1),
                        access_token TEXT NOT NULL,
                        expires_at_epoch_ms INTEGER NOT NULL
                    );
                    """
                )
                conn.execute(
                    "INSERT INTO _schema_meta (key, value) VALUES ('schema_version', ?);",
                    (str(_SCHEMA_VERSION),),
                )
                conn.commit()
                logger.info("token_store_schema_created", version=_SCHEMA_VERSION)
                return

            if int(row[0]) != _SCHEMA_VERSION:
                raise RuntimeError(
                    f"Unsupported schema version {row[0]}; expected {_SCHEMA_VERSION}"
                )

    def read(self) -> Session | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT access_token, expires_at_epoch_ms FROM session WHERE id = 1;"
            ).fetchone()
            if row is None:
                return None

            session = Session(access_token=row[0], expires_at_epoch_ms=row[1])
            if session.is_expired(self._clock()):
                conn.execute("DELETE FROM session;")
                conn.commit()
                logger.info(
                    "access_token_expired", expires_at_epoch_ms=session.expires_at_epoch_ms
                )
                return None
            return session

    def write(self, session: Session) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO session (id, access_token, expires_at_epoch_ms)
                VALUES (1, :access_token, :expires_at_epoch_ms)
                ON CONFLICT(id) DO UPDATE SET
                    access_token=excluded.access_token,
                    expires_at_epoch_ms=excluded.expires_at_epoch_ms;
                """,
                session.model_dump(),
            )
            conn.commit()

    def clear(self) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM session;")
            conn.commit()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path)
        try:
            yield conn
        finally:
            conn.close()


class PendingAuthorizationStore:
    """Holds at most one PKCE verifier; a new login overwrites the previous one."""

    def __init__(self) -> None:
        self._pending: PendingAuthorization | None = None

    def read(self) -> PendingAuthorization | None:
        return self._pending

    def write(self, pending: PendingAuthorization) -> None:
        self._pending = pending

    def clear(self) -> None:
        self._pending = None
