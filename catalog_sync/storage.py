"""
Session persistence.

The session token and user record are kept under two well-known keys in a
small key/value store so a session survives process restarts. The in-memory
session held by :class:`SessionStore` stays authoritative when the store is
unavailable.
"""

import logging
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

import pydantic

from .config import Settings
from .errors import StorageUnavailable
from .models import Session, User

logger = logging.getLogger(__name__)


class KeyValueStorage(Protocol):
    """String key/value store. Every method may raise StorageUnavailable."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


# =============================================================================
# Storage Backends
# =============================================================================

class MemoryStorage:
    """Dict-backed storage. Set ``available = False`` to simulate an outage."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self.data: dict[str, str] = dict(initial or {})
        self.available = True

    def _check(self) -> None:
        if not self.available:
            raise StorageUnavailable("Storage is not available")

    def get(self, key: str) -> Optional[str]:
        self._check()
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self._check()
        self.data[key] = value

    def delete(self, key: str) -> None:
        self._check()
        self.data.pop(key, None)


class SqliteStorage:
    """SQLite-based key/value storage."""

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS session_store (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._init_db()

    def _init_db(self) -> None:
        """Create the parent directory and the schema."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailable(f"Cannot create {self.db_path.parent}: {e}") from e
        with self._get_connection() as conn:
            conn.executescript(self.SCHEMA)
            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Get a connection, retrying while the database is locked."""
        conn = None
        try:
            for attempt in range(5):
                try:
                    conn = sqlite3.connect(str(self.db_path), timeout=5.0)
                    break
                except sqlite3.OperationalError as e:
                    if "database is locked" in str(e) and attempt < 4:
                        time.sleep(0.1 * (2 ** attempt))
                    else:
                        raise
            yield conn
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Session storage error: {e}") from e
        finally:
            if conn:
                conn.close()

    def get(self, key: str) -> Optional[str]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT value FROM session_store WHERE key = ?",
                (key,),
            ).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO session_store (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                (key, value, datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()

    def delete(self, key: str) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM session_store WHERE key = ?", (key,))
            conn.commit()


# =============================================================================
# Session Store
# =============================================================================

class SessionStore:
    """Single source of truth for the active session."""

    def __init__(
        self,
        storage: KeyValueStorage,
        token_key: str = "token",
        user_key: str = "user",
    ):
        self.storage = storage
        self.token_key = token_key
        self.user_key = user_key
        self._session: Optional[Session] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionStore":
        """Build a store persisted to the configured sqlite file."""
        storage: KeyValueStorage
        try:
            storage = SqliteStorage(settings.storage_path)
        except StorageUnavailable as e:
            logger.warning(f"Session persistence disabled: {e}")
            storage = MemoryStorage()
        return cls(storage, token_key=settings.token_key, user_key=settings.user_key)

    @property
    def token(self) -> Optional[str]:
        return self._session.token if self._session else None

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    def current(self) -> Optional[Session]:
        return self._session

    def establish(self, session: Session) -> None:
        """Make ``session`` active and persist it."""
        self._session = session
        try:
            self.storage.set(self.token_key, session.token)
            self.storage.set(self.user_key, session.user.model_dump_json())
        except StorageUnavailable as e:
            logger.warning(f"Could not persist session, keeping it in memory: {e}")

    def clear(self) -> None:
        """Drop the active session and its persisted copy."""
        self._session = None
        try:
            self.storage.delete(self.token_key)
            self.storage.delete(self.user_key)
        except StorageUnavailable as e:
            logger.warning(f"Could not clear persisted session: {e}")

    def restore(self) -> Optional[Session]:
        """
        Load a persisted session at start-up.

        Returns:
            The restored session, or None when nothing usable is stored.
            Corrupt persisted data is cleared.
        """
        try:
            token = self.storage.get(self.token_key)
            raw_user = self.storage.get(self.user_key)
        except StorageUnavailable as e:
            logger.warning(f"Could not read persisted session: {e}")
            return self._session

        if not token or not raw_user:
            return None

        try:
            user = User.model_validate_json(raw_user)
            session = Session(token=token, user=user)
        except pydantic.ValidationError as e:
            logger.warning(f"Corrupt persisted session, clearing it: {e.error_count()} error(s)")
            self.clear()
            return None

        self._session = session
        logger.info(f"Restored session for {user.email}")
        return session
