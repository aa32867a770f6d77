from __future__ import annotations

import copy
import json
import logging
import os
import sqlite3
import threading
import time
from typing import Any, Callable, Protocol

from app.schemas import Intent, SessionState

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class CacheBackend(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl_s: float) -> None: ...

    def delete(self, key: str) -> None: ...

    def sweep(self) -> int: ...


class MemoryCache:
    """Process-local key/value cache with per-entry expiry."""

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return copy.deepcopy(value)

    def set(self, key: str, value: Any, ttl_s: float) -> None:
        if ttl_s <= 0:
            self.delete(key)
            return
        with self._lock:
            self._entries[key] = (self._clock() + ttl_s, copy.deepcopy(value))

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class SqliteCache:
    """Shared cache backed by SQLite so session state survives restarts."""

    def __init__(self, db_path: str, clock: Clock = time.time) -> None:
        self._db_path = db_path
        self._clock = clock
        self._conn: sqlite3.Connection | None = None
        self._conn_lock = threading.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        with self._conn_lock:
            if self._conn is not None:
                return self._conn

            directory = os.path.dirname(self._db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

            conn = sqlite3.connect(
                self._db_path,
                check_same_thread=False,
                timeout=5,
                isolation_level=None,
            )
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA busy_timeout=5000;")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS cache_entries (
                    cache_key TEXT PRIMARY KEY,
                    value_json TEXT NOT NULL,
                    expires_at REAL NOT NULL
                );
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_cache_entries_expiry
                ON cache_entries (expires_at);
                """
            )
            self._conn = conn
            return conn

    def get(self, key: str) -> Any | None:
        conn = self._get_connection()
        with self._conn_lock:
            row = conn.execute(
                "SELECT value_json, expires_at FROM cache_entries WHERE cache_key = ?",
                (key,),
            ).fetchone()
        if not row:
            return None
        if float(row[1]) <= self._clock():
            self.delete(key)
            return None
        return json.loads(row[0])

    def set(self, key: str, value: Any, ttl_s: float) -> None:
        if ttl_s <= 0:
            self.delete(key)
            return
        conn = self._get_connection()
        payload = json.dumps(value, ensure_ascii=False)
        with self._conn_lock:
            conn.execute(
                """
                INSERT INTO cache_entries (cache_key, value_json, expires_at)
                VALUES (?, ?, ?)
                ON CONFLICT(cache_key) DO UPDATE SET
                    value_json = excluded.value_json,
                    expires_at = excluded.expires_at
                """,
                (key, payload, self._clock() + ttl_s),
            )

    def delete(self, key: str) -> None:
        conn = self._get_connection()
        with self._conn_lock:
            conn.execute("DELETE FROM cache_entries WHERE cache_key = ?", (key,))

    def sweep(self) -> int:
        conn = self._get_connection()
        with self._conn_lock:
            cursor = conn.execute("DELETE FROM cache_entries WHERE expires_at <= ?", (self._clock(),))
        return int(cursor.rowcount or 0)

    def close(self) -> None:
        with self._conn_lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


class OverflowDiscarder(Protocol):
    def discard(self, user_key: str) -> None: ...


class SessionGuard:
    """Per-user topic tracking and the set of profiles already shown for it."""

    def __init__(
        self,
        cache: CacheBackend,
        overflow: OverflowDiscarder,
        *,
        ttl_s: float = 1800,
        max_turns: int = 2,
        clock: Clock = time.time,
    ) -> None:
        self._cache = cache
        self._overflow = overflow
        self._ttl_s = ttl_s
        self._max_turns = max_turns
        self._clock = clock

    @staticmethod
    def _key(user_key: str) -> str:
        return f"session:{user_key}"

    def state(self, user_key: str) -> SessionState:
        raw = self._cache.get(self._key(user_key))
        if isinstance(raw, dict):
            try:
                return SessionState.model_validate(raw)
            except ValueError:
                logger.warning("session_state_invalid user_key_len=%s", len(user_key))
        return SessionState(user_key=user_key, updated_at=self._clock())

    def save(self, state: SessionState) -> None:
        state.updated_at = self._clock()
        self._cache.set(self._key(state.user_key), state.model_dump(mode="json"), self._ttl_s)

    def begin(self, user_key: str, topic: str) -> SessionState:
        """Load the user's session, resetting shown profiles and overflow when the topic changes."""
        state = self.state(user_key)
        if state.topic != topic:
            if state.topic:
                logger.info("session_topic_switch shown_cleared=%s", len(state.shown_emails))
            state.topic = topic
            state.shown_emails = []
            self._overflow.discard(user_key)
            self.save(state)
        return state

    def mark_shown(self, state: SessionState, emails: list[str]) -> None:
        for email in emails:
            if email not in state.shown_emails:
                state.shown_emails.append(email)
        self.save(state)

    def remember(self, state: SessionState, intent: Intent, query: str) -> None:
        state.last_intent = intent
        if query:
            state.recent_turns.append(query)
            del state.recent_turns[: -self._max_turns]
        self.save(state)

    def forget(self, user_key: str) -> None:
        self._cache.delete(self._key(user_key))
        self._overflow.discard(user_key)
