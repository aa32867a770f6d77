from __future__ import annotations

import json
import os
import sqlite3
import threading
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Mapping, Sequence

from app.core.errors import ExternalServiceUnavailable

from .base import primary_email
from .filters import FilterExpression, apply_projection, excluded_primary_emails, matches_filter, validate_filter


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@lru_cache(maxsize=32)
def _decode_filter(filter_json: str) -> FilterExpression:
    return json.loads(filter_json)


def _profile_matches(document_json: str, filter_json: str) -> int:
    """SQL function `profile_matches(document_json, filter_json)`."""
    try:
        document = json.loads(document_json)
    except json.JSONDecodeError:
        return 0
    return int(isinstance(document, dict) and matches_filter(document, _decode_filter(filter_json)))


class SqliteProfileStore:
    """Profile documents stored as JSON rows keyed by primary email."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
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
            conn.create_function("profile_matches", 2, _profile_matches, deterministic=True)
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS profiles (
                    email TEXT PRIMARY KEY,
                    document_json TEXT NOT NULL,
                    completed INTEGER NOT NULL DEFAULT 0,
                    updated_at TEXT NOT NULL
                );
                """
            )
            self._conn = conn
            return conn

    def upsert(self, document: Mapping[str, Any]) -> str:
        email = primary_email(document)
        stored = dict(document)
        stored["email"] = email
        try:
            conn = self._get_connection()
            with self._conn_lock:
                conn.execute(
                    """
                    INSERT INTO profiles (email, document_json, completed, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(email) DO UPDATE SET
                        document_json = excluded.document_json,
                        completed = excluded.completed,
                        updated_at = excluded.updated_at
                    """,
                    (email, json.dumps(stored, ensure_ascii=False), int(bool(stored.get("completed"))), _utc_now()),
                )
        except (sqlite3.Error, OSError) as exc:
            raise ExternalServiceUnavailable(f"Profile store write failed: {exc}") from exc
        return email

    def find(
        self,
        filter_expression: FilterExpression | None,
        projection: Sequence[str] | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Filter and limit inside the query; excluded primary emails use the key index."""
        if limit <= 0:
            return []
        validate_filter(filter_expression)
        clauses: list[str] = []
        params: list[Any] = []
        excluded = sorted(set(excluded_primary_emails(filter_expression)))
        if excluded:
            clauses.append(f"email NOT IN ({', '.join('?' for _ in excluded)})")
            params.extend(excluded)
        if filter_expression:
            clauses.append("profile_matches(document_json, ?)")
            params.append(json.dumps(filter_expression, sort_keys=True))
        where = f"WHERE {' AND '.join(clauses)} " if clauses else ""
        params.append(limit)
        try:
            conn = self._get_connection()
            with self._conn_lock:
                rows = conn.execute(
                    f"SELECT document_json FROM profiles {where}ORDER BY rowid LIMIT ?",
                    params,
                ).fetchall()
        except (sqlite3.Error, OSError) as exc:
            raise ExternalServiceUnavailable(f"Profile store query failed: {exc}") from exc

        results: list[dict[str, Any]] = []
        for (payload,) in rows:
            try:
                document = json.loads(payload)
            except json.JSONDecodeError:
                continue
            if isinstance(document, dict):
                results.append(apply_projection(document, projection))
        return results

    def count(self) -> int:
        try:
            conn = self._get_connection()
            with self._conn_lock:
                row = conn.execute("SELECT COUNT(1) FROM profiles").fetchone()
        except (sqlite3.Error, OSError) as exc:
            raise ExternalServiceUnavailable(f"Profile store query failed: {exc}") from exc
        return int(row[0] or 0)

    def close(self) -> None:
        with self._conn_lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
