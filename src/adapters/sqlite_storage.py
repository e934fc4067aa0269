"""SQLite storage adapter.

Implements the core KeyValueStore port using a single SQLite table.
"""

from __future__ import annotations

import os
import sqlite3
from typing import Iterator, Optional


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the KeyValueStore contract."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create the table if it does not exist.

        Tables:
        - kv: flat string keys and JSON string values
        """

        directory = os.path.dirname(self._db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with self._connect() as conn:
            # kv holds every durable record (snapshot, status, subscribers).
            # Fields:
            # - key: logical key such as "products", "sub:<id>", "tg:<chat_id>"
            # - value: serialized record
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

    def get(self, key: str) -> Optional[str]:
        """Return the stored value for a key, if any."""

        with self._connect() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def put(self, key: str, value: str) -> None:
        """Upsert a value."""

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO kv (key, value)
                VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )

    def delete(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))

    def list_by_prefix(self, prefix: str) -> Iterator[str]:
        """Yield every key that starts with ``prefix``, in key order."""

        # substr() instead of LIKE so "_" and "%" in prefixes stay literal.
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
        for row in rows:
            yield row["key"]
