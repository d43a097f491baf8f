"""SQLite implementation of the state store."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .store import StateStore


class SQLiteStateStore(StateStore):
    """Persist documents using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    # ------------------------------------------------------------------
    # Store API
    async def get(self, key: str) -> Any | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT value FROM documents WHERE key = ?", key
        )
        if not row:
            return None
        return json.loads(row["value"])

    async def set(self, key: str, value: Any) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO documents (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            key,
            json.dumps(value),
            datetime.now(timezone.utc).isoformat(),
        )

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._execute, "DELETE FROM documents WHERE key = ?", key)

    def close(self) -> None:
        self._conn.close()
