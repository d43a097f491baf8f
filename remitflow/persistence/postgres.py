"""PostgreSQL implementation of the state store."""

from __future__ import annotations

import json
from typing import Any

import asyncpg

from .store import StateStore


class PostgresStateStore(StateStore):
    """Persist documents using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            try:
                await self._ensure_schema(conn)
            except Exception:
                await conn.close()
                raise
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS remitflow_documents (
                key TEXT PRIMARY KEY,
                value JSONB NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
            """
        )

    # ------------------------------------------------------------------
    async def get(self, key: str) -> Any | None:
        conn = await self._connect()
        try:
            raw = await conn.fetchval(
                "SELECT value FROM remitflow_documents WHERE key = $1", key
            )
        finally:
            await conn.close()
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO remitflow_documents (key, value, updated_at)
                VALUES ($1, $2::jsonb, now())
                ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, updated_at = now()
                """,
                key,
                json.dumps(value),
            )
        finally:
            await conn.close()

    async def delete(self, key: str) -> None:
        conn = await self._connect()
        try:
            await conn.execute("DELETE FROM remitflow_documents WHERE key = $1", key)
        finally:
            await conn.close()
