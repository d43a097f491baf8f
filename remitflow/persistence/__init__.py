"""Persistence layer for remitflow state."""

from __future__ import annotations

import os
from typing import Optional

from ..config import RemitflowConfig, load_config
from ..errors import StoreError
from .inmemory import InMemoryStateStore
from .sqlite import SQLiteStateStore
from .store import StateStore

_store_instance: StateStore | None = None


def get_store(
    database_url: Optional[str] = None, config: Optional[RemitflowConfig] = None
) -> StateStore:
    """Factory function to obtain a state store.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``REMITFLOW_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory store is returned.
    """

    global _store_instance
    if _store_instance is not None and database_url is None and config is None:
        return _store_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("REMITFLOW_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.store.database_url
    )

    if not database_url:
        _store_instance = InMemoryStateStore()
        return _store_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _store_instance = SQLiteStateStore(path)
    elif database_url.startswith("redis://") or database_url.startswith("rediss://"):
        from .redis import RedisStateStore

        _store_instance = RedisStateStore(database_url)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        from .postgres import PostgresStateStore

        _store_instance = PostgresStateStore(database_url)
    else:
        raise StoreError(f"Unsupported database backend: {database_url}")

    return _store_instance


__all__ = [
    "StateStore",
    "InMemoryStateStore",
    "SQLiteStateStore",
    "get_store",
]
