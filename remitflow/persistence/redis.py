"""Redis implementation of the state store."""

from __future__ import annotations

import json
from typing import Any, Optional

import redis.asyncio as redis

from .store import StateStore


class RedisStateStore(StateStore):
    """Persist documents as JSON strings in Redis."""

    def __init__(self, url: str, namespace: str = "") -> None:
        self.url = url
        self.namespace = namespace
        self._redis: Optional[Any] = None

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.from_url(self.url, decode_responses=True)
        # Test connection
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    def _key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    async def get(self, key: str) -> Any | None:
        if not self._redis:
            await self.connect()
        raw = await self._redis.get(self._key(key))
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any) -> None:
        if not self._redis:
            await self.connect()
        await self._redis.set(self._key(key), json.dumps(value))

    async def delete(self, key: str) -> None:
        if not self._redis:
            await self.connect()
        await self._redis.delete(self._key(key))
