"""Bounded, persisted record of transaction and flow outcomes."""

from __future__ import annotations

import asyncio
import logging
import random
import string
import time
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .constants import DEFAULT_HISTORY_LIMIT, HISTORY_KEY
from .persistence import StateStore

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_entry_id() -> str:
    suffix = "".join(random.choices(_ID_ALPHABET, k=7))
    return f"tx-{int(time.time() * 1000)}-{suffix}"


class HistoryPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    transaction_hash: Optional[str] = None
    chain: Optional[str] = None
    from_asset: Optional[str] = None
    to_asset: Optional[str] = None
    amount: Optional[str] = None
    recipient_address: Optional[str] = None
    order_id: Optional[str] = None
    exchange_rates: Optional[Dict[str, Any]] = None
    fees: Optional[Dict[str, Any]] = None


class HistoryEntry(BaseModel):
    id: str = Field(default_factory=new_entry_id)
    timestamp: int = Field(default_factory=lambda: int(time.time() * 1000))
    category: Literal["transfer", "swap", "buy", "remittance"] = "remittance"
    status: Literal["pending", "completed", "failed"] = "pending"
    payload: HistoryPayload = Field(default_factory=HistoryPayload)
    message: str = ""


class HistoryLedger:
    """Append-only history capped to the most recent ``limit`` entries.

    Entries are kept most recent first. Eviction is by insertion order only;
    updating an entry never moves it.
    """

    def __init__(
        self,
        store: StateStore,
        limit: int = DEFAULT_HISTORY_LIMIT,
        key: str = HISTORY_KEY,
    ) -> None:
        self._store = store
        self._limit = limit
        self._key = key
        self._entries: List[HistoryEntry] = []
        self._loaded = False
        # Serialises mutate-and-save so an older snapshot never lands last.
        self._lock = asyncio.Lock()

    async def load(self) -> List[HistoryEntry]:
        """Read entries from the store, skipping any that fail validation."""
        raw = await self._store.get(self._key) or []
        entries: List[HistoryEntry] = []
        for item in raw:
            try:
                entries.append(HistoryEntry.model_validate(item))
            except ValidationError as exc:
                logger.warning(f"Dropping malformed history entry: {exc}")
        self._entries = entries[: self._limit]
        self._loaded = True
        return self.list()

    async def _save(self) -> None:
        await self._store.set(
            self._key, [entry.model_dump(mode="json") for entry in self._entries]
        )

    async def record(self, entry: HistoryEntry) -> HistoryEntry:
        async with self._lock:
            if not self._loaded:
                await self.load()
            self._entries = [entry, *self._entries][: self._limit]
            await self._save()
        logger.debug(f"Recorded history entry {entry.id} ({entry.status})")
        return entry

    async def update(self, entry_id: str, patch: Dict[str, Any]) -> Optional[HistoryEntry]:
        """Apply ``patch`` to the entry with ``entry_id`` in place.

        ``payload`` keys are merged into the existing payload; other fields
        are replaced. Unknown ids are ignored.
        """
        async with self._lock:
            if not self._loaded:
                await self.load()
            for index, entry in enumerate(self._entries):
                if entry.id != entry_id:
                    continue
                data = entry.model_dump()
                patch = dict(patch)
                if "payload" in patch:
                    data["payload"] = {**data["payload"], **dict(patch.pop("payload"))}
                data.update(patch)
                data["id"] = entry.id
                updated = HistoryEntry.model_validate(data)
                self._entries[index] = updated
                await self._save()
                return updated
        logger.warning(f"History entry {entry_id} not found; update ignored")
        return None

    def get(self, entry_id: str) -> Optional[HistoryEntry]:
        return next((e for e in self._entries if e.id == entry_id), None)

    def list(self) -> List[HistoryEntry]:
        """Entries, most recent first."""
        return list(self._entries)
