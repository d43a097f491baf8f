"""Key-value store abstraction for flow state and history persistence."""

from __future__ import annotations

from typing import Any, Protocol


class StateStore(Protocol):
    """Protocol for persistence backends.

    Values are JSON-compatible documents overwritten wholesale on every
    ``set``.
    """

    async def get(self, key: str) -> Any | None:
        """Return the document stored under ``key``, or ``None``."""

    async def set(self, key: str, value: Any) -> None:
        """Replace the document stored under ``key``."""

    async def delete(self, key: str) -> None:
        """Remove ``key``; missing keys are ignored."""
