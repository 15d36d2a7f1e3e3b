"""In-memory key-value store. Replace with the SQL store for production."""
from __future__ import annotations
from typing import Any, Callable
import copy
import time


class InMemoryKeyValueStore:
    """Dict-backed store with optional per-key expiry.

    No method awaits between reading and mutating the dict, so on a single
    event loop ``delete_if_exists`` is atomic.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._items: dict[str, tuple[dict[str, Any], float | None]] = {}

    def _live(self, key: str) -> dict[str, Any] | None:
        entry = self._items.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._items[key]
            return None
        return value

    async def get(self, key: str) -> dict[str, Any] | None:
        value = self._live(key)
        return copy.deepcopy(value) if value is not None else None

    async def put(
        self,
        key: str,
        value: dict[str, Any],
        ttl_seconds: int | None = None,
    ) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._items[key] = (copy.deepcopy(value), expires_at)

    async def delete_if_exists(self, key: str) -> bool:
        if self._live(key) is None:
            return False
        del self._items[key]
        return True

    async def keys(self, prefix: str = "") -> list[str]:
        """List live keys, optionally filtered by prefix."""
        return [k for k in list(self._items) if k.startswith(prefix) and self._live(k) is not None]

    def __len__(self) -> int:
        return len(self._items)
