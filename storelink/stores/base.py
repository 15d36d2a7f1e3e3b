"""Key-value store contract used by the vault, event log, and ledgers.

Values are JSON-serialisable dicts. ``delete_if_exists`` must be atomic:
when two callers race on the same key, exactly one of them sees ``True``.
That property is what makes OAuth state consumption single-use.
"""
from __future__ import annotations
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    """Opaque get/put/delete service."""

    async def get(self, key: str) -> dict[str, Any] | None:
        """Return the stored value, or None if absent or expired."""
        ...

    async def put(
        self,
        key: str,
        value: dict[str, Any],
        ttl_seconds: int | None = None,
    ) -> None:
        """Insert or replace a value, optionally expiring after ``ttl_seconds``."""
        ...

    async def delete_if_exists(self, key: str) -> bool:
        """Delete a key. Returns True only if this call removed a live row."""
        ...
