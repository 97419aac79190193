"""KeyValueStore protocol - durable local persistence for cache and tracker."""

from __future__ import annotations

from typing import Protocol


class KeyValueStore(Protocol):
    """String-to-string persistence shared by the cache and the tracker.

    Every call completes in a single statement, so a read-modify-write
    sequence is atomic with respect to other tasks on the same loop as long
    as it does not await anything else in between.
    """

    # ── Lifecycle ──────────────────────────────────────────

    async def initialize(self) -> None:
        """Open the backing storage."""
        ...

    async def close(self) -> None:
        ...

    # ── Access ─────────────────────────────────────────────

    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str) -> None:
        """Store a value. May raise StoreQuotaExceeded."""
        ...

    async def remove(self, key: str) -> None:
        ...

    async def keys(self) -> list[str]:
        ...
