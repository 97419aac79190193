"""Read-through cache for on-chain reads with stale-on-error fallback.

Fresh data always wins: every read goes to the authoritative source first
and the cache only answers when that fails. Caching is best-effort, so no
store failure ever reaches the caller.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Awaitable, Callable

from pikchain.exceptions import StoreQuotaExceeded
from pikchain.interfaces.store import KeyValueStore
from pikchain.models.records import CacheEntry, ReadResult, StaleDataServed

log = logging.getLogger(__name__)

DEFAULT_PREFIX = "photoblock_v1"
DEFAULT_TTL = 300.0  # seconds

FreshFn = Callable[[], Awaitable[Any]]
StaleListener = Callable[[StaleDataServed], None]


class CacheKeys:
    """Key layout ``{prefix}_{name}_{chain_id}_{account}``."""

    ACCOUNT_FAMILIES = ("cids", "username")

    def __init__(self, prefix: str = DEFAULT_PREFIX) -> None:
        self.prefix = prefix

    def for_account(self, name: str, account: str, chain_id: int) -> str:
        return f"{self.prefix}_{name}_{chain_id}_{account.lower()}"

    def cids(self, account: str, chain_id: int) -> str:
        return self.for_account("cids", account, chain_id)

    def username(self, account: str, chain_id: int) -> str:
        return self.for_account("username", account, chain_id)

    def tx_history(self, account: str, chain_id: int) -> str:
        return self.for_account("tx", account, chain_id)

    def last_block(self, chain_id: int) -> str:
        return f"{self.prefix}_block_{chain_id}"


class ReadThroughCache:
    """TTL cache over a KeyValueStore."""

    def __init__(
        self,
        store: KeyValueStore,
        default_ttl: float = DEFAULT_TTL,
        prefix: str = DEFAULT_PREFIX,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._default_ttl = default_ttl
        self._clock = clock
        self.keys = CacheKeys(prefix)

    # ── Plain accessors ────────────────────────────────────

    async def get(self, key: str, ttl: float | None = None) -> Any | None:
        """Cached value, or None when absent or older than ``ttl``."""
        entry = await self._load(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock(), self._ttl(ttl)):
            await self.invalidate(key)
            return None
        return entry.value

    async def set(self, key: str, value: Any) -> None:
        payload = json.dumps({"value": value, "stored_at": self._clock()})
        try:
            await self._store.set(key, payload)
        except StoreQuotaExceeded as exc:
            log.warning("Cache write skipped: %s", exc.message)
        except Exception as exc:
            log.warning("Cache write error for %s: %s", key, exc)

    async def invalidate(self, key: str) -> None:
        try:
            await self._store.remove(key)
        except Exception as exc:
            log.warning("Cache clear error for %s: %s", key, exc)

    async def invalidate_all_for_account(self, account: str, chain_id: int) -> None:
        """Drop every cached key family for this account on this network."""
        suffix = f"_{chain_id}_{account.lower()}"
        doomed = {self.keys.for_account(name, account, chain_id)
                  for name in CacheKeys.ACCOUNT_FAMILIES}
        for key in await self._keys():
            if key.startswith(f"{self.keys.prefix}_") and key.endswith(suffix):
                doomed.add(key)
        for key in sorted(doomed):
            await self.invalidate(key)
        log.debug("Invalidated %d cache keys for %s on %d", len(doomed), account, chain_id)

    async def clear_all(self) -> int:
        """Remove every key carrying this cache's prefix."""
        removed = 0
        for key in await self._keys():
            if key.startswith(f"{self.keys.prefix}_"):
                await self.invalidate(key)
                removed += 1
        log.info("Cache cleared (%d keys)", removed)
        return removed

    # ── Read-through ───────────────────────────────────────

    async def read(self, key: str, fresh_fn: FreshFn, ttl: float | None = None) -> ReadResult:
        """Fetch fresh, falling back to any cached value if the fetch fails.

        The fallback ignores expiry. With nothing cached the fetch error is
        re-raised unchanged.
        """
        try:
            value = await fresh_fn()
        except Exception as exc:
            entry = await self._load(key)
            if entry is None:
                raise
            expired = entry.is_expired(self._clock(), self._ttl(ttl))
            log.warning(
                "Fresh read failed for %s, serving cached value (age %.0fs): %s",
                key, entry.age(self._clock()), exc,
            )
            return ReadResult(
                value=entry.value,
                stale=StaleDataServed(
                    key=key, error=exc, stored_at=entry.stored_at, expired=expired,
                ),
            )

        await self.set(key, value)
        return ReadResult(value=value)

    async def read_through(
        self,
        key: str,
        fresh_fn: FreshFn,
        ttl: float | None = None,
        on_stale: StaleListener | None = None,
    ) -> Any:
        result = await self.read(key, fresh_fn, ttl)
        if result.stale is not None and on_stale is not None:
            on_stale(result.stale)
        return result.value

    # ── Internals ──────────────────────────────────────────

    def _ttl(self, ttl: float | None) -> float:
        return self._default_ttl if ttl is None else ttl

    async def _load(self, key: str) -> CacheEntry | None:
        try:
            raw = await self._store.get(key)
        except Exception as exc:
            log.warning("Cache read error for %s: %s", key, exc)
            return None
        if not raw:
            return None
        try:
            payload = json.loads(raw)
            return CacheEntry(key=key, value=payload["value"], stored_at=float(payload["stored_at"]))
        except (TypeError, ValueError, KeyError) as exc:
            log.warning("Cache read error for %s: %s", key, exc)
            return None

    async def _keys(self) -> list[str]:
        try:
            return await self._store.keys()
        except Exception as exc:
            log.warning("Cache key listing failed: %s", exc)
            return []
