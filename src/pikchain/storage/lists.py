"""JSON list persistence on top of a KeyValueStore.

Lists are stored whole under one key and mutated by search-and-replace on a
key field. Callers only see ``upsert_by_key`` and ``remove_by_key`` so the
backing layout can change without touching them.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import defaultdict
from typing import Any, Callable

from pikchain.exceptions import StoreQuotaExceeded
from pikchain.interfaces.store import KeyValueStore

log = logging.getLogger(__name__)

Item = dict[str, Any]
MergeFn = Callable[[Item, Item], Item]


class JsonListStore:
    """Capacity-bounded JSON arrays keyed by a field of each item."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        # The store is async, so a load/modify/save spans several awaits.
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def load(
        self,
        key: str,
        key_field: str = "hash",
        order_by: Callable[[Item], Any] | None = None,
    ) -> list[Item]:
        """Return the stored list, dropping malformed entries. Never raises."""
        try:
            raw = await self._store.get(key)
        except Exception as exc:
            log.warning("List read failed for %s: %s", key, exc)
            return []
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except (TypeError, ValueError):
            log.warning("Discarding unreadable list at %s", key)
            return []
        if not isinstance(parsed, list):
            return []

        items = [
            item for item in parsed
            if isinstance(item, dict) and isinstance(item.get(key_field), str)
        ]
        if order_by is not None:
            items.sort(key=order_by, reverse=True)
        return items

    async def upsert_by_key(
        self,
        key: str,
        item: Item,
        key_field: str = "hash",
        cap: int = 200,
        merge: MergeFn | None = None,
        order_by: Callable[[Item], Any] | None = None,
    ) -> Item:
        """Insert or replace the entry whose ``key_field`` matches ``item``.

        ``merge(existing, item)`` decides the stored entry when one exists.
        The list keeps at most ``cap`` entries; the lowest by ``order_by``
        (or the oldest insertion) are dropped. Returns the stored entry.
        """
        ident = item[key_field]
        async with self._locks[key]:
            existing = await self.load(key, key_field, order_by)
            previous = next((e for e in existing if e[key_field] == ident), None)
            stored = merge(previous, item) if previous is not None and merge else item

            updated = [stored, *(e for e in existing if e[key_field] != ident)]
            if order_by is not None:
                updated.sort(key=order_by, reverse=True)
            await self._save(key, updated[:cap])
        return stored

    async def remove_by_key(self, key: str, value: str, key_field: str = "hash") -> bool:
        async with self._locks[key]:
            existing = await self.load(key, key_field)
            remaining = [e for e in existing if e[key_field] != value]
            if len(remaining) == len(existing):
                return False
            await self._save(key, remaining)
        return True

    async def _save(self, key: str, items: list[Item]) -> None:
        try:
            await self._store.set(key, json.dumps(items, separators=(",", ":")))
        except StoreQuotaExceeded as exc:
            log.warning("List not persisted: %s", exc.message)
        except Exception as exc:
            log.warning("List write failed for %s: %s", key, exc)
