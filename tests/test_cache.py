"""Read-through cache: fresh-first reads, stale fallback, invalidation."""

from __future__ import annotations

import json

import pytest

from pikchain.cache import CacheKeys, ReadThroughCache
from pikchain.exceptions import ChainRPCError
from pikchain.storage.memory import MemoryKeyValueStore

from tests.factories import ACCOUNT
from tests.mocks import FailingStore


class Source:
    """Counting fresh-data source that can be switched to failing."""

    def __init__(self, value):
        self.value = value
        self.error: Exception | None = None
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.value


def test_key_layout():
    keys = CacheKeys("photoblock_v1")
    assert keys.cids(ACCOUNT, 80002) == f"photoblock_v1_cids_80002_{ACCOUNT.lower()}"
    assert keys.username(ACCOUNT, 31337) == f"photoblock_v1_username_31337_{ACCOUNT.lower()}"
    assert keys.tx_history(ACCOUNT, 80002) == f"photoblock_v1_tx_80002_{ACCOUNT.lower()}"
    assert keys.last_block(80002) == "photoblock_v1_block_80002"


async def test_fresh_value_returned_and_cached(cache, store):
    source = Source(["QmA", "QmB"])
    key = cache.keys.cids(ACCOUNT, 80002)

    result = await cache.read(key, source)

    assert result.value == ["QmA", "QmB"]
    assert not result.is_stale
    stored = json.loads(await store.get(key))
    assert stored["value"] == ["QmA", "QmB"]


async def test_fresh_read_always_attempted_even_when_cached(cache):
    source = Source("alice")
    key = cache.keys.username(ACCOUNT, 80002)
    await cache.read(key, source)
    source.value = "alice2"

    result = await cache.read(key, source)

    assert source.calls == 2
    assert result.value == "alice2"


async def test_failure_serves_cached_value_with_signal(cache, clock):
    source = Source(["QmA"])
    key = cache.keys.cids(ACCOUNT, 80002)
    await cache.read(key, source)
    stored_at = clock.now

    clock.advance(10)
    source.error = ChainRPCError("rpc down")
    result = await cache.read(key, source)

    assert result.value == ["QmA"]
    assert result.is_stale
    assert result.stale.key == key
    assert result.stale.stored_at == stored_at
    assert result.stale.expired is False
    assert isinstance(result.stale.error, ChainRPCError)


async def test_fallback_ignores_expiry_but_flags_it(cache, clock):
    source = Source("alice")
    key = cache.keys.username(ACCOUNT, 80002)
    await cache.read(key, source)

    clock.advance(3600)
    source.error = ChainRPCError("rpc down")
    result = await cache.read(key, source)

    assert result.value == "alice"
    assert result.stale.expired is True


async def test_failure_with_empty_cache_reraises_original(cache):
    source = Source(None)
    source.error = ChainRPCError("rpc down")
    with pytest.raises(ChainRPCError, match="rpc down"):
        await cache.read(cache.keys.cids(ACCOUNT, 80002), source)


async def test_read_through_invokes_stale_listener(cache):
    source = Source(["QmA"])
    key = cache.keys.cids(ACCOUNT, 80002)
    signals = []
    assert await cache.read_through(key, source, on_stale=signals.append) == ["QmA"]
    assert signals == []

    source.error = RuntimeError("boom")
    assert await cache.read_through(key, source, on_stale=signals.append) == ["QmA"]
    assert len(signals) == 1 and signals[0].key == key


async def test_get_respects_ttl_and_evicts(cache, clock, store):
    await cache.set("photoblock_v1_x", 1)
    assert await cache.get("photoblock_v1_x") == 1
    clock.advance(301)
    assert await cache.get("photoblock_v1_x") is None
    assert await store.get("photoblock_v1_x") is None


async def test_get_with_explicit_ttl(cache, clock):
    await cache.set("photoblock_v1_x", "v")
    clock.advance(30)
    assert await cache.get("photoblock_v1_x", ttl=60) == "v"
    assert await cache.get("photoblock_v1_x", ttl=10) is None


async def test_invalidate_all_for_account_scoped_to_chain(cache):
    keys = cache.keys
    other = "0x0000000000000000000000000000000000000002"
    await cache.set(keys.cids(ACCOUNT, 80002), ["QmA"])
    await cache.set(keys.username(ACCOUNT, 80002), "alice")
    await cache.set(keys.for_account("likes", ACCOUNT, 80002), 3)
    await cache.set(keys.cids(ACCOUNT, 31337), ["QmLocal"])
    await cache.set(keys.cids(other, 80002), ["QmOther"])

    await cache.invalidate_all_for_account(ACCOUNT.upper().replace("0X", "0x"), 80002)

    assert await cache.get(keys.cids(ACCOUNT, 80002)) is None
    assert await cache.get(keys.username(ACCOUNT, 80002)) is None
    assert await cache.get(keys.for_account("likes", ACCOUNT, 80002)) is None
    assert await cache.get(keys.cids(ACCOUNT, 31337)) == ["QmLocal"]
    assert await cache.get(keys.cids(other, 80002)) == ["QmOther"]


async def test_clear_all_only_touches_prefix(cache, store):
    await cache.set(cache.keys.cids(ACCOUNT, 80002), ["QmA"])
    await cache.set(cache.keys.last_block(80002), 7)
    await store.set("pikchain:txs:80002:abc", "[]")

    assert await cache.clear_all() == 2
    assert await store.keys() == ["pikchain:txs:80002:abc"]


async def test_quota_failure_is_swallowed():
    failing = FailingStore()
    cache = ReadThroughCache(failing)
    source = Source(["QmA"])

    result = await cache.read("photoblock_v1_cids_1_a", source)

    assert result.value == ["QmA"]
    assert failing.set_calls == 1


async def test_store_quota_on_memory_store_does_not_break_reads():
    cache = ReadThroughCache(MemoryKeyValueStore(max_bytes=64))
    source = Source("x" * 500)
    result = await cache.read("photoblock_v1_username_1_a", source)
    assert result.value == "x" * 500
    assert await cache.get("photoblock_v1_username_1_a") is None


async def test_corrupt_entry_treated_as_absent(cache, store):
    await store.set("photoblock_v1_bad", "{not json")
    assert await cache.get("photoblock_v1_bad") is None
    source = Source(None)
    source.error = RuntimeError("down")
    with pytest.raises(RuntimeError):
        await cache.read("photoblock_v1_bad", source)
