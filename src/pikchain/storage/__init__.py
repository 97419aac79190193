"""Durable local store adapters."""

from pikchain.storage.lists import JsonListStore
from pikchain.storage.memory import MemoryKeyValueStore
from pikchain.storage.sqlite import SQLiteKeyValueStore

__all__ = ["JsonListStore", "MemoryKeyValueStore", "SQLiteKeyValueStore"]
