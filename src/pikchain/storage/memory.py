"""In-process KeyValueStore for ephemeral sessions and tests."""

from __future__ import annotations

from pikchain.exceptions import StoreQuotaExceeded


class MemoryKeyValueStore:
    """Dict-backed KeyValueStore with the same size limit as the SQLite one."""

    def __init__(self, max_bytes: int | None = None) -> None:
        self._data: dict[str, str] = {}
        self._max_bytes = max_bytes

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        if self._max_bytes is not None:
            size = len(key.encode("utf-8")) + len(value.encode("utf-8"))
            used = sum(
                len(k.encode("utf-8")) + len(v.encode("utf-8"))
                for k, v in self._data.items()
                if k != key
            )
            if used + size > self._max_bytes:
                raise StoreQuotaExceeded(key, size, self._max_bytes)
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self) -> list[str]:
        return sorted(self._data)
