"""Mock implementations of the chain-facing components."""

from __future__ import annotations

import asyncio

from pikchain.exceptions import ChainRPCError, StoreQuotaExceeded
from pikchain.models.chain import BlockInfo, Receipt


class MockChainProvider:
    """Implements ChainProvider. Receipts, code and blocks are pre-loaded.

    ``wait_for_confirmation`` blocks until a receipt is released for the
    hash, so tests control exactly when a transaction is mined.
    """

    def __init__(self, chain_id: int = 80002) -> None:
        self._chain_id = chain_id
        self.receipts: dict[str, Receipt] = {}
        self.receipt_errors: dict[str, Exception] = {}
        self.bytecode: dict[str, bytes] = {}
        self.bytecode_error: Exception | None = None
        self.blocks: dict[int, BlockInfo] = {}
        self.block_error: Exception | None = None
        self.head = 100
        self._mined: dict[str, asyncio.Event] = {}

        self.bytecode_calls: list[str] = []
        self.receipt_calls: list[str] = []
        self.wait_calls: list[str] = []
        self.block_calls: list[int] = []

    @property
    def chain_id(self) -> int:
        return self._chain_id

    # ── Test helpers ───────────────────────────────────────

    def deploy(self, address: str, code: bytes = b"\x60\x80\x60\x40") -> None:
        self.bytecode[address.lower()] = code

    def add_block(self, number: int, timestamp: int) -> None:
        self.blocks[number] = BlockInfo(number=number, timestamp=timestamp, hash=f"0xblock{number}")

    def mine(self, receipt: Receipt) -> None:
        """Make a receipt visible and wake any waiter on its hash."""
        self.receipts[receipt.transaction_hash] = receipt
        self._event(receipt.transaction_hash).set()

    def _event(self, tx_hash: str) -> asyncio.Event:
        if tx_hash not in self._mined:
            self._mined[tx_hash] = asyncio.Event()
        return self._mined[tx_hash]

    # ── ChainProvider ──────────────────────────────────────

    async def get_bytecode(self, address: str) -> bytes:
        self.bytecode_calls.append(address)
        if self.bytecode_error is not None:
            raise self.bytecode_error
        return self.bytecode.get(address.lower(), b"")

    async def get_transaction_receipt(self, tx_hash: str) -> Receipt | None:
        self.receipt_calls.append(tx_hash)
        if tx_hash in self.receipt_errors:
            raise self.receipt_errors[tx_hash]
        return self.receipts.get(tx_hash)

    async def wait_for_confirmation(self, tx_hash: str, confirmations: int = 1) -> Receipt:
        self.wait_calls.append(tx_hash)
        if tx_hash not in self.receipts:
            await self._event(tx_hash).wait()
        return self.receipts[tx_hash]

    async def get_block(self, number: int) -> BlockInfo:
        self.block_calls.append(number)
        if self.block_error is not None:
            raise self.block_error
        if number not in self.blocks:
            raise ChainRPCError(f"block {number} not found")
        return self.blocks[number]

    async def get_block_number(self) -> int:
        return self.head


class MockRegistry:
    """Stands in for PhotoRegistry reads with a switchable failure."""

    def __init__(self, cids: list[str] | None = None, username: str = "") -> None:
        self.cids = list(cids or [])
        self.username = username
        self.error: Exception | None = None
        self.calls = 0

    async def get_cids(self, account: str) -> list[str]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.cids)

    async def get_username(self, account: str) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.username


class FailingStore:
    """KeyValueStore whose writes always hit the quota."""

    def __init__(self) -> None:
        self.set_calls = 0

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def get(self, key: str) -> str | None:
        return None

    async def set(self, key: str, value: str) -> None:
        self.set_calls += 1
        raise StoreQuotaExceeded(key, len(value), 0)

    async def remove(self, key: str) -> None:
        pass

    async def keys(self) -> list[str]:
        return []
