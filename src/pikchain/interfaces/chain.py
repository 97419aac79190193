"""ChainProvider protocol - the chain RPC calls the core depends on."""

from __future__ import annotations

from typing import Callable, Protocol

from pikchain.models.chain import BlockInfo, Receipt


class ChainProvider(Protocol):
    """Read access to one chain. Every call may fail with a transient error."""

    @property
    def chain_id(self) -> int:
        ...

    async def get_bytecode(self, address: str) -> bytes:
        """Deployed code at an address; empty when nothing is deployed."""
        ...

    async def get_transaction_receipt(self, tx_hash: str) -> Receipt | None:
        """Receipt for a mined transaction, None while it is unknown."""
        ...

    async def wait_for_confirmation(self, tx_hash: str, confirmations: int = 1) -> Receipt:
        """Block until the transaction has the given number of confirmations."""
        ...

    async def get_block(self, number: int) -> BlockInfo:
        ...

    async def get_block_number(self) -> int:
        ...


ProviderFactory = Callable[[int], ChainProvider]
