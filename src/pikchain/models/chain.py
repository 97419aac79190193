"""Chain data as consumed by the tracker and prober."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Receipt:
    """Settlement record for a mined transaction."""

    transaction_hash: str
    status: int  # 1 success, 0 reverted
    block_number: int
    gas_used: int

    @property
    def succeeded(self) -> bool:
        return self.status == 1


@dataclass(frozen=True)
class BlockInfo:
    """The parts of a block header the tracker needs."""

    number: int
    timestamp: int  # epoch seconds, as reported by the chain
    hash: str | None = None
