"""Exception hierarchy for the pikchain resilience core."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pikchain.models.records import GatewayAttempt


class PikchainError(Exception):
    """Base exception for all resilience-layer errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class AllGatewaysExhausted(PikchainError):
    """Raised when every gateway failed or timed out for a CID."""

    def __init__(self, cid: str, attempts: list[GatewayAttempt]) -> None:
        super().__init__(
            f"all {len(attempts)} gateways failed for {cid}",
            details={"attempts": [a.describe() for a in attempts]},
        )
        self.cid = cid
        self.attempts = attempts


class ReceiptUnavailable(PikchainError):
    """No receipt is known for a transaction yet. Transient."""

    def __init__(self, tx_hash: str) -> None:
        super().__init__(f"receipt not available for {tx_hash}")
        self.tx_hash = tx_hash


class ContractNotReady(PikchainError):
    """No contract code is deployed at the address on that network."""

    def __init__(self, address: str, chain_id: int) -> None:
        super().__init__(
            f"contract {address} is not deployed on chain {chain_id}",
            details={"address": address, "chain_id": chain_id},
        )
        self.address = address
        self.chain_id = chain_id


class StoreQuotaExceeded(PikchainError):
    """A write would push the durable store past its size limit."""

    def __init__(self, key: str, size: int, limit: int) -> None:
        super().__init__(
            f"store quota exceeded writing {key} ({size} bytes, limit {limit})",
            details={"key": key, "size": size, "limit": limit},
        )
        self.key = key
        self.size = size
        self.limit = limit


class ChainRPCError(PikchainError):
    """Raised when no RPC endpoint answered a chain request."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.endpoint = endpoint
