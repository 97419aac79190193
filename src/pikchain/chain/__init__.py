"""Chain-side components: provider, readiness prober, transaction tracker."""

from pikchain.chain.prober import ContractReadinessProber
from pikchain.chain.provider import Web3ChainProvider
from pikchain.chain.registry import PhotoRegistry
from pikchain.chain.tracker import TransactionTracker, WatchHandle

__all__ = [
    "ContractReadinessProber",
    "PhotoRegistry",
    "TransactionTracker",
    "Web3ChainProvider",
    "WatchHandle",
]
