"""Data models for the pikchain resilience core."""

from pikchain.models.chain import BlockInfo, Receipt
from pikchain.models.config import ChainConfig, ClientConfig, GatewayConfig
from pikchain.models.records import (
    CacheEntry,
    ContractReadiness,
    ExportReport,
    GatewayAttempt,
    GatewayContent,
    ReadResult,
    ReconcileReport,
    StaleDataServed,
    TrackedTransaction,
    TxStatus,
)

__all__ = [
    "BlockInfo", "Receipt",
    "ChainConfig", "ClientConfig", "GatewayConfig",
    "CacheEntry", "ContractReadiness", "ExportReport", "GatewayAttempt",
    "GatewayContent", "ReadResult", "ReconcileReport", "StaleDataServed",
    "TrackedTransaction", "TxStatus",
]
