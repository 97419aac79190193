"""Record types for persisted state and operation results."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class TxStatus(str, Enum):
    """Lifecycle of a tracked transaction. Only ever moves forward."""

    PENDING = "pending"
    CONFIRMING = "confirming"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _TX_STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (TxStatus.SUCCESS, TxStatus.FAILED)


_TX_STATUS_RANK = {
    TxStatus.PENDING: 0,
    TxStatus.CONFIRMING: 1,
    TxStatus.SUCCESS: 2,
    TxStatus.FAILED: 2,
}


def _int_or_none(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass
class GatewayAttempt:
    """One request against one gateway while resolving a CID."""

    gateway: str
    url: str
    status: int | None = None
    error: str | None = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None and self.status is not None and 200 <= self.status < 300

    def describe(self) -> dict[str, Any]:
        entry: dict[str, Any] = {"gateway": self.gateway}
        if self.status is not None:
            entry["status"] = self.status
        if self.error is not None:
            entry["error"] = self.error
        return entry


@dataclass
class GatewayContent:
    """Bytes retrieved for a CID and the gateway that served them."""

    cid: str
    data: bytes
    content_type: str
    gateway: str
    attempts: list[GatewayAttempt] = field(default_factory=list)


@dataclass
class ExportReport:
    """Outcome of a bulk export run."""

    saved: dict[str, str] = field(default_factory=dict)  # cid -> file path
    failed: dict[str, str] = field(default_factory=dict)  # cid -> error

    @property
    def total(self) -> int:
        return len(self.saved) + len(self.failed)


@dataclass
class CacheEntry:
    """A cached value as persisted in the durable store."""

    key: str
    value: Any
    stored_at: float  # epoch seconds

    def age(self, now: float) -> float:
        return now - self.stored_at

    def is_expired(self, now: float, ttl: float) -> bool:
        return self.age(now) > ttl


@dataclass(frozen=True)
class StaleDataServed:
    """Signal: a cached value was served because the fresh read failed."""

    key: str
    error: BaseException
    stored_at: float
    expired: bool = False


@dataclass
class ReadResult:
    """Value returned by a read-through, plus the stale signal if any."""

    value: Any
    stale: StaleDataServed | None = None

    @property
    def is_stale(self) -> bool:
        return self.stale is not None


@dataclass
class TrackedTransaction:
    """A submitted state-changing transaction followed to settlement."""

    hash: str
    contract_address: str
    action: str
    created_at: int | None = None  # epoch ms
    status: TxStatus = TxStatus.PENDING
    cid: str | None = None
    block_number: int | None = None
    gas_used: str | None = None
    block_timestamp: int | None = None  # epoch ms

    @property
    def has_terminal_data(self) -> bool:
        return self.block_number is not None and self.block_timestamp is not None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> TrackedTransaction:
        return cls(
            hash=str(raw["hash"]),
            contract_address=str(raw.get("contract_address") or ""),
            action=str(raw.get("action") or ""),
            created_at=_int_or_none(raw.get("created_at")),
            status=TxStatus(raw.get("status") or TxStatus.PENDING.value),
            cid=raw.get("cid"),
            block_number=_int_or_none(raw.get("block_number")),
            gas_used=raw.get("gas_used"),
            block_timestamp=_int_or_none(raw.get("block_timestamp")),
        )


@dataclass
class ReconcileReport:
    """Result of one passive reconciliation pass."""

    updated: list[str] = field(default_factory=list)
    still_pending: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ContractReadiness:
    """Whether contract code was found at (address, chain_id)."""

    address: str
    chain_id: int
    ready: bool
