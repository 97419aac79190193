"""Contract availability prober - is the expected contract actually deployed?"""

from __future__ import annotations

import logging

from pikchain.exceptions import ContractNotReady
from pikchain.interfaces.chain import ProviderFactory
from pikchain.models.records import ContractReadiness

log = logging.getLogger(__name__)


def has_code(bytecode: bytes | str | None) -> bool:
    """Non-empty bytecode, distinct from the ``0x`` no-code sentinel."""
    if bytecode is None:
        return False
    if isinstance(bytecode, str):
        return bytecode.lower() not in ("", "0x")
    return len(bytecode) > 0


class ContractReadinessProber:
    """Checks for contract code at (address, chain_id), memoising successes.

    Only a ready result is remembered. A negative or failed probe is
    retried on the next call for the same pair, so a transient RPC error
    never leaves the contract stuck as not ready.
    """

    def __init__(self, provider_for: ProviderFactory) -> None:
        self._provider_for = provider_for
        self._ready: set[tuple[str, int]] = set()
        self._last: dict[tuple[str, int], ContractReadiness] = {}
        self._in_flight = 0

    @property
    def loading(self) -> bool:
        return self._in_flight > 0

    def readiness(self, address: str, chain_id: int) -> ContractReadiness | None:
        """Last known result for the pair, without probing."""
        return self._last.get(self._key(address, chain_id))

    def reset(self) -> None:
        self._ready.clear()
        self._last.clear()

    async def is_ready(self, address: str, chain_id: int) -> bool:
        if not address:
            return False
        key = self._key(address, chain_id)
        if key in self._ready:
            return True

        self._in_flight += 1
        try:
            provider = self._provider_for(chain_id)
            bytecode = await provider.get_bytecode(address)
        except Exception as exc:
            log.error("Contract availability check failed for %s on %d: %s", address, chain_id, exc)
            self._last[key] = ContractReadiness(address=address, chain_id=chain_id, ready=False)
            return False
        finally:
            self._in_flight -= 1

        ready = has_code(bytecode)
        self._last[key] = ContractReadiness(address=address, chain_id=chain_id, ready=ready)
        if ready:
            self._ready.add(key)
        else:
            log.warning("Contract code missing at %s on chain %d", address, chain_id)
        return ready

    async def require_ready(self, address: str, chain_id: int) -> None:
        """Raise ContractNotReady unless code is deployed at the address."""
        if not await self.is_ready(address, chain_id):
            raise ContractNotReady(address, chain_id)

    @staticmethod
    def _key(address: str, chain_id: int) -> tuple[str, int]:
        return address.lower(), int(chain_id)
