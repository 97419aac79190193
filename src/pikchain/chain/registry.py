"""Read-only access to the photo registry contract."""

from __future__ import annotations

import logging
from typing import Any

from pikchain.chain.provider import Web3ChainProvider
from pikchain.ipfs.cids import unique_cids

log = logging.getLogger(__name__)

REGISTRY_ABI: list[dict[str, Any]] = [
    {
        "inputs": [],
        "name": "getCIDs",
        "outputs": [{"internalType": "string[]", "name": "", "type": "string[]"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getUsername",
        "outputs": [{"internalType": "string", "name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "string", "name": "_cid", "type": "string"}],
        "name": "addCID",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "string", "name": "_username", "type": "string"}],
        "name": "setUsername",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


class PhotoRegistry:
    """Per-account reads against the registry. Both views key on ``msg.sender``."""

    def __init__(self, provider: Web3ChainProvider, address: str) -> None:
        self._provider = provider
        self._address = address

    @property
    def address(self) -> str:
        return self._address

    async def get_cids(self, account: str) -> list[str]:
        raw = await self._provider.call_function(
            self._address, REGISTRY_ABI, "getCIDs", sender=account,
        )
        return [str(c).strip() for c in (raw or []) if str(c).strip()]

    async def get_username(self, account: str) -> str:
        raw = await self._provider.call_function(
            self._address, REGISTRY_ABI, "getUsername", sender=account,
        )
        return str(raw or "")

    async def has_cid(self, account: str, cid: str) -> bool:
        """Verify that ``cid`` is recorded for ``account``."""
        return cid.strip() in unique_cids(await self.get_cids(account))
