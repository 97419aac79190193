"""ContentResolver protocol - retrieves content bytes by CID."""

from __future__ import annotations

from typing import Protocol

from pikchain.models.records import GatewayContent


class ContentResolver(Protocol):
    """Resolves a CID to bytes through an ordered list of gateways."""

    @property
    def gateways(self) -> list[str]:
        ...

    async def fetch_content(self, cid: str, start_index: int = 0) -> GatewayContent:
        """Return the first successful response. Raises AllGatewaysExhausted."""
        ...
