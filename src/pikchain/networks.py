"""Network identity: supported chains, target resolution, labels and links."""

from __future__ import annotations

import re
from typing import Mapping

DEFAULT_LOCAL_CHAIN_ID = 31337
LEGACY_LOCAL_CHAIN_ID = 1337
AMOY_CHAIN_ID = 80002

LOCAL_CHAIN_IDS = (DEFAULT_LOCAL_CHAIN_ID, LEGACY_LOCAL_CHAIN_ID)
SUPPORTED_CHAIN_IDS = (*LOCAL_CHAIN_IDS, AMOY_CHAIN_ID)

DEFAULT_EXPLORER_URL = "https://amoy.polygonscan.com"

_ADDRESS_SUFFIX = re.compile(r"/address/.+$", re.IGNORECASE)


def normalize_chain_id(raw: object) -> int | None:
    """Coerce an int, decimal string or 0x-hex string to a chain id."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        text = raw.strip()
        try:
            if text.lower().startswith("0x"):
                return int(text, 16)
            return int(text)
        except ValueError:
            return None
    return None


def is_local_chain(raw: object) -> bool:
    return normalize_chain_id(raw) in LOCAL_CHAIN_IDS


def is_supported_chain(raw: object) -> bool:
    return normalize_chain_id(raw) in SUPPORTED_CHAIN_IDS


def resolve_target_chain_id(raw: object) -> int:
    """Pick the chain the session should talk to. Always returns an id.

    Supported local ids are kept as-is, any other supported id maps to the
    public network, and anything else falls back to the default local id.
    """
    chain_id = normalize_chain_id(raw)
    if chain_id is not None and chain_id in SUPPORTED_CHAIN_IDS:
        return chain_id if chain_id in LOCAL_CHAIN_IDS else AMOY_CHAIN_ID
    return DEFAULT_LOCAL_CHAIN_ID


def network_label(raw: object) -> str:
    chain_id = normalize_chain_id(raw)
    if chain_id == AMOY_CHAIN_ID:
        return "Polygon Amoy (80002)"
    if chain_id == LEGACY_LOCAL_CHAIN_ID:
        return "Localhost (chain 1337)"
    return "Localhost (Hardhat 31337)"


def switch_hint(raw: object) -> str:
    """Human-readable name of the network a wallet should switch to."""
    chain_id = normalize_chain_id(raw)
    if chain_id == AMOY_CHAIN_ID:
        return "Polygon Amoy (80002)"
    if chain_id == LEGACY_LOCAL_CHAIN_ID:
        return "Localhost (chain 1337)"
    return "Localhost (chain 31337)"


# ── Explorer links ─────────────────────────────────────


def explorer_base_url(
    chain_id: int = AMOY_CHAIN_ID,
    overrides: Mapping[int, str] | None = None,
) -> str:
    """Explorer root for a chain; an address-page URL is cut back to its root."""
    url = (overrides or {}).get(chain_id)
    if not url:
        return DEFAULT_EXPLORER_URL
    return _ADDRESS_SUFFIX.sub("", url).rstrip("/")


def tx_url(tx_hash: str, chain_id: int = AMOY_CHAIN_ID,
           overrides: Mapping[int, str] | None = None) -> str:
    return f"{explorer_base_url(chain_id, overrides)}/tx/{tx_hash}"


def block_url(block_number: int, chain_id: int = AMOY_CHAIN_ID,
              overrides: Mapping[int, str] | None = None) -> str:
    return f"{explorer_base_url(chain_id, overrides)}/block/{block_number}"


def address_url(address: str, chain_id: int = AMOY_CHAIN_ID,
                overrides: Mapping[int, str] | None = None) -> str:
    return f"{explorer_base_url(chain_id, overrides)}/address/{address}"
