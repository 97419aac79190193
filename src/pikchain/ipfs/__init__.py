"""Content gateway components: resolver, display policy, bulk export."""

from pikchain.ipfs.cids import normalize_cids, unique_cids
from pikchain.ipfs.display import GatewayDisplay
from pikchain.ipfs.export import BulkExporter
from pikchain.ipfs.gateway import GatewayResolver, build_url

__all__ = [
    "BulkExporter",
    "GatewayDisplay",
    "GatewayResolver",
    "build_url",
    "normalize_cids",
    "unique_cids",
]
