"""Protocol interfaces for the pikchain components."""

from pikchain.interfaces.chain import ChainProvider, ProviderFactory
from pikchain.interfaces.gateway import ContentResolver
from pikchain.interfaces.store import KeyValueStore

__all__ = [
    "ChainProvider", "ProviderFactory",
    "ContentResolver",
    "KeyValueStore",
]
