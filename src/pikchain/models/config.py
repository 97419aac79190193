"""Configuration models for the resilience core."""

from __future__ import annotations

from dataclasses import dataclass, field

PUBLIC_GATEWAYS = [
    "https://ipfs.io/ipfs/",
    "https://cloudflare-ipfs.com/ipfs/",
    "https://gateway.pinata.cloud/ipfs/",
    "https://gateway.ipfs.io/ipfs/",
]
LOCAL_GATEWAY = "http://localhost:3001/ipfs/"

DEFAULT_AMOY_RPC_URL = "https://rpc-amoy.polygon.technology"
FALLBACK_AMOY_RPCS = [
    DEFAULT_AMOY_RPC_URL,
    "https://polygon-amoy-bor-rpc.publicnode.com",
    "https://rpc.ankr.com/polygon_amoy",
    "https://polygon-amoy.drpc.org",
]
LOCAL_RPC_URL = "http://127.0.0.1:8545"


@dataclass
class GatewayConfig:
    """Content gateway list and fetch bounds."""

    gateways: list[str] = field(default_factory=lambda: list(PUBLIC_GATEWAYS))
    use_local_ipfs: bool = False
    timeout: float = 10.0  # seconds per gateway request
    display_timeout: float = 3.0  # seconds before the display moves on
    user_agent: str = "Mozilla/5.0"
    max_content_size: int | None = None
    export_delay: float = 0.5  # seconds between bulk downloads

    def ordered_gateways(self) -> list[str]:
        if self.use_local_ipfs and LOCAL_GATEWAY not in self.gateways:
            return [LOCAL_GATEWAY, *self.gateways]
        return list(self.gateways)


@dataclass
class ChainConfig:
    """RPC endpoints and contract deployments per chain id."""

    rpc_urls: dict[int, list[str]] = field(
        default_factory=lambda: {
            31337: [LOCAL_RPC_URL],
            1337: [LOCAL_RPC_URL],
            80002: list(FALLBACK_AMOY_RPCS),
        }
    )
    contract_addresses: dict[int, str] = field(default_factory=dict)
    default_contract_address: str = ""
    explorer_urls: dict[int, str] = field(default_factory=dict)
    request_timeout: float = 10.0
    poll_interval: float = 2.0  # seconds between receipt polls
    confirmations: int = 1

    def contract_address(self, chain_id: int) -> str:
        return self.contract_addresses.get(chain_id) or self.default_contract_address


@dataclass
class ClientConfig:
    """Complete resilience-core configuration."""

    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    chain: ChainConfig = field(default_factory=ChainConfig)

    # Cache
    cache_prefix: str = "photoblock_v1"
    cache_ttl: float = 300.0  # seconds

    # Transaction history
    tx_history_cap: int = 200

    # Storage
    db_path: str = "~/.pikchain/state.db"
    store_max_bytes: int = 5 * 1024 * 1024

    log_level: str = "info"
