"""Configuration loading: TOML file + environment variables + deployments file."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

from pikchain.chain.provider import rpc_url_list
from pikchain.models.config import ClientConfig, FALLBACK_AMOY_RPCS
from pikchain.networks import AMOY_CHAIN_ID, normalize_chain_id

log = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "PIKCHAIN_",
) -> ClientConfig:
    """Load client configuration from TOML file, env vars and deployments.

    Priority (highest wins):
        1. Environment variables (PIKCHAIN_AMOY_RPC_URL, etc.)
        2. TOML config file
        3. Defaults from ClientConfig
    """
    raw: dict = {}
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    cfg = ClientConfig()

    # ── Gateway section ────────────────────────────────────
    gateway = raw.get("gateway", {})
    if v := gateway.get("gateways"):
        cfg.gateway.gateways = [str(g) for g in v]
    if "use_local_ipfs" in gateway:
        cfg.gateway.use_local_ipfs = bool(gateway["use_local_ipfs"])
    if v := gateway.get("timeout"):
        cfg.gateway.timeout = float(v)
    if v := gateway.get("display_timeout"):
        cfg.gateway.display_timeout = float(v)
    if v := gateway.get("user_agent"):
        cfg.gateway.user_agent = str(v)
    if v := gateway.get("max_content_size"):
        cfg.gateway.max_content_size = int(v)
    if "export_delay" in gateway:
        cfg.gateway.export_delay = float(gateway["export_delay"])

    # ── Chain section ──────────────────────────────────────
    chain = raw.get("chain", {})
    for chain_key, urls in chain.get("rpc_urls", {}).items():
        chain_id = normalize_chain_id(chain_key)
        if chain_id is not None:
            cfg.chain.rpc_urls[chain_id] = rpc_url_list(urls)
    for chain_key, address in chain.get("contracts", {}).items():
        chain_id = normalize_chain_id(chain_key)
        if chain_id is not None:
            cfg.chain.contract_addresses[chain_id] = str(address)
    if v := chain.get("contract_address"):
        cfg.chain.default_contract_address = str(v)
    if v := chain.get("request_timeout"):
        cfg.chain.request_timeout = float(v)
    if v := chain.get("poll_interval"):
        cfg.chain.poll_interval = float(v)
    if v := chain.get("confirmations"):
        cfg.chain.confirmations = int(v)

    if deployments := chain.get("deployments_path"):
        _load_deployments(cfg, deployments)

    # ── Cache section ──────────────────────────────────────
    cache = raw.get("cache", {})
    if v := cache.get("prefix"):
        cfg.cache_prefix = str(v)
    if v := cache.get("ttl"):
        cfg.cache_ttl = float(v)
    if v := cache.get("tx_history_cap"):
        cfg.tx_history_cap = int(v)

    # ── Storage section ────────────────────────────────────
    storage = raw.get("storage", {})
    if v := storage.get("db_path"):
        cfg.db_path = str(v)
    if v := storage.get("max_bytes"):
        cfg.store_max_bytes = int(v)

    # ── Logging section ────────────────────────────────────
    if v := raw.get("logging", {}).get("level"):
        cfg.log_level = str(v)

    # ── Environment variable overrides (highest priority) ──
    if (local := os.environ.get(f"{env_prefix}USE_LOCAL_IPFS")) is not None:
        cfg.gateway.use_local_ipfs = local.strip().lower() in _TRUTHY
    single = os.environ.get(f"{env_prefix}AMOY_RPC_URL")
    multi = os.environ.get(f"{env_prefix}AMOY_RPC_URLS")
    if single or multi:
        cfg.chain.rpc_urls[AMOY_CHAIN_ID] = rpc_url_list(single, multi, FALLBACK_AMOY_RPCS)
    if address := os.environ.get(f"{env_prefix}CONTRACT_ADDRESS"):
        cfg.chain.default_contract_address = address
    if db_path := os.environ.get(f"{env_prefix}DB_PATH"):
        cfg.db_path = db_path
    if level := os.environ.get(f"{env_prefix}LOG_LEVEL"):
        cfg.log_level = level

    # Expand ~ in paths
    if cfg.db_path != ":memory:":
        cfg.db_path = str(Path(cfg.db_path).expanduser())

    return cfg


def _load_deployments(cfg: ClientConfig, deployments_path: str) -> None:
    """Load contract addresses and explorer links from a Config.json file.

    Layout: ``{"CONTRACT_ADDRESS": ..., "NETWORKS": {"80002": {"CONTRACT_ADDRESS":
    ..., "SCAN_LINK": ...}}}``.
    """
    p = Path(deployments_path).expanduser()
    if not p.is_absolute():
        # Try relative to CWD
        p = Path.cwd() / p
    if not p.exists():
        log.debug("No deployments file at %s", p)
        return

    with open(p) as f:
        data = json.load(f)

    if address := data.get("CONTRACT_ADDRESS"):
        cfg.chain.default_contract_address = str(address)

    for chain_key, network in (data.get("NETWORKS") or {}).items():
        chain_id = normalize_chain_id(chain_key)
        if chain_id is None or not isinstance(network, dict):
            continue
        if address := network.get("CONTRACT_ADDRESS"):
            cfg.chain.contract_addresses.setdefault(chain_id, str(address))
        if scan := network.get("SCAN_LINK"):
            cfg.chain.explorer_urls[chain_id] = str(scan)
