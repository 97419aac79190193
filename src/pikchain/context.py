"""Resilience context - wires store, cache, prober, tracker and resolver together."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from pikchain.cache import ReadThroughCache, StaleListener
from pikchain.chain.prober import ContractReadinessProber
from pikchain.chain.provider import Web3ChainProvider
from pikchain.chain.registry import PhotoRegistry
from pikchain.chain.tracker import TransactionTracker
from pikchain.exceptions import ContractNotReady
from pikchain.interfaces.chain import ChainProvider, ProviderFactory
from pikchain.interfaces.store import KeyValueStore
from pikchain.ipfs.export import BulkExporter
from pikchain.ipfs.gateway import GatewayResolver
from pikchain.models.config import ClientConfig
from pikchain.models.records import TrackedTransaction, TxStatus
from pikchain.storage.sqlite import SQLiteKeyValueStore

log = logging.getLogger(__name__)


class ResilienceContext:
    """Session-wide owner of the resilience components.

    One store backs both the cache and the transaction history. Providers
    are built lazily per chain id and reused. A successful settlement
    invalidates every cached read for the account on that chain.
    """

    def __init__(
        self,
        cfg: ClientConfig,
        store: KeyValueStore | None = None,
        provider_factory: ProviderFactory | None = None,
        resolver: GatewayResolver | None = None,
    ) -> None:
        self._cfg = cfg
        self._providers: dict[int, ChainProvider] = {}
        self._provider_factory = provider_factory or self._build_provider

        self.store = store or SQLiteKeyValueStore(cfg.db_path, cfg.store_max_bytes)
        self.cache = ReadThroughCache(
            self.store, default_ttl=cfg.cache_ttl, prefix=cfg.cache_prefix,
        )
        self.prober = ContractReadinessProber(self.provider_for)
        self.tracker = TransactionTracker(
            self.store,
            self.provider_for,
            cap=cfg.tx_history_cap,
            on_settled=self._on_settled,
        )
        self.resolver = resolver or GatewayResolver(
            cfg.gateway.ordered_gateways(),
            timeout=cfg.gateway.timeout,
            user_agent=cfg.gateway.user_agent,
            max_content_size=cfg.gateway.max_content_size,
        )
        self.exporter = BulkExporter(self.resolver, delay=cfg.gateway.export_delay)

    @classmethod
    def from_config(cls, cfg: ClientConfig) -> ResilienceContext:
        return cls(cfg)

    @property
    def config(self) -> ClientConfig:
        return self._cfg

    # ── Lifecycle ──────────────────────────────────────────

    async def initialize(self) -> None:
        await self.store.initialize()
        log.debug("Resilience context ready (db=%s)", self._cfg.db_path)

    async def close(self) -> None:
        watches = self.tracker.active_watches()
        self.tracker.abort_all()
        await asyncio.gather(*(w.wait() for w in watches), return_exceptions=True)
        await self.resolver.aclose()
        await self.store.close()

    async def __aenter__(self) -> ResilienceContext:
        await self.initialize()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── Chains ─────────────────────────────────────────────

    def provider_for(self, chain_id: int) -> ChainProvider:
        provider = self._providers.get(chain_id)
        if provider is None:
            provider = self._provider_factory(chain_id)
            self._providers[chain_id] = provider
        return provider

    def _build_provider(self, chain_id: int) -> ChainProvider:
        return Web3ChainProvider(
            self._cfg.chain.rpc_urls.get(chain_id, []),
            chain_id,
            request_timeout=self._cfg.chain.request_timeout,
            poll_interval=self._cfg.chain.poll_interval,
        )

    def contract_address(self, chain_id: int) -> str:
        return self._cfg.chain.contract_address(chain_id)

    def registry(self, chain_id: int, address: str | None = None) -> PhotoRegistry:
        provider = self.provider_for(chain_id)
        if not isinstance(provider, Web3ChainProvider):
            raise TypeError(f"chain {chain_id} provider cannot run contract calls")
        return PhotoRegistry(provider, address or self.contract_address(chain_id))

    # ── Reads and writes ───────────────────────────────────

    async def read_account_value(
        self,
        name: str,
        account: str,
        chain_id: int,
        fresh_fn: Callable[[], Awaitable[Any]],
        contract_address: str | None = None,
        ttl: float | None = None,
        on_stale: StaleListener | None = None,
    ) -> Any:
        """Read-through one per-account value, gated on contract readiness.

        When the contract is not ready the fresh source is skipped and only
        the cache answers; with nothing cached ContractNotReady is raised.
        Without any contract address the read is not gated.
        """
        key = self.cache.keys.for_account(name, account, chain_id)
        address = contract_address or self.contract_address(chain_id)

        if address and not await self.prober.is_ready(address, chain_id):
            async def _unavailable() -> Any:
                raise ContractNotReady(address, chain_id)
            return await self.cache.read_through(key, _unavailable, ttl, on_stale)

        return await self.cache.read_through(key, fresh_fn, ttl, on_stale)

    async def get_cids(
        self, account: str, chain_id: int, on_stale: StaleListener | None = None,
    ) -> list[str]:
        registry = self.registry(chain_id)
        return await self.read_account_value(
            "cids", account, chain_id,
            lambda: registry.get_cids(account),
            contract_address=registry.address,
            on_stale=on_stale,
        )

    async def get_username(
        self, account: str, chain_id: int, on_stale: StaleListener | None = None,
    ) -> str:
        registry = self.registry(chain_id)
        return await self.read_account_value(
            "username", account, chain_id,
            lambda: registry.get_username(account),
            contract_address=registry.address,
            on_stale=on_stale,
        )

    async def record_write(
        self,
        chain_id: int,
        account: str,
        tx_hash: str,
        action: str,
        cid: str | None = None,
        contract_address: str | None = None,
        watch: bool = True,
    ) -> TrackedTransaction:
        """Record a submitted write and optionally start following it.

        Raises ContractNotReady before anything is recorded when no code is
        deployed at the target address.
        """
        address = contract_address or self.contract_address(chain_id)
        await self.prober.require_ready(address, chain_id)
        tx = await self.tracker.record_submission(
            chain_id, account, tx_hash, address, action, cid=cid,
        )
        if watch:
            self.tracker.watch(chain_id, account, tx_hash, self._cfg.chain.confirmations)
        return tx

    async def _on_settled(self, chain_id: int, account: str, tx: TrackedTransaction) -> None:
        if tx.status is TxStatus.SUCCESS:
            await self.cache.invalidate_all_for_account(account, chain_id)
