"""Shared fixtures for pikchain tests."""

from __future__ import annotations

import pytest
from pytest_metadata.plugin import metadata_key

from pikchain.cache import ReadThroughCache
from pikchain.chain.prober import ContractReadinessProber
from pikchain.chain.tracker import TransactionTracker
from pikchain.models.config import ClientConfig
from pikchain.storage.memory import MemoryKeyValueStore
from pikchain.storage.sqlite import SQLiteKeyValueStore

from tests.factories import ACCOUNT, CONTRACT
from tests.mocks import MockChainProvider

CHAIN_ID = 80002
EXPLORER_BASE = "https://amoy.polygonscan.com"


def explorer_link(kind: str, id: str, label: str | None = None) -> str:
    """Build an HTML anchor to the block explorer for the report."""
    url = f"{EXPLORER_BASE}/{kind}/{id}"
    text = label or f"{id[:8]}...{id[-4:]}"
    return f'<a href="{url}" target="_blank">{text}</a>'


# ── Report metadata & explorer links ─────────────────────────────


def pytest_configure(config):
    """Add network info to the HTML report Environment table."""
    meta = config.stash.setdefault(metadata_key, {})
    meta["Network"] = "Polygon Amoy (80002)"
    meta["Registry Contract"] = CONTRACT
    meta["Test Account"] = ACCOUNT


def pytest_html_results_summary(prefix, summary, postfix):
    """Inject clickable explorer links into the report summary."""
    prefix.append(
        '<div style="margin:8px 0;padding:10px;background:#f8f9fa;border:1px solid #dee2e6;'
        'border-radius:4px;font-family:monospace;font-size:13px;">'
        "<strong>Polygon Amoy Explorer Links</strong><br/>"
        f'Registry: {explorer_link("address", CONTRACT, CONTRACT)}<br/>'
        f'Account: {explorer_link("address", ACCOUNT, ACCOUNT)}'
        "</div>"
    )


class FakeClock:
    """Settable wall clock in epoch seconds."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_test_config(**overrides) -> ClientConfig:
    """Build a ClientConfig suitable for testing."""
    cfg = ClientConfig(db_path=":memory:")
    cfg.chain.contract_addresses[CHAIN_ID] = CONTRACT
    cfg.chain.poll_interval = 0.01
    cfg.gateway.export_delay = 0
    for name, value in overrides.items():
        setattr(cfg, name, value)
    return cfg


@pytest.fixture
def test_config():
    """Default ClientConfig for tests."""
    return make_test_config()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def mem_store():
    s = MemoryKeyValueStore()
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
async def store():
    """Initialized in-memory SQLiteKeyValueStore."""
    s = SQLiteKeyValueStore(":memory:")
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def cache(store, clock):
    return ReadThroughCache(store, default_ttl=300, clock=clock)


@pytest.fixture
def provider():
    return MockChainProvider(CHAIN_ID)


@pytest.fixture
def provider_for(provider):
    return lambda chain_id: provider


@pytest.fixture
def tracker(store, provider_for, clock):
    return TransactionTracker(store, provider_for, clock=clock)


@pytest.fixture
def prober(provider_for):
    return ContractReadinessProber(provider_for)
