"""Network identity: chain id coercion, target resolution, explorer links."""

from __future__ import annotations

import pytest

from pikchain.networks import (
    AMOY_CHAIN_ID,
    DEFAULT_EXPLORER_URL,
    address_url,
    block_url,
    explorer_base_url,
    is_local_chain,
    is_supported_chain,
    network_label,
    normalize_chain_id,
    resolve_target_chain_id,
    switch_hint,
    tx_url,
)


@pytest.mark.parametrize("raw,expected", [
    (80002, 80002),
    ("80002", 80002),
    ("0x13882", 80002),
    ("0X7A69", 31337),
    (" 1337 ", 1337),
    ("banana", None),
    (None, None),
    (True, None),
    (3.5, None),
])
def test_normalize_chain_id(raw, expected):
    assert normalize_chain_id(raw) == expected


def test_local_and_supported():
    assert is_local_chain(31337)
    assert is_local_chain("0x539")
    assert not is_local_chain(80002)
    assert is_supported_chain("0x13882")
    assert not is_supported_chain(1)


@pytest.mark.parametrize("raw,expected", [
    (31337, 31337),
    (1337, 1337),
    ("0x13882", AMOY_CHAIN_ID),
    (80002, AMOY_CHAIN_ID),
    (1, 31337),
    (137, 31337),
    (None, 31337),
    ("garbage", 31337),
])
def test_resolve_target_chain_id_always_returns_supported(raw, expected):
    result = resolve_target_chain_id(raw)
    assert result == expected
    assert is_supported_chain(result)


def test_labels():
    assert network_label(80002) == "Polygon Amoy (80002)"
    assert network_label(1337) == "Localhost (chain 1337)"
    assert network_label(31337) == "Localhost (Hardhat 31337)"
    assert network_label(999) == "Localhost (Hardhat 31337)"
    assert switch_hint("0x13882") == "Polygon Amoy (80002)"
    assert switch_hint(31337) == "Localhost (chain 31337)"


def test_explorer_defaults_to_amoy():
    assert explorer_base_url() == DEFAULT_EXPLORER_URL
    assert tx_url("0xabc") == "https://amoy.polygonscan.com/tx/0xabc"
    assert block_url(42) == "https://amoy.polygonscan.com/block/42"
    assert address_url("0x1") == "https://amoy.polygonscan.com/address/0x1"


def test_explorer_override_cut_back_to_base():
    overrides = {80002: "https://scan.example.org/address/0x5FbDB2315678afecb367f032d93F642f64180aa3"}
    assert explorer_base_url(80002, overrides) == "https://scan.example.org"
    assert tx_url("0xabc", 80002, overrides) == "https://scan.example.org/tx/0xabc"


def test_explorer_override_trailing_slash():
    assert explorer_base_url(31337, {31337: "http://localhost:4000/"}) == "http://localhost:4000"
