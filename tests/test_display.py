"""Interactive display policy: timer advance, error fallback, first load wins."""

from __future__ import annotations

import asyncio

import pytest

from pikchain.exceptions import AllGatewaysExhausted
from pikchain.ipfs.display import GatewayDisplay

GATEWAYS = [
    "https://gw-a.test/ipfs/",
    "https://gw-b.test/ipfs/",
    "https://gw-c.test/ipfs/",
]


def test_starts_at_first_gateway():
    display = GatewayDisplay(" QmPhoto ", GATEWAYS)
    assert display.current_endpoint_index == 0
    assert display.current_url == "https://gw-a.test/ipfs/QmPhoto"
    assert display.loading and not display.loaded


def test_requires_gateways():
    with pytest.raises(ValueError):
        GatewayDisplay("QmPhoto", [])


def test_error_moves_on_and_stops_at_last():
    display = GatewayDisplay("QmPhoto", GATEWAYS)
    seen: list[int] = []
    display.subscribe(seen.append)

    assert display.on_error() is True
    assert display.on_error() is True
    assert display.current_endpoint_index == 2
    assert display.on_error() is False
    assert display.current_endpoint_index == 2
    assert display.exhausted
    assert seen == [1, 2]


def test_error_for_stale_index_ignored():
    display = GatewayDisplay("QmPhoto", GATEWAYS)
    display.advance()
    assert display.on_error(0) is False
    assert display.current_endpoint_index == 1


def test_first_load_wins():
    display = GatewayDisplay("QmPhoto", GATEWAYS)
    display.advance()
    display.advance()
    assert display.on_load(1) is True
    assert display.on_load(2) is False
    assert display.current_endpoint_index == 1
    assert display.loaded and not display.exhausted


def test_no_advance_after_load():
    display = GatewayDisplay("QmPhoto", GATEWAYS)
    display.on_load()
    assert display.advance() is False
    assert display.on_error() is False
    assert display.current_endpoint_index == 0


async def test_timer_advances_until_last():
    display = GatewayDisplay("QmPhoto", GATEWAYS, timeout=0.1)
    display.start()
    await asyncio.sleep(0.15)
    assert display.current_endpoint_index == 1
    await asyncio.sleep(0.1)
    assert display.current_endpoint_index == 2
    await asyncio.sleep(0.15)
    assert display.current_endpoint_index == 2
    display.close()


async def test_load_stops_timer():
    display = GatewayDisplay("QmPhoto", GATEWAYS, timeout=0.03)
    display.start()
    display.on_load(0)
    await asyncio.sleep(0.08)
    assert display.current_endpoint_index == 0
    display.close()


async def test_close_cancels_timer():
    display = GatewayDisplay("QmPhoto", GATEWAYS, timeout=0.03)
    display.start()
    display.close()
    await asyncio.sleep(0.08)
    assert display.current_endpoint_index == 0


async def test_race_slow_gateway_passed_over_by_timer():
    async def load(url: str) -> str:
        if "gw-a" in url:
            await asyncio.sleep(1)
            return "slow"
        return "fast"

    display = GatewayDisplay("QmPhoto", GATEWAYS, timeout=0.03)
    index, result = await display.race(load)

    assert (index, result) == (1, "fast")
    assert display.loaded
    assert display.current_endpoint_index == 1


async def test_race_earlier_load_can_still_win():
    async def load(url: str) -> str:
        if "gw-a" in url:
            await asyncio.sleep(0.06)
            return "late-but-first"
        await asyncio.sleep(1)
        return "never"

    display = GatewayDisplay("QmPhoto", GATEWAYS, timeout=0.03)
    index, result = await display.race(load)

    assert (index, result) == (0, "late-but-first")
    assert display.current_endpoint_index == 0


async def test_race_all_errors_exhausts():
    async def load(url: str) -> str:
        raise OSError(f"broken image {url}")

    display = GatewayDisplay("QmPhoto", GATEWAYS, timeout=5)
    with pytest.raises(AllGatewaysExhausted) as excinfo:
        await display.race(load)

    assert [a.gateway for a in excinfo.value.attempts] == GATEWAYS
    assert display.exhausted
    assert display.current_endpoint_index == 2
