"""Gateway resolver against real local HTTP servers (aiohttp)."""

from __future__ import annotations

import asyncio

import pytest
from aiohttp import web

from pikchain.exceptions import AllGatewaysExhausted
from pikchain.ipfs.export import BulkExporter
from pikchain.ipfs.gateway import GatewayResolver

SLOW_PORT = 9311
GOOD_PORT = 9312

pytestmark = pytest.mark.network


async def _start(app: web.Application, port: int) -> web.AppRunner:
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    return runner


@pytest.fixture
async def slow_gateway():
    """Accepts connections but never answers in time."""
    hits: list[str] = []

    async def handle_slow(request):
        hits.append(request.match_info["cid"])
        await asyncio.sleep(5)
        return web.Response(body=b"too late")

    app = web.Application()
    app.router.add_get("/ipfs/{cid}", handle_slow)
    runner = await _start(app, SLOW_PORT)
    yield f"http://127.0.0.1:{SLOW_PORT}/ipfs/", hits
    await runner.cleanup()


@pytest.fixture
async def good_gateway():
    """Serves a fixed body for known CIDs, 404 otherwise."""
    content = {"QmABC123": b"\xff\xd8\xff-photo"}
    hits: list[str] = []

    async def handle_ipfs(request):
        cid = request.match_info["cid"]
        hits.append(cid)
        if cid in content:
            return web.Response(body=content[cid], content_type="image/jpeg")
        return web.Response(status=404)

    app = web.Application()
    app.router.add_get("/ipfs/{cid}", handle_ipfs)
    runner = await _start(app, GOOD_PORT)
    yield f"http://127.0.0.1:{GOOD_PORT}/ipfs/", hits
    await runner.cleanup()


async def test_slow_host_times_out_then_next_serves(slow_gateway, good_gateway):
    slow_url, slow_hits = slow_gateway
    good_url, good_hits = good_gateway

    async with GatewayResolver([slow_url, good_url], timeout=0.3) as resolver:
        content = await resolver.fetch_content("QmABC123")

    assert content.data == b"\xff\xd8\xff-photo"
    assert content.content_type.startswith("image/jpeg")
    assert content.gateway == good_url
    assert slow_hits == ["QmABC123"]
    assert good_hits == ["QmABC123"]
    assert content.attempts[0].error == "timeout after 0.3s"
    assert content.attempts[1].status == 200


async def test_unknown_cid_exhausts_both(slow_gateway, good_gateway):
    slow_url, _ = slow_gateway
    good_url, _ = good_gateway

    async with GatewayResolver([slow_url, good_url], timeout=0.2) as resolver:
        with pytest.raises(AllGatewaysExhausted) as excinfo:
            await resolver.fetch_content("QmNope")

    attempts = excinfo.value.attempts
    assert len(attempts) == 2
    assert attempts[0].error.startswith("timeout")
    assert attempts[1].status == 404


async def test_bulk_export_continues_past_failures(good_gateway, tmp_path):
    good_url, _ = good_gateway

    async with GatewayResolver([good_url], timeout=2) as resolver:
        exporter = BulkExporter(resolver, delay=0)
        report = await exporter.export(["QmABC123", "QmNope", " QmABC123 "], tmp_path)

    assert report.total == 2
    assert list(report.saved) == ["QmABC123"]
    assert list(report.failed) == ["QmNope"]
    saved = tmp_path / "photoblock-QmABC123.jpeg"
    assert saved.read_bytes() == b"\xff\xd8\xff-photo"
