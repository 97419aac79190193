"""CLI entry point for the pikchain resilience tools."""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import click

from pikchain import __version__
from pikchain.config import load_config
from pikchain.context import ResilienceContext
from pikchain.exceptions import AllGatewaysExhausted, ContractNotReady
from pikchain.ipfs.export import export_filename, unique_path
from pikchain.models.config import ClientConfig
from pikchain.models.records import StaleDataServed
from pikchain.networks import (
    AMOY_CHAIN_ID,
    SUPPORTED_CHAIN_IDS,
    address_url,
    block_url,
    network_label,
    resolve_target_chain_id,
    tx_url,
)


def _context(ctx: click.Context) -> ResilienceContext:
    cfg: ClientConfig = ctx.obj["config"]
    return ResilienceContext.from_config(cfg)


def _require_contract(cfg: ClientConfig, chain_id: int) -> str:
    """Exit with error if no contract address is configured for the chain."""
    address = cfg.chain.contract_address(chain_id)
    if not address:
        click.echo(f"Error: No contract address configured for chain {chain_id}.", err=True)
        click.echo("Set PIKCHAIN_CONTRACT_ADDRESS or check the deployments file.", err=True)
        sys.exit(1)
    return address


def _when(ms: int | None) -> str:
    if not ms:
        return "-"
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _warn_stale(stale: StaleDataServed) -> None:
    age = "expired" if stale.expired else "cached"
    click.echo(f"Warning: showing {age} data for {stale.key} ({stale.error})", err=True)


chain_option = click.option(
    "--chain-id", type=int, default=AMOY_CHAIN_ID, show_default=True,
    help="Chain id (31337, 1337 or 80002)",
)


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Path to config TOML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="pikchain")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """pikchain - resilient gateway, cache and transaction tooling."""
    ctx.ensure_object(dict)
    cfg = load_config(config_path)
    ctx.obj["config"] = cfg

    level = logging.DEBUG if verbose else getattr(logging, cfg.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ── Info ───────────────────────────────────────────────


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show resolved configuration."""
    cfg: ClientConfig = ctx.obj["config"]
    click.echo(f"Gateways:   {', '.join(cfg.gateway.ordered_gateways())}")
    click.echo(f"Local IPFS: {cfg.gateway.use_local_ipfs}")
    click.echo(f"Timeout:    {cfg.gateway.timeout:g}s per gateway")
    for chain_id in SUPPORTED_CHAIN_IDS:
        urls = cfg.chain.rpc_urls.get(chain_id, [])
        click.echo(f"{network_label(chain_id)}")
        click.echo(f"  RPC:      {urls[0] if urls else '(not set)'}"
                   + (f" (+{len(urls) - 1} fallback)" if len(urls) > 1 else ""))
        click.echo(f"  Contract: {cfg.chain.contract_address(chain_id) or '(not set)'}")
    click.echo(f"Cache:      {cfg.cache_prefix} (ttl {cfg.cache_ttl:g}s)")
    click.echo(f"DB path:    {cfg.db_path}")


@cli.command()
@chain_option
@click.option("--address", default=None, help="Contract address (defaults to configured)")
@click.pass_context
def probe(ctx: click.Context, chain_id: int, address: str | None) -> None:
    """Check that the registry contract is deployed."""
    cfg: ClientConfig = ctx.obj["config"]
    target = resolve_target_chain_id(chain_id)
    address = address or _require_contract(cfg, target)

    async def _probe():
        async with _context(ctx) as rc:
            ready = await rc.prober.is_ready(address, target)
        click.echo(f"Network:  {network_label(target)}")
        click.echo(f"Contract: {address}")
        click.echo(f"Explorer: {address_url(address, target, cfg.chain.explorer_urls)}")
        if ready:
            click.echo("Status:   READY")
        else:
            click.echo("Status:   NOT DEPLOYED (or RPC unreachable)", err=True)
            sys.exit(1)

    asyncio.run(_probe())


# ── Content ────────────────────────────────────────────


@cli.command()
@click.argument("cid")
@click.option("-o", "--output", default=None, help="Output file (defaults to photoblock-<cid>.<ext>)")
@click.pass_context
def fetch(ctx: click.Context, cid: str, output: str | None) -> None:
    """Fetch one CID through the gateway fallback chain."""

    async def _fetch():
        async with _context(ctx) as rc:
            try:
                content = await rc.resolver.fetch_content(cid)
            except AllGatewaysExhausted as exc:
                click.echo(f"Error: {exc.message}", err=True)
                for attempt in exc.attempts:
                    click.echo(f"  {attempt.gateway}: {attempt.error or attempt.status}", err=True)
                sys.exit(1)

        if output:
            path = Path(output)
        else:
            path = unique_path(Path("."), export_filename(content.cid, content.content_type))
        path.write_bytes(content.data)
        click.echo(f"Saved {len(content.data)} bytes ({content.content_type}) to {path}")
        click.echo(f"  Gateway:  {content.gateway}")
        click.echo(f"  Attempts: {len(content.attempts)}")

    asyncio.run(_fetch())


@cli.command()
@click.argument("cids", nargs=-1, required=True)
@click.option("-d", "--dir", "out_dir", default=".", show_default=True, help="Output directory")
@click.pass_context
def export(ctx: click.Context, cids: tuple[str, ...], out_dir: str) -> None:
    """Download several CIDs; failures do not stop the batch."""

    async def _export():
        async with _context(ctx) as rc:
            report = await rc.exporter.export(cids, out_dir)

        for cid, path in report.saved.items():
            click.echo(f"  [saved ] {cid[:24]} -> {path}")
        for cid, reason in report.failed.items():
            click.echo(f"  [failed] {cid[:24]} {reason}")
        click.echo(f"{len(report.saved)}/{report.total} exported")
        if report.failed:
            sys.exit(1)

    asyncio.run(_export())


@cli.command()
@click.argument("account")
@chain_option
@click.pass_context
def gallery(ctx: click.Context, account: str, chain_id: int) -> None:
    """Show an account's username and CIDs (served from cache if RPC fails)."""
    cfg: ClientConfig = ctx.obj["config"]
    target = resolve_target_chain_id(chain_id)
    _require_contract(cfg, target)

    async def _gallery():
        async with _context(ctx) as rc:
            try:
                username = await rc.get_username(account, target, on_stale=_warn_stale)
                cids = await rc.get_cids(account, target, on_stale=_warn_stale)
            except ContractNotReady as exc:
                click.echo(f"Error: {exc.message}", err=True)
                sys.exit(1)

        click.echo(f"Account:  {account}")
        click.echo(f"Username: {username or '(none)'}")
        click.echo(f"Photos:   {len(cids)}")
        for cid in cids:
            click.echo(f"  {cid}")

    asyncio.run(_gallery())


# ── Transactions ───────────────────────────────────────


@cli.group()
def txs():
    """Tracked transaction history."""
    pass


@txs.command("list")
@click.argument("account")
@chain_option
@click.pass_context
def txs_list(ctx: click.Context, account: str, chain_id: int) -> None:
    """List tracked transactions, newest first."""
    cfg: ClientConfig = ctx.obj["config"]

    async def _list():
        async with _context(ctx) as rc:
            items = await rc.tracker.list(chain_id, account)
        if not items:
            click.echo("No tracked transactions.")
            return
        for tx in items:
            block = f"block={tx.block_number}" if tx.block_number is not None else "block=-"
            click.echo(f"  [{tx.status.value:10s}] {tx.hash[:18]}... {tx.action or '-':12s} "
                       f"{block} at={_when(tx.created_at)}")
            click.echo(f"      {tx_url(tx.hash, chain_id, cfg.chain.explorer_urls)}")

    asyncio.run(_list())


@txs.command("track")
@click.argument("account")
@click.argument("tx_hash")
@click.option("--action", default="", help="Action label (e.g. addCID)")
@click.option("--cid", default=None, help="CID the transaction records")
@chain_option
@click.pass_context
def txs_track(
    ctx: click.Context, account: str, tx_hash: str, action: str, cid: str | None, chain_id: int,
) -> None:
    """Record a submitted transaction as pending."""
    cfg: ClientConfig = ctx.obj["config"]
    address = _require_contract(cfg, chain_id)

    async def _track():
        async with _context(ctx) as rc:
            try:
                tx = await rc.record_write(
                    chain_id, account, tx_hash, action, cid=cid,
                    contract_address=address, watch=False,
                )
            except ContractNotReady as exc:
                click.echo(f"Error: {exc.message}", err=True)
                sys.exit(1)
        click.echo(f"Tracking {tx.hash} ({tx.status.value})")

    asyncio.run(_track())


@txs.command("watch")
@click.argument("account")
@click.argument("tx_hash")
@chain_option
@click.pass_context
def txs_watch(ctx: click.Context, account: str, tx_hash: str, chain_id: int) -> None:
    """Wait until a transaction is mined and record the outcome."""
    cfg: ClientConfig = ctx.obj["config"]

    async def _watch():
        async with _context(ctx) as rc:
            click.echo(f"Waiting for {tx_hash} on {network_label(chain_id)}...")
            tx = await rc.tracker.wait_for_settlement(
                chain_id, account, tx_hash, cfg.chain.confirmations,
            )
        if tx is None:
            return
        click.echo(f"Status: {tx.status.value}")
        if tx.block_number is not None:
            click.echo(f"  Block: {tx.block_number} "
                       f"({block_url(tx.block_number, chain_id, cfg.chain.explorer_urls)})")
        click.echo(f"  Gas:   {tx.gas_used}")
        click.echo(f"  Mined: {_when(tx.block_timestamp)}")

    asyncio.run(_watch())


@txs.command("reconcile")
@click.argument("account")
@chain_option
@click.pass_context
def txs_reconcile(ctx: click.Context, account: str, chain_id: int) -> None:
    """Look up receipts for every unsettled transaction."""

    async def _reconcile():
        async with _context(ctx) as rc:
            report = await rc.tracker.reconcile_all(chain_id, account)
        click.echo(f"Updated:       {len(report.updated)}")
        click.echo(f"Still pending: {len(report.still_pending)}")
        click.echo(f"Skipped:       {len(report.skipped)}")
        click.echo(f"Errors:        {len(report.errors)}")
        for tx_hash, reason in report.errors.items():
            click.echo(f"  {tx_hash[:18]}... {reason}", err=True)

    asyncio.run(_reconcile())


@txs.command("remove")
@click.argument("account")
@click.argument("tx_hash")
@chain_option
@click.pass_context
def txs_remove(ctx: click.Context, account: str, tx_hash: str, chain_id: int) -> None:
    """Forget a tracked transaction."""

    async def _remove():
        async with _context(ctx) as rc:
            removed = await rc.tracker.remove(chain_id, account, tx_hash)
        click.echo("Removed." if removed else "Not tracked.")

    asyncio.run(_remove())


# ── Cache ──────────────────────────────────────────────


@cli.group()
def cache():
    """Read-through cache maintenance."""
    pass


@cache.command("clear")
@click.option("--account", default=None, help="Only clear entries for this account")
@chain_option
@click.pass_context
def cache_clear(ctx: click.Context, account: str | None, chain_id: int) -> None:
    """Drop cached reads."""

    async def _clear():
        async with _context(ctx) as rc:
            if account:
                await rc.cache.invalidate_all_for_account(account, chain_id)
                click.echo(f"Cleared cache for {account} on chain {chain_id}.")
            else:
                removed = await rc.cache.clear_all()
                click.echo(f"Cleared {removed} cache entries.")

    asyncio.run(_clear())


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
