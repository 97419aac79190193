"""Transaction lifecycle tracker - pending -> confirming -> success | failed.

Submitted transactions are persisted per (chain, account) as a newest-first
list capped at a fixed size. Two mechanisms move them to a terminal state:

- active wait: follow one just-submitted transaction until it is mined
- passive reconciliation: on load, look up receipts for every entry that
  still lacks block data, tolerating per-entry failures
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import replace
from typing import Any, Awaitable, Callable

from pikchain.exceptions import ReceiptUnavailable
from pikchain.interfaces.chain import ChainProvider, ProviderFactory
from pikchain.interfaces.store import KeyValueStore
from pikchain.models.chain import Receipt
from pikchain.models.records import ReconcileReport, TrackedTransaction, TxStatus
from pikchain.storage.lists import JsonListStore

log = logging.getLogger(__name__)

HISTORY_PREFIX = "pikchain:txs"
DEFAULT_CAP = 200

SettledListener = Callable[[int, str, TrackedTransaction], "Awaitable[None] | None"]


def history_key(chain_id: int, account: str) -> str:
    return f"{HISTORY_PREFIX}:{chain_id}:{account.lower()}"


def merge_transactions(
    old: TrackedTransaction,
    new: TrackedTransaction,
    keep_created_at: bool = True,
) -> TrackedTransaction:
    """Combine an update with the stored entry for the same hash.

    Status never moves backward and a settled status never changes. Known
    block data is kept when the update does not carry it.
    """
    if old.status.is_terminal or new.status.rank < old.status.rank:
        status = old.status
    else:
        status = new.status

    created_at = old.created_at if keep_created_at or new.created_at is None else new.created_at
    return TrackedTransaction(
        hash=old.hash,
        contract_address=new.contract_address or old.contract_address,
        action=new.action or old.action,
        created_at=created_at if created_at is not None else new.created_at,
        status=status,
        cid=new.cid if new.cid is not None else old.cid,
        block_number=new.block_number if new.block_number is not None else old.block_number,
        gas_used=new.gas_used if new.gas_used is not None else old.gas_used,
        block_timestamp=(
            new.block_timestamp if new.block_timestamp is not None else old.block_timestamp
        ),
    )


def _created_order(item: dict[str, Any]) -> int:
    return int(item.get("created_at") or 0)


class WatchHandle:
    """Handle on an active wait started with ``TransactionTracker.watch``.

    ``cancel()`` drops the continuation: whatever the in-flight RPC call
    returns is ignored and nothing is written. ``abort()`` also stops the
    underlying task, for shutdown.
    """

    def __init__(self, tx_hash: str) -> None:
        self.tx_hash = tx_hash
        self._cancelled = False
        self._task: asyncio.Task[TrackedTransaction | None] | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def cancel(self) -> None:
        self._cancelled = True

    def abort(self) -> None:
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> TrackedTransaction | None:
        """Settled entry, or None when the watch was cancelled."""
        assert self._task is not None, "watch not started"
        try:
            return await self._task
        except asyncio.CancelledError:
            if self._cancelled:
                return None
            raise


class TransactionTracker:
    """Owns persisted transaction history and its settlement state machine."""

    def __init__(
        self,
        store: KeyValueStore,
        provider_for: ProviderFactory,
        cap: int = DEFAULT_CAP,
        clock: Callable[[], float] = time.time,
        on_settled: SettledListener | None = None,
    ) -> None:
        self._lists = JsonListStore(store)
        self._provider_for = provider_for
        self._cap = cap
        self._clock = clock
        self._on_settled = on_settled
        self._watches: dict[str, WatchHandle] = {}

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # ── History access ─────────────────────────────────────

    async def list(self, chain_id: int, account: str) -> list[TrackedTransaction]:
        """Tracked transactions for the account, newest first."""
        raw = await self._lists.load(history_key(chain_id, account), order_by=_created_order)
        items = []
        for entry in raw:
            try:
                items.append(TrackedTransaction.from_dict(entry))
            except (KeyError, ValueError) as exc:
                log.warning("Skipping malformed history entry %s: %s", entry.get("hash"), exc)
        return items

    async def get(self, chain_id: int, account: str, tx_hash: str) -> TrackedTransaction | None:
        for tx in await self.list(chain_id, account):
            if tx.hash == tx_hash:
                return tx
        return None

    async def track(
        self, chain_id: int, account: str, entry: TrackedTransaction,
    ) -> TrackedTransaction:
        """Insert or update an entry by hash.

        An existing entry keeps its ``created_at`` unless ``entry`` sets one.
        """
        explicit_created = entry.created_at is not None
        candidate = entry if explicit_created else replace(entry, created_at=self._now_ms())

        def _merge(old: dict[str, Any], new: dict[str, Any]) -> dict[str, Any]:
            try:
                previous = TrackedTransaction.from_dict(old)
            except (KeyError, ValueError) as exc:
                log.warning("Replacing malformed history entry %s: %s", old.get("hash"), exc)
                return new
            merged = merge_transactions(
                previous,
                TrackedTransaction.from_dict(new),
                keep_created_at=not explicit_created,
            )
            return merged.to_dict()

        stored = await self._lists.upsert_by_key(
            history_key(chain_id, account),
            candidate.to_dict(),
            cap=self._cap,
            merge=_merge,
            order_by=_created_order,
        )
        return TrackedTransaction.from_dict(stored)

    async def record_submission(
        self,
        chain_id: int,
        account: str,
        tx_hash: str,
        contract_address: str,
        action: str,
        cid: str | None = None,
        created_at: int | None = None,
    ) -> TrackedTransaction:
        """Create the ``pending`` entry for a just-submitted transaction."""
        tx = await self.track(chain_id, account, TrackedTransaction(
            hash=tx_hash,
            contract_address=contract_address,
            action=action,
            created_at=created_at,
            status=TxStatus.PENDING,
            cid=cid,
        ))
        log.info("Tracking %s %s on chain %d", action, tx_hash[:18], chain_id)
        return tx

    async def remove(self, chain_id: int, account: str, tx_hash: str) -> bool:
        return await self._lists.remove_by_key(history_key(chain_id, account), tx_hash)

    # ── Active wait ────────────────────────────────────────

    async def wait_for_settlement(
        self,
        chain_id: int,
        account: str,
        tx_hash: str,
        confirmations: int = 1,
        handle: WatchHandle | None = None,
    ) -> TrackedTransaction | None:
        """Wait (without timeout) for the transaction and record the outcome.

        Returns the settled entry, or None if ``handle`` was cancelled first.
        """
        existing = await self.get(chain_id, account, tx_hash)
        if existing is not None and existing.status.is_terminal and existing.has_terminal_data:
            return existing

        await self.track(chain_id, account, TrackedTransaction(
            hash=tx_hash,
            contract_address=existing.contract_address if existing else "",
            action=existing.action if existing else "",
            status=TxStatus.CONFIRMING,
        ))

        provider = self._provider_for(chain_id)
        receipt = await provider.wait_for_confirmation(tx_hash, confirmations)
        if handle is not None and handle.cancelled:
            log.debug("Dropping settlement of %s: watch cancelled", tx_hash[:18])
            return None

        block_timestamp = await self._block_timestamp(provider, receipt.block_number)
        if handle is not None and handle.cancelled:
            log.debug("Dropping settlement of %s: watch cancelled", tx_hash[:18])
            return None

        return await self._settle(chain_id, account, tx_hash, receipt, block_timestamp)

    def watch(
        self,
        chain_id: int,
        account: str,
        tx_hash: str,
        confirmations: int = 1,
    ) -> WatchHandle:
        """Run ``wait_for_settlement`` as a background task."""
        handle = WatchHandle(tx_hash)
        handle._task = asyncio.ensure_future(
            self.wait_for_settlement(chain_id, account, tx_hash, confirmations, handle=handle)
        )
        self._watches[tx_hash] = handle
        handle._task.add_done_callback(lambda _t: self._forget(handle))
        return handle

    def active_watches(self) -> list[WatchHandle]:
        return list(self._watches.values())

    def abort_all(self) -> None:
        for handle in list(self._watches.values()):
            handle.abort()

    def _forget(self, handle: WatchHandle) -> None:
        if self._watches.get(handle.tx_hash) is handle:
            del self._watches[handle.tx_hash]

    # ── Passive reconciliation ─────────────────────────────

    async def reconcile_all(self, chain_id: int, account: str) -> ReconcileReport:
        """Look up receipts for every entry still missing block data."""
        report = ReconcileReport()
        items = await self.list(chain_id, account)
        if not items:
            return report

        provider = self._provider_for(chain_id)
        for tx in items:
            if tx.has_terminal_data:
                report.skipped.append(tx.hash)
                continue
            try:
                receipt = await self._require_receipt(provider, tx.hash)
            except ReceiptUnavailable:
                report.still_pending.append(tx.hash)
                continue
            except Exception as exc:
                log.warning("Receipt lookup failed for %s: %s", tx.hash[:18], exc)
                report.errors[tx.hash] = str(exc) or type(exc).__name__
                continue

            block_timestamp = tx.block_timestamp
            if block_timestamp is None:
                block_timestamp = await self._block_timestamp(provider, receipt.block_number)
            await self._settle(chain_id, account, tx.hash, receipt, block_timestamp, previous=tx)
            report.updated.append(tx.hash)

        log.info(
            "Reconciled chain %d / %s: %d updated, %d pending, %d skipped, %d errors",
            chain_id, account, len(report.updated), len(report.still_pending),
            len(report.skipped), len(report.errors),
        )
        return report

    # ── Internals ──────────────────────────────────────────

    @staticmethod
    async def _require_receipt(provider: ChainProvider, tx_hash: str) -> Receipt:
        receipt = await provider.get_transaction_receipt(tx_hash)
        if receipt is None:
            raise ReceiptUnavailable(tx_hash)
        return receipt

    @staticmethod
    async def _block_timestamp(provider: ChainProvider, block_number: int) -> int | None:
        try:
            block = await provider.get_block(block_number)
        except Exception as exc:
            log.warning("Block %d lookup failed: %s", block_number, exc)
            return None
        return block.timestamp * 1000 if block.timestamp else None

    async def _settle(
        self,
        chain_id: int,
        account: str,
        tx_hash: str,
        receipt: Receipt,
        block_timestamp: int | None,
        previous: TrackedTransaction | None = None,
    ) -> TrackedTransaction:
        if previous is None:
            previous = await self.get(chain_id, account, tx_hash)
        status = TxStatus.SUCCESS if receipt.succeeded else TxStatus.FAILED
        settled = await self.track(chain_id, account, TrackedTransaction(
            hash=tx_hash,
            contract_address=previous.contract_address if previous else "",
            action=previous.action if previous else "",
            status=status,
            block_number=receipt.block_number,
            gas_used=str(receipt.gas_used),
            block_timestamp=block_timestamp,
        ))
        log.info(
            "Transaction %s %s in block %d (gas %s)",
            tx_hash[:18], settled.status.value, receipt.block_number, settled.gas_used,
        )

        newly_settled = previous is None or not previous.status.is_terminal
        if newly_settled and self._on_settled is not None:
            try:
                outcome = self._on_settled(chain_id, account, settled)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as exc:
                log.error("Settlement listener failed for %s: %s", tx_hash[:18], exc)
        return settled
