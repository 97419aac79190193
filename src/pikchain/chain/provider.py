"""Web3 chain provider with ordered RPC endpoint fallback."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence, TypeVar

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound

from pikchain.exceptions import ChainRPCError
from pikchain.models.chain import BlockInfo, Receipt

log = logging.getLogger(__name__)

T = TypeVar("T")


def _hex(value: Any) -> str:
    if value is None:
        return ""
    if hasattr(value, "to_0x_hex"):
        return value.to_0x_hex()
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return str(value)


def rpc_url_list(*groups: Sequence[str] | str | None) -> list[str]:
    """Flatten URL groups (comma-separated strings allowed), dedup in order."""
    urls: list[str] = []
    for group in groups:
        if not group:
            continue
        items = group.split(",") if isinstance(group, str) else group
        urls.extend(u.strip() for u in items if u and u.strip())
    return list(dict.fromkeys(urls))


class Web3ChainProvider:
    """ChainProvider over one or more JSON-RPC endpoints of the same chain.

    Endpoints are tried in order; the one that last answered is tried first
    on the next call.
    """

    def __init__(
        self,
        rpc_urls: Sequence[str],
        chain_id: int,
        request_timeout: float = 10.0,
        poll_interval: float = 2.0,
    ) -> None:
        urls = rpc_url_list(rpc_urls)
        if not urls:
            raise ValueError(f"no RPC URL configured for chain {chain_id}")
        self._urls = urls
        self._chain_id = chain_id
        self._poll_interval = poll_interval
        self._web3s = [
            AsyncWeb3(AsyncHTTPProvider(
                url,
                request_kwargs={"timeout": aiohttp.ClientTimeout(total=request_timeout)},
            ))
            for url in urls
        ]
        self._preferred = 0

    @property
    def chain_id(self) -> int:
        return self._chain_id

    @property
    def rpc_urls(self) -> list[str]:
        return list(self._urls)

    async def _call(self, label: str, fn: Callable[[AsyncWeb3], Awaitable[T]]) -> T:
        order = [self._preferred, *(i for i in range(len(self._web3s)) if i != self._preferred)]
        errors: dict[str, str] = {}
        for index in order:
            try:
                result = await fn(self._web3s[index])
            except TransactionNotFound:
                raise
            except Exception as exc:
                errors[self._urls[index]] = str(exc) or type(exc).__name__
                log.warning("RPC %s failed on %s: %s", label, self._urls[index], exc)
                continue
            self._preferred = index
            return result
        raise ChainRPCError(
            f"{label} failed on every RPC endpoint for chain {self._chain_id}",
            endpoint=self._urls[self._preferred],
            details={"errors": errors},
        )

    async def get_bytecode(self, address: str) -> bytes:
        checksum = Web3.to_checksum_address(address)
        code = await self._call("eth_getCode", lambda w3: w3.eth.get_code(checksum))
        return bytes(code or b"")

    async def get_transaction_receipt(self, tx_hash: str) -> Receipt | None:
        try:
            raw = await self._call(
                "eth_getTransactionReceipt",
                lambda w3: w3.eth.get_transaction_receipt(tx_hash),
            )
        except TransactionNotFound:
            return None
        if raw is None:
            return None
        return Receipt(
            transaction_hash=_hex(raw.get("transactionHash")) or tx_hash,
            status=int(raw.get("status", 0)),
            block_number=int(raw["blockNumber"]),
            gas_used=int(raw.get("gasUsed", 0)),
        )

    async def wait_for_confirmation(self, tx_hash: str, confirmations: int = 1) -> Receipt:
        """Poll until the receipt exists and is ``confirmations`` blocks deep.

        There is no timeout; RPC errors while polling are logged and retried.
        """
        confirmations = max(1, confirmations)
        while True:
            try:
                receipt = await self.get_transaction_receipt(tx_hash)
                if receipt is not None:
                    if confirmations == 1:
                        return receipt
                    head = await self.get_block_number()
                    if head - receipt.block_number + 1 >= confirmations:
                        return receipt
            except ChainRPCError as exc:
                log.warning("Waiting on %s: %s", tx_hash[:18], exc.message)
            await asyncio.sleep(self._poll_interval)

    async def get_block(self, number: int) -> BlockInfo:
        raw = await self._call("eth_getBlockByNumber", lambda w3: w3.eth.get_block(number))
        return BlockInfo(
            number=int(raw["number"]),
            timestamp=int(raw["timestamp"]),
            hash=_hex(raw.get("hash")) or None,
        )

    async def get_block_number(self) -> int:
        return int(await self._call("eth_blockNumber", lambda w3: w3.eth.block_number))

    async def call_function(
        self,
        address: str,
        abi: list[dict[str, Any]],
        function_name: str,
        *args: Any,
        sender: str | None = None,
    ) -> Any:
        """Run a read-only contract call, optionally ``from`` an account."""
        checksum = Web3.to_checksum_address(address)
        tx: dict[str, Any] = {}
        if sender:
            tx["from"] = Web3.to_checksum_address(sender)

        def _invoke(w3: AsyncWeb3) -> Awaitable[Any]:
            contract = w3.eth.contract(address=checksum, abi=abi)
            return getattr(contract.functions, function_name)(*args).call(tx)

        return await self._call(f"eth_call {function_name}", _invoke)
