"""Gateway fallback resolver - fetches CID content through ordered gateways."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Sequence

import httpx

from pikchain.exceptions import AllGatewaysExhausted
from pikchain.models.records import GatewayAttempt, GatewayContent

log = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "image/jpeg"

ContentVerifier = Callable[[str, bytes], bool]


class _AttemptFailed(Exception):
    def __init__(self, error: str, status: int | None = None) -> None:
        super().__init__(error)
        self.error = error
        self.status = status


def build_url(template: str, cid: str) -> str:
    """Expand a gateway template: ``{cid}`` placeholder or plain prefix."""
    if "{cid}" in template:
        return template.replace("{cid}", cid)
    return f"{template}{cid}"


class GatewayResolver:
    """Retrieves content for a CID from the first gateway that serves it.

    Gateways are tried strictly in declared order, one bounded request each:
    - a 2xx response returns immediately; later gateways are never contacted
    - a non-2xx status, transport error or timeout is recorded and skipped
    - when every gateway failed, AllGatewaysExhausted carries the attempt log
    """

    def __init__(
        self,
        gateways: Sequence[str],
        timeout: float = 10.0,
        user_agent: str = "Mozilla/5.0",
        max_content_size: int | None = None,
        verifier: ContentVerifier | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        ordered = list(dict.fromkeys(g.strip() for g in gateways if g and g.strip()))
        if not ordered:
            raise ValueError("at least one gateway is required")
        self._gateways = ordered
        self._timeout = timeout
        self._user_agent = user_agent
        self._max_content_size = max_content_size
        self._verifier = verifier
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def gateways(self) -> list[str]:
        return list(self._gateways)

    @property
    def timeout(self) -> float:
        return self._timeout

    async def __aenter__(self) -> GatewayResolver:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, connect=min(self._timeout, 10.0)),
                follow_redirects=True,
                headers={"User-Agent": self._user_agent},
                transport=self._transport,
            )
        return self._client

    async def fetch_content(self, cid: str, start_index: int = 0) -> GatewayContent:
        """Fetch ``cid`` from the gateways, beginning at ``start_index``."""
        cid = cid.strip()
        if not cid:
            raise ValueError("cid must not be empty")
        start_index = max(0, min(start_index, len(self._gateways) - 1))

        attempts: list[GatewayAttempt] = []
        for gateway in self._gateways[start_index:]:
            url = build_url(gateway, cid)
            start = time.monotonic()
            try:
                data, content_type, status = await asyncio.wait_for(
                    self._download(url), timeout=self._timeout,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException):
                attempts.append(GatewayAttempt(
                    gateway=gateway,
                    url=url,
                    error=f"timeout after {self._timeout:g}s",
                    duration_ms=_elapsed_ms(start),
                ))
                log.warning("Gateway timeout for %s at %s", cid[:16], gateway)
                continue
            except _AttemptFailed as exc:
                attempts.append(GatewayAttempt(
                    gateway=gateway,
                    url=url,
                    status=exc.status,
                    error=None if _is_plain_status(exc) else exc.error,
                    duration_ms=_elapsed_ms(start),
                ))
                log.warning("Gateway %s failed for %s: %s", gateway, cid[:16], exc.error)
                continue
            except httpx.HTTPError as exc:
                attempts.append(GatewayAttempt(
                    gateway=gateway,
                    url=url,
                    error=str(exc) or type(exc).__name__,
                    duration_ms=_elapsed_ms(start),
                ))
                log.warning("Gateway %s unreachable for %s: %s", gateway, cid[:16], exc)
                continue

            if self._verifier is not None and not self._verifier(cid, data):
                attempts.append(GatewayAttempt(
                    gateway=gateway,
                    url=url,
                    status=status,
                    error="cid_mismatch",
                    duration_ms=_elapsed_ms(start),
                ))
                log.warning("Gateway %s served content not matching %s", gateway, cid[:16])
                continue

            attempts.append(GatewayAttempt(
                gateway=gateway, url=url, status=status, duration_ms=_elapsed_ms(start),
            ))
            log.info("Fetched %s (%d bytes) from %s", cid[:16], len(data), gateway)
            return GatewayContent(
                cid=cid,
                data=data,
                content_type=content_type,
                gateway=gateway,
                attempts=attempts,
            )

        log.error("All %d gateways failed for %s", len(attempts), cid)
        raise AllGatewaysExhausted(cid, attempts)

    async def _download(self, url: str) -> tuple[bytes, str, int]:
        client = self._get_client()
        async with client.stream("GET", url) as resp:
            if not 200 <= resp.status_code < 300:
                raise _AttemptFailed(f"HTTP {resp.status_code}", status=resp.status_code)

            limit = self._max_content_size
            declared = _content_length(resp) if limit is not None else None
            if declared is not None and declared > limit:
                raise _AttemptFailed(
                    f"content too large: {declared} bytes (max {limit})",
                    status=resp.status_code,
                )

            chunks = []
            total = 0
            async for chunk in resp.aiter_bytes():
                total += len(chunk)
                if limit is not None and total > limit:
                    raise _AttemptFailed(
                        f"content exceeded max size during download (>{limit} bytes)",
                        status=resp.status_code,
                    )
                chunks.append(chunk)

            content_type = resp.headers.get("content-type") or DEFAULT_CONTENT_TYPE
            return b"".join(chunks), content_type, resp.status_code


def _content_length(resp: httpx.Response) -> int | None:
    raw = resp.headers.get("content-length")
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise _AttemptFailed(f"invalid Content-Length: {raw!r}", status=resp.status_code) from None


def _is_plain_status(exc: _AttemptFailed) -> bool:
    return exc.status is not None and exc.error == f"HTTP {exc.status}"


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
