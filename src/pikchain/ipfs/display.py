"""Interactive display policy - which gateway URL a viewer should show.

The display starts at the first gateway. If nothing has loaded after a short
timeout it moves to the next gateway without cancelling the earlier load, so
a slow gateway can still win. A load error on the current gateway moves on
immediately. The index never goes past the last gateway.

Timer expiry, load and error are independent signals racing to update the
same state: the first one to act wins and later ones for a stale index are
no-ops.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence

from pikchain.exceptions import AllGatewaysExhausted
from pikchain.ipfs.gateway import build_url
from pikchain.models.records import GatewayAttempt

log = logging.getLogger(__name__)

IndexListener = Callable[[int], None]
Loader = Callable[[str], Awaitable[Any]]


class GatewayDisplay:
    """Display-side gateway cursor for a single CID."""

    def __init__(
        self,
        cid: str,
        gateways: Sequence[str],
        timeout: float = 3.0,
    ) -> None:
        if not gateways:
            raise ValueError("at least one gateway is required")
        self._cid = cid.strip()
        self._gateways = list(gateways)
        self._urls = [build_url(g, self._cid) for g in self._gateways]
        self._timeout = timeout
        self._index = 0
        self._loaded = False
        self._exhausted = False
        self._timer: asyncio.TimerHandle | None = None
        self._listeners: list[IndexListener] = []

    # ── State ──────────────────────────────────────────────

    @property
    def cid(self) -> str:
        return self._cid

    @property
    def current_endpoint_index(self) -> int:
        return self._index

    @property
    def current_url(self) -> str:
        return self._urls[self._index]

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def loading(self) -> bool:
        """True until the first successful load."""
        return not self._loaded

    @property
    def exhausted(self) -> bool:
        """The last gateway reported an error and nothing has loaded."""
        return self._exhausted and not self._loaded

    @property
    def at_last(self) -> bool:
        return self._index >= len(self._urls) - 1

    def subscribe(self, listener: IndexListener) -> None:
        """Call ``listener(new_index)`` whenever the index advances."""
        self._listeners.append(listener)

    # ── Transitions ────────────────────────────────────────

    def advance(self) -> bool:
        """Move to the next gateway. Returns False when already at the end."""
        if self._loaded or self.at_last:
            return False
        self._index += 1
        for listener in list(self._listeners):
            listener(self._index)
        return True

    def start(self) -> None:
        """Arm the advance-on-timeout timer. Needs a running event loop."""
        self._arm()

    def on_load(self, index: int | None = None) -> bool:
        """Record a successful load. The first one wins."""
        if self._loaded:
            return False
        if index is not None and 0 <= index < len(self._urls):
            self._index = index
        self._loaded = True
        self._cancel_timer()
        log.debug("Loaded %s from %s", self._cid[:8], self._gateways[self._index])
        return True

    def on_error(self, index: int | None = None) -> bool:
        """Record a terminal load error. Only the current index counts."""
        if index is None:
            index = self._index
        if self._loaded or index != self._index:
            return False
        if self.at_last:
            self._exhausted = True
            self._cancel_timer()
            log.warning("Last gateway failed for %s", self._cid[:8])
            return False
        self.advance()
        log.warning("Image error fallback for %s -> gateway %d", self._cid[:8], self._index)
        self._arm()
        return True

    def close(self) -> None:
        """Tear down: clear the pending timer."""
        self._cancel_timer()

    def _arm(self) -> None:
        self._cancel_timer()
        if self._loaded or self.at_last:
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._timeout, self._on_timeout, self._index)

    def _on_timeout(self, index: int) -> None:
        self._timer = None
        if self._loaded or index != self._index:
            return
        if self.advance():
            log.warning("Gateway timeout for %s -> gateway %d", self._cid[:8], self._index)
            self._arm()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # ── Driving loads ──────────────────────────────────────

    async def race(self, load: Loader) -> tuple[int, Any]:
        """Run ``load(url)`` for each gateway the display moves to.

        Earlier loads keep running after the index advances; whichever load
        succeeds first wins. Returns ``(index, result)``. Raises
        AllGatewaysExhausted once the last gateway errored and every started
        load has finished without success.
        """
        loop = asyncio.get_running_loop()
        outcome: asyncio.Future[tuple[int, Any]] = loop.create_future()
        tasks: dict[int, asyncio.Task[Any]] = {}
        errors: dict[int, str] = {}

        def settle(index: int, task: asyncio.Task[Any]) -> None:
            if task.cancelled() or outcome.done():
                return
            exc = task.exception()
            if exc is None:
                if self.on_load(index):
                    outcome.set_result((index, task.result()))
                return
            errors[index] = str(exc) or type(exc).__name__
            self.on_error(index)
            if self.exhausted and all(t.done() for t in tasks.values()):
                attempts = [
                    GatewayAttempt(gateway=self._gateways[i], url=self._urls[i], error=errors[i])
                    for i in sorted(errors)
                ]
                outcome.set_exception(AllGatewaysExhausted(self._cid, attempts))

        def launch(index: int) -> None:
            if index in tasks or outcome.done():
                return
            task = asyncio.ensure_future(load(self._urls[index]))
            tasks[index] = task
            task.add_done_callback(lambda t, i=index: settle(i, t))

        self.subscribe(launch)
        launch(self._index)
        self.start()
        try:
            return await outcome
        finally:
            self._listeners.remove(launch)
            self.close()
            for task in tasks.values():
                if not task.done():
                    task.cancel()
