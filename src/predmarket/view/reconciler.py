"""Market view-model reconciler - merges polled chain state, metadata and position."""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Protocol

import structlog

from predmarket.errors import UpstreamReadError
from predmarket.models import Market, MarketMetadata, UserPosition
from predmarket.view.state import MarketViewState, build_view_state

log = structlog.get_logger(__name__)


class MarketSource(Protocol):
    async def get_market(self, market_id: int) -> Market | None: ...


class MetadataSource(Protocol):
    async def get_metadata(self, market_id: int) -> MarketMetadata | None: ...


class PositionSource(Protocol):
    async def get_position(self, market_id: int, wallet: str | None) -> UserPosition | None: ...


class MarketReconciler:
    """
    Keeps one MarketViewState fresh for a market id.

    Market and position are re-polled every poll_interval seconds; metadata is fetched
    once (a missing record is final, upstream errors are retried up to
    metadata_max_attempts). Each poll carries a sequence number and a response older
    than the newest applied one is dropped. Use ``async with`` to scope the polling
    task; after exit nothing is applied and on_change is never called again.
    """

    def __init__(
        self,
        market_id: int,
        market_source: MarketSource,
        metadata_source: MetadataSource | None = None,
        position_source: PositionSource | None = None,
        wallet: str | None = None,
        *,
        poll_interval: float = 5.0,
        metadata_max_attempts: int = 3,
        on_change: Callable[[MarketViewState], None] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.market_id = market_id
        self.market_source = market_source
        self.metadata_source = metadata_source
        self.position_source = position_source
        self.wallet = wallet
        self.poll_interval = poll_interval
        self.metadata_max_attempts = metadata_max_attempts
        self.on_change = on_change
        self.clock = clock

        self._market: Market | None = None
        self._metadata: MarketMetadata | None = None
        self._position: UserPosition | None = None
        self._metadata_done = metadata_source is None
        self._metadata_attempts = 0
        self._metadata_inflight = False
        self._issued = {"market": 0, "position": 0}
        self._applied = {"market": 0, "position": 0}
        self._closed = False
        self._task: asyncio.Task[None] | None = None
        self._state = build_view_state(market_id, None, None, None, clock())

    @property
    def state(self) -> MarketViewState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def _next_seq(self, kind: str) -> int:
        self._issued[kind] += 1
        return self._issued[kind]

    def _accept(self, kind: str, seq: int) -> bool:
        """True if a response with this sequence number may be applied."""
        if self._closed or seq < self._applied[kind]:
            log.debug("stale_response_dropped", market_id=self.market_id, kind=kind, seq=seq)
            return False
        self._applied[kind] = seq
        return True

    async def _poll_market(self) -> None:
        seq = self._next_seq("market")
        try:
            market = await self.market_source.get_market(self.market_id)
        except UpstreamReadError as e:
            log.debug("market_poll_failed", market_id=self.market_id, error=str(e))
            return
        # A known market never disappears; None after data is a transient read gap.
        if market is None:
            return
        if self._accept("market", seq):
            self._market = market

    async def _poll_position(self) -> None:
        if self.position_source is None or not self.wallet:
            return
        seq = self._next_seq("position")
        try:
            position = await self.position_source.get_position(self.market_id, self.wallet)
        except UpstreamReadError as e:
            log.debug("position_poll_failed", market_id=self.market_id, error=str(e))
            return
        if self._accept("position", seq):
            self._position = position

    async def _fetch_metadata(self) -> None:
        if self._metadata_done or self._metadata_inflight:
            return
        self._metadata_inflight = True
        self._metadata_attempts += 1
        try:
            metadata = await self.metadata_source.get_metadata(self.market_id)
        except Exception as e:
            if self._metadata_attempts >= self.metadata_max_attempts:
                log.info("metadata_abandoned", market_id=self.market_id, attempts=self._metadata_attempts)
                self._metadata_done = True
            else:
                log.debug("metadata_fetch_retry", market_id=self.market_id, error=str(e))
            return
        finally:
            self._metadata_inflight = False
        self._metadata_done = True
        if not self._closed:
            self._metadata = metadata

    def _recompute(self) -> MarketViewState:
        state = build_view_state(self.market_id, self._market, self._metadata, self._position, self.clock())
        if state != self._state and not self._closed:
            self._state = state
            if self.on_change is not None:
                self.on_change(state)
        return self._state

    async def refresh(self) -> MarketViewState:
        """Poll once (also used for an immediate re-poll after a successful action)."""
        if self._closed:
            return self._state
        results = await asyncio.gather(
            self._poll_market(), self._poll_position(), self._fetch_metadata(), return_exceptions=True
        )
        # A failed source is logged; the others still apply.
        for kind, result in zip(("market", "position", "metadata"), results):
            if isinstance(result, Exception):
                log.warning("source_poll_failed", market_id=self.market_id, kind=kind, error=repr(result))
        return self._recompute()

    async def run(self) -> None:
        """Poll until closed or cancelled."""
        while not self._closed:
            try:
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.warning("reconcile_error", market_id=self.market_id, error=str(e))
            await asyncio.sleep(self.poll_interval)

    def start(self) -> None:
        if self._task is None and not self._closed:
            self._task = asyncio.create_task(self.run())

    async def close(self) -> None:
        self._closed = True
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> MarketReconciler:
        self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
