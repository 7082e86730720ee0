"""Market list - one reconciler per market id plus optimistic creations."""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Iterable, Protocol

import structlog

from predmarket.errors import UpstreamReadError
from predmarket.models import Market, MarketCreated
from predmarket.view.reconciler import MarketReconciler, MetadataSource, PositionSource
from predmarket.view.state import MarketViewState, PresentationState, build_view_state

log = structlog.get_logger(__name__)

STATUS_FILTERS = ("all", "active", "pending", "resolved")
SORT_ORDERS = ("newest", "oldest", "trending", "ending")


class BoardSource(Protocol):
    async def market_count(self) -> int: ...

    async def get_market(self, market_id: int) -> Market | None: ...


class MarketEvents:
    """Application-scoped broadcast of locally created markets. Fire-and-forget."""

    def __init__(self) -> None:
        self._listeners: list[Callable[[MarketCreated], None]] = []

    def subscribe(self, callback: Callable[[MarketCreated], None]) -> Callable[[], None]:
        """Register a listener; returns the unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def publish(self, event: MarketCreated) -> None:
        for callback in list(self._listeners):
            try:
                callback(event)
            except Exception as e:
                log.warning("market_event_listener_failed", market_id=event.market_id, error=str(e))


def matches_status(view: MarketViewState, status: str) -> bool:
    if status == "active":
        return view.presentation_state == PresentationState.OPEN
    if status == "pending":
        return view.presentation_state == PresentationState.EXPIRED_UNRESOLVED
    if status == "resolved":
        return view.is_resolved
    return True


def select_views(
    views: Iterable[MarketViewState],
    status: str = "all",
    tag: str | None = None,
    query: str | None = None,
    sort: str = "newest",
) -> list[MarketViewState]:
    """Filter by status/tag/search text and order like the market list UI."""
    needle = (query or "").strip().lower()
    out = [
        v
        for v in views
        if v.market is not None
        and matches_status(v, status)
        and (not tag or (v.tag or "").lower() == tag.lower())
        and (not needle or needle in v.market.question.lower())
    ]
    if sort == "oldest":
        out.sort(key=lambda v: v.market_id)
    elif sort == "trending":
        out.sort(key=lambda v: (v.market.total_shares, v.market_id), reverse=True)
    elif sort == "ending":
        out.sort(key=lambda v: (v.is_expired or v.is_resolved, v.market.end_time, v.market_id))
    else:
        out.sort(key=lambda v: v.market_id, reverse=True)
    return out


class MarketBoard:
    """
    All markets the contract knows about, each polled by its own reconciler.

    A MarketCreated event shows an optimistic entry immediately; it is dropped as soon
    as the reconciler for the same id has polled data, so an id appears at most once.
    """

    def __init__(
        self,
        market_source: BoardSource,
        metadata_source: MetadataSource | None = None,
        position_source: PositionSource | None = None,
        wallet: str | None = None,
        events: MarketEvents | None = None,
        *,
        poll_interval: float = 5.0,
        metadata_max_attempts: int = 3,
        on_change: Callable[[], None] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.market_source = market_source
        self.metadata_source = metadata_source
        self.position_source = position_source
        self.wallet = wallet
        self.events = events
        self.poll_interval = poll_interval
        self.metadata_max_attempts = metadata_max_attempts
        self.on_change = on_change
        self.clock = clock
        self._reconcilers: dict[int, MarketReconciler] = {}
        self._optimistic: dict[int, MarketViewState] = {}
        self._running = False
        self._closed = False
        self._task: asyncio.Task[None] | None = None
        self._unsubscribe: Callable[[], None] | None = None

    def _notify(self, *_: object) -> None:
        if self.on_change is not None and not self._closed:
            self.on_change()

    def _ensure_reconciler(self, market_id: int) -> MarketReconciler:
        rec = self._reconcilers.get(market_id)
        if rec is None:
            rec = MarketReconciler(
                market_id,
                self.market_source,
                self.metadata_source,
                self.position_source,
                self.wallet,
                poll_interval=self.poll_interval,
                metadata_max_attempts=self.metadata_max_attempts,
                on_change=self._notify,
                clock=self.clock,
            )
            self._reconcilers[market_id] = rec
            if self._running:
                rec.start()
        return rec

    def reconciler(self, market_id: int) -> MarketReconciler | None:
        return self._reconcilers.get(market_id)

    def on_market_created(self, event: MarketCreated) -> None:
        """Optimistic insert; ignored when polled data for the id already exists."""
        if self._closed:
            return
        rec = self._reconcilers.get(event.market_id)
        if rec is not None and not rec.state.loading:
            log.debug("optimistic_market_superseded", market_id=event.market_id)
            return
        self._optimistic[event.market_id] = build_view_state(
            event.market_id, event.to_market(), None, None, self.clock(), optimistic=True
        )
        self._ensure_reconciler(event.market_id)
        log.info("optimistic_market_added", market_id=event.market_id)
        self._notify()

    async def refresh(self, deep: bool = True) -> list[MarketViewState]:
        """Discover ids from marketCount; with deep, also poll every market once."""
        try:
            count = await self.market_source.market_count()
        except UpstreamReadError as e:
            log.warning("market_count_failed", error=str(e))
            count = None
        if count is not None:
            for market_id in range(count):
                self._ensure_reconciler(market_id)
        if deep and self._reconcilers:
            await asyncio.gather(*(rec.refresh() for rec in self._reconcilers.values()))
        return self.entries()

    def entries(self, include_loading: bool = False) -> list[MarketViewState]:
        """One view per market id, polled state preferred over the optimistic one."""
        out: list[MarketViewState] = []
        for market_id in sorted(set(self._reconcilers) | set(self._optimistic)):
            rec = self._reconcilers.get(market_id)
            if rec is not None and not rec.state.loading:
                self._optimistic.pop(market_id, None)
                out.append(rec.state)
            elif market_id in self._optimistic:
                out.append(self._optimistic[market_id])
            elif include_loading and rec is not None:
                out.append(rec.state)
        return out

    def select(
        self, status: str = "all", tag: str | None = None, query: str | None = None, sort: str = "newest"
    ) -> list[MarketViewState]:
        return select_views(self.entries(), status=status, tag=tag, query=query, sort=sort)

    async def run(self) -> None:
        while not self._closed:
            await self.refresh(deep=False)
            await asyncio.sleep(self.poll_interval)

    async def __aenter__(self) -> MarketBoard:
        self._running = True
        if self.events is not None:
            self._unsubscribe = self.events.subscribe(self.on_market_created)
        for rec in self._reconcilers.values():
            rec.start()
        self._task = asyncio.create_task(self.run())
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        self._closed = True
        self._running = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await asyncio.gather(*(rec.close() for rec in self._reconcilers.values()))
