"""MarketReconciler: ordering of polled responses, metadata fetch policy, teardown."""

import asyncio

import httpx

from predmarket.api.client import MetadataClient
from predmarket.errors import UpstreamReadError
from predmarket.models import Market, MarketMetadata, UserPosition
from predmarket.view.reconciler import MarketReconciler
from predmarket.view.state import PresentationState

NOW = 1_700_000_000


def clock() -> float:
    return NOW


def market(question: str = "Q?", **kw) -> Market:
    return Market(id=1, question=question, option_a="Yes", option_b="No", end_time=NOW + 3600, **kw)


class StaticMarkets:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    async def get_market(self, market_id):
        self.calls += 1
        result = self.results[min(self.calls, len(self.results)) - 1]
        if isinstance(result, Exception):
            raise result
        return result


class ControlledMarkets:
    """Each call waits on a future the test resolves, so responses can arrive out of order."""

    def __init__(self):
        self.pending: list[asyncio.Future] = []

    async def get_market(self, market_id):
        fut = asyncio.get_running_loop().create_future()
        self.pending.append(fut)
        return await fut


class CountingMetadata:
    def __init__(self, result=None, error: Exception | None = None):
        self.result = result
        self.error = error
        self.calls = 0

    async def get_metadata(self, market_id):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class Positions:
    def __init__(self):
        self.calls = 0

    async def get_position(self, market_id, wallet):
        self.calls += 1
        return UserPosition(market_id=market_id, wallet=wallet, option_a_shares=5)


async def _wait_for(pred, tries: int = 100):
    for _ in range(tries):
        if pred():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


def test_loading_until_first_market():
    changes = []
    rec = MarketReconciler(1, StaticMarkets(None, market()), on_change=changes.append, clock=clock)
    assert rec.state.loading

    async def scenario():
        first = await rec.refresh()
        second = await rec.refresh()
        return first, second

    first, second = asyncio.run(scenario())
    assert first.loading
    assert second.presentation_state == PresentationState.OPEN
    assert len(changes) == 1


def test_unchanged_poll_does_not_notify():
    changes = []
    rec = MarketReconciler(1, StaticMarkets(market()), on_change=changes.append, clock=clock)

    async def scenario():
        for _ in range(3):
            await rec.refresh()

    asyncio.run(scenario())
    assert len(changes) == 1


def test_older_response_arriving_late_is_dropped():
    source = ControlledMarkets()
    rec = MarketReconciler(1, source, clock=clock)

    async def scenario():
        older = asyncio.create_task(rec.refresh())
        newer = asyncio.create_task(rec.refresh())
        await _wait_for(lambda: len(source.pending) == 2)
        source.pending[1].set_result(market("newer"))
        await newer
        source.pending[0].set_result(market("older"))
        await older
        return rec.state

    state = asyncio.run(scenario())
    assert state.market.question == "newer"


def test_known_market_kept_when_poll_returns_nothing_or_fails():
    source = StaticMarkets(market("first"), None, UpstreamReadError("rpc down"))
    rec = MarketReconciler(1, source, clock=clock)

    async def scenario():
        for _ in range(3):
            await rec.refresh()

    asyncio.run(scenario())
    assert source.calls == 3
    assert rec.state.market.question == "first"


def test_missing_metadata_is_fetched_once():
    metadata = CountingMetadata(result=None)
    rec = MarketReconciler(1, StaticMarkets(market()), metadata, clock=clock)

    async def scenario():
        for _ in range(4):
            await rec.refresh()

    asyncio.run(scenario())
    assert metadata.calls == 1
    assert rec.state.metadata is None
    assert rec.state.image_url == "/defaultimg.jpg"


def test_metadata_errors_retried_then_abandoned():
    metadata = CountingMetadata(error=UpstreamReadError("api down"))
    rec = MarketReconciler(1, StaticMarkets(market()), metadata, metadata_max_attempts=3, clock=clock)

    async def scenario():
        for _ in range(6):
            await rec.refresh()

    asyncio.run(scenario())
    assert metadata.calls == 3
    assert rec.state.presentation_state == PresentationState.OPEN


def test_metadata_applied():
    meta = MarketMetadata(market_id=1, description="d", image_url="http://img/1.png", proposer_address="0xabc")
    rec = MarketReconciler(1, StaticMarkets(market()), CountingMetadata(result=meta), clock=clock)
    state = asyncio.run(rec.refresh())
    assert state.image_url == "http://img/1.png"
    assert state.description == "d"


def test_position_only_polled_with_wallet():
    positions = Positions()
    no_wallet = MarketReconciler(1, StaticMarkets(market()), None, positions, None, clock=clock)
    asyncio.run(no_wallet.refresh())
    assert positions.calls == 0
    assert no_wallet.state.position is None

    with_wallet = MarketReconciler(1, StaticMarkets(market()), None, positions, "0xabc", clock=clock)
    state = asyncio.run(with_wallet.refresh())
    assert positions.calls == 1
    assert state.position.option_a_shares == 5


def test_response_after_close_is_not_applied():
    source = ControlledMarkets()
    changes = []
    rec = MarketReconciler(1, source, on_change=changes.append, clock=clock)

    async def scenario():
        task = asyncio.create_task(rec.refresh())
        await _wait_for(lambda: len(source.pending) == 1)
        await rec.close()
        source.pending[0].set_result(market())
        await task
        await rec.refresh()

    asyncio.run(scenario())
    assert rec.closed
    assert rec.state.loading
    assert changes == []


def test_run_loop_survives_errors():
    source = StaticMarkets(RuntimeError("boom"), market())

    async def scenario():
        async with MarketReconciler(1, source, poll_interval=0.01, clock=clock) as rec:
            for _ in range(200):
                if not rec.state.loading:
                    break
                await asyncio.sleep(0.01)
            return rec

    rec = asyncio.run(scenario())
    assert rec.closed
    assert rec.state.market is not None
    assert source.calls >= 2


def test_malformed_metadata_response_does_not_block_market():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.params["market_id"])
        return httpx.Response(200, text="<html>proxy</html>")

    async def scenario():
        async with MetadataClient("http://meta", transport=httpx.MockTransport(handler)) as metadata:
            rec = MarketReconciler(1, StaticMarkets(market()), metadata, metadata_max_attempts=3, clock=clock)
            for _ in range(5):
                await rec.refresh()
            return rec.state

    state = asyncio.run(scenario())
    assert state.presentation_state == PresentationState.OPEN
    assert state.image_url == "/defaultimg.jpg"
    assert len(calls) == 3


def test_unexpected_source_errors_are_isolated():
    class BrokenPositions:
        async def get_position(self, market_id, wallet):
            raise ValueError("not a checksum address")

    metadata = CountingMetadata(error=RuntimeError("decoder bug"))
    rec = MarketReconciler(
        1, StaticMarkets(market()), metadata, BrokenPositions(), "bogus", metadata_max_attempts=2, clock=clock
    )

    async def scenario():
        for _ in range(4):
            await rec.refresh()

    asyncio.run(scenario())
    assert rec.state.presentation_state == PresentationState.OPEN
    assert rec.state.position is None
    assert metadata.calls == 2
