"""TUI wiring: proposal form parsing, creation broadcast into the board, shutdown."""

import asyncio
from datetime import datetime

import pytest

from predmarket.errors import ValidationError
from predmarket.models import Market
from predmarket.proposal.flow import ProposalFlow
from predmarket.tui.app import MarketBoardApp, build_app, build_form
from predmarket.tui.context import LayoutContext
from predmarket.view.board import MarketBoard, MarketEvents

NOW = 1_700_000_000.0
KEY = "0x" + "11" * 32


def fields(**kw) -> dict[str, str]:
    values = dict(
        question="Will it snow in Lisbon?",
        option_a="Yes",
        option_b="No",
        description="Any recorded snowfall counts.",
        tag=" Misc ",
        resolution_time="2030-01-31T18:00",
        image="",
    )
    values.update(kw)
    return values


def test_build_form_reads_inputs(tmp_path):
    image = tmp_path / "snow.png"
    image.write_bytes(b"\x89PNG")
    form = build_form(fields(image=str(image)))
    assert form.image_name == "snow.png"
    assert form.image_data == b"\x89PNG"
    assert form.tag == "Misc"
    assert form.resolution_time == datetime(2030, 1, 31, 18, 0)


def test_build_form_rejects_unreadable_input(tmp_path):
    image = tmp_path / "snow.png"
    image.write_bytes(b"\x89PNG")
    with pytest.raises(ValidationError, match="Resolution time must look like"):
        build_form(fields(image=str(image), resolution_time="next friday"))
    with pytest.raises(ValidationError, match="Image is required"):
        build_form(fields(image="  "))
    with pytest.raises(ValidationError, match="Cannot read image"):
        build_form(fields(image=str(tmp_path / "missing.png")))


class Chain:
    address = "0x00000000000000000000000000000000000000aa"

    async def market_count(self):
        return 0

    async def get_market(self, market_id):
        return None

    async def creation_stake_amount(self):
        return 1_000_000

    async def approve(self, amount):
        pass

    async def submit_proposal(self, question, option_a, option_b, end_time):
        return "0xfeed"

    async def wait_for_receipt(self, tx_hash, step):
        pass

    async def extract_market_id(self, tx_hash):
        return 12


class Images:
    async def upload(self, original_name, data, proposer):
        return f"http://img/{original_name}"


class Metadata:
    async def save_metadata(self, market_id, description, image_url, proposer_address, tag):
        pass


def test_proposal_shows_up_on_shared_board(tmp_path):
    image = tmp_path / "snow.png"
    image.write_bytes(b"\x89PNG")
    form = build_form(fields(image=str(image)))
    chain = Chain()
    events = MarketEvents()
    flow = ProposalFlow(chain, Images(), Metadata(), events, clock=lambda: NOW, max_duration_sec=10 * 365 * 86400)

    async def scenario():
        async with MarketBoard(chain, events=events, poll_interval=60, clock=lambda: NOW) as board:
            result = await flow.submit(form)
            return result, board.entries()

    result, entries = asyncio.run(scenario())
    assert result.ok
    assert [v.market_id for v in entries] == [12]
    assert entries[0].optimistic
    assert isinstance(entries[0].market, Market)
    assert entries[0].market.question == "Will it snow in Lisbon?"


def test_build_app_shares_events_between_flow_and_board(settings, monkeypatch):
    monkeypatch.setenv(settings.private_key_env, KEY)
    app = build_app(settings)
    assert app._proposals is not None
    assert app._proposals.events is app._board.events
    assert app._proposals.on_step is not None
    assert app._board.wallet == app._dispatcher.address
    assert app._contract is app._dispatcher.market

    monkeypatch.delenv(settings.private_key_env)
    assert build_app(settings)._proposals is None


def test_unmount_closes_sources():
    closed = []

    class Closable:
        def __init__(self, name):
            self.name = name

        async def close(self):
            closed.append(self.name)

        async def aclose(self):
            closed.append(self.name)

    app = MarketBoardApp(
        Closable("board"), LayoutContext(), metadata=Closable("metadata"), contract=Closable("contract")
    )
    asyncio.run(app.on_unmount())
    assert closed == ["board", "metadata", "contract"]
