"""Proposal flow: validation, step order, failure reporting and the creation broadcast."""

import asyncio
from datetime import datetime, timezone

import pytest

from predmarket.errors import AuthorizationError, TransactionError, UpstreamWriteError, ValidationError
from predmarket.models import MarketMetadata
from predmarket.proposal.flow import ProposalFlow, ProposalForm, ProposalStep
from predmarket.view.board import MarketEvents

NOW = 1_700_000_000.0
PROPOSER = "0x00000000000000000000000000000000000000aa"


def form(**kw) -> ProposalForm:
    fields = dict(
        question="Will BTC close above 100k?",
        option_a="Yes",
        option_b="No",
        description="Resolves on the daily close.",
        tag="Crypto",
        resolution_time=datetime.fromtimestamp(NOW + 2 * 86400, tz=timezone.utc),
        image_name="btc.png",
        image_data=b"\x89PNG",
    )
    fields.update(kw)
    return ProposalForm(**fields)


class FakeChain:
    address = PROPOSER

    def __init__(self, fail: dict[str, Exception] | None = None, market_id: int = 7, parse_failures: int = 0):
        self.fail = fail or {}
        self.market_id = market_id
        self.parse_failures = parse_failures
        self.calls: list[str] = []

    def _maybe_fail(self, name):
        self.calls.append(name)
        if name in self.fail:
            raise self.fail[name]

    async def creation_stake_amount(self):
        self._maybe_fail("stake")
        return 1_000_000

    async def approve(self, amount):
        self._maybe_fail("approve")

    async def submit_proposal(self, question, option_a, option_b, end_time):
        self._maybe_fail("submit")
        return "0xfeed"

    async def wait_for_receipt(self, tx_hash, step):
        self._maybe_fail("receipt")

    async def extract_market_id(self, tx_hash):
        self._maybe_fail("extract")
        if self.parse_failures:
            self.parse_failures -= 1
            raise TransactionError("logs not indexed yet", step="awaiting_confirmation")
        return self.market_id


class FakeImages:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.uploads = []

    async def upload(self, original_name, data, proposer):
        if self.error:
            raise self.error
        self.uploads.append((original_name, proposer))
        return f"http://img/{original_name}"


class FakeMetadata:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.saved = []

    async def save_metadata(self, market_id, description, image_url, proposer_address, tag):
        if self.error:
            raise self.error
        self.saved.append((market_id, description, image_url, proposer_address, tag))
        return MarketMetadata(
            market_id=market_id, description=description, image_url=image_url, proposer_address=proposer_address
        )


async def no_sleep(seconds):
    no_sleep.calls.append(seconds)


def make_flow(chain=None, images=None, metadata=None, events=None, **kw):
    no_sleep.calls = []
    return ProposalFlow(
        chain or FakeChain(),
        images or FakeImages(),
        metadata or FakeMetadata(),
        events,
        clock=lambda: NOW,
        sleep=no_sleep,
        **kw,
    )


def test_happy_path_runs_steps_in_order_and_broadcasts():
    events = MarketEvents()
    seen = []
    events.subscribe(seen.append)
    metadata = FakeMetadata()
    flow = make_flow(metadata=metadata, events=events)

    result = asyncio.run(flow.submit(form()))

    assert result.ok
    assert result.market_id == 7
    assert result.tx_hash == "0xfeed"
    assert result.image_url == "http://img/btc.png"
    assert result.history == [
        ProposalStep.IDLE,
        ProposalStep.UPLOADING_IMAGE,
        ProposalStep.APPROVING_ALLOWANCE,
        ProposalStep.SUBMITTING_PROPOSAL,
        ProposalStep.AWAITING_CONFIRMATION,
        ProposalStep.PERSISTING_METADATA,
        ProposalStep.DONE,
    ]
    assert metadata.saved == [(7, "Resolves on the daily close.", "http://img/btc.png", PROPOSER, "Crypto")]
    assert [e.market_id for e in seen] == [7]
    assert seen[0].question == "Will BTC close above 100k?"


@pytest.mark.parametrize(
    "changes,message",
    [
        ({"question": "  "}, "Question is required"),
        ({"option_b": ""}, "Option B is required"),
        ({"resolution_time": None}, "Resolution time is required"),
        ({"tag": ""}, "Please select a tag"),
        ({"tag": "Weather"}, "Unknown tag: Weather"),
        ({"image_data": b""}, "Image is required"),
        ({"image_name": "notes.txt"}, "Unsupported image type: .txt"),
        ({"resolution_time": datetime.fromtimestamp(NOW - 60, tz=timezone.utc)}, "Resolution time must be in the future"),
        ({"resolution_time": datetime.fromtimestamp(NOW + 1800, tz=timezone.utc)}, "Market must run for at least 1 hour"),
        ({"resolution_time": datetime.fromtimestamp(NOW + 31 * 86400, tz=timezone.utc)}, "Market cannot run for more than 30 days"),
    ],
)
def test_validation_stops_before_any_call(changes, message):
    chain = FakeChain()
    images = FakeImages()
    result = asyncio.run(make_flow(chain=chain, images=images).submit(form(**changes)))
    assert result.step == ProposalStep.IDLE
    assert result.failed_step is None
    assert result.error == message
    assert chain.calls == []
    assert images.uploads == []


def test_image_failure_stops_before_chain():
    chain = FakeChain()
    result = asyncio.run(make_flow(chain=chain, images=FakeImages(UpstreamWriteError("Failed to upload image"))).submit(form()))
    assert result.step == ProposalStep.FAILED
    assert result.failed_step == ProposalStep.UPLOADING_IMAGE
    assert result.error == "Failed to upload image"
    assert chain.calls == []


@pytest.mark.parametrize(
    "fail,step",
    [
        ("approve", ProposalStep.APPROVING_ALLOWANCE),
        ("submit", ProposalStep.SUBMITTING_PROPOSAL),
        ("receipt", ProposalStep.AWAITING_CONFIRMATION),
    ],
)
def test_chain_failure_reports_step(fail, step):
    events = MarketEvents()
    seen = []
    events.subscribe(seen.append)
    metadata = FakeMetadata()
    chain = FakeChain(fail={fail: TransactionError(f"{fail} failed", step=step.value)})
    result = asyncio.run(make_flow(chain=chain, metadata=metadata, events=events).submit(form()))
    assert result.step == ProposalStep.FAILED
    assert result.failed_step == step
    assert result.error == f"{fail} failed"
    assert result.market_id is None
    assert metadata.saved == []
    assert seen == []


def test_market_id_extraction_retried_with_backoff():
    chain = FakeChain(parse_failures=2)
    flow = make_flow(chain=chain, receipt_parse_attempts=3, receipt_parse_backoff_sec=1.0)
    result = asyncio.run(flow.submit(form()))
    assert result.ok
    assert chain.calls.count("extract") == 3
    assert no_sleep.calls == [1.0, 2.0]


def test_market_id_extraction_gives_up():
    chain = FakeChain(parse_failures=5)
    result = asyncio.run(make_flow(chain=chain, receipt_parse_attempts=3).submit(form()))
    assert result.failed_step == ProposalStep.AWAITING_CONFIRMATION
    assert "after multiple attempts" in result.error
    assert chain.calls.count("extract") == 3


def test_metadata_failure_keeps_market_id():
    events = MarketEvents()
    seen = []
    events.subscribe(seen.append)
    metadata = FakeMetadata(AuthorizationError("Proposer address verification failed"))
    result = asyncio.run(make_flow(metadata=metadata, events=events).submit(form()))
    assert result.step == ProposalStep.FAILED
    assert result.failed_step == ProposalStep.PERSISTING_METADATA
    assert result.market_id == 7
    assert result.tx_hash == "0xfeed"
    assert seen == []


def test_step_callback_and_flow_state():
    steps = []
    flow = make_flow(on_step=steps.append)
    asyncio.run(flow.submit(form()))
    assert steps[0] == ProposalStep.UPLOADING_IMAGE
    assert steps[-1] == ProposalStep.DONE
    assert flow.step == ProposalStep.DONE


def test_form_with_missing_image_file(tmp_path):
    with pytest.raises(ValidationError):
        ProposalForm.with_image_file(tmp_path / "missing.png", question="Q")
    path = tmp_path / "cover.jpg"
    path.write_bytes(b"jpeg")
    f = ProposalForm.with_image_file(path, question="Q")
    assert f.image_name == "cover.jpg"
    assert f.image_data == b"jpeg"
