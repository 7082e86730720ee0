"""Proposal submission flow - upload image, approve stake, propose, confirm, save metadata."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Protocol

import structlog

from predmarket.errors import PredMarketError, TransactionError, ValidationError
from predmarket.models import MarketCreated, MarketMetadata, MarketTag
from predmarket.storage.images import ImageStore, check_image_name
from predmarket.view.board import MarketEvents

if TYPE_CHECKING:
    from predmarket.config import Settings

log = structlog.get_logger(__name__)


class ProposalStep(str, Enum):
    IDLE = "idle"
    UPLOADING_IMAGE = "uploading_image"
    APPROVING_ALLOWANCE = "approving_allowance"
    SUBMITTING_PROPOSAL = "submitting_proposal"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    PERSISTING_METADATA = "persisting_metadata"
    DONE = "done"
    FAILED = "failed"


STEP_LABELS = {
    ProposalStep.UPLOADING_IMAGE: "Uploading image...",
    ProposalStep.APPROVING_ALLOWANCE: "Approving creation stake...",
    ProposalStep.SUBMITTING_PROPOSAL: "Submitting proposal...",
    ProposalStep.AWAITING_CONFIRMATION: "Waiting for confirmation...",
    ProposalStep.PERSISTING_METADATA: "Saving market details...",
}


class ImageUploader(Protocol):
    async def upload(self, original_name: str, data: bytes, proposer: str) -> str: ...


class ProposalChain(Protocol):
    """Subset of the chain layer the flow drives."""

    address: str

    async def creation_stake_amount(self) -> int: ...

    async def approve(self, amount: int) -> Any: ...

    async def submit_proposal(self, question: str, option_a: str, option_b: str, end_time: int) -> str: ...

    async def wait_for_receipt(self, tx_hash: str, step: str) -> Any: ...

    async def extract_market_id(self, tx_hash: str) -> int: ...


class MetadataWriter(Protocol):
    async def save_metadata(
        self, market_id: int, description: str, image_url: str, proposer_address: str, tag: str
    ) -> MarketMetadata: ...


@dataclass
class ProposalForm:
    question: str = ""
    option_a: str = ""
    option_b: str = ""
    description: str = ""
    tag: str = ""
    resolution_time: datetime | None = None
    image_name: str = ""
    image_data: bytes = b""

    @classmethod
    def with_image_file(cls, image_path: str | Path, **fields: Any) -> ProposalForm:
        path = Path(image_path)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise ValidationError(f"Cannot read image {path}: {e.strerror}") from e
        return cls(image_name=path.name, image_data=data, **fields)

    @property
    def end_time(self) -> int:
        return int(self.resolution_time.timestamp()) if self.resolution_time else 0

    def validate(self, now: float, min_duration_sec: int = 3600, max_duration_sec: int = 30 * 86400) -> None:
        """Raise ValidationError with the first problem found."""
        if not self.question.strip():
            raise ValidationError("Question is required")
        if not self.option_a.strip():
            raise ValidationError("Option A is required")
        if not self.option_b.strip():
            raise ValidationError("Option B is required")
        if self.resolution_time is None:
            raise ValidationError("Resolution time is required")
        if not self.description.strip():
            raise ValidationError("Description is required")
        if not self.tag:
            raise ValidationError("Please select a tag")
        if self.tag not in {t.value for t in MarketTag}:
            raise ValidationError(f"Unknown tag: {self.tag}")
        if not self.image_data:
            raise ValidationError("Image is required")
        check_image_name(self.image_name)
        remaining = self.resolution_time.timestamp() - now
        if remaining <= 0:
            raise ValidationError("Resolution time must be in the future")
        if remaining < min_duration_sec:
            raise ValidationError("Market must run for at least 1 hour")
        if remaining > max_duration_sec:
            raise ValidationError("Market cannot run for more than 30 days")


@dataclass
class ProposalResult:
    step: ProposalStep
    market_id: int | None = None
    image_url: str | None = None
    tx_hash: str | None = None
    failed_step: ProposalStep | None = None
    error: str | None = None
    history: list[ProposalStep] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.step == ProposalStep.DONE


class ProposalFlow:
    """
    One submission per call to submit(). Every failure ends in FAILED with the step
    that raised; nothing is retried automatically except reading the market id from
    the receipt logs.
    """

    def __init__(
        self,
        chain: ProposalChain,
        images: ImageUploader,
        metadata: MetadataWriter,
        events: MarketEvents | None = None,
        *,
        min_duration_sec: int = 3600,
        max_duration_sec: int = 30 * 86400,
        receipt_parse_attempts: int = 3,
        receipt_parse_backoff_sec: float = 1.0,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_step: Callable[[ProposalStep], None] | None = None,
    ) -> None:
        self.chain = chain
        self.images = images
        self.metadata = metadata
        self.events = events
        self.min_duration_sec = min_duration_sec
        self.max_duration_sec = max_duration_sec
        self.receipt_parse_attempts = receipt_parse_attempts
        self.receipt_parse_backoff_sec = receipt_parse_backoff_sec
        self.clock = clock
        self.sleep = sleep
        self.on_step = on_step
        self.step = ProposalStep.IDLE

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        chain: ProposalChain,
        metadata: MetadataWriter,
        events: MarketEvents | None = None,
        on_step: Callable[[ProposalStep], None] | None = None,
    ) -> ProposalFlow:
        """Flow with the configured image store, durations and receipt parsing policy."""
        return cls(
            chain,
            ImageStore(settings.images_dir, settings.images_base_url),
            metadata,
            events,
            min_duration_sec=settings.min_duration_sec,
            max_duration_sec=settings.max_duration_sec,
            receipt_parse_attempts=settings.receipt_parse_attempts,
            receipt_parse_backoff_sec=settings.receipt_parse_backoff_sec,
            on_step=on_step,
        )

    def _enter(self, step: ProposalStep, result: ProposalResult) -> None:
        self.step = step
        result.step = step
        result.history.append(step)
        log.info("proposal_step", step=step.value, market_id=result.market_id)
        if self.on_step is not None:
            self.on_step(step)

    async def _extract_market_id(self, tx_hash: str) -> int:
        last_error: Exception | None = None
        for attempt in range(self.receipt_parse_attempts):
            if attempt > 0:
                await self.sleep(self.receipt_parse_backoff_sec * attempt)
            try:
                return await self.chain.extract_market_id(tx_hash)
            except TransactionError as e:
                last_error = e
                log.warning(
                    "market_id_parse_failed",
                    attempt=attempt + 1,
                    max_attempts=self.receipt_parse_attempts,
                    error=str(e),
                )
        raise TransactionError(
            "Failed to parse transaction logs to get market ID after multiple attempts.",
            step=ProposalStep.AWAITING_CONFIRMATION.value,
        ) from last_error

    async def submit(self, form: ProposalForm) -> ProposalResult:
        result = ProposalResult(step=ProposalStep.IDLE, history=[ProposalStep.IDLE])
        self.step = ProposalStep.IDLE
        try:
            form.validate(self.clock(), self.min_duration_sec, self.max_duration_sec)
        except ValidationError as e:
            result.error = str(e)
            log.info("proposal_invalid", error=result.error)
            return result

        proposer = self.chain.address
        try:
            self._enter(ProposalStep.UPLOADING_IMAGE, result)
            result.image_url = await self.images.upload(form.image_name, form.image_data, proposer)

            self._enter(ProposalStep.APPROVING_ALLOWANCE, result)
            stake = await self.chain.creation_stake_amount()
            await self.chain.approve(stake)

            self._enter(ProposalStep.SUBMITTING_PROPOSAL, result)
            result.tx_hash = await self.chain.submit_proposal(
                form.question.strip(), form.option_a.strip(), form.option_b.strip(), form.end_time
            )

            self._enter(ProposalStep.AWAITING_CONFIRMATION, result)
            await self.chain.wait_for_receipt(result.tx_hash, ProposalStep.AWAITING_CONFIRMATION.value)
            result.market_id = await self._extract_market_id(result.tx_hash)

            self._enter(ProposalStep.PERSISTING_METADATA, result)
            await self.metadata.save_metadata(
                result.market_id, form.description.strip(), result.image_url, proposer, form.tag
            )
        except PredMarketError as e:
            failed = self.step
            self._enter(ProposalStep.FAILED, result)
            result.failed_step = failed
            result.error = str(e)
            log.error("proposal_failed", failed_step=failed.value, market_id=result.market_id, error=result.error)
            return result

        self._enter(ProposalStep.DONE, result)
        if self.events is not None:
            self.events.publish(
                MarketCreated(
                    market_id=result.market_id,
                    proposer=proposer,
                    question=form.question.strip(),
                    option_a=form.option_a.strip(),
                    option_b=form.option_b.strip(),
                    end_time=form.end_time,
                )
            )
        return result
