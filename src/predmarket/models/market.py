"""Market, MarketMetadata, UserPosition - on-chain and off-chain entities."""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any, Sequence

from pydantic import BaseModel, Field

# Collateral token fixed-point scale (USDC, 6 decimals)
SHARE_SCALE = 10**6


class Outcome(IntEnum):
    """Resolution outcome, encoded as the contract's uint8."""

    UNRESOLVED = 0
    OPTION_A = 1
    OPTION_B = 2
    INVALID = 3


class MarketTag(str, Enum):
    """Category tag attached to off-chain metadata."""

    CRYPTO = "Crypto"
    SPORTS = "Sports"
    POLITICS = "Politics"
    ENVIRONMENT = "Environment"
    MISC = "Misc"
    GAMING = "Gaming"


class Market(BaseModel):
    """Authoritative market state as returned by getMarketInfo."""

    id: int = Field(..., ge=0)
    question: str = ""
    option_a: str = ""
    option_b: str = ""
    end_time: int = 0  # unix seconds
    outcome: Outcome = Outcome.UNRESOLVED
    total_option_a_shares: int = Field(0, ge=0)
    total_option_b_shares: int = Field(0, ge=0)
    resolved: bool = False
    fees_for_creator: int = Field(0, ge=0)

    @classmethod
    def from_contract_tuple(cls, market_id: int, raw: Sequence[Any]) -> Market:
        """Build from (question, optionA, optionB, endTime, outcome, totalA, totalB, resolved, fees)."""
        return cls(
            id=market_id,
            question=raw[0],
            option_a=raw[1],
            option_b=raw[2],
            end_time=int(raw[3]),
            outcome=Outcome(int(raw[4])),
            total_option_a_shares=int(raw[5]),
            total_option_b_shares=int(raw[6]),
            resolved=bool(raw[7]),
            fees_for_creator=int(raw[8]),
        )

    @property
    def total_shares(self) -> int:
        return self.total_option_a_shares + self.total_option_b_shares


class MarketMetadata(BaseModel):
    """Off-chain descriptive fields, written once at proposal time."""

    market_id: int
    description: str
    image_url: str
    proposer_address: str
    tag: MarketTag | None = None
    created_at: str | None = None  # ISO timestamp, assigned server-side


class UserPosition(BaseModel):
    """Shares held by one wallet in one market."""

    market_id: int
    wallet: str
    option_a_shares: int = Field(0, ge=0)
    option_b_shares: int = Field(0, ge=0)


class MarketCreated(BaseModel):
    """Optimistic local event broadcast once a proposal is confirmed."""

    market_id: int
    proposer: str
    question: str
    option_a: str = ""
    option_b: str = ""
    end_time: int = 0

    def to_market(self) -> Market:
        """Minimal Market view of a freshly created, not yet polled market."""
        return Market(
            id=self.market_id,
            question=self.question,
            option_a=self.option_a,
            option_b=self.option_b,
            end_time=self.end_time,
        )
