"""Market view state - pure derivations from market, metadata and position."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from predmarket.models import SHARE_SCALE, Market, MarketMetadata, Outcome, UserPosition

DEFAULT_IMAGE_URL = "/defaultimg.jpg"


class PresentationState(str, Enum):
    """Which action panel a market shows. LOADING is never returned by classify()."""

    LOADING = "loading"
    EXPIRED_UNRESOLVED = "expired_unresolved"
    OPEN = "open"
    RESOLVED_INVALID = "resolved_invalid"
    RESOLVED_WINNER = "resolved_winner"
    RESOLVED_NO_POSITION_OR_LOSER = "resolved_no_position_or_loser"


def is_expired(market: Market, now: float) -> bool:
    return now > market.end_time


def winning_shares(market: Market, position: UserPosition | None) -> int:
    """Shares the position holds on the winning side (0 without a position or before resolution)."""
    if position is None or market.outcome not in (Outcome.OPTION_A, Outcome.OPTION_B):
        return 0
    if market.outcome == Outcome.OPTION_A:
        return position.option_a_shares
    return position.option_b_shares


def user_result(market: Market, position: UserPosition | None) -> str | None:
    """'winner', 'loser' or None when the wallet did not take part."""
    if not market.resolved or position is None or market.outcome == Outcome.INVALID:
        return None
    if winning_shares(market, position) > 0:
        return "winner"
    if position.option_a_shares + position.option_b_shares > 0:
        return "loser"
    return None


def classify(market: Market, position: UserPosition | None, now: float) -> PresentationState:
    """Presentation state in precedence order. Pure function of its inputs."""
    expired = is_expired(market, now)
    if not market.resolved:
        return PresentationState.EXPIRED_UNRESOLVED if expired else PresentationState.OPEN
    if market.outcome == Outcome.INVALID:
        return PresentationState.RESOLVED_INVALID
    if winning_shares(market, position) > 0:
        return PresentationState.RESOLVED_WINNER
    return PresentationState.RESOLVED_NO_POSITION_OR_LOSER


def option_a_percentage(option_a_shares: int, option_b_shares: int) -> int:
    """Option A share of the pool, rounded half up; 50 for an empty pool.

    Option B is shown as 100 - this value; the pair is not re-normalised.
    """
    total = option_a_shares + option_b_shares
    if total == 0:
        return 50
    # floor(100a/total + 1/2) in integer arithmetic
    return (200 * option_a_shares + total) // (2 * total)


def format_volume(option_a_shares: int, option_b_shares: int) -> str:
    """Total volume in token units with K/M suffixes."""
    total = option_a_shares + option_b_shares
    vol = total / SHARE_SCALE
    if vol >= 1_000_000:
        return f"{vol / 1_000_000:.1f}M"
    if vol >= 1_000:
        return f"{vol / 1_000:.1f}K"
    if total % SHARE_SCALE == 0:
        return str(total // SHARE_SCALE)
    return f"{vol:.6f}".rstrip("0").rstrip(".")


def format_time_remaining(end_time: int, now: float) -> str:
    """'Ended', or up to two units from days/hours/minutes starting at the coarsest non-zero one."""
    diff = end_time - now
    if diff <= 0:
        return "Ended"
    secs = int(diff)
    days, rem = divmod(secs, 86_400)
    hours, rem = divmod(rem, 3_600)
    minutes = rem // 60
    if days:
        return f"{days}d {hours}h" if hours else f"{days}d"
    if hours:
        return f"{hours}h {minutes}m" if minutes else f"{hours}h"
    return f"{minutes}m"


@dataclass(frozen=True)
class MarketViewState:
    """Everything a market card shows. Rebuilt from scratch on every source change."""

    market_id: int
    market: Market | None
    metadata: MarketMetadata | None
    position: UserPosition | None
    is_expired: bool
    is_resolved: bool
    presentation_state: PresentationState
    option_a_percentage: int = 50
    volume_label: str = "0"
    time_label: str = ""
    optimistic: bool = False

    @property
    def loading(self) -> bool:
        return self.presentation_state == PresentationState.LOADING

    @property
    def option_b_percentage(self) -> int:
        return 100 - self.option_a_percentage

    @property
    def image_url(self) -> str:
        if self.metadata and self.metadata.image_url:
            return self.metadata.image_url
        return DEFAULT_IMAGE_URL

    @property
    def description(self) -> str | None:
        if self.metadata and self.metadata.description:
            return self.metadata.description
        return None

    @property
    def tag(self) -> str | None:
        if self.metadata and self.metadata.tag:
            return self.metadata.tag.value
        return None

    @property
    def user_result(self) -> str | None:
        if self.market is None:
            return None
        return user_result(self.market, self.position)


def build_view_state(
    market_id: int,
    market: Market | None,
    metadata: MarketMetadata | None,
    position: UserPosition | None,
    now: float,
    optimistic: bool = False,
) -> MarketViewState:
    """Combine the sources into one MarketViewState (LOADING while the market is unknown)."""
    if market is None:
        return MarketViewState(
            market_id=market_id,
            market=None,
            metadata=metadata,
            position=position,
            is_expired=False,
            is_resolved=False,
            presentation_state=PresentationState.LOADING,
        )
    return MarketViewState(
        market_id=market_id,
        market=market,
        metadata=metadata,
        position=position,
        is_expired=is_expired(market, now),
        is_resolved=market.resolved,
        presentation_state=classify(market, position, now),
        option_a_percentage=option_a_percentage(market.total_option_a_shares, market.total_option_b_shares),
        volume_label=format_volume(market.total_option_a_shares, market.total_option_b_shares),
        time_label=format_time_remaining(market.end_time, now),
        optimistic=optimistic,
    )
