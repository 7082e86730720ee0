"""Action panels - one renderer per presentation state."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from predmarket.models import Outcome
from predmarket.view.state import MarketViewState, PresentationState


@dataclass(frozen=True)
class ActionPanel:
    title: str
    lines: list[str] = field(default_factory=list)
    action: str | None = None  # "buy", "claim_winnings", "claim_refund" or None


def _winner_label(view: MarketViewState) -> str:
    m = view.market
    return m.option_a if m.outcome == Outcome.OPTION_A else m.option_b


def _loading(view: MarketViewState) -> ActionPanel:
    return ActionPanel("Loading market...")


def _expired_unresolved(view: MarketViewState) -> ActionPanel:
    return ActionPanel("Awaiting resolution", ["Trading has ended. The outcome will be set by the resolver."])


def _open(view: MarketViewState) -> ActionPanel:
    m = view.market
    return ActionPanel(
        "Buy shares",
        [
            f"{m.option_a}: {view.option_a_percentage}%",
            f"{m.option_b}: {view.option_b_percentage}%",
            f"Ends in {view.time_label}",
        ],
        action="buy",
    )


def _resolved_invalid(view: MarketViewState) -> ActionPanel:
    return ActionPanel(
        "Market invalid",
        ["This market was deemed invalid or unresolvable. All participants can claim a full refund."],
        action="claim_refund",
    )


def _resolved_winner(view: MarketViewState) -> ActionPanel:
    lines = [f"Winner: {_winner_label(view)}"]
    if view.market.fees_for_creator:
        lines.append(f"Creator fees: {view.market.fees_for_creator}")
    return ActionPanel("Market resolved", lines, action="claim_winnings")


def _resolved_summary(view: MarketViewState) -> ActionPanel:
    lines = [f"Winner: {_winner_label(view)}"]
    if view.user_result == "loser":
        lines.append("Better luck next time - your prediction was incorrect.")
    return ActionPanel("Market resolved", lines)


RENDERERS: dict[PresentationState, Callable[[MarketViewState], ActionPanel]] = {
    PresentationState.LOADING: _loading,
    PresentationState.EXPIRED_UNRESOLVED: _expired_unresolved,
    PresentationState.OPEN: _open,
    PresentationState.RESOLVED_INVALID: _resolved_invalid,
    PresentationState.RESOLVED_WINNER: _resolved_winner,
    PresentationState.RESOLVED_NO_POSITION_OR_LOSER: _resolved_summary,
}


def render_panel(view: MarketViewState) -> ActionPanel:
    return RENDERERS[view.presentation_state](view)
