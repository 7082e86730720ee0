"""Trade subcommand: buy, claim, refund."""

from __future__ import annotations

import time

import typer

from predmarket.chain.contract import MarketContract
from predmarket.chain.dispatcher import ActionDispatcher
from predmarket.cli.common import make_dispatcher, parse_amount, run_async
from predmarket.errors import ValidationError
from predmarket.models import SHARE_SCALE
from predmarket.view.panels import render_panel
from predmarket.view.state import MarketViewState, build_view_state

app = typer.Typer(help="Buy shares and claim payouts (signs with the configured key)")


async def _current_view(contract: MarketContract, dispatcher: ActionDispatcher, market_id: int) -> MarketViewState:
    market = await contract.get_market(market_id)
    if market is None:
        raise ValidationError(f"Market {market_id} not found")
    position = await contract.get_position(market_id, dispatcher.address)
    return build_view_state(market_id, market, None, position, time.time())


@app.command("buy")
def buy(
    ctx: typer.Context,
    market_id: int = typer.Argument(..., min=0, help="Market ID"),
    option: str = typer.Option(..., "--option", "-o", help="a or b"),
    amount: str = typer.Option(..., "--amount", "-a", help="Collateral to spend, in tokens (e.g. 12.5)"),
) -> None:
    """Buy shares of one outcome in an open market."""
    option = option.lower()
    if option not in ("a", "b"):
        raise typer.BadParameter("option must be a or b")
    units = parse_amount(amount)
    settings = ctx.obj["settings"]

    async def _buy() -> int:
        contract = MarketContract.from_settings(settings)
        try:
            dispatcher = make_dispatcher(settings, contract)
            view = await _current_view(contract, dispatcher, market_id)
            if render_panel(view).action != "buy":
                raise ValidationError(f"Market {market_id} is not open for trading")
            balance = await contract.token_balance(dispatcher.address)
            if balance < units:
                raise ValidationError(f"Insufficient balance: {balance / SHARE_SCALE:g} available")
            receipt = await dispatcher.buy_shares(market_id, option == "a", units)
            return receipt["blockNumber"]
        finally:
            await contract.close()

    block = run_async(_buy())
    typer.echo(f"Bought option {option.upper()} for {amount} in market {market_id} (block {block}).")


def _claim(settings, market_id: int, action: str) -> int:
    async def _run() -> int:
        contract = MarketContract.from_settings(settings)
        try:
            dispatcher = make_dispatcher(settings, contract)
            view = await _current_view(contract, dispatcher, market_id)
            if render_panel(view).action != action:
                raise ValidationError(f"Nothing to claim in market {market_id} ({view.presentation_state.value})")
            if action == "claim_refund":
                receipt = await dispatcher.claim_refund(market_id)
            else:
                receipt = await dispatcher.claim_winnings(market_id)
            return receipt["blockNumber"]
        finally:
            await contract.close()

    return run_async(_run())


@app.command("claim")
def claim(
    ctx: typer.Context,
    market_id: int = typer.Argument(..., min=0, help="Market ID"),
) -> None:
    """Claim winnings from a resolved market."""
    block = _claim(ctx.obj["settings"], market_id, "claim_winnings")
    typer.echo(f"Winnings claimed for market {market_id} (block {block}).")


@app.command("refund")
def refund(
    ctx: typer.Context,
    market_id: int = typer.Argument(..., min=0, help="Market ID"),
) -> None:
    """Claim a refund from a market resolved as invalid."""
    block = _claim(ctx.obj["settings"], market_id, "claim_refund")
    typer.echo(f"Refund claimed for market {market_id} (block {block}).")
