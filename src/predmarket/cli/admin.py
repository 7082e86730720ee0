"""Admin subcommand: status, resolve, set-stake (contract owner only)."""

from __future__ import annotations

import asyncio
import time
from typing import Any

import typer

from predmarket.chain.contract import MarketContract
from predmarket.cli.common import format_row, make_dispatcher, parse_amount, run_async
from predmarket.models import SHARE_SCALE, Outcome
from predmarket.view.state import PresentationState, build_view_state

app = typer.Typer(help="Owner-only contract administration")

_OUTCOMES = {"a": Outcome.OPTION_A, "b": Outcome.OPTION_B, "invalid": Outcome.INVALID}


@app.command("status")
def status(ctx: typer.Context) -> None:
    """Show owner, creation stake, market count and markets awaiting resolution."""
    settings = ctx.obj["settings"]

    async def _status() -> dict[str, Any]:
        contract = MarketContract.from_settings(settings)
        try:
            owner, stake, count = await asyncio.gather(
                contract.owner(), contract.creation_stake_amount(), contract.market_count()
            )
            markets = await asyncio.gather(*(contract.get_market(i) for i in range(count)))
        finally:
            await contract.close()
        now = time.time()
        views = [build_view_state(m.id, m, None, None, now) for m in markets if m is not None]
        pending = [v for v in views if v.presentation_state == PresentationState.EXPIRED_UNRESOLVED]
        return {"owner": owner, "stake": stake, "count": count, "pending": pending}

    s = run_async(_status())
    typer.echo(f"Owner: {s['owner']}")
    typer.echo(f"Creation stake: {s['stake'] / SHARE_SCALE:g}")
    typer.echo(f"Markets: {s['count']}")
    typer.echo(f"Awaiting resolution: {len(s['pending'])}")
    for v in s["pending"]:
        typer.echo(format_row(v))


@app.command("resolve")
def resolve(
    ctx: typer.Context,
    market_id: int = typer.Argument(..., min=0, help="Market ID"),
    outcome: str = typer.Option(..., "--outcome", help="a, b or invalid"),
) -> None:
    """Resolve a market."""
    key = outcome.lower()
    if key not in _OUTCOMES:
        raise typer.BadParameter("outcome must be a, b or invalid")
    settings = ctx.obj["settings"]

    async def _resolve() -> int:
        contract = MarketContract.from_settings(settings)
        try:
            receipt = await make_dispatcher(settings, contract).resolve_market(market_id, _OUTCOMES[key])
            return receipt["blockNumber"]
        finally:
            await contract.close()

    block = run_async(_resolve())
    typer.echo(f"Market {market_id} resolved as {_OUTCOMES[key].name} (block {block}).")


@app.command("set-stake")
def set_stake(
    ctx: typer.Context,
    amount: str = typer.Argument(..., help="New creation stake, in tokens"),
) -> None:
    """Set the stake required to propose a market."""
    units = parse_amount(amount)
    settings = ctx.obj["settings"]

    async def _set() -> int:
        contract = MarketContract.from_settings(settings)
        try:
            receipt = await make_dispatcher(settings, contract).set_creation_stake(units)
            return receipt["blockNumber"]
        finally:
            await contract.close()

    block = run_async(_set())
    typer.echo(f"Creation stake set to {amount} (block {block}).")
