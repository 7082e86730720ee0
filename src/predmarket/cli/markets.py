"""Markets subcommand: list, show, watch."""

from __future__ import annotations

import asyncio

import typer

from predmarket.api.client import MetadataClient
from predmarket.chain.contract import MarketContract
from predmarket.cli.common import check_wallet, format_row, run_async
from predmarket.view.board import SORT_ORDERS, STATUS_FILTERS, MarketBoard
from predmarket.view.panels import render_panel
from predmarket.view.reconciler import MarketReconciler
from predmarket.view.state import MarketViewState

app = typer.Typer(help="Browse markets and follow one market live")


def _echo_detail(view: MarketViewState) -> None:
    if view.market is None:
        typer.echo(f"Market {view.market_id}: loading (not found on-chain yet)")
        return
    m = view.market
    typer.echo(f"#{m.id}  {m.question}")
    if view.tag:
        typer.echo(f"Tag: {view.tag}")
    if view.description:
        typer.echo(view.description)
    typer.echo(f"Image: {view.image_url}")
    typer.echo(f"{m.option_a}: {view.option_a_percentage}%   {m.option_b}: {view.option_b_percentage}%")
    typer.echo(f"Volume: {view.volume_label}   Ends: {view.time_label}")
    if view.position is not None:
        typer.echo(f"Your shares: {m.option_a} {view.position.option_a_shares}, {m.option_b} {view.position.option_b_shares}")
    panel = render_panel(view)
    typer.echo(f"[{panel.title}]")
    for line in panel.lines:
        typer.echo(f"  {line}")


@app.command("list")
def list_markets(
    ctx: typer.Context,
    status: str = typer.Option("all", "--status", "-s", help=f"One of: {', '.join(STATUS_FILTERS)}"),
    tag: str | None = typer.Option(None, "--tag", "-t", help="Category tag"),
    search: str | None = typer.Option(None, "--search", "-q", help="Substring of the question"),
    sort: str = typer.Option("newest", "--sort", help=f"One of: {', '.join(SORT_ORDERS)}"),
) -> None:
    """List markets from the contract with metadata from the API."""
    if status not in STATUS_FILTERS:
        raise typer.BadParameter(f"status must be one of {', '.join(STATUS_FILTERS)}")
    if sort not in SORT_ORDERS:
        raise typer.BadParameter(f"sort must be one of {', '.join(SORT_ORDERS)}")
    settings = ctx.obj["settings"]

    async def _list() -> list[MarketViewState]:
        contract = MarketContract.from_settings(settings)
        try:
            async with MetadataClient(settings.api_base_url, timeout=settings.api_timeout_sec) as metadata:
                board = MarketBoard(contract, metadata, metadata_max_attempts=settings.metadata_max_attempts)
                await board.refresh()
                return board.select(status=status, tag=tag, query=search, sort=sort)
        finally:
            await contract.close()

    views = run_async(_list())
    for v in views:
        typer.echo(format_row(v))
    typer.echo(f"Total: {len(views)} markets")


@app.command("show")
def show(
    ctx: typer.Context,
    market_id: int = typer.Argument(..., min=0, help="Market ID"),
    wallet: str | None = typer.Option(None, "--wallet", "-w", help="Show this address's position", callback=check_wallet),
) -> None:
    """Show one market with the action available for its state."""
    settings = ctx.obj["settings"]

    async def _show() -> MarketViewState:
        contract = MarketContract.from_settings(settings)
        try:
            async with MetadataClient(settings.api_base_url, timeout=settings.api_timeout_sec) as metadata:
                rec = MarketReconciler(
                    market_id, contract, metadata, contract, wallet,
                    metadata_max_attempts=settings.metadata_max_attempts,
                )
                return await rec.refresh()
        finally:
            await contract.close()

    _echo_detail(run_async(_show()))


@app.command("watch")
def watch(
    ctx: typer.Context,
    market_id: int = typer.Argument(..., min=0, help="Market ID"),
    wallet: str | None = typer.Option(None, "--wallet", "-w", help="Show this address's position", callback=check_wallet),
) -> None:
    """Poll one market and print it whenever it changes (Ctrl+C to stop)."""
    settings = ctx.obj["settings"]

    def changed(view: MarketViewState) -> None:
        typer.echo("")
        _echo_detail(view)

    async def _watch() -> None:
        contract = MarketContract.from_settings(settings)
        try:
            async with MetadataClient(settings.api_base_url, timeout=settings.api_timeout_sec) as metadata:
                rec = MarketReconciler(
                    market_id, contract, metadata, contract, wallet,
                    poll_interval=settings.poll_interval_sec,
                    metadata_max_attempts=settings.metadata_max_attempts,
                    on_change=changed,
                )
                async with rec:
                    await asyncio.Event().wait()
        finally:
            await contract.close()

    typer.echo(f"Watching market {market_id} every {settings.poll_interval_sec:g}s (Ctrl+C to stop)...")
    try:
        run_async(_watch())
    except KeyboardInterrupt:
        pass
    typer.echo("Stopped.")
