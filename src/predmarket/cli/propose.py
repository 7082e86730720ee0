"""Propose command: create a market on-chain and save its metadata."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import typer

from predmarket.api.client import MetadataClient
from predmarket.chain.contract import MarketContract
from predmarket.cli.common import make_dispatcher, run_async
from predmarket.errors import ValidationError
from predmarket.models import MarketTag
from predmarket.proposal.flow import STEP_LABELS, ProposalFlow, ProposalForm, ProposalResult, ProposalStep

app = typer.Typer(help="Propose a new market")


@app.callback(invoke_without_command=True)
def propose(
    ctx: typer.Context,
    question: str = typer.Option(..., "--question", help="Market question"),
    option_a: str = typer.Option(..., "--option-a", help="First outcome"),
    option_b: str = typer.Option(..., "--option-b", help="Second outcome"),
    description: str = typer.Option(..., "--description", help="Resolution criteria and context"),
    tag: str = typer.Option(..., "--tag", help=f"One of: {', '.join(t.value for t in MarketTag)}"),
    ends_at: datetime = typer.Option(
        ..., "--ends-at", formats=["%Y-%m-%dT%H:%M", "%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M:%S"],
        help="Resolution time (local time)",
    ),
    image: Path = typer.Option(..., "--image", exists=True, dir_okay=False, help="Market image file"),
) -> None:
    """Upload the image, pay the creation stake, propose the market and save its details."""
    if ctx.invoked_subcommand is not None:
        return
    settings = ctx.obj["settings"]
    try:
        form = ProposalForm.with_image_file(
            image,
            question=question,
            option_a=option_a,
            option_b=option_b,
            description=description,
            tag=tag,
            resolution_time=ends_at,
        )
    except ValidationError as e:
        raise typer.BadParameter(str(e)) from e

    def on_step(step: ProposalStep) -> None:
        if step in STEP_LABELS:
            typer.echo(STEP_LABELS[step])

    async def _propose() -> ProposalResult:
        contract = MarketContract.from_settings(settings)
        try:
            dispatcher = make_dispatcher(settings, contract)
            async with MetadataClient(settings.api_base_url, timeout=settings.api_timeout_sec) as metadata:
                flow = ProposalFlow.from_settings(settings, dispatcher, metadata, on_step=on_step)
                return await flow.submit(form)
        finally:
            await contract.close()

    result = run_async(_propose())
    if result.ok:
        typer.echo(f"Market {result.market_id} created (tx {result.tx_hash}).")
        return
    if result.failed_step is None:
        typer.echo(f"Invalid proposal: {result.error}", err=True)
    else:
        typer.echo(f"Failed while {result.failed_step.value.replace('_', ' ')}: {result.error}", err=True)
        if result.market_id is not None:
            typer.echo(f"The market exists on-chain as #{result.market_id}; only its details were not saved.", err=True)
    raise typer.Exit(1)
