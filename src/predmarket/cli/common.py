"""Shared helpers for commands that talk to the chain or the metadata API."""

from __future__ import annotations

import asyncio
from decimal import Decimal, InvalidOperation
from typing import Any, Coroutine, TypeVar

import typer
from web3 import AsyncWeb3

from predmarket.chain.contract import MarketContract
from predmarket.chain.dispatcher import ActionDispatcher
from predmarket.config import Settings
from predmarket.errors import PredMarketError
from predmarket.models import SHARE_SCALE
from predmarket.view.state import MarketViewState

T = TypeVar("T")


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a command coroutine; domain errors become a message and exit code 1."""
    try:
        return asyncio.run(coro)
    except PredMarketError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e


def check_wallet(value: str | None) -> str | None:
    """Typer callback for --wallet options."""
    if value is not None and not AsyncWeb3.is_address(value):
        raise typer.BadParameter(f"Not a valid address: {value}")
    return value


def make_dispatcher(settings: Settings, contract: MarketContract) -> ActionDispatcher:
    key = settings.private_key
    if not key:
        typer.echo(f"No signing key. Set {settings.private_key_env} to send transactions.", err=True)
        raise typer.Exit(1)
    return ActionDispatcher(contract, key, settings.chain_id, settings.receipt_timeout_sec)


def parse_amount(value: str) -> int:
    """Token amount ("12.5") to base units."""
    try:
        amount = Decimal(value) * SHARE_SCALE
    except InvalidOperation as e:
        raise typer.BadParameter(f"Not a number: {value}") from e
    if amount <= 0 or amount != amount.to_integral_value():
        raise typer.BadParameter(f"Amount must be positive with at most 6 decimals: {value}")
    return int(amount)


def format_row(view: MarketViewState) -> str:
    m = view.market
    question = m.question[:56]
    tag = view.tag or "-"
    return (
        f"  {view.market_id:>4}  {view.option_a_percentage:>3}% / {view.option_b_percentage:>3}%  "
        f"{view.volume_label:>8}  {view.time_label:>8}  {tag:<11}  {question}"
    )
