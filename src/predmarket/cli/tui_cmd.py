"""TUI dashboard command."""

import typer

from predmarket.cli.common import check_wallet
from predmarket.tui.app import run_tui

app = typer.Typer(help="Launch TUI market board")


@app.callback(invoke_without_command=True)
def tui(
    ctx: typer.Context,
    wallet: str | None = typer.Option(None, "--wallet", "-w", help="Show positions for this address", callback=check_wallet),
) -> None:
    """Launch the Textual market board (live odds, positions, claims)."""
    if ctx.invoked_subcommand is not None:
        return
    settings = ctx.obj["settings"]
    run_tui(settings, wallet=wallet)
