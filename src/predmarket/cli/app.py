"""Root CLI app - entry point and command registration."""

from pathlib import Path

import typer

from predmarket.config import get_settings
from predmarket.config.settings import configure_logging

app = typer.Typer(
    name="predmarket",
    help="predmarket - Binary prediction markets: metadata API, market views, proposals and trading.",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config_dir: Path | None = typer.Option(
        None, "--config-dir", "-C", help="Config directory (default: ./config or package config)"
    ),
    profile: str | None = typer.Option(
        None, "--profile", "-p", help="Config profile (e.g. dev) to overlay on default.toml"
    ),
) -> None:
    """Configure logging and store options in context."""
    settings = get_settings(profile, config_dir)
    configure_logging(settings)
    ctx.obj = {"settings": settings, "config_dir": config_dir, "profile": profile}


# Subcommands registered from other modules
from predmarket.cli import admin, api_cmd, markets, propose, trade, tui_cmd  # noqa: E402

app.add_typer(api_cmd.app, name="api")
app.add_typer(markets.app, name="markets")
app.add_typer(propose.app, name="propose")
app.add_typer(trade.app, name="trade")
app.add_typer(admin.app, name="admin")
app.add_typer(tui_cmd.app, name="tui")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
