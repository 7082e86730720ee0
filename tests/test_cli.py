"""CLI argument handling that needs no chain access."""

import pytest
import typer
from typer.testing import CliRunner

from predmarket.cli.app import app
from predmarket.cli.common import check_wallet, parse_amount

runner = CliRunner()


def test_parse_amount():
    assert parse_amount("1") == 1_000_000
    assert parse_amount("12.5") == 12_500_000
    assert parse_amount("0.000001") == 1
    for bad in ("0", "-3", "abc", "0.0000001"):
        with pytest.raises(typer.BadParameter):
            parse_amount(bad)


def test_bad_options_rejected():
    assert runner.invoke(app, ["markets", "list", "--status", "bogus"]).exit_code == 2
    assert runner.invoke(app, ["trade", "buy", "1", "--option", "c", "--amount", "5"]).exit_code == 2
    assert runner.invoke(app, ["admin", "resolve", "1", "--outcome", "maybe"]).exit_code == 2


def test_wallet_option_validated():
    assert check_wallet(None) is None
    assert check_wallet("0x00000000000000000000000000000000000000aa") == "0x00000000000000000000000000000000000000aa"
    with pytest.raises(typer.BadParameter):
        check_wallet("bogus")
    for args in (["markets", "show", "1"], ["markets", "watch", "1"], ["tui"]):
        result = runner.invoke(app, [*args, "--wallet", "bogus"])
        assert result.exit_code == 2


def test_help_lists_commands():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for name in ("api", "markets", "propose", "trade", "admin", "tui"):
        assert name in result.output
