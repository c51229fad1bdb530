from __future__ import annotations

import json
from decimal import Decimal

import pytest

import main


def test_parser_trades_options():
    args = main.build_parser().parse_args(["trades", "--since", "2020-09-13T12:26:40", "--descending"])
    assert args.command == "trades"
    assert args.descending is True
    assert args.since.timestamp() == 1_600_000_000


@pytest.mark.asyncio
async def test_run_command_ticker(make_trader, transport):
    transport.script("ticker", (None, [{"eth_btc": {"highest_bid": "1", "lowest_ask": "2"}}]))
    args = main.build_parser().parse_args(["ticker"])
    result = await main.run_command(args, make_trader())
    assert main._to_json(result) == {"bid": "1", "ask": "2"}


@pytest.mark.asyncio
async def test_run_command_fee(make_trader):
    args = main.build_parser().parse_args(["fee"])
    assert await main.run_command(args, make_trader()) == pytest.approx(0.0002)


def test_capabilities_command_prints_json(tmp_path, capsys, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(main, "setup_logging", lambda **kwargs: None)
    assert main.main(["--config", str(tmp_path / "missing.yaml"), "capabilities"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["name"] == "Buzzex"


def test_to_json_handles_lists():
    from buzzex_trader.exchange.models import PortfolioEntry

    assert main._to_json([PortfolioEntry("BTC", Decimal("1"))]) == [{"name": "BTC", "amount": "1"}]
