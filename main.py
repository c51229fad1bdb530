#!/usr/bin/env python3
"""
Buzzex Trader - command line entry point.

Runs a single adapter operation against Buzzex and prints the canonical
result as JSON. Useful for smoke-testing credentials and connectivity.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from buzzex_trader.core.config import load_config_with_overrides
from buzzex_trader.core.logger import get_logger, setup_logging
from buzzex_trader.exchange.buzzex_rest import BuzzexRESTClient
from buzzex_trader.exchange.exceptions import ExchangeError
from buzzex_trader.exchange.markets import load_market_catalog
from buzzex_trader.exchange.trader import BuzzexTrader

logger = get_logger("main")


def _parse_since(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a Buzzex adapter operation.")
    parser.add_argument("--config", default="config/config.yaml")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("ticker")
    trades = sub.add_parser("trades")
    trades.add_argument("--since", type=_parse_since, default=None)
    trades.add_argument("--descending", action="store_true")
    sub.add_parser("portfolio")
    sub.add_parser("fee")
    order = sub.add_parser("order")
    order.add_argument("order_id")
    sub.add_parser("capabilities")
    return parser


def _to_json(result: Any) -> Any:
    if isinstance(result, list):
        return [_to_json(r) for r in result]
    if hasattr(result, "to_dict"):
        return result.to_dict()
    return result


async def run_command(args: argparse.Namespace, trader: BuzzexTrader) -> Any:
    if args.command == "ticker":
        return await trader.get_ticker()
    if args.command == "trades":
        return await trader.get_trades(since=args.since, descending=args.descending)
    if args.command == "portfolio":
        return await trader.get_portfolio()
    if args.command == "fee":
        return trader.get_fee()
    if args.command == "order":
        return await trader.get_order(args.order_id)
    raise ValueError(f"Unknown command: {args.command}")


async def _run(args: argparse.Namespace) -> int:
    config = load_config_with_overrides(args.config)
    setup_logging(
        log_level=config.app.log_level,
        log_dir=config.app.log_dir,
        json_output=config.app.json_logs,
    )

    if args.command == "capabilities":
        catalog = load_market_catalog(config.exchange.markets_path)
        print(json.dumps(BuzzexTrader.get_capabilities(catalog), indent=2))
        return 0

    async with BuzzexRESTClient(
        base_url=config.exchange.rest_url,
        timeout_seconds=config.exchange.timeout,
    ) as client:
        trader = BuzzexTrader.from_config(config, transport=client)
        try:
            result = await run_command(args, trader)
        except ExchangeError as e:
            logger.error("Command failed", command=args.command, error=str(e))
            return 1

    print(json.dumps(_to_json(result), indent=2))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
