"""
Response Mappers - raw Buzzex payloads to canonical result types.

Pure functions, one per operation. Anything missing or unparseable raises
MalformedResponseError, which the retry invoker treats as fatal.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Mapping

from buzzex_trader.exchange.exceptions import MalformedResponseError
from buzzex_trader.exchange.models import (
    CancelResult,
    OrderInfo,
    PortfolioEntry,
    Ticker,
    Trade,
)
from buzzex_trader.exchange.precision import to_decimal


def _field(obj: Any, key: Any, what: str) -> Any:
    try:
        return obj[key]
    except (KeyError, IndexError, TypeError):
        raise MalformedResponseError(f"{what}: missing field {key!r}") from None


def _decimal(value: Any, what: str) -> Decimal:
    if value is None:
        raise MalformedResponseError(f"{what}: expected a number, got None")
    try:
        return to_decimal(value)
    except ValueError as e:
        raise MalformedResponseError(f"{what}: {e}") from e


def _timestamp(value: Any, what: str) -> datetime:
    try:
        seconds = int(round(float(value)))
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError) as e:
        raise MalformedResponseError(f"{what}: bad timestamp {value!r}") from e


def map_trades(raw: Any, pair: str, descending: bool = False) -> List[Trade]:
    """
    Map ``raw[pair]`` to trades ordered by time.

    No ``since`` filtering happens here: the exchange may return trades
    older than requested and callers must cope with that.
    """
    rows = _field(raw, pair, "trades")
    if not isinstance(rows, list):
        raise MalformedResponseError(f"trades: expected a list for {pair!r}")

    trades = [
        Trade(
            id=str(_field(row, "tid", "trade")),
            occurred_at=_timestamp(_field(row, "timestamp", "trade"), "trade"),
            price=_decimal(_field(row, "price", "trade"), "trade price"),
            amount=_decimal(_field(row, "amount", "trade"), "trade amount"),
        )
        for row in rows
    ]
    trades.sort(key=lambda t: t.occurred_at)
    if descending:
        trades.reverse()
    return trades


def map_portfolio(raw: Any) -> List[PortfolioEntry]:
    funds = _field(raw, "funds", "portfolio")
    if isinstance(funds, Mapping):
        items = list(funds.items())
    elif isinstance(funds, list):
        items = []
        for row in funds:
            if not isinstance(row, (list, tuple)) or len(row) < 2:
                raise MalformedResponseError(f"portfolio: bad balance row {row!r}")
            items.append((row[0], row[1]))
    else:
        raise MalformedResponseError("portfolio: funds must be a mapping or a list")

    return [
        PortfolioEntry(asset_name=str(name), amount=_decimal(amount, f"balance {name}"))
        for name, amount in items
    ]


def map_ticker(raw: Any, pair: str) -> Ticker:
    result = _field(raw, 0, "ticker")
    book = _field(result, pair.lower(), "ticker")
    return Ticker(
        bid=_decimal(_field(book, "highest_bid", "ticker"), "ticker bid"),
        ask=_decimal(_field(book, "lowest_ask", "ticker"), "ticker ask"),
    )


def map_order(raw: Any, order_id: str, fee_percent: float) -> OrderInfo:
    info = _field(_field(raw, "orderInfo", "order"), order_id, "order")
    return OrderInfo(
        price=_decimal(_field(info, "rate", "order"), "order rate"),
        amount=_decimal(_field(info, "amount", "order"), "order amount"),
        created_at=_timestamp(_field(info, "timestamp_created", "order"), "order"),
        fee_percent=fee_percent,
    )


def map_cancel(raw: Any) -> CancelResult:
    result = _field(raw, "data", "cancel")
    volume = _decimal(_field(result, "vol", "cancel"), "cancel vol")
    executed = _decimal(_field(result, "vol_exec", "cancel"), "cancel vol_exec")
    return CancelResult(
        executed=volume == executed,
        open=_field(result, "status", "cancel") == "open",
        filled_amount=executed,
    )
