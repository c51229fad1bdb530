"""
Canonical result types returned by the Buzzex trader.

Every value here is immutable and owned by the caller once returned;
the trader keeps no reference to them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


@dataclass(frozen=True)
class Trade:
    id: str
    occurred_at: datetime
    price: Decimal
    amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tid": self.id,
            "date": self.occurred_at.isoformat(),
            "price": str(self.price),
            "amount": str(self.amount),
        }


@dataclass(frozen=True)
class PortfolioEntry:
    asset_name: str
    amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.asset_name, "amount": str(self.amount)}


@dataclass(frozen=True)
class Ticker:
    """Point-in-time best bid/ask snapshot."""
    bid: Decimal
    ask: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {"bid": str(self.bid), "ask": str(self.ask)}


@dataclass(frozen=True)
class OrderRequest:
    """
    Order as submitted to the exchange.

    ``price`` is already normalized to the market's price precision and
    rendered as a plain decimal string; ``amount`` is passed through
    unrounded.
    """
    side: OrderSide
    amount: Decimal
    price: str


@dataclass(frozen=True)
class OrderInfo:
    price: Decimal
    amount: Decimal
    created_at: datetime
    fee_percent: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "price": str(self.price),
            "amount": str(self.amount),
            "date": self.created_at.isoformat(),
            "feePercent": self.fee_percent,
        }


@dataclass(frozen=True)
class CancelResult:
    executed: bool
    open: bool
    filled_amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "executed": self.executed,
            "open": self.open,
            "filledAmount": str(self.filled_amount),
        }
