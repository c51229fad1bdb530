"""
Precision Normalizer - rounds prices and amounts to a market's precision.

Amounts are truncated so a submitted size never exceeds what the account
can cover; prices are rounded to nearest. The asymmetry is intentional.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Union

from buzzex_trader.exchange.markets import Market

Number = Union[Decimal, float, int, str]


def to_decimal(value: Number) -> Decimal:
    """Convert ``value`` to a finite Decimal (floats go through ``str`` to avoid binary noise)."""
    if isinstance(value, bool):
        raise ValueError(f"Non-numeric value: {value!r}")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"Non-numeric value: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Non-finite value: {value!r}")
    return result


def to_plain(value: Number) -> str:
    """Render ``value`` in plain decimal notation, never exponent notation."""
    d = to_decimal(value)
    text = format(d, "f")
    if text.startswith("-") and d.is_zero():
        text = text[1:]
    return text


def _quantize(value: Decimal, places: int, rounding: str) -> Decimal:
    quantum = Decimal(1).scaleb(-places)
    with localcontext() as ctx:
        # room for every integer digit plus the requested places
        ctx.prec = max(ctx.prec, value.adjusted() + places + 2)
        return value.quantize(quantum, rounding=rounding)


class PrecisionNormalizer:
    """Rounding rules bound to one market."""

    def __init__(self, market: Market):
        self.market = market

    def round_amount(self, value: Number) -> Decimal:
        """Truncate toward zero at the market's amount precision."""
        return _quantize(to_decimal(value), self.market.amount_precision, ROUND_DOWN)

    def round_price(self, value: Number) -> str:
        """Round to nearest at the market's price precision, as a plain decimal string."""
        rounded = _quantize(to_decimal(value), self.market.price_precision, ROUND_HALF_UP)
        return to_plain(rounded)
