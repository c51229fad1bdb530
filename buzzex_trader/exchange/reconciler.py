"""
Order Reconciler - resolves an order placement result into one canonical id.

The transport's success signal for a placement is not always trustworthy:
a request can time out after the exchange has already accepted the order.
When the transport recovers the order id by other means it hands back
either a caught-timeout marker or the bare id string, and the placement
is reported as ``Uncertain`` rather than failed. An uncertain order is
still a live position and must be tracked by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Union

from buzzex_trader.core.logger import get_logger
from buzzex_trader.exchange.exceptions import OrderReconciliationError

logger = get_logger("reconciler")

# Marker key the transport sets when it caught a timeout but found the order.
CAUGHT_TIMEOUT_MARKER = "catched"


@dataclass(frozen=True)
class Confirmed:
    """Exchange acknowledged the order and returned its id."""
    order_id: str

    @property
    def is_uncertain(self) -> bool:
        return False


@dataclass(frozen=True)
class Uncertain:
    """Confirmation was lost but the order id was recovered; treat as success."""
    order_id: str

    @property
    def is_uncertain(self) -> bool:
        return True


@dataclass(frozen=True)
class Failed:
    error: OrderReconciliationError


OrderOutcome = Union[Confirmed, Uncertain, Failed]
PlacedOrder = Union[Confirmed, Uncertain]


def reconcile(raw: Any) -> OrderOutcome:
    """Turn a raw placement result into an OrderOutcome. Never raises."""
    if isinstance(raw, Mapping):
        if raw.get(CAUGHT_TIMEOUT_MARKER):
            order_id = raw.get("id")
            if order_id not in (None, ""):
                return Uncertain(str(order_id))
            return Failed(OrderReconciliationError(
                "Caught timeout marker without an order id", raw=raw,
            ))

        result = raw.get("result")
        txids = result.get("txid") if isinstance(result, Mapping) else None
        if isinstance(txids, (list, tuple)) and txids and txids[0] not in (None, ""):
            return Confirmed(str(txids[0]))

        return Failed(OrderReconciliationError(
            f"Placement response carries no transaction id: {raw!r}", raw=raw,
        ))

    if isinstance(raw, str) and raw.strip():
        return Uncertain(raw.strip())

    return Failed(OrderReconciliationError(
        f"Unrecognised placement response: {raw!r}", raw=raw,
    ))


def unwrap(outcome: OrderOutcome) -> PlacedOrder:
    """Return a successful outcome or raise the error carried by ``Failed``."""
    if isinstance(outcome, Failed):
        raise outcome.error
    if isinstance(outcome, Uncertain):
        logger.warning(
            "Order placement confirmation lost, recovered order id",
            order_id=outcome.order_id,
        )
    return outcome
