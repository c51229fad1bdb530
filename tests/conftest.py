"""Shared test fixtures and stubs for Buzzex trader tests.

Provides a scripted transport stub, a recording sleep and a factory for
traders bound to a small in-memory market catalog.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import pytest

from buzzex_trader.core.config import ExchangeConfig
from buzzex_trader.exchange.markets import Market, MarketCatalog
from buzzex_trader.exchange.trader import BuzzexTrader


# ---------------------------------------------------------------------------
# Stub classes
# ---------------------------------------------------------------------------


class StubTransport:
    """Transport stub that replays scripted ``(error, body)`` results.

    Configurable via attributes:
        responses: per-method list of results, consumed in order; the last
            entry repeats once the list is exhausted.
        calls: list of (method, params) tuples for assertions.
    """

    def __init__(self, responses: Optional[Dict[str, List[Tuple[Any, Any]]]] = None) -> None:
        self.responses: Dict[str, List[Tuple[Any, Any]]] = responses or {}
        self.calls: List[Tuple[str, Dict[str, str]]] = []

    def script(self, method: str, *results: Tuple[Any, Any]) -> None:
        self.responses[method] = list(results)

    def count(self, method: str) -> int:
        return sum(1 for m, _ in self.calls if m == method)

    async def api(self, method: str, params: Dict[str, str]):
        self.calls.append((method, dict(params)))
        queue = self.responses.get(method)
        if not queue:
            raise AssertionError(f"No scripted response for {method}")
        if len(queue) > 1:
            return queue.pop(0)
        return queue[0]


class RecordingSleep:
    """Async sleep replacement that records requested delays (seconds)."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def catalog() -> MarketCatalog:
    return MarketCatalog(
        currencies=["BTC", "USDT"],
        assets=["ETH", "BTC"],
        markets=[
            Market(pair=["BTC", "ETH"], book="ETH_BTC", pricePrecision=3, amountPrecision=3),
            Market(pair=["USDT", "BTC"], book="BTC_USDT", pricePrecision=2, amountPrecision=6),
        ],
    )


@pytest.fixture
def btc_eth_market(catalog: MarketCatalog) -> Market:
    return catalog.find("BTC", "ETH")


@pytest.fixture
def transport() -> StubTransport:
    return StubTransport()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_trader(catalog, transport, sleep):
    def _make(**config_overrides: Any) -> BuzzexTrader:
        return BuzzexTrader(
            "BTC",
            "ETH",
            transport=transport,
            exchange_config=ExchangeConfig(**config_overrides),
            catalog=catalog,
            sleep=sleep,
        )
    return _make
