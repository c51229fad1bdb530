"""
Buzzex Trader - the adapter surface the trading engine talks to.

Each operation wraps one transport call in the retry invoker together
with the matching response mapper. Reads are flagged non-mutating so
gateway-style failures can be retried; order placement and cancellation
are not, and a placement result always passes through the reconciler.

The only state held by an instance is the market binding and config,
both read-only after construction, so operations may run concurrently.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from buzzex_trader.core.config import ExchangeConfig, TraderConfig
from buzzex_trader.core.logger import get_logger, log_performance
from buzzex_trader.exchange import mappers
from buzzex_trader.exchange.buzzex_rest import BuzzexRESTClient, Transport
from buzzex_trader.exchange.classifier import ErrorClassifier, signatures_for
from buzzex_trader.exchange.exceptions import UnimplementedOperationError
from buzzex_trader.exchange.markets import Market, MarketCatalog, load_market_catalog
from buzzex_trader.exchange.models import (
    CancelResult,
    OrderInfo,
    OrderRequest,
    OrderSide,
    PortfolioEntry,
    Ticker,
    Trade,
)
from buzzex_trader.exchange.precision import Number, PrecisionNormalizer, to_decimal, to_plain
from buzzex_trader.exchange.reconciler import PlacedOrder, reconcile, unwrap
from buzzex_trader.exchange.retry import RetryInvoker, SleepFn

logger = get_logger("trader")


class BuzzexTrader:
    """
    Async Buzzex adapter.

    Usage::

        trader = BuzzexTrader("BTC", "ETH", transport=client)
        ticker = await trader.get_ticker()
        placed = await trader.buy(Decimal("0.5"), Decimal("0.0712345"))
        if placed.is_uncertain: ...  # still a live order, track it
    """

    name = "Buzzex"

    def __init__(
        self,
        currency: str,
        asset: str,
        *,
        transport: Optional[Transport] = None,
        exchange_config: Optional[ExchangeConfig] = None,
        catalog: Optional[MarketCatalog] = None,
        sleep: Optional[SleepFn] = None,
    ):
        self.config = exchange_config or ExchangeConfig()
        self.currency = currency.upper()
        self.asset = asset.upper()

        catalog = catalog or load_market_catalog(self.config.markets_path)
        self.market: Market = catalog.find(self.currency, self.asset)
        self.pair = self.market.pair_identifier
        self.interval = self.config.poll_interval_ms

        # a transport passed in belongs to the caller and is not closed here
        self._owns_transport = transport is None
        self.transport: Transport = transport or BuzzexRESTClient(
            base_url=self.config.rest_url,
            timeout_seconds=self.config.timeout,
        )
        self.normalizer = PrecisionNormalizer(self.market)

        signatures = signatures_for(self.config.name).extended(
            rate_limit=self.config.extra_rate_limit_errors,
            recoverable=self.config.extra_recoverable_errors,
            unknown_result=self.config.extra_unknown_result_errors,
        )
        self.invoker = RetryInvoker(
            ErrorClassifier(signatures, rate_limit_backoff_ms=self.config.rate_limit_backoff_ms),
            max_retries=self.config.max_retries,
            retry_delay_ms=self.config.retry_delay_ms,
            sleep=sleep or asyncio.sleep,
        )

    @classmethod
    def from_config(
        cls,
        config: TraderConfig,
        transport: Optional[Transport] = None,
    ) -> BuzzexTrader:
        return cls(
            config.trading.currency,
            config.trading.asset,
            transport=transport,
            exchange_config=config.exchange,
        )

    async def close(self) -> None:
        """Release the HTTP client this trader created for itself."""
        if self._owns_transport:
            await self.transport.close()

    async def __aenter__(self) -> BuzzexTrader:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _call(self, method: str, params: Dict[str, str], handle, *, non_mutating: bool):
        async def fetch():
            return await self.transport.api(method, params)

        return await self.invoker.invoke(
            fetch, handle, non_mutating=non_mutating, operation=method,
        )

    # ------------------------------------------------------------------
    # Market data
    # ------------------------------------------------------------------

    async def get_trades(
        self,
        since: Optional[datetime] = None,
        descending: bool = False,
    ) -> List[Trade]:
        """
        Recent trades for the bound market.

        ``since`` only narrows the request; the exchange may still return
        older trades and they are not filtered out.
        """
        param = self.pair
        if since is not None:
            if since.tzinfo is None:
                since = since.replace(tzinfo=timezone.utc)
            param = f"{self.pair}/{int(since.timestamp())}"

        return await self._call(
            "trades",
            {"param": param},
            lambda raw: mappers.map_trades(raw, self.pair, descending),
            non_mutating=True,
        )

    async def get_ticker(self) -> Ticker:
        return await self._call(
            "ticker",
            {"param": self.pair},
            lambda raw: mappers.map_ticker(raw, self.pair),
            non_mutating=True,
        )

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    async def get_portfolio(self) -> List[PortfolioEntry]:
        return await self._call("getinfo", {}, mappers.map_portfolio, non_mutating=True)

    def get_fee(self) -> float:
        """Static maker fee as a fraction; limit orders only, no volume discounts."""
        return self.config.maker_fee

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def round_amount(self, amount: Number) -> Decimal:
        return self.normalizer.round_amount(amount)

    def round_price(self, price: Number) -> str:
        return self.normalizer.round_price(price)

    async def trade(
        self,
        side: Union[OrderSide, str],
        amount: Number,
        price: Number,
    ) -> PlacedOrder:
        """
        Place a limit order. Only the price is rounded, the amount is sent as given.

        Returns ``Confirmed`` or ``Uncertain``; both carry the order id. A
        failed placement raises. Do not resubmit on a transport error
        without first checking for an ``Uncertain`` result.
        """
        request = OrderRequest(
            side=OrderSide(str(getattr(side, "value", side)).lower()),
            amount=to_decimal(amount),
            price=self.round_price(price),
        )
        params = {
            "pair": self.pair,
            "type": request.side.value,
            "rate": request.price,
            "amount": to_plain(request.amount),
        }

        with log_performance(logger, "trade", pair=self.pair, side=request.side.value):
            placed = await self._call(
                "trade",
                params,
                lambda raw: unwrap(reconcile(raw)),
                non_mutating=False,
            )

        logger.info(
            "Order placed",
            pair=self.pair,
            side=request.side.value,
            amount=params["amount"],
            price=request.price,
            order_id=placed.order_id,
            uncertain=placed.is_uncertain,
        )
        return placed

    async def buy(self, amount: Number, price: Number) -> PlacedOrder:
        return await self.trade(OrderSide.BUY, amount, price)

    async def sell(self, amount: Number, price: Number) -> PlacedOrder:
        return await self.trade(OrderSide.SELL, amount, price)

    async def get_order(self, order_id: str) -> OrderInfo:
        order_id = str(order_id)
        return await self._call(
            "order-info",
            {"param": order_id},
            lambda raw: mappers.map_order(raw, order_id, self.config.order_fee_percent),
            non_mutating=True,
        )

    async def cancel_order(self, order_id: str) -> CancelResult:
        return await self._call(
            "cancel-order",
            {"param": str(order_id)},
            mappers.map_cancel,
            non_mutating=False,
        )

    async def check_order(self, order_id: str) -> Any:
        raise UnimplementedOperationError("Buzzex trader does not support check_order")

    async def get_open_orders(self) -> Any:
        raise UnimplementedOperationError("Buzzex trader does not support get_open_orders")

    async def get_raw_open_orders(self) -> Any:
        raise UnimplementedOperationError("Buzzex trader does not support get_raw_open_orders")

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    @staticmethod
    def get_capabilities(catalog: Optional[MarketCatalog] = None) -> Dict[str, Any]:
        catalog = catalog or load_market_catalog()
        return {
            "name": "Buzzex",
            "slug": "buzzex",
            "currencies": list(catalog.currencies),
            "assets": list(catalog.assets),
            "markets": [m.to_dict() for m in catalog.markets],
            "requires": ["key", "secret"],
            "providesHistory": "date",
            "providesFullHistory": True,
            "tid": "tid",
            "tradable": True,
        }
