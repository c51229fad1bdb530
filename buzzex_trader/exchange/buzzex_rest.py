"""
Buzzex REST Client - single-attempt async transport for the Buzzex API.

Every call returns an ``(error, body)`` pair instead of raising, so the
retry invoker can classify failures uniformly. Request signing is not
done here: private calls are authenticated by the ``httpx.Auth`` passed
in by the caller.

When an order placement times out, the client looks the order up among
the account's active orders. If it finds one it returns a caught-timeout
marker ``{"catched": True, "id": ...}`` in place of the timeout error.
"""

from __future__ import annotations

import time
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

import httpx

from buzzex_trader.core.logger import get_logger
from buzzex_trader.exchange.exceptions import (
    ExchangeError,
    MalformedResponseError,
    RateLimitError,
    TransientExchangeError,
    TransportError,
)
from buzzex_trader.exchange.reconciler import CAUGHT_TIMEOUT_MARKER

logger = get_logger("buzzex_rest")

PUBLIC_METHODS = frozenset({"trades", "ticker", "depth", "info"})

# Orders created this long before the timed-out request still count as ours.
_RECOVERY_CLOCK_SKEW_SECONDS = 5.0

ApiResult = Tuple[Optional[BaseException], Any]


class Transport(Protocol):
    async def api(self, method: str, params: Dict[str, str]) -> ApiResult:
        ...


def _same_number(a: Any, b: Any) -> bool:
    try:
        return Decimal(str(a)) == Decimal(str(b))
    except (InvalidOperation, ValueError):
        return False


def _retry_after_seconds(response: httpx.Response) -> float:
    try:
        return max(0.0, float(response.headers.get("Retry-After", 0)))
    except ValueError:
        return 0.0


class BuzzexRESTClient:
    """Minimal async Buzzex client: public market data + private trade API."""

    def __init__(
        self,
        base_url: str = "https://api.buzzex.io",
        timeout_seconds: float = 60.0,
        auth: Optional[httpx.Auth] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or "https://api.buzzex.io").rstrip("/")
        self.timeout_seconds = float(timeout_seconds)
        self._auth = auth
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._nonce = 0

    async def initialize(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_seconds,
                auth=self._auth,
                transport=self._transport,
                headers={"Accept": "application/json"},
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> BuzzexRESTClient:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def api(self, method: str, params: Dict[str, str]) -> ApiResult:
        """Perform one call. Never raises for transport or API failures."""
        started = time.time()
        try:
            return None, await self._request(method, params)
        except httpx.ConnectTimeout as e:
            return TransientExchangeError(f"Connection failed: connect timeout ({e})"), None
        except httpx.TimeoutException:
            error = TransportError(
                f"Request timed out after {self.timeout_seconds:g}s ({method})"
            )
            if method == "trade":
                order_id = await self._find_placed_order(params, started)
                if order_id is not None:
                    logger.warning(
                        "Order placement timed out but order was created",
                        order_id=order_id,
                        pair=params.get("pair"),
                    )
                    return None, {CAUGHT_TIMEOUT_MARKER: True, "id": order_id}
            return error, None
        except httpx.ConnectError as e:
            return TransientExchangeError(f"Connection failed: {e}"), None
        except httpx.HTTPError as e:
            return TransportError(f"{type(e).__name__}: {e}"), None
        except ExchangeError as e:
            return e, None

    async def _request(self, method: str, params: Mapping[str, str]) -> Any:
        if self._client is None:
            await self.initialize()

        if method in PUBLIC_METHODS:
            param = str(params.get("param", "") or "")
            url = f"{self.base_url}/api/v1/{method}"
            if param:
                url = f"{url}/{param}"
            resp = await self._client.get(url)
        else:
            data = {"method": method, "nonce": str(self._next_nonce())}
            data.update({k: str(v) for k, v in params.items()})
            resp = await self._client.post(f"{self.base_url}/tapi", data=data)

        if resp.status_code == 429:
            raise RateLimitError(
                "Rate limit exceeded (Response code 429)",
                retry_after=_retry_after_seconds(resp),
            )
        if resp.status_code >= 400:
            raise TransportError(
                f"Response code {resp.status_code} ({resp.reason_phrase})",
                status_code=resp.status_code,
            )
        if not resp.content:
            return None

        try:
            payload = resp.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"Invalid JSON from {method}: {resp.text[:200]!r}"
            ) from e

        if isinstance(payload, dict) and "success" in payload:
            if not payload.get("success"):
                raise TransportError(str(payload.get("error") or "Unknown API error"))
            return payload.get("return", payload)
        return payload

    def _next_nonce(self) -> int:
        self._nonce = max(self._nonce + 1, int(time.time() * 1000))
        return self._nonce

    async def _find_placed_order(
        self, params: Mapping[str, str], started: float
    ) -> Optional[str]:
        """Look for an active order matching a timed-out placement."""
        try:
            orders = await self._request("active-orders", {"pair": params.get("pair", "")})
        except (httpx.HTTPError, ExchangeError) as e:
            logger.warning("Active order lookup after timeout failed", error=repr(e))
            return None

        if not isinstance(orders, Mapping):
            return None

        for order_id, order in orders.items():
            if not isinstance(order, Mapping):
                continue
            try:
                created = float(order.get("timestamp_created", 0))
            except (TypeError, ValueError):
                continue
            if (
                order.get("pair") == params.get("pair")
                and order.get("type") == params.get("type")
                and _same_number(order.get("rate"), params.get("rate"))
                and _same_number(order.get("amount"), params.get("amount"))
                and created >= started - _RECOVERY_CLOCK_SKEW_SECONDS
            ):
                return str(order_id)
        return None
