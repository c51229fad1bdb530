"""
Market Catalog - Static table of tradable Buzzex pairs and their precision.

The catalog ships as ``buzzex_markets.json`` next to this module; an
alternate file can be supplied through ``exchange.markets_path``.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_CATALOG_PATH = Path(__file__).with_name("buzzex_markets.json")


class MarketNotFoundError(ValueError):
    """Raised when no catalog entry matches the requested currency/asset."""


class Market(BaseModel):
    """A tradable currency/asset pair with its declared numeric precision."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    currency_code: str
    asset_code: str
    pair_identifier: str = Field(alias="book")
    price_precision: int = Field(alias="pricePrecision", ge=0)
    amount_precision: int = Field(alias="amountPrecision", ge=0)

    @model_validator(mode="before")
    @classmethod
    def _split_pair(cls, data: Any) -> Any:
        # Catalog entries carry "pair": [currency, asset]
        if isinstance(data, dict) and "pair" in data:
            data = dict(data)
            currency, asset = data.pop("pair")
            data.setdefault("currency_code", currency)
            data.setdefault("asset_code", asset)
        return data

    def matches(self, currency: str, asset: str) -> bool:
        return (
            self.currency_code == currency.upper()
            and self.asset_code == asset.upper()
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pair": [self.currency_code, self.asset_code],
            "book": self.pair_identifier,
            "pricePrecision": self.price_precision,
            "amountPrecision": self.amount_precision,
        }


class MarketCatalog(BaseModel):
    model_config = ConfigDict(frozen=True)

    currencies: List[str] = Field(default_factory=list)
    assets: List[str] = Field(default_factory=list)
    markets: List[Market] = Field(default_factory=list)

    def find(self, currency: str, asset: str) -> Market:
        """Return the single market for currency/asset or raise MarketNotFoundError."""
        for market in self.markets:
            if market.matches(currency, asset):
                return market
        raise MarketNotFoundError(
            f"No Buzzex market for {asset.upper()}/{currency.upper()}"
        )


def load_market_catalog(path: Optional[str] = None) -> MarketCatalog:
    """Load and validate the market catalog (cached per path)."""
    resolved = Path(path) if path else DEFAULT_CATALOG_PATH
    return _load_catalog(str(resolved.resolve()))


@lru_cache(maxsize=8)
def _load_catalog(path: str) -> MarketCatalog:
    with open(path, "r", encoding="utf-8") as f:
        return MarketCatalog(**json.load(f))
