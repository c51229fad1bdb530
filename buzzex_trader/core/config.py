"""
Configuration Manager - Loads and validates adapter configuration.

Merges YAML config with environment variables. Environment variables take
precedence over YAML values for deployment flexibility.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator


DEFAULT_CONFIG_PATH = "config/config.yaml"


def _as_bool(v: str) -> bool:
    return v.lower() in ("1", "true", "yes", "on")


def _as_list(v: str) -> List[str]:
    return [s.strip() for s in v.split(",") if s.strip()]


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------

_ENV_MAPPINGS = {
    "LOG_LEVEL": ("app", "log_level"),
    "LOG_DIR": ("app", "log_dir"),
    "JSON_LOGS": ("app", "json_logs", _as_bool),
    "EXCHANGE_REST_URL": ("exchange", "rest_url"),
    "EXCHANGE_TIMEOUT": ("exchange", "timeout", float),
    "EXCHANGE_MAX_RETRIES": ("exchange", "max_retries", int),
    "EXCHANGE_RETRY_DELAY_MS": ("exchange", "retry_delay_ms", int),
    "EXCHANGE_MAKER_FEE": ("exchange", "maker_fee", float),
    "EXCHANGE_RECOVERABLE_ERRORS": ("exchange", "extra_recoverable_errors", _as_list),
    "BUZZEX_API_KEY": ("exchange", "api_key"),
    "BUZZEX_API_SECRET": ("exchange", "api_secret"),
    "BUZZEX_MARKETS_PATH": ("exchange", "markets_path"),
    "TRADING_CURRENCY": ("trading", "currency"),
    "TRADING_ASSET": ("trading", "asset"),
}


def _apply_env_overrides(config: Dict[str, Any]) -> None:
    """Override YAML values with environment variables where set."""
    for env_key, mapping in _ENV_MAPPINGS.items():
        value = os.getenv(env_key)
        if value is None:
            continue
        section, key = mapping[0], mapping[1]
        converter = mapping[2] if len(mapping) > 2 else str
        try:
            if not isinstance(config.get(section), dict):
                config[section] = {}
            config[section][key] = converter(value)
        except (ValueError, TypeError) as e:
            import logging
            logging.getLogger("config").warning(
                "Env %s=%r failed to convert: %s. Using YAML value.",
                env_key, value, e,
            )


# ---------------------------------------------------------------------------
# Pydantic Configuration Models (strict validation)
# ---------------------------------------------------------------------------

class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_dir: str = "logs"
    json_logs: bool = False


class ExchangeConfig(BaseModel):
    name: str = "buzzex"
    rest_url: str = "https://api.buzzex.io"
    timeout: float = 60.0
    max_retries: int = 5
    # Delay before retrying a failure that carries no backoff of its own.
    retry_delay_ms: int = 0
    rate_limit_backoff_ms: int = 2500
    maker_fee: float = 0.0002
    # Reported on order lookups; the order-info endpoint does not return it.
    order_fee_percent: float = 0.16
    poll_interval_ms: int = 3100
    api_key: str = ""
    api_secret: str = ""
    markets_path: Optional[str] = None
    extra_rate_limit_errors: List[str] = Field(default_factory=list)
    extra_recoverable_errors: List[str] = Field(default_factory=list)
    extra_unknown_result_errors: List[str] = Field(default_factory=list)

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("max_retries", "retry_delay_ms", "rate_limit_backoff_ms", "poll_interval_ms")
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("maker_fee")
    @classmethod
    def validate_fee(cls, v):
        if v < 0 or v > 0.05:
            raise ValueError("maker_fee must be between 0 and 0.05")
        return v


class TradingConfig(BaseModel):
    currency: str = "BTC"
    asset: str = "ETH"

    @field_validator("currency", "asset")
    @classmethod
    def upper(cls, v):
        v = (v or "").strip().upper()
        if not v:
            raise ValueError("currency and asset must be non-empty")
        return v


class TraderConfig(BaseModel):
    """Master configuration model with full validation."""
    app: AppConfig = Field(default_factory=AppConfig)
    exchange: ExchangeConfig = Field(default_factory=ExchangeConfig)
    trading: TradingConfig = Field(default_factory=TradingConfig)


def load_config_with_overrides(
    config_path: str = DEFAULT_CONFIG_PATH,
    overrides: Optional[Dict[str, Any]] = None,
) -> TraderConfig:
    """Load a fresh config (YAML + env) with optional deep overrides."""
    load_dotenv()

    yaml_config: Dict[str, Any] = {}
    config_file = Path(config_path)
    if config_file.exists():
        with open(config_file, "r") as f:
            yaml_config = yaml.safe_load(f) or {}

    _apply_env_overrides(yaml_config)

    def _deep_update(dst: Dict[str, Any], src: Dict[str, Any]) -> None:
        for key, value in (src or {}).items():
            if isinstance(value, dict) and isinstance(dst.get(key), dict):
                _deep_update(dst[key], value)
            else:
                dst[key] = value

    if overrides:
        _deep_update(yaml_config, overrides)

    return TraderConfig(**yaml_config)
