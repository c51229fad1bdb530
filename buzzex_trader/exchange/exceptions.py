"""Typed exception hierarchy for exchange operations.

Enables callers to distinguish transient vs permanent failures,
exhausted retries and ambiguous order placements.
"""

from __future__ import annotations

from typing import Any, Optional


class ExchangeError(Exception):
    """Base class for all exchange-related errors."""


class TransportError(ExchangeError):
    """Raw failure reported by the HTTP transport (timeout, HTTP status, API error)."""
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientExchangeError(ExchangeError):
    """Temporary failure that may succeed on retry (network, 503, timeout)."""


class RateLimitError(TransientExchangeError):
    """Exchange rate limit hit. Caller should backoff and retry."""
    def __init__(self, message: str = "Rate limit exceeded", retry_after: float = 0.0):
        super().__init__(message)
        self.retry_after = retry_after


class PermanentExchangeError(ExchangeError):
    """Non-recoverable failure (unknown pair, auth, insufficient balance)."""


class EmptyResponseError(PermanentExchangeError):
    """Transport returned neither an error nor a payload."""
    def __init__(self, message: str = "Empty response"):
        super().__init__(message)


class MalformedResponseError(PermanentExchangeError):
    """Payload looked well-formed but an expected field was missing or unparseable."""


class OrderReconciliationError(PermanentExchangeError):
    """Order placement result could not be resolved to an order id."""
    def __init__(self, message: str, raw: Any = None):
        super().__init__(message)
        self.raw = raw


class RetriesExhaustedError(ExchangeError):
    """Retryable failures kept happening until the attempt bound was reached."""
    def __init__(self, classified: Any, attempts: int):
        super().__init__(
            f"Retries exhausted after {attempts} attempts: {classified.underlying}"
        )
        self.classified = classified
        self.attempts = attempts


class UnimplementedOperationError(ExchangeError, NotImplementedError):
    """Operation is declared by the trader contract but not supported here."""
