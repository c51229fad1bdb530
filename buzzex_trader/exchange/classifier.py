"""
Error Classifier - decides whether a failed exchange call may be retried.

Every failure reported by the transport is tagged with a disposition:

- RATE_LIMITED        -> retry after a fixed backoff delay
- TRANSIENT_TRANSPORT -> retry without backoff
- AMBIGUOUS_READ      -> retry, but only for calls that do not mutate state
- EMPTY_RESPONSE, MALFORMED_RESPONSE, FATAL -> give up

Signature lists are plain data keyed by exchange name so another venue
can register its own table without touching the classification rules.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Optional

from buzzex_trader.exchange.exceptions import (
    EmptyResponseError,
    ExchangeError,
    MalformedResponseError,
    PermanentExchangeError,
    RateLimitError,
)

DEFAULT_RATE_LIMIT_BACKOFF_MS = 2500


class ErrorKind(enum.Enum):
    EMPTY_RESPONSE = "empty_response"
    RATE_LIMITED = "rate_limited"
    TRANSIENT_TRANSPORT = "transient_transport"
    AMBIGUOUS_READ = "ambiguous_read"
    MALFORMED_RESPONSE = "malformed_response"
    FATAL = "fatal"


@dataclass(frozen=True)
class ErrorSignatures:
    """Substring signatures matched against an error's message."""

    rate_limit: FrozenSet[str] = frozenset()
    # Failures that happened before the request reached the exchange.
    recoverable: FrozenSet[str] = frozenset()
    # Failures that might mean the API call succeeded.
    unknown_result: FrozenSet[str] = frozenset()

    def extended(
        self,
        *,
        rate_limit: Iterable[str] = (),
        recoverable: Iterable[str] = (),
        unknown_result: Iterable[str] = (),
    ) -> ErrorSignatures:
        return ErrorSignatures(
            rate_limit=self.rate_limit | frozenset(rate_limit),
            recoverable=self.recoverable | frozenset(recoverable),
            unknown_result=self.unknown_result | frozenset(unknown_result),
        )


BUZZEX_SIGNATURES = ErrorSignatures(
    rate_limit=frozenset({"Rate limit exceeded"}),
    recoverable=frozenset({
        "Connection failed",
        "ECONNREFUSED",
        "ENOTFOUND",
    }),
    unknown_result=frozenset({
        "Response code 502",
        "Response code 504",
        "Response code 520",
        "Response code 522",
        "Request timed out",
    }),
)

SIGNATURE_TABLES: Dict[str, ErrorSignatures] = {
    "buzzex": BUZZEX_SIGNATURES,
}


def register_signatures(exchange: str, signatures: ErrorSignatures) -> None:
    """Install (or replace) the signature table for an exchange."""
    SIGNATURE_TABLES[exchange.lower().strip()] = signatures


def signatures_for(exchange: str) -> ErrorSignatures:
    try:
        return SIGNATURE_TABLES[exchange.lower().strip()]
    except KeyError:
        raise KeyError(f"No error signature table registered for {exchange!r}") from None


def _includes(message: str, signatures: FrozenSet[str]) -> bool:
    return any(sig in message for sig in signatures)


@dataclass(frozen=True)
class ClassifiedError:
    """A transport failure tagged with its retry disposition."""

    underlying: BaseException
    kind: ErrorKind
    fatal: bool
    backoff_delay_ms: Optional[int] = None
    message: str = field(default="")

    @property
    def retryable(self) -> bool:
        return not self.fatal

    def to_exception(self) -> ExchangeError:
        """Typed exception to raise when this classification is fatal."""
        if isinstance(self.underlying, PermanentExchangeError):
            return self.underlying
        return PermanentExchangeError(self.message)


class ErrorClassifier:
    """
    Classifies transport failures against an exchange's signature table.

    Usage::

        classifier = ErrorClassifier(signatures_for("buzzex"))
        classified = classifier.classify(err, non_mutating=True)
        if classified.retryable: ...
    """

    def __init__(
        self,
        signatures: Optional[ErrorSignatures] = None,
        rate_limit_backoff_ms: int = DEFAULT_RATE_LIMIT_BACKOFF_MS,
    ):
        self.signatures = signatures or BUZZEX_SIGNATURES
        self.rate_limit_backoff_ms = int(rate_limit_backoff_ms)

    def classify(
        self,
        error: Optional[BaseException],
        non_mutating: bool,
    ) -> ClassifiedError:
        """Tag ``error`` with a disposition. Never raises; defaults to fatal."""
        if error is None:
            empty = EmptyResponseError()
            return ClassifiedError(
                underlying=empty,
                kind=ErrorKind.EMPTY_RESPONSE,
                fatal=True,
                message=str(empty),
            )

        try:
            message = str(error)
        except Exception:
            message = repr(error)

        if isinstance(error, RateLimitError) or _includes(message, self.signatures.rate_limit):
            return ClassifiedError(
                underlying=error,
                kind=ErrorKind.RATE_LIMITED,
                fatal=False,
                backoff_delay_ms=self.rate_limit_backoff_ms,
                message=message,
            )

        if _includes(message, self.signatures.recoverable):
            return ClassifiedError(
                underlying=error,
                kind=ErrorKind.TRANSIENT_TRANSPORT,
                fatal=False,
                message=message,
            )

        # A read-only call cannot have changed anything, so an unknown
        # result is safe to redo. Mutating calls go to the order reconciler.
        if non_mutating and _includes(message, self.signatures.unknown_result):
            return ClassifiedError(
                underlying=error,
                kind=ErrorKind.AMBIGUOUS_READ,
                fatal=False,
                message=message,
            )

        if isinstance(error, EmptyResponseError):
            kind = ErrorKind.EMPTY_RESPONSE
        elif isinstance(error, MalformedResponseError):
            kind = ErrorKind.MALFORMED_RESPONSE
        else:
            kind = ErrorKind.FATAL
        return ClassifiedError(underlying=error, kind=kind, fatal=True, message=message)
