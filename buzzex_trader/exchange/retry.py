"""
Retry Invoker - re-issues a single exchange call according to the
classifier's verdict.

One ``invoke`` is one logical operation: fetch, classify on failure,
sleep out any backoff, try again, and stop at a bounded attempt count.
Invocations share nothing but the (read-only) classifier, so any number
of them may run concurrently.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, Tuple, TypeVar

from buzzex_trader.core.logger import get_logger
from buzzex_trader.exchange.classifier import ClassifiedError, ErrorClassifier
from buzzex_trader.exchange.exceptions import RateLimitError, RetriesExhaustedError

logger = get_logger("retry")

T = TypeVar("T")

FetchFn = Callable[[], Awaitable[Tuple[Optional[BaseException], Any]]]
HandleFn = Callable[[Any], T]
SleepFn = Callable[[float], Awaitable[Any]]


def _is_empty(body: Any) -> bool:
    return body is None or body == "" or body == b""


class RetryInvoker:
    """
    Bounded retry loop around a ``fetch -> (error, body)`` attempt.

    ``max_retries`` counts retries, so at most ``max_retries + 1`` attempts
    are made before a RetriesExhaustedError is raised.
    """

    def __init__(
        self,
        classifier: ErrorClassifier,
        max_retries: int = 5,
        retry_delay_ms: int = 0,
        sleep: Optional[SleepFn] = None,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.classifier = classifier
        self.max_retries = int(max_retries)
        self.retry_delay_ms = int(retry_delay_ms)
        self._sleep: SleepFn = sleep or asyncio.sleep

    async def invoke(
        self,
        fetch: FetchFn,
        handle: HandleFn,
        *,
        non_mutating: bool,
        operation: str = "",
    ) -> T:
        """
        Run ``fetch`` until it succeeds, then return ``handle(body)``.

        Errors raised by ``handle`` (e.g. MalformedResponseError) propagate
        untouched; a retry would only repeat the same answer.
        """
        attempt = 0
        while True:
            attempt += 1
            error, body = await fetch()

            if error is None and not _is_empty(body):
                if attempt > 1:
                    logger.info(
                        "Exchange call recovered after retry",
                        operation=operation,
                        attempts=attempt,
                    )
                return handle(body)

            classified = self.classifier.classify(error, non_mutating)

            if classified.fatal:
                logger.warning(
                    "Exchange call failed",
                    operation=operation,
                    kind=classified.kind.value,
                    error=classified.message,
                    attempt=attempt,
                )
                raise classified.to_exception() from classified.underlying

            if attempt > self.max_retries:
                logger.error(
                    "Exchange call retries exhausted",
                    operation=operation,
                    kind=classified.kind.value,
                    error=classified.message,
                    attempts=attempt,
                )
                raise RetriesExhaustedError(classified, attempt) from classified.underlying

            delay_ms = self._delay_ms(classified)
            extra = {}
            if isinstance(classified.underlying, RateLimitError):
                # advisory only; the backoff stays fixed
                extra["retry_after"] = classified.underlying.retry_after
            logger.warning(
                "Exchange call failed, retrying",
                operation=operation,
                kind=classified.kind.value,
                error=classified.message,
                attempt=attempt,
                delay_ms=delay_ms,
                **extra,
            )
            if delay_ms > 0:
                await self._sleep(delay_ms / 1000)

    def _delay_ms(self, classified: ClassifiedError) -> int:
        if classified.backoff_delay_ms is not None:
            return classified.backoff_delay_ms
        return self.retry_delay_ms
