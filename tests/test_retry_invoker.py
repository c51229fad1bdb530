from __future__ import annotations

import asyncio

import pytest

from buzzex_trader.exchange import retry
from buzzex_trader.exchange.classifier import ErrorClassifier, ErrorKind
from buzzex_trader.exchange.exceptions import (
    EmptyResponseError,
    MalformedResponseError,
    PermanentExchangeError,
    RateLimitError,
    RetriesExhaustedError,
    TransportError,
)
from buzzex_trader.exchange.retry import RetryInvoker


class _ScriptedFetch:
    def __init__(self, *results):
        self.results = list(results)
        self.attempts = 0

    async def __call__(self):
        self.attempts += 1
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


def _invoker(sleep, max_retries: int = 3, retry_delay_ms: int = 0) -> RetryInvoker:
    return RetryInvoker(
        ErrorClassifier(),
        max_retries=max_retries,
        retry_delay_ms=retry_delay_ms,
        sleep=sleep,
    )


@pytest.mark.asyncio
async def test_success_passes_body_to_handler(sleep):
    fetch = _ScriptedFetch((None, {"x": 1}))
    result = await _invoker(sleep).invoke(fetch, lambda b: b["x"] + 1, non_mutating=True)
    assert result == 2
    assert fetch.attempts == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_retryable_then_success(sleep):
    fetch = _ScriptedFetch(
        (TransportError("Response code 502"), None),
        (TransportError("Response code 504"), None),
        (None, "ok"),
    )
    result = await _invoker(sleep).invoke(fetch, str.upper, non_mutating=True)
    assert result == "OK"
    assert fetch.attempts == 3


@pytest.mark.asyncio
async def test_rate_limit_waits_backoff_before_retry(sleep):
    fetch = _ScriptedFetch((TransportError("Rate limit exceeded"), None), (None, [1]))
    await _invoker(sleep).invoke(fetch, len, non_mutating=False)
    assert sleep.delays == [2.5]


@pytest.mark.asyncio
async def test_configured_delay_used_when_error_has_no_backoff(sleep):
    fetch = _ScriptedFetch((TransportError("Connection failed"), None), (None, [1]))
    await _invoker(sleep, retry_delay_ms=250).invoke(fetch, len, non_mutating=True)
    assert sleep.delays == [0.25]


@pytest.mark.asyncio
async def test_fatal_error_is_raised_immediately(sleep):
    fetch = _ScriptedFetch((TransportError("Invalid pair"), None))
    with pytest.raises(PermanentExchangeError) as exc_info:
        await _invoker(sleep).invoke(fetch, lambda b: b, non_mutating=True)
    assert not isinstance(exc_info.value, RetriesExhaustedError)
    assert str(exc_info.value) == "Invalid pair"
    assert isinstance(exc_info.value.__cause__, TransportError)
    assert fetch.attempts == 1


@pytest.mark.asyncio
async def test_mutating_call_is_not_retried_on_gateway_error(sleep):
    fetch = _ScriptedFetch((TransportError("Response code 502"), None))
    with pytest.raises(PermanentExchangeError):
        await _invoker(sleep).invoke(fetch, lambda b: b, non_mutating=False)
    assert fetch.attempts == 1


@pytest.mark.asyncio
async def test_exhaustion_is_distinct_and_bounded(sleep):
    fetch = _ScriptedFetch((TransportError("Response code 522"), None))
    with pytest.raises(RetriesExhaustedError) as exc_info:
        await _invoker(sleep, max_retries=3).invoke(fetch, lambda b: b, non_mutating=True)

    err = exc_info.value
    assert fetch.attempts == 4
    assert err.attempts == 4
    assert err.classified.kind == ErrorKind.AMBIGUOUS_READ
    assert not isinstance(err, PermanentExchangeError)


@pytest.mark.asyncio
async def test_zero_retries_means_single_attempt(sleep):
    fetch = _ScriptedFetch((TransportError("Connection failed"), None))
    with pytest.raises(RetriesExhaustedError):
        await _invoker(sleep, max_retries=0).invoke(fetch, lambda b: b, non_mutating=True)
    assert fetch.attempts == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [None, ""])
async def test_empty_response_is_fatal(sleep, body):
    fetch = _ScriptedFetch((None, body))
    with pytest.raises(EmptyResponseError):
        await _invoker(sleep).invoke(fetch, lambda b: b, non_mutating=True)
    assert fetch.attempts == 1


@pytest.mark.asyncio
async def test_empty_collections_are_valid_bodies(sleep):
    fetch = _ScriptedFetch((None, {}))
    assert await _invoker(sleep).invoke(fetch, dict, non_mutating=True) == {}


@pytest.mark.asyncio
async def test_handler_errors_are_not_retried(sleep):
    fetch = _ScriptedFetch((None, {"unexpected": True}))

    def handle(_body):
        raise MalformedResponseError("missing field")

    with pytest.raises(MalformedResponseError):
        await _invoker(sleep).invoke(fetch, handle, non_mutating=True)
    assert fetch.attempts == 1


def test_negative_retry_bound_rejected():
    with pytest.raises(ValueError):
        RetryInvoker(ErrorClassifier(), max_retries=-1)


@pytest.mark.asyncio
async def test_backoff_does_not_block_other_invocations():
    invoker = RetryInvoker(ErrorClassifier(rate_limit_backoff_ms=50), max_retries=1)
    slow = _ScriptedFetch((TransportError("Rate limit exceeded"), None), (None, "slow"))
    fast = _ScriptedFetch((None, "fast"))
    order = []

    async def run(fetch):
        result = await invoker.invoke(fetch, lambda b: b, non_mutating=True)
        order.append(result)

    await asyncio.wait_for(asyncio.gather(run(slow), run(fast)), timeout=10)
    assert order == ["fast", "slow"]


class _RecordingLogger:
    def __init__(self):
        self.records = []

    def info(self, event, **kw):
        self.records.append(("info", event, kw))

    def warning(self, event, **kw):
        self.records.append(("warning", event, kw))

    def error(self, event, **kw):
        self.records.append(("error", event, kw))


@pytest.mark.asyncio
async def test_rate_limit_retry_logs_server_hint(sleep, monkeypatch):
    rec = _RecordingLogger()
    monkeypatch.setattr(retry, "logger", rec)
    fetch = _ScriptedFetch((RateLimitError(retry_after=3.0), None), (None, "ok"))

    await _invoker(sleep).invoke(fetch, str, non_mutating=False, operation="trade")

    level, event, kw = rec.records[0]
    assert (level, event) == ("warning", "Exchange call failed, retrying")
    assert kw["retry_after"] == 3.0
    assert kw["delay_ms"] == 2500
    assert sleep.delays == [2.5]
