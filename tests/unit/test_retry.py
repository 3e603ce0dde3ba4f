"""
Tests for the retry and backoff policies
"""

import pytest
from conftest import no_sleep

from reverse_api.core.exceptions import (
    AuthExpiredError,
    ProviderResponseError,
    RetryExhaustedError,
    TransportError,
)
from reverse_api.core.retry import RetryConfig, RetryStrategy, retry_on_unauthorized


class TestRetryStrategy:
    def test_exponential_delay(self):
        strategy = RetryStrategy(RetryConfig(initial_delay_ms=100, backoff_factor=2.0))

        assert strategy.get_delay_ms(0) == 100
        assert strategy.get_delay_ms(1) == 200
        assert strategy.get_delay_ms(3) == 800

    def test_delay_capped(self):
        strategy = RetryStrategy(RetryConfig(initial_delay_ms=100, max_delay_ms=10000))

        assert strategy.get_delay_ms(20) == 10000
        assert strategy.get_delay(20) == 10.0

    def test_should_retry_predicate(self):
        strategy = RetryStrategy(RetryConfig(max_retries=3))

        assert strategy.should_retry(0, None) is True
        assert strategy.should_retry(0, 429) is True
        assert strategy.should_retry(0, 503) is True
        assert strategy.should_retry(0, 404) is False
        assert strategy.should_retry(3, 503) is False

    @pytest.mark.asyncio
    async def test_execute_retries_transport_errors(self):
        strategy = RetryStrategy(RetryConfig(max_retries=3))
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise TransportError("grok", "reset")
            return "ok"

        assert await strategy.execute(flaky, sleep=no_sleep) == "ok"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_execute_gives_up(self):
        strategy = RetryStrategy(RetryConfig(max_retries=2))
        calls = []

        async def down():
            calls.append(1)
            raise TransportError("grok", "HTTP 503", status_code=503)

        with pytest.raises(TransportError):
            await strategy.execute(down, sleep=no_sleep)
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_execute_does_not_retry_other_errors(self):
        strategy = RetryStrategy()
        calls = []

        async def bad_request():
            calls.append(1)
            raise ProviderResponseError("grok", 400, "bad")

        with pytest.raises(ProviderResponseError):
            await strategy.execute(bad_request, sleep=no_sleep)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_execute_sleeps_between_attempts(self):
        strategy = RetryStrategy(RetryConfig(max_retries=2, initial_delay_ms=100))
        delays = []

        async def record(delay):
            delays.append(delay)

        async def down():
            raise TransportError("grok", "reset")

        with pytest.raises(TransportError):
            await strategy.execute(down, sleep=record)
        assert delays == [0.1, 0.2]


class TestRetryOnUnauthorized:
    @pytest.mark.asyncio
    async def test_refreshes_then_succeeds(self):
        state = {"calls": 0, "refreshes": 0}

        async def call():
            state["calls"] += 1
            if state["calls"] == 1:
                raise AuthExpiredError("zto")
            return "answer"

        async def refresh():
            state["refreshes"] += 1

        assert await retry_on_unauthorized(call, refresh) == "answer"
        assert state == {"calls": 2, "refreshes": 1}

    @pytest.mark.asyncio
    async def test_bounded_refreshes(self):
        refreshes = []

        async def call():
            raise AuthExpiredError("zto")

        async def refresh():
            refreshes.append(1)

        with pytest.raises(RetryExhaustedError) as exc_info:
            await retry_on_unauthorized(call, refresh, max_refreshes=3)
        assert len(refreshes) == 3
        assert exc_info.value.details["attempts"] == 4
