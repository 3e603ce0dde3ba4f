"""
Retry & Backoff Policy
======================

Two independent policies shared by every client:

- ``RetryStrategy``: exponential backoff for transport failures and
  retryable HTTP statuses (unknown, 429, >= 500).
- ``retry_on_unauthorized``: refresh-and-reissue loop for 401 responses,
  bounded by its own attempt ceiling.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from .exceptions import AuthExpiredError, RetryExhaustedError, TransportError
from .logging import get_logger

T = TypeVar("T")

logger = get_logger("reverse_api.core.retry")

MAX_AUTH_REFRESHES = 3


@dataclass
class RetryConfig:
    """Backoff settings. Delays are in milliseconds."""

    max_retries: int = 3
    initial_delay_ms: int = 100
    max_delay_ms: int = 10000
    backoff_factor: float = 2.0


class RetryStrategy:
    """Exponential backoff with a retry predicate on HTTP status."""

    def __init__(self, config: RetryConfig | None = None):
        self.config = config or RetryConfig()

    def get_delay_ms(self, attempt: int) -> int:
        delay = self.config.initial_delay_ms * (self.config.backoff_factor**attempt)
        return int(min(delay, self.config.max_delay_ms))

    def get_delay(self, attempt: int) -> float:
        """Delay before retry ``attempt`` in seconds."""
        return self.get_delay_ms(attempt) / 1000

    def should_retry(self, attempt: int, status_code: int | None = None) -> bool:
        if attempt >= self.config.max_retries:
            return False
        if status_code is None:
            return True
        return status_code == 429 or status_code >= 500

    async def execute(
        self,
        func: Callable[[], Awaitable[T]],
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> T:
        """
        Run ``func`` and retry on ``TransportError``.

        Anything else propagates on the first occurrence. Once the predicate
        says stop, the last ``TransportError`` is re-raised unchanged.
        """
        attempt = 0
        while True:
            try:
                return await func()
            except TransportError as e:
                if not self.should_retry(attempt, e.status_code):
                    raise
                delay = self.get_delay(attempt)
                logger.debug(
                    "Transient failure, backing off",
                    attempt=attempt,
                    delay_s=delay,
                    status_code=e.status_code,
                )
                await sleep(delay)
                attempt += 1


async def retry_on_unauthorized(
    call: Callable[[], Awaitable[T]],
    refresh: Callable[[], Awaitable[None]],
    max_refreshes: int = MAX_AUTH_REFRESHES,
) -> T:
    """
    Issue ``call``; on ``AuthExpiredError`` await ``refresh`` and reissue.

    At most ``max_refreshes`` refreshes happen; the next 401 surfaces as
    ``RetryExhaustedError``.
    """
    refreshes = 0
    while True:
        try:
            return await call()
        except AuthExpiredError as e:
            if refreshes >= max_refreshes:
                raise RetryExhaustedError(refreshes + 1, str(e), cause=e)
            refreshes += 1
            logger.info("Token rejected, refreshing", refresh=refreshes)
            await refresh()
