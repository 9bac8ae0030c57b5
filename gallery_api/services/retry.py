"""
RetryController - Bounded retries with exponential backoff.

Only transport failures, 5xx responses and rate-limit rejections are retried.
An open circuit uses up an attempt without sending anything; the next
attempt checks the breaker again.
"""

import asyncio
from typing import Awaitable, Callable

from loguru import logger

from gallery_api.services.circuit_breaker import CircuitBreakerRegistry
from gallery_api.services.errors import (
    ApiError,
    CircuitOpenError,
    MaxRetriesExceededError,
)
from gallery_api.services.request_builder import endpoint_key
from gallery_api.services.result import CallResult, Success

BASE_DELAY_MS = 1000
MAX_DELAY_MS = 10000


def backoff_delay(
    attempt: int, base_ms: int = BASE_DELAY_MS, max_ms: int = MAX_DELAY_MS
) -> float:
    """Seconds to wait after the given 1-based attempt."""
    return min(base_ms * 2 ** (attempt - 1), max_ms) / 1000


class RetryController:
    """
    Runs a send coroutine until it succeeds or the attempts run out.

    Usage:
        retry = RetryController(breakers)
        result = await retry.execute("cases", lambda: invoker.invoke(request))
    """

    def __init__(
        self,
        breakers: CircuitBreakerRegistry,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        base_delay_ms: int = BASE_DELAY_MS,
        max_delay_ms: int = MAX_DELAY_MS,
    ):
        self._breakers = breakers
        self._sleep = sleep
        self._base_delay_ms = base_delay_ms
        self._max_delay_ms = max_delay_ms

    async def execute(
        self,
        endpoint: str,
        send: Callable[[], Awaitable[Success]],
        max_attempts: int = 3,
    ) -> CallResult:
        key = endpoint_key(endpoint)
        last_error: ApiError | None = None

        for attempt in range(1, max_attempts + 1):
            if self._breakers.is_open(key):
                cb = self._breakers.get(key)
                last_error = CircuitOpenError(endpoint, cb.get_time_until_reset() or 0)
                logger.debug(
                    f"Circuit open for '{endpoint}', skipping attempt {attempt}/{max_attempts}"
                )
            else:
                try:
                    return await send()
                except CircuitOpenError as e:
                    last_error = e
                except ApiError as e:
                    last_error = e
                    if not e.retryable:
                        logger.debug(f"Non-retryable error on '{endpoint}': {e.kind.value}")
                        return e.to_result()

            if attempt < max_attempts:
                delay = backoff_delay(attempt, self._base_delay_ms, self._max_delay_ms)
                logger.warning(
                    f"Attempt {attempt}/{max_attempts} for '{endpoint}' failed: "
                    f"{last_error}. Retrying in {delay:.1f}s..."
                )
                await self._sleep(delay)

        if last_error is None:
            last_error = MaxRetriesExceededError(endpoint, max_attempts)

        logger.error(
            f"All {max_attempts} attempts for '{endpoint}' failed. Last error: {last_error}"
        )
        return last_error.to_result()
