"""
CircuitBreaker - Stops sending requests to an endpoint that keeps failing.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Endpoint is failing, requests are blocked
- HALF_OPEN: Cool-down elapsed, one trial request allowed

Transitions:
- CLOSED → OPEN: failure_threshold failures inside failure_window
- OPEN → HALF_OPEN: lazily, when checked after reset_timeout
- HALF_OPEN → CLOSED: trial request succeeds
- HALF_OPEN → OPEN: trial request fails (timeout re-armed)

State changes happen in plain synchronous methods, so each one is atomic
with respect to other tasks on the same event loop.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from loguru import logger

EventSink = Callable[[str, str, dict[str, Any]], None]


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Blocking requests
    HALF_OPEN = "HALF_OPEN"  # Testing recovery


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_threshold: int = 5  # Failures before opening
    reset_timeout: float = 300.0  # Seconds before half-open
    failure_window: float = 300.0  # Failures older than this are forgotten
    half_open_max_requests: int = 1  # Trial requests allowed in half-open state


class CircuitBreaker:
    """
    Circuit breaker for a single endpoint.

    Usage:
        cb = CircuitBreaker("cases")

        if not cb.allow_request():
            raise CircuitOpenError("cases", cb.get_time_until_reset() or 0)

        try:
            result = await make_request()
            cb.record_success()
            return result
        except ServerError:
            cb.record_failure()
            raise
    """

    def __init__(
        self,
        endpoint: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.time,
        on_event: EventSink | None = None,
    ):
        self.endpoint = endpoint
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._on_event = on_event

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: float | None = None
        self._opened_at: float | None = None
        self._half_open_requests = 0

    @property
    def state(self) -> CircuitState:
        """Get current state, checking for the lazy OPEN → HALF_OPEN move."""
        if self._state == CircuitState.OPEN:
            if (
                self._opened_at is not None
                and self._clock() >= self._opened_at + self.config.reset_timeout
            ):
                self._state = CircuitState.HALF_OPEN
                self._opened_at = None
                self._half_open_requests = 0
                logger.info(
                    f"Circuit breaker '{self.endpoint}' transitioned to HALF_OPEN"
                )
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def opened_at(self) -> float | None:
        return self._opened_at

    def is_open(self) -> bool:
        """True when a request would be blocked right now."""
        current_state = self.state
        if current_state == CircuitState.OPEN:
            return True
        if current_state == CircuitState.HALF_OPEN:
            return self._half_open_requests >= self.config.half_open_max_requests
        return False

    def allow_request(self) -> bool:
        """Check if a request may go out; claims the trial slot in HALF_OPEN."""
        current_state = self.state

        if current_state == CircuitState.CLOSED:
            return True

        if current_state == CircuitState.OPEN:
            return False

        if self._half_open_requests < self.config.half_open_max_requests:
            self._half_open_requests += 1
            return True
        return False

    def record_success(self) -> None:
        """Record a successful request."""
        self._failure_count = 0
        self._last_failure_time = None
        if self._state != CircuitState.CLOSED:
            self._close()

    def record_failure(self) -> None:
        """Record a failed request."""
        now = self._clock()
        if (
            self._last_failure_time is not None
            and now - self._last_failure_time > self.config.failure_window
        ):
            self._failure_count = 0

        self._failure_count += 1
        self._last_failure_time = now

        current_state = self.state
        if current_state == CircuitState.HALF_OPEN:
            # Any failure in half-open reopens the circuit
            self._open()
        elif current_state == CircuitState.CLOSED:
            if self._failure_count >= self.config.failure_threshold:
                self._open()

    def release_trial(self) -> None:
        """Give back a half-open trial slot whose outcome was neither success nor failure."""
        if self._state == CircuitState.HALF_OPEN and self._half_open_requests > 0:
            self._half_open_requests -= 1

    def _open(self) -> None:
        """Transition to OPEN state."""
        failures = self._failure_count
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._failure_count = 0
        self._half_open_requests = 0
        logger.warning(
            f"Circuit breaker '{self.endpoint}' OPENED after {failures} failures"
        )
        self._emit("Circuit breaker opened", {"failures": failures})

    def _close(self) -> None:
        """Transition to CLOSED state."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = None
        self._half_open_requests = 0
        logger.info(f"Circuit breaker '{self.endpoint}' CLOSED (recovered)")
        self._emit("Circuit breaker closed", {"status": "success"})

    def _emit(self, message: str, context: dict[str, Any]) -> None:
        if self._on_event:
            self._on_event(self.endpoint, message, context)

    def reset(self) -> None:
        """Manually reset the circuit breaker."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = None
        self._half_open_requests = 0
        self._last_failure_time = None
        logger.info(f"Circuit breaker '{self.endpoint}' manually reset")

    def get_time_until_reset(self) -> float | None:
        """Get seconds until circuit transitions to half-open."""
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return None

        reset_at = self._opened_at + self.config.reset_timeout
        return max(0.0, reset_at - self._clock())

    def get_status(self) -> dict[str, Any]:
        """Get current status as dictionary."""
        return {
            "endpoint": self.endpoint,
            "state": self.state.value,
            "failure_count": self._failure_count,
            "last_failure": self._last_failure_time,
            "opened_at": self._opened_at,
            "time_until_reset": self.get_time_until_reset(),
        }


class CircuitBreakerRegistry:
    """
    Registry of per-endpoint circuit breakers.

    Usage:
        registry = CircuitBreakerRegistry()
        cb = registry.get("cases")
    """

    def __init__(
        self,
        default_config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.time,
        on_event: EventSink | None = None,
    ):
        self._breakers: dict[str, CircuitBreaker] = {}
        self._default_config = default_config or CircuitBreakerConfig()
        self._clock = clock
        self._on_event = on_event

    def get(
        self,
        endpoint: str,
        config: CircuitBreakerConfig | None = None,
    ) -> CircuitBreaker:
        """Get or create a circuit breaker for an endpoint."""
        if endpoint not in self._breakers:
            self._breakers[endpoint] = CircuitBreaker(
                endpoint,
                config or self._default_config,
                clock=self._clock,
                on_event=self._on_event,
            )
        return self._breakers[endpoint]

    def is_open(self, endpoint: str) -> bool:
        """Check an endpoint without creating a breaker for it."""
        cb = self._breakers.get(endpoint)
        return cb.is_open() if cb else False

    def get_all_status(self) -> dict[str, dict[str, Any]]:
        """Get status of all circuit breakers."""
        return {endpoint: cb.get_status() for endpoint, cb in self._breakers.items()}

    def reset_all(self) -> None:
        """Reset all circuit breakers."""
        for cb in self._breakers.values():
            cb.reset()
        logger.info(f"Reset {len(self._breakers)} circuit breakers")

    def reset(self, endpoint: str) -> bool:
        """Reset a specific circuit breaker."""
        if endpoint in self._breakers:
            self._breakers[endpoint].reset()
            return True
        return False

    def get_open_circuits(self) -> list[str]:
        """Get list of endpoints with open circuits."""
        return [
            endpoint
            for endpoint, cb in self._breakers.items()
            if cb.state == CircuitState.OPEN
        ]
