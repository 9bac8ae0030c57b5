"""
Per-endpoint performance metrics and the bounded API error log.
"""

import time
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable

from loguru import logger

ERROR_LOG_MAX_ENTRIES = 100


@dataclass
class ApiMetrics:
    """Accumulated timings for one endpoint."""

    count: int = 0
    total_time: float = 0.0
    min_time: float = float("inf")
    max_time: float = 0.0
    last_request_at: str = ""
    error_count: int = 0

    @property
    def avg_time(self) -> float:
        if self.count == 0:
            return 0.0
        return self.total_time / self.count

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["avg_time"] = self.avg_time
        if self.count == 0:
            data["min_time"] = 0.0
        return data


class MetricsRegistry:
    """Collects ApiMetrics per endpoint; only ever grows."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._metrics: dict[str, ApiMetrics] = {}
        self._clock = clock

    def record(self, endpoint: str, elapsed: float) -> None:
        """Record one successful request taking elapsed seconds."""
        metrics = self._metrics.setdefault(endpoint, ApiMetrics())
        metrics.count += 1
        metrics.total_time += elapsed
        metrics.min_time = min(metrics.min_time, elapsed)
        metrics.max_time = max(metrics.max_time, elapsed)
        metrics.last_request_at = datetime.fromtimestamp(self._clock()).isoformat()

    def record_error(self, endpoint: str) -> None:
        self._metrics.setdefault(endpoint, ApiMetrics()).error_count += 1

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Copy of all metrics, safe to hand to callers."""
        return {endpoint: m.to_dict() for endpoint, m in self._metrics.items()}


@dataclass(frozen=True)
class ErrorLogEntry:
    endpoint: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: str = ""


class ErrorLog:
    """
    Ring buffer of recent API errors and breaker events.

    Only the newest max_entries are kept; the oldest entry is evicted first.
    """

    def __init__(
        self,
        max_entries: int = ERROR_LOG_MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
        debug: bool = False,
    ):
        self._entries: deque[ErrorLogEntry] = deque(maxlen=max_entries)
        self._clock = clock
        self._debug = debug

    def append(
        self, endpoint: str, message: str, context: dict[str, Any] | None = None
    ) -> None:
        entry = ErrorLogEntry(
            endpoint=endpoint,
            message=message,
            context=dict(context or {}),
            timestamp=datetime.fromtimestamp(self._clock()).isoformat(),
        )
        self._entries.append(entry)

        if self._debug:
            logger.debug(
                f"[Gallery API Error] Endpoint: {endpoint} | Error: {message} | "
                f"Context: {entry.context}"
            )

    def entries(self) -> list[ErrorLogEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
