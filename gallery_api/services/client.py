"""
GalleryApiClient - Resilient async client for the gallery data API.

Combines:
- RequestBuilder for URLs, credentials and headers
- CacheManager for two-tier GET response caching
- RateLimiter for per-endpoint request budgets
- CircuitBreakerRegistry for failure protection
- RetryController for exponential-backoff retries
- TransportInvoker for the HTTP call and error normalization

Every public operation returns a CallResult; failures never raise.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable

import httpx
from loguru import logger

from gallery_api.datastore.store import MemoryStore, PersistentStore
from gallery_api.services.cache import CacheCategory, CacheManager, category_pattern
from gallery_api.services.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
)
from gallery_api.services.errors import (
    ApiError,
    CircuitOpenError,
    MissingEndpointError,
    MissingFieldError,
    RateLimitError,
)
from gallery_api.services.metrics import ErrorLog, ErrorLogEntry, MetricsRegistry
from gallery_api.services.rate_limiter import RateLimiter
from gallery_api.services.request_builder import (
    PreparedRequest,
    RequestBuilder,
    endpoint_key,
)
from gallery_api.services.result import CallResult, Success
from gallery_api.services.retry import RetryController
from gallery_api.services.transport import TransportInvoker
from gallery_api.settings import Settings, global_settings


class GalleryApiClient:
    """
    Unified gallery API client with caching, rate limiting, circuit breaker
    and retries.

    Usage:
        async with GalleryApiClient(store=SqlStore(factory)) as client:
            result = await client.get("cases/42", cache_ttl=300)
            if result.ok:
                print(result.payload)

            result = await client.post(
                "cases", {"caseId": 42}, required_fields=["caseId"]
            )
    """

    def __init__(
        self,
        settings: Settings | None = None,
        store: PersistentStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings or global_settings
        self._sleep = sleep
        debug = self.settings.debug

        self._error_log = ErrorLog(clock=clock, debug=debug)
        self._metrics = MetricsRegistry(clock=clock)
        self._breakers = CircuitBreakerRegistry(
            CircuitBreakerConfig(
                failure_threshold=self.settings.circuit_breaker_threshold,
                reset_timeout=self.settings.circuit_breaker_timeout,
            ),
            clock=clock,
            on_event=self._error_log.append,
        )
        self._rate_limiter = RateLimiter(
            max_requests=self.settings.rate_limit_requests,
            window_seconds=self.settings.rate_limit_window,
            clock=clock,
            on_reject=self._error_log.append,
        )
        self._cache = CacheManager(
            store=store if store is not None else MemoryStore(clock=clock),
            max_size=self.settings.cache_max_size,
            clock=clock,
            debug=debug,
        )
        self._builder = RequestBuilder(
            base_url=base_url or self.settings.api_base_url,
            api_tokens=self.settings.api_tokens,
            website_property_ids=self.settings.website_property_ids,
            clock=clock,
        )
        self._transport = TransportInvoker(
            breakers=self._breakers,
            metrics=self._metrics,
            error_log=self._error_log,
            http_client=http_client,
            timeout=self.settings.api_timeout,
            max_redirects=self.settings.max_redirects,
        )
        self._retry = RetryController(self._breakers, sleep=sleep)

    @property
    def builder(self) -> RequestBuilder:
        return self._builder

    @property
    def cache(self) -> CacheManager:
        return self._cache

    async def get(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
        cache_ttl: int = 0,
    ) -> CallResult:
        """
        GET an endpoint, serving from cache when cache_ttl > 0.

        A cache hit skips rate limiting, the circuit breaker and the network.
        Only successful responses are cached.
        """
        path = self._builder.build_endpoint(endpoint, params)
        use_cache = cache_ttl > 0 and self.settings.caching_enabled
        cache_key = self._cache.generate_key(CacheCategory.GET, path)

        if use_cache:
            cached = await self._cache.get(cache_key)
            if cached is not None:
                return Success(
                    status_code=cached["code"],
                    payload=cached["data"],
                    headers=cached.get("headers", {}),
                    from_cache=True,
                )

        result = await self._dispatch(path, "GET")

        if use_cache and isinstance(result, Success):
            await self._cache.set(cache_key, result.to_dict(), cache_ttl)

        return result

    async def post(
        self,
        endpoint: str,
        body: dict[str, Any] | None = None,
        required_fields: list[str] | tuple[str, ...] = (),
    ) -> CallResult:
        """
        POST a body after checking required fields are present.

        Only key presence is checked: a field set to 0 or "" is present.
        """
        body = dict(body or {})
        for name in required_fields:
            if name not in body:
                return MissingFieldError(name, endpoint=endpoint).to_result()

        return await self._dispatch(endpoint, "POST", body)

    async def request_with_retry(
        self,
        endpoint: str,
        args: dict[str, Any] | None = None,
        method: str = "GET",
        max_attempts: int | None = None,
    ) -> CallResult:
        """
        Send a request with retries.

        Args:
            endpoint: API endpoint path
            args: Optional "body" and "headers"
            method: HTTP method
            max_attempts: Attempts including the first (default from settings)
        """
        args = args or {}
        attempts = (
            max_attempts
            if max_attempts is not None
            else self.settings.max_retry_attempts
        )

        try:
            self._prepare(endpoint, method, args)
            await self._check_rate_limit(endpoint)
        except ApiError as e:
            return e.to_result()

        async def send() -> Success:
            return await self._send(self._prepare(endpoint, method, args))

        return await self._retry.execute(endpoint, send, attempts)

    async def batch(self, requests: list[dict[str, Any]]) -> list[CallResult]:
        """
        Run requests one after another with a short pause between them.

        Each entry is {"endpoint": ..., "method": "GET", "args": {...}}. The
        result list has one CallResult per entry, in order.
        """
        responses: list[CallResult] = []
        delay = self.settings.batch_delay_ms / 1000

        for index, request in enumerate(requests):
            endpoint = request.get("endpoint") or ""
            if not endpoint:
                responses.append(MissingEndpointError(index).to_result())
                continue

            args = request.get("args") or {}
            responses.append(
                await self._dispatch(
                    endpoint,
                    request.get("method", "GET"),
                    args.get("body"),
                    args.get("headers"),
                )
            )

            if index < len(requests) - 1:
                await self._sleep(delay)

        return responses

    def get_metrics(self) -> dict[str, dict[str, Any]]:
        """Per-endpoint metrics snapshot."""
        return self._metrics.snapshot()

    def get_error_log(self) -> list[ErrorLogEntry]:
        """Most recent API errors and breaker events, oldest first."""
        return self._error_log.entries()

    async def clear_cache(self, pattern: CacheCategory | str | None = None) -> None:
        """Clear cached responses matching pattern (or everything) from both tiers."""
        if isinstance(pattern, CacheCategory):
            pattern = category_pattern(pattern)

        if pattern:
            removed = await self._cache.delete(pattern)
            logger.info(f"Cleared API cache matching '{pattern}' ({removed} in memory)")
        else:
            await self._cache.clear()
            logger.info("Cleared all API cache")

    # Internals

    def _prepare(
        self, endpoint: str, method: str, args: dict[str, Any]
    ) -> PreparedRequest:
        return self._builder.prepare(
            endpoint, method, args.get("body"), args.get("headers")
        )

    async def _check_rate_limit(self, endpoint: str) -> None:
        if not await self._rate_limiter.check_and_increment(endpoint_key(endpoint)):
            raise RateLimitError(
                f"Rate limit exceeded for endpoint {endpoint}",
                endpoint=endpoint,
                context={"limit": self._rate_limiter.max_requests},
            )

    async def _send(self, request: PreparedRequest) -> Success:
        cb = self._breakers.get(request.key)
        if not cb.allow_request():
            raise CircuitOpenError(request.endpoint, cb.get_time_until_reset() or 0)

        try:
            return await self._transport.invoke(request)
        except ApiError:
            raise
        except BaseException:
            # Cancelled or unexpected: no outcome was recorded, free the trial slot
            cb.release_trial()
            raise

    async def _dispatch(
        self,
        endpoint: str,
        method: str,
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> CallResult:
        """Single attempt: build, rate-check, breaker-check, send."""
        try:
            request = self._builder.prepare(endpoint, method, body, headers)
            await self._check_rate_limit(endpoint)
            return await self._send(request)
        except ApiError as e:
            return e.to_result()

    # Health and status methods

    def get_health_status(self) -> dict[str, Any]:
        """Get health status of the client."""
        return {
            "cache": self._cache.get_stats().to_dict(),
            "circuit_breakers": self._breakers.get_all_status(),
            "open_circuits": self._breakers.get_open_circuits(),
            "errors_logged": len(self._error_log),
        }

    def get_circuit_status(self, endpoint: str) -> dict[str, Any]:
        """Get circuit breaker status for a specific endpoint."""
        return self._breakers.get(endpoint_key(endpoint)).get_status()

    def get_rate_limit_status(self, endpoint: str) -> dict[str, Any]:
        return self._rate_limiter.get_status(endpoint_key(endpoint))

    def reset_circuit(self, endpoint: str) -> bool:
        """Reset circuit breaker for an endpoint."""
        return self._breakers.reset(endpoint_key(endpoint))

    async def close(self) -> None:
        """Close the HTTP client and cleanup resources."""
        await self._transport.close()
        logger.debug("GalleryApiClient closed")

    async def __aenter__(self) -> "GalleryApiClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()


# Global client instance
_global_client: GalleryApiClient | None = None


def get_gallery_client() -> GalleryApiClient:
    """Get the global gallery client instance."""
    global _global_client
    if _global_client is None:
        _global_client = GalleryApiClient()
    return _global_client


async def close_gallery_client() -> None:
    """Close the global gallery client."""
    global _global_client
    if _global_client:
        await _global_client.close()
        _global_client = None
