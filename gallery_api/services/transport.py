"""
TransportInvoker - Sends prepared requests and normalizes the outcome.

Every non-2xx status and every connection failure is recorded against the
endpoint's circuit breaker and the error log before the typed error is raised.
A 2xx response with an undecodable body raises ResponseDecodeError and counts
neither as success nor as failure for the breaker.
"""

import time

import httpx
from loguru import logger

from gallery_api.services.circuit_breaker import CircuitBreakerRegistry
from gallery_api.services.errors import (
    ApiError,
    ResponseDecodeError,
    TransportError,
    error_for_status,
)
from gallery_api.services.metrics import ErrorLog, MetricsRegistry
from gallery_api.services.request_builder import PreparedRequest
from gallery_api.services.result import Success


class TransportInvoker:
    """
    Executes HTTP calls through an httpx.AsyncClient.

    TLS verification is always on. An injected client is used as is and is
    not closed by close().
    """

    def __init__(
        self,
        breakers: CircuitBreakerRegistry,
        metrics: MetricsRegistry,
        error_log: ErrorLog,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        max_redirects: int = 5,
    ):
        self._breakers = breakers
        self._metrics = metrics
        self._error_log = error_log
        self._timeout = timeout
        self._max_redirects = max_redirects
        self._http_client = http_client
        self._owns_client = http_client is None

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
                max_redirects=self._max_redirects,
                verify=True,
            )
        return self._http_client

    async def invoke(self, request: PreparedRequest) -> Success:
        """
        Send the request.

        Returns:
            Success with decoded JSON payload, status code and headers

        Raises:
            TransportError: connection failure or timeout
            ApiError subclass: non-2xx status
            ResponseDecodeError: 2xx with invalid JSON
        """
        client = self._get_http_client()
        breaker = self._breakers.get(request.key)

        logger.debug(f"API request: {request.method} {request.url}")
        started = time.perf_counter()

        try:
            response = await client.request(
                method=request.method,
                url=request.url,
                headers=request.headers,
                content=request.content,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            error = TransportError(
                f"Request to endpoint '{request.endpoint}' timed out after {self._timeout}s",
                endpoint=request.endpoint,
                context={"timeout": self._timeout},
            )
            self._fail(request, error)
            raise error from e
        except httpx.HTTPError as e:
            error = TransportError(
                f"Request to endpoint '{request.endpoint}' failed: {e}",
                endpoint=request.endpoint,
            )
            self._fail(request, error)
            raise error from e

        elapsed = time.perf_counter() - started
        status = response.status_code

        if status < 200 or status >= 300:
            error_cls = error_for_status(status)
            error = error_cls(
                f"API request failed with status {status} for endpoint {request.endpoint}",
                endpoint=request.endpoint,
                context={"status": status},
            )
            self._fail(request, error)
            raise error

        try:
            data = response.json()
        except ValueError as e:
            error = ResponseDecodeError(
                f"Invalid JSON response: {e}",
                endpoint=request.endpoint,
                context={"status": status},
            )
            self._error_log.append(request.endpoint, error.message)
            breaker.release_trial()
            raise error from e

        breaker.record_success()
        self._metrics.record(request.key, elapsed)

        return Success(
            status_code=status,
            payload=data,
            headers=dict(response.headers),
        )

    def _fail(self, request: PreparedRequest, error: ApiError) -> None:
        logger.warning(f"API error on '{request.endpoint}': {error}")
        self._error_log.append(request.endpoint, error.message, error.context)
        self._breakers.get(request.key).record_failure()
        self._metrics.record_error(request.key)

    async def close(self) -> None:
        """Close the HTTP client if this invoker created it."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None
