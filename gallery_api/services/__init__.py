"""
Service layer - resilient communication with the gallery data API.

Provides:
- CacheManager: Two-tier response cache (memory + persistent store)
- RateLimiter: Fixed-window per-endpoint request budget
- CircuitBreaker: Stops calls to failing endpoints
- RetryController: Exponential backoff for transient failures
- RequestBuilder / TransportInvoker: Request assembly and HTTP execution
- GalleryApiClient: Unified client combining all patterns
"""

from gallery_api.services.errors import (
    ApiError,
    CircuitOpenError,
    ErrorKind,
    MissingFieldError,
    RateLimitError,
)
from gallery_api.services.result import CallResult, Failure, Success
from gallery_api.services.cache import (
    CacheCategory,
    CacheEntry,
    CacheManager,
    case_view_cache_key,
    cases_by_procedure_cache_key,
    cases_cache_key,
    sidebar_cache_key,
)
from gallery_api.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from gallery_api.services.rate_limiter import RateLimiter
from gallery_api.services.retry import RetryController, backoff_delay
from gallery_api.services.request_builder import PreparedRequest, RequestBuilder
from gallery_api.services.transport import TransportInvoker
from gallery_api.services.validator import sanitize_payload, validate_response
from gallery_api.services.metrics import ApiMetrics, ErrorLog, MetricsRegistry
from gallery_api.services.client import (
    GalleryApiClient,
    close_gallery_client,
    get_gallery_client,
)

__all__ = [
    # Errors
    "ApiError",
    "CircuitOpenError",
    "ErrorKind",
    "MissingFieldError",
    "RateLimitError",
    # Results
    "CallResult",
    "Failure",
    "Success",
    # Cache
    "CacheCategory",
    "CacheEntry",
    "CacheManager",
    "case_view_cache_key",
    "cases_by_procedure_cache_key",
    "cases_cache_key",
    "sidebar_cache_key",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitState",
    # Rate limiting and retries
    "RateLimiter",
    "RetryController",
    "backoff_delay",
    # Request / transport
    "PreparedRequest",
    "RequestBuilder",
    "TransportInvoker",
    # Validation
    "sanitize_payload",
    "validate_response",
    # Metrics
    "ApiMetrics",
    "ErrorLog",
    "MetricsRegistry",
    # Client
    "GalleryApiClient",
    "close_gallery_client",
    "get_gallery_client",
]
