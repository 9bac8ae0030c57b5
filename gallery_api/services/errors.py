"""
Gallery API error taxonomy.

Each failure mode has an exception class carrying an ErrorKind. Exceptions
are raised where the failure happens and converted to Failure results at the
client boundary, so callers only ever see CallResult values.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Closed set of error kinds a call can end with."""

    INVALID_URL = "invalid_url"
    INVALID_REQUEST = "invalid_request"
    MISSING_FIELD = "missing_field"
    MISSING_ENDPOINT = "missing_endpoint"
    AUTHENTICATION_ERROR = "authentication_error"
    AUTHORIZATION_ERROR = "authorization_error"
    NOT_FOUND = "not_found"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    SERVER_ERROR = "server_error"
    API_ERROR = "api_error"
    TRANSPORT_FAILURE = "transport_failure"
    JSON_DECODE_ERROR = "json_error"
    CIRCUIT_OPEN = "circuit_open"
    MAX_RETRIES_EXCEEDED = "max_retries_exceeded"
    INVALID_RESPONSE = "invalid_response"
    INVALID_TYPE = "invalid_type"


RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.TRANSPORT_FAILURE,
        ErrorKind.SERVER_ERROR,
        ErrorKind.RATE_LIMIT_EXCEEDED,
    }
)


def is_retryable(kind: ErrorKind) -> bool:
    return kind in RETRYABLE_KINDS


class ApiError(Exception):
    """Base exception for gallery API errors."""

    kind: ErrorKind = ErrorKind.API_ERROR

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        self.endpoint = endpoint
        self.context = dict(context or {})
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self)

    @property
    def retryable(self) -> bool:
        return is_retryable(self.kind)

    def to_result(self):
        """Convert into a Failure call result."""
        from gallery_api.services.result import Failure

        return Failure(
            kind=self.kind,
            message=self.message,
            retryable=self.retryable,
            context=dict(self.context),
        )


class InvalidURLError(ApiError):
    """Request URL is malformed."""

    kind = ErrorKind.INVALID_URL


class InvalidRequestError(ApiError):
    """Request cannot be built (unsupported method, bad arguments)."""

    kind = ErrorKind.INVALID_REQUEST


class MissingFieldError(ApiError):
    """A required field is absent."""

    kind = ErrorKind.MISSING_FIELD

    def __init__(
        self,
        field: str,
        endpoint: str | None = None,
        in_response: bool = False,
    ):
        self.field = field
        if in_response:
            message = f"Required field missing in response: {field}"
        else:
            message = f"Required field missing: {field}"
        super().__init__(message, endpoint=endpoint, context={"field": field})


class MissingEndpointError(ApiError):
    """Batch entry has no endpoint."""

    kind = ErrorKind.MISSING_ENDPOINT

    def __init__(self, index: int):
        super().__init__(
            "Endpoint is required for batch request", context={"index": index}
        )


class AuthenticationError(ApiError):
    """Remote rejected the credentials (401)."""

    kind = ErrorKind.AUTHENTICATION_ERROR


class AuthorizationError(ApiError):
    """Remote refused access (403)."""

    kind = ErrorKind.AUTHORIZATION_ERROR


class NotFoundError(ApiError):
    """Remote resource does not exist (404)."""

    kind = ErrorKind.NOT_FOUND


class RateLimitError(ApiError):
    """Rate limit exceeded, either remotely (429) or by the local limiter."""

    kind = ErrorKind.RATE_LIMIT_EXCEEDED


class ServerError(ApiError):
    """Remote failed with a 5xx status."""

    kind = ErrorKind.SERVER_ERROR


class TransportError(ApiError):
    """Network or connection level failure."""

    kind = ErrorKind.TRANSPORT_FAILURE


class ResponseDecodeError(ApiError):
    """Successful status but the body is not valid JSON."""

    kind = ErrorKind.JSON_DECODE_ERROR


class CircuitOpenError(ApiError):
    """Circuit breaker is open, request blocked."""

    kind = ErrorKind.CIRCUIT_OPEN

    def __init__(self, endpoint: str, reset_after_seconds: float):
        self.reset_after_seconds = reset_after_seconds
        super().__init__(
            f"Circuit breaker open for endpoint '{endpoint}', "
            f"retry after {reset_after_seconds:.1f}s",
            endpoint=endpoint,
            context={"reset_after_seconds": reset_after_seconds},
        )


class MaxRetriesExceededError(ApiError):
    """Retry loop finished without recording any error."""

    kind = ErrorKind.MAX_RETRIES_EXCEEDED

    def __init__(self, endpoint: str, attempts: int):
        super().__init__(
            f"Max retry attempts exceeded for endpoint: {endpoint}",
            endpoint=endpoint,
            context={"attempts": attempts},
        )


class InvalidResponseError(ApiError):
    """Response payload does not have the expected structure."""

    kind = ErrorKind.INVALID_RESPONSE


class InvalidTypeError(ApiError):
    """Response field has an unexpected type."""

    kind = ErrorKind.INVALID_TYPE


STATUS_ERRORS: dict[int, type[ApiError]] = {
    401: AuthenticationError,
    403: AuthorizationError,
    404: NotFoundError,
    429: RateLimitError,
}


def error_for_status(status_code: int) -> type[ApiError]:
    """Pick the error class for a non-2xx HTTP status."""
    if status_code in STATUS_ERRORS:
        return STATUS_ERRORS[status_code]
    if status_code >= 500:
        return ServerError
    return ApiError
