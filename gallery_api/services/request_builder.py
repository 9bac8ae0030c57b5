"""
RequestBuilder - Turns an endpoint, method and body into a ready-to-send request.

Responsibilities:
- Join the configured base URL and the endpoint path with one separator
- Inject API tokens and website property IDs into write bodies
- Add no-cache headers and a cache-busting query parameter to GETs
- Reject malformed URLs before anything goes on the wire
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable
from urllib.parse import urlencode

import httpx

from gallery_api import __version__
from gallery_api.services.errors import InvalidRequestError, InvalidURLError

ALLOWED_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})
CREDENTIAL_METHODS = frozenset({"POST", "PUT", "PATCH"})

NOCACHE_PARAM = "_nocache"


def endpoint_key(endpoint: str) -> str:
    """Partition key for an endpoint: its path without query or outer slashes."""
    return (endpoint or "").split("?", 1)[0].strip("/")


def normalize_param(value: Any) -> str:
    """Render a query value the way the remote API expects it."""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value)
    if value is None:
        return ""
    return str(value)


@dataclass(frozen=True)
class PreparedRequest:
    """Fully built outbound request."""

    endpoint: str
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] | None = None
    content: bytes | None = None

    @property
    def key(self) -> str:
        return endpoint_key(self.endpoint)


class RequestBuilder:
    """
    Builds PreparedRequest objects for the gallery API.

    Usage:
        builder = RequestBuilder(
            base_url="https://app.bragbookgallery.com",
            api_tokens=["token"],
            website_property_ids=["42"],
        )
        request = builder.prepare("cases", "POST", {"page": 1})
    """

    def __init__(
        self,
        base_url: str,
        api_tokens: list[str] | None = None,
        website_property_ids: list[str] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.base_url = base_url
        self.api_tokens = list(api_tokens or [])
        self.website_property_ids = list(website_property_ids or [])
        self._clock = clock

    def build_url(self, endpoint: str) -> str:
        """Join base URL and endpoint with exactly one slash."""
        return f"{self.base_url.rstrip('/')}/{(endpoint or '').lstrip('/')}"

    def build_endpoint(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
        allowed_params: list[str] | None = None,
    ) -> str:
        """Append a query string to an endpoint, optionally filtering keys."""
        endpoint = (endpoint or "").lstrip("/")
        if not params:
            return endpoint

        if allowed_params:
            params = {k: v for k, v in params.items() if k in allowed_params}
            if not params:
                return endpoint

        query = urlencode({k: normalize_param(v) for k, v in params.items()})
        separator = "&" if "?" in endpoint else "?"
        return f"{endpoint}{separator}{query}"

    def default_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "Pragma": "no-cache",
            "X-LiteSpeed-Cache-Control": "no-cache",
            "User-Agent": f"GalleryApiClient/{__version__}",
        }

    def inject_credentials(self, body: Any) -> dict[str, Any]:
        """
        Add apiTokens / websitePropertyIds to a write body.

        Values the caller already set are left alone. A JSON string body is
        decoded first; anything that does not decode to an object becomes {}.
        """
        if body is None:
            body = {}
        elif isinstance(body, (str, bytes)):
            try:
                body = json.loads(body)
            except json.JSONDecodeError:
                body = {}
            if not isinstance(body, dict):
                body = {}
        else:
            body = dict(body)

        if "apiTokens" not in body and self.api_tokens:
            body["apiTokens"] = list(self.api_tokens)

        if "websitePropertyIds" not in body and self.website_property_ids:
            body["websitePropertyIds"] = list(self.website_property_ids)

        return body

    def prepare(
        self,
        endpoint: str,
        method: str = "GET",
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> PreparedRequest:
        """
        Build the request.

        Raises:
            InvalidRequestError: unsupported HTTP method
            InvalidURLError: resulting URL is malformed
        """
        method = (method or "").upper()
        if method not in ALLOWED_METHODS:
            raise InvalidRequestError(
                f"Unsupported HTTP method: {method or '(empty)'}",
                endpoint=endpoint,
                context={"method": method},
            )

        url = self.build_url(endpoint)
        self.validate_url(url, endpoint)

        if method in CREDENTIAL_METHODS:
            payload = self.inject_credentials(body)
        elif isinstance(body, dict):
            payload = dict(body)
        else:
            payload = None

        if method == "GET":
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}{NOCACHE_PARAM}={int(self._clock())}"

        req_headers = self.default_headers()
        if headers:
            req_headers.update(headers)

        return PreparedRequest(
            endpoint=endpoint,
            method=method,
            url=url,
            headers=req_headers,
            body=payload,
            content=json.dumps(payload).encode() if payload is not None else None,
        )

    @staticmethod
    def validate_url(url: str, endpoint: str | None = None) -> None:
        """Raise InvalidURLError unless url is an absolute http(s) URL with a host."""
        try:
            parsed = httpx.URL(url)
        except (httpx.InvalidURL, TypeError, ValueError) as e:
            raise InvalidURLError(
                f"Invalid API URL: {url}", endpoint=endpoint, context={"url": url}
            ) from e

        if (
            parsed.scheme not in ("http", "https")
            or not parsed.host
            or any(ch.isspace() for ch in url)
        ):
            raise InvalidURLError(
                f"Invalid API URL: {url}", endpoint=endpoint, context={"url": url}
            )
