"""
Post-hoc response checks and payload sanitizing.

Callers apply these to a Success after the call returns; the transport path
does not run them.
"""

import re
from typing import Any

from bs4 import BeautifulSoup

from gallery_api.services.errors import (
    InvalidResponseError,
    InvalidTypeError,
    MissingFieldError,
)
from gallery_api.services.result import CallResult, Success

_WHITESPACE = re.compile(r"\s+")


def _type_name(expected: type | tuple[type, ...]) -> str:
    if isinstance(expected, tuple):
        return " | ".join(t.__name__ for t in expected)
    return expected.__name__


def _matches(value: Any, expected: type | tuple[type, ...]) -> bool:
    types = expected if isinstance(expected, tuple) else (expected,)
    # bool is an int subclass; only accept it when asked for explicitly
    if isinstance(value, bool) and bool not in types:
        return False
    return isinstance(value, types)


def validate_response(
    result: CallResult,
    required_fields: list[str] | tuple[str, ...] = (),
    field_types: dict[str, type | tuple[type, ...]] | None = None,
) -> CallResult:
    """
    Check that a successful payload is an object with the given fields.

    Returns the result unchanged when it is valid (or already a Failure),
    otherwise a Failure of kind invalid_response, missing_field or
    invalid_type.
    """
    if not isinstance(result, Success):
        return result

    data = result.payload
    if not isinstance(data, dict):
        return InvalidResponseError("Invalid API response structure").to_result()

    field_types = field_types or {}
    for name in required_fields:
        if name not in data:
            return MissingFieldError(name, in_response=True).to_result()

        expected = field_types.get(name)
        if expected is not None and not _matches(data[name], expected):
            return InvalidTypeError(
                f"Field {name} has invalid type. Expected {_type_name(expected)}, "
                f"got {type(data[name]).__name__}",
                context={"field": name},
            ).to_result()

    return result


def sanitize_text(value: str) -> str:
    """Strip markup and collapse whitespace."""
    if "<" in value:
        value = BeautifulSoup(value, "html.parser").get_text(" ")
    return _WHITESPACE.sub(" ", value).strip()


def sanitize_payload(data: Any) -> Any:
    """Recursively sanitize strings in a decoded JSON payload."""
    if isinstance(data, dict):
        return {key: sanitize_payload(value) for key, value in data.items()}
    if isinstance(data, (list, tuple)):
        return [sanitize_payload(item) for item in data]
    if isinstance(data, str):
        return sanitize_text(data)
    if data is None or isinstance(data, (bool, int, float)):
        return data
    return None
