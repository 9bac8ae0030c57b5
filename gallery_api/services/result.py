"""
Call results returned by every public client operation.
"""

from dataclasses import dataclass, field
from typing import Any, Union

from gallery_api.services.errors import ErrorKind


@dataclass(frozen=True)
class Success:
    """Decoded 2xx response."""

    status_code: int
    payload: Any
    headers: dict[str, str] = field(default_factory=dict)
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.status_code,
            "data": self.payload,
            "headers": dict(self.headers),
        }


@dataclass(frozen=True)
class Failure:
    """Typed error outcome."""

    kind: ErrorKind
    message: str
    retryable: bool = False
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
            "context": dict(self.context),
        }


CallResult = Union[Success, Failure]
