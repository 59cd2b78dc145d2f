"""Error taxonomy and tagged results returned by the source fetchers.

Fetchers never raise for expected conditions. Internally the HTTP layer and
the source client raise :class:`FetchError` subclasses; each fetcher catches
them at its public boundary and hands back a :class:`FetchResult`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from citekit.models import Reference

T = TypeVar("T")


class ErrorKind(Enum):
    """Closed set of failure categories."""

    INVALID_IDENTIFIER = "invalid_identifier"
    RATE_LIMITED = "rate_limited"
    NETWORK_ERROR = "network_error"
    HTTP_STATUS_ERROR = "http_status_error"
    PARSE_ERROR = "parse_error"
    NOT_FOUND = "not_found"
    SEARCH_UNSUPPORTED = "search_unsupported"
    PARTIAL_FAILURE = "partial_failure"


class FetchError(Exception):
    """Base class for all expected fetch failures."""

    kind: ErrorKind = ErrorKind.NETWORK_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-friendly dict."""
        return {"kind": self.kind.value, "message": self.message}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FetchError):
            return NotImplemented
        return type(self) is type(other) and self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash((type(self), self.message))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class InvalidIdentifier(FetchError):
    kind = ErrorKind.INVALID_IDENTIFIER


class RateLimited(FetchError):
    kind = ErrorKind.RATE_LIMITED


class NetworkError(FetchError):
    kind = ErrorKind.NETWORK_ERROR


class HttpStatusError(FetchError):
    """Non-2xx response from a remote service."""

    kind = ErrorKind.HTTP_STATUS_ERROR

    def __init__(self, code: int, body: str = "", message: str | None = None) -> None:
        super().__init__(message or f"HTTP error {code}")
        self.code = code
        self.body = body

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["code"] = self.code
        return data


class ParseError(FetchError):
    kind = ErrorKind.PARSE_ERROR


class NotFound(FetchError):
    kind = ErrorKind.NOT_FOUND


class SearchUnsupported(FetchError):
    kind = ErrorKind.SEARCH_UNSUPPORTED


class PartialFailure(FetchError):
    """Summary error for a bulk operation where some items failed."""

    kind = ErrorKind.PARTIAL_FAILURE

    def __init__(self, succeeded: int, failed: int) -> None:
        super().__init__(f"{failed} of {succeeded + failed} items failed")
        self.succeeded = succeeded
        self.failed = failed

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"succeeded": self.succeeded, "failed": self.failed})
        return data


# ------------- Tagged results -------------


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    """Either a value or a :class:`FetchError`, never both."""

    value: T | None = None
    error: FetchError | None = None

    @classmethod
    def success(cls, value: T) -> FetchResult[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: FetchError) -> FetchResult[T]:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> ErrorKind | None:
        return self.error.kind if self.error else None

    def unwrap(self) -> T:
        """Return the value, raising the stored error on failure."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


@dataclass(frozen=True)
class BulkFailure:
    """One failed identifier in a bulk operation."""

    identifier: str
    error: FetchError

    def to_dict(self) -> dict[str, Any]:
        return {"identifier": self.identifier, "error": self.error.to_dict()}


@dataclass
class BulkResult:
    """Outcome of a bulk fetch: every item attempted, failures collected."""

    successful: list[Reference] = field(default_factory=list)
    failed: list[BulkFailure] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.failed)

    def summary_error(self) -> PartialFailure | None:
        """Return a PartialFailure describing the batch, or None if all succeeded."""
        if not self.failed:
            return None
        return PartialFailure(len(self.successful), len(self.failed))


@dataclass(frozen=True)
class SearchHit:
    """A normalized search result with the source's relevance data."""

    reference: Reference
    score: float | None = None
    snippet: str = ""


@dataclass
class SearchResult:
    """A page of search hits."""

    items: list[SearchHit]
    total_results: int
    items_per_page: int
    query: str
