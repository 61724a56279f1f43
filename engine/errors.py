"""Error taxonomy for search and credit lookups.

Each error carries the HTTP status the web layer should answer with, so the
route handlers only need ``except SearchError as exc: return exc.to_dict()``.
"""

from __future__ import annotations

from typing import Any


class SearchError(Exception):
    """Base class for every error surfaced to a search caller."""

    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "detail": self.detail}


class SearchInputError(SearchError, ValueError):
    """Caller input was rejected before any cache or upstream work."""

    status_code = 400


class InputTooLong(SearchInputError):
    def __init__(self, field: str, max_length: int) -> None:
        super().__init__(f"{field} exceeds {max_length} characters")
        self.field = field
        self.max_length = max_length


class InvalidCharacters(SearchInputError):
    def __init__(self, field: str) -> None:
        super().__init__(f"{field} contains invalid characters")
        self.field = field


class InvalidIdentifier(SearchInputError):
    def __init__(self, value: str) -> None:
        super().__init__("Invalid recording ID format")
        self.value = value


class InvalidLimit(SearchInputError):
    def __init__(self, limit: Any, minimum: int, maximum: int) -> None:
        super().__init__(f"Invalid limit parameter ({minimum}-{maximum})")
        self.limit = limit


class EmptyQuery(SearchInputError):
    def __init__(self) -> None:
        super().__init__("Either artist or song must be provided")


class RateLimitExceeded(SearchError):
    status_code = 429

    def __init__(self, detail: str = "Rate limit exceeded - please try again later", *, retry_after: int = 5) -> None:
        super().__init__(detail)
        self.retry_after = int(retry_after)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["retry_after"] = self.retry_after
        return payload


class UpstreamUnavailable(SearchError):
    status_code = 503


class CacheUnavailable(Exception):
    """Raised inside cache backends only; CacheStore methods never let it out."""
