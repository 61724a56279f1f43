from .errors import (
    CacheUnavailable,
    EmptyQuery,
    InputTooLong,
    InvalidCharacters,
    InvalidIdentifier,
    InvalidLimit,
    RateLimitExceeded,
    SearchError,
    SearchInputError,
    UpstreamUnavailable,
)
from .ranking import explain, rank, score_candidate

__all__ = [
    "CacheUnavailable",
    "EmptyQuery",
    "InputTooLong",
    "InvalidCharacters",
    "InvalidIdentifier",
    "InvalidLimit",
    "RateLimitExceeded",
    "SearchError",
    "SearchInputError",
    "UpstreamUnavailable",
    "explain",
    "rank",
    "score_candidate",
]
