"""Application settings constants."""

from __future__ import annotations

import os

# Upstream catalog.
MUSICBRAINZ_BASE_URL = os.getenv("MUSICBRAINZ_BASE_URL", "https://musicbrainz.org")
MUSICBRAINZ_USER_AGENT = os.getenv(
    "MUSICBRAINZ_USER_AGENT",
    "LinerNotes/1.0 (+https://github.com/linernotes/linernotes)",
)
MUSICBRAINZ_TIMEOUT_SECONDS = float(os.getenv("MUSICBRAINZ_TIMEOUT_SECONDS", "15"))
MUSICBRAINZ_CREDITS_TIMEOUT_SECONDS = float(os.getenv("MUSICBRAINZ_CREDITS_TIMEOUT_SECONDS", "10"))

# Minimum spacing between two upstream calls, shared by every search in the process.
MUSICBRAINZ_MIN_INTERVAL_SECONDS = float(os.getenv("MUSICBRAINZ_MIN_INTERVAL_SECONDS", "1.1"))

# Hint handed back with RateLimitExceeded when upstream does not send Retry-After.
RETRY_AFTER_SECONDS = int(os.getenv("LINERNOTES_RETRY_AFTER_SECONDS", "5"))

# Cache store: redis, file, memory or none.
CACHE_BACKEND = os.getenv("LINERNOTES_CACHE_BACKEND", "memory").strip().lower()
CACHE_PATH = os.getenv("LINERNOTES_CACHE_PATH", ".cache/linernotes_cache.json")
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD") or None

POPULAR_SEARCH_TTL_SECONDS = 24 * 60 * 60
STANDARD_SEARCH_TTL_SECONDS = 6 * 60 * 60
CREDITS_TTL_SECONDS = 7 * 24 * 60 * 60

MAX_TERM_LENGTH = 200
MIN_SEARCH_LIMIT = 1
MAX_SEARCH_LIMIT = 100
MAX_UPSTREAM_FETCH = 100
