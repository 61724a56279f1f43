import logging

from config.settings import POPULAR_SEARCH_TTL_SECONDS, STANDARD_SEARCH_TTL_SECONDS
from engine.popularity import is_popular_artist

logger = logging.getLogger(__name__)


def ttl_for(artist) -> int:
    """Search-result TTL: a day for widely-known artists, six hours otherwise."""
    popular = is_popular_artist(artist)
    ttl = POPULAR_SEARCH_TTL_SECONDS if popular else STANDARD_SEARCH_TTL_SECONDS
    logger.debug("[CACHE] ttl artist=%r ttl=%s class=%s", artist, ttl, "popular" if popular else "standard")
    return ttl
