from app.cache.keys import CREDITS_NAMESPACE, SEARCH_NAMESPACE, make_credits_key, make_search_key
from app.cache.store import (
    CacheStore,
    JsonFileCacheStore,
    MemoryCacheStore,
    NullCacheStore,
    RedisCacheStore,
    build_cache_store,
)
from app.cache.ttl import ttl_for

__all__ = [
    "CREDITS_NAMESPACE",
    "SEARCH_NAMESPACE",
    "CacheStore",
    "JsonFileCacheStore",
    "MemoryCacheStore",
    "NullCacheStore",
    "RedisCacheStore",
    "build_cache_store",
    "make_credits_key",
    "make_search_key",
    "ttl_for",
]
