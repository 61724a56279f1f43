"""Key/value stores with per-entry TTL for search results and credits.

Every public ``CacheStore`` method is safe to call when the backing store is
unreachable: ``get`` reports a miss, ``set``/``delete`` return False and
``delete_by_prefix`` returns 0. Callers treat a failed write as "proceed
without caching".

Values are stored as JSON text, so a read always hands back a fresh copy with
list order preserved.
"""

from __future__ import annotations

import json
import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from pathlib import Path
from typing import Any

import redis

from config import settings
from engine.errors import CacheUnavailable

logger = logging.getLogger(__name__)

_DEFAULT_MAX_ENTRIES = 2048
_SCAN_BATCH = 500


class CacheStore(ABC):
    backend_name = "abstract"

    @abstractmethod
    def _read(self, key: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def _write(self, key: str, text: str, ttl_seconds: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def _remove(self, key: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def _remove_prefix(self, prefix: str) -> int:
        raise NotImplementedError

    @abstractmethod
    def _count(self) -> int:
        raise NotImplementedError

    def get(self, key: str) -> Any:
        try:
            text = self._read(key)
        except CacheUnavailable as exc:
            logger.warning("[CACHE] op=get key=%s backend=%s unavailable: %s", key, self.backend_name, exc)
            return None
        if text is None:
            logger.debug("[CACHE] op=get key=%s result=miss", key)
            return None
        try:
            value = json.loads(text)
        except ValueError:
            logger.warning("[CACHE] op=get key=%s result=corrupt", key)
            return None
        logger.debug("[CACHE] op=get key=%s result=hit", key)
        return value

    def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        try:
            text = json.dumps(value, ensure_ascii=True, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            logger.warning("[CACHE] op=set key=%s unserializable: %s", key, exc)
            return False
        try:
            self._write(key, text, max(1, int(ttl_seconds)))
        except CacheUnavailable as exc:
            logger.warning("[CACHE] op=set key=%s backend=%s unavailable: %s", key, self.backend_name, exc)
            return False
        logger.debug("[CACHE] op=set key=%s ttl=%s", key, ttl_seconds)
        return True

    def delete(self, key: str) -> bool:
        try:
            self._remove(key)
        except CacheUnavailable as exc:
            logger.warning("[CACHE] op=delete key=%s backend=%s unavailable: %s", key, self.backend_name, exc)
            return False
        return True

    def delete_by_prefix(self, prefix: str) -> int:
        try:
            count = self._remove_prefix(prefix)
        except CacheUnavailable as exc:
            logger.warning("[CACHE] op=delete_prefix prefix=%s backend=%s unavailable: %s", prefix, self.backend_name, exc)
            return 0
        logger.info("[CACHE] op=delete_prefix prefix=%s removed=%s", prefix, count)
        return count

    def stats(self) -> dict[str, Any]:
        try:
            entries = self._count()
        except CacheUnavailable:
            return {"backend": self.backend_name, "available": False, "entries": None}
        return {"backend": self.backend_name, "available": True, "entries": entries}


class MemoryCacheStore(CacheStore):
    backend_name = "memory"

    def __init__(self, *, max_entries=_DEFAULT_MAX_ENTRIES, clock=time.time):
        self.max_entries = int(max_entries)
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[str, tuple[float, str]] = OrderedDict()

    def _read(self, key):
        now = self._clock()
        with self._lock:
            row = self._entries.get(key)
            if row is None:
                return None
            expires_at, text = row
            if expires_at <= now:
                self._entries.pop(key, None)
                return None
            self._entries.move_to_end(key)
            return text

    def _write(self, key, text, ttl_seconds):
        expires_at = self._clock() + ttl_seconds
        with self._lock:
            self._entries[key] = (expires_at, text)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def _remove(self, key):
        with self._lock:
            self._entries.pop(key, None)

    def _remove_prefix(self, prefix):
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def _count(self):
        now = self._clock()
        with self._lock:
            return sum(1 for expires_at, _ in self._entries.values() if expires_at > now)


def _row_expiry(row) -> float:
    """Expiry timestamp of a file-cache row; unreadable values count as expired."""
    try:
        expires_at = float(row.get("expires_at") or 0.0)
    except (TypeError, ValueError):
        return 0.0
    return expires_at if math.isfinite(expires_at) else 0.0


class JsonFileCacheStore(CacheStore):
    backend_name = "file"

    def __init__(self, cache_path: str | None = None, *, clock=time.time) -> None:
        self._path = Path(cache_path or settings.CACHE_PATH)
        self._clock = clock
        self._lock = threading.Lock()
        self._data: dict[str, dict[str, Any]] = {}
        self._loaded = False

    def _load_locked(self) -> None:
        if self._loaded:
            return
        try:
            if self._path.exists():
                payload = json.loads(self._path.read_text(encoding="utf-8"))
                if isinstance(payload, dict):
                    self._data = payload
        except ValueError:
            logger.warning("[CACHE] file=%s unreadable, starting empty", self._path)
            self._data = {}
        except OSError as exc:
            raise CacheUnavailable(str(exc)) from exc
        self._loaded = True

    def _persist_locked(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(f"{self._path.suffix}.tmp")
            tmp_path.write_text(json.dumps(self._data, ensure_ascii=True, separators=(",", ":")), encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError as exc:
            raise CacheUnavailable(str(exc)) from exc

    def _read(self, key):
        now = self._clock()
        with self._lock:
            self._load_locked()
            row = self._data.get(key)
            if not isinstance(row, dict):
                return None
            if _row_expiry(row) <= now:
                self._data.pop(key, None)
                self._persist_locked()
                return None
            value = row.get("value")
            return value if isinstance(value, str) else None

    def _write(self, key, text, ttl_seconds):
        with self._lock:
            self._load_locked()
            self._data[key] = {"expires_at": self._clock() + ttl_seconds, "value": text}
            self._persist_locked()

    def _remove(self, key):
        with self._lock:
            self._load_locked()
            if self._data.pop(key, None) is not None:
                self._persist_locked()

    def _remove_prefix(self, prefix):
        with self._lock:
            self._load_locked()
            doomed = [key for key in self._data if key.startswith(prefix)]
            for key in doomed:
                del self._data[key]
            if doomed:
                self._persist_locked()
        return len(doomed)

    def _count(self):
        now = self._clock()
        with self._lock:
            self._load_locked()
            return sum(
                1 for row in self._data.values()
                if isinstance(row, dict) and _row_expiry(row) > now
            )


def _escape_glob(text: str) -> str:
    return "".join(f"\\{char}" if char in "*?[]\\" else char for char in text)


class RedisCacheStore(CacheStore):
    """Redis-backed store; expiry is left to Redis via SETEX."""

    backend_name = "redis"

    def __init__(
        self,
        client=None,
        *,
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        db=settings.REDIS_DB,
        password=settings.REDIS_PASSWORD,
    ):
        if client is None:
            client = redis.Redis(
                host=host,
                port=port,
                db=db,
                password=password,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
        self.client = client

    def _run(self, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except redis.RedisError as exc:
            raise CacheUnavailable(str(exc)) from exc

    def _read(self, key):
        value = self._run(self.client.get, key)
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    def _write(self, key, text, ttl_seconds):
        self._run(self.client.setex, key, ttl_seconds, text)

    def _remove(self, key):
        self._run(self.client.delete, key)

    def _remove_prefix(self, prefix):
        def _scan_and_delete():
            removed = 0
            batch = []
            for key in self.client.scan_iter(match=f"{_escape_glob(prefix)}*", count=_SCAN_BATCH):
                batch.append(key)
                if len(batch) >= _SCAN_BATCH:
                    removed += int(self.client.delete(*batch) or 0)
                    batch = []
            if batch:
                removed += int(self.client.delete(*batch) or 0)
            return removed

        return self._run(_scan_and_delete)

    def _count(self):
        return int(self._run(self.client.dbsize) or 0)

    def ping(self) -> bool:
        try:
            return bool(self._run(self.client.ping))
        except CacheUnavailable:
            return False


class NullCacheStore(CacheStore):
    """Stand-in for an absent cache: every read misses, every write fails."""

    backend_name = "none"

    def _read(self, key):
        return None

    def _write(self, key, text, ttl_seconds):
        raise CacheUnavailable("cache disabled")

    def _remove(self, key):
        raise CacheUnavailable("cache disabled")

    def _remove_prefix(self, prefix):
        return 0

    def _count(self):
        raise CacheUnavailable("cache disabled")

    def set(self, key, value, ttl_seconds):
        return False

    def delete(self, key):
        return False


def build_cache_store(backend: str | None = None) -> CacheStore:
    name = (backend or settings.CACHE_BACKEND or "memory").strip().lower()
    if name == "redis":
        store = RedisCacheStore()
        if not store.ping():
            logger.warning("[CACHE] redis unavailable at %s:%s, continuing without a reachable cache", settings.REDIS_HOST, settings.REDIS_PORT)
        return store
    if name == "file":
        return JsonFileCacheStore()
    if name == "none":
        return NullCacheStore()
    if name != "memory":
        logger.warning("[CACHE] unknown backend=%s, using memory", name)
    return MemoryCacheStore()
