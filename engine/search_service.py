"""Search orchestration: cache check, rate-limited upstream fetch, ranking, cache write.

Concurrent searches for the same normalized key share one upstream
computation. The computation always runs to completion and writes the cache,
even if every caller waiting on it has gone away.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Callable

from app.cache.keys import CREDITS_NAMESPACE, SEARCH_NAMESPACE, make_credits_key, make_search_key, namespace_prefix
from app.cache.store import CacheStore, build_cache_store
from app.cache.ttl import ttl_for
from app.musicbrainz.basic import basic_search
from app.musicbrainz.client import MusicBrainzClient, get_musicbrainz_client
from app.musicbrainz.parsing import parse_recording, parse_recordings
from config import settings
from engine.credits import extract_credits
from engine.errors import InvalidLimit, RateLimitExceeded, SearchError, UpstreamUnavailable
from engine.models import (
    UNKNOWN_YEAR,
    CandidateRecording,
    Credits,
    CreditsResponse,
    ScoredCandidate,
    SearchResponse,
    SearchResult,
)
from engine.queries import build_search_queries, sanitize_lucene
from engine.ranking import rank

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = "Enhanced search temporarily unavailable, using basic search"


def _utc_now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def validate_limit(limit: Any) -> int:
    if isinstance(limit, bool):
        raise InvalidLimit(limit, settings.MIN_SEARCH_LIMIT, settings.MAX_SEARCH_LIMIT)
    try:
        parsed = int(str(limit).strip()) if isinstance(limit, str) else int(limit)
    except (TypeError, ValueError):
        raise InvalidLimit(limit, settings.MIN_SEARCH_LIMIT, settings.MAX_SEARCH_LIMIT) from None
    if isinstance(limit, float) and parsed != limit:
        raise InvalidLimit(limit, settings.MIN_SEARCH_LIMIT, settings.MAX_SEARCH_LIMIT)
    if parsed < settings.MIN_SEARCH_LIMIT or parsed > settings.MAX_SEARCH_LIMIT:
        raise InvalidLimit(limit, settings.MIN_SEARCH_LIMIT, settings.MAX_SEARCH_LIMIT)
    return parsed


def strip_result_prefix(recording_id: Any) -> str:
    rid = str(recording_id or "").strip()
    if rid.lower().startswith("mb-"):
        rid = rid[3:]
    return rid


def display_artist(recording: CandidateRecording) -> str:
    if recording.artist_credits:
        return ", ".join(credit.name for credit in recording.artist_credits)
    for release in recording.releases:
        if release.artist_names:
            return ", ".join(release.artist_names)
    return "Unknown Artist"


def to_search_result(scored: ScoredCandidate) -> SearchResult:
    recording = scored.recording
    best = scored.best_release or (recording.releases[0] if recording.releases else None)
    return {
        "id": f"mb-{recording.id}",
        "musicbrainz_id": recording.id,
        "title": recording.title,
        "artist": display_artist(recording),
        "album": best.title if best and best.title else "Unknown Album",
        "year": None if scored.tie_break_year == UNKNOWN_YEAR else scored.tie_break_year,
        "release_date": best.date if best else None,
        "duration": recording.duration_seconds,
        "disambiguation": recording.disambiguation,
        "credits": extract_credits(recording).to_dict(),
        "priority_score": scored.score,
        "scoring_reason": scored.reason,
        "source": "musicbrainz",
    }


class _InFlight:
    def __init__(self) -> None:
        self.done = threading.Event()
        self.result: Any = None
        self.error: BaseException | None = None


class SearchService:
    def __init__(
        self,
        *,
        client: MusicBrainzClient | None = None,
        cache: CacheStore | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client or get_musicbrainz_client()
        self.cache = cache if cache is not None else build_cache_store()
        self._clock = clock
        self._inflight: dict[str, _InFlight] = {}
        self._inflight_lock = threading.Lock()

    def _shared(self, key: str, compute: Callable[[], Any]) -> Any:
        with self._inflight_lock:
            entry = self._inflight.get(key)
            leader = entry is None
            if leader:
                entry = _InFlight()
                self._inflight[key] = entry
        if not leader:
            logger.debug("[SEARCH] joining in-flight computation key=%s", key)
            entry.done.wait()
            if entry.error is not None:
                raise entry.error
            return entry.result
        try:
            entry.result = compute()
            return entry.result
        except BaseException as exc:
            entry.error = exc
            raise
        finally:
            with self._inflight_lock:
                self._inflight.pop(key, None)
            entry.done.set()

    def _fetch_candidates(self, queries: list[str], fetch_limit: int) -> list[CandidateRecording]:
        merged: OrderedDict[str, CandidateRecording] = OrderedDict()
        failures = 0
        last_error: UpstreamUnavailable | None = None
        for attempt, query in enumerate(queries, start=1):
            try:
                payload = self.client.search_recordings(query, limit=fetch_limit)
            except RateLimitExceeded:
                logger.warning("[SEARCH] rate limited on attempt=%s query=%s", attempt, query)
                raise
            except UpstreamUnavailable as exc:
                failures += 1
                last_error = exc
                logger.warning("[SEARCH] attempt=%s failed query=%s error=%s", attempt, query, exc.detail)
                continue
            for recording in parse_recordings(payload):
                merged.setdefault(recording.id, recording)
            logger.info("[SEARCH] attempt=%s query=%s candidates=%s", attempt, query, len(merged))
            if merged:
                break
        if not merged and failures == len(queries):
            raise UpstreamUnavailable(
                f"MusicBrainz search failed after {failures} attempts"
            ) from last_error
        return list(merged.values())

    def _fetch_rank_store(self, key: str, artist: str, song: str, queries: list[str]):
        # Fetch size ignores the caller's limit; the cached list is always the full ranking.
        candidates = self._fetch_candidates(queries, settings.MAX_UPSTREAM_FETCH)
        results = [to_search_result(scored) for scored in rank(candidates, artist)]
        ttl = ttl_for(artist)
        stored = self.cache.set(
            key,
            {
                "results": results,
                "cached_at": _utc_now(),
                "ttl": ttl,
                "search_terms": {"artist": artist, "song": song},
            },
            ttl,
        )
        if not stored:
            logger.warning("[SEARCH] proceeding without cache key=%s", key)
        return results, ttl

    def search(self, artist: str | None, song: str | None, limit: Any = 20) -> SearchResponse:
        started = self._clock()
        limit = validate_limit(limit)
        artist = artist or ""
        song = song or ""
        key = make_search_key(artist, song)
        queries = build_search_queries(artist, song)

        cached = self.cache.get(key)
        if isinstance(cached, dict) and isinstance(cached.get("results"), list):
            results = cached["results"]
            logger.info("[SEARCH] artist=%r song=%r results=%s cached=true", artist, song, len(results))
            return SearchResponse(
                results=results[:limit],
                total_count=len(results),
                cached=True,
                artist_searched=artist,
                song_searched=song,
                search_time_ms=int((self._clock() - started) * 1000),
            )

        results, ttl = self._shared(key, lambda: self._fetch_rank_store(key, artist, song, queries))
        elapsed_ms = int((self._clock() - started) * 1000)
        logger.info(
            "[SEARCH] artist=%r song=%r results=%s cached=false ttl=%s elapsed_ms=%s",
            artist,
            song,
            len(results),
            ttl,
            elapsed_ms,
        )
        return SearchResponse(
            results=results[:limit],
            total_count=len(results),
            cached=False,
            artist_searched=artist,
            song_searched=song,
            cache_ttl_seconds=ttl,
            search_time_ms=elapsed_ms,
        )

    def search_with_fallback(self, artist: str | None, song: str | None, limit: Any = 20) -> SearchResponse:
        """Ranked search, or a flagged unranked result set when upstream is unavailable."""
        try:
            return self.search(artist, song, limit)
        except UpstreamUnavailable as exc:
            started = self._clock()
            limit = validate_limit(limit)
            query = sanitize_lucene(" ".join(part for part in (song, artist) if part))
            logger.warning("[SEARCH] ranked search unavailable (%s), falling back to basic search", exc.detail)
            try:
                results = basic_search(self.client, query, limit=limit)
            except SearchError as fallback_exc:
                logger.error("[SEARCH] basic search also failed: %s", fallback_exc.detail)
                raise exc from fallback_exc
            return SearchResponse(
                results=results[:limit],
                total_count=len(results),
                cached=False,
                artist_searched=artist or "",
                song_searched=song or "",
                search_time_ms=int((self._clock() - started) * 1000),
                fallback=True,
                source="musicbrainz_basic",
                message=FALLBACK_MESSAGE,
            )

    async def search_async(self, artist: str | None, song: str | None, limit: Any = 20) -> SearchResponse:
        # A cancelled caller stops waiting; the worker thread still finishes and caches.
        return await asyncio.to_thread(self.search, artist, song, limit)

    def load_credits(self, recording_id: Any) -> CreditsResponse:
        rid = strip_result_prefix(recording_id)
        key = make_credits_key(rid)
        rid = rid.lower()

        cached = self.cache.get(key)
        if isinstance(cached, dict) and isinstance(cached.get("credits"), dict):
            logger.info("[CREDITS] recording=%s cached=true", rid)
            return CreditsResponse(credits=Credits.from_dict(cached["credits"]), recording_id=rid, cached=True)

        payload = self.client.get_recording(rid)
        recording = parse_recording(payload) or CandidateRecording(id=rid, title="")
        credits = extract_credits(recording)
        stored = self.cache.set(
            key,
            {"credits": credits.to_dict(), "cached_at": _utc_now(), "recording_id": rid},
            settings.CREDITS_TTL_SECONDS,
        )
        if not stored:
            logger.warning("[CREDITS] proceeding without cache key=%s", key)
        logger.info("[CREDITS] recording=%s cached=false songwriters=%s", rid, len(credits.songwriters))
        return CreditsResponse(credits=credits, recording_id=rid, cached=False)

    async def load_credits_async(self, recording_id: Any) -> CreditsResponse:
        return await asyncio.to_thread(self.load_credits, recording_id)

    def clear_search_cache(self) -> int:
        return self.cache.delete_by_prefix(namespace_prefix(SEARCH_NAMESPACE))

    def clear_credits_cache(self) -> int:
        return self.cache.delete_by_prefix(namespace_prefix(CREDITS_NAMESPACE))

    def stats(self) -> dict[str, Any]:
        gate = self.client.rate_gate
        return {
            "service": "musicbrainz_enhanced",
            "cache": self.cache.stats(),
            "rate_gate": {
                "min_interval_seconds": gate.min_interval_seconds,
                "calls": gate.calls,
            },
            "timestamp": _utc_now(),
        }


_SERVICE: SearchService | None = None
_SERVICE_LOCK = threading.Lock()


def get_search_service() -> SearchService:
    global _SERVICE
    if _SERVICE is not None:
        return _SERVICE
    with _SERVICE_LOCK:
        if _SERVICE is None:
            _SERVICE = SearchService()
    return _SERVICE
