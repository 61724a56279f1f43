from __future__ import annotations

import asyncio
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
import redis

from app.cache.store import MemoryCacheStore, RedisCacheStore
from app.musicbrainz.client import MusicBrainzClient
from engine.errors import (
    EmptyQuery,
    InvalidIdentifier,
    InvalidLimit,
    RateLimitExceeded,
    UpstreamUnavailable,
)
from engine.rate_gate import RateGate
from engine.search_service import SearchService

RECORDING_ID = "b9ad642e-b012-41c7-b72a-42cf4911f9ff"


def _row(rid, release_title, *, primary="Album", secondary=(), status="Official", date="1969-09-26", artist="The Beatles"):
    return {
        "id": rid,
        "title": "Come Together",
        "length": 259000,
        "artist-credit": [{"name": artist, "artist": {"name": artist}}],
        "releases": [
            {
                "title": release_title,
                "status": status,
                "date": date,
                "release-group": {"primary-type": primary, "secondary-types": list(secondary)},
            }
        ],
        "relations": [{"type": "producer", "artist": {"name": "George Martin"}}],
    }


BEATLES_PAYLOAD = {
    "recordings": [
        _row("hits", "Greatest Hits", date="1982"),
        _row("studio", "Abbey Road"),
        _row("live", "Live at the BBC", secondary=("Live",), date="1994"),
    ]
}


class _FakeClient:
    def __init__(self, *search_responses, recording=None, basic=None):
        self.search_responses = list(search_responses)
        self.search_calls = []
        self.recording = recording
        self.recording_calls = []
        self.basic = basic
        self.basic_calls = []
        self.rate_gate = RateGate(0)

    def search_recordings(self, query, *, limit=25):
        self.search_calls.append((query, limit))
        response = self.search_responses.pop(0) if self.search_responses else {"recordings": []}
        if isinstance(response, Exception):
            raise response
        return response

    def get_recording(self, recording_id):
        self.recording_calls.append(recording_id)
        if isinstance(self.recording, Exception):
            raise self.recording
        return self.recording

    def get_json(self, endpoint, *, params=None, timeout=None):
        self.basic_calls.append(params)
        if isinstance(self.basic, Exception):
            raise self.basic
        return self.basic


class _BrokenRedis:
    def __getattr__(self, name):
        def _fail(*args, **kwargs):
            raise redis.ConnectionError("down")

        return _fail


def _service(client, cache=None):
    return SearchService(client=client, cache=cache if cache is not None else MemoryCacheStore())


def test_miss_ranks_caches_and_then_hits() -> None:
    client = _FakeClient(BEATLES_PAYLOAD)
    service = _service(client)

    first = service.search("The Beatles", "Come Together", 20)
    assert first.cached is False
    assert first.cache_ttl_seconds == 86400
    assert [row["id"] for row in first.results] == ["mb-studio", "mb-hits", "mb-live"]
    top = first.results[0]
    assert top["album"] == "Abbey Road"
    assert top["year"] == 1969
    assert top["priority_score"] == 2400
    assert top["duration"] == 259
    assert top["credits"]["producers"] == [{"name": "George Martin", "role": "producer"}]

    second = service.search(" the BEATLES ", "come    together!!", 20)
    assert second.cached is True
    assert second.results == first.results
    assert len(client.search_calls) == 1


def test_every_limit_ranks_the_full_upstream_fetch() -> None:
    client = _FakeClient(BEATLES_PAYLOAD)
    response = _service(client).search("The Beatles", "Come Together", 2)
    assert len(response.results) == 2
    assert response.total_count == 3
    assert client.search_calls[0][1] == 100


class _PagedClient(_FakeClient):
    """Answers like upstream does: at most ``limit`` rows per query."""

    def __init__(self, rows):
        super().__init__()
        self.rows = rows

    def search_recordings(self, query, *, limit=25):
        self.search_calls.append((query, limit))
        return {"recordings": self.rows[:limit]}


MANY_ROWS = [_row(f"r{n:02d}", f"Album {n}", date=str(1960 + n)) for n in range(40)]


def test_warm_cache_answers_like_a_cold_one() -> None:
    warm = _service(_PagedClient(MANY_ROWS))
    warm.search("The Beatles", "Come Together", 1)
    warm_response = warm.search("The Beatles", "Come Together", 20)

    cold_response = _service(_PagedClient(MANY_ROWS)).search("The Beatles", "Come Together", 20)

    assert warm_response.cached is True
    assert cold_response.cached is False
    assert len(warm_response.results) == 20
    assert warm_response.results == cold_response.results
    assert warm_response.total_count == cold_response.total_count == 40


def test_falls_through_to_looser_query_when_strict_is_empty() -> None:
    client = _FakeClient({"recordings": []}, BEATLES_PAYLOAD, BEATLES_PAYLOAD)
    response = _service(client).search("The Beatles", "Come Together", 20)
    assert response.total_count == 3
    assert [query for query, _ in client.search_calls] == [
        'recording:"Come Together" AND artist:"The Beatles"',
        "recording:Come Together AND artist:The Beatles",
    ]


def test_failed_attempt_moves_on_to_the_next_formulation() -> None:
    client = _FakeClient(UpstreamUnavailable("timeout"), BEATLES_PAYLOAD)
    response = _service(client).search("The Beatles", "Come Together", 20)
    assert response.total_count == 3
    assert len(client.search_calls) == 2


def test_all_attempts_failing_surfaces_upstream_unavailable() -> None:
    client = _FakeClient(UpstreamUnavailable("a"), UpstreamUnavailable("b"), UpstreamUnavailable("c"))
    cache = MemoryCacheStore()
    with pytest.raises(UpstreamUnavailable):
        _service(client, cache).search("The Beatles", "Come Together", 20)
    assert len(client.search_calls) == 3
    assert cache.stats()["entries"] == 0


def test_empty_upstream_answer_is_cached() -> None:
    client = _FakeClient()
    service = _service(client)
    assert service.search("Nobody", "Nothing", 5).results == []
    assert service.search("Nobody", "Nothing", 5).cached is True


def test_rate_limit_is_not_retried_or_masked() -> None:
    client = _FakeClient(RateLimitExceeded(retry_after=5), BEATLES_PAYLOAD)
    service = _service(client)
    with pytest.raises(RateLimitExceeded):
        service.search("The Beatles", "Come Together", 20)
    with pytest.raises(RateLimitExceeded):
        _service(_FakeClient(RateLimitExceeded())).search_with_fallback("The Beatles", "Come Together", 20)
    assert len(client.search_calls) == 1


@pytest.mark.parametrize("limit", [0, 101, -1, "abc", None, True, 2.5])
def test_invalid_limit_is_rejected_before_any_work(limit) -> None:
    client = _FakeClient(BEATLES_PAYLOAD)
    with pytest.raises(InvalidLimit):
        _service(client).search("The Beatles", "Come Together", limit)
    assert client.search_calls == []


def test_numeric_string_limit_is_accepted() -> None:
    response = _service(_FakeClient(BEATLES_PAYLOAD)).search("The Beatles", "Come Together", "1")
    assert len(response.results) == 1


def test_nothing_to_search_for() -> None:
    client = _FakeClient()
    with pytest.raises(EmptyQuery):
        _service(client).search(None, "   ", 20)
    assert client.search_calls == []


def test_search_completes_when_cache_is_down() -> None:
    service = _service(_FakeClient(BEATLES_PAYLOAD), RedisCacheStore(client=_BrokenRedis()))
    response = service.search("The Beatles", "Come Together", 20)
    assert response.cached is False
    assert response.total_count == 3


def test_fallback_returns_flagged_unranked_results() -> None:
    basic = {"recordings": [{"id": "r9", "title": "Come Together", "artist-credit": [{"name": "The Beatles"}]}]}
    client = _FakeClient(
        UpstreamUnavailable("a"), UpstreamUnavailable("b"), UpstreamUnavailable("c"), basic=basic
    )
    response = _service(client).search_with_fallback("The Beatles", "Come Together", 20)
    assert response.fallback is True
    assert response.source == "musicbrainz_basic"
    assert response.message
    assert [row["id"] for row in response.results] == ["mb-r9"]
    assert client.basic_calls[0]["query"] == "Come Together The Beatles"


def test_failed_fallback_surfaces_ranked_search_error() -> None:
    ranked_error = UpstreamUnavailable("ranked search down")
    client = _FakeClient(ranked_error, ranked_error, ranked_error, basic=UpstreamUnavailable("basic down"))
    with pytest.raises(UpstreamUnavailable) as excinfo:
        _service(client).search_with_fallback("The Beatles", "Come Together", 20)
    assert "failed after 3 attempts" in excinfo.value.detail


def test_concurrent_identical_searches_share_one_upstream_fetch() -> None:
    entered = threading.Event()
    release = threading.Event()

    class _SlowClient(_FakeClient):
        def search_recordings(self, query, *, limit=25):
            entered.set()
            release.wait(5)
            return super().search_recordings(query, limit=limit)

    client = _SlowClient(BEATLES_PAYLOAD)
    service = _service(client, MemoryCacheStore())
    responses = []

    def _run():
        responses.append(service.search("The Beatles", "Come Together", 20))

    first = threading.Thread(target=_run)
    first.start()
    assert entered.wait(5)
    second = threading.Thread(target=_run)
    second.start()
    time.sleep(0.1)
    release.set()
    first.join(5)
    second.join(5)

    assert len(client.search_calls) == 1
    assert len(responses) == 2
    assert responses[0].results == responses[1].results


def test_async_search() -> None:
    service = _service(_FakeClient(BEATLES_PAYLOAD))
    response = asyncio.run(service.search_async("The Beatles", "Come Together", 20))
    assert response.total_count == 3


def test_cancelled_caller_does_not_stop_the_cache_write() -> None:
    entered = threading.Event()
    release = threading.Event()

    class _SlowClient(_FakeClient):
        def search_recordings(self, query, *, limit=25):
            entered.set()
            release.wait(5)
            return super().search_recordings(query, limit=limit)

    cache = MemoryCacheStore()
    service = _service(_SlowClient(BEATLES_PAYLOAD), cache)

    async def _scenario():
        task = asyncio.create_task(service.search_async("The Beatles", "Come Together", 20))
        await asyncio.to_thread(entered.wait, 5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        release.set()

    asyncio.run(_scenario())
    cached = cache.get("search:the_beatles:come_together")
    assert cached is not None
    assert len(cached["results"]) == 3
    assert cached["search_terms"] == {"artist": "The Beatles", "song": "Come Together"}


RECORDING_PAYLOAD = {
    "id": RECORDING_ID,
    "title": "Come Together",
    "artist-credit": [{"name": "The Beatles", "artist": {"name": "The Beatles"}}],
    "relations": [
        {"type": "producer", "artist": {"name": "George Martin"}},
        {"type": "performance", "work": {"relations": [{"type": "writer", "artist": {"name": "John Lennon"}}]}},
    ],
}


def test_load_credits_strips_prefix_and_caches() -> None:
    client = _FakeClient(recording=RECORDING_PAYLOAD)
    service = _service(client)

    first = service.load_credits(f"mb-{RECORDING_ID.upper()}")
    assert first.cached is False
    assert first.recording_id == RECORDING_ID
    assert client.recording_calls == [RECORDING_ID]
    assert [c.name for c in first.credits.songwriters] == ["John Lennon"]
    assert [c.name for c in first.credits.producers] == ["George Martin"]

    second = service.load_credits(RECORDING_ID)
    assert second.cached is True
    assert second.credits == first.credits
    assert len(client.recording_calls) == 1
    assert second.to_dict()["credits"]["songwriters"][0]["name"] == "John Lennon"


@pytest.mark.parametrize("bad", ["", "mb-", "not-an-id", "mb-1234", None])
def test_load_credits_rejects_bad_ids(bad) -> None:
    client = _FakeClient(recording=RECORDING_PAYLOAD)
    with pytest.raises(InvalidIdentifier):
        _service(client).load_credits(bad)
    assert client.recording_calls == []


def test_load_credits_surfaces_upstream_errors() -> None:
    client = _FakeClient(recording=RateLimitExceeded())
    with pytest.raises(RateLimitExceeded):
        _service(client).load_credits(RECORDING_ID)


def test_clearing_one_namespace_keeps_the_other() -> None:
    client = _FakeClient(BEATLES_PAYLOAD, recording=RECORDING_PAYLOAD)
    service = _service(client)
    service.search("The Beatles", "Come Together", 20)
    service.load_credits(RECORDING_ID)

    assert service.clear_search_cache() == 1
    assert service.load_credits(RECORDING_ID).cached is True
    assert service.clear_credits_cache() == 1
    assert service.stats()["cache"]["entries"] == 0
    assert service.stats()["rate_gate"]["min_interval_seconds"] == 0


class _TimedResponse:
    status_code = 200
    headers: dict = {}

    def __init__(self, payload):
        self._payload = payload
        self.content = b"{}"

    def json(self):
        return self._payload


class _TimedSession:
    def __init__(self):
        self.spans = []
        self._lock = threading.Lock()

    def get(self, url, params=None, headers=None, timeout=None):
        start = time.monotonic()
        time.sleep(0.005)
        end = time.monotonic()
        with self._lock:
            self.spans.append((start, end))
            rid = f"rec-{len(self.spans)}"
        return _TimedResponse({"recordings": [{"id": rid, "title": "Song"}]})


def test_concurrent_searches_reach_upstream_one_interval_apart() -> None:
    interval = 0.05
    session = _TimedSession()
    client = MusicBrainzClient(session=session, rate_gate=RateGate(interval), base_url="https://mb.test")
    service = _service(client)

    with ThreadPoolExecutor(max_workers=5) as pool:
        responses = list(pool.map(lambda n: service.search(f"Artist {n}", "Song", 10), range(5)))

    assert all(response.total_count == 1 for response in responses)
    assert len(session.spans) == 5
    spans = sorted(session.spans)
    for (_, previous_end), (next_start, _) in zip(spans, spans[1:]):
        assert next_start - previous_end >= interval - 0.001
