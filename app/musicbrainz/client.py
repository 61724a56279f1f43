import logging
import threading
from typing import Any
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config import settings
from engine.errors import RateLimitExceeded, UpstreamUnavailable
from engine.rate_gate import RateGate, get_rate_gate

logger = logging.getLogger(__name__)

RECORDING_ENDPOINT = "/ws/2/recording"
SEARCH_INCLUDES = "releases+release-groups+artist-credits+artist-rels+work-rels+recording-rels"
CREDITS_INCLUDES = "artist-credits+artist-rels+work-rels+work-level-rels+recording-rels"

# MusicBrainz answers 503 when a client exceeds its request allowance.
_RATE_LIMIT_STATUSES = frozenset({429, 503})


def _retry_after_seconds(response) -> int:
    raw = response.headers.get("Retry-After") if response is not None else None
    try:
        return max(1, int(float(raw)))
    except (TypeError, ValueError):
        return settings.RETRY_AFTER_SECONDS


class MusicBrainzClient:
    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        rate_gate: RateGate | None = None,
        base_url: str = settings.MUSICBRAINZ_BASE_URL,
        user_agent: str = settings.MUSICBRAINZ_USER_AGENT,
        timeout_seconds: float = settings.MUSICBRAINZ_TIMEOUT_SECONDS,
        credits_timeout_seconds: float = settings.MUSICBRAINZ_CREDITS_TIMEOUT_SECONDS,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self.user_agent = user_agent
        self.timeout_seconds = timeout_seconds
        self.credits_timeout_seconds = credits_timeout_seconds
        self.rate_gate = rate_gate or get_rate_gate()
        if session is None:
            session = requests.Session()
            # Connection failures only; throttling and 5xx answers are never retried here.
            retry = Retry(
                total=2,
                connect=2,
                read=0,
                status=0,
                other=0,
                backoff_factor=0.4,
                allowed_methods=frozenset({"GET"}),
            )
            adapter = HTTPAdapter(max_retries=retry)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self._session = session

    def _request(self, endpoint: str, params: dict[str, Any], timeout: float) -> dict[str, Any]:
        url = urljoin(self.base_url, endpoint.lstrip("/"))
        try:
            resp = self._session.get(
                url,
                params=params,
                headers={"User-Agent": self.user_agent, "Accept": "application/json"},
                timeout=timeout,
            )
        except requests.Timeout as exc:
            logger.warning("[MUSICBRAINZ] request=%s status=timeout", endpoint)
            raise UpstreamUnavailable(f"MusicBrainz request timed out after {timeout:.0f}s") from exc
        except requests.RequestException as exc:
            logger.warning("[MUSICBRAINZ] request=%s status=error error=%s", endpoint, exc)
            raise UpstreamUnavailable(f"MusicBrainz request failed: {exc}") from exc

        status = int(resp.status_code)
        logger.info("[MUSICBRAINZ] request=%s status=%s", endpoint, status)
        if status in _RATE_LIMIT_STATUSES:
            raise RateLimitExceeded(retry_after=_retry_after_seconds(resp))
        if status != 200:
            raise UpstreamUnavailable(f"MusicBrainz request failed ({status})")
        try:
            payload = resp.json() if resp.content else {}
        except ValueError as exc:
            raise UpstreamUnavailable("MusicBrainz returned malformed JSON") from exc
        if not isinstance(payload, dict):
            raise UpstreamUnavailable("MusicBrainz returned an unexpected payload")
        return payload

    def get_json(self, endpoint: str, *, params: dict[str, Any] | None = None, timeout: float | None = None) -> dict[str, Any]:
        query = dict(params or {})
        query.setdefault("fmt", "json")
        return self.rate_gate.call(self._request, endpoint, query, timeout or self.timeout_seconds)

    def search_recordings(self, query: str, *, limit: int = 25) -> dict[str, Any]:
        return self.get_json(
            RECORDING_ENDPOINT,
            params={
                "query": query,
                "limit": max(1, min(int(limit), settings.MAX_UPSTREAM_FETCH)),
                "inc": SEARCH_INCLUDES,
            },
        )

    def get_recording(self, recording_id: str) -> dict[str, Any]:
        return self.get_json(
            f"{RECORDING_ENDPOINT}/{recording_id}",
            params={"inc": CREDITS_INCLUDES},
            timeout=self.credits_timeout_seconds,
        )


_CLIENT: MusicBrainzClient | None = None
_CLIENT_LOCK = threading.Lock()


def get_musicbrainz_client() -> MusicBrainzClient:
    global _CLIENT
    if _CLIENT is not None:
        return _CLIENT
    with _CLIENT_LOCK:
        if _CLIENT is None:
            _CLIENT = MusicBrainzClient()
    return _CLIENT
