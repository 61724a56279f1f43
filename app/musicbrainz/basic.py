"""Unranked recording search used when the ranked path is unavailable."""

from __future__ import annotations

import logging
from typing import Any

from app.musicbrainz.client import RECORDING_ENDPOINT, MusicBrainzClient
from config import settings
from engine.models import parse_year

logger = logging.getLogger(__name__)

BASIC_INCLUDES = "artist-credits+releases"


def _artist_credit_text(artist_credit: Any) -> str:
    if not isinstance(artist_credit, list):
        return ""
    parts: list[str] = []
    for part in artist_credit:
        if isinstance(part, str):
            parts.append(part)
            continue
        if isinstance(part, dict):
            name = part.get("name")
            if isinstance(name, str) and name.strip():
                parts.append(name.strip())
            join = part.get("joinphrase")
            if isinstance(join, str) and join:
                parts.append(join)
    return "".join(parts).strip()


def _basic_result(recording: dict[str, Any]) -> dict[str, Any] | None:
    recording_id = recording.get("id")
    if not recording_id:
        return None
    releases = [item for item in recording.get("releases") or [] if isinstance(item, dict)]
    first_release = releases[0] if releases else {}
    length = recording.get("length")
    return {
        "id": f"mb-{recording_id}",
        "musicbrainz_id": recording_id,
        "title": recording.get("title") or "",
        "artist": _artist_credit_text(recording.get("artist-credit")) or "Unknown Artist",
        "album": first_release.get("title") or "Unknown Album",
        "year": parse_year(first_release.get("date")),
        "duration": int(length) // 1000 if isinstance(length, int) and length > 0 else None,
        "disambiguation": recording.get("disambiguation"),
        "source": "musicbrainz_basic",
    }


def basic_search(client: MusicBrainzClient, query: str, *, limit: int = 20) -> list[dict[str, Any]]:
    """One plain query, upstream order preserved, no scoring."""
    payload = client.get_json(
        RECORDING_ENDPOINT,
        params={
            "query": query,
            "limit": max(1, min(int(limit), settings.MAX_UPSTREAM_FETCH)),
            "inc": BASIC_INCLUDES,
        },
    )
    results = []
    for row in payload.get("recordings") or []:
        if not isinstance(row, dict):
            continue
        result = _basic_result(row)
        if result:
            results.append(result)
    logger.info("[MUSICBRAINZ] basic_search results=%s query=%s", len(results), query)
    return results
