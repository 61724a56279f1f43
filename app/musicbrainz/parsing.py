"""Turn MusicBrainz recording JSON into candidate records.

Malformed entries are skipped and missing fields default, so scoring never
sees a half-shaped payload.
"""

from __future__ import annotations

import logging
from typing import Any

from engine.models import ArtistCredit, CandidateRecording, Relationship, ReleaseCandidate

logger = logging.getLogger(__name__)


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _safe_int(value: Any, default=None):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if isinstance(item, str) and item.strip()]


def parse_artist_credits(artist_credit: Any) -> tuple[ArtistCredit, ...]:
    if not isinstance(artist_credit, list):
        return ()
    credits = []
    for part in artist_credit:
        if not isinstance(part, dict):
            continue
        artist = part.get("artist") if isinstance(part.get("artist"), dict) else {}
        name = _text(part.get("name")) or _text(artist.get("name"))
        if not name:
            continue
        credits.append(
            ArtistCredit(
                name=name,
                artist_id=_text(artist.get("id")),
                artist_name=_text(artist.get("name")),
                joinphrase=str(part.get("joinphrase") or ""),
            )
        )
    return tuple(credits)


def parse_release(payload: Any) -> ReleaseCandidate | None:
    if not isinstance(payload, dict):
        return None
    group = payload.get("release-group") if isinstance(payload.get("release-group"), dict) else {}
    secondary = _string_list(payload.get("secondary-types")) or _string_list(group.get("secondary-types"))
    artist_names = tuple(credit.name for credit in parse_artist_credits(payload.get("artist-credit")))
    return ReleaseCandidate(
        id=_text(payload.get("id")),
        title=_text(payload.get("title")) or "",
        status=_text(payload.get("status")),
        primary_type=_text(payload.get("primary-type")) or _text(group.get("primary-type")),
        secondary_types=frozenset(secondary),
        date=(
            _text(payload.get("first-release-date"))
            or _text(payload.get("date"))
            or _text(group.get("first-release-date"))
        ),
        artist_names=artist_names,
    )


def _relationship(relation: dict[str, Any]) -> Relationship | None:
    artist = relation.get("artist") if isinstance(relation.get("artist"), dict) else None
    name = _text(artist.get("name")) if artist else None
    if not name:
        return None
    return Relationship(
        type=_text(relation.get("type")) or "",
        artist_name=name,
        attributes=tuple(_string_list(relation.get("attributes"))),
    )


def parse_relationships(relations: Any) -> tuple[Relationship, ...]:
    """Artist relationships of a recording, plus the artist relationships of
    any work it is a performance of (composer and lyricist credits live there)."""
    if not isinstance(relations, list):
        return ()
    parsed = []
    for relation in relations:
        if not isinstance(relation, dict):
            continue
        direct = _relationship(relation)
        if direct:
            parsed.append(direct)
            continue
        work = relation.get("work")
        if isinstance(work, dict):
            for nested in work.get("relations") or []:
                if isinstance(nested, dict):
                    work_credit = _relationship(nested)
                    if work_credit:
                        parsed.append(work_credit)
    return tuple(parsed)


def parse_recording(payload: Any) -> CandidateRecording | None:
    if not isinstance(payload, dict):
        return None
    recording_id = _text(payload.get("id"))
    if not recording_id:
        return None
    length_ms = _safe_int(payload.get("length"))
    releases = tuple(
        release
        for release in (parse_release(item) for item in payload.get("releases") or [])
        if release is not None
    )
    return CandidateRecording(
        id=recording_id,
        title=_text(payload.get("title")) or "",
        duration_seconds=length_ms // 1000 if length_ms and length_ms > 0 else None,
        disambiguation=_text(payload.get("disambiguation")),
        artist_credits=parse_artist_credits(payload.get("artist-credit")),
        releases=releases,
        relationships=parse_relationships(payload.get("relations")),
    )


def parse_recordings(payload: Any) -> list[CandidateRecording]:
    rows = payload.get("recordings", []) if isinstance(payload, dict) else []
    recordings = []
    skipped = 0
    for row in rows or []:
        recording = parse_recording(row)
        if recording is None:
            skipped += 1
            continue
        recordings.append(recording)
    if skipped:
        logger.debug("[MUSICBRAINZ] skipped %s malformed recordings", skipped)
    return recordings
