"""Typed records for upstream candidates, scores, credits and responses."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any, TypedDict

_YEAR_RE = re.compile(r"^\s*(\d{4})")

UNKNOWN_YEAR = 9999


def parse_year(value: Any) -> int | None:
    """Return the leading four-digit year of an upstream date, or None."""
    match = _YEAR_RE.match(str(value or ""))
    if not match:
        return None
    return int(match.group(1))


@dataclass(frozen=True)
class ArtistCredit:
    name: str
    artist_id: str | None = None
    artist_name: str | None = None
    joinphrase: str = ""


@dataclass(frozen=True)
class Relationship:
    type: str
    artist_name: str
    attributes: tuple[str, ...] = ()


@dataclass(frozen=True)
class ReleaseCandidate:
    title: str
    id: str | None = None
    status: str | None = None
    primary_type: str | None = None
    secondary_types: frozenset[str] = frozenset()
    date: str | None = None
    artist_names: tuple[str, ...] = ()

    @property
    def year(self) -> int | None:
        return parse_year(self.date)


@dataclass(frozen=True)
class CandidateRecording:
    id: str
    title: str
    duration_seconds: int | None = None
    disambiguation: str | None = None
    artist_credits: tuple[ArtistCredit, ...] = ()
    releases: tuple[ReleaseCandidate, ...] = ()
    relationships: tuple[Relationship, ...] = ()


@dataclass(frozen=True)
class ScoredCandidate:
    recording: CandidateRecording
    score: int
    reasons: tuple[str, ...]
    best_release: ReleaseCandidate | None
    tie_break_year: int = UNKNOWN_YEAR
    artist_matched: bool = True

    @property
    def reason(self) -> str:
        return ", ".join(self.reasons)


@dataclass(frozen=True)
class Credit:
    name: str
    role: str
    attributes: str | None = None
    instrument: str | None = None


CREDIT_BUCKETS = ("songwriters", "producers", "musicians", "engineers", "miscellaneous")


@dataclass
class Credits:
    songwriters: list[Credit] = field(default_factory=list)
    producers: list[Credit] = field(default_factory=list)
    musicians: list[Credit] = field(default_factory=list)
    engineers: list[Credit] = field(default_factory=list)
    miscellaneous: list[Credit] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            bucket: [
                {key: value for key, value in asdict(credit).items() if value is not None}
                for credit in getattr(self, bucket)
            ]
            for bucket in CREDIT_BUCKETS
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "Credits":
        data = payload if isinstance(payload, dict) else {}
        buckets: dict[str, list[Credit]] = {}
        for bucket in CREDIT_BUCKETS:
            rows = data.get(bucket) or []
            buckets[bucket] = [
                Credit(
                    name=str(row.get("name") or ""),
                    role=str(row.get("role") or ""),
                    attributes=row.get("attributes"),
                    instrument=row.get("instrument"),
                )
                for row in rows
                if isinstance(row, dict)
            ]
        return cls(**buckets)


class SearchResult(TypedDict, total=False):
    id: str
    musicbrainz_id: str
    title: str
    artist: str
    album: str
    year: int | None
    release_date: str | None
    duration: int | None
    disambiguation: str | None
    credits: dict[str, list[dict[str, Any]]]
    priority_score: int
    scoring_reason: str
    source: str


@dataclass(frozen=True)
class SearchResponse:
    results: list[dict[str, Any]]
    total_count: int
    cached: bool
    artist_searched: str
    song_searched: str
    cache_ttl_seconds: int | None = None
    search_time_ms: int = 0
    fallback: bool = False
    source: str = "musicbrainz_enhanced"
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        if payload["message"] is None:
            payload.pop("message")
        return payload


@dataclass(frozen=True)
class CreditsResponse:
    credits: Credits
    recording_id: str
    cached: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "credits": self.credits.to_dict(),
            "recording_id": self.recording_id,
            "cached": self.cached,
        }
