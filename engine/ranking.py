"""Priority scoring for upstream recording candidates.

Studio albums rank above singles, and both rank above compilations,
live albums and bootlegs. ``rank`` is pure: it reads the candidates and
returns new ``ScoredCandidate`` objects without touching the inputs.
"""

from __future__ import annotations

import re
from typing import Iterable

from engine.models import (
    UNKNOWN_YEAR,
    CandidateRecording,
    ReleaseCandidate,
    ScoredCandidate,
)
from engine.popularity import is_popular_artist, normalize_artist

ARTIST_MATCH_POINTS = 1000
NO_ARTIST_MATCH_SCORE = 50
NO_RELEASES_POINTS = 100
OFFICIAL_POINTS = 500
BOOTLEG_POINTS = -300
POPULAR_ARTIST_POINTS = 100
REMASTER_POINTS = -50

COMPILATION_KEYWORD_PENALTY = 200
YEAR_RANGE_PENALTY = 300
VOLUME_PENALTY = 100
LIVE_KEYWORD_PENALTY = 150

# Missing dates sort last when choosing a candidate's best release.
_BEST_RELEASE_MISSING_YEAR = 2099

_SECONDARY_TYPE_POINTS = (
    ("Compilation", 200, "Compilation album"),
    ("Live", 400, "Live album"),
)

_PRIMARY_TYPE_POINTS = {
    "Album": (800, "Studio album"),
    "Single": (600, "Single"),
    "EP": (400, "EP"),
    "Broadcast": (200, "Broadcast"),
}
_OTHER_TYPE_POINTS = 300

COMPILATION_KEYWORDS = (
    "greatest",
    "hits",
    "collection",
    "best",
    "compilation",
    "anthology",
    "essential",
    "ultimate",
    "complete",
    "selected",
    "classics",
    "definitive",
    "gold",
    "platinum",
    "singles",
    "rarities",
    "chronicles",
    "retrospective",
    "treasury",
    "legend",
    "very best",
)

LIVE_BOOTLEG_KEYWORDS = (
    "live",
    "concert",
    "bootleg",
    "unofficial",
    "demo",
    "rehearsal",
    "outtake",
    "alternate",
    "unreleased",
    "session",
    "bbc",
    "radio",
    "broadcast",
    "soundcheck",
)

_YEAR_RANGE_RE = re.compile(r"\d{4}-\d{4}")


def compilation_penalty(title) -> int:
    """Penalty points for compilation-looking release titles; keywords compound."""
    normalized = str(title or "").lower()
    if not normalized:
        return 0
    penalty = sum(COMPILATION_KEYWORD_PENALTY for keyword in COMPILATION_KEYWORDS if keyword in normalized)
    if _YEAR_RANGE_RE.search(normalized):
        penalty += YEAR_RANGE_PENALTY
    if "vol" in normalized or "volume" in normalized:
        penalty += VOLUME_PENALTY
    return penalty


def live_bootleg_penalty(title) -> int:
    normalized = str(title or "").lower()
    if not normalized:
        return 0
    return sum(LIVE_KEYWORD_PENALTY for keyword in LIVE_BOOTLEG_KEYWORDS if keyword in normalized)


def is_compilation(release: ReleaseCandidate) -> bool:
    return "Compilation" in release.secondary_types or compilation_penalty(release.title) > 0


def has_artist_match(recording: CandidateRecording, search_artist) -> bool:
    needle = normalize_artist(search_artist)
    if not needle:
        return True
    for credit in recording.artist_credits:
        if needle in (credit.name or "").lower() or needle in (credit.artist_name or "").lower():
            return True
    for release in recording.releases:
        for name in release.artist_names:
            if needle in (name or "").lower():
                return True
    return False


def _best_release_key(release: ReleaseCandidate):
    year = release.year
    return (
        release.status != "Official",
        release.primary_type != "Album",
        is_compilation(release),
        year if year is not None else _BEST_RELEASE_MISSING_YEAR,
        release.date or "",
    )


def select_best_release(releases: Iterable[ReleaseCandidate]) -> ReleaseCandidate | None:
    """Pick the release a recording is scored on: official, album, non-compilation, earliest."""
    ordered = sorted(releases, key=_best_release_key)
    return ordered[0] if ordered else None


def release_type_points(release: ReleaseCandidate) -> tuple[int, str]:
    for secondary, points, reason in _SECONDARY_TYPE_POINTS:
        if secondary in release.secondary_types:
            return points, reason
    primary = release.primary_type
    if primary in _PRIMARY_TYPE_POINTS:
        return _PRIMARY_TYPE_POINTS[primary]
    return _OTHER_TYPE_POINTS, f"Other ({primary or 'Unknown'})"


def earliest_year(releases: Iterable[ReleaseCandidate]) -> int:
    """Earliest plausible year across all releases, or 9999 when none parses."""
    years = [year for year in (release.year for release in releases) if year is not None and 1900 < year < 2100]
    return min(years) if years else UNKNOWN_YEAR


def score_candidate(recording: CandidateRecording, search_artist) -> ScoredCandidate:
    best_release = select_best_release(recording.releases)
    tie_break_year = earliest_year(recording.releases)

    if not has_artist_match(recording, search_artist):
        return ScoredCandidate(
            recording=recording,
            score=NO_ARTIST_MATCH_SCORE,
            reasons=("No artist match",),
            artist_matched=False,
            best_release=best_release,
            tie_break_year=tie_break_year,
        )

    score = ARTIST_MATCH_POINTS
    reasons = ["Artist match"]

    if best_release is None:
        score += NO_RELEASES_POINTS
        reasons.append("No releases")
        return ScoredCandidate(
            recording=recording,
            score=max(0, score),
            reasons=tuple(reasons),
            best_release=None,
            tie_break_year=tie_break_year,
        )

    if best_release.status == "Official":
        score += OFFICIAL_POINTS
        reasons.append("Official release")
    elif best_release.status == "Bootleg":
        score += BOOTLEG_POINTS
        reasons.append("Bootleg")

    type_points, type_reason = release_type_points(best_release)
    score += type_points
    reasons.append(type_reason)

    penalty = compilation_penalty(best_release.title)
    if penalty > 0:
        score -= penalty
        reasons.append(f"Compilation penalty (-{penalty})")

    penalty = live_bootleg_penalty(best_release.title)
    if penalty > 0:
        score -= penalty
        reasons.append(f"Live/bootleg penalty (-{penalty})")

    if is_popular_artist(search_artist):
        score += POPULAR_ARTIST_POINTS
        reasons.append("Popular artist")

    if "remaster" in (recording.disambiguation or "").lower():
        score += REMASTER_POINTS
        reasons.append("Remaster")

    return ScoredCandidate(
        recording=recording,
        score=max(0, score),
        reasons=tuple(reasons),
        best_release=best_release,
        tie_break_year=tie_break_year,
    )


def rank(candidates: Iterable[CandidateRecording], search_artist) -> list[ScoredCandidate]:
    """Score every candidate. Artist matches always come first, then highest
    score, then earliest year."""
    scored = [score_candidate(recording, search_artist) for recording in candidates]
    return sorted(scored, key=lambda item: (not item.artist_matched, -item.score, item.tie_break_year))


def explain(recording: CandidateRecording, search_artist) -> str:
    scored = score_candidate(recording, search_artist)
    year = "Unknown" if scored.tie_break_year == UNKNOWN_YEAR else str(scored.tie_break_year)
    return f"Score: {scored.score} | Reason: {scored.reason} | Year: {year}"
