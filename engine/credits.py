"""Sort contributor relationships into the five credit buckets."""

from __future__ import annotations

import logging

from engine.models import CandidateRecording, Credit, Credits, Relationship

logger = logging.getLogger(__name__)

PROVISIONAL_SONGWRITER_ROLE = "Performer (likely songwriter)"

_SONGWRITER_TERMS = ("composer", "lyricist", "writer")
_PRODUCER_TERMS = ("producer",)
_MUSICIAN_TERMS = ("performer", "vocal", "instrument")
_ENGINEER_TERMS = ("engineer", "mix", "master")


def _matches(role_type: str, terms) -> bool:
    return any(term in role_type for term in terms)


def _bucket_for(role_type: str) -> str:
    if _matches(role_type, _SONGWRITER_TERMS):
        return "songwriters"
    if _matches(role_type, _PRODUCER_TERMS):
        return "producers"
    if _matches(role_type, _MUSICIAN_TERMS):
        return "musicians"
    if _matches(role_type, _ENGINEER_TERMS):
        return "engineers"
    return "miscellaneous"


def _credit_from_relationship(relationship: Relationship, bucket: str) -> Credit:
    attributes = ", ".join(relationship.attributes) or None
    instrument = None
    if bucket == "musicians":
        instrument = attributes or relationship.type
    return Credit(
        name=relationship.artist_name,
        role=relationship.type or "Contributor",
        attributes=attributes,
        instrument=instrument,
    )


def _append_unique(bucket: list[Credit], credit: Credit) -> None:
    key = (credit.name, credit.role)
    if any((existing.name, existing.role) == key for existing in bucket):
        return
    bucket.append(credit)


def extract_credits(recording: CandidateRecording) -> Credits:
    """Build credits for a recording.

    Performers stand in as songwriters until the first explicit
    composer/lyricist/writer relationship is seen; from then on only explicit
    songwriters are kept.
    """
    credits = Credits()
    for artist_credit in recording.artist_credits:
        name = artist_credit.artist_name or artist_credit.name
        if not name:
            continue
        _append_unique(credits.musicians, Credit(name=name, role="Artist"))
        _append_unique(
            credits.songwriters,
            Credit(name=name, role=PROVISIONAL_SONGWRITER_ROLE, attributes="performer"),
        )

    found_songwriters = False
    for relationship in recording.relationships:
        if not relationship.artist_name:
            continue
        role_type = (relationship.type or "").lower()
        bucket = _bucket_for(role_type)
        if bucket == "songwriters" and not found_songwriters:
            credits.songwriters = []
            found_songwriters = True
        _append_unique(getattr(credits, bucket), _credit_from_relationship(relationship, bucket))

    if credits.songwriters:
        logger.debug(
            "[CREDITS] recording=%s songwriters=%s explicit=%s",
            recording.id,
            ",".join(credit.name for credit in credits.songwriters),
            found_songwriters,
        )
    else:
        logger.debug("[CREDITS] recording=%s songwriters=none", recording.id)
    return credits
