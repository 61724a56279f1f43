"""Cache key derivation.

The same normalization runs on the read and the write path, so queries that
differ only in case, punctuation or spacing share one entry.
"""

from __future__ import annotations

import re

from config.settings import MAX_TERM_LENGTH
from engine.errors import InputTooLong, InvalidCharacters, InvalidIdentifier

SEARCH_NAMESPACE = "search"
CREDITS_NAMESPACE = "credits"
KEY_SEPARATOR = ":"

_WHITESPACE_RE = re.compile(r"\s+")
_DISALLOWED_RE = re.compile(r"[^a-z0-9 ]")
_RECORDING_ID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def normalize_term(value) -> str:
    text = _WHITESPACE_RE.sub(" ", str(value or "").lower()).strip()
    text = _DISALLOWED_RE.sub("", text).strip()
    return _WHITESPACE_RE.sub("_", text)


def _checked_term(field: str, value) -> str:
    raw = str(value or "")
    if len(raw) > MAX_TERM_LENGTH:
        raise InputTooLong(field, MAX_TERM_LENGTH)
    normalized = normalize_term(raw)
    if KEY_SEPARATOR in normalized:
        raise InvalidCharacters(field)
    return normalized


def make_search_key(artist, song) -> str:
    normalized_artist = _checked_term("artist", artist)
    normalized_song = _checked_term("song", song)
    return KEY_SEPARATOR.join((SEARCH_NAMESPACE, normalized_artist, normalized_song))


def is_recording_id(value) -> bool:
    return bool(_RECORDING_ID_RE.match(str(value or "")))


def make_credits_key(recording_id) -> str:
    rid = str(recording_id or "").strip()
    if not is_recording_id(rid):
        raise InvalidIdentifier(rid[:64])
    return KEY_SEPARATOR.join((CREDITS_NAMESPACE, rid.lower()))


def namespace_prefix(namespace: str) -> str:
    return f"{namespace}{KEY_SEPARATOR}"
