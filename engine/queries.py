import re

from engine.errors import EmptyQuery

_LUCENE_SPECIAL_RE = re.compile(r'[+\-&|!(){}\[\]^"~*?:\\/]')
_WHITESPACE_RE = re.compile(r"\s+")


def sanitize_lucene(text) -> str:
    """Drop Lucene operators so user text can only ever be a plain term."""
    cleaned = _LUCENE_SPECIAL_RE.sub(" ", str(text or ""))
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def _strict(artist, song):
    if artist:
        return f'recording:"{song}" AND artist:"{artist}"'
    return f'recording:"{song}"'


def _unquoted(artist, song):
    if artist:
        return f"recording:{song} AND artist:{artist}"
    return f"recording:{song}"


def _title_only(artist, song):
    if artist:
        return f'recording:"{song}"'
    return song


def _artist_strict(artist, song):
    return f'artist:"{artist}"'


def _artist_unquoted(artist, song):
    return f"artist:{artist}"


_SONG_STRATEGIES = (_strict, _unquoted, _title_only)
_ARTIST_ONLY_STRATEGIES = (_artist_strict, _artist_unquoted)


def build_search_queries(artist, song) -> list[str]:
    """Query formulations, strictest first. Callers stop at the first non-empty result."""
    clean_artist = sanitize_lucene(artist)
    clean_song = sanitize_lucene(song)
    if clean_song:
        strategies = _SONG_STRATEGIES
    elif clean_artist:
        strategies = _ARTIST_ONLY_STRATEGIES
    else:
        raise EmptyQuery()
    queries = []
    for strategy in strategies:
        query = strategy(clean_artist, clean_song)
        if query not in queries:
            queries.append(query)
    return queries
