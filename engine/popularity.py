POPULAR_ARTISTS = frozenset(
    {
        "the beatles",
        "queen",
        "led zeppelin",
        "pink floyd",
        "david bowie",
        "bob dylan",
        "prince",
        "michael jackson",
        "madonna",
        "elvis presley",
        "the rolling stones",
        "radiohead",
        "nirvana",
        "u2",
        "the who",
        "ac/dc",
    }
)


def normalize_artist(value) -> str:
    return str(value or "").lower().strip()


def is_popular_artist(artist) -> bool:
    normalized = normalize_artist(artist)
    if not normalized:
        return False
    return normalized in POPULAR_ARTISTS
