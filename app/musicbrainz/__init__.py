from app.musicbrainz.basic import basic_search
from app.musicbrainz.client import MusicBrainzClient, get_musicbrainz_client
from app.musicbrainz.parsing import parse_recording, parse_recordings

__all__ = [
    "MusicBrainzClient",
    "basic_search",
    "get_musicbrainz_client",
    "parse_recording",
    "parse_recordings",
]
