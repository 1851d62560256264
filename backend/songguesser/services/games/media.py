"""Just-in-time lyrics caching and preview URL repair for scheduled songs."""
from typing import Optional

from flask import current_app

from songguesser import db
from songguesser.models import LyricsCache, PlaylistEntry, RoundSecret, Song
from songguesser.services import lyrics, tracks


def is_valid_preview(url) -> bool:
    return isinstance(url, str) and url.strip().lower().startswith(('http://', 'https://'))


def cached_lyrics(room_id: int, song_id: int) -> Optional[str]:
    row = LyricsCache.query.filter_by(room_id=room_id, song_id=song_id).first()
    return row.lyrics if row else None


def lyrics_for(room, song: Song) -> Optional[str]:
    """Cached snippet for a song, fetching and caching it on first use."""
    cached = cached_lyrics(room.id, song.id)
    if cached:
        return cached
    snippet = lyrics.fetch_lyrics(song.artist_name, song.track_name)
    if snippet:
        db.session.add(LyricsCache(room_id=room.id, song_id=song.id, lyrics=snippet))
    return snippet


def secret_at(room, index: int):
    return RoundSecret.query.filter_by(room_id=room.id, round_index=index).first()


def entry_at(room, index: int):
    return PlaylistEntry.query.filter_by(room_id=room.id, position=index).first()


def apply_song_at_index(room, index: int, song: Song) -> None:
    """Schedule a different song for an unplayed round, keeping it masked."""
    secret = secret_at(room, index)
    if secret is None:
        db.session.add(RoundSecret.from_song(song, room.id, index))
    else:
        secret.copy_from(song)
    entry = entry_at(room, index)
    if entry is None:
        room.playlist.append(PlaylistEntry.masked(song, room.id, index))
    else:
        entry.mask_from(song)


def ensure_preview(room, song: Song, index: Optional[int] = None, force: bool = False) -> Song:
    """Re-resolve a song's preview when it is missing, invalid, or ``force`` is set.

    The corrected URL is written to the pool song and, for a scheduled round,
    to its secret and playlist entry. A masked entry only ever receives the
    preview URL since audio has to play before the answer is revealed.
    """
    if not force and is_valid_preview(song.preview_url):
        return song

    result = tracks.resolve_track(song.artist_name, song.track_name)
    if not result.resolved or not result.preview_url:
        current_app.logger.info(f"[preview] room={room.code} song={song.id} unresolved")
        return song

    song.preview_url = result.preview_url
    if result.canonical_id:
        song.spotify_uri = result.canonical_id

    if index is not None:
        secret = secret_at(room, index)
        if secret is not None and secret.song_id == song.id:
            secret.preview_url = song.preview_url
            if result.canonical_id:
                secret.spotify_uri = result.canonical_id
        entry = entry_at(room, index)
        if entry is not None and entry.song_id == song.id:
            entry.preview_url = song.preview_url
            if entry.revealed and result.canonical_id:
                entry.spotify_uri = result.canonical_id
    return song
