import random
from collections import defaultdict
from typing import Dict, List, Optional

from flask import current_app

from songguesser import db
from songguesser.models import LyricsCache, PlaylistEntry, RoundHistory, RoundSecret, Song
from .errors import NoPlayersError, NoSongsError
from .media import lyrics_for
from .scoring import SCORING_MODES
from .store import require_room, server_now


def sanitize_settings(settings: Optional[dict]) -> dict:
    """Apply defaults and bounds to host-supplied game settings."""
    settings = settings or {}
    cfg = current_app.config
    try:
        rounds = int(settings.get('rounds') or cfg.get('DEFAULT_ROUNDS', 10))
    except (TypeError, ValueError):
        rounds = int(cfg.get('DEFAULT_ROUNDS', 10))
    try:
        round_time = int(settings.get('time') or cfg.get('DEFAULT_ROUND_TIME_SEC', 15))
    except (TypeError, ValueError):
        round_time = int(cfg.get('DEFAULT_ROUND_TIME_SEC', 15))
    mode = settings.get('mode')
    return {
        'rounds': max(1, min(rounds, int(cfg.get('MAX_ROUNDS', 50)))),
        'time': max(int(cfg.get('MIN_ROUND_TIME_SEC', 5)), min(round_time, int(cfg.get('MAX_ROUND_TIME_SEC', 30)))),
        'mode': mode if mode in SCORING_MODES else 'normal',
    }


def dedupe_songs(songs: List[Song]) -> List[Song]:
    """One random survivor per (artist, title) pair."""
    shuffled = random.sample(songs, len(songs))
    seen = set()
    unique = []
    for song in shuffled:
        key = song.dedupe_key()
        if key in seen:
            continue
        seen.add(key)
        unique.append(song)
    return unique


def build_playlist(unique_songs: List[Song], rounds: int) -> List[Song]:
    """Draw ``rounds`` songs round-robin across contributors, then shuffle.

    Every contributor gets a turn before anyone gets a second pick, so each
    importer's songs are represented about equally.
    """
    by_user: Dict[int, List[Song]] = defaultdict(list)
    unattributed = []
    for song in unique_songs:
        if song.picked_by_user_id is None:
            unattributed.append(song)
        else:
            by_user[song.picked_by_user_id].append(song)

    if not by_user:
        playlist = unique_songs[:rounds]
    else:
        for pool in by_user.values():
            random.shuffle(pool)
        user_ids = list(by_user)
        random.shuffle(user_ids)
        playlist = []
        while len(playlist) < rounds and any(by_user.values()):
            for uid in user_ids:
                if len(playlist) >= rounds:
                    break
                if by_user[uid]:
                    playlist.append(by_user[uid].pop())
        playlist.extend(unattributed[:rounds - len(playlist)])

    random.shuffle(playlist)
    return playlist


def _reset_room(room) -> None:
    room.playlist.clear()
    RoundSecret.query.filter_by(room_id=room.id).delete()
    RoundHistory.query.filter_by(room_id=room.id).delete()
    LyricsCache.query.filter_by(room_id=room.id).delete()
    for player in room.players:
        player.score = 0
        player.sudden_death_score = 0
        player.last_round_time_taken = None
        player.reset_round()
    # deletes must reach the database before the new rows reuse their keys
    db.session.flush()


def initialize_game(room_code: str, settings: Optional[dict], now: Optional[float] = None) -> List[Song]:
    """Build the playlist for a room and put it in the ``starting`` phase.

    Returns the full (unmasked) playlist, or an empty list when the room is
    already playing. Raises NoSongsError or NoPlayersError when the room
    cannot host a game.
    """
    room = require_room(room_code)
    if room.status == 'playing':
        current_app.logger.info(f"[start-skip] room={room.code} already playing")
        return []
    songs = list(room.songs)
    if not songs:
        raise NoSongsError()
    if not room.players:
        raise NoPlayersError()

    clean = sanitize_settings(settings)
    unique = dedupe_songs(songs)
    rounds = min(clean['rounds'], len(unique))
    playlist = build_playlist(unique, rounds)

    _reset_room(room)

    room.rounds = len(playlist)
    room.round_time = clean['time']
    room.mode = clean['mode']

    for index, song in enumerate(playlist):
        room.playlist.append(PlaylistEntry.masked(song, room.id, index))
        db.session.add(RoundSecret.from_song(song, room.id, index))

    room.status = 'playing'
    room.phase = 'starting'
    room.current_round_index = 0
    room.round_start_time = None
    room.round_opened_at = None
    room.phase_started_at = server_now() if now is None else now
    room.is_sudden_death = False
    room.dueling_ids = []
    room.sudden_death_start_index = None
    room.resolved_groups = []
    room.answer = None
    room.draw = False
    room.draw_ids = []
    room.ended_at = None

    if room.mode == 'lyrics_only':
        for song in playlist[:int(current_app.config.get('LYRICS_PREFETCH_COUNT', 3))]:
            lyrics_for(room, song)

    db.session.commit()
    current_app.logger.info(
        f"[start] room={room.code} rounds={room.rounds} time={room.round_time} mode={room.mode} pool={len(unique)}"
    )
    return playlist
