import json
import random
from typing import Optional

from flask import current_app

from songguesser import db
from songguesser.models import RoundHistory, Song
from .errors import RoundNotActiveError, SecretNotFoundError
from .media import apply_song_at_index, ensure_preview, entry_at, lyrics_for, secret_at
from .scoring import ScoreResult, calculate_score, time_taken_for
from .store import commit_transition, increment_score, notify_room, require_room, server_now
from .sudden_death import top_up_duel_songs


def active_players(room) -> list:
    """Players who take part in the current round; only duelists during sudden death."""
    if room.is_sudden_death:
        duelist_ids = set(room.dueling_ids)
        return [p for p in room.players if p.id in duelist_ids]
    return list(room.players)


def _guess_record(player, result: ScoreResult, time_taken) -> dict:
    return {
        'user_id': player.id,
        'username': player.username,
        'avatar_url': player.avatar_url,
        'guess_title': player.last_guess_title or '',
        'guess_artist': player.last_guess_artist or '',
        'correct_title': result.correct_title,
        'correct_artist': result.correct_artist,
        'is_correct': result.is_correct,
        'points': result.points,
        'time_taken': time_taken,
    }


def _score_round(room, answer: dict) -> list:
    duel = room.is_sudden_death
    active_ids = {p.id for p in active_players(room)}
    total = room.round_time
    guesses = []
    for player in room.players:
        if player.id in active_ids:
            taken, left = time_taken_for(player.submitted_at, room.round_opened_at, total)
            result = calculate_score(
                {'title': player.last_guess_title, 'artist': player.last_guess_artist},
                answer, left, total, room.mode, is_sudden_death=duel,
            )
            increment_score(player.id, result.points, duel=duel)
        else:
            taken, result = None, ScoreResult(0, False, False)
        player.last_round_points = result.points
        player.last_round_correct_title = result.correct_title
        player.last_round_correct_artist = result.correct_artist
        player.last_round_time_taken = taken
        guesses.append(_guess_record(player, result, taken))
    return guesses


def _replacement_with_lyrics(room) -> Optional[Song]:
    used_ids = {entry.song_id for entry in room.playlist}
    used_keys = {song.dedupe_key() for song in room.songs if song.id in used_ids}
    pool = [s for s in room.songs if s.id not in used_ids and s.dedupe_key() not in used_keys]
    random.shuffle(pool)
    for song in pool:
        if lyrics_for(room, song):
            return song
    return None


def prepare_next_round(room, round_index: int) -> None:
    """Cache lyrics and repair the preview of the song played after ``round_index``."""
    next_index = round_index + 1
    lyrics_mode = room.mode == 'lyrics_only'

    if lyrics_mode and room.is_sudden_death:
        chunk = int(current_app.config.get('LYRICS_CHUNK_SIZE', 5))
        duel_round = round_index - (room.sudden_death_start_index or 0) + 1
        if duel_round % chunk == 0:
            for index in range(next_index, min(next_index + chunk, len(room.playlist))):
                secret = secret_at(room, index)
                song = db.session.get(Song, secret.song_id) if secret else None
                if song is not None:
                    lyrics_for(room, song)

    if next_index >= len(room.playlist):
        return
    secret = secret_at(room, next_index)
    song = db.session.get(Song, secret.song_id) if secret else None
    if song is None:
        return

    if lyrics_mode and not room.is_sudden_death and not lyrics_for(room, song):
        replacement = _replacement_with_lyrics(room)
        if replacement is None:
            current_app.logger.warning(f"[lyrics] room={room.code} round={next_index} no replacement with lyrics")
        else:
            current_app.logger.info(
                f"[lyrics] room={room.code} round={next_index} replaced song={song.id} with song={replacement.id}"
            )
            apply_song_at_index(room, next_index, replacement)
            song = replacement

    # lyrics rounds always re-resolve the preview
    ensure_preview(room, song, next_index, force=lyrics_mode)


def reveal_round(room_code: str, round_index: int, now: Optional[float] = None, force: bool = False) -> bool:
    """Score a round, reveal its answer and write its history record.

    Revealing an already revealed round is a no-op that reports success.
    A round whose timer is still running is refused unless ``force`` is set.
    Returns False when the transition could not be committed, which also
    happens to the loser of two concurrent reveals of the same round.
    """
    room = require_room(room_code)
    now = server_now() if now is None else now

    if RoundHistory.query.filter_by(room_id=room.id, round_index=round_index).first():
        current_app.logger.info(f"[reveal-skip] room={room.code} round={round_index} already revealed")
        return True
    if room.phase != 'playing' or room.current_round_index != round_index:
        raise RoundNotActiveError(f'Round {round_index} is not being played in room {room.code}')
    if not force and room.time_left(now):
        raise RoundNotActiveError(f'Round {round_index} in room {room.code} is still running')
    secret = secret_at(room, round_index)
    if secret is None:
        raise SecretNotFoundError(room.code, round_index)

    answer = {'title': secret.track_name, 'artist': secret.artist_name}
    guesses = _score_round(room, answer)

    room.answer = secret.song_item()
    entry = entry_at(room, round_index)
    if entry is not None:
        entry.reveal_from(secret)

    db.session.add(RoundHistory(
        room_id=room.id,
        round_index=round_index,
        payload=json.dumps({
            'round_index': round_index,
            'song_id': secret.song_id,
            'track_name': secret.track_name,
            'artist_name': secret.artist_name,
            'cover_url': secret.cover_url,
            'picked_by_user_id': secret.picked_by_user_id,
            'started_at': room.round_opened_at,
            'ended_at': now,
            'guesses': guesses,
            'is_sudden_death': room.is_sudden_death,
        }),
        created_at=now,
    ))

    room.phase = 'reveal'
    room.phase_started_at = now

    if room.is_sudden_death:
        top_up_duel_songs(room)
    prepare_next_round(room, round_index)

    if not commit_transition(room.code, 'reveal'):
        return False
    notify_room(room.code)
    correct = sum(1 for g in guesses if g['is_correct'])
    current_app.logger.info(
        f"[reveal] room={room.code} round={round_index} song={secret.song_id} correct={correct}/{len(guesses)}"
    )
    return True
