"""Phase machine for a room: starting -> playing -> reveal -> (vs_screen) -> ...

Both the host endpoint and the background scheduler drive rooms through
``tick``; a tick that is not yet due, or whose commit fails, leaves the
room untouched so the next tick retries.
"""
from typing import Optional

from flask import current_app

from songguesser.models import Player
from .errors import GameError, InvalidGuessError, PlayerNotFoundError, StoreWriteError
from .reveal import active_players, reveal_round
from .store import commit_transition, notify_room, require_room, server_now
from .sudden_death import advance_duel, find_tie_group, finish_game, initiate_sudden_death

PHASE_DURATION_KEYS = {
    'starting': ('STARTING_DURATION_SEC', 3),
    'reveal': ('REVEAL_DURATION_SEC', 6),
    'vs_screen': ('VS_SCREEN_DURATION_SEC', 6),
}


def phase_durations() -> dict:
    cfg = current_app.config
    return {phase: int(cfg.get(key, default)) for phase, (key, default) in PHASE_DURATION_KEYS.items()}


def phase_deadline(room) -> Optional[float]:
    """Server time at which the room's current phase is due to end."""
    if room.status != 'playing':
        return None
    if room.phase == 'playing':
        if room.round_start_time is None:
            return None
        return room.round_start_time + room.round_time
    if room.phase in PHASE_DURATION_KEYS and room.phase_started_at is not None:
        return room.phase_started_at + phase_durations()[room.phase]
    return None


def start_round(room, now: float) -> None:
    room.phase = 'playing'
    room.round_start_time = now
    room.round_opened_at = now
    room.phase_started_at = now
    room.answer = None
    for player in room.players:
        player.reset_round()


def advance_after_reveal(room, now: float) -> None:
    if room.is_sudden_death:
        advance_duel(room, now)
        return

    next_index = room.current_round_index + 1
    if next_index < room.rounds and next_index < len(room.playlist):
        room.current_round_index = next_index
        start_round(room, now)
        return

    tied = find_tie_group(room.players, room.resolved_groups)
    if tied:
        initiate_sudden_death(room, tied, now)
    else:
        finish_game(room, now)


def tick(room_code: str, now: Optional[float] = None, force: bool = False) -> Optional[str]:
    """Perform the room's due phase transition.

    Returns the phase the room moved to, or None if nothing was due or the
    transition could not be saved. ``force`` ignores the deadline.
    """
    room = require_room(room_code)
    now = server_now() if now is None else now
    if room.status != 'playing' or room.phase in (None, 'finished'):
        return None
    deadline = phase_deadline(room)
    if not force and (deadline is None or now < deadline):
        return None

    previous = room.phase
    if previous == 'playing':
        if not reveal_round(room.code, room.current_round_index, now, force=force):
            return None
        return 'reveal'

    if previous in ('starting', 'vs_screen'):
        start_round(room, now)
    elif previous == 'reveal':
        advance_after_reveal(room, now)
    else:
        raise GameError(f'Unknown phase {previous}')

    if not commit_transition(room.code, previous):
        return None
    notify_room(room.code)
    current_app.logger.info(
        f"[tick] room={room.code} {previous} -> {room.phase} round={room.current_round_index}"
    )
    return room.phase


def maybe_auto_skip(room, now: float) -> bool:
    """Pull the round deadline in once every active player has submitted."""
    active = active_players(room)
    if not active or not all(p.has_submitted for p in active):
        return False
    grace = int(current_app.config.get('AUTO_SKIP_GRACE_SEC', 3))
    remaining = room.round_time - (now - room.round_start_time)
    if remaining <= grace:
        return False
    room.round_start_time = now - (room.round_time - grace)
    current_app.logger.info(f"[auto-skip] room={room.code} round={room.current_round_index} remaining={grace}s")
    return True


def submit_guess(room_code: str, player_id, title: str, artist: str, now: Optional[float] = None):
    room = require_room(room_code)
    now = server_now() if now is None else now
    player = Player.query.filter_by(id=player_id, room_id=room.id).first()
    if player is None:
        raise PlayerNotFoundError(player_id)
    if room.phase != 'playing':
        raise InvalidGuessError('Guesses are only accepted while a round is playing')
    if room.is_sudden_death and player.id not in room.dueling_ids:
        raise InvalidGuessError('Only duelists can guess during sudden death')
    if player.has_submitted:
        raise InvalidGuessError('You already submitted a guess this round')
    if room.time_left(now) == 0:
        raise InvalidGuessError('Time is up for this round')

    player.has_submitted = True
    player.last_guess_title = (title or '').strip()[:256]
    player.last_guess_artist = (artist or '').strip()[:256]
    player.submitted_at = now
    maybe_auto_skip(room, now)

    if not commit_transition(room.code, 'guess'):
        raise StoreWriteError('Could not record guess, try again')
    notify_room(room.code)
    return player
