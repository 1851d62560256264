"""Room store access: atomic commits, counter increments and notifications.

A transition stages every change on the session and then calls
``commit_transition`` once, so subscribers either see the whole batch or
none of it.
"""
import time

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from songguesser import db, socketio
from songguesser.models import Player, Room
from .errors import RoomNotFoundError


def server_now() -> float:
    return time.time()


def get_room(room_code):
    if not room_code:
        return None
    return Room.query.filter_by(code=str(room_code).upper()).first()


def require_room(room_code) -> Room:
    room = get_room(room_code)
    if room is None:
        raise RoomNotFoundError(room_code)
    return room


def increment_score(player_id: int, points: int, duel: bool = False) -> None:
    """Add points server-side, never from a possibly stale in-memory value."""
    if not points:
        return
    column = Player.sudden_death_score if duel else Player.score
    db.session.execute(
        update(Player).where(Player.id == player_id).values({column: column + points})
    )


def commit_transition(room_code: str, label: str) -> bool:
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[transition-failed] room={room_code} step={label} error={exc}")
        return False
    return True


def notify_room(room_code: str, event: str = 'state_update') -> None:
    socketio.emit(event, {'room_code': room_code}, to=f"room:{room_code}", namespace='/ws')
