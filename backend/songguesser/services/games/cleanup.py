from typing import List, Optional

from flask import current_app
from sqlalchemy import and_, func, or_

from songguesser import db
from songguesser.models import Room
from .scheduler import cancel_room_timers
from .store import commit_transition, notify_room, server_now


def expired_rooms(now: float) -> List[Room]:
    cfg = current_app.config
    waiting_cutoff = now - int(cfg.get('WAITING_ROOM_TTL_SEC', 3600))
    finished_cutoff = now - int(cfg.get('FINISHED_ROOM_TTL_SEC', 600))
    return Room.query.filter(or_(
        and_(Room.status == 'waiting', Room.created_at < waiting_cutoff),
        and_(Room.status == 'finished', func.coalesce(Room.ended_at, Room.created_at) < finished_cutoff),
    )).all()


def cleanup_rooms(now: Optional[float] = None) -> List[str]:
    """Delete stale waiting rooms and long-finished games; returns their codes."""
    now = server_now() if now is None else now
    rooms = expired_rooms(now)
    if not rooms:
        return []

    codes = []
    for room in rooms:
        cancel_room_timers(room.id)
        codes.append(room.code)
        db.session.delete(room)

    if not commit_transition(','.join(codes), 'cleanup'):
        return []
    for code in codes:
        notify_room(code, 'room_deleted')
    current_app.logger.info(f"[cleanup] deleted {len(codes)} rooms: {', '.join(codes)}")
    return codes
