import time
from threading import Lock
from typing import List, Set, Tuple

from songguesser import db, socketio
from .errors import GameError
from .lifecycle import phase_deadline, tick
from .store import get_room, server_now

# (room_id, timer kind, round index, deadline)
TimerKey = Tuple[int, str, int, float]

_scheduled_timer_keys: Set[TimerKey] = set()
_keys_lock = Lock()


def timer_specs(room, now: float, failsafe_grace: float = 3) -> List[Tuple[TimerKey, float]]:
    """Timers needed for the room's current phase as ``(key, delay)`` pairs.

    A playing round gets a second, failsafe timer that fires
    ``failsafe_grace`` seconds after the regular deadline.
    """
    deadline = phase_deadline(room)
    if deadline is None:
        return []
    round_idx = int(room.current_round_index or 0)
    specs = [((room.id, room.phase, round_idx, round(deadline, 3)), max(0.0, deadline - now))]
    if room.phase == 'playing':
        failsafe = deadline + failsafe_grace
        specs.append(((room.id, 'failsafe', round_idx, round(failsafe, 3)), max(0.0, failsafe - now)))
    return specs


def is_scheduled(key: TimerKey) -> bool:
    with _keys_lock:
        return key in _scheduled_timer_keys


def cancel_room_timers(room_id: int) -> int:
    """Drop every pending timer for a room; their workers abort on wake-up."""
    with _keys_lock:
        stale = {key for key in _scheduled_timer_keys if key[0] == room_id}
        _scheduled_timer_keys.difference_update(stale)
    return len(stale)


def schedule_phase_timer(app, room_code: str) -> None:
    """Schedule auto-advance for the current phase of the given room.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - Ensures a single timer per (room, phase, round, deadline)
    - An auto-skip moves the deadline, which yields a fresh timer
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return

    with app.app_context():
        room = get_room(room_code)
        if not room or room.status != 'playing' or not room.phase:
            return
        grace = float(app.config.get('FAILSAFE_GRACE_SEC', 3))
        specs = timer_specs(room, server_now(), grace)
        code, phase, round_idx = room.code, room.phase, int(room.current_round_index or 0)

    for key, delay in specs:
        with _keys_lock:
            if key in _scheduled_timer_keys:
                app.logger.info(f"[timer-skip] room={code} kind={key[1]} round={round_idx} already scheduled")
                continue
            _scheduled_timer_keys.add(key)
        app.logger.info(
            f"[timer-set] room={code} kind={key[1]} round={round_idx} delay={delay:.1f}s deadline={key[3]}"
        )
        if app.config.get('TESTING'):
            _worker(app, key, code, phase, round_idx, delay)
        else:
            socketio.start_background_task(_worker, app, key, code, phase, round_idx, delay)


def _sleep(app, key: TimerKey, delay: float) -> None:
    heartbeat = int(app.config.get('TIMER_HEARTBEAT_SEC', 0) or 0)
    if heartbeat <= 0:
        time.sleep(delay)
        return
    slept = 0.0
    while slept < delay:
        step = min(heartbeat, delay - slept)
        time.sleep(step)
        slept += step
        app.logger.info(f"[timer-heartbeat] room={key[0]} kind={key[1]} round={key[2]} remaining={max(0.0, delay - slept):.1f}s")


def _worker(app, key: TimerKey, room_code: str, expected_phase: str, expected_round: int, delay: float) -> None:
    _sleep(app, key, delay)
    with app.app_context():
        with _keys_lock:
            if key not in _scheduled_timer_keys:
                app.logger.info(f"[timer-abort] room={room_code} kind={key[1]} round={expected_round} cancelled")
                return
            _scheduled_timer_keys.discard(key)

        room = get_room(room_code)
        if room is None:
            return
        app.logger.info(
            f"[timer-fire] room={room_code} kind={key[1]} expected_phase={expected_phase} expected_round={expected_round} "
            f"actual_phase={room.phase} actual_round={room.current_round_index}"
        )
        if room.status != 'playing' or room.phase != expected_phase or room.current_round_index != expected_round:
            app.logger.info(f"[timer-abort] room={room_code} mismatch status/phase/round")
            return

        try:
            moved = tick(room_code, now=max(server_now(), key[3]), force=key[1] == 'failsafe')
        except GameError as exc:
            db.session.rollback()
            app.logger.error(f"[timer-error] room={room_code} kind={key[1]} round={expected_round} error={exc}")
            return
        finally:
            db.session.remove()

    if moved:
        schedule_phase_timer(app, room_code)
