from functools import wraps

from flask import Blueprint, current_app, jsonify, request

from songguesser import db
from songguesser.services.games.errors import GameError
from songguesser.services.games.initializer import initialize_game
from songguesser.services.games.lifecycle import phase_durations, submit_guess, tick
from songguesser.services.games.reveal import reveal_round
from songguesser.services.games.scheduler import schedule_phase_timer
from songguesser.services.games.store import notify_room, require_room, server_now


game = Blueprint('game', __name__)


def _json_errors(view):
    """Map game errors to their status codes and anything else to a 500."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        try:
            return view(*args, **kwargs)
        except GameError as exc:
            db.session.rollback()
            return jsonify({'error': str(exc)}), exc.status_code
        except Exception as exc:
            db.session.rollback()
            current_app.logger.exception(f"[api-error] {request.path}")
            return jsonify({'error': str(exc) or 'Internal Server Error'}), 500
    return wrapper


def _schedule(room_code):
    schedule_phase_timer(current_app._get_current_object(), room_code)


@game.route('/start', methods=['POST'])
@_json_errors
def start_game():
    data = request.get_json(silent=True) or {}
    room_code = data.get('roomCode')
    if not room_code:
        return jsonify({'error': 'Missing roomCode'}), 400

    playlist = initialize_game(room_code, data.get('settings'))
    room = require_room(room_code)
    if playlist:
        notify_room(room.code)
        _schedule(room.code)
    return jsonify({'success': True, 'rounds': room.rounds, 'settings': room.settings})


@game.route('/reveal', methods=['POST'])
@_json_errors
def reveal():
    data = request.get_json(silent=True) or {}
    room_code = data.get('roomCode')
    round_index = data.get('roundIndex')
    if not room_code or round_index is None:
        return jsonify({'error': 'Missing roomCode or roundIndex'}), 400
    try:
        round_index = int(round_index)
    except (TypeError, ValueError):
        return jsonify({'error': 'roundIndex must be an integer'}), 400

    if not reveal_round(room_code, round_index):
        return jsonify({'success': False, 'error': 'Round could not be revealed, try again'}), 409
    _schedule(room_code)
    return jsonify({'success': True})


@game.route('/guess', methods=['POST'])
@_json_errors
def guess():
    data = request.get_json(silent=True) or {}
    room_code = data.get('roomCode')
    player_id = data.get('playerId')
    if not room_code or player_id is None:
        return jsonify({'error': 'Missing roomCode or playerId'}), 400

    player = submit_guess(room_code, player_id, data.get('title') or '', data.get('artist') or '')
    _schedule(room_code)
    return jsonify({'success': True, 'player': player.to_dict(include_guess=False)})


@game.route('/advance', methods=['POST'])
@_json_errors
def advance():
    data = request.get_json(silent=True) or {}
    room_code = data.get('roomCode')
    if not room_code:
        return jsonify({'error': 'Missing roomCode'}), 400

    phase = tick(room_code)
    if phase:
        _schedule(room_code)
    room = require_room(room_code)
    return jsonify({'success': True, 'advanced': phase is not None, 'phase': room.phase})


@game.route('/<string:room_code>/state', methods=['GET'])
@_json_errors
def get_state(room_code):
    room = require_room(room_code)
    payload = room.to_dict(now=server_now())
    payload['durations'] = phase_durations()
    return jsonify(payload)


@game.route('/<string:room_code>/history', methods=['GET'])
@_json_errors
def get_history(room_code):
    room = require_room(room_code)
    return jsonify([record.to_dict() for record in room.history])
