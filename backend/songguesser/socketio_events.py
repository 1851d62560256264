from flask_socketio import emit, join_room, leave_room

from songguesser import socketio


def _room_channel(data):
    room_code = (data or {}).get('room_code')
    if not room_code:
        emit('error', {'message': 'room_code is required'})
        return None
    return f"room:{room_code.upper()}"


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_join_room(data):
    channel = _room_channel(data)
    if channel is None:
        return
    join_room(channel)
    emit('joined', {'room': channel})


def handle_leave_room(data):
    channel = _room_channel(data)
    if channel is None:
        return
    leave_room(channel)
    emit('left', {'room': channel})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    for namespace in ('/ws', '/') if testing else ('/ws',):
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('join_room', handle_join_room, namespace=namespace)
        socketio.on_event('leave_room', handle_leave_room, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
