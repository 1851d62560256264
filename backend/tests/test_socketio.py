from songguesser import socketio
from songguesser.services.games.initializer import initialize_game
from songguesser.services.games.store import notify_room


def test_socket_connect_and_join(sio_client):
    assert sio_client.is_connected('/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'connected' for pkt in received)

    sio_client.emit('join_room', {'room_code': 'abcd'}, namespace='/ws')
    received = sio_client.get_received('/ws')
    joined = [pkt for pkt in received if pkt['name'] == 'joined']
    assert joined and joined[0]['args'][0] == {'room': 'room:ABCD'}


def test_join_requires_room_code(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('join_room', {}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'error' for pkt in received)


def test_ping_pong(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('ping', {'n': 1}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'pong' and pkt['args'][0] == {'n': 1} for pkt in received)


def test_subscribers_get_state_updates(flask_app, sio_client, make_room):
    room = make_room(code='ROOM')
    sio_client.emit('join_room', {'room_code': 'ROOM'}, namespace='/ws')
    sio_client.get_received('/ws')

    initialize_game(room.code, {'rounds': 2})
    notify_room(room.code)
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'state_update' and pkt['args'][0] == {'room_code': 'ROOM'} for pkt in received)


def test_leaving_stops_updates(flask_app, sio_client):
    sio_client.emit('join_room', {'room_code': 'ROOM'}, namespace='/ws')
    sio_client.emit('leave_room', {'room_code': 'ROOM'}, namespace='/ws')
    sio_client.get_received('/ws')
    notify_room('ROOM')
    assert not any(pkt['name'] == 'state_update' for pkt in sio_client.get_received('/ws'))


def test_other_rooms_are_not_notified(flask_app, sio_client):
    other = socketio.test_client(flask_app, namespace='/ws')
    other.emit('join_room', {'room_code': 'ELSE'}, namespace='/ws')
    sio_client.emit('join_room', {'room_code': 'ROOM'}, namespace='/ws')
    other.get_received('/ws')
    notify_room('ROOM')
    assert not any(pkt['name'] == 'state_update' for pkt in other.get_received('/ws'))
    other.disconnect(namespace='/ws')
