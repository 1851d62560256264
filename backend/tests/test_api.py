from songguesser import db
from songguesser.models import Room
from songguesser.services.games.media import secret_at


def test_index(client):
    res = client.get('/')
    assert res.status_code == 200
    assert res.get_json()['status'] == 'ok'


def test_start_requires_room_code(client):
    res = client.post('/api/game/start', json={'settings': {}})
    assert res.status_code == 400
    assert 'error' in res.get_json()


def test_start_unknown_room(client):
    res = client.post('/api/game/start', json={'roomCode': 'NOPE', 'settings': {}})
    assert res.status_code == 404
    assert 'NOPE' in res.get_json()['error']


def test_start_without_songs(client, flask_app):
    db.session.add(Room(code='EMPT'))
    db.session.commit()
    res = client.post('/api/game/start', json={'roomCode': 'EMPT', 'settings': {}})
    assert res.status_code == 400
    assert 'No songs' in res.get_json()['error']


def test_start_and_state(client, make_room):
    make_room(code='ROOM', songs_each=3)
    res = client.post('/api/game/start', json={'roomCode': 'room', 'settings': {'rounds': 10, 'time': 20}})
    assert res.status_code == 200
    body = res.get_json()
    assert body['success'] is True
    assert body['rounds'] == 6
    assert body['settings'] == {'rounds': 6, 'time': 20, 'mode': 'normal'}

    state = client.get('/api/game/ROOM/state').get_json()
    assert state['status'] == 'playing'
    assert state['game_state']['phase'] == 'starting'
    assert state['game_state']['is_sudden_death'] is False
    assert len(state['game_state']['playlist']) == 6
    assert all(e['track_name'] == '???' for e in state['game_state']['playlist'])
    assert state['durations'] == {'starting': 3, 'reveal': 6, 'vs_screen': 6}

    again = client.post('/api/game/start', json={'roomCode': 'ROOM', 'settings': {'rounds': 1}})
    assert again.status_code == 200
    assert again.get_json()['rounds'] == 6


def test_state_unknown_room(client):
    assert client.get('/api/game/NOPE/state').status_code == 404


def test_reveal_validation(client, make_room):
    make_room(code='ROOM')
    assert client.post('/api/game/reveal', json={'roomCode': 'ROOM'}).status_code == 400
    assert client.post('/api/game/reveal', json={'roomCode': 'ROOM', 'roundIndex': 'x'}).status_code == 400
    assert client.post('/api/game/reveal', json={'roomCode': 'NOPE', 'roundIndex': 0}).status_code == 404


def test_play_a_round_over_http(client, make_room):
    room = make_room(code='ROOM')
    client.post('/api/game/start', json={'roomCode': 'ROOM', 'settings': {'rounds': 2}})

    adv = client.post('/api/game/advance', json={'roomCode': 'ROOM'}).get_json()
    assert adv['advanced'] is False
    assert adv['phase'] == 'starting'

    # move the clock past the intro
    room.phase_started_at -= 10
    db.session.commit()
    adv = client.post('/api/game/advance', json={'roomCode': 'ROOM'}).get_json()
    assert adv['advanced'] is True
    assert adv['phase'] == 'playing'

    alice = room.players[0]
    secret = secret_at(room, 0)
    res = client.post('/api/game/guess', json={
        'roomCode': 'ROOM', 'playerId': alice.id, 'title': secret.track_name, 'artist': secret.artist_name,
    })
    assert res.status_code == 200
    assert res.get_json()['player']['has_submitted'] is True
    dup = client.post('/api/game/guess', json={'roomCode': 'ROOM', 'playerId': alice.id, 'title': 'a'})
    assert dup.status_code == 400

    # run the round clock out
    room.round_start_time -= 60
    db.session.commit()
    res = client.post('/api/game/reveal', json={'roomCode': 'ROOM', 'roundIndex': 0})
    assert res.status_code == 200
    assert res.get_json() == {'success': True}

    state = client.get('/api/game/ROOM/state').get_json()
    assert state['game_state']['phase'] == 'reveal'
    assert state['game_state']['current_round_answer']['track_name'] == secret.track_name
    assert state['players'][0]['score'] == 7

    history = client.get('/api/game/ROOM/history').get_json()
    assert len(history) == 1
    assert history[0]['round_index'] == 0
    assert {g['user_id'] for g in history[0]['guesses']} == {p.id for p in room.players}


def test_early_reveal_is_refused(client, make_room):
    room = make_room(code='ROOM')
    client.post('/api/game/start', json={'roomCode': 'ROOM', 'settings': {'rounds': 2, 'time': 30}})
    room.phase_started_at -= 10
    db.session.commit()
    client.post('/api/game/advance', json={'roomCode': 'ROOM'})

    res = client.post('/api/game/reveal', json={'roomCode': 'ROOM', 'roundIndex': 0})
    assert res.status_code == 409
    assert 'still running' in res.get_json()['error']

    state = client.get('/api/game/ROOM/state').get_json()
    assert state['game_state']['phase'] == 'playing'
    assert state['game_state']['current_round_answer'] is None
    assert state['game_state']['playlist'][0]['track_name'] == '???'


def test_lyrics_round_state_carries_snippet(client, make_room, monkeypatch):
    monkeypatch.setattr('songguesser.services.lyrics.fetch_lyrics', lambda artist, title: f'lyric line for {title}')
    room = make_room(code='ROOM')
    client.post('/api/game/start', json={'roomCode': 'ROOM', 'settings': {'rounds': 2, 'mode': 'lyrics_only'}})
    room.phase_started_at -= 10
    db.session.commit()
    client.post('/api/game/advance', json={'roomCode': 'ROOM'})

    secret = secret_at(room, 0)
    game_state = client.get('/api/game/ROOM/state').get_json()['game_state']
    assert game_state['phase'] == 'playing'
    assert game_state['current_lyrics'] == f'lyric line for {secret.track_name}'


def test_normal_round_state_has_no_lyrics(client, make_room):
    make_room(code='ROOM')
    client.post('/api/game/start', json={'roomCode': 'ROOM', 'settings': {'rounds': 2}})
    assert client.get('/api/game/ROOM/state').get_json()['game_state']['current_lyrics'] is None


def test_guess_requires_player(client, make_room):
    make_room(code='ROOM')
    res = client.post('/api/game/guess', json={'roomCode': 'ROOM'})
    assert res.status_code == 400


def test_unexpected_errors_return_500(client, make_room, monkeypatch):
    make_room(code='ROOM')

    def boom(*args, **kwargs):
        raise RuntimeError('store offline')

    monkeypatch.setattr('songguesser.api.game.initialize_game', boom)
    res = client.post('/api/game/start', json={'roomCode': 'ROOM', 'settings': {}})
    assert res.status_code == 500
    assert res.get_json() == {'error': 'store offline'}


def test_cron_cleanup(client, flask_app, make_room):
    room = make_room(code='OLD1')
    room.created_at -= 7200
    db.session.commit()
    make_room(code='NEW1')

    res = client.get('/api/cron/cleanup')
    assert res.status_code == 200
    assert res.get_json()['deleted'] == ['OLD1']
    assert Room.query.filter_by(code='OLD1').first() is None
    assert Room.query.filter_by(code='NEW1').first() is not None


def test_cron_cleanup_checks_secret(client, flask_app):
    flask_app.config['CRON_SECRET'] = 's3cret'
    assert client.get('/api/cron/cleanup').status_code == 401
    res = client.get('/api/cron/cleanup', headers={'Authorization': 'Bearer s3cret'})
    assert res.status_code == 200
