import os
import sys
import pytest

# Ensure the backend root (containing the `songguesser` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from songguesser import create_app, db, socketio
from songguesser.models import Player, Room, Song
from songguesser.services.tracks import ResolvedTrack


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    STARTING_DURATION_SEC = 3
    REVEAL_DURATION_SEC = 6
    VS_SCREEN_DURATION_SEC = 6
    AUTO_SKIP_GRACE_SEC = 3
    SUDDEN_DEATH_MIN_BATCH = 5
    LYRICS_PREFETCH_COUNT = 3
    LYRICS_CHUNK_SIZE = 5
    WAITING_ROOM_TTL_SEC = 3600
    FINISHED_ROOM_TTL_SEC = 600


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import songguesser.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')


@pytest.fixture(autouse=True)
def offline_collaborators(monkeypatch):
    """Keep lyrics and track lookups off the network; tests override as needed."""
    monkeypatch.setattr('songguesser.services.lyrics.fetch_lyrics', lambda artist, title: None)
    monkeypatch.setattr(
        'songguesser.services.tracks.resolve_track',
        lambda artist, title, duration_ms=None: ResolvedTrack(resolved=False),
    )


@pytest.fixture()
def make_room(flask_app):
    """Create a room whose players each contributed ``songs_each`` distinct songs."""
    def _make(code='ABCD', usernames=('alice', 'bob'), songs_each=3, status='waiting',
              preview_url='https://cdn.example.com/preview.mp3'):
        room = Room(code=code, status=status)
        db.session.add(room)
        db.session.flush()
        for username in usernames:
            player = Player(username=username, room_id=room.id)
            db.session.add(player)
            db.session.flush()
            for n in range(songs_each):
                db.session.add(Song(
                    room_id=room.id,
                    artist_name=f'{username.title()} Band',
                    track_name=f'{username.title()} Song {n}',
                    preview_url=preview_url,
                    picked_by_user_id=player.id,
                ))
        db.session.commit()
        return room
    return _make
