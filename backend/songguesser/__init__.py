from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
allowed_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Import and register blueprints here
    from songguesser.main import main
    flask_app.register_blueprint(main)

    from songguesser.api.game import game
    flask_app.register_blueprint(game, url_prefix='/api/game')

    # Register Socket.IO event handlers
    from songguesser.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database with a demo room."""
        from songguesser.models import Room, Player, Song
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            room = Room(code='DEMO')
            db.session.add(room)
            db.session.flush()
            demo = {
                'alice': [('Kendrick Lamar', 'Alright'), ('SZA', 'Good Days'), ('Frank Ocean', 'Nights')],
                'bob': [('Daft Punk', 'One More Time'), ('Beyoncé', 'Halo'), ('Drake', 'Passionfruit')],
            }
            for username, picks in demo.items():
                player = Player(username=username, room_id=room.id)
                db.session.add(player)
                db.session.flush()
                for artist, title in picks:
                    db.session.add(Song(
                        room_id=room.id,
                        artist_name=artist,
                        track_name=title,
                        picked_by_user_id=player.id,
                    ))

            db.session.commit()
            print('Database has been reset and seeded with room DEMO!')

    @click.command('cleanup-rooms')
    def cleanup_rooms_command():
        """Deletes expired waiting and finished rooms."""
        from songguesser.services.games.cleanup import cleanup_rooms
        with flask_app.app_context():
            deleted = cleanup_rooms()
            print(f'Deleted {len(deleted)} expired rooms')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(cleanup_rooms_command)

    return flask_app
