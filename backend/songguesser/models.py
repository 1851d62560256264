from songguesser import db
import json
import math
import string
import random
import time

MASK = '???'


def _loads(raw, default):
    if not raw:
        return default
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return default


def _dumps(value):
    return json.dumps(value) if value is not None else None


def generate_room_code(length=4):
    """Generate a unique, short room code."""
    while True:
        code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
        if not Room.query.filter_by(code=code).first():
            return code


class SongFields:
    """Columns shared by every representation of a SongItem."""
    song_id = db.Column(db.Integer, nullable=True)
    artist_name = db.Column(db.String(256), nullable=False, default='')
    track_name = db.Column(db.String(256), nullable=False, default='')
    cover_url = db.Column(db.String(512), nullable=False, default='')
    preview_url = db.Column(db.String(512), nullable=True)
    spotify_uri = db.Column(db.String(128), nullable=False, default='')
    picked_by_user_id = db.Column(db.Integer, nullable=True)

    def song_item(self):
        return {
            'id': self.song_id,
            'artist_name': self.artist_name,
            'track_name': self.track_name,
            'cover_url': self.cover_url,
            'preview_url': self.preview_url,
            'spotify_uri': self.spotify_uri,
            'picked_by_user_id': self.picked_by_user_id,
        }


class Room(db.Model):
    __tablename__ = 'room'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(8), unique=True, index=True)
    status = db.Column(db.String(16), default='waiting', nullable=False)  # waiting, playing, finished
    created_at = db.Column(db.Float, default=time.time, nullable=False)
    # Settings
    rounds = db.Column(db.Integer, default=10, nullable=False)
    round_time = db.Column(db.Integer, default=15, nullable=False)
    mode = db.Column(db.String(16), default='normal', nullable=False)
    # Game state
    phase = db.Column(db.String(16), nullable=True)  # starting, playing, reveal, vs_screen, finished
    current_round_index = db.Column(db.Integer, default=0, nullable=False)
    round_start_time = db.Column(db.Float, nullable=True)  # countdown anchor, moved back on auto-skip
    round_opened_at = db.Column(db.Float, nullable=True)  # when the round really opened, used for scoring
    phase_started_at = db.Column(db.Float, nullable=True)
    is_sudden_death = db.Column(db.Boolean, default=False, nullable=False)
    dueling_player_ids = db.Column(db.Text, nullable=True)  # JSON-encoded list of player ids
    sudden_death_start_index = db.Column(db.Integer, nullable=True)
    resolved_tie_groups = db.Column(db.Text, nullable=True)  # JSON-encoded list of "id|id" keys
    current_round_answer = db.Column(db.Text, nullable=True)
    draw = db.Column(db.Boolean, default=False, nullable=False)
    draw_player_ids = db.Column(db.Text, nullable=True)
    ended_at = db.Column(db.Float, nullable=True)

    players = db.relationship('Player', back_populates='room', order_by='Player.id',
                              cascade='all, delete-orphan')
    songs = db.relationship('Song', back_populates='room', order_by='Song.id',
                            cascade='all, delete-orphan')
    playlist = db.relationship('PlaylistEntry', back_populates='room', order_by='PlaylistEntry.position',
                               cascade='all, delete-orphan')
    secrets = db.relationship('RoundSecret', cascade='all, delete-orphan', lazy='dynamic')
    history = db.relationship('RoundHistory', cascade='all, delete-orphan', lazy='dynamic',
                              order_by='RoundHistory.round_index')
    lyrics = db.relationship('LyricsCache', cascade='all, delete-orphan', lazy='dynamic')

    def __init__(self, **kwargs):
        super(Room, self).__init__(**kwargs)
        if not self.code:
            self.code = generate_room_code()

    @property
    def dueling_ids(self):
        return _loads(self.dueling_player_ids, [])

    @dueling_ids.setter
    def dueling_ids(self, ids):
        self.dueling_player_ids = _dumps(list(ids)) if ids else None

    @property
    def resolved_groups(self):
        return _loads(self.resolved_tie_groups, [])

    @resolved_groups.setter
    def resolved_groups(self, groups):
        self.resolved_tie_groups = _dumps(list(groups))

    @property
    def answer(self):
        return _loads(self.current_round_answer, None)

    @answer.setter
    def answer(self, value):
        self.current_round_answer = _dumps(value)

    @property
    def draw_ids(self):
        return _loads(self.draw_player_ids, [])

    @draw_ids.setter
    def draw_ids(self, ids):
        self.draw_player_ids = _dumps(list(ids)) if ids else None

    @property
    def settings(self):
        return {'rounds': self.rounds, 'time': self.round_time, 'mode': self.mode}

    def time_left(self, now=None):
        if self.phase != 'playing' or self.round_start_time is None:
            return None
        now = time.time() if now is None else now
        return max(0, math.ceil(self.round_time - (now - self.round_start_time)))

    def to_dict(self, now=None):
        from songguesser.services.games.state import game_state_of
        from songguesser.services.games.sudden_death import final_standings

        hide_guesses = self.phase == 'playing'
        payload = {
            'id': self.id,
            'code': self.code,
            'status': self.status,
            'settings': self.settings,
            'players': [p.to_dict(include_guess=not hide_guesses) for p in self.players],
            'game_state': game_state_of(self).to_dict() if self.phase else None,
            'time_left': self.time_left(now),
        }
        if self.status == 'finished':
            payload['standings'] = [p.id for p in final_standings(self.players)]
        return payload


class Player(db.Model):
    __tablename__ = 'player'
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    username = db.Column(db.String(64), nullable=False)
    avatar_url = db.Column(db.String(512), nullable=True)
    joined_at = db.Column(db.Float, default=time.time, nullable=False)
    score = db.Column(db.Integer, default=0, nullable=False)
    sudden_death_score = db.Column(db.Integer, default=0, nullable=False)
    has_submitted = db.Column(db.Boolean, default=False, nullable=False)
    last_guess_title = db.Column(db.String(256), nullable=True)
    last_guess_artist = db.Column(db.String(256), nullable=True)
    submitted_at = db.Column(db.Float, nullable=True)
    last_round_points = db.Column(db.Integer, default=0, nullable=False)
    last_round_correct_title = db.Column(db.Boolean, default=False, nullable=False)
    last_round_correct_artist = db.Column(db.Boolean, default=False, nullable=False)
    last_round_time_taken = db.Column(db.Float, nullable=True)
    room = db.relationship('Room', back_populates='players')

    def reset_round(self):
        self.has_submitted = False
        self.last_guess_title = None
        self.last_guess_artist = None
        self.submitted_at = None
        self.last_round_points = 0
        self.last_round_correct_title = False
        self.last_round_correct_artist = False

    def to_dict(self, include_guess=True):
        data = {
            'id': self.id,
            'username': self.username,
            'avatar_url': self.avatar_url,
            'score': self.score,
            'sudden_death_score': self.sudden_death_score,
            'has_submitted': self.has_submitted,
            'last_round_points': self.last_round_points,
            'last_round_correct_title': self.last_round_correct_title,
            'last_round_correct_artist': self.last_round_correct_artist,
            'last_round_time_taken': self.last_round_time_taken,
        }
        if include_guess:
            data['last_guess'] = {
                'title': self.last_guess_title or '',
                'artist': self.last_guess_artist or '',
            }
        return data


class Song(db.Model):
    """A song contributed to a room's pool by one of its players."""
    __tablename__ = 'song'
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    artist_name = db.Column(db.String(256), nullable=False)
    track_name = db.Column(db.String(256), nullable=False)
    cover_url = db.Column(db.String(512), nullable=False, default='')
    preview_url = db.Column(db.String(512), nullable=True)
    spotify_uri = db.Column(db.String(128), nullable=False, default='')
    picked_by_user_id = db.Column(db.Integer, nullable=True)
    room = db.relationship('Room', back_populates='songs')

    def dedupe_key(self):
        return f"{self.artist_name.lower().strip()}|{self.track_name.lower().strip()}"

    def song_item(self):
        return {
            'id': self.id,
            'artist_name': self.artist_name,
            'track_name': self.track_name,
            'cover_url': self.cover_url,
            'preview_url': self.preview_url,
            'spotify_uri': self.spotify_uri,
            'picked_by_user_id': self.picked_by_user_id,
        }


class PlaylistEntry(SongFields, db.Model):
    """Client-visible playlist slot; answer fields stay masked until reveal."""
    __tablename__ = 'playlist_entry'
    __table_args__ = (db.UniqueConstraint('room_id', 'position', name='uq_playlist_room_position'),)
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    revealed = db.Column(db.Boolean, default=False, nullable=False)
    room = db.relationship('Room', back_populates='playlist')

    @classmethod
    def masked(cls, song, room_id, position):
        return cls(
            room_id=room_id,
            position=position,
            song_id=song.id,
            picked_by_user_id=song.picked_by_user_id,
            preview_url=song.preview_url,
            artist_name=MASK,
            track_name=MASK,
            cover_url='',
            spotify_uri='',
        )

    def mask_from(self, song):
        self.song_id = song.id
        self.picked_by_user_id = song.picked_by_user_id
        self.preview_url = song.preview_url
        self.artist_name = MASK
        self.track_name = MASK
        self.cover_url = ''
        self.spotify_uri = ''
        self.revealed = False

    def reveal_from(self, secret):
        self.artist_name = secret.artist_name
        self.track_name = secret.track_name
        self.cover_url = secret.cover_url or ''
        self.spotify_uri = secret.spotify_uri or ''
        self.preview_url = secret.preview_url
        self.revealed = True

    def to_dict(self):
        data = self.song_item()
        data['position'] = self.position
        data['revealed'] = self.revealed
        return data


class RoundSecret(SongFields, db.Model):
    """Full song for a round, server-side only."""
    __tablename__ = 'round_secret'
    __table_args__ = (db.UniqueConstraint('room_id', 'round_index', name='uq_secret_room_round'),)
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    round_index = db.Column(db.Integer, nullable=False)

    @classmethod
    def from_song(cls, song, room_id, round_index):
        secret = cls(room_id=room_id, round_index=round_index)
        secret.copy_from(song)
        return secret

    def copy_from(self, song):
        self.song_id = song.id
        self.artist_name = song.artist_name
        self.track_name = song.track_name
        self.cover_url = song.cover_url or ''
        self.preview_url = song.preview_url
        self.spotify_uri = song.spotify_uri or ''
        self.picked_by_user_id = song.picked_by_user_id


class RoundHistory(db.Model):
    __tablename__ = 'round_history'
    __table_args__ = (db.UniqueConstraint('room_id', 'round_index', name='uq_history_room_round'),)
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    round_index = db.Column(db.Integer, nullable=False)
    payload = db.Column(db.Text, nullable=False)  # JSON-encoded round record
    created_at = db.Column(db.Float, default=time.time, nullable=False)

    def to_dict(self):
        return _loads(self.payload, {})


class LyricsCache(db.Model):
    __tablename__ = 'lyrics_cache'
    __table_args__ = (db.UniqueConstraint('room_id', 'song_id', name='uq_lyrics_room_song'),)
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    song_id = db.Column(db.Integer, nullable=False)
    lyrics = db.Column(db.Text, nullable=False)
