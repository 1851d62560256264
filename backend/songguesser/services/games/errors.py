class GameError(Exception):
    """Base class for errors surfaced to API callers."""
    status_code = 400


class RoomNotFoundError(GameError):
    status_code = 404

    def __init__(self, room_code):
        super().__init__(f'Room {room_code} does not exist')
        self.room_code = room_code


class SecretNotFoundError(GameError):
    status_code = 404

    def __init__(self, room_code, round_index):
        super().__init__(f'No song stored for round {round_index} of room {room_code}')


class NoSongsError(GameError):
    def __init__(self):
        super().__init__('No songs available. Import a playlist first!')


class NoPlayersError(GameError):
    def __init__(self):
        super().__init__('No players found in room.')


class InvalidGuessError(GameError):
    pass


class PlayerNotFoundError(GameError):
    status_code = 404

    def __init__(self, player_id):
        super().__init__(f'Player {player_id} is not in this room')


class RoundNotActiveError(GameError):
    status_code = 409


class StoreWriteError(GameError):
    status_code = 503
