import math
from typing import Mapping, NamedTuple, Optional, Tuple

from .matching import is_match

SCORING_MODES = ('normal', 'rapid', 'artist_only', 'song_only', 'lyrics_only')

TITLE_POINTS = 5
ARTIST_POINTS = 2


class ScoreResult(NamedTuple):
    points: int
    correct_title: bool
    correct_artist: bool

    @property
    def is_correct(self) -> bool:
        return self.correct_title or self.correct_artist


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_score(
    guess: Mapping[str, str],
    answer: Mapping[str, str],
    time_left: float,
    total_time: float,
    mode: str,
    is_sudden_death: bool = False,
) -> ScoreResult:
    """Score one guess against the round's answer.

    ``guess`` and ``answer`` carry ``title`` and ``artist`` keys. Callers
    clamp ``time_left`` to ``[0, total_time]``. Duel rounds award a flat
    point per correct field whatever the mode or clock says.
    """
    correct_title = is_match(guess.get('title') or '', answer.get('title') or '', False)
    correct_artist = is_match(guess.get('artist') or '', answer.get('artist') or '', True)

    points = 0.0
    if is_sudden_death:
        points = int(correct_title) + int(correct_artist)
    elif mode == 'artist_only':
        points = 1 if correct_artist else 0
    elif mode == 'song_only':
        points = 1 if correct_title else 0
    elif mode == 'lyrics_only':
        if correct_title:
            points += TITLE_POINTS
        if correct_artist:
            points += ARTIST_POINTS
    else:
        multiplier = 1.0
        if mode == 'rapid' and total_time > 0:
            multiplier = 1 + time_left / total_time
        if correct_title:
            points += TITLE_POINTS * multiplier
        if correct_artist:
            points += ARTIST_POINTS * multiplier

    return ScoreResult(_round_half_up(points), correct_title, correct_artist)


def time_taken_for(submitted_at: Optional[float], round_opened_at: Optional[float],
                   total_time: float) -> Tuple[float, float]:
    """Return ``(time_taken, time_left)`` for a submission, both within ``[0, total_time]``.

    Players who never submitted are treated as having used the whole round.
    """
    if submitted_at is not None and round_opened_at:
        taken = max(0.0, submitted_at - round_opened_at)
    else:
        taken = float(total_time)
    taken = min(float(total_time), taken)
    return taken, max(0.0, total_time - taken)
