from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Iterable, Literal, Optional, Union

from .media import cached_lyrics

Phase = Literal["starting", "playing", "reveal", "vs_screen", "finished"]
PHASES = ("starting", "playing", "reveal", "vs_screen", "finished")


def tie_group_key(player_ids: Iterable[int]) -> str:
    return "|".join(str(pid) for pid in sorted(player_ids))


@dataclass
class NormalRound:
    phase: Phase
    current_round_index: int
    round_start_time: Optional[float]
    phase_started_at: Optional[float]
    playlist: list[dict] = field(default_factory=list)
    resolved_tie_groups: list[str] = field(default_factory=list)
    current_round_answer: Optional[dict] = None
    draw: bool = False
    draw_player_ids: list[int] = field(default_factory=list)
    ended_at: Optional[float] = None
    current_lyrics: Optional[str] = None

    is_sudden_death = False

    def to_dict(self) -> dict:
        data = asdict(self)
        data["is_sudden_death"] = self.is_sudden_death
        return data


@dataclass
class DuelRound(NormalRound):
    dueling_player_ids: list[int] = field(default_factory=list)
    sudden_death_start_index: int = 0

    is_sudden_death = True

    @property
    def group_key(self) -> str:
        return tie_group_key(self.dueling_player_ids)

    @property
    def duel_round_number(self) -> int:
        return self.current_round_index - self.sudden_death_start_index + 1


GameState = Union[NormalRound, DuelRound]


def current_lyrics_of(room) -> Optional[str]:
    """Cached snippet for the round being played, the clue in lyrics mode."""
    if room.mode != "lyrics_only" or room.phase in (None, "finished"):
        return None
    for entry in room.playlist:
        if entry.position == room.current_round_index:
            return cached_lyrics(room.id, entry.song_id)
    return None


def game_state_of(room) -> GameState:
    """Build the client-facing game state variant for a room."""
    common = dict(
        phase=room.phase,
        current_round_index=room.current_round_index,
        round_start_time=room.round_start_time,
        phase_started_at=room.phase_started_at,
        playlist=[entry.to_dict() for entry in room.playlist],
        resolved_tie_groups=room.resolved_groups,
        current_round_answer=room.answer,
        draw=room.draw,
        draw_player_ids=room.draw_ids,
        ended_at=room.ended_at,
        current_lyrics=current_lyrics_of(room),
    )
    if room.is_sudden_death:
        return DuelRound(
            dueling_player_ids=room.dueling_ids,
            sudden_death_start_index=room.sudden_death_start_index or 0,
            **common,
        )
    return NormalRound(**common)
