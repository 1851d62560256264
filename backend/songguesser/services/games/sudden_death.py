import random
from collections import defaultdict
from typing import Iterable, List, NamedTuple, Optional

from flask import current_app

from songguesser import db
from songguesser.models import PlaylistEntry, RoundSecret, Song
from .media import lyrics_for
from .state import tie_group_key

WIN_MARGIN = 2


class DuelOutcome(NamedTuple):
    resolved: bool
    leader_id: Optional[int]
    lead: int


def _points(player, duel: bool) -> int:
    return (player.sudden_death_score if duel else player.score) or 0


def find_tie_group(players, resolved_groups: Iterable[str] = (), duel: bool = False) -> List[int]:
    """Sorted ids of the players sharing the top score, or [] if there is no new tie.

    Only first place is considered; a group whose key is already in
    ``resolved_groups`` never counts again.
    """
    players = list(players)
    if len(players) < 2:
        return []
    top = max(_points(p, duel) for p in players)
    ids = sorted(p.id for p in players if _points(p, duel) == top)
    if len(ids) < 2 or tie_group_key(ids) in set(resolved_groups):
        return []
    return ids


def duel_outcome(duelists) -> DuelOutcome:
    """Apply the win-by-2 rule to the current duel scores."""
    ranked = sorted(duelists, key=lambda p: _points(p, True), reverse=True)
    if len(ranked) < 2:
        return DuelOutcome(True, ranked[0].id if ranked else None, 0)
    scores = [_points(p, True) for p in ranked]
    lead = scores[0] - scores[1]
    rest = scores[1:]
    rest_tied = len(rest) > 1 and len(set(rest)) != len(rest)
    return DuelOutcome(lead >= WIN_MARGIN and not rest_tied, ranked[0].id, lead)


def final_standings(players) -> list:
    """Main score first; the duel score breaks ties it settled."""
    return sorted(players, key=lambda p: (-(p.score or 0), -(p.sudden_death_score or 0), p.username))


def batch_size(duelist_count: int) -> int:
    return max(2 * duelist_count, int(current_app.config.get('SUDDEN_DEATH_MIN_BATCH', 5)))


def low_water_mark(duelist_count: int) -> int:
    return max(2, 2 * duelist_count)


def _round_robin(pools: dict, order: List[int]) -> List[Song]:
    pools = {uid: list(songs) for uid, songs in pools.items()}
    merged = []
    while any(pools.get(uid) for uid in order):
        for uid in order:
            if pools.get(uid):
                merged.append(pools[uid].pop())
    return merged


def select_duel_songs(room, duelist_ids: List[int], count: int) -> List[Song]:
    """Pick unplayed songs for a duel, preferring the duelists' own picks.

    Falls back to the rest of the room's pool when the duelists run dry. In
    lyrics mode a song only qualifies once a lyrics snippet is cached for it.
    """
    used_ids = {entry.song_id for entry in room.playlist}
    used_keys = {song.dedupe_key() for song in room.songs if song.id in used_ids}
    available = [s for s in room.songs if s.id not in used_ids and s.dedupe_key() not in used_keys]

    own = defaultdict(list)
    others = []
    for song in available:
        if song.picked_by_user_id in duelist_ids:
            own[song.picked_by_user_id].append(song)
        else:
            others.append(song)
    for pool in own.values():
        random.shuffle(pool)
    order = list(duelist_ids)
    random.shuffle(order)
    random.shuffle(others)

    require_lyrics = room.mode == 'lyrics_only'
    selected = []
    seen = set()
    for song in _round_robin(own, order) + others:
        if len(selected) >= count:
            break
        key = song.dedupe_key()
        if key in seen:
            continue
        if require_lyrics and not lyrics_for(room, song):
            continue
        seen.add(key)
        selected.append(song)

    random.shuffle(selected)
    return selected


def append_songs(room, songs: List[Song]) -> int:
    """Append songs to the playlist as masked entries; returns the first new index."""
    start = len(room.playlist)
    for offset, song in enumerate(songs):
        room.playlist.append(PlaylistEntry.masked(song, room.id, start + offset))
        db.session.add(RoundSecret.from_song(song, room.id, start + offset))
    return start


def finish_game(room, now: float, draw_ids: Optional[List[int]] = None) -> None:
    room.status = 'finished'
    room.phase = 'finished'
    room.phase_started_at = now
    room.ended_at = now
    room.is_sudden_death = False
    room.dueling_ids = []
    room.draw = bool(draw_ids)
    room.draw_ids = draw_ids or []
    current_app.logger.info(f"[finish] room={room.code} round={room.current_round_index} draw={room.draw}")


def initiate_sudden_death(room, tied_ids: List[int], now: float) -> bool:
    """Stage a new duel for ``tied_ids``; finishes the game if no song is left."""
    songs = select_duel_songs(room, tied_ids, batch_size(len(tied_ids)))
    if not songs:
        current_app.logger.warning(f"[sudden-death] room={room.code} no songs left for group={tie_group_key(tied_ids)}")
        finish_game(room, now, draw_ids=tied_ids)
        return False

    start = append_songs(room, songs)
    room.is_sudden_death = True
    room.dueling_ids = tied_ids
    room.sudden_death_start_index = start
    room.current_round_index = start
    room.phase = 'vs_screen'
    room.phase_started_at = now
    room.round_start_time = None
    room.round_opened_at = None
    room.answer = None
    for player in room.players:
        player.reset_round()
        if player.id in tied_ids:
            player.sudden_death_score = 0
    current_app.logger.info(
        f"[sudden-death] room={room.code} group={tie_group_key(tied_ids)} songs={len(songs)} start={start}"
    )
    return True


def top_up_duel_songs(room) -> int:
    """Append more duel songs once fewer than the low-water mark remain."""
    duelist_ids = room.dueling_ids
    if not room.is_sudden_death or not duelist_ids:
        return 0
    remaining = len(room.playlist) - (room.current_round_index + 1)
    if remaining >= low_water_mark(len(duelist_ids)):
        return 0
    songs = select_duel_songs(room, duelist_ids, batch_size(len(duelist_ids)))
    if songs:
        append_songs(room, songs)
        current_app.logger.info(f"[sudden-death] room={room.code} topped up {len(songs)} songs")
    return len(songs)


def advance_duel(room, now: float) -> None:
    """Settle, extend or chain the running duel after a reveal."""
    duelist_ids = room.dueling_ids
    duelists = [p for p in room.players if p.id in duelist_ids]
    outcome = duel_outcome(duelists)

    if outcome.resolved:
        resolved = room.resolved_groups
        key = tie_group_key(duelist_ids)
        if key not in resolved:
            resolved.append(key)
        room.resolved_groups = resolved
        current_app.logger.info(f"[sudden-death] room={room.code} group={key} won by player={outcome.leader_id}")
        next_group = find_tie_group(room.players, resolved)
        if next_group:
            initiate_sudden_death(room, next_group, now)
        else:
            finish_game(room, now)
        return

    next_index = room.current_round_index + 1
    if next_index >= len(room.playlist):
        top_up_duel_songs(room)
    if next_index >= len(room.playlist):
        top = max(_points(p, True) for p in duelists)
        finish_game(room, now, draw_ids=sorted(p.id for p in duelists if _points(p, True) == top))
        return

    room.current_round_index = next_index
    room.phase = 'vs_screen'
    room.phase_started_at = now
    room.round_start_time = None
    room.round_opened_at = None
