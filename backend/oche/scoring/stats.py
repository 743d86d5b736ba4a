from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from oche.scoring.game import LoggedThrow, Match, PlayerLegState


def three_dart_average(total_points: int, total_throws: int) -> float:
    if total_throws == 0:
        return 0.0
    return (total_points / total_throws) * 3.0


@dataclass(frozen=True)
class SetStats:
    set_number: int
    total_throws: int
    total_points: int
    won_set: bool

    @property
    def average_3_dart(self) -> float:
        return three_dart_average(self.total_points, self.total_throws)


@dataclass(frozen=True)
class PlayerStats:
    player_index: int
    user_id: int
    total_throws: int
    total_points: int
    busts: int
    legs_won: int
    sets_won: int
    highest_turn: int
    count_180: int
    set_stats: tuple[SetStats, ...]

    @property
    def average_3_dart(self) -> float:
        return three_dart_average(self.total_points, self.total_throws)


@dataclass(frozen=True)
class GameStatistics:
    match_id: int
    total_sets_played: int
    players: tuple[PlayerStats, ...]


@dataclass(frozen=True)
class CareerStats:
    user_id: int
    total_games: int
    wins: int
    total_points: int
    total_throws: int

    @property
    def average_3_dart(self) -> float:
        return three_dart_average(self.total_points, self.total_throws)


def _scored(entries: Iterable[LoggedThrow]) -> int:
    # The dart that busts a turn scores nothing; every dart still counts as thrown.
    return sum(e.throw.value for e in entries if not e.bust)


def _set_winners(
    throw_log: Sequence[LoggedThrow], players: Sequence[PlayerLegState]
) -> dict[int, int]:
    """
    Map set number -> index of the player who took it.

    A set goes to whoever won its last leg. Every set but the latest one in the
    log is over; the latest counts only once that player's `sets_won` includes it.
    """
    last_checkout: dict[int, int] = {}
    for e in throw_log:
        if e.checkout:
            last_checkout[e.set_number] = e.player_index

    set_numbers = sorted({e.set_number for e in throw_log})
    winners = {s: last_checkout[s] for s in set_numbers[:-1] if s in last_checkout}

    if set_numbers and set_numbers[-1] in last_checkout:
        latest = set_numbers[-1]
        index = last_checkout[latest]
        credited = sum(1 for w in winners.values() if w == index)
        if players[index].sets_won > credited:
            winners[latest] = index
    return winners


def _turn_totals(entries: Sequence[LoggedThrow]) -> list[int]:
    totals: dict[int, int] = {}
    busted: set[int] = set()
    for e in entries:
        totals[e.turn_number] = totals.get(e.turn_number, 0) + e.throw.value
        if e.bust:
            busted.add(e.turn_number)
    return [0 if n in busted else t for n, t in totals.items()]


def _accumulate(
    player_index: int,
    user_id: int,
    throw_log: Sequence[LoggedThrow],
    set_numbers: Sequence[int],
    set_winners: dict[int, int],
) -> PlayerStats:
    mine = [e for e in throw_log if e.player_index == player_index]

    set_stats = []
    for set_number in set_numbers:
        in_set = [e for e in mine if e.set_number == set_number]
        set_stats.append(
            SetStats(
                set_number=set_number,
                total_throws=len(in_set),
                total_points=_scored(in_set),
                won_set=set_winners.get(set_number) == player_index,
            )
        )

    turn_totals = _turn_totals(mine)
    return PlayerStats(
        player_index=player_index,
        user_id=user_id,
        total_throws=sum(s.total_throws for s in set_stats),
        total_points=sum(s.total_points for s in set_stats),
        busts=sum(1 for e in mine if e.bust),
        legs_won=sum(1 for e in mine if e.checkout),
        sets_won=sum(1 for s in set_stats if s.won_set),
        highest_turn=max(turn_totals, default=0),
        count_180=sum(1 for t in turn_totals if t == 180),
        set_stats=tuple(set_stats),
    )


def compute(
    throw_log: Sequence[LoggedThrow], players: Sequence[PlayerLegState]
) -> tuple[PlayerStats, ...]:
    """
    Per-player statistics, broken down by set, from a match's throw log.

    A pure function of its inputs: the same log always yields the same numbers.
    Every player gets an entry for every set played, even sets they never threw in.
    """
    set_numbers = sorted({e.set_number for e in throw_log})
    winners = _set_winners(throw_log, players)
    return tuple(
        _accumulate(i, p.user_id, throw_log, set_numbers, winners) for i, p in enumerate(players)
    )


def compute_game_statistics(match: Match) -> GameStatistics:
    players = compute(match.throw_log, match.players)
    return GameStatistics(
        match_id=match.id,
        total_sets_played=len({e.set_number for e in match.throw_log}),
        players=players,
    )


def compute_career(user_id: int, matches: Iterable[Match]) -> CareerStats:
    """
    Aggregate a user's finished matches. Unfinished matches and matches the
    user did not play in are ignored.
    """
    total_games = 0
    wins = 0
    total_points = 0
    total_throws = 0

    for m in matches:
        if not m.is_finished or user_id not in m.user_ids:
            continue
        total_games += 1
        if m.winner_id == user_id:
            wins += 1
        mine = [e for e in m.throw_log if e.user_id == user_id]
        total_points += _scored(mine)
        total_throws += len(mine)

    return CareerStats(
        user_id=user_id,
        total_games=total_games,
        wins=wins,
        total_points=total_points,
        total_throws=total_throws,
    )
