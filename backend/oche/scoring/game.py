from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Sequence

from oche.scoring.errors import (
    InvalidSettingsError,
    InvalidThrowError,
    MatchFinishedError,
    NotYourTurnError,
)

DARTS_PER_TURN = 3
BULL = 25


@dataclass(frozen=True)
class Throw:
    """
    A single dart.

    - segment: 1-20 for standard beds, 25 for bull, 0 for a miss
    - multiplier: 1 (single), 2 (double), 3 (triple); a miss is always 1
    """

    segment: int
    multiplier: int = 1

    def __post_init__(self) -> None:
        if self.multiplier not in (1, 2, 3):
            raise InvalidThrowError("multiplier must be 1, 2, or 3")

        if self.segment == 0:
            if self.multiplier != 1:
                raise InvalidThrowError("a miss must have multiplier=1")
            return

        if self.segment not in (*range(1, 21), BULL):
            raise InvalidThrowError("segment must be 1-20, 25 (bull), or 0 (miss)")

        if self.segment == BULL and self.multiplier == 3:
            raise InvalidThrowError("bull cannot be a triple")

    @property
    def value(self) -> int:
        return self.segment * self.multiplier

    @property
    def is_double(self) -> bool:
        return self.multiplier == 2 and self.segment != 0


class MatchStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    FINISHED = "FINISHED"


class TurnOutcome(str, Enum):
    CONTINUE = "CONTINUE"
    BUST = "BUST"
    CHECKOUT = "CHECKOUT"
    TURN_COMPLETE = "TURN_COMPLETE"


@dataclass(frozen=True)
class MatchSettings:
    starting_points: int = 501
    best_of_sets: int = 1
    double_out: bool = False
    # 1 means every checkout wins the set outright.
    best_of_legs: int = 1

    def __post_init__(self) -> None:
        if self.starting_points <= 1:
            raise InvalidSettingsError("starting_points must be > 1")
        if self.best_of_sets <= 0:
            raise InvalidSettingsError("best_of_sets must be > 0")
        if self.best_of_legs <= 0:
            raise InvalidSettingsError("best_of_legs must be > 0")

    @property
    def sets_to_win(self) -> int:
        return (self.best_of_sets + 1) // 2

    @property
    def legs_to_win_set(self) -> int:
        return (self.best_of_legs + 1) // 2


@dataclass(frozen=True)
class Turn:
    """
    One visit to the oche: up to 3 darts for the player at `player_index`.
    """

    player_index: int
    throws: tuple[Throw, ...] = field(default_factory=tuple)
    is_bust: bool = False

    @property
    def throw_number(self) -> int:
        return len(self.throws)

    @property
    def points_scored(self) -> int:
        if self.is_bust:
            return 0
        return sum(t.value for t in self.throws)


@dataclass(frozen=True)
class PlayerLegState:
    user_id: int
    current_points: int
    sets_won: int = 0
    legs_won_in_set: int = 0


@dataclass(frozen=True)
class LoggedThrow:
    """
    One entry of a match's append-only throw log.

    `bust` marks the dart that busted its turn, `checkout` the dart that won a leg.
    `remaining_after` is the player's provisional score after the dart (the
    pre-turn score again when the dart busted).
    """

    set_number: int
    leg_number: int
    turn_number: int
    player_index: int
    user_id: int
    throw: Throw
    bust: bool = False
    checkout: bool = False
    remaining_after: int = 0


@dataclass(frozen=True)
class Match:
    id: int
    settings: MatchSettings
    players: tuple[PlayerLegState, ...]
    current_turn: Turn
    status: MatchStatus = MatchStatus.IN_PROGRESS
    winner_id: int | None = None
    throw_log: tuple[LoggedThrow, ...] = field(default_factory=tuple)
    set_number: int = 1
    leg_number: int = 1  # within the current set
    legs_completed: int = 0
    turn_number: int = 1
    last_outcome: TurnOutcome | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None

    @property
    def is_finished(self) -> bool:
        return self.status == MatchStatus.FINISHED

    @property
    def current_player(self) -> PlayerLegState:
        return self.players[self.current_turn.player_index]

    @property
    def remaining(self) -> int:
        """
        The acting player's provisional score, with this turn's darts subtracted.
        """
        return self.current_player.current_points - self.current_turn.points_scored

    @property
    def user_ids(self) -> tuple[int, ...]:
        return tuple(p.user_id for p in self.players)


def new_match(
    match_id: int,
    settings: MatchSettings,
    user_ids: Sequence[int],
    *,
    max_players: int = 4,
    created_at: datetime | None = None,
) -> Match:
    """
    Build a fresh match with players in the given order, player 0 on the oche.
    """
    ids = tuple(user_ids)
    if not 1 <= len(ids) <= max_players:
        raise InvalidSettingsError(f"a match needs between 1 and {max_players} players")
    if len(set(ids)) != len(ids):
        raise InvalidSettingsError("player ids must be distinct")

    return Match(
        id=match_id,
        settings=settings,
        players=tuple(PlayerLegState(user_id=uid, current_points=settings.starting_points) for uid in ids),
        current_turn=Turn(player_index=0),
        created_at=created_at or datetime.now(timezone.utc),
    )


def apply_throw(
    turn: Turn, throw: Throw, current_points: int, *, double_out: bool
) -> tuple[Turn, TurnOutcome]:
    """
    Add one dart to a turn.

    `current_points` is the player's committed score from before the turn; the
    darts already in the turn are subtracted from it here. Returns the extended
    turn (flagged as bust when applicable) and what happens next.

    Bust: the dart would take the score below 0, or, with double-out, leave 1 or
    reach 0 on anything but a double (double bull included).
    """
    if turn.is_bust or turn.throw_number >= DARTS_PER_TURN:
        raise InvalidThrowError("this turn is already over")

    remaining = current_points - turn.points_scored
    tentative = remaining - throw.value
    throws = (*turn.throws, throw)

    bust = False
    if tentative < 0:
        bust = True
    elif double_out and tentative == 1:
        bust = True
    elif tentative == 0 and double_out and not throw.is_double:
        bust = True

    if bust:
        return Turn(turn.player_index, throws, is_bust=True), TurnOutcome.BUST

    extended = Turn(turn.player_index, throws)
    if tentative == 0:
        return extended, TurnOutcome.CHECKOUT
    if extended.throw_number >= DARTS_PER_TURN:
        return extended, TurnOutcome.TURN_COMPLETE
    return extended, TurnOutcome.CONTINUE


def check_can_throw(match: Match, user_id: int) -> PlayerLegState:
    """
    Return the player at the oche if `user_id` may throw now.

    A finished match is reported before a wrong player.
    """
    if match.is_finished:
        raise MatchFinishedError("match is already finished")

    active = match.current_player
    if user_id != active.user_id:
        raise NotYourTurnError("not this player's turn")
    return active


def submit(match: Match, user_id: int, throw: Throw) -> Match:
    """
    Apply one dart for `user_id` and return the new match snapshot.

    The given match is never modified. Every check runs before anything is
    built, so a rejected dart leaves no trace. The new snapshot's
    `last_outcome` tells what the dart did to the turn.
    """
    active = check_can_throw(match, user_id)
    turn = match.current_turn

    new_turn, outcome = apply_throw(
        turn, throw, active.current_points, double_out=match.settings.double_out
    )

    if outcome == TurnOutcome.BUST:
        remaining_after = active.current_points
    else:
        remaining_after = active.current_points - new_turn.points_scored

    entry = LoggedThrow(
        set_number=match.set_number,
        leg_number=match.leg_number,
        turn_number=match.turn_number,
        player_index=turn.player_index,
        user_id=active.user_id,
        throw=throw,
        bust=outcome == TurnOutcome.BUST,
        checkout=outcome == TurnOutcome.CHECKOUT,
        remaining_after=remaining_after,
    )
    # Copies the log on every dart; fine at the size of a single match.
    log = (*match.throw_log, entry)

    if outcome == TurnOutcome.CONTINUE:
        return replace(match, current_turn=new_turn, throw_log=log, last_outcome=outcome)

    if outcome == TurnOutcome.CHECKOUT:
        return _win_leg(match, turn.player_index, log)

    # Bust or three darts thrown: commit (nothing on a bust) and pass the oche.
    committed = replace(active, current_points=active.current_points - new_turn.points_scored)
    players = _replace_player(match.players, turn.player_index, committed)
    next_index = (turn.player_index + 1) % len(players)
    return replace(
        match,
        players=players,
        current_turn=Turn(player_index=next_index),
        throw_log=log,
        turn_number=match.turn_number + 1,
        last_outcome=outcome,
    )


def _replace_player(
    players: tuple[PlayerLegState, ...], index: int, updated: PlayerLegState
) -> tuple[PlayerLegState, ...]:
    return (*players[:index], updated, *players[index + 1 :])


def _win_leg(match: Match, index: int, log: tuple[LoggedThrow, ...]) -> Match:
    settings = match.settings
    winner = match.players[index]

    legs_won = winner.legs_won_in_set + 1
    set_won = legs_won >= settings.legs_to_win_set
    sets_won = winner.sets_won + 1 if set_won else winner.sets_won

    winner = PlayerLegState(
        user_id=winner.user_id,
        current_points=0,
        sets_won=sets_won,
        legs_won_in_set=0 if set_won else legs_won,
    )
    players = _replace_player(match.players, index, winner)
    legs_completed = match.legs_completed + 1

    if sets_won >= settings.sets_to_win:
        return replace(
            match,
            players=players,
            current_turn=Turn(player_index=index),
            status=MatchStatus.FINISHED,
            winner_id=winner.user_id,
            throw_log=log,
            legs_completed=legs_completed,
            finished_at=datetime.now(timezone.utc),
            last_outcome=TurnOutcome.CHECKOUT,
        )

    # Next leg: everyone back to the starting score, leg counters cleared when a
    # set was decided, and the starting thrower moves on by one seat.
    players = tuple(
        PlayerLegState(
            user_id=p.user_id,
            current_points=settings.starting_points,
            sets_won=p.sets_won,
            legs_won_in_set=0 if set_won else p.legs_won_in_set,
        )
        for p in players
    )
    starter = legs_completed % len(players)

    return replace(
        match,
        players=players,
        current_turn=Turn(player_index=starter),
        throw_log=log,
        set_number=match.set_number + 1 if set_won else match.set_number,
        leg_number=1 if set_won else match.leg_number + 1,
        legs_completed=legs_completed,
        turn_number=match.turn_number + 1,
        last_outcome=TurnOutcome.CHECKOUT,
    )
