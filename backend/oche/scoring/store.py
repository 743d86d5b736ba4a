from __future__ import annotations

from threading import Lock, RLock
from typing import Sequence

from oche.core.logging import get_logger
from oche.core.settings import get_settings
from oche.scoring.errors import BusyError, MatchNotFinishedError, NotFoundError, ScoringError
from oche.scoring.game import (
    Match,
    MatchSettings,
    Throw,
    TurnOutcome,
    check_can_throw,
    new_match,
    submit,
)
from oche.scoring.stats import CareerStats, GameStatistics, compute_career, compute_game_statistics

log = get_logger(__name__)


class MatchController:
    """
    Owns a single match: the current snapshot plus the lock that serializes throws.

    Snapshots are frozen and replaced whole, so readers never take the lock and
    never see a half-applied turn.
    """

    def __init__(self, match: Match, *, lock_timeout_s: float) -> None:
        self._match = match
        self._lock = Lock()
        self._lock_timeout_s = lock_timeout_s

    @property
    def match_id(self) -> int:
        return self._match.id

    def snapshot(self) -> Match:
        return self._match

    def submit_throw(self, user_id: int, segment: int, multiplier: int) -> Match:
        if not self._lock.acquire(timeout=self._lock_timeout_s):
            log.warning("match_busy", match_id=self.match_id, user_id=user_id)
            raise BusyError(f"match {self.match_id} is busy, retry the throw")
        try:
            before = self._match
            try:
                # Match state is checked before the dart itself.
                check_can_throw(before, user_id)
                throw = Throw(segment=segment, multiplier=multiplier)
                after = submit(before, user_id, throw)
            except ScoringError as e:
                log.info("throw_rejected", match_id=before.id, user_id=user_id, reason=e.message)
                raise
            self._match = after
        finally:
            self._lock.release()

        _log_transition(before, after, throw)
        return after


def _log_transition(before: Match, after: Match, throw: Throw) -> None:
    user_id = before.current_player.user_id
    log.debug(
        "throw_applied",
        match_id=after.id,
        user_id=user_id,
        segment=throw.segment,
        multiplier=throw.multiplier,
        outcome=after.last_outcome.value if after.last_outcome else None,
    )
    if after.last_outcome == TurnOutcome.BUST:
        log.info("turn_busted", match_id=after.id, user_id=user_id)
    elif after.last_outcome == TurnOutcome.CHECKOUT:
        log.info("leg_won", match_id=after.id, user_id=user_id, set_number=before.set_number)
        if after.set_number != before.set_number or after.is_finished:
            log.info("set_won", match_id=after.id, user_id=user_id, set_number=before.set_number)
        if after.is_finished:
            log.info("match_finished", match_id=after.id, winner_id=after.winner_id)


class InMemoryMatchStore:
    """
    In-memory registry of matches keyed by id.

    The registry lock only guards the id -> controller map; each match is
    locked on its own, so throws for different matches never wait on each other.
    """

    def __init__(self, *, lock_timeout_s: float = 0.5, max_players: int = 4) -> None:
        self._lock = RLock()
        self._controllers: dict[int, MatchController] = {}
        self._next_id = 1
        self._lock_timeout_s = lock_timeout_s
        self._max_players = max_players

    def clear(self) -> None:
        with self._lock:
            self._controllers.clear()
            self._next_id = 1

    def create_match(self, settings: MatchSettings, user_ids: Sequence[int]) -> Match:
        with self._lock:
            match = new_match(self._next_id, settings, user_ids, max_players=self._max_players)
            self._controllers[match.id] = MatchController(match, lock_timeout_s=self._lock_timeout_s)
            self._next_id += 1

        log.info(
            "match_created",
            match_id=match.id,
            players=list(match.user_ids),
            starting_points=settings.starting_points,
            best_of_sets=settings.best_of_sets,
            double_out=settings.double_out,
        )
        return match

    def _controller(self, match_id: int) -> MatchController:
        with self._lock:
            controller = self._controllers.get(match_id)
        if controller is None:
            raise NotFoundError(f"match {match_id} not found")
        return controller

    def get_match(self, match_id: int) -> Match:
        return self._controller(match_id).snapshot()

    def list_matches(self) -> list[Match]:
        with self._lock:
            controllers = list(self._controllers.values())
        return [c.snapshot() for c in controllers]

    def submit_throw(self, match_id: int, user_id: int, segment: int, multiplier: int) -> Match:
        return self._controller(match_id).submit_throw(user_id, segment, multiplier)

    def game_statistics(self, match_id: int) -> GameStatistics:
        match = self.get_match(match_id)
        if not match.is_finished:
            raise MatchNotFinishedError(f"match {match_id} is still in progress")
        return compute_game_statistics(match)

    def user_stats(self, user_id: int) -> CareerStats:
        matches = [m for m in self.list_matches() if user_id in m.user_ids]
        if not matches:
            raise NotFoundError(f"user {user_id} not found")
        return compute_career(user_id, matches)


_STORE: InMemoryMatchStore | None = None


def get_store() -> InMemoryMatchStore:
    global _STORE
    if _STORE is None:
        settings = get_settings()
        _STORE = InMemoryMatchStore(
            lock_timeout_s=settings.lock_timeout_s, max_players=settings.max_players
        )
    return _STORE
