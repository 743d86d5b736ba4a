from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from oche.scoring.errors import (
    BusyError,
    InvalidThrowError,
    MatchFinishedError,
    MatchNotFinishedError,
    NotFoundError,
    NotYourTurnError,
)
from oche.scoring.game import MatchSettings
from oche.scoring.store import InMemoryMatchStore


@pytest.fixture
def store() -> InMemoryMatchStore:
    return InMemoryMatchStore(lock_timeout_s=5.0)


def test_ids_are_sequential(store: InMemoryMatchStore) -> None:
    first = store.create_match(MatchSettings(), [1, 2])
    second = store.create_match(MatchSettings(), [3])
    assert (first.id, second.id) == (1, 2)
    assert store.get_match(2).user_ids == (3,)


def test_unknown_match(store: InMemoryMatchStore) -> None:
    with pytest.raises(NotFoundError):
        store.get_match(42)
    with pytest.raises(NotFoundError):
        store.submit_throw(42, 1, 20, 1)


def test_match_errors_come_before_a_bad_dart(store: InMemoryMatchStore) -> None:
    with pytest.raises(NotFoundError):
        store.submit_throw(42, 1, 25, 3)

    m = store.create_match(MatchSettings(), [1, 2])
    with pytest.raises(NotYourTurnError):
        store.submit_throw(m.id, 2, 25, 3)

    done = store.create_match(MatchSettings(starting_points=40, double_out=True), [1, 2])
    assert store.submit_throw(done.id, 1, 20, 2).is_finished
    with pytest.raises(MatchFinishedError):
        store.submit_throw(done.id, 1, 25, 3)
    with pytest.raises(MatchFinishedError):
        store.submit_throw(done.id, 2, 25, 3)


def test_rejected_throw_leaves_match_untouched(store: InMemoryMatchStore) -> None:
    m = store.create_match(MatchSettings(), [1, 2])
    with pytest.raises(InvalidThrowError):
        store.submit_throw(m.id, 1, 25, 3)
    with pytest.raises(NotYourTurnError):
        store.submit_throw(m.id, 2, 20, 1)
    assert store.get_match(m.id) is m


def test_concurrent_throws_on_one_match_are_serialized(store: InMemoryMatchStore) -> None:
    m = store.create_match(MatchSettings(starting_points=501), [1])

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: store.submit_throw(m.id, 1, 1, 1), range(60)))

    assert len(results) == 60
    final = store.get_match(m.id)
    assert len(final.throw_log) == 60
    assert final.turn_number == 21
    assert final.current_turn.throw_number == 0
    assert final.players[0].current_points == 501 - 60
    assert [e.turn_number for e in final.throw_log] == [n // 3 + 1 for n in range(60)]


def test_busy_match_fails_fast_and_others_proceed() -> None:
    store = InMemoryMatchStore(lock_timeout_s=0.05)
    busy = store.create_match(MatchSettings(), [1])
    free = store.create_match(MatchSettings(), [1])

    controller = store._controller(busy.id)
    controller._lock.acquire()
    try:
        with pytest.raises(BusyError):
            store.submit_throw(busy.id, 1, 20, 1)
        # Reads don't need the lock.
        assert store.get_match(busy.id) is busy
        assert store.submit_throw(free.id, 1, 20, 1).remaining == 481
    finally:
        controller._lock.release()

    assert store.submit_throw(busy.id, 1, 20, 1).remaining == 481


def test_statistics_require_a_finished_match(store: InMemoryMatchStore) -> None:
    m = store.create_match(MatchSettings(starting_points=301), [1, 2])
    with pytest.raises(MatchNotFinishedError):
        store.game_statistics(m.id)


def test_statistics_and_user_stats(store: InMemoryMatchStore) -> None:
    m = store.create_match(MatchSettings(starting_points=301, double_out=True), [1, 2])
    store.create_match(MatchSettings(), [1, 3])  # still running, ignored by career stats

    for _ in range(3):
        store.submit_throw(m.id, 1, 20, 3)  # 301 -> 121
    for _ in range(3):
        store.submit_throw(m.id, 2, 0, 1)
    store.submit_throw(m.id, 1, 20, 3)  # 61
    store.submit_throw(m.id, 1, 11, 1)  # 50
    store.submit_throw(m.id, 1, 25, 2)  # out

    stats = store.game_statistics(m.id)
    assert stats.total_sets_played == 1
    p1, p2 = stats.players
    assert (p1.total_points, p1.total_throws) == (301, 6)
    assert p1.average_3_dart == 301 / 6 * 3
    assert (p2.total_points, p2.total_throws) == (0, 3)

    career = store.user_stats(1)
    assert (career.total_games, career.wins, career.total_points, career.total_throws) == (1, 1, 301, 6)

    assert store.user_stats(3).total_games == 0
    with pytest.raises(NotFoundError):
        store.user_stats(99)
