from __future__ import annotations

from dataclasses import replace

from oche.scoring.game import Match, MatchSettings, Throw, new_match, submit
from oche.scoring.stats import (
    compute,
    compute_career,
    compute_game_statistics,
    three_dart_average,
)


def _finished_match(match_id: int = 1, users: tuple[int, int] = (1, 2)) -> Match:
    """
    Best of 3 sets from 40, double-out: user A takes set 1, B set 2, A set 3.
    """
    m = new_match(match_id, MatchSettings(starting_points=40, best_of_sets=3, double_out=True), users)
    a, b = users

    # Set 1: A leaves 20, B busts, A checks out.
    m = submit(m, a, Throw(10, 1))
    m = submit(m, a, Throw(5, 1))
    m = submit(m, a, Throw(5, 1))  # A on 20
    m = submit(m, b, Throw(20, 3))  # B busts on the first dart
    m = submit(m, a, Throw(10, 2))  # A checks out

    # Set 2: B starts and finishes straight away.
    m = submit(m, b, Throw(20, 2))

    # Set 3: A starts and finishes straight away.
    m = submit(m, a, Throw(20, 2))
    assert m.is_finished and m.winner_id == a
    return m


def test_average_guards_zero_throws() -> None:
    assert three_dart_average(0, 0) == 0.0
    assert three_dart_average(60, 3) == 60.0


def test_per_set_and_overall_stats() -> None:
    stats = compute_game_statistics(_finished_match())
    assert stats.total_sets_played == 3

    a, b = stats.players
    assert [s.total_throws for s in a.set_stats] == [4, 0, 1]
    assert [s.total_points for s in a.set_stats] == [40, 0, 40]
    assert [s.won_set for s in a.set_stats] == [True, False, True]
    assert a.total_throws == 5
    assert a.total_points == 80
    assert a.average_3_dart == 80 / 5 * 3
    assert a.sets_won == 2
    assert a.legs_won == 2
    assert a.busts == 0
    assert a.highest_turn == 40

    assert [s.total_throws for s in b.set_stats] == [1, 1, 0]
    assert [s.total_points for s in b.set_stats] == [0, 40, 0]
    assert [s.won_set for s in b.set_stats] == [False, True, False]
    assert b.busts == 1
    assert b.total_throws == 2
    assert b.total_points == 40
    assert b.average_3_dart == 60.0
    assert b.set_stats[0].average_3_dart == 0.0


def test_earlier_darts_of_a_busted_turn_still_count() -> None:
    m = new_match(1, MatchSettings(starting_points=100), [1, 2])
    m = submit(m, 1, Throw(20, 3))
    m = submit(m, 1, Throw(20, 3))  # bust

    (p1, p2) = compute(m.throw_log, m.players)
    assert p1.total_throws == 2
    assert p1.total_points == 60
    assert p1.busts == 1
    assert p1.highest_turn == 0
    assert p2.total_throws == 0
    assert p2.average_3_dart == 0.0


def test_recomputation_is_idempotent() -> None:
    m = _finished_match()
    assert compute_game_statistics(m) == compute_game_statistics(m)
    assert compute(m.throw_log, m.players) == compute(m.throw_log, m.players)


def test_count_180() -> None:
    m = new_match(1, MatchSettings(starting_points=501), [1])
    for _ in range(3):
        m = submit(m, 1, Throw(20, 3))
    (p1,) = compute(m.throw_log, m.players)
    assert p1.count_180 == 1
    assert p1.highest_turn == 180


def test_multi_leg_set_winner() -> None:
    m = new_match(1, MatchSettings(starting_points=40, best_of_legs=3), [1, 2])
    m = submit(m, 1, Throw(20, 2))  # leg 1 to user 1
    m = replace(m, players=tuple(replace(p, current_points=40) for p in m.players))
    m = submit(m, 2, Throw(20, 2))  # leg 2 to user 2
    m = replace(m, players=tuple(replace(p, current_points=40) for p in m.players))
    m = submit(m, 1, Throw(20, 2))  # leg 3 and the set to user 1
    assert m.is_finished

    p1, p2 = compute_game_statistics(m).players
    assert p1.legs_won == 2 and p1.sets_won == 1
    assert p2.legs_won == 1 and p2.sets_won == 0
    assert p1.set_stats[0].won_set and not p2.set_stats[0].won_set


def test_set_goes_to_the_winner_of_its_last_leg() -> None:
    m = new_match(1, MatchSettings(starting_points=40, best_of_legs=3), [1, 2])
    m = submit(m, 1, Throw(20, 2))  # leg 1 to user 1
    m = submit(m, 2, Throw(20, 2))  # leg 2 to user 2, who started it
    for _ in range(3):
        m = submit(m, 1, Throw(0))
    m = submit(m, 2, Throw(20, 2))  # leg 3, the set and the match to user 2
    assert m.is_finished and m.winner_id == 2

    p1, p2 = compute(m.throw_log, m.players)
    assert [s.won_set for s in p1.set_stats] == [False]
    assert [s.won_set for s in p2.set_stats] == [True]
    assert (p1.legs_won, p1.sets_won) == (1, 0)
    assert (p2.legs_won, p2.sets_won) == (2, 1)


def test_leg_won_mid_set_is_not_a_set() -> None:
    m = new_match(1, MatchSettings(starting_points=40, best_of_legs=3), [1, 2])
    m = submit(m, 1, Throw(20, 2))
    assert not m.is_finished

    p1, _ = compute(m.throw_log, m.players)
    assert p1.legs_won == 1
    assert p1.sets_won == 0
    assert not p1.set_stats[0].won_set


def test_career_only_counts_finished_matches_of_the_user() -> None:
    won = _finished_match(1, (1, 2))
    lost = _finished_match(2, (3, 1))
    unfinished = submit(new_match(3, MatchSettings(), [1, 2]), 1, Throw(20, 3))
    other = _finished_match(4, (2, 3))

    career = compute_career(1, [won, lost, unfinished, other])
    assert career.total_games == 2
    assert career.wins == 1
    # 5 darts for 80 as the winner of match 1, 2 darts for 40 as the loser of match 2.
    assert career.total_throws == 7
    assert career.total_points == 120
    assert career.average_3_dart == 120 / 7 * 3


def test_career_with_no_matches() -> None:
    career = compute_career(9, [])
    assert career.total_games == 0
    assert career.average_3_dart == 0.0
