from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from oche.scoring.game import BULL, DARTS_PER_TURN, Throw

# Highest finish in three darts, with and without the double-out rule.
MAX_DOUBLE_OUT_FINISH = 170
MAX_FINISH = 180


@dataclass(frozen=True)
class CheckoutRoute:
    """
    One way to finish exactly from a given score, in 1-3 darts.
    """

    throws: tuple[Throw, ...]

    @property
    def total(self) -> int:
        return sum(t.value for t in self.throws)

    def as_strings(self) -> list[str]:
        return [format_throw(t) for t in self.throws]


def format_throw(t: Throw) -> str:
    if t.segment == 0:
        return "MISS"
    if t.segment == BULL:
        return "BULL" if t.multiplier == 1 else "DBULL"
    prefix = {1: "S", 2: "D", 3: "T"}[t.multiplier]
    return f"{prefix}{t.segment}"


def _scoring_throws() -> tuple[Throw, ...]:
    throws = [Throw(s, m) for s in range(1, 21) for m in (1, 2, 3)]
    throws += [Throw(BULL, 1), Throw(BULL, 2)]
    return tuple(throws)


SCORING_THROWS: tuple[Throw, ...] = _scoring_throws()

# Doubles players usually aim at, best first.
_PREFERRED_DOUBLES = (20, 16, 18, 10, 8, 12, 6, 4, 2)


def _preference(t: Throw) -> int:
    """
    Lower is better: common doubles to finish, big trebles to set up, bull last.
    """
    if t.segment == BULL:
        return 30 if t.multiplier == 2 else 60
    if t.multiplier == 2:
        if t.segment in _PREFERRED_DOUBLES:
            return _PREFERRED_DOUBLES.index(t.segment)
        return 15 + (20 - t.segment)
    if t.multiplier == 3:
        if t.segment >= 16:
            return 5 + (20 - t.segment)
        return 25 + (20 - t.segment)
    return 40 + (20 - t.segment)


def _route_key(route: tuple[Throw, ...]) -> tuple[int, int, int, str]:
    return (
        len(route),
        _preference(route[-1]),
        sum(_preference(t) for t in route[:-1]),
        ",".join(format_throw(t) for t in route),
    )


def _finishes(t: Throw, *, double_out: bool) -> bool:
    return (not double_out) or t.is_double


@lru_cache(maxsize=4096)
def suggest_checkouts(
    remaining: int, *, double_out: bool = True, max_darts: int = DARTS_PER_TURN, limit: int = 6
) -> tuple[CheckoutRoute, ...]:
    """
    Return up to `limit` finishing routes for `remaining`, best first.

    Routes never pass through a score the rules would bust on (below zero, or 1
    under double-out).
    """
    if max_darts not in (1, 2, 3):
        raise ValueError("max_darts must be 1, 2, or 3")
    if remaining <= 0 or limit <= 0:
        return tuple()
    if remaining > (MAX_DOUBLE_OUT_FINISH if double_out else MAX_FINISH):
        return tuple()

    dead_end = 1 if double_out else 0
    routes: list[tuple[Throw, ...]] = []

    def extend(prefix: tuple[Throw, ...], left: int) -> None:
        for t in SCORING_THROWS:
            after = left - t.value
            if after == 0 and _finishes(t, double_out=double_out):
                routes.append((*prefix, t))
            elif after > dead_end and len(prefix) + 1 < max_darts:
                extend((*prefix, t), after)

    extend(tuple(), remaining)
    routes.sort(key=_route_key)

    out: list[CheckoutRoute] = []
    seen: set[tuple[Throw, ...]] = set()
    for route in routes:
        if route in seen:
            continue
        seen.add(route)
        out.append(CheckoutRoute(throws=route))
        if len(out) >= limit:
            break
    return tuple(out)
