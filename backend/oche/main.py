from datetime import datetime

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field, field_validator
from structlog.contextvars import bound_contextvars

from oche.core.logging import setup_logging
from oche.core.settings import get_settings
from oche.scoring.checkout import CheckoutRoute, suggest_checkouts
from oche.scoring.errors import (
    BusyError,
    InvalidSettingsError,
    InvalidThrowError,
    MatchFinishedError,
    MatchNotFinishedError,
    NotFoundError,
    NotYourTurnError,
    ScoringError,
)
from oche.scoring.game import DARTS_PER_TURN, LoggedThrow, Match, MatchSettings, Throw
from oche.scoring.stats import CareerStats, GameStatistics, PlayerStats
from oche.scoring.store import get_store

settings = get_settings()
setup_logging(
    log_level=settings.log_level,
    json_format=settings.log_format == "json",
    service_name=settings.service_name,
)

app = FastAPI(title="Oche")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
store = get_store()


@app.get("/", include_in_schema=False)
def root(request: Request):
    # Browsers go to Swagger UI, API clients get a JSON index.
    accept = (request.headers.get("accept") or "").lower()
    if "text/html" in accept:
        return RedirectResponse(url="/docs")
    return {
        "name": "Oche",
        "docs": "/docs",
        "health": "/health",
        "endpoints": [
            "POST /games",
            "GET /games/{id}",
            "POST /games/{id}/throw",
            "GET /games/{id}/statistics",
            "GET /games/{id}/checkout",
            "GET /users/{id}/stats",
            "GET /checkout?remaining=<int>&double_out=<bool>",
        ],
    }


@app.get("/health")
def health():
    return {"status": "ok"}


# --- Request / response models ---


class CreateGameRequest(BaseModel):
    total_points: int = Field(default=501, description="301 or 501")
    best_of: int = Field(default=1, description="Best of 1, 3, or 5 sets")
    double_out: bool = Field(default=False)
    best_of_legs: int = Field(default=1, ge=1, description="Legs per set; 1 = every leg is a set")
    player_ids: list[int] = Field(..., min_length=1, description="Players in throwing order")

    @field_validator("total_points")
    @classmethod
    def validate_total_points(cls, v: int) -> int:
        if v not in (301, 501):
            raise ValueError("total_points must be 301 or 501")
        return v

    @field_validator("best_of")
    @classmethod
    def validate_best_of(cls, v: int) -> int:
        if v not in (1, 3, 5):
            raise ValueError("best_of must be 1, 3, or 5")
        return v

    @field_validator("best_of_legs")
    @classmethod
    def validate_best_of_legs(cls, v: int) -> int:
        if v % 2 == 0:
            raise ValueError("best_of_legs must be odd")
        return v


class ThrowRequest(BaseModel):
    user_id: int
    points: int = Field(..., description="Segment: 0=miss, 1-20, 25=bull")
    multiplier: int = Field(default=1, description="1=single, 2=double, 3=triple")


class ThrowDTO(BaseModel):
    points: int
    multiplier: int
    value: int


class SettingsDTO(BaseModel):
    total_points: int
    best_of_sets: int
    double_out: bool
    best_of_legs: int


class PlayerDTO(BaseModel):
    user_id: int
    order: int
    current_points: int
    sets_won: int
    legs_won_in_set: int


class CurrentTurnDTO(BaseModel):
    player_index: int
    user_id: int
    throw_number: int
    throws: list[ThrowDTO]
    points_scored: int
    remaining: int


class LoggedThrowDTO(BaseModel):
    set_number: int
    leg_number: int
    turn_number: int
    player_index: int
    user_id: int
    points: int
    multiplier: int
    value: int
    bust: bool
    checkout: bool
    remaining_after: int


class GameDTO(BaseModel):
    id: int
    status: str
    settings: SettingsDTO
    players: list[PlayerDTO]
    current_turn: CurrentTurnDTO
    winner_id: int | None
    set_number: int
    leg_number: int
    last_outcome: str | None
    created_at: datetime
    finished_at: datetime | None
    throw_log: list[LoggedThrowDTO]


class SetStatsDTO(BaseModel):
    set_number: int
    total_throws: int
    total_points: int
    average_3_dart: float
    won_set: bool


class OverallStatsDTO(BaseModel):
    total_throws: int
    total_points: int
    average_3_dart: float
    busts: int
    legs_won: int
    sets_won: int
    highest_turn: int
    count_180: int


class PlayerGameStatsDTO(BaseModel):
    user_id: int
    player_index: int
    overall_stats: OverallStatsDTO
    set_stats: list[SetStatsDTO]


class GameStatisticsDTO(BaseModel):
    game_id: int
    total_sets_played: int
    players: list[PlayerGameStatsDTO]


class UserStatsDTO(BaseModel):
    user_id: int
    total_games: int
    wins: int
    total_points: int
    total_throws: int
    average_3_dart: float


class CheckoutRouteDTO(BaseModel):
    throws: list[ThrowDTO]
    total: int
    route: list[str]


class CheckoutResponseDTO(BaseModel):
    remaining: int
    double_out: bool
    darts_left: int
    suggestions: list[CheckoutRouteDTO]


# --- Mapping ---


def _http_error(e: ScoringError) -> HTTPException:
    if isinstance(e, (InvalidThrowError, InvalidSettingsError)):
        return HTTPException(status_code=422, detail=e.message)
    if isinstance(e, (NotYourTurnError, MatchFinishedError, MatchNotFinishedError)):
        return HTTPException(status_code=409, detail=e.message)
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=e.message)
    if isinstance(e, BusyError):
        return HTTPException(status_code=503, detail=e.message, headers={"Retry-After": "1"})
    return HTTPException(status_code=400, detail=e.message)


def _throw_to_dto(t: Throw) -> ThrowDTO:
    return ThrowDTO(points=t.segment, multiplier=t.multiplier, value=t.value)


def _logged_to_dto(e: LoggedThrow) -> LoggedThrowDTO:
    return LoggedThrowDTO(
        set_number=e.set_number,
        leg_number=e.leg_number,
        turn_number=e.turn_number,
        player_index=e.player_index,
        user_id=e.user_id,
        points=e.throw.segment,
        multiplier=e.throw.multiplier,
        value=e.throw.value,
        bust=e.bust,
        checkout=e.checkout,
        remaining_after=e.remaining_after,
    )


def _match_to_dto(m: Match) -> GameDTO:
    turn = m.current_turn
    return GameDTO(
        id=m.id,
        status=m.status.value,
        settings=SettingsDTO(
            total_points=m.settings.starting_points,
            best_of_sets=m.settings.best_of_sets,
            double_out=m.settings.double_out,
            best_of_legs=m.settings.best_of_legs,
        ),
        players=[
            PlayerDTO(
                user_id=p.user_id,
                order=i,
                current_points=p.current_points,
                sets_won=p.sets_won,
                legs_won_in_set=p.legs_won_in_set,
            )
            for i, p in enumerate(m.players)
        ],
        current_turn=CurrentTurnDTO(
            player_index=turn.player_index,
            user_id=m.current_player.user_id,
            throw_number=turn.throw_number,
            throws=[_throw_to_dto(t) for t in turn.throws],
            points_scored=turn.points_scored,
            remaining=m.remaining,
        ),
        winner_id=m.winner_id,
        set_number=m.set_number,
        leg_number=m.leg_number,
        last_outcome=m.last_outcome.value if m.last_outcome else None,
        created_at=m.created_at,
        finished_at=m.finished_at,
        throw_log=[_logged_to_dto(e) for e in m.throw_log],
    )


def _player_stats_to_dto(p: PlayerStats) -> PlayerGameStatsDTO:
    return PlayerGameStatsDTO(
        user_id=p.user_id,
        player_index=p.player_index,
        overall_stats=OverallStatsDTO(
            total_throws=p.total_throws,
            total_points=p.total_points,
            average_3_dart=p.average_3_dart,
            busts=p.busts,
            legs_won=p.legs_won,
            sets_won=p.sets_won,
            highest_turn=p.highest_turn,
            count_180=p.count_180,
        ),
        set_stats=[
            SetStatsDTO(
                set_number=s.set_number,
                total_throws=s.total_throws,
                total_points=s.total_points,
                average_3_dart=s.average_3_dart,
                won_set=s.won_set,
            )
            for s in p.set_stats
        ],
    )


def _statistics_to_dto(s: GameStatistics) -> GameStatisticsDTO:
    return GameStatisticsDTO(
        game_id=s.match_id,
        total_sets_played=s.total_sets_played,
        players=[_player_stats_to_dto(p) for p in s.players],
    )


def _career_to_dto(c: CareerStats) -> UserStatsDTO:
    return UserStatsDTO(
        user_id=c.user_id,
        total_games=c.total_games,
        wins=c.wins,
        total_points=c.total_points,
        total_throws=c.total_throws,
        average_3_dart=c.average_3_dart,
    )


def _route_to_dto(r: CheckoutRoute) -> CheckoutRouteDTO:
    return CheckoutRouteDTO(
        throws=[_throw_to_dto(t) for t in r.throws],
        total=r.total,
        route=r.as_strings(),
    )


# --- Games ---


@app.post("/games", response_model=GameDTO, status_code=201)
def create_game(req: CreateGameRequest) -> GameDTO:
    try:
        match = store.create_match(
            MatchSettings(
                starting_points=req.total_points,
                best_of_sets=req.best_of,
                double_out=req.double_out,
                best_of_legs=req.best_of_legs,
            ),
            req.player_ids,
        )
    except ScoringError as e:
        raise _http_error(e) from e
    return _match_to_dto(match)


@app.get("/games/{game_id}", response_model=GameDTO)
def get_game(game_id: int) -> GameDTO:
    try:
        match = store.get_match(game_id)
    except ScoringError as e:
        raise _http_error(e) from e
    return _match_to_dto(match)


@app.post("/games/{game_id}/throw", response_model=GameDTO)
def submit_throw(game_id: int, req: ThrowRequest) -> GameDTO:
    with bound_contextvars(match_id=game_id):
        try:
            match = store.submit_throw(game_id, req.user_id, req.points, req.multiplier)
        except ScoringError as e:
            raise _http_error(e) from e
    return _match_to_dto(match)


@app.get("/games/{game_id}/statistics", response_model=GameStatisticsDTO)
def game_statistics(game_id: int) -> GameStatisticsDTO:
    try:
        stats = store.game_statistics(game_id)
    except ScoringError as e:
        raise _http_error(e) from e
    return _statistics_to_dto(stats)


@app.get("/games/{game_id}/checkout", response_model=CheckoutResponseDTO)
def game_checkout(game_id: int) -> CheckoutResponseDTO:
    try:
        match = store.get_match(game_id)
        if match.is_finished:
            raise MatchFinishedError("match is already finished")
    except ScoringError as e:
        raise _http_error(e) from e

    darts_left = DARTS_PER_TURN - match.current_turn.throw_number
    suggestions = suggest_checkouts(
        match.remaining, double_out=match.settings.double_out, max_darts=darts_left
    )
    return CheckoutResponseDTO(
        remaining=match.remaining,
        double_out=match.settings.double_out,
        darts_left=darts_left,
        suggestions=[_route_to_dto(s) for s in suggestions],
    )


@app.get("/checkout", response_model=CheckoutResponseDTO)
def checkout(remaining: int, double_out: bool = True) -> CheckoutResponseDTO:
    suggestions = suggest_checkouts(remaining, double_out=double_out)
    return CheckoutResponseDTO(
        remaining=remaining,
        double_out=double_out,
        darts_left=DARTS_PER_TURN,
        suggestions=[_route_to_dto(s) for s in suggestions],
    )


# --- Users ---


@app.get("/users/{user_id}/stats", response_model=UserStatsDTO)
def user_stats(user_id: int) -> UserStatsDTO:
    try:
        stats = store.user_stats(user_id)
    except ScoringError as e:
        raise _http_error(e) from e
    return _career_to_dto(stats)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
