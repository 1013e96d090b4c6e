"""
REST API for the league fixture engine.
Thin wrappers around the services; domain errors map to HTTP status codes.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager, contextmanager
from datetime import date, datetime
from typing import Any, AsyncGenerator, Generator

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field, StrictBool, StrictInt

from league_engine import __version__, config
from league_engine.errors import InvalidState, LeagueEngineError, NotFound
from league_engine.models import LeagueFilter, PlayerMatchStat, PointsSystem
from league_engine.persistence import ClubRepository, PlayerProfileRepository, get_connection, init_db
from league_engine.services import (
    CompletionOutcome,
    FixtureLifecycle,
    LeagueService,
    PlayerStatsAggregator,
    ScoreTracker,
)

logger = logging.getLogger(__name__)


@contextmanager
def db_conn() -> Generator:
    """Yield a DB connection, ensure close on exit."""
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


def _http_error(e: LeagueEngineError) -> HTTPException:
    if isinstance(e, NotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InvalidState):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


# ---------- Lifespan ----------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    config.configure_logging()
    init_db()
    logger.info("League engine API started")
    yield


# ---------- FastAPI app ----------
app = FastAPI(
    title="League Fixture Engine API",
    description="Fixture scheduling, match lifecycle, standings and player stats for football leagues",
    version=__version__,
    lifespan=lifespan,
)


# ---------- Request models ----------


class PointsSystemModel(BaseModel):
    win: int = Field(config.DEFAULT_POINTS_WIN, ge=0)
    draw: int = Field(config.DEFAULT_POINTS_DRAW, ge=0)
    loss: int = Field(config.DEFAULT_POINTS_LOSS, ge=0)


class CreateLeagueRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    organizer_id: str = Field(..., min_length=1)
    season: str = Field(..., min_length=1, description="e.g. '2024/25'")
    registration_deadline: datetime | None = None
    points_system: PointsSystemModel | None = None


class UpdateLeagueRequest(BaseModel):
    """Only fields sent are changed; registration_deadline: null clears the deadline."""
    name: str | None = Field(None, min_length=1, max_length=200)
    season: str | None = Field(None, min_length=1)
    registration_deadline: datetime | None = None
    points_system: PointsSystemModel | None = None


class TransitionLeagueRequest(BaseModel):
    status: str = Field(..., description="One of: registration_closed, active, completed")


class CreateClubRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    player_ids: list[str] = Field(default_factory=list)


class RegisterClubRequest(BaseModel):
    club_id: str


class GenerateFixturesRequest(BaseModel):
    scheduled_date: date | None = Field(None, description="Default: today")


class ScoreRequest(BaseModel):
    score_a: StrictInt
    score_b: StrictInt


class PlayerStatLine(BaseModel):
    user_id: str
    club_id: str
    goals: StrictInt = 0
    assists: StrictInt = 0
    yellow_cards: StrictInt = 0
    red_card: StrictBool = False


class PlayerStatsRequest(BaseModel):
    stats: list[PlayerStatLine]


class ScheduleRequest(BaseModel):
    scheduled_date: date | None = None
    scheduled_time: str | None = Field(None, description="HH:MM")
    pitch_id: str | None = None
    referee_id: str | None = None


# ---------- Leagues ----------


@app.post("/leagues")
def create_league(req: CreateLeagueRequest) -> dict[str, Any]:
    """Create a league in 'registration' status."""
    points = PointsSystem(**req.points_system.model_dump()) if req.points_system else None
    with db_conn() as conn:
        try:
            league = LeagueService().create_league(
                conn, req.name, req.organizer_id, req.season,
                registration_deadline=req.registration_deadline, points_system=points,
            )
        except LeagueEngineError as e:
            raise _http_error(e)
        return league.to_dict(include_children=False)


@app.get("/leagues")
def list_leagues(
    status: str | None = Query(None),
    organizer_id: str | None = Query(None),
    season: str | None = Query(None),
) -> dict[str, Any]:
    """List leagues newest first, optionally filtered."""
    with db_conn() as conn:
        leagues = LeagueService().list_leagues(
            conn, LeagueFilter(status=status, organizer_id=organizer_id, season=season)
        )
        return {"leagues": [l.to_dict(include_children=False) for l in leagues]}


@app.get("/leagues/{league_id}")
def get_league(league_id: str) -> dict[str, Any]:
    """League with divisions, fixtures and standings."""
    with db_conn() as conn:
        try:
            league = LeagueService().get_league(conn, league_id)
        except LeagueEngineError as e:
            raise _http_error(e)
        return league.to_dict()


@app.patch("/leagues/{league_id}")
def update_league(league_id: str, req: UpdateLeagueRequest) -> dict[str, Any]:
    """Edit name, season, deadline or points system. A new points system re-scores the table."""
    updates = req.model_dump(exclude_unset=True)
    for key in ("name", "season", "points_system"):
        if key in updates and updates[key] is None:
            raise HTTPException(status_code=400, detail=f"{key} cannot be null")
    if "points_system" in updates:
        updates["points_system"] = PointsSystem(**req.points_system.model_dump())
    with db_conn() as conn:
        try:
            league = LeagueService().update_league(conn, league_id, updates)
        except LeagueEngineError as e:
            raise _http_error(e)
        return league.to_dict()


@app.delete("/leagues/{league_id}")
def delete_league(league_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        try:
            LeagueService().delete_league(conn, league_id)
        except LeagueEngineError as e:
            raise _http_error(e)
        return {"league_id": league_id, "deleted": True}


@app.post("/leagues/{league_id}/status")
def transition_league(league_id: str, req: TransitionLeagueRequest) -> dict[str, Any]:
    with db_conn() as conn:
        try:
            LeagueService().transition_league_status(conn, league_id, req.status)
        except LeagueEngineError as e:
            raise _http_error(e)
        return {"league_id": league_id, "status": req.status}


# ---------- Clubs & registration ----------


@app.post("/clubs")
def create_club(req: CreateClubRequest) -> dict[str, Any]:
    with db_conn() as conn:
        club = ClubRepository().create(conn, req.name, player_ids=req.player_ids)
        return club.to_dict()


@app.get("/clubs/{club_id}")
def get_club(club_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        club = ClubRepository().get(conn, club_id)
        if club is None:
            raise HTTPException(status_code=404, detail="Club not found")
        return club.to_dict()


@app.post("/leagues/{league_id}/clubs")
def register_club(league_id: str, req: RegisterClubRequest) -> dict[str, Any]:
    """Register a club into the league's first division. League must be in registration."""
    with db_conn() as conn:
        try:
            league = LeagueService().register_club(conn, league_id, req.club_id)
        except LeagueEngineError as e:
            raise _http_error(e)
        return {"league_id": league_id, "club_id": req.club_id, "divisions": [d.to_dict() for d in league.divisions]}


@app.post("/leagues/{league_id}/clubs/{club_id}/disqualify")
def disqualify_club(league_id: str, club_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        try:
            cancelled = LeagueService().disqualify_club(conn, league_id, club_id)
        except LeagueEngineError as e:
            raise _http_error(e)
        return {"league_id": league_id, "club_id": club_id, "cancelled_fixture_ids": cancelled}


@app.get("/leagues/{league_id}/players/{player_id}/eligibility")
def player_eligibility(league_id: str, player_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        eligible, reasons = LeagueService().check_player_eligibility(conn, league_id, player_id)
        return {"league_id": league_id, "player_id": player_id, "eligible": eligible, "reasons": reasons}


@app.get("/players/{user_id}/profile")
def get_player_profile(user_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        profile = PlayerProfileRepository().get(conn, user_id)
        if profile is None:
            raise HTTPException(status_code=404, detail="Player profile not found")
        return profile.to_dict()


# ---------- Fixtures ----------


@app.post("/leagues/{league_id}/fixtures/generate")
def generate_fixtures(league_id: str, req: GenerateFixturesRequest | None = None) -> dict[str, Any]:
    """Double round-robin over all registered clubs; closes registration."""
    with db_conn() as conn:
        try:
            fixtures = LeagueService().generate_fixtures(
                conn, league_id, scheduled_date=req.scheduled_date if req else None
            )
        except LeagueEngineError as e:
            raise _http_error(e)
        return {"league_id": league_id, "fixtures": [f.to_dict() for f in fixtures]}


@app.get("/leagues/{league_id}/fixtures")
def list_fixtures(league_id: str, status: str | None = Query(None)) -> dict[str, Any]:
    with db_conn() as conn:
        try:
            fixtures = LeagueService().list_fixtures(conn, league_id, status=status)
        except LeagueEngineError as e:
            raise _http_error(e)
        return {"league_id": league_id, "fixtures": [f.to_dict() for f in fixtures]}


@app.post("/leagues/{league_id}/fixtures/auto-advance")
def auto_advance(league_id: str) -> dict[str, Any]:
    """Promote scheduled fixtures whose kick-off is due."""
    with db_conn() as conn:
        try:
            promoted = FixtureLifecycle().auto_advance(conn, league_id)
        except LeagueEngineError as e:
            raise _http_error(e)
        return {"league_id": league_id, "promoted": promoted}


@app.post("/leagues/{league_id}/fixtures/{fixture_id}/start")
def start_fixture(league_id: str, fixture_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        try:
            fixture = FixtureLifecycle().start(conn, league_id, fixture_id)
        except LeagueEngineError as e:
            raise _http_error(e)
        return fixture.to_dict()


@app.put("/leagues/{league_id}/fixtures/{fixture_id}/scores")
def update_scores(league_id: str, fixture_id: str, req: ScoreRequest) -> dict[str, Any]:
    """Live score update. Fixture must be in-progress."""
    with db_conn() as conn:
        try:
            fixture = ScoreTracker().update_scores(conn, league_id, fixture_id, req.score_a, req.score_b)
        except LeagueEngineError as e:
            raise _http_error(e)
        return fixture.to_dict()


@app.get("/leagues/{league_id}/fixtures/{fixture_id}/scores/history")
def score_history(league_id: str, fixture_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        try:
            updates = ScoreTracker().score_history(conn, league_id, fixture_id)
        except LeagueEngineError as e:
            raise _http_error(e)
        return {"fixture_id": fixture_id, "updates": [u.to_dict() for u in updates]}


@app.put("/leagues/{league_id}/fixtures/{fixture_id}/player-stats")
def record_player_stats(league_id: str, fixture_id: str, req: PlayerStatsRequest) -> dict[str, Any]:
    stats = [PlayerMatchStat(**line.model_dump()) for line in req.stats]
    with db_conn() as conn:
        try:
            fixture = ScoreTracker().record_player_stats(conn, league_id, fixture_id, stats)
        except LeagueEngineError as e:
            raise _http_error(e)
        return fixture.to_dict()


def _completion_body(outcome: CompletionOutcome) -> dict[str, Any]:
    out: dict[str, Any] = {
        "fixture": outcome.fixture.to_dict(),
        "standings": [s.to_dict() for s in outcome.standings],
    }
    if outcome.aggregation is not None:
        out["player_stats"] = outcome.aggregation.to_dict()
    return out


@app.post("/leagues/{league_id}/fixtures/{fixture_id}/complete")
def complete_fixture(league_id: str, fixture_id: str) -> dict[str, Any]:
    """Complete an in-progress fixture, refresh standings and apply player stats."""
    with db_conn() as conn:
        try:
            outcome = FixtureLifecycle().complete(conn, league_id, fixture_id)
        except LeagueEngineError as e:
            raise _http_error(e)
        return _completion_body(outcome)


@app.post("/leagues/{league_id}/fixtures/{fixture_id}/result")
def record_result(league_id: str, fixture_id: str, req: ScoreRequest) -> dict[str, Any]:
    """Final score and completion in one call."""
    with db_conn() as conn:
        try:
            outcome = FixtureLifecycle().record_result(conn, league_id, fixture_id, req.score_a, req.score_b)
        except LeagueEngineError as e:
            raise _http_error(e)
        return _completion_body(outcome)


@app.post("/leagues/{league_id}/fixtures/{fixture_id}/apply-player-stats")
def apply_player_stats(league_id: str, fixture_id: str) -> dict[str, Any]:
    """Retry folding a completed fixture's player stats into profiles. No-op if already applied."""
    with db_conn() as conn:
        try:
            report = PlayerStatsAggregator().apply_fixture(conn, league_id, fixture_id)
        except LeagueEngineError as e:
            raise _http_error(e)
        return report.to_dict()


@app.post("/leagues/{league_id}/fixtures/{fixture_id}/cancel")
def cancel_fixture(league_id: str, fixture_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        try:
            fixture = FixtureLifecycle().cancel(conn, league_id, fixture_id)
        except LeagueEngineError as e:
            raise _http_error(e)
        return fixture.to_dict()


@app.patch("/leagues/{league_id}/fixtures/{fixture_id}/schedule")
def update_schedule(league_id: str, fixture_id: str, req: ScheduleRequest) -> dict[str, Any]:
    with db_conn() as conn:
        try:
            fixture = LeagueService().update_fixture_schedule(
                conn, league_id, fixture_id,
                scheduled_date=req.scheduled_date, scheduled_time=req.scheduled_time,
                pitch_id=req.pitch_id, referee_id=req.referee_id,
            )
        except LeagueEngineError as e:
            raise _http_error(e)
        return fixture.to_dict()


# ---------- Standings ----------


@app.get("/leagues/{league_id}/standings")
def get_standings(league_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        try:
            table = LeagueService().get_standings(conn, league_id)
        except LeagueEngineError as e:
            raise _http_error(e)
        return {"league_id": league_id, "standings": [s.to_dict() for s in table]}


@app.post("/leagues/{league_id}/standings/recompute")
def recompute_standings(league_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        try:
            table = LeagueService().recompute_standings(conn, league_id)
        except LeagueEngineError as e:
            raise _http_error(e)
        return {"league_id": league_id, "standings": [s.to_dict() for s in table]}


# ---------- Run with: uvicorn league_engine.api:app --reload ----------
