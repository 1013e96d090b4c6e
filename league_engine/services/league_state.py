"""
Loading helpers shared by the league services: fetch-or-raise for leagues and
fixtures, and the standings refresh that persists a recomputed table.
"""
from __future__ import annotations

import logging
import sqlite3

from league_engine.errors import NotFound
from league_engine.models import Fixture, League, StandingsEntry
from league_engine.persistence.db import begin_immediate
from league_engine.persistence.repositories import (
    ClubRepository,
    DivisionRepository,
    FixtureRepository,
    LeagueRepository,
    StandingsRepository,
)
from league_engine.services import standings as standings_calc

logger = logging.getLogger(__name__)

_league_repo = LeagueRepository()
_division_repo = DivisionRepository()
_fixture_repo = FixtureRepository()
_standings_repo = StandingsRepository()
_club_repo = ClubRepository()


def load_league(conn: sqlite3.Connection, league_id: str) -> League:
    """League with divisions, fixtures and cached standings. Raises NotFound."""
    league = _league_repo.get(conn, league_id)
    if league is None:
        raise NotFound(f"League not found: {league_id}")
    league.divisions = _division_repo.list_by_league(conn, league_id)
    league.fixtures = _fixture_repo.list_by_league(conn, league_id)
    league.standings = _standings_repo.list_by_league(conn, league_id)
    return league


def load_fixture(conn: sqlite3.Connection, league_id: str, fixture_id: str) -> Fixture:
    """Fixture belonging to league_id. Raises NotFound for a missing league or fixture."""
    if _league_repo.get(conn, league_id) is None:
        raise NotFound(f"League not found: {league_id}")
    fixture = _fixture_repo.get(conn, fixture_id)
    if fixture is None or fixture.league_id != league_id:
        raise NotFound(f"Fixture not found: {fixture_id}")
    return fixture


def refresh_standings(
    conn: sqlite3.Connection, league_id: str, commit: bool = True
) -> list[StandingsEntry]:
    """
    Recompute the table from scratch and replace the stored one. The write lock
    is taken before the fixtures are read, so a completion committed by another
    connection cannot be overwritten by a stale table.
    """
    begin_immediate(conn)
    try:
        league = load_league(conn, league_id)
        names = _club_repo.get_names(conn, league.all_club_ids())
        table = standings_calc.recompute(league, club_names=names)
        _standings_repo.replace(conn, league_id, table, commit=commit)
    except Exception:
        if commit:
            conn.rollback()
        raise
    logger.info("Recomputed standings for league %s (%d clubs)", league_id, len(table))
    return table
