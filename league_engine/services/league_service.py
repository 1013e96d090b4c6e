"""
League-centric service: league status machine, club registration, fixture
generation, standings, disqualification and eligibility.
Persistence is delegated to repositories.
"""
from __future__ import annotations

import logging
import re
import sqlite3
from datetime import date, datetime, timezone
from typing import Any

from league_engine.errors import InvalidState, NotFound, ValidationError
from league_engine.models import (
    Fixture,
    FixtureStatus,
    League,
    LeagueFilter,
    LeagueStatus,
    PointsSystem,
    StandingsEntry,
)
from league_engine.persistence.db import begin_immediate
from league_engine.persistence.repositories import (
    ClubRepository,
    DivisionRepository,
    FixtureRepository,
    LeagueRepository,
    PlayerProfileRepository,
    StandingsRepository,
)
from league_engine.services.league_state import load_fixture, load_league, refresh_standings
from league_engine.services.scheduling import generate_fixtures

logger = logging.getLogger(__name__)

_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):[0-5]\d$")

DEFAULT_DIVISION_NAME = "Division 1"

_EDITABLE_FIELDS = {"name", "season", "points_system", "registration_deadline"}


# ---------- Valid transitions ----------

_VALID_TRANSITIONS: dict[str, set[str]] = {
    LeagueStatus.REGISTRATION: {LeagueStatus.REGISTRATION_CLOSED},
    LeagueStatus.REGISTRATION_CLOSED: {LeagueStatus.ACTIVE},
    LeagueStatus.ACTIVE: {LeagueStatus.COMPLETED},
    LeagueStatus.COMPLETED: set(),
}


def _deadline_passed(deadline: datetime, now: datetime) -> bool:
    if deadline.tzinfo is None and now.tzinfo is not None:
        now = now.astimezone().replace(tzinfo=None)
    elif deadline.tzinfo is not None and now.tzinfo is None:
        now = now.astimezone()
    return now > deadline


# ---------- LeagueService ----------


class LeagueService:
    """
    Domain logic for leagues: status transitions, registration, fixture
    generation and the standings cache.
    """

    def __init__(self) -> None:
        self._league_repo = LeagueRepository()
        self._division_repo = DivisionRepository()
        self._fixture_repo = FixtureRepository()
        self._standings_repo = StandingsRepository()
        self._club_repo = ClubRepository()
        self._profile_repo = PlayerProfileRepository()

    # ---------- Leagues ----------

    def create_league(
        self,
        conn: sqlite3.Connection,
        name: str,
        organizer_id: str,
        season: str,
        registration_deadline: datetime | None = None,
        points_system: PointsSystem | None = None,
    ) -> League:
        """New league in 'registration' with no divisions, fixtures or standings."""
        if not name or not name.strip():
            raise ValidationError("League name is required")
        if not organizer_id:
            raise ValidationError("organizer_id is required")
        league = self._league_repo.create(
            conn, name.strip(), organizer_id, season,
            points_system=points_system, registration_deadline=registration_deadline,
        )
        logger.info("Created league %s (%s)", league.id, league.name)
        return league

    def get_league(self, conn: sqlite3.Connection, league_id: str) -> League:
        return load_league(conn, league_id)

    def list_leagues(self, conn: sqlite3.Connection, filters: LeagueFilter | None = None) -> list[League]:
        """Leagues newest first, without child data."""
        return self._league_repo.list_all(conn, filters)

    def transition_league_status(self, conn: sqlite3.Connection, league_id: str, new_status: str) -> None:
        """
        Transition league to new_status if valid.
        Valid: registration -> registration_closed -> active -> completed.
        """
        try:
            target = LeagueStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown league status: {new_status}") from None
        begin_immediate(conn)
        try:
            league = self._league_repo.get(conn, league_id)
            if league is None:
                raise NotFound(f"League not found: {league_id}")
            current = league.status
            allowed = _VALID_TRANSITIONS.get(current, set())
            if target not in allowed:
                raise InvalidState(
                    f"Invalid transition: {current} -> {target.value}. "
                    f"Allowed from {current}: {sorted(s.value for s in allowed)}"
                )
            self._league_repo.update_status(conn, league_id, target.value, commit=False)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        logger.info("League %s: %s -> %s", league_id, current, target.value)

    def update_league(self, conn: sqlite3.Connection, league_id: str, updates: dict[str, Any]) -> League:
        """
        Edit general league fields: name, season, points_system, registration_deadline.
        Once fixtures exist, a new points system is applied to the stored table straight away.
        """
        unknown = set(updates) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {sorted(unknown)}")
        if "name" in updates:
            name = updates["name"]
            if not name or not name.strip():
                raise ValidationError("League name is required")
            updates = {**updates, "name": name.strip()}
        if "points_system" in updates and not isinstance(updates["points_system"], PointsSystem):
            raise ValidationError("points_system must be a PointsSystem")
        begin_immediate(conn)
        try:
            league = self._league_repo.get(conn, league_id)
            if league is None:
                raise NotFound(f"League not found: {league_id}")
            self._league_repo.update(conn, league_id, updates, commit=False)
            if "points_system" in updates and league.status != LeagueStatus.REGISTRATION:
                refresh_standings(conn, league_id, commit=False)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        logger.info("Updated league %s (%s)", league_id, ", ".join(sorted(updates)) or "no fields")
        return load_league(conn, league_id)

    def delete_league(self, conn: sqlite3.Connection, league_id: str) -> None:
        """Delete the league with its divisions, fixtures and table. Registered clubs are detached."""
        begin_immediate(conn)
        try:
            if self._league_repo.get(conn, league_id) is None:
                raise NotFound(f"League not found: {league_id}")
            self._league_repo.delete(conn, league_id, commit=False)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        logger.info("Deleted league %s", league_id)

    # ---------- Registration ----------

    def register_club(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        club_id: str,
        now: datetime | None = None,
    ) -> League:
        """
        Add club to the league's first division (creating 'Division 1' if none).
        League must be in registration and before its deadline.
        """
        begin_immediate(conn)
        try:
            league = load_league(conn, league_id)
            if league.status != LeagueStatus.REGISTRATION:
                raise InvalidState(f"League is not accepting registrations (current: {league.status})")
            if league.registration_deadline is not None and _deadline_passed(
                league.registration_deadline, now or datetime.now(timezone.utc)
            ):
                raise InvalidState("Registration deadline has passed")
            club = self._club_repo.get(conn, club_id)
            if club is None:
                raise NotFound(f"Club not found: {club_id}")
            if club_id in league.all_club_ids():
                raise ValidationError("Club is already registered for this league")
            if league.divisions:
                division = min(league.divisions, key=lambda d: d.order)
            else:
                division = self._division_repo.create(conn, league_id, DEFAULT_DIVISION_NAME, 1, commit=False)
                league.divisions.append(division)
            self._division_repo.add_club(conn, division.id, club_id, commit=False)
            self._club_repo.update_current_league(conn, club_id, league_id, commit=False)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        division.club_ids.append(club_id)
        logger.info("Club %s registered for league %s (%s)", club_id, league_id, division.name)
        return league

    # ---------- Fixtures ----------

    def generate_fixtures(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        scheduled_date: date | None = None,
    ) -> list[Fixture]:
        """
        Generate the double round-robin over every club in the league's divisions,
        persist it, close registration and seed a zeroed table. One transaction.
        """
        begin_immediate(conn)
        try:
            league = load_league(conn, league_id)
            if league.status != LeagueStatus.REGISTRATION:
                raise InvalidState(f"Fixtures can only be generated during registration (current: {league.status})")
            fixtures = generate_fixtures(league.all_club_ids(), league_id, scheduled_date=scheduled_date)
            self._fixture_repo.create_many(conn, fixtures, commit=False)
            self._league_repo.update_status(conn, league_id, LeagueStatus.REGISTRATION_CLOSED.value, commit=False)
            refresh_standings(conn, league_id, commit=False)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        logger.info(
            "Generated %d fixtures over %d rounds for league %s",
            len(fixtures), max(f.round for f in fixtures), league_id,
        )
        return fixtures

    def list_fixtures(
        self, conn: sqlite3.Connection, league_id: str, status: str | None = None
    ) -> list[Fixture]:
        if self._league_repo.get(conn, league_id) is None:
            raise NotFound(f"League not found: {league_id}")
        return self._fixture_repo.list_by_league(conn, league_id, status=status)

    def update_fixture_schedule(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        fixture_id: str,
        scheduled_date: date | None = None,
        scheduled_time: str | None = None,
        pitch_id: str | None = None,
        referee_id: str | None = None,
    ) -> Fixture:
        """Set date, kick-off time ('HH:MM'), pitch or referee. Omitted fields are unchanged."""
        fixture = load_fixture(conn, league_id, fixture_id)
        if scheduled_time is not None and not _TIME_RE.match(scheduled_time):
            raise ValidationError(f"scheduled_time must be HH:MM (got {scheduled_time!r})")
        if scheduled_date is not None:
            fixture.scheduled_date = scheduled_date
        if scheduled_time is not None:
            fixture.scheduled_time = scheduled_time
        if pitch_id is not None:
            fixture.pitch_id = pitch_id
        if referee_id is not None:
            fixture.referee_id = referee_id
        return self._fixture_repo.save(conn, fixture)

    # ---------- Standings ----------

    def recompute_standings(self, conn: sqlite3.Connection, league_id: str) -> list[StandingsEntry]:
        return refresh_standings(conn, league_id)

    def get_standings(self, conn: sqlite3.Connection, league_id: str) -> list[StandingsEntry]:
        """Cached table as last recomputed."""
        if self._league_repo.get(conn, league_id) is None:
            raise NotFound(f"League not found: {league_id}")
        return self._standings_repo.list_by_league(conn, league_id)

    # ---------- Disqualification & eligibility ----------

    def disqualify_club(self, conn: sqlite3.Connection, league_id: str, club_id: str) -> list[str]:
        """
        Cancel every fixture of club_id that is not completed, remove the club from
        the league's divisions and table, and clear its current league. Remaining
        rounds keep their numbers. Returns the ids of the cancelled fixtures.
        """
        cancelled: list[str] = []
        begin_immediate(conn)
        try:
            league = load_league(conn, league_id)
            if club_id not in league.all_club_ids():
                raise ValidationError(f"Club {club_id} is not registered in league {league_id}")
            for fixture in league.fixtures:
                if not fixture.involves(club_id):
                    continue
                if fixture.status in (FixtureStatus.COMPLETED, FixtureStatus.CANCELLED):
                    continue
                fixture.status = FixtureStatus.CANCELLED.value
                self._fixture_repo.save(conn, fixture, commit=False)
                cancelled.append(fixture.id)
            self._division_repo.remove_club_from_league(conn, league_id, club_id, commit=False)
            if self._club_repo.get(conn, club_id) is not None:
                self._club_repo.update_current_league(conn, club_id, None, commit=False)
            refresh_standings(conn, league_id, commit=False)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        logger.info(
            "Club %s disqualified from league %s; %d fixture(s) cancelled", club_id, league_id, len(cancelled)
        )
        return cancelled

    def check_player_eligibility(
        self, conn: sqlite3.Connection, league_id: str, player_id: str
    ) -> tuple[bool, list[str]]:
        """
        (eligible, reasons). A player is eligible when they have a profile and are
        on the roster of a club registered in the league.
        """
        league = self._league_repo.get(conn, league_id)
        if league is None:
            return False, ["League not found"]
        if self._profile_repo.get(conn, player_id) is None:
            return False, ["Player profile not found"]
        reasons: list[str] = []
        league_clubs = set(load_league(conn, league_id).all_club_ids())
        player_clubs = set(self._club_repo.list_ids_with_player(conn, player_id))
        if not league_clubs & player_clubs:
            reasons.append("Player is not registered with any club in this league")
        return not reasons, reasons
