"""
Live score tracking and player stat entry for fixtures.

Scores may only change while a fixture is in progress. The latest update is
the fixture's result; every accepted update is also appended to an audit
trail so interim scores can be reviewed later.
"""
from __future__ import annotations

import logging
import sqlite3

from league_engine.errors import InvalidState, ValidationError
from league_engine.models import Fixture, FixtureResult, FixtureStatus, PlayerMatchStat, ScoreUpdate
from league_engine.persistence.repositories import FixtureRepository
from league_engine.services.league_state import load_fixture

logger = logging.getLogger(__name__)

MAX_YELLOW_CARDS = 2


def _check_count(value: object, label: str) -> int:
    """Non-negative int. bool is rejected even though it subclasses int."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{label} must be an integer (got {value!r})")
    if value < 0:
        raise ValidationError(f"{label} cannot be negative (got {value})")
    return value


def winner_for(fixture: Fixture, score_a: int, score_b: int) -> str | None:
    if score_a > score_b:
        return fixture.team_a_id
    if score_a < score_b:
        return fixture.team_b_id
    return None


def validate_player_stats(fixture: Fixture, stats: list[PlayerMatchStat]) -> None:
    """Every line must name one of the fixture's clubs, carry sane counts, and appear once."""
    seen: set[str] = set()
    for s in stats:
        if not s.user_id:
            raise ValidationError("Player stat line is missing user_id")
        if s.user_id in seen:
            raise ValidationError(f"Player {s.user_id} appears more than once")
        seen.add(s.user_id)
        if not fixture.involves(s.club_id):
            raise ValidationError(f"Player {s.user_id} does not belong to a team in this fixture")
        _check_count(s.goals, "goals")
        _check_count(s.assists, "assists")
        _check_count(s.yellow_cards, "yellow_cards")
        if s.yellow_cards > MAX_YELLOW_CARDS:
            raise ValidationError(f"Player {s.user_id} cannot have more than {MAX_YELLOW_CARDS} yellow cards")
        if not isinstance(s.red_card, bool):
            raise ValidationError("red_card must be a boolean")


class ScoreTracker:
    def __init__(self) -> None:
        self._fixture_repo = FixtureRepository()

    def update_scores(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        fixture_id: str,
        score_a: int,
        score_b: int,
    ) -> Fixture:
        """
        Replace the fixture's provisional result. Only while in-progress.
        winner_id is recomputed on every call (None on a level score).
        """
        fixture = load_fixture(conn, league_id, fixture_id)
        if fixture.status != FixtureStatus.IN_PROGRESS:
            raise InvalidState(f"Fixture must be in-progress to update scores (current: {fixture.status})")
        score_a = _check_count(score_a, "score_a")
        score_b = _check_count(score_b, "score_b")
        fixture.result = FixtureResult(
            score_a=score_a, score_b=score_b, winner_id=winner_for(fixture, score_a, score_b)
        )
        try:
            self._fixture_repo.save(conn, fixture, commit=False)
            self._fixture_repo.add_score_update(conn, fixture.id, score_a, score_b, commit=False)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        logger.debug("Fixture %s score %d-%d", fixture.id, score_a, score_b)
        return fixture

    def score_history(self, conn: sqlite3.Connection, league_id: str, fixture_id: str) -> list[ScoreUpdate]:
        fixture = load_fixture(conn, league_id, fixture_id)
        return self._fixture_repo.list_score_updates(conn, fixture.id)

    def record_player_stats(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        fixture_id: str,
        stats: list[PlayerMatchStat],
    ) -> Fixture:
        """
        Store the fixture's player stat lines, replacing earlier ones.
        Must happen before completion; lines are validated against the fixture's clubs.
        """
        fixture = load_fixture(conn, league_id, fixture_id)
        if fixture.status in (FixtureStatus.COMPLETED, FixtureStatus.CANCELLED):
            raise InvalidState(
                f"Cannot record stats for a {fixture.status} fixture; record them before completion"
            )
        validate_player_stats(fixture, stats)
        try:
            # bumps version: a completion that read the old lines fails its compare-and-set
            self._fixture_repo.save(conn, fixture, commit=False)
            self._fixture_repo.replace_player_stats(conn, fixture.id, stats, commit=False)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        fixture.player_stats = list(stats)
        logger.info("Recorded %d player stat line(s) for fixture %s", len(stats), fixture.id)
        return fixture
