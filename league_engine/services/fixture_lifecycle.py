"""
Fixture state machine: scheduled → in-progress → completed, with cancelled
reachable from any state except completed.

Completion marks the fixture and rebuilds the standings in one transaction,
then folds recorded player stats into profiles. A failure in that last step
is logged and never undoes the completion.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta

from league_engine import config
from league_engine.errors import ConcurrentUpdateError, InvalidState, ValidationError
from league_engine.models import Fixture, FixtureStatus, StandingsEntry
from league_engine.persistence.repositories import FixtureRepository
from league_engine.services.league_state import load_fixture, load_league, refresh_standings
from league_engine.services.player_stats import AggregationReport, PlayerStatsAggregator
from league_engine.services.score_tracker import ScoreTracker

logger = logging.getLogger(__name__)


# ---------- Valid transitions ----------

_VALID_TRANSITIONS: dict[str, set[str]] = {
    FixtureStatus.SCHEDULED: {FixtureStatus.IN_PROGRESS, FixtureStatus.CANCELLED},
    FixtureStatus.IN_PROGRESS: {FixtureStatus.COMPLETED, FixtureStatus.CANCELLED},
    FixtureStatus.COMPLETED: set(),
    FixtureStatus.CANCELLED: set(),
}


def can_transition(current: str, new_status: str) -> bool:
    return new_status in _VALID_TRANSITIONS.get(current, set())


def assert_transition(fixture: Fixture, new_status: str) -> None:
    if not can_transition(fixture.status, new_status):
        raise InvalidState(
            f"Invalid fixture transition for {fixture.id}: {fixture.status} -> {FixtureStatus(new_status).value}"
        )


def kickoff_at(fixture: Fixture) -> datetime | None:
    """Local kick-off datetime, or None when the fixture has no scheduled time."""
    if not fixture.scheduled_time:
        return None
    hours, _, minutes = fixture.scheduled_time.partition(":")
    return datetime.combine(fixture.scheduled_date, datetime.min.time()).replace(
        hour=int(hours), minute=int(minutes or 0)
    )


def is_due(fixture: Fixture, now: datetime, window: timedelta) -> bool:
    """
    With a kick-off time: due while now is within [kick-off, kick-off + window].
    Without one: due once the scheduled date is today or earlier.
    """
    start = kickoff_at(fixture)
    if start is None:
        return fixture.scheduled_date <= now.date()
    return start <= now <= start + window


@dataclass
class CompletionOutcome:
    fixture: Fixture
    standings: list[StandingsEntry]
    aggregation: AggregationReport | None = None


# ---------- FixtureLifecycle ----------


class FixtureLifecycle:
    """
    Status transitions for a single fixture. Every write is a versioned
    compare-and-set, so a stale read fails with ConcurrentUpdateError.
    """

    def __init__(
        self,
        aggregator: PlayerStatsAggregator | None = None,
        score_tracker: ScoreTracker | None = None,
    ) -> None:
        self._fixture_repo = FixtureRepository()
        self._aggregator = aggregator or PlayerStatsAggregator()
        self._score_tracker = score_tracker or ScoreTracker()

    def start(self, conn: sqlite3.Connection, league_id: str, fixture_id: str) -> Fixture:
        """scheduled -> in-progress."""
        fixture = load_fixture(conn, league_id, fixture_id)
        if fixture.status != FixtureStatus.SCHEDULED:
            raise InvalidState(f"Fixture must be scheduled to start (current: {fixture.status})")
        fixture.status = FixtureStatus.IN_PROGRESS.value
        self._fixture_repo.save(conn, fixture)
        logger.info("Fixture %s started (%s vs %s)", fixture.id, fixture.team_a_id, fixture.team_b_id)
        return fixture

    def auto_advance(
        self, conn: sqlite3.Connection, league_id: str, now: datetime | None = None
    ) -> int:
        """
        Promote due scheduled fixtures to in-progress. Returns how many were promoted.
        Best effort: only runs when called, and skips fixtures another writer changed meanwhile.
        now is local wall-clock time; an aware datetime is converted to local time.
        """
        if now is None:
            now = datetime.now()
        elif now.tzinfo is not None:
            now = now.astimezone().replace(tzinfo=None)
        window = timedelta(hours=config.AUTO_ADVANCE_WINDOW_HOURS)
        league = load_league(conn, league_id)
        promoted = 0
        try:
            for fixture in league.fixtures:
                if fixture.status != FixtureStatus.SCHEDULED or not is_due(fixture, now, window):
                    continue
                fixture.status = FixtureStatus.IN_PROGRESS.value
                try:
                    self._fixture_repo.save(conn, fixture, commit=False)
                except ConcurrentUpdateError:
                    logger.warning("Auto-advance skipped fixture %s: modified concurrently", fixture.id)
                    continue
                promoted += 1
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        if promoted:
            logger.info("Auto-advanced %d fixture(s) in league %s", promoted, league_id)
        return promoted

    def complete(self, conn: sqlite3.Connection, league_id: str, fixture_id: str) -> CompletionOutcome:
        """
        in-progress -> completed. Requires a recorded result.
        Status change and standings refresh commit together or not at all.
        """
        fixture = load_fixture(conn, league_id, fixture_id)
        if fixture.status != FixtureStatus.IN_PROGRESS:
            raise InvalidState(f"Fixture must be in-progress to complete (current: {fixture.status})")
        if fixture.result is None:
            raise ValidationError(f"Fixture {fixture.id} must have scores recorded before completion")
        fixture.status = FixtureStatus.COMPLETED.value
        try:
            self._fixture_repo.save(conn, fixture, commit=False)
            table = refresh_standings(conn, league_id, commit=False)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        logger.info(
            "Fixture %s completed %d-%d", fixture.id, fixture.result.score_a, fixture.result.score_b
        )
        outcome = CompletionOutcome(fixture=fixture, standings=table)
        if fixture.player_stats:
            try:
                outcome.aggregation = self._aggregator.apply_fixture(conn, league_id, fixture.id)
            except Exception:
                # completion stands; stats_applied stays false so apply_fixture can be retried
                logger.exception("Player stats aggregation failed for fixture %s", fixture.id)
            outcome.fixture = load_fixture(conn, league_id, fixture.id)
        return outcome

    def cancel(self, conn: sqlite3.Connection, league_id: str, fixture_id: str) -> Fixture:
        """Any state except completed -> cancelled. Cancelling twice is a no-op."""
        fixture = load_fixture(conn, league_id, fixture_id)
        if fixture.status == FixtureStatus.CANCELLED:
            return fixture
        assert_transition(fixture, FixtureStatus.CANCELLED)
        fixture.status = FixtureStatus.CANCELLED.value
        self._fixture_repo.save(conn, fixture)
        logger.info("Fixture %s cancelled", fixture.id)
        return fixture

    def record_result(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        fixture_id: str,
        score_a: int,
        score_b: int,
    ) -> CompletionOutcome:
        """Final score in one call: update_scores then complete. Fixture must be in-progress."""
        self._score_tracker.update_scores(conn, league_id, fixture_id, score_a, score_b)
        return self.complete(conn, league_id, fixture_id)
