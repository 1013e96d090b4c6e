"""
Tests for the fixture state machine: start, auto-advance, complete, cancel,
and versioned writes.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from league_engine.errors import ConcurrentUpdateError, InvalidState, NotFound, ValidationError
from league_engine.models import FixtureStatus, PlayerMatchStat
from league_engine.persistence.db import get_connection, init_db, set_db_path
from league_engine.persistence.repositories import (
    ClubRepository,
    FixtureRepository,
    PlayerProfileRepository,
    StandingsRepository,
)
from league_engine.services.fixture_lifecycle import FixtureLifecycle, can_transition, is_due
from league_engine.services.league_service import LeagueService
from league_engine.services.player_stats import PlayerStatsAggregator
from league_engine.services.score_tracker import ScoreTracker

MATCH_DAY = date(2025, 8, 16)


@pytest.fixture
def db_conn(tmp_path):
    db_path = tmp_path / "lifecycle_test.db"
    set_db_path(db_path)
    init_db(db_path=db_path)
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def lifecycle():
    return FixtureLifecycle()


@pytest.fixture
def league_with_fixtures(db_conn):
    """League with four registered clubs and a generated schedule."""
    svc = LeagueService()
    clubs = ClubRepository()
    league = svc.create_league(db_conn, "Sunday League", "org-1", "2025")
    for name in ("Athletic", "Borough", "City", "Dynamo"):
        club = clubs.create(db_conn, name, player_ids=[f"{name.lower()}-p1"])
        svc.register_club(db_conn, league.id, club.id)
    fixtures = svc.generate_fixtures(db_conn, league.id, scheduled_date=MATCH_DAY)
    return league.id, fixtures


def _first(league_with_fixtures):
    league_id, fixtures = league_with_fixtures
    return league_id, fixtures[0]


def test_transition_table():
    assert can_transition(FixtureStatus.SCHEDULED, FixtureStatus.IN_PROGRESS)
    assert can_transition(FixtureStatus.IN_PROGRESS, FixtureStatus.COMPLETED)
    assert can_transition(FixtureStatus.SCHEDULED, FixtureStatus.CANCELLED)
    assert not can_transition(FixtureStatus.SCHEDULED, FixtureStatus.COMPLETED)
    assert not can_transition(FixtureStatus.COMPLETED, FixtureStatus.CANCELLED)


def test_start_scheduled_fixture(db_conn, lifecycle, league_with_fixtures):
    league_id, f = _first(league_with_fixtures)
    started = lifecycle.start(db_conn, league_id, f.id)
    assert started.status == FixtureStatus.IN_PROGRESS
    stored = FixtureRepository().get(db_conn, f.id)
    assert stored.status == FixtureStatus.IN_PROGRESS
    assert stored.version == f.version + 1


def test_start_twice_fails(db_conn, lifecycle, league_with_fixtures):
    league_id, f = _first(league_with_fixtures)
    lifecycle.start(db_conn, league_id, f.id)
    with pytest.raises(InvalidState):
        lifecycle.start(db_conn, league_id, f.id)


def test_start_unknown_fixture(db_conn, lifecycle, league_with_fixtures):
    league_id, _ = league_with_fixtures
    with pytest.raises(NotFound):
        lifecycle.start(db_conn, league_id, "no-such-fixture")
    with pytest.raises(NotFound):
        lifecycle.start(db_conn, "no-such-league", "no-such-fixture")


def test_complete_requires_in_progress(db_conn, lifecycle, league_with_fixtures):
    league_id, f = _first(league_with_fixtures)
    with pytest.raises(InvalidState):
        lifecycle.complete(db_conn, league_id, f.id)


def test_complete_requires_result(db_conn, lifecycle, league_with_fixtures):
    league_id, f = _first(league_with_fixtures)
    lifecycle.start(db_conn, league_id, f.id)
    with pytest.raises(ValidationError):
        lifecycle.complete(db_conn, league_id, f.id)
    assert FixtureRepository().get(db_conn, f.id).status == FixtureStatus.IN_PROGRESS


def test_complete_updates_standings(db_conn, lifecycle, league_with_fixtures):
    league_id, f = _first(league_with_fixtures)
    lifecycle.start(db_conn, league_id, f.id)
    ScoreTracker().update_scores(db_conn, league_id, f.id, 2, 1)
    outcome = lifecycle.complete(db_conn, league_id, f.id)
    assert outcome.fixture.status == FixtureStatus.COMPLETED
    assert outcome.aggregation is None
    table = {e.club_id: e for e in StandingsRepository().list_by_league(db_conn, league_id)}
    home, away = table[f.team_a_id], table[f.team_b_id]
    assert (home.matches_won, home.points, home.goals_for, home.goals_against) == (1, 3, 2, 1)
    assert (away.matches_lost, away.points, away.goals_for, away.goals_against) == (1, 0, 1, 2)
    assert home.position == 1
    assert sum(e.matches_played for e in table.values()) == 2


def test_complete_applies_player_stats(db_conn, lifecycle, league_with_fixtures):
    league_id, f = _first(league_with_fixtures)
    lifecycle.start(db_conn, league_id, f.id)
    ScoreTracker().update_scores(db_conn, league_id, f.id, 1, 0)
    ScoreTracker().record_player_stats(db_conn, league_id, f.id, [
        PlayerMatchStat(user_id="p-home", club_id=f.team_a_id, goals=1),
        PlayerMatchStat(user_id="p-away", club_id=f.team_b_id, yellow_cards=1),
    ])
    outcome = lifecycle.complete(db_conn, league_id, f.id)
    assert outcome.aggregation is not None
    assert outcome.aggregation.updated == ["p-home", "p-away"]
    assert outcome.fixture.stats_applied is True
    profiles = PlayerProfileRepository()
    assert profiles.get(db_conn, "p-home").stats.matches_won == 1
    assert profiles.get(db_conn, "p-away").stats.matches_lost == 1


class _FailingAggregator(PlayerStatsAggregator):
    def apply_fixture(self, conn, league_id, fixture_id):
        raise RuntimeError("profile store offline")


def test_aggregation_failure_does_not_undo_completion(db_conn, league_with_fixtures):
    league_id, f = _first(league_with_fixtures)
    lifecycle = FixtureLifecycle(aggregator=_FailingAggregator())
    lifecycle.start(db_conn, league_id, f.id)
    ScoreTracker().update_scores(db_conn, league_id, f.id, 0, 0)
    ScoreTracker().record_player_stats(db_conn, league_id, f.id, [
        PlayerMatchStat(user_id="p1", club_id=f.team_a_id),
    ])
    outcome = lifecycle.complete(db_conn, league_id, f.id)
    assert outcome.aggregation is None
    stored = FixtureRepository().get(db_conn, f.id)
    assert stored.status == FixtureStatus.COMPLETED
    assert stored.stats_applied is False


def test_record_result_completes(db_conn, lifecycle, league_with_fixtures):
    league_id, f = _first(league_with_fixtures)
    lifecycle.start(db_conn, league_id, f.id)
    outcome = lifecycle.record_result(db_conn, league_id, f.id, 0, 3)
    assert outcome.fixture.status == FixtureStatus.COMPLETED
    assert outcome.fixture.result.winner_id == f.team_b_id


def test_cancel(db_conn, lifecycle, league_with_fixtures):
    league_id, fixtures = league_with_fixtures
    cancelled = lifecycle.cancel(db_conn, league_id, fixtures[0].id)
    assert cancelled.status == FixtureStatus.CANCELLED
    again = lifecycle.cancel(db_conn, league_id, fixtures[0].id)
    assert again.version == cancelled.version
    lifecycle.start(db_conn, league_id, fixtures[1].id)
    assert lifecycle.cancel(db_conn, league_id, fixtures[1].id).status == FixtureStatus.CANCELLED


def test_cancel_completed_fails(db_conn, lifecycle, league_with_fixtures):
    league_id, f = _first(league_with_fixtures)
    lifecycle.start(db_conn, league_id, f.id)
    lifecycle.record_result(db_conn, league_id, f.id, 1, 1)
    with pytest.raises(InvalidState):
        lifecycle.cancel(db_conn, league_id, f.id)


def test_cancelled_fixture_cannot_start(db_conn, lifecycle, league_with_fixtures):
    league_id, f = _first(league_with_fixtures)
    lifecycle.cancel(db_conn, league_id, f.id)
    with pytest.raises(InvalidState):
        lifecycle.start(db_conn, league_id, f.id)


def test_stale_write_raises_concurrent_update(db_conn, league_with_fixtures):
    _, f = _first(league_with_fixtures)
    repo = FixtureRepository()
    first = repo.get(db_conn, f.id)
    second = repo.get(db_conn, f.id)
    first.status = FixtureStatus.IN_PROGRESS.value
    repo.save(db_conn, first)
    second.status = FixtureStatus.CANCELLED.value
    with pytest.raises(ConcurrentUpdateError):
        repo.save(db_conn, second)
    assert repo.get(db_conn, f.id).status == FixtureStatus.IN_PROGRESS


def test_is_due_windows(league_with_fixtures):
    _, f = _first(league_with_fixtures)
    window = timedelta(hours=2)
    assert is_due(f, datetime(2025, 8, 16, 0, 1), window)
    assert not is_due(f, datetime(2025, 8, 15, 23, 59), window)
    f.scheduled_time = "15:00"
    assert not is_due(f, datetime(2025, 8, 16, 14, 59), window)
    assert is_due(f, datetime(2025, 8, 16, 15, 0), window)
    assert is_due(f, datetime(2025, 8, 16, 17, 0), window)
    assert not is_due(f, datetime(2025, 8, 16, 17, 1), window)


def test_auto_advance(db_conn, lifecycle, league_with_fixtures):
    league_id, fixtures = league_with_fixtures
    svc = LeagueService()
    svc.update_fixture_schedule(db_conn, league_id, fixtures[0].id, scheduled_time="15:00")
    svc.update_fixture_schedule(db_conn, league_id, fixtures[1].id, scheduled_date=date(2025, 9, 1))
    promoted = lifecycle.auto_advance(db_conn, league_id, now=datetime(2025, 8, 16, 12, 0))
    # every other fixture has no time and is dated MATCH_DAY
    assert promoted == len(fixtures) - 2
    repo = FixtureRepository()
    assert repo.get(db_conn, fixtures[0].id).status == FixtureStatus.SCHEDULED
    assert repo.get(db_conn, fixtures[1].id).status == FixtureStatus.SCHEDULED
    assert repo.get(db_conn, fixtures[2].id).status == FixtureStatus.IN_PROGRESS
    assert lifecycle.auto_advance(db_conn, league_id, now=datetime(2025, 8, 16, 15, 30)) == 1
    assert repo.get(db_conn, fixtures[0].id).status == FixtureStatus.IN_PROGRESS
