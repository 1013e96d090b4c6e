"""
Tests for live score updates, the score audit trail and player stat entry.
"""
from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from league_engine.errors import InvalidState, ValidationError
from league_engine.models import FixtureStatus, PlayerMatchStat
from league_engine.persistence.db import get_connection, init_db, set_db_path
from league_engine.persistence.repositories import ClubRepository, FixtureRepository
from league_engine.services.fixture_lifecycle import FixtureLifecycle
from league_engine.services.league_service import LeagueService
from league_engine.services.score_tracker import ScoreTracker


@pytest.fixture
def db_conn(tmp_path):
    db_path = tmp_path / "scores_test.db"
    set_db_path(db_path)
    init_db(db_path=db_path)
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def tracker():
    return ScoreTracker()


@pytest.fixture
def live_fixture(db_conn):
    """(league_id, fixture) for an in-progress fixture between two clubs."""
    svc = LeagueService()
    clubs = ClubRepository()
    league = svc.create_league(db_conn, "Midweek League", "org-1", "2025")
    for name in ("Rovers", "Wanderers"):
        svc.register_club(db_conn, league.id, clubs.create(db_conn, name).id)
    fixtures = svc.generate_fixtures(db_conn, league.id, scheduled_date=date(2025, 3, 1))
    fixture = FixtureLifecycle().start(db_conn, league.id, fixtures[0].id)
    return league.id, fixture


def test_update_scores_sets_result_and_winner(db_conn, tracker, live_fixture):
    league_id, f = live_fixture
    updated = tracker.update_scores(db_conn, league_id, f.id, 2, 1)
    assert updated.result.score_a == 2
    assert updated.result.winner_id == f.team_a_id
    stored = FixtureRepository().get(db_conn, f.id)
    assert (stored.result.score_a, stored.result.score_b) == (2, 1)
    assert stored.status == FixtureStatus.IN_PROGRESS


def test_last_write_wins_and_winner_recomputed(db_conn, tracker, live_fixture):
    league_id, f = live_fixture
    tracker.update_scores(db_conn, league_id, f.id, 1, 0)
    tracker.update_scores(db_conn, league_id, f.id, 1, 2)
    tracker.update_scores(db_conn, league_id, f.id, 2, 2)
    stored = FixtureRepository().get(db_conn, f.id)
    assert (stored.result.score_a, stored.result.score_b) == (2, 2)
    assert stored.result.winner_id is None


def test_score_history_is_retained(db_conn, tracker, live_fixture):
    league_id, f = live_fixture
    tracker.update_scores(db_conn, league_id, f.id, 1, 0)
    tracker.update_scores(db_conn, league_id, f.id, 1, 1)
    history = tracker.score_history(db_conn, league_id, f.id)
    assert [(u.score_a, u.score_b) for u in history] == [(1, 0), (1, 1)]


def test_negative_score_rejected(db_conn, tracker, live_fixture):
    league_id, f = live_fixture
    with pytest.raises(ValidationError):
        tracker.update_scores(db_conn, league_id, f.id, -1, 2)
    assert FixtureRepository().get(db_conn, f.id).result is None
    assert tracker.score_history(db_conn, league_id, f.id) == []


@pytest.mark.parametrize("bad", [1.5, "2", True, None])
def test_non_integer_score_rejected(db_conn, tracker, live_fixture, bad):
    league_id, f = live_fixture
    with pytest.raises(ValidationError):
        tracker.update_scores(db_conn, league_id, f.id, bad, 0)


def test_update_scores_requires_in_progress(db_conn, tracker, live_fixture):
    league_id, f = live_fixture
    tracker.update_scores(db_conn, league_id, f.id, 3, 0)
    FixtureLifecycle().complete(db_conn, league_id, f.id)
    with pytest.raises(InvalidState):
        tracker.update_scores(db_conn, league_id, f.id, 3, 1)


def test_update_scores_on_scheduled_fixture_fails(db_conn, tracker, live_fixture):
    league_id, _ = live_fixture
    scheduled = FixtureRepository().list_by_league(db_conn, league_id, status=FixtureStatus.SCHEDULED)[0]
    with pytest.raises(InvalidState):
        tracker.update_scores(db_conn, league_id, scheduled.id, 1, 0)


def test_record_player_stats_replaces_previous(db_conn, tracker, live_fixture):
    league_id, f = live_fixture
    tracker.record_player_stats(db_conn, league_id, f.id, [
        PlayerMatchStat(user_id="p1", club_id=f.team_a_id, goals=1),
    ])
    tracker.record_player_stats(db_conn, league_id, f.id, [
        PlayerMatchStat(user_id="p2", club_id=f.team_b_id, assists=2),
        PlayerMatchStat(user_id="p3", club_id=f.team_a_id, red_card=True),
    ])
    stored = FixtureRepository().get(db_conn, f.id)
    assert [s.user_id for s in stored.player_stats] == ["p2", "p3"]
    assert stored.player_stats[1].red_card is True


def test_record_player_stats_allowed_before_kickoff(db_conn, tracker, live_fixture):
    league_id, _ = live_fixture
    scheduled = FixtureRepository().list_by_league(db_conn, league_id, status=FixtureStatus.SCHEDULED)[0]
    fixture = tracker.record_player_stats(db_conn, league_id, scheduled.id, [
        PlayerMatchStat(user_id="p1", club_id=scheduled.team_a_id),
    ])
    assert len(fixture.player_stats) == 1


@pytest.mark.parametrize(
    "line",
    [
        PlayerMatchStat(user_id="p1", club_id="some-other-club"),
        PlayerMatchStat(user_id="p1", club_id="", goals=1),
        PlayerMatchStat(user_id="", club_id="CLUB_A"),
        PlayerMatchStat(user_id="p1", club_id="CLUB_A", goals=-1),
        PlayerMatchStat(user_id="p1", club_id="CLUB_A", yellow_cards=3),
        PlayerMatchStat(user_id="p1", club_id="CLUB_A", red_card="yes"),
    ],
)
def test_record_player_stats_validation(db_conn, tracker, live_fixture, line):
    league_id, f = live_fixture
    if line.club_id == "CLUB_A":
        line.club_id = f.team_a_id
    with pytest.raises(ValidationError):
        tracker.record_player_stats(db_conn, league_id, f.id, [line])


def test_record_player_stats_duplicate_player(db_conn, tracker, live_fixture):
    league_id, f = live_fixture
    with pytest.raises(ValidationError):
        tracker.record_player_stats(db_conn, league_id, f.id, [
            PlayerMatchStat(user_id="p1", club_id=f.team_a_id),
            PlayerMatchStat(user_id="p1", club_id=f.team_b_id),
        ])


def test_record_player_stats_after_completion_fails(db_conn, tracker, live_fixture):
    league_id, f = live_fixture
    FixtureLifecycle().record_result(db_conn, league_id, f.id, 0, 0)
    with pytest.raises(InvalidState):
        tracker.record_player_stats(db_conn, league_id, f.id, [
            PlayerMatchStat(user_id="p1", club_id=f.team_a_id),
        ])
