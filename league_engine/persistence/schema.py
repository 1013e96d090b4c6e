"""
SQLite schema for league entities.
Migration-friendly: each table created with IF NOT EXISTS.
"""
from __future__ import annotations


def leagues_schema() -> str:
    """status: registration | registration_closed | active | completed."""
    return """
    CREATE TABLE IF NOT EXISTS leagues (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        organizer_id TEXT NOT NULL,
        season TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'registration',
        points_win INTEGER NOT NULL DEFAULT 3,
        points_draw INTEGER NOT NULL DEFAULT 1,
        points_loss INTEGER NOT NULL DEFAULT 0,
        registration_deadline TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS ix_leagues_organizer ON leagues(organizer_id);
    CREATE INDEX IF NOT EXISTS ix_leagues_status ON leagues(status);
    """


def divisions_schema() -> str:
    """Divisions and their member clubs. A club appears at most once per division."""
    return """
    CREATE TABLE IF NOT EXISTS divisions (
        id TEXT PRIMARY KEY,
        league_id TEXT NOT NULL,
        name TEXT NOT NULL,
        sort_order INTEGER NOT NULL,
        FOREIGN KEY (league_id) REFERENCES leagues(id)
    );
    CREATE INDEX IF NOT EXISTS ix_divisions_league ON divisions(league_id);
    CREATE TABLE IF NOT EXISTS division_clubs (
        division_id TEXT NOT NULL,
        club_id TEXT NOT NULL,
        position INTEGER NOT NULL,
        PRIMARY KEY (division_id, club_id),
        FOREIGN KEY (division_id) REFERENCES divisions(id)
    );
    """


def fixtures_schema() -> str:
    """
    One row per fixture, addressable on its own. version guards against lost updates.
    score_a/score_b NULL = no result yet.
    """
    return """
    CREATE TABLE IF NOT EXISTS fixtures (
        id TEXT PRIMARY KEY,
        league_id TEXT NOT NULL,
        round INTEGER NOT NULL CHECK (round >= 1),
        team_a_id TEXT NOT NULL,
        team_b_id TEXT NOT NULL CHECK (team_b_id <> team_a_id),
        scheduled_date TEXT NOT NULL,
        scheduled_time TEXT,
        status TEXT NOT NULL DEFAULT 'scheduled',
        score_a INTEGER CHECK (score_a >= 0),
        score_b INTEGER CHECK (score_b >= 0),
        winner_id TEXT,
        referee_id TEXT,
        pitch_id TEXT,
        stats_applied INTEGER NOT NULL DEFAULT 0,
        version INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (league_id) REFERENCES leagues(id)
    );
    CREATE INDEX IF NOT EXISTS ix_fixtures_league ON fixtures(league_id);
    CREATE INDEX IF NOT EXISTS ix_fixtures_status ON fixtures(league_id, status);
    """


def fixture_player_stats_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS fixture_player_stats (
        fixture_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        club_id TEXT NOT NULL,
        goals INTEGER NOT NULL DEFAULT 0,
        assists INTEGER NOT NULL DEFAULT 0,
        yellow_cards INTEGER NOT NULL DEFAULT 0,
        red_card INTEGER NOT NULL DEFAULT 0,
        line INTEGER NOT NULL,
        PRIMARY KEY (fixture_id, user_id),
        FOREIGN KEY (fixture_id) REFERENCES fixtures(id)
    );
    """


def fixture_score_updates_schema() -> str:
    """Audit trail of interim live scores. Append-only."""
    return """
    CREATE TABLE IF NOT EXISTS fixture_score_updates (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        fixture_id TEXT NOT NULL,
        score_a INTEGER NOT NULL,
        score_b INTEGER NOT NULL,
        recorded_at TEXT NOT NULL,
        FOREIGN KEY (fixture_id) REFERENCES fixtures(id)
    );
    CREATE INDEX IF NOT EXISTS ix_score_updates_fixture ON fixture_score_updates(fixture_id);
    """


def standings_schema() -> str:
    """Cached league table. Replaced wholesale on every recompute."""
    return """
    CREATE TABLE IF NOT EXISTS standings (
        league_id TEXT NOT NULL,
        club_id TEXT NOT NULL,
        club_name TEXT NOT NULL,
        position INTEGER NOT NULL,
        matches_played INTEGER NOT NULL,
        matches_won INTEGER NOT NULL,
        matches_drawn INTEGER NOT NULL,
        matches_lost INTEGER NOT NULL,
        goals_for INTEGER NOT NULL,
        goals_against INTEGER NOT NULL,
        goal_difference INTEGER NOT NULL,
        points INTEGER NOT NULL,
        PRIMARY KEY (league_id, club_id),
        FOREIGN KEY (league_id) REFERENCES leagues(id)
    );
    """


def clubs_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS clubs (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        current_league_id TEXT,
        created_at TEXT NOT NULL
    );
    CREATE TABLE IF NOT EXISTS club_players (
        club_id TEXT NOT NULL,
        player_id TEXT NOT NULL,
        PRIMARY KEY (club_id, player_id),
        FOREIGN KEY (club_id) REFERENCES clubs(id)
    );
    CREATE INDEX IF NOT EXISTS ix_club_players_player ON club_players(player_id);
    """


def player_profiles_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS player_profiles (
        user_id TEXT PRIMARY KEY,
        is_public INTEGER NOT NULL DEFAULT 0,
        goals INTEGER NOT NULL DEFAULT 0,
        assists INTEGER NOT NULL DEFAULT 0,
        matches_played INTEGER NOT NULL DEFAULT 0,
        matches_won INTEGER NOT NULL DEFAULT 0,
        matches_lost INTEGER NOT NULL DEFAULT 0,
        matches_drawn INTEGER NOT NULL DEFAULT 0,
        yellow_cards INTEGER NOT NULL DEFAULT 0,
        red_cards INTEGER NOT NULL DEFAULT 0,
        updated_at TEXT NOT NULL
    );
    """


def all_schema_sql() -> str:
    """Combine all schema DDL for a single execution."""
    return "\n".join([
        leagues_schema(),
        divisions_schema(),
        fixtures_schema(),
        fixture_player_stats_schema(),
        fixture_score_updates_schema(),
        standings_schema(),
        clubs_schema(),
        player_profiles_schema(),
    ])
