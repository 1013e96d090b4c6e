"""
Data models for the league engine.
Domain objects only; no persistence or API logic.

A league embeds divisions, fixtures and a cached standings table, but each
fixture is stored and versioned as its own record.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from league_engine.config import (
    DEFAULT_POINTS_DRAW,
    DEFAULT_POINTS_LOSS,
    DEFAULT_POINTS_WIN,
)
from league_engine.errors import ValidationError


# ---------- League status (state machine) ----------
class LeagueStatus(str, Enum):
    """League lifecycle: registration → registration_closed → active → completed."""
    REGISTRATION = "registration"  # Clubs may register
    REGISTRATION_CLOSED = "registration_closed"  # Fixtures generated, not yet active
    ACTIVE = "active"
    COMPLETED = "completed"


# ---------- Fixture status ----------
class FixtureStatus(str, Enum):
    """Fixture lifecycle: scheduled → in-progress → completed; cancelled from any non-completed state."""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# ---------- Points system ----------
@dataclass(frozen=True)
class PointsSystem:
    win: int = DEFAULT_POINTS_WIN
    draw: int = DEFAULT_POINTS_DRAW
    loss: int = DEFAULT_POINTS_LOSS

    def to_dict(self) -> dict[str, int]:
        return {"win": self.win, "draw": self.draw, "loss": self.loss}


# ---------- Division ----------
@dataclass
class Division:
    """Named grouping of clubs. club_ids is ordered by registration and unique."""
    id: str
    league_id: str
    name: str
    order: int
    club_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "league_id": self.league_id,
            "name": self.name,
            "order": self.order,
            "club_ids": list(self.club_ids),
        }


# ---------- Fixture ----------
@dataclass
class FixtureResult:
    score_a: int
    score_b: int
    winner_id: str | None = None  # None on a draw

    def to_dict(self) -> dict[str, Any]:
        return {"score_a": self.score_a, "score_b": self.score_b, "winner_id": self.winner_id}


@dataclass
class PlayerMatchStat:
    """One player's line in a fixture. club_id must be one of the fixture's two teams."""
    user_id: str
    club_id: str
    goals: int = 0
    assists: int = 0
    yellow_cards: int = 0
    red_card: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "club_id": self.club_id,
            "goals": self.goals,
            "assists": self.assists,
            "yellow_cards": self.yellow_cards,
            "red_card": self.red_card,
        }


@dataclass
class Fixture:
    """
    A single match between two clubs in a league round.
    Created only by the fixture generator. version is bumped on every write and
    used for compare-and-set updates. stats_applied marks that player stats have
    been folded into player profiles.
    """
    id: str
    league_id: str
    round: int
    team_a_id: str
    team_b_id: str
    scheduled_date: date
    status: str  # FixtureStatus value
    scheduled_time: str | None = None  # "HH:MM"
    result: FixtureResult | None = None
    player_stats: list[PlayerMatchStat] = field(default_factory=list)
    referee_id: str | None = None
    pitch_id: str | None = None
    stats_applied: bool = False
    version: int = 0

    def __post_init__(self) -> None:
        if self.team_a_id == self.team_b_id:
            raise ValidationError(f"Fixture {self.id}: a club cannot play itself ({self.team_a_id})")

    def involves(self, club_id: str) -> bool:
        return club_id in (self.team_a_id, self.team_b_id)

    def outcome_for(self, club_id: str) -> str | None:
        """'won' | 'drawn' | 'lost' for club_id, or None without a result."""
        if self.result is None:
            return None
        if self.result.winner_id is None:
            return "drawn"
        return "won" if self.result.winner_id == club_id else "lost"

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "league_id": self.league_id,
            "round": self.round,
            "team_a_id": self.team_a_id,
            "team_b_id": self.team_b_id,
            "scheduled_date": self.scheduled_date.isoformat(),
            "status": self.status,
            "stats_applied": self.stats_applied,
            "version": self.version,
        }
        if self.scheduled_time is not None:
            d["scheduled_time"] = self.scheduled_time
        if self.result is not None:
            d["result"] = self.result.to_dict()
        if self.player_stats:
            d["player_stats"] = [s.to_dict() for s in self.player_stats]
        if self.referee_id is not None:
            d["referee_id"] = self.referee_id
        if self.pitch_id is not None:
            d["pitch_id"] = self.pitch_id
        return d


@dataclass
class ScoreUpdate:
    """One interim score recorded while a fixture was live."""
    fixture_id: str
    score_a: int
    score_b: int
    recorded_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "fixture_id": self.fixture_id,
            "score_a": self.score_a,
            "score_b": self.score_b,
            "recorded_at": self.recorded_at.isoformat(),
        }


# ---------- Standings ----------
@dataclass
class StandingsEntry:
    club_id: str
    club_name: str
    position: int = 0
    matches_played: int = 0
    matches_won: int = 0
    matches_drawn: int = 0
    matches_lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    goal_difference: int = 0
    points: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "club_id": self.club_id,
            "club_name": self.club_name,
            "position": self.position,
            "matches_played": self.matches_played,
            "matches_won": self.matches_won,
            "matches_drawn": self.matches_drawn,
            "matches_lost": self.matches_lost,
            "goals_for": self.goals_for,
            "goals_against": self.goals_against,
            "goal_difference": self.goal_difference,
            "points": self.points,
        }


# ---------- League ----------
@dataclass
class League:
    """
    Competition container owned by an organizer.
    divisions, fixtures and standings are child data loaded alongside the league.
    """
    id: str
    name: str
    organizer_id: str
    season: str
    status: str  # LeagueStatus value
    created_at: datetime
    updated_at: datetime
    points_system: PointsSystem = field(default_factory=PointsSystem)
    registration_deadline: datetime | None = None
    divisions: list[Division] = field(default_factory=list)
    fixtures: list[Fixture] = field(default_factory=list)
    standings: list[StandingsEntry] = field(default_factory=list)

    def all_club_ids(self) -> list[str]:
        """Distinct club ids across divisions, in division order then registration order."""
        seen: set[str] = set()
        out: list[str] = []
        for div in sorted(self.divisions, key=lambda d: d.order):
            for cid in div.club_ids:
                if cid not in seen:
                    seen.add(cid)
                    out.append(cid)
        return out

    def to_dict(self, include_children: bool = True) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "organizer_id": self.organizer_id,
            "season": self.season,
            "status": self.status,
            "points_system": self.points_system.to_dict(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
        if self.registration_deadline is not None:
            d["registration_deadline"] = self.registration_deadline.isoformat()
        if include_children:
            d["divisions"] = [div.to_dict() for div in self.divisions]
            d["fixtures"] = [f.to_dict() for f in self.fixtures]
            d["standings"] = [s.to_dict() for s in self.standings]
        return d


@dataclass
class LeagueFilter:
    """Typed query filter for listing leagues. None means 'any'."""
    status: str | None = None
    organizer_id: str | None = None
    season: str | None = None


# ---------- Collaborators: clubs and player profiles ----------
@dataclass
class Club:
    id: str
    name: str
    player_ids: list[str] = field(default_factory=list)
    current_league_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"id": self.id, "name": self.name, "player_ids": list(self.player_ids)}
        if self.current_league_id is not None:
            d["current_league_id"] = self.current_league_id
        return d


@dataclass
class PlayerStats:
    """Cumulative career stats stored on a player profile."""
    goals: int = 0
    assists: int = 0
    matches_played: int = 0
    matches_won: int = 0
    matches_lost: int = 0
    matches_drawn: int = 0
    yellow_cards: int = 0
    red_cards: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "goals": self.goals,
            "assists": self.assists,
            "matches_played": self.matches_played,
            "matches_won": self.matches_won,
            "matches_lost": self.matches_lost,
            "matches_drawn": self.matches_drawn,
            "yellow_cards": self.yellow_cards,
            "red_cards": self.red_cards,
        }


@dataclass
class PlayerProfile:
    user_id: str
    is_public: bool
    stats: PlayerStats
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "is_public": self.is_public,
            "stats": self.stats.to_dict(),
            "updated_at": self.updated_at.isoformat(),
        }
