"""
Fold a completed fixture's player stat lines into cumulative player profiles.

Applied at most once per fixture: the fixture's stats_applied marker is set in
the same transaction as the profile updates, and a fixture already marked is
skipped. A failure for one player is logged and the others still update.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field

from league_engine.errors import InvalidState
from league_engine.models import Fixture, FixtureStatus, PlayerMatchStat, PlayerStats
from league_engine.persistence.db import begin_immediate
from league_engine.persistence.repositories import FixtureRepository, PlayerProfileRepository
from league_engine.services.league_state import load_fixture

logger = logging.getLogger(__name__)


@dataclass
class AggregationReport:
    fixture_id: str
    applied: bool
    updated: list[str] = field(default_factory=list)  # user ids
    failed: list[str] = field(default_factory=list)
    skipped_reason: str | None = None

    def to_dict(self) -> dict[str, object]:
        d: dict[str, object] = {
            "fixture_id": self.fixture_id,
            "applied": self.applied,
            "updated": list(self.updated),
            "failed": list(self.failed),
        }
        if self.skipped_reason is not None:
            d["skipped_reason"] = self.skipped_reason
        return d


def accumulate(current: PlayerStats, fixture: Fixture, line: PlayerMatchStat) -> PlayerStats:
    """New cumulative stats after one fixture line. Outcome comes from the fixture winner vs the player's club."""
    outcome = fixture.outcome_for(line.club_id)
    return PlayerStats(
        goals=current.goals + line.goals,
        assists=current.assists + line.assists,
        matches_played=current.matches_played + 1,
        matches_won=current.matches_won + (1 if outcome == "won" else 0),
        matches_lost=current.matches_lost + (1 if outcome == "lost" else 0),
        matches_drawn=current.matches_drawn + (1 if outcome == "drawn" else 0),
        yellow_cards=current.yellow_cards + line.yellow_cards,
        red_cards=current.red_cards + (1 if line.red_card else 0),
    )


class PlayerStatsAggregator:
    def __init__(self, profile_repo: PlayerProfileRepository | None = None) -> None:
        self._profile_repo = profile_repo or PlayerProfileRepository()
        self._fixture_repo = FixtureRepository()

    def apply_fixture(
        self, conn: sqlite3.Connection, league_id: str, fixture_id: str
    ) -> AggregationReport:
        """
        Add every stat line of a completed fixture to its player's profile,
        creating zeroed profiles as needed. No-op if already applied or no lines.
        Raises InvalidState if the fixture is not completed, ConcurrentUpdateError
        if another writer applied or changed the fixture meanwhile (nothing is kept).
        """
        begin_immediate(conn)
        try:
            fixture = load_fixture(conn, league_id, fixture_id)
            if fixture.status != FixtureStatus.COMPLETED:
                raise InvalidState(f"Fixture must be completed to update player stats (current: {fixture.status})")
        except Exception:
            conn.rollback()
            raise
        if not fixture.player_stats:
            conn.rollback()
            return AggregationReport(fixture_id=fixture.id, applied=False, skipped_reason="no player stats")
        if fixture.stats_applied:
            conn.rollback()
            logger.warning("Player stats for fixture %s already applied; skipping", fixture.id)
            return AggregationReport(fixture_id=fixture.id, applied=False, skipped_reason="already applied")

        report = AggregationReport(fixture_id=fixture.id, applied=True)
        try:
            for line in fixture.player_stats:
                try:
                    profile = self._profile_repo.get(conn, line.user_id)
                    current = profile.stats if profile is not None else PlayerStats()
                    updated = accumulate(current, fixture, line)
                    self._profile_repo.save(conn, line.user_id, {"stats": updated}, commit=False)
                    report.updated.append(line.user_id)
                except Exception:
                    logger.exception("Error updating stats for player %s (fixture %s)", line.user_id, fixture.id)
                    report.failed.append(line.user_id)
            fixture.stats_applied = True
            self._fixture_repo.save(conn, fixture, commit=False)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        logger.info(
            "Applied player stats for fixture %s: %d updated, %d failed",
            fixture.id, len(report.updated), len(report.failed),
        )
        return report
