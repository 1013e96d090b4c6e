"""
Service layer: scheduling, fixture state machine, live scores, standings and
player stats. league_service orchestrates persistence for league-level work.
"""
from .scheduling import generate_fixtures, round_robin_pairings
from .standings import compute_standings, recompute
from .player_stats import AggregationReport, PlayerStatsAggregator
from .score_tracker import ScoreTracker
from .fixture_lifecycle import CompletionOutcome, FixtureLifecycle
from .league_service import LeagueService

__all__ = [
    "generate_fixtures",
    "round_robin_pairings",
    "compute_standings",
    "recompute",
    "AggregationReport",
    "PlayerStatsAggregator",
    "ScoreTracker",
    "CompletionOutcome",
    "FixtureLifecycle",
    "LeagueService",
]
