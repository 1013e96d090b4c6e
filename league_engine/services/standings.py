"""
League table computation. Pure: no persistence, same input => same output.

The table is rebuilt from scratch over every completed fixture each time; it
is never patched incrementally.
"""
from __future__ import annotations

from league_engine.config import UNKNOWN_CLUB_NAME
from league_engine.models import Fixture, FixtureStatus, League, PointsSystem, StandingsEntry


def _apply_fixture(
    a: StandingsEntry, b: StandingsEntry, score_a: int, score_b: int, points: PointsSystem
) -> None:
    a.matches_played += 1
    b.matches_played += 1
    a.goals_for += score_a
    a.goals_against += score_b
    b.goals_for += score_b
    b.goals_against += score_a
    if score_a > score_b:
        a.matches_won += 1
        b.matches_lost += 1
        a.points += points.win
        b.points += points.loss
    elif score_a < score_b:
        a.matches_lost += 1
        b.matches_won += 1
        a.points += points.loss
        b.points += points.win
    else:
        a.matches_drawn += 1
        b.matches_drawn += 1
        a.points += points.draw
        b.points += points.draw


def sort_key(entry: StandingsEntry) -> tuple[int, int, int]:
    """Points, then goal difference, then goals for; all descending."""
    return (-entry.points, -entry.goal_difference, -entry.goals_for)


def compute_standings(
    club_ids: list[str],
    fixtures: list[Fixture],
    points_system: PointsSystem | None = None,
    club_names: dict[str, str] | None = None,
) -> list[StandingsEntry]:
    """
    One entry per club in club_ids (first occurrence order), ranked.
    Only completed fixtures with a result count. A fixture whose clubs are not
    both in club_ids (e.g. a disqualified club) is ignored.
    Ties on all three keys keep club_ids order; positions are never shared.
    """
    points = points_system or PointsSystem()
    names = club_names or {}
    table: dict[str, StandingsEntry] = {}
    for cid in club_ids:
        if cid not in table:
            table[cid] = StandingsEntry(club_id=cid, club_name=names.get(cid, UNKNOWN_CLUB_NAME))
    for f in fixtures:
        if f.status != FixtureStatus.COMPLETED or f.result is None:
            continue
        a = table.get(f.team_a_id)
        b = table.get(f.team_b_id)
        if a is None or b is None:
            continue
        _apply_fixture(a, b, f.result.score_a, f.result.score_b, points)
    for entry in table.values():
        entry.goal_difference = entry.goals_for - entry.goals_against
    ranked = sorted(table.values(), key=sort_key)
    for i, entry in enumerate(ranked):
        entry.position = i + 1
    return ranked


def recompute(league: League, club_names: dict[str, str] | None = None) -> list[StandingsEntry]:
    """Full table for league over its divisions' clubs and its completed fixtures."""
    return compute_standings(
        league.all_club_ids(),
        league.fixtures,
        points_system=league.points_system,
        club_names=club_names,
    )
