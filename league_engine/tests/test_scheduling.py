"""
Tests for double round-robin fixture generation.
Deterministic; every pair twice with home/away reversed; one fixture per club per round.
"""
from __future__ import annotations

from collections import Counter
from datetime import date
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from league_engine.errors import ValidationError
from league_engine.models import FixtureStatus
from league_engine.services.scheduling import generate_fixtures, round_robin_pairings, rounds_per_leg


def test_round_robin_two_clubs():
    """2 clubs: 1 round, 1 pairing."""
    pairings = round_robin_pairings(["A", "B"])
    assert pairings == [(1, "A", "B")]


def test_round_robin_three_clubs_has_byes():
    """3 clubs + bye slot: 3 rounds, each club sits out exactly once."""
    pairings = round_robin_pairings(["A", "B", "C"])
    assert len(pairings) == 6
    real = [(h, a) for _, h, a in pairings if a is not None]
    byes = [h for _, h, a in pairings if a is None]
    assert {tuple(sorted(p)) for p in real} == {("A", "B"), ("A", "C"), ("B", "C")}
    assert sorted(byes) == ["A", "B", "C"]


def test_round_robin_is_deterministic():
    clubs = ["A", "B", "C", "D", "E", "F"]
    assert round_robin_pairings(clubs) == round_robin_pairings(list(clubs))


def test_rounds_per_leg():
    assert rounds_per_leg(4) == 3
    assert rounds_per_leg(5) == 5
    assert rounds_per_leg(1) == 0


@pytest.mark.parametrize("n", [2, 4, 6, 8])
def test_even_club_count_fixture_totals(n):
    """N clubs: N*(N-1) fixtures, each unordered pair twice with reversed home/away, 2*(N-1) per club."""
    clubs = [f"club-{i}" for i in range(n)]
    fixtures = generate_fixtures(clubs, "L1")
    assert len(fixtures) == n * (n - 1)
    ordered = Counter((f.team_a_id, f.team_b_id) for f in fixtures)
    assert all(count == 1 for count in ordered.values())
    for i, a in enumerate(clubs):
        for b in clubs[i + 1:]:
            assert ordered[(a, b)] == 1
            assert ordered[(b, a)] == 1
    appearances = Counter()
    for f in fixtures:
        appearances[f.team_a_id] += 1
        appearances[f.team_b_id] += 1
    assert all(appearances[c] == 2 * (n - 1) for c in clubs)


def test_four_clubs_scenario():
    """[A,B,C,D] -> 12 fixtures over 6 rounds, 6 per club."""
    fixtures = generate_fixtures(["A", "B", "C", "D"], "L1")
    assert len(fixtures) == 12
    assert sorted({f.round for f in fixtures}) == [1, 2, 3, 4, 5, 6]
    for club in "ABCD":
        assert sum(1 for f in fixtures if f.involves(club)) == 6


def test_one_fixture_per_club_per_round():
    fixtures = generate_fixtures(["A", "B", "C", "D", "E", "F"], "L1")
    by_round: dict[int, list[str]] = {}
    for f in fixtures:
        by_round.setdefault(f.round, []).extend([f.team_a_id, f.team_b_id])
    for clubs in by_round.values():
        assert len(clubs) == len(set(clubs))


def test_second_leg_mirrors_first():
    """Round r + R reverses the home/away of round r."""
    fixtures = generate_fixtures(["A", "B", "C", "D"], "L1")
    legs = {(f.round, f.team_a_id, f.team_b_id) for f in fixtures}
    for rnd, home, away in list(legs):
        if rnd <= 3:
            assert (rnd + 3, away, home) in legs


def test_odd_club_count():
    """5 clubs: 20 fixtures over 10 rounds, nobody plays themselves."""
    fixtures = generate_fixtures(["A", "B", "C", "D", "E"], "L1")
    assert len(fixtures) == 20
    assert max(f.round for f in fixtures) == 10
    assert all(f.team_a_id != f.team_b_id for f in fixtures)
    for club in "ABCDE":
        assert sum(1 for f in fixtures if f.involves(club)) == 8


def test_fixtures_start_scheduled_with_unique_ids():
    day = date(2025, 8, 16)
    fixtures = generate_fixtures(["A", "B", "C"], "L9", scheduled_date=day)
    assert len({f.id for f in fixtures}) == len(fixtures)
    for f in fixtures:
        assert f.league_id == "L9"
        assert f.status == FixtureStatus.SCHEDULED
        assert f.scheduled_date == day
        assert f.result is None
        assert f.player_stats == []


def test_too_few_clubs():
    with pytest.raises(ValidationError):
        generate_fixtures(["A"], "L1")
    with pytest.raises(ValidationError):
        generate_fixtures([], "L1")


def test_duplicate_club_ids_rejected():
    with pytest.raises(ValidationError):
        generate_fixtures(["A", "B", "A"], "L1")
