"""
Deterministic double round-robin fixture generation for leagues.

Every club plays every other club twice, once at home and once away. For N
clubs (N even) the first leg takes N-1 rounds and the second leg mirrors it
with home/away reversed, for N*(N-1) fixtures over 2*(N-1) rounds.

BYE handling: when the number of clubs is odd, a virtual bye slot is added.
Each round one club is paired with the bye (away_id = None) and sits out; no
fixture is created for it. Odd N gives N*(N-1) fixtures over 2*N rounds.

Uses the circle method: fix the first slot, rotate the others each round. Same
club list ordering yields the same pairings.
"""
from __future__ import annotations

import uuid
from datetime import date

from league_engine.errors import ValidationError
from league_engine.models import Fixture, FixtureStatus


def round_robin_pairings(club_ids: list[str]) -> list[tuple[int, str, str | None]]:
    """
    Single-leg pairings: (round_number, home_id, away_id).
    away_id is None when home_id has a bye (odd number of clubs).
    Deterministic: same club list => same pairings.
    """
    if not club_ids:
        return []
    slots: list[str | None] = list(club_ids)
    if len(slots) % 2 == 1:
        slots.append(None)
    n = len(slots)  # even
    result: list[tuple[int, str, str | None]] = []
    order = list(range(n))
    for rnd in range(n - 1):
        # Pair order[0] with order[n-1], order[1] with order[n-2], ...
        for i in range(n // 2):
            home_id = slots[order[i]]
            away_id = slots[order[n - 1 - i]]
            if home_id is None:
                home_id, away_id = away_id, None
            result.append((rnd + 1, home_id, away_id))
        # Rotate: keep slot 0, last slot moves to position 1
        order = [order[0]] + [order[n - 1]] + order[1 : n - 1]
    return result


def rounds_per_leg(club_count: int) -> int:
    """Rounds in one leg: N-1 for even N, N for odd N (bye slot)."""
    if club_count < 2:
        return 0
    return club_count - 1 if club_count % 2 == 0 else club_count


def generate_fixtures(
    club_ids: list[str],
    league_id: str,
    scheduled_date: date | None = None,
) -> list[Fixture]:
    """
    Build the full double round-robin fixture set.
    Leg 1 uses rounds 1..R, leg 2 rounds R+1..2R with home/away swapped.
    Every fixture is 'scheduled' with a placeholder date; real scheduling happens later.
    Raises ValidationError for fewer than 2 clubs or duplicate ids.
    """
    if len(club_ids) < 2:
        raise ValidationError("League needs at least 2 clubs to generate fixtures")
    if len(set(club_ids)) != len(club_ids):
        raise ValidationError("Club ids must be unique to generate fixtures")
    if any(not cid for cid in club_ids):
        raise ValidationError("Club ids must be non-empty")
    when = scheduled_date or date.today()
    leg_rounds = rounds_per_leg(len(club_ids))
    first_leg: list[Fixture] = []
    second_leg: list[Fixture] = []
    for rnd, home_id, away_id in round_robin_pairings(club_ids):
        if away_id is None:
            continue  # bye
        first_leg.append(Fixture(
            id=str(uuid.uuid4()),
            league_id=league_id,
            round=rnd,
            team_a_id=home_id,
            team_b_id=away_id,
            scheduled_date=when,
            status=FixtureStatus.SCHEDULED.value,
        ))
        second_leg.append(Fixture(
            id=str(uuid.uuid4()),
            league_id=league_id,
            round=rnd + leg_rounds,
            team_a_id=away_id,
            team_b_id=home_id,
            scheduled_date=when,
            status=FixtureStatus.SCHEDULED.value,
        ))
    return first_leg + second_leg
