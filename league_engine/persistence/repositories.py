"""
Repository interfaces for league data.
No business logic, only read/write operations.

Write methods commit by default; pass commit=False to group several writes
into one transaction owned by the caller.
"""
from __future__ import annotations

import sqlite3
import uuid
from collections import defaultdict
from dataclasses import asdict, fields
from datetime import date, datetime, timezone
from typing import Any, Iterable

from league_engine.errors import ConcurrentUpdateError
from league_engine.models import (
    Club,
    Division,
    Fixture,
    FixtureResult,
    League,
    LeagueFilter,
    LeagueStatus,
    PlayerMatchStat,
    PlayerProfile,
    PlayerStats,
    PointsSystem,
    ScoreUpdate,
    StandingsEntry,
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_datetime(s: str | None) -> datetime:
    if s is None:
        raise ValueError("expected datetime string")
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def _value(v: Any) -> Any:
    """Plain value for enum members so sqlite stores the string, not the repr."""
    return getattr(v, "value", v)


# ---------- LeagueRepository ----------


class LeagueRepository:
    """CRUD for leagues. Child data (divisions, fixtures, standings) lives in its own repositories."""

    _COLS = (
        "id, name, organizer_id, season, status, points_win, points_draw, points_loss, "
        "registration_deadline, created_at, updated_at"
    )

    def create(
        self,
        conn: sqlite3.Connection,
        name: str,
        organizer_id: str,
        season: str,
        points_system: PointsSystem | None = None,
        registration_deadline: datetime | None = None,
        id: str | None = None,
    ) -> League:
        lid = id or str(uuid.uuid4())
        now = _now_iso()
        ps = points_system or PointsSystem()
        deadline = registration_deadline.isoformat() if registration_deadline else None
        conn.execute(
            f"INSERT INTO leagues ({self._COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (lid, name, organizer_id, season, LeagueStatus.REGISTRATION.value,
             ps.win, ps.draw, ps.loss, deadline, now, now),
        )
        conn.commit()
        return League(
            id=lid, name=name, organizer_id=organizer_id, season=season,
            status=LeagueStatus.REGISTRATION.value, points_system=ps,
            registration_deadline=registration_deadline,
            created_at=_parse_datetime(now), updated_at=_parse_datetime(now),
        )

    @staticmethod
    def _from_row(r: sqlite3.Row) -> League:
        deadline = r["registration_deadline"]
        return League(
            id=r["id"],
            name=r["name"],
            organizer_id=r["organizer_id"],
            season=r["season"],
            status=r["status"],
            points_system=PointsSystem(win=r["points_win"], draw=r["points_draw"], loss=r["points_loss"]),
            registration_deadline=_parse_datetime(deadline) if deadline else None,
            created_at=_parse_datetime(r["created_at"]),
            updated_at=_parse_datetime(r["updated_at"]),
        )

    def get(self, conn: sqlite3.Connection, league_id: str) -> League | None:
        row = conn.execute(f"SELECT {self._COLS} FROM leagues WHERE id = ?", (league_id,)).fetchone()
        if row is None:
            return None
        return self._from_row(row)

    def list_all(self, conn: sqlite3.Connection, filters: LeagueFilter | None = None) -> list[League]:
        """Newest first. Every non-None field of filters narrows the result."""
        clauses: list[str] = []
        args: list[Any] = []
        if filters is not None:
            if filters.status is not None:
                clauses.append("status = ?")
                args.append(_value(filters.status))
            if filters.organizer_id is not None:
                clauses.append("organizer_id = ?")
                args.append(filters.organizer_id)
            if filters.season is not None:
                clauses.append("season = ?")
                args.append(filters.season)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = conn.execute(
            f"SELECT {self._COLS} FROM leagues{where} ORDER BY created_at DESC, rowid DESC",
            args,
        ).fetchall()
        return [self._from_row(r) for r in rows]

    def update_status(
        self, conn: sqlite3.Connection, league_id: str, status: str, commit: bool = True
    ) -> None:
        conn.execute(
            "UPDATE leagues SET status = ?, updated_at = ? WHERE id = ?",
            (_value(status), _now_iso(), league_id),
        )
        if commit:
            conn.commit()

    def update(
        self, conn: sqlite3.Connection, league_id: str, updates: dict[str, Any], commit: bool = True
    ) -> None:
        """
        Partial update of name, season, points_system and registration_deadline.
        Only keys present in updates are written; a None deadline clears it.
        """
        sets: list[str] = []
        args: list[Any] = []
        if "name" in updates:
            sets.append("name = ?")
            args.append(updates["name"])
        if "season" in updates:
            sets.append("season = ?")
            args.append(updates["season"])
        if "points_system" in updates:
            ps = updates["points_system"]
            sets.append("points_win = ?, points_draw = ?, points_loss = ?")
            args.extend([ps.win, ps.draw, ps.loss])
        if "registration_deadline" in updates:
            deadline = updates["registration_deadline"]
            sets.append("registration_deadline = ?")
            args.append(deadline.isoformat() if deadline else None)
        sets.append("updated_at = ?")
        args.extend([_now_iso(), league_id])
        conn.execute(f"UPDATE leagues SET {', '.join(sets)} WHERE id = ?", args)
        if commit:
            conn.commit()

    def delete(self, conn: sqlite3.Connection, league_id: str, commit: bool = True) -> None:
        """Remove the league and everything that hangs off it. Clubs are kept but detached."""
        fixture_ids = "SELECT id FROM fixtures WHERE league_id = ?"
        conn.execute(f"DELETE FROM fixture_score_updates WHERE fixture_id IN ({fixture_ids})", (league_id,))
        conn.execute(f"DELETE FROM fixture_player_stats WHERE fixture_id IN ({fixture_ids})", (league_id,))
        conn.execute("DELETE FROM fixtures WHERE league_id = ?", (league_id,))
        conn.execute("DELETE FROM standings WHERE league_id = ?", (league_id,))
        conn.execute(
            "DELETE FROM division_clubs WHERE division_id IN (SELECT id FROM divisions WHERE league_id = ?)",
            (league_id,),
        )
        conn.execute("DELETE FROM divisions WHERE league_id = ?", (league_id,))
        conn.execute("UPDATE clubs SET current_league_id = NULL WHERE current_league_id = ?", (league_id,))
        conn.execute("DELETE FROM leagues WHERE id = ?", (league_id,))
        if commit:
            conn.commit()


# ---------- DivisionRepository ----------


class DivisionRepository:
    """Divisions and division membership."""

    def create(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        name: str,
        order: int,
        id: str | None = None,
        commit: bool = True,
    ) -> Division:
        did = id or f"div_{uuid.uuid4().hex[:12]}"
        conn.execute(
            "INSERT INTO divisions (id, league_id, name, sort_order) VALUES (?, ?, ?, ?)",
            (did, league_id, name, order),
        )
        if commit:
            conn.commit()
        return Division(id=did, league_id=league_id, name=name, order=order, club_ids=[])

    def list_by_league(self, conn: sqlite3.Connection, league_id: str) -> list[Division]:
        rows = conn.execute(
            "SELECT id, league_id, name, sort_order FROM divisions WHERE league_id = ? ORDER BY sort_order, rowid",
            (league_id,),
        ).fetchall()
        divisions = [
            Division(id=r["id"], league_id=r["league_id"], name=r["name"], order=r["sort_order"])
            for r in rows
        ]
        by_id = {d.id: d for d in divisions}
        member_rows = conn.execute(
            """SELECT dc.division_id, dc.club_id FROM division_clubs dc
               JOIN divisions d ON d.id = dc.division_id
               WHERE d.league_id = ? ORDER BY dc.division_id, dc.position""",
            (league_id,),
        ).fetchall()
        for r in member_rows:
            by_id[r["division_id"]].club_ids.append(r["club_id"])
        return divisions

    def add_club(
        self, conn: sqlite3.Connection, division_id: str, club_id: str, commit: bool = True
    ) -> None:
        row = conn.execute(
            "SELECT COALESCE(MAX(position), 0) AS p FROM division_clubs WHERE division_id = ?",
            (division_id,),
        ).fetchone()
        conn.execute(
            "INSERT INTO division_clubs (division_id, club_id, position) VALUES (?, ?, ?)",
            (division_id, club_id, row["p"] + 1),
        )
        if commit:
            conn.commit()

    def remove_club_from_league(
        self, conn: sqlite3.Connection, league_id: str, club_id: str, commit: bool = True
    ) -> int:
        """Remove club from every division of the league. Returns number of memberships removed."""
        cur = conn.execute(
            "DELETE FROM division_clubs WHERE club_id = ? AND division_id IN (SELECT id FROM divisions WHERE league_id = ?)",
            (club_id, league_id),
        )
        if commit:
            conn.commit()
        return cur.rowcount


# ---------- FixtureRepository ----------


class FixtureRepository:
    """
    Fixtures as independently keyed rows. save() is a compare-and-set on version:
    a stale fixture raises ConcurrentUpdateError instead of overwriting newer data.
    """

    _COLS = (
        "id, league_id, round, team_a_id, team_b_id, scheduled_date, scheduled_time, status, "
        "score_a, score_b, winner_id, referee_id, pitch_id, stats_applied, version"
    )

    def create_many(
        self, conn: sqlite3.Connection, fixtures: Iterable[Fixture], commit: bool = True
    ) -> None:
        now = _now_iso()
        conn.executemany(
            f"INSERT INTO fixtures ({self._COLS}, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (
                    f.id, f.league_id, f.round, f.team_a_id, f.team_b_id,
                    f.scheduled_date.isoformat(), f.scheduled_time, _value(f.status),
                    f.result.score_a if f.result else None,
                    f.result.score_b if f.result else None,
                    f.result.winner_id if f.result else None,
                    f.referee_id, f.pitch_id, int(f.stats_applied), f.version, now, now,
                )
                for f in fixtures
            ],
        )
        if commit:
            conn.commit()

    @staticmethod
    def _from_row(r: sqlite3.Row, player_stats: list[PlayerMatchStat] | None = None) -> Fixture:
        result = None
        if r["score_a"] is not None and r["score_b"] is not None:
            result = FixtureResult(score_a=r["score_a"], score_b=r["score_b"], winner_id=r["winner_id"])
        return Fixture(
            id=r["id"],
            league_id=r["league_id"],
            round=r["round"],
            team_a_id=r["team_a_id"],
            team_b_id=r["team_b_id"],
            scheduled_date=date.fromisoformat(r["scheduled_date"]),
            scheduled_time=r["scheduled_time"],
            status=r["status"],
            result=result,
            player_stats=player_stats or [],
            referee_id=r["referee_id"],
            pitch_id=r["pitch_id"],
            stats_applied=bool(r["stats_applied"]),
            version=r["version"],
        )

    @staticmethod
    def _stat_from_row(r: sqlite3.Row) -> PlayerMatchStat:
        return PlayerMatchStat(
            user_id=r["user_id"],
            club_id=r["club_id"],
            goals=r["goals"],
            assists=r["assists"],
            yellow_cards=r["yellow_cards"],
            red_card=bool(r["red_card"]),
        )

    def get(self, conn: sqlite3.Connection, fixture_id: str) -> Fixture | None:
        row = conn.execute(f"SELECT {self._COLS} FROM fixtures WHERE id = ?", (fixture_id,)).fetchone()
        if row is None:
            return None
        stat_rows = conn.execute(
            "SELECT user_id, club_id, goals, assists, yellow_cards, red_card FROM fixture_player_stats "
            "WHERE fixture_id = ? ORDER BY line",
            (fixture_id,),
        ).fetchall()
        return self._from_row(row, [self._stat_from_row(s) for s in stat_rows])

    def list_by_league(
        self, conn: sqlite3.Connection, league_id: str, status: str | None = None
    ) -> list[Fixture]:
        """Fixtures ordered by round, then generation order."""
        sql = f"SELECT {self._COLS} FROM fixtures WHERE league_id = ?"
        args: list[Any] = [league_id]
        if status is not None:
            sql += " AND status = ?"
            args.append(_value(status))
        rows = conn.execute(sql + " ORDER BY round, rowid", args).fetchall()
        stats: dict[str, list[PlayerMatchStat]] = defaultdict(list)
        stat_rows = conn.execute(
            """SELECT s.fixture_id, s.user_id, s.club_id, s.goals, s.assists, s.yellow_cards, s.red_card
               FROM fixture_player_stats s JOIN fixtures f ON f.id = s.fixture_id
               WHERE f.league_id = ? ORDER BY s.fixture_id, s.line""",
            (league_id,),
        ).fetchall()
        for s in stat_rows:
            stats[s["fixture_id"]].append(self._stat_from_row(s))
        return [self._from_row(r, stats.get(r["id"])) for r in rows]

    def save(self, conn: sqlite3.Connection, fixture: Fixture, commit: bool = True) -> Fixture:
        """
        Write scalar fields of fixture if its version is still current; bump version.
        Player stats are written separately with replace_player_stats.
        """
        res = fixture.result
        cur = conn.execute(
            """UPDATE fixtures SET scheduled_date = ?, scheduled_time = ?, status = ?,
                      score_a = ?, score_b = ?, winner_id = ?, referee_id = ?, pitch_id = ?,
                      stats_applied = ?, version = version + 1, updated_at = ?
               WHERE id = ? AND version = ?""",
            (
                fixture.scheduled_date.isoformat(), fixture.scheduled_time, _value(fixture.status),
                res.score_a if res else None, res.score_b if res else None, res.winner_id if res else None,
                fixture.referee_id, fixture.pitch_id, int(fixture.stats_applied), _now_iso(),
                fixture.id, fixture.version,
            ),
        )
        if cur.rowcount == 0:
            raise ConcurrentUpdateError(
                f"Fixture {fixture.id} changed since it was read (expected version {fixture.version})"
            )
        fixture.version += 1
        if commit:
            conn.commit()
        return fixture

    def replace_player_stats(
        self,
        conn: sqlite3.Connection,
        fixture_id: str,
        stats: list[PlayerMatchStat],
        commit: bool = True,
    ) -> None:
        conn.execute("DELETE FROM fixture_player_stats WHERE fixture_id = ?", (fixture_id,))
        conn.executemany(
            "INSERT INTO fixture_player_stats (fixture_id, user_id, club_id, goals, assists, yellow_cards, red_card, line) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (fixture_id, s.user_id, s.club_id, s.goals, s.assists, s.yellow_cards, int(s.red_card), line)
                for line, s in enumerate(stats, start=1)
            ],
        )
        if commit:
            conn.commit()

    def add_score_update(
        self,
        conn: sqlite3.Connection,
        fixture_id: str,
        score_a: int,
        score_b: int,
        commit: bool = True,
    ) -> ScoreUpdate:
        now = _now_iso()
        conn.execute(
            "INSERT INTO fixture_score_updates (fixture_id, score_a, score_b, recorded_at) VALUES (?, ?, ?, ?)",
            (fixture_id, score_a, score_b, now),
        )
        if commit:
            conn.commit()
        return ScoreUpdate(fixture_id=fixture_id, score_a=score_a, score_b=score_b, recorded_at=_parse_datetime(now))

    def list_score_updates(self, conn: sqlite3.Connection, fixture_id: str) -> list[ScoreUpdate]:
        rows = conn.execute(
            "SELECT fixture_id, score_a, score_b, recorded_at FROM fixture_score_updates WHERE fixture_id = ? ORDER BY id",
            (fixture_id,),
        ).fetchall()
        return [
            ScoreUpdate(
                fixture_id=r["fixture_id"], score_a=r["score_a"], score_b=r["score_b"],
                recorded_at=_parse_datetime(r["recorded_at"]),
            )
            for r in rows
        ]


# ---------- StandingsRepository ----------


class StandingsRepository:
    """Cached league table. Always replaced as a whole."""

    def replace(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        entries: list[StandingsEntry],
        commit: bool = True,
    ) -> None:
        conn.execute("DELETE FROM standings WHERE league_id = ?", (league_id,))
        conn.executemany(
            """INSERT INTO standings (
                league_id, club_id, club_name, position, matches_played, matches_won, matches_drawn,
                matches_lost, goals_for, goals_against, goal_difference, points
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            [
                (
                    league_id, e.club_id, e.club_name, e.position, e.matches_played, e.matches_won,
                    e.matches_drawn, e.matches_lost, e.goals_for, e.goals_against, e.goal_difference, e.points,
                )
                for e in entries
            ],
        )
        if commit:
            conn.commit()

    def list_by_league(self, conn: sqlite3.Connection, league_id: str) -> list[StandingsEntry]:
        rows = conn.execute(
            """SELECT club_id, club_name, position, matches_played, matches_won, matches_drawn, matches_lost,
                      goals_for, goals_against, goal_difference, points
               FROM standings WHERE league_id = ? ORDER BY position""",
            (league_id,),
        ).fetchall()
        return [StandingsEntry(**dict(r)) for r in rows]


# ---------- ClubRepository ----------


class ClubRepository:
    """Clubs and their rosters. Owned by the club-management side; read here for names and eligibility."""

    def create(
        self,
        conn: sqlite3.Connection,
        name: str,
        player_ids: list[str] | None = None,
        id: str | None = None,
    ) -> Club:
        cid = id or str(uuid.uuid4())
        conn.execute(
            "INSERT INTO clubs (id, name, current_league_id, created_at) VALUES (?, ?, NULL, ?)",
            (cid, name, _now_iso()),
        )
        for pid in player_ids or []:
            conn.execute("INSERT INTO club_players (club_id, player_id) VALUES (?, ?)", (cid, pid))
        conn.commit()
        return Club(id=cid, name=name, player_ids=list(player_ids or []))

    def get(self, conn: sqlite3.Connection, club_id: str) -> Club | None:
        row = conn.execute(
            "SELECT id, name, current_league_id FROM clubs WHERE id = ?", (club_id,)
        ).fetchone()
        if row is None:
            return None
        players = conn.execute(
            "SELECT player_id FROM club_players WHERE club_id = ? ORDER BY rowid", (club_id,)
        ).fetchall()
        return Club(
            id=row["id"],
            name=row["name"],
            player_ids=[p["player_id"] for p in players],
            current_league_id=row["current_league_id"],
        )

    def get_names(self, conn: sqlite3.Connection, club_ids: list[str]) -> dict[str, str]:
        if not club_ids:
            return {}
        placeholders = ", ".join("?" for _ in club_ids)
        rows = conn.execute(
            f"SELECT id, name FROM clubs WHERE id IN ({placeholders})", list(club_ids)
        ).fetchall()
        return {r["id"]: r["name"] for r in rows}

    def list_ids_with_player(self, conn: sqlite3.Connection, player_id: str) -> list[str]:
        rows = conn.execute("SELECT club_id FROM club_players WHERE player_id = ?", (player_id,)).fetchall()
        return [r["club_id"] for r in rows]

    def update_current_league(
        self, conn: sqlite3.Connection, club_id: str, league_id: str | None, commit: bool = True
    ) -> None:
        conn.execute("UPDATE clubs SET current_league_id = ? WHERE id = ?", (league_id, club_id))
        if commit:
            conn.commit()


# ---------- PlayerProfileRepository ----------


class PlayerProfileRepository:
    """Player profiles: only the public flag and the cumulative stats block are handled here."""

    _STAT_COLS = tuple(f.name for f in fields(PlayerStats))

    def get(self, conn: sqlite3.Connection, user_id: str) -> PlayerProfile | None:
        row = conn.execute(
            f"SELECT user_id, is_public, updated_at, {', '.join(self._STAT_COLS)} FROM player_profiles WHERE user_id = ?",
            (user_id,),
        ).fetchone()
        if row is None:
            return None
        return PlayerProfile(
            user_id=row["user_id"],
            is_public=bool(row["is_public"]),
            stats=PlayerStats(**{c: row[c] for c in self._STAT_COLS}),
            updated_at=_parse_datetime(row["updated_at"]),
        )

    def save(
        self, conn: sqlite3.Connection, user_id: str, partial: dict[str, Any], commit: bool = True
    ) -> PlayerProfile:
        """
        Merge partial into the profile, creating a zeroed one if absent.
        Accepted keys: 'is_public' (bool) and 'stats' (PlayerStats or dict of stat fields).
        """
        now = _now_iso()
        conn.execute(
            "INSERT OR IGNORE INTO player_profiles (user_id, is_public, updated_at) VALUES (?, 0, ?)",
            (user_id, now),
        )
        sets: list[str] = ["updated_at = ?"]
        args: list[Any] = [now]
        if "is_public" in partial:
            sets.append("is_public = ?")
            args.append(int(bool(partial["is_public"])))
        stats = partial.get("stats")
        if stats is not None:
            values = asdict(stats) if isinstance(stats, PlayerStats) else dict(stats)
            for col in self._STAT_COLS:
                if col in values:
                    sets.append(f"{col} = ?")
                    args.append(int(values[col]))
        conn.execute(f"UPDATE player_profiles SET {', '.join(sets)} WHERE user_id = ?", (*args, user_id))
        if commit:
            conn.commit()
        profile = self.get(conn, user_id)
        assert profile is not None
        return profile
