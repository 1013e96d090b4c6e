"""
Persistence layer for league data.
No business logic, only read/write interfaces.
"""
from .db import begin_immediate, get_connection, init_db, set_db_path, get_db_path
from .repositories import (
    LeagueRepository,
    DivisionRepository,
    FixtureRepository,
    StandingsRepository,
    ClubRepository,
    PlayerProfileRepository,
)

__all__ = [
    "begin_immediate",
    "get_connection",
    "init_db",
    "set_db_path",
    "get_db_path",
    "LeagueRepository",
    "DivisionRepository",
    "FixtureRepository",
    "StandingsRepository",
    "ClubRepository",
    "PlayerProfileRepository",
]
