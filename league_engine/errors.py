"""
Error taxonomy for the league engine.
Everything is raised to the immediate caller; nothing retries.
"""
from __future__ import annotations


class LeagueEngineError(ValueError):
    """Base class for all league engine failures."""


class NotFound(LeagueEngineError):
    """League, fixture, club or profile does not exist."""


class InvalidState(LeagueEngineError):
    """Illegal lifecycle transition (e.g. completing a fixture that is not in progress)."""


class ValidationError(LeagueEngineError):
    """Bad input: negative scores, club not in fixture, missing result, too few clubs."""


class ConcurrentUpdateError(InvalidState):
    """Fixture was modified by another writer since it was read (version mismatch)."""
