"""
Runtime configuration. Values come from the environment at import time.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent

DB_PATH = Path(os.environ.get("LEAGUE_ENGINE_DB_PATH", str(PROJECT_ROOT / "data" / "league.db")))
LOG_LEVEL = os.environ.get("LEAGUE_ENGINE_LOG_LEVEL", "INFO").upper()

# Scheduled fixtures with a kick-off time are promoted while now is inside this window
AUTO_ADVANCE_WINDOW_HOURS = float(os.environ.get("LEAGUE_ENGINE_AUTO_ADVANCE_WINDOW_HOURS", "2"))

DEFAULT_POINTS_WIN = 3
DEFAULT_POINTS_DRAW = 1
DEFAULT_POINTS_LOSS = 0

UNKNOWN_CLUB_NAME = "Unknown Club"


def configure_logging(level: str | None = None) -> None:
    """Install a root handler once. Safe to call repeatedly."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
