"""
League fixture engine: round-robin scheduling, fixture lifecycle, live scores,
standings and player statistics for football leagues.
"""

__version__ = "0.1.0"
