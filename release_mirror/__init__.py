"""Release mirror: cached GitHub release listings with a download proxy."""

__version__ = "0.1.0"
