"""SQLite persistence for fixtures, tips, run records, settings and API usage."""

from vaultbets.storage.database import Database
from vaultbets.storage.models import (
    ConfigEntry,
    Fixture,
    JobStateRecord,
    OddsSnapshot,
    RunRecord,
    RunStatus,
    Tip,
    TipAnalysis,
    TipStatus,
)

__all__ = [
    "ConfigEntry",
    "Database",
    "Fixture",
    "JobStateRecord",
    "OddsSnapshot",
    "RunRecord",
    "RunStatus",
    "Tip",
    "TipAnalysis",
    "TipStatus",
]
