# Export core database utilities and models

from timelineforge.storage.base import Base
from timelineforge.storage.db import engine, SessionLocal, get_db, init_db, DATABASE_URL

# Re-export all models
from timelineforge.storage.models import (
    Event,
    Branch,
    Evidence,
    Hypothesis,
    InvestigationLog,
    Merge,
)

__all__ = [
    # Core
    "Base",
    "engine",
    "SessionLocal",
    "get_db",
    "init_db",
    "DATABASE_URL",
    # Models
    "Event",
    "Branch",
    "Evidence",
    "Hypothesis",
    "InvestigationLog",
    "Merge",
]
