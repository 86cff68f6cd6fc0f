from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from timelineforge.config import settings
from timelineforge.storage.base import Base

DATABASE_URL = settings.database_url

# Ensure models are imported so Base.metadata has tables.
from timelineforge.storage import models as _models  # noqa: F401,E402

engine_kwargs = {
    "echo": False,
    "pool_pre_ping": True,
    "pool_size": 10,
    "max_overflow": 20,
    "pool_timeout": 60,
    "pool_recycle": 1800,
}

# Allow local runs without Postgres by setting DATABASE_URL to sqlite.
if DATABASE_URL.startswith("sqlite"):
    engine_kwargs["connect_args"] = {"check_same_thread": False}
    # SQLite doesn't support pool_size/max_overflow the same way
    engine_kwargs.pop("pool_size", None)
    engine_kwargs.pop("max_overflow", None)
    engine_kwargs.pop("pool_recycle", None)
    engine_kwargs.pop("pool_timeout", None)

engine = create_engine(DATABASE_URL, **engine_kwargs)
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session; FastAPI closes it after the response."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Creates all tables.
    Call once at startup or via script.
    """
    Base.metadata.create_all(bind=engine)
