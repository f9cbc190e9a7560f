"""
Database connection and session management.
"""

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker

from config.settings import settings
from career_import.models import Base


def make_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine for ``url``.

    SQLite connections are shared with FastAPI's worker threads and the
    staging store, so the same-thread check is turned off.
    """
    connect_args = {}
    if make_url(url).get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
    return create_engine(url, echo=echo, connect_args=connect_args, future=True)


engine = make_engine(settings.DATABASE_URL, echo=settings.DEBUG)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def init_db(bind: Engine = None):
    """Initialize database tables, creating the SQLite file's directory if needed."""
    bind = bind or engine
    database = bind.url.database
    if bind.url.get_backend_name() == "sqlite" and database not in (None, "", ":memory:"):
        Path(database).parent.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(bind=bind)


def get_db():
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
