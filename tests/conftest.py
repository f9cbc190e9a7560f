"""
Shared fixtures: a throwaway SQLite database per test and helpers to seed it.
"""

import os
import sys
from datetime import datetime
from pathlib import Path

import pytest
from sqlalchemy.orm import sessionmaker

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Keep test runs out of the log directory
os.environ.setdefault("LOG_TO_FILE", "false")

from career_import.database import init_db, make_engine
from career_import.models import CareerEntity, EntityType


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'career_import_test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def add_entity(db, workspace_id, fields, created_at=None) -> str:
    """Persist an existing career entity and return its id."""
    entity = CareerEntity(
        workspace_id=workspace_id,
        entity_type=EntityType(fields.entity_type),
        attributes=fields.populated(),
        created_at=created_at or datetime(2024, 1, 1),
    )
    db.add(entity)
    db.commit()
    return entity.id
