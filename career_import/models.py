"""
Career Import Pipeline - Database Models

SQLAlchemy ORM models for committed career entities, the merge audit trail,
and server-side staging sessions.
"""

import threading
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


# Enums
class EntityType(str, PyEnum):
    JOB = "job"
    LEARNING_ITEM = "learningItem"
    SKILL = "skill"
    PROJECT = "project"
    PERSON = "person"
    INSTITUTION = "institution"
    ACHIEVEMENT = "achievement"


def generate_uuid() -> str:
    return str(uuid.uuid4())


_clock_lock = threading.Lock()
_last_timestamp: Optional[datetime] = None


def utc_now() -> datetime:
    """
    Naive UTC timestamp with microsecond precision, strictly increasing
    within the process.

    Duplicate matching breaks score ties on the oldest created_at, so two
    entities written back to back must never share a timestamp.
    """
    global _last_timestamp
    with _clock_lock:
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        if _last_timestamp is not None and now <= _last_timestamp:
            now = _last_timestamp + timedelta(microseconds=1)
        _last_timestamp = now
        return now


class CareerEntity(Base):
    """
    A committed career-history record owned by one workspace.

    Attributes are stored as JSON keyed by the field names of the matching
    import variant (company/title/start_date for a job, name/category for a
    skill, ...). Dates are stored as ISO strings.
    """

    __tablename__ = "career_entities"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    workspace_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    entity_type: Mapped[EntityType] = mapped_column(
        Enum(EntityType), nullable=False, index=True
    )
    attributes: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now, nullable=False
    )

    merges: Mapped[list["ImportMerge"]] = relationship(
        back_populates="target_entity", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_career_entities_workspace_type", "workspace_id", "entity_type"),
    )

    def __repr__(self) -> str:
        return f"<CareerEntity({self.entity_type.value}, {self.id})>"


class ImportMerge(Base):
    """
    Audit trail for merges applied by an import commit.
    Records which fields were filled on the existing entity.
    """

    __tablename__ = "import_merges"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    session_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    candidate_id: Mapped[str] = mapped_column(String(36), nullable=False)
    target_entity_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("career_entities.id"), nullable=False, index=True
    )
    filled_fields: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    match_score: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2))
    source_ref: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, nullable=False
    )

    target_entity: Mapped["CareerEntity"] = relationship(back_populates="merges")


class ImportSessionRow(Base):
    """
    Key/value row backing the SQL staging session store.
    The payload is the serialized import session.
    """

    __tablename__ = "import_sessions"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now, nullable=False
    )
