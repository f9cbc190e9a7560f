"""
Persistent entity store boundary.

The pipeline reads existing records per (workspace, type) for duplicate
detection and writes two kinds of effects on commit: create a new entity,
or fill the empty fields of an existing one.
"""

from decimal import Decimal
from typing import Any, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.logging import logger
from career_import.errors import EntityStoreError
from career_import.models import CareerEntity, EntityType, ImportMerge
from career_import.records import CandidateFields, ExistingRecord, build_fields


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == []


def fill_empty_fields(
    existing: dict[str, Any],
    incoming: dict[str, Any],
) -> tuple[dict[str, Any], list[str]]:
    """
    Non-destructive merge: copy incoming values only where existing is empty.

    Returns (merged attributes, names of filled fields).
    """
    merged = dict(existing)
    filled = []
    for key, value in incoming.items():
        if _is_empty(value):
            continue
        if _is_empty(merged.get(key)):
            merged[key] = value
            filled.append(key)
    return merged, filled


class EntityStore(Protocol):
    def list_records(self, workspace_id: str, entity_type: EntityType) -> list[ExistingRecord]:
        ...

    def get(self, workspace_id: str, entity_id: str) -> Optional[ExistingRecord]:
        ...

    def create(self, workspace_id: str, fields: CandidateFields) -> str:
        ...

    def fill_empty(
        self,
        workspace_id: str,
        entity_id: str,
        fields: CandidateFields,
        **audit: Any,
    ) -> list[str]:
        ...


class SqlEntityStore:
    """
    EntityStore backed by the career_entities table.

    Every write commits on its own so one failing record does not roll back
    the records committed before it.
    """

    def __init__(self, db: Session):
        self.db = db

    def list_records(self, workspace_id: str, entity_type: EntityType) -> list[ExistingRecord]:
        rows = (
            self.db.query(CareerEntity)
            .filter(
                CareerEntity.workspace_id == workspace_id,
                CareerEntity.entity_type == EntityType(entity_type),
            )
            .order_by(CareerEntity.created_at, CareerEntity.id)
            .all()
        )
        return [self._to_record(row) for row in rows]

    def get(self, workspace_id: str, entity_id: str) -> Optional[ExistingRecord]:
        row = self._load(workspace_id, entity_id)
        return self._to_record(row) if row else None

    def create(self, workspace_id: str, fields: CandidateFields) -> str:
        entity = CareerEntity(
            workspace_id=workspace_id,
            entity_type=EntityType(fields.entity_type),
            attributes=fields.populated(),
        )
        self.db.add(entity)
        self._commit()
        logger.debug(f"Created entity: {entity}")
        return entity.id

    def fill_empty(
        self,
        workspace_id: str,
        entity_id: str,
        fields: CandidateFields,
        **audit: Any,
    ) -> list[str]:
        """
        Fill empty attributes of an existing entity from ``fields``.

        Keyword arguments ``session_id``, ``candidate_id``, ``match_score``
        and ``source_ref`` are recorded in the import_merges audit trail.
        """
        entity = self._load(workspace_id, entity_id)
        if entity is None:
            raise EntityStoreError(f"Merge target not found: {entity_id}")
        if entity.entity_type.value != fields.entity_type:
            raise EntityStoreError(
                f"Merge target {entity_id} is a {entity.entity_type.value}, "
                f"not a {fields.entity_type}"
            )

        merged, filled = fill_empty_fields(entity.attributes or {}, fields.populated())
        if filled:
            entity.attributes = merged

        score = audit.get("match_score")
        self.db.add(ImportMerge(
            session_id=audit.get("session_id", ""),
            candidate_id=audit.get("candidate_id", ""),
            target_entity_id=entity.id,
            filled_fields=filled,
            match_score=Decimal(str(score)) if score is not None else None,
            source_ref=audit.get("source_ref"),
        ))
        self._commit()

        logger.debug(f"Merged into {entity_id}, filled: {filled or 'nothing'}")
        return filled

    def _load(self, workspace_id: str, entity_id: str) -> Optional[CareerEntity]:
        entity = self.db.get(CareerEntity, entity_id)
        if entity is None or entity.workspace_id != workspace_id:
            return None
        return entity

    def _commit(self):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise EntityStoreError(str(e)) from e

    @staticmethod
    def _to_record(row: CareerEntity) -> ExistingRecord:
        return ExistingRecord(
            id=row.id,
            fields=build_fields(row.entity_type, row.attributes or {}),
            created_at=row.created_at,
        )
