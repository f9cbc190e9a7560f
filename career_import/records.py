"""
Import domain types.

Candidate attributes are a closed tagged union with one variant per entity
type, discriminated on ``entity_type``. Sessions, decisions and commit
results are pydantic models so a session can be stored as a JSON payload
and returned by the API unchanged.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from career_import.models import EntityType, generate_uuid, utc_now


class Decision(str, Enum):
    CREATE = "create"
    MERGE = "merge"
    SKIP = "skip"


class Confidence(str, Enum):
    """Duplicate confidence tier, from the composite score thresholds."""
    EXACT = "exact"
    LIKELY = "likely"
    NONE = "none"


class SessionStatus(str, Enum):
    STAGING = "staging"
    COMMITTED = "committed"
    DISCARDED = "discarded"


# Attribute variants

class _Attributes(BaseModel):
    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def _blank_to_none(cls, data: Any) -> Any:
        # Leave the entity_type discriminator alone
        if not isinstance(data, dict):
            return data
        return {
            key: (value.strip() or None) if isinstance(value, str) and key != "entity_type" else value
            for key, value in data.items()
        }

    def populated(self) -> dict[str, Any]:
        """Non-empty attributes as JSON-compatible values."""
        return self.model_dump(mode="json", exclude={"entity_type"}, exclude_none=True)


class JobFields(_Attributes):
    entity_type: Literal["job"] = "job"
    company: Optional[str] = None
    title: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    description: Optional[str] = None
    location: Optional[str] = None


class LearningItemFields(_Attributes):
    entity_type: Literal["learningItem"] = "learningItem"
    institution: Optional[str] = None
    degree: Optional[str] = None
    field_of_study: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    description: Optional[str] = None


class SkillFields(_Attributes):
    entity_type: Literal["skill"] = "skill"
    name: Optional[str] = None
    category: Optional[str] = None
    level: Optional[str] = None


class ProjectFields(_Attributes):
    entity_type: Literal["project"] = "project"
    name: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class PersonFields(_Attributes):
    entity_type: Literal["person"] = "person"
    name: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None
    title: Optional[str] = None
    profile_url: Optional[str] = None


class InstitutionFields(_Attributes):
    entity_type: Literal["institution"] = "institution"
    name: Optional[str] = None
    kind: Optional[str] = None
    location: Optional[str] = None


class AchievementFields(_Attributes):
    entity_type: Literal["achievement"] = "achievement"
    title: Optional[str] = None
    issuer: Optional[str] = None
    achieved_on: Optional[date] = None
    description: Optional[str] = None
    url: Optional[str] = None


CandidateFields = Annotated[
    Union[
        JobFields,
        LearningItemFields,
        SkillFields,
        ProjectFields,
        PersonFields,
        InstitutionFields,
        AchievementFields,
    ],
    Field(discriminator="entity_type"),
]

_fields_adapter = TypeAdapter(CandidateFields)


def build_fields(entity_type: Union[EntityType, str], values: dict[str, Any]) -> CandidateFields:
    """Validate a raw attribute dict into the variant for ``entity_type``."""
    entity_type = EntityType(entity_type)
    payload = {k: v for k, v in values.items() if k != "entity_type"}
    return _fields_adapter.validate_python({"entity_type": entity_type.value, **payload})


# Matching and staging

class MatchResult(BaseModel):
    """Result of a duplicate check for one candidate."""
    confidence: Confidence = Confidence.NONE
    score: float = Field(default=0.0, ge=0.0, le=100.0)
    matched_id: Optional[str] = None
    matched_on: list[str] = Field(default_factory=list)

    @property
    def is_match(self) -> bool:
        return self.matched_id is not None and self.confidence != Confidence.NONE

    def __repr__(self) -> str:
        if self.matched_id:
            return f"<MatchResult({self.matched_id}, {self.confidence.value}, score={self.score:.1f})>"
        return "<MatchResult(no match)>"


@dataclass
class ExistingRecord:
    """Read view of a committed entity, as seen by the duplicate matcher."""
    id: str
    fields: CandidateFields
    created_at: datetime

    @property
    def entity_type(self) -> EntityType:
        return EntityType(self.fields.entity_type)


class CandidateRecord(BaseModel):
    """One parsed entity awaiting a create/merge/skip decision."""
    id: str = Field(default_factory=generate_uuid)
    attributes: CandidateFields
    source_ref: Optional[str] = None
    suggested_match: Optional[MatchResult] = None
    decision: Decision = Decision.CREATE
    matched_entity_id: Optional[str] = None

    @property
    def entity_type(self) -> EntityType:
        return EntityType(self.attributes.entity_type)


class CommittedRecord(BaseModel):
    candidate_id: str
    entity_type: EntityType
    entity_id: str
    decision: Decision


class RecordError(BaseModel):
    candidate_id: str
    error: str


class CommitResult(BaseModel):
    session_id: str
    committed_count: int = 0
    merged_count: int = 0
    skipped_count: int = 0
    records: list[CommittedRecord] = Field(default_factory=list)
    errors: list[RecordError] = Field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.errors)


class ImportSession(BaseModel):
    """The staging unit for one upload."""
    id: str = Field(default_factory=generate_uuid)
    workspace_id: str
    status: SessionStatus = SessionStatus.STAGING
    candidates: list[CandidateRecord] = Field(default_factory=list)
    source_name: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    commit_result: Optional[CommitResult] = None

    def candidate(self, candidate_id: str) -> Optional[CandidateRecord]:
        for record in self.candidates:
            if record.id == candidate_id:
                return record
        return None

    def stats(self) -> dict[str, Any]:
        by_type: dict[str, int] = {}
        duplicates = 0
        for record in self.candidates:
            by_type[record.entity_type.value] = by_type.get(record.entity_type.value, 0) + 1
            if record.suggested_match and record.suggested_match.is_match:
                duplicates += 1
        return {
            "total_records": len(self.candidates),
            "by_type": by_type,
            "duplicates_found": duplicates,
        }


class DecisionUpdate(BaseModel):
    candidate_id: str
    decision: Decision
    matched_entity_id: Optional[str] = None
    field_overrides: Optional[dict[str, Any]] = None


class DecisionUpdateResult(BaseModel):
    updated_count: int = 0
    errors: list[RecordError] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors
