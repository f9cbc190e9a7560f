"""
Duplicate detection for import candidates.

Every entity type is scored by the same loop; what differs per type is a
static weight table of (signal, weight, comparator) rules:

- Primary identity field (company, institution, skill name...): 50%
- Secondary descriptive field (title, degree, category...): 30%
- Temporal agreement (date range overlap or start date proximity): 20%

The composite score in [0, 100] is classified into a confidence tier:
>= 90 exact, >= 60 likely, otherwise none.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from config.logging import logger
from config.settings import settings
from career_import.models import EntityType
from career_import.records import (
    CandidateFields,
    Confidence,
    Decision,
    ExistingRecord,
    MatchResult,
)
from career_import.matching.normalize import normalize, similarity
from career_import.matching.temporal import dates_approx_equal, dates_overlap


class SignalKind(Enum):
    """How a rule compares the two records."""
    TEXT = "text"    # normalized edit-distance similarity
    RANGE = "range"  # (start, end) overlap, partial credit for close starts
    DATE = "date"    # single date within tolerance


@dataclass(frozen=True)
class FieldRule:
    """One weighted signal in an entity type's weight table."""
    name: str
    weight: float
    kind: SignalKind
    fields: tuple[str, ...]
    primary: bool = False


def _text(name: str, weight: float, primary: bool = False) -> FieldRule:
    return FieldRule(name, weight, SignalKind.TEXT, (name,), primary)


_DATE_RANGE = FieldRule("date_range", 0.2, SignalKind.RANGE, ("start_date", "end_date"))

WEIGHT_TABLES: dict[EntityType, tuple[FieldRule, ...]] = {
    EntityType.JOB: (
        _text("company", 0.5, primary=True),
        _text("title", 0.3),
        _DATE_RANGE,
    ),
    EntityType.LEARNING_ITEM: (
        _text("institution", 0.5, primary=True),
        _text("degree", 0.3),
        _DATE_RANGE,
    ),
    EntityType.SKILL: (
        _text("name", 0.5, primary=True),
        _text("category", 0.3),
    ),
    EntityType.PROJECT: (
        _text("name", 0.5, primary=True),
        _text("description", 0.3),
        _DATE_RANGE,
    ),
    EntityType.PERSON: (
        _text("name", 0.5, primary=True),
        _text("company", 0.3),
    ),
    EntityType.INSTITUTION: (
        _text("name", 0.5, primary=True),
        _text("kind", 0.3),
    ),
    EntityType.ACHIEVEMENT: (
        _text("title", 0.5, primary=True),
        _text("issuer", 0.3),
        FieldRule("achieved_on", 0.2, SignalKind.DATE, ("achieved_on",)),
    ),
}

# Authoritative identifiers: equal values mean the same record outright
IDENTITY_FIELDS: dict[EntityType, tuple[str, ...]] = {
    EntityType.PERSON: ("email",),
}


@dataclass
class MatcherConfig:
    """Configuration for duplicate detection."""
    # Minimum composite score for an exact match
    exact_threshold: float = 90.0

    # Minimum composite score for a likely match (below this = no match)
    likely_threshold: float = 60.0

    # Start dates within this many days count as approximately equal
    tolerance_days: int = 45

    # Credit for a range signal when only the start dates agree
    partial_temporal_credit: float = 0.5

    # Signals at or above this value are reported in matched_on
    agreement_level: float = 0.8


def classify(score: float, config: Optional[MatcherConfig] = None) -> Confidence:
    """Map a composite score onto a confidence tier."""
    config = config or MatcherConfig()
    if score >= config.exact_threshold:
        return Confidence.EXACT
    if score >= config.likely_threshold:
        return Confidence.LIKELY
    return Confidence.NONE


def default_decision(match: Optional[MatchResult]) -> Decision:
    """
    Decision a staged candidate starts with before any human review.

    exact -> merge (when a matched record exists), likely -> merge,
    none -> create. Quick import commits exactly these decisions.
    """
    if match is None or match.matched_id is None:
        return Decision.CREATE
    if match.confidence in (Confidence.EXACT, Confidence.LIKELY):
        return Decision.MERGE
    return Decision.CREATE


class DuplicateMatcher:
    """
    Scores an import candidate against existing records of the same type.

    Usage:
        matcher = DuplicateMatcher()
        result = matcher.find_duplicate(candidate.attributes, existing_jobs)
        if result.is_match:
            target_id = result.matched_id
    """

    def __init__(self, config: Optional[MatcherConfig] = None):
        self.config = config or MatcherConfig(
            exact_threshold=settings.EXACT_MATCH_THRESHOLD,
            likely_threshold=settings.LIKELY_MATCH_THRESHOLD,
            tolerance_days=settings.DATE_TOLERANCE_DAYS,
        )

    def find_duplicate(
        self,
        candidate: CandidateFields,
        existing: Sequence[ExistingRecord],
    ) -> MatchResult:
        """
        Find the best matching existing record for a candidate.

        Ties on score go to the oldest existing record.

        Returns:
            MatchResult with confidence tier, composite score and matched id
            (matched id is None when confidence is none)
        """
        entity_type = EntityType(candidate.entity_type)
        same_type = [r for r in existing if r.entity_type == entity_type]
        if not same_type:
            return MatchResult()

        best: Optional[ExistingRecord] = None
        best_score = -1.0
        best_signals: list[str] = []

        for record in same_type:
            score, signals = self.score(candidate, record.fields)
            if best is None or score > best_score or (
                score == best_score
                and (record.created_at, record.id) < (best.created_at, best.id)
            ):
                best, best_score, best_signals = record, score, signals

        confidence = classify(best_score, self.config)
        logger.debug(
            f"Best {entity_type.value} match {best.id} "
            f"score={best_score:.1f} ({confidence.value})"
        )

        if confidence == Confidence.NONE:
            return MatchResult(confidence=confidence, score=best_score)

        return MatchResult(
            confidence=confidence,
            score=best_score,
            matched_id=best.id,
            matched_on=best_signals,
        )

    def score(
        self,
        incoming: CandidateFields,
        existing: CandidateFields,
    ) -> tuple[float, list[str]]:
        """
        Composite score (0-100) of two records of the same type.

        The primary field always counts, scoring 0 when the candidate lacks
        it. Other signals count only when at least one side has a value.

        Returns (score, names of agreeing signals).
        """
        entity_type = EntityType(incoming.entity_type)

        for name in IDENTITY_FIELDS.get(entity_type, ()):
            a, b = getattr(incoming, name), getattr(existing, name)
            if a and b and a.strip().lower() == b.strip().lower():
                return 100.0, [name]

        total = 0.0
        applicable = 0.0
        matched_on = []

        for rule in WEIGHT_TABLES[entity_type]:
            signal = self._signal(rule, incoming, existing)
            if signal is None:
                continue
            applicable += rule.weight
            total += rule.weight * signal
            if signal >= self.config.agreement_level:
                matched_on.append(rule.name)

        if applicable == 0:
            return 0.0, []

        score = round(100.0 * total / applicable, 2)
        return min(100.0, max(0.0, score)), matched_on

    def _signal(
        self,
        rule: FieldRule,
        incoming: CandidateFields,
        existing: CandidateFields,
    ) -> Optional[float]:
        """Signal value in [0, 1], or None when the rule does not apply."""
        values_a = [getattr(incoming, f) for f in rule.fields]
        values_b = [getattr(existing, f) for f in rule.fields]

        if rule.kind == SignalKind.TEXT:
            a, b = values_a[0], values_b[0]
            if rule.primary:
                return similarity(a, b) if normalize(a) else 0.0
            if not normalize(a) and not normalize(b):
                return None
            return similarity(a, b)

        if all(v is None for v in values_a + values_b):
            return None

        if rule.kind == SignalKind.RANGE:
            (start_a, end_a), (start_b, end_b) = values_a, values_b
            if dates_overlap(start_a, end_a, start_b, end_b):
                return 1.0
            if dates_approx_equal(start_a, start_b, self.config.tolerance_days):
                return self.config.partial_temporal_credit
            return 0.0

        return 1.0 if dates_approx_equal(
            values_a[0], values_b[0], self.config.tolerance_days
        ) else 0.0
