"""
Duplicate Detection Module

Lexical and temporal matching of import candidates against existing records:
- Text normalization with organizational suffix stripping
- Edit-distance similarity (rapidfuzz)
- Date-range overlap and approximate start dates
- Per-entity-type weighted composite scores with confidence tiers
"""

from career_import.matching.normalize import normalize, similarity
from career_import.matching.temporal import dates_approx_equal, dates_overlap
from career_import.matching.matchers import (
    DuplicateMatcher,
    MatcherConfig,
    classify,
    default_decision,
)

__all__ = [
    "DuplicateMatcher",
    "MatcherConfig",
    "classify",
    "dates_approx_equal",
    "dates_overlap",
    "default_decision",
    "normalize",
    "similarity",
]
