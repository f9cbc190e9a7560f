"""
Text canonicalization and lexical similarity for duplicate detection.
"""

import re
from typing import Optional

from rapidfuzz.distance import Levenshtein

# Organizational suffixes stripped when they are the final word of a name
ORGANIZATION_SUFFIXES = frozenset({
    "inc", "inc.", "incorporated",
    "llc", "llc.", "l.l.c", "l.l.c.",
    "corp", "corp.", "corporation",
    "co", "co.", "company",
    "ltd", "ltd.", "limited",
    "plc", "plc.",
    "gmbh",
})

_WHITESPACE = re.compile(r"\s+")


def normalize(text: Optional[str]) -> str:
    """
    Canonicalize free text for comparison.

    - Trim and collapse whitespace runs
    - Lowercase
    - Strip trailing organizational suffixes ("Google Inc." -> "google"),
      keeping at least one word

    None and empty input normalize to "".
    """
    if not text:
        return ""

    normalized = _WHITESPACE.sub(" ", text).strip().lower()

    words = normalized.split(" ")
    while len(words) > 1:
        # "Acme, Inc." leaves "acme," behind
        last = words[-1].rstrip(",")
        if not last or last in ORGANIZATION_SUFFIXES:
            words.pop()
        else:
            words[-1] = last
            break

    return " ".join(words).rstrip(",")


def similarity(a: Optional[str], b: Optional[str]) -> float:
    """
    Edit-distance similarity of two strings in [0, 1].

    Both inputs are normalized first. Two empty strings are identical;
    empty against non-empty is maximally dissimilar.
    """
    a = normalize(a)
    b = normalize(b)

    if a == b:
        return 1.0
    if not a or not b:
        return 0.0

    distance = Levenshtein.distance(a, b)
    return 1.0 - distance / max(len(a), len(b))
