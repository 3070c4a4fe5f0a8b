"""
Text normalization, keyword extraction and edit-distance similarity

Pure functions shared by the type classifier, template index and matcher.
"""
import re
from typing import List, Optional

from rapidfuzz.distance import Levenshtein

STOP_WORDS = frozenset({
    "and", "or", "the", "a", "an", "in", "on", "at", "to", "for", "of", "with", "by",
})

MAX_KEYWORDS = 5

_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]+")
_WHITESPACE = re.compile(r"\s+")


def normalize(text: Optional[str]) -> str:
    """
    Normalize text for comparison.

    "COGS - Food (Kitchen)" -> "cogs food kitchen"
    """
    if not text:
        return ""
    cleaned = _NON_ALPHANUMERIC.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", cleaned).strip()


def keywords(text: Optional[str], max_count: int = MAX_KEYWORDS) -> List[str]:
    """First `max_count` significant tokens of the normalized text, in order."""
    tokens = normalize(text).split()
    significant = [t for t in tokens if len(t) > 2 and t not in STOP_WORDS]
    return significant[:max_count]


def similarity(a: str, b: str) -> float:
    """
    Levenshtein similarity in [0, 1].

    1 - distance / longer length; two empty strings are identical.
    """
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(a, b) / longest
