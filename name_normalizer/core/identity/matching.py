"""
Name similarity primitives.

The composite score blends three signals:
- Jaro-Winkler over the whole string (prefix and character-order agreement)
- Longest-common-subsequence ratio
- Word-level comparison that understands initials ("J." vs "Jerry")

All functions are pure and never raise on malformed input.
"""

from __future__ import annotations

import re
from typing import Optional

from rapidfuzz.distance import JaroWinkler, LCSseq
from unidecode import unidecode

from .constants import GIVEN_NAME_EQUIVALENTS, KEY_PUNCTUATION
from .models import MatchResult

_WORD_SPLIT = re.compile(r"[\s,]+")


def canonical_key(value: Optional[str]) -> str:
    """
    Key under which a raw string is learned.

    Examples:
        "Jerry   Fodor" → "jerry fodor"
        "Fodor, J.A." → "fodor ja"
    """
    if not value:
        return ""
    stripped = KEY_PUNCTUATION.sub("", value.strip().lower())
    return " ".join(stripped.split())


def fold_diacritics(value: str) -> str:
    """Transliterate to ASCII: "Miłkowski" → "Milkowski", "Dvořák" → "Dvorak"."""
    if not value:
        return ""
    return unidecode(value)


def extract_words(value: str) -> list[str]:
    if not value:
        return []
    return [word for word in _WORD_SPLIT.split(value.strip()) if word]


def jaro_winkler_similarity(first: str, second: str) -> float:
    if first == second:
        return 1.0
    if not first or not second:
        return 0.0
    return float(JaroWinkler.similarity(first, second))


def lcs_similarity(first: str, second: str) -> float:
    """Longest common subsequence length over the longer string's length."""
    if first == second:
        return 1.0
    longest = max(len(first), len(second))
    if not first or not second:
        return 0.0
    return LCSseq.similarity(first, second) / longest


def is_abbreviation(abbreviation: str, full: str) -> bool:
    """True when `abbreviation` (periods ignored) is a strict case-insensitive prefix of `full`."""
    short = abbreviation.replace(".", "").lower()
    long = full.replace(".", "").lower()
    if not short or len(short) >= len(long):
        return False
    return long.startswith(short)


def _is_initial(word: str) -> bool:
    return len(word.replace(".", "")) == 1


def is_similar_word(first: str, second: str) -> bool:
    left = first.replace(".", "").lower()
    right = second.replace(".", "").lower()
    if not left or not right:
        return False
    if left == right:
        return True
    if len(left) == 1 and right.startswith(left):
        return True
    if len(right) == 1 and left.startswith(right):
        return True
    left_base = GIVEN_NAME_EQUIVALENTS.get(left, left)
    right_base = GIVEN_NAME_EQUIVALENTS.get(right, right)
    return left_base == right_base


def compare_name_parts(first: str, second: str) -> float:
    if not first or not second:
        return 0.0
    if first.lower() == second.lower():
        return 1.0
    if (_is_initial(first) and is_abbreviation(first, second)) or (
        _is_initial(second) and is_abbreviation(second, first)
    ):
        return 0.8
    left = first.replace(".", "").lower()
    right = second.replace(".", "").lower()
    if left == right:
        return 1.0
    return jaro_winkler_similarity(left, right)


def initial_matching_similarity(first: str, second: str) -> float:
    """Average part score over the aligned first words and last words."""
    first_words = extract_words(first)
    second_words = extract_words(second)
    if not first_words or not second_words:
        return 0.0
    leading = compare_name_parts(first_words[0], second_words[0])
    trailing = compare_name_parts(first_words[-1], second_words[-1])
    return (leading + trailing) / 2


class NameMatcher:
    """
    Composite name similarity with configurable weights.

    Scores are computed on lowercased input, so case never lowers a score.
    """

    def __init__(
        self,
        jaro_winkler_weight: float = 0.5,
        lcs_weight: float = 0.3,
        initials_weight: float = 0.2,
    ) -> None:
        total = jaro_winkler_weight + lcs_weight + initials_weight
        if total <= 0:
            raise ValueError("at least one similarity weight must be positive")
        self.jaro_winkler_weight = jaro_winkler_weight / total
        self.lcs_weight = lcs_weight / total
        self.initials_weight = initials_weight / total

    @classmethod
    def from_settings(cls, settings) -> "NameMatcher":
        return cls(
            jaro_winkler_weight=settings.jaro_winkler_weight,
            lcs_weight=settings.lcs_weight,
            initials_weight=settings.initials_weight,
        )

    def calculate_similarity(self, first: Optional[str], second: Optional[str]) -> float:
        left = " ".join((first or "").lower().split())
        right = " ".join((second or "").lower().split())
        if left == right:
            return 1.0
        if not left or not right:
            return 0.0
        score = (
            self.jaro_winkler_weight * jaro_winkler_similarity(left, right)
            + self.lcs_weight * lcs_similarity(left, right)
            + self.initials_weight * initial_matching_similarity(left, right)
        )
        return max(0.0, min(1.0, score))

    def match(self, first: str, second: str, threshold: float) -> MatchResult:
        if canonical_key(first) == canonical_key(second):
            return MatchResult(matches=True, strategy="exact", confidence=1.0)
        if canonical_key(fold_diacritics(first)) == canonical_key(fold_diacritics(second)):
            return MatchResult(
                matches=True,
                strategy="folded",
                confidence=1.0,
                details=f"'{first}' and '{second}' differ only in diacritics",
            )
        score = self.calculate_similarity(fold_diacritics(first), fold_diacritics(second))
        strategy = "fuzzy"
        words = extract_words(first) + extract_words(second)
        if any(_is_initial(word) for word in words):
            strategy = "initials"
        return MatchResult(matches=score >= threshold, strategy=strategy, confidence=score)
