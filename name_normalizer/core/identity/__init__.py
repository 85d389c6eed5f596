"""
Name identity domain logic.

This package handles:
- Parsing raw names into structured parts
- Generating alternate renderings and a canonical comparison key
- Similarity scoring (Jaro-Winkler, LCS, initials-aware word comparison)
- Library-wide surname and given-name variant clustering

All logic is pure business logic with no I/O dependencies.
"""

from __future__ import annotations

from .matching import NameMatcher, canonical_key, fold_diacritics
from .models import (
    AnalysisProgress,
    CreatorAnalysis,
    CreatorCount,
    MatchResult,
    NameVariant,
    NormalizationSuggestion,
    ParsedName,
    PotentialVariant,
)
from .parser import NameParser, parse_name
from .scanner import CandidateFinder
from .variants import VariantGenerator

__all__ = [
    "AnalysisProgress",
    "CandidateFinder",
    "CreatorAnalysis",
    "CreatorCount",
    "MatchResult",
    "NameMatcher",
    "NameParser",
    "NameVariant",
    "NormalizationSuggestion",
    "ParsedName",
    "PotentialVariant",
    "VariantGenerator",
    "canonical_key",
    "fold_diacritics",
    "parse_name",
]
