"""
Domain models for name parsing, matching and clustering.

These are pure data models with no dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional


@dataclass(frozen=True, slots=True)
class ParsedName:
    """
    Structured parts of one raw personal name.

    Example:
        "Ludwig van Beethoven"
        - first_name: "Ludwig"
        - prefix: "van"
        - last_name: "Beethoven"
    """
    first_name: str = ""
    middle_name: str = ""
    prefix: str = ""
    last_name: str = ""
    suffix: str = ""
    original: str = ""
    """The untouched input string"""

    @property
    def middle_tokens(self) -> list[str]:
        return self.middle_name.split()

    @property
    def is_empty(self) -> bool:
        return not (self.first_name or self.middle_name or self.prefix or self.last_name or self.suffix)

    def fields(self) -> tuple[str, str, str, str, str]:
        """The structured fields, without the original text."""
        return (self.first_name, self.middle_name, self.prefix, self.last_name, self.suffix)


@dataclass
class MatchResult:
    """Result of comparing two names."""
    matches: bool
    """Whether the similarity reached the requested threshold"""

    strategy: Optional[str] = None
    """Which signal decided: 'exact', 'folded', 'initials', 'fuzzy'"""

    confidence: float = 0.0
    """Composite similarity in [0, 1]"""

    details: Optional[str] = None


@dataclass(slots=True)
class CreatorCount:
    """One (first name, last name) spelling and how often it occurs."""
    first_name: str = ""
    last_name: str = ""
    count: int = 1

    @classmethod
    def coerce(cls, value: "CreatorCount | Mapping[str, Any]") -> "CreatorCount":
        if isinstance(value, CreatorCount):
            return value
        first = value.get("first_name", value.get("firstName", ""))
        last = value.get("last_name", value.get("lastName", ""))
        count = value.get("count", 1)
        if not isinstance(first, str) or not isinstance(last, str):
            raise TypeError("creator names must be strings")
        count = int(count)
        if count < 0:
            raise ValueError("creator count cannot be negative")
        return cls(first_name=first, last_name=last, count=count)


@dataclass(slots=True)
class NameVariant:
    """One observed spelling inside a suggestion."""
    name: str
    frequency: int
    first_name: str = ""
    last_name: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "frequency": self.frequency}
        if self.first_name or self.last_name:
            data["firstName"] = self.first_name
            data["lastName"] = self.last_name
        return data


@dataclass(slots=True)
class PotentialVariant:
    """A pair of surnames whose similarity reached the clustering threshold."""
    variant1: NameVariant
    variant2: NameVariant
    similarity: float
    recommended_normalization: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "variant1": self.variant1.to_dict(),
            "variant2": self.variant2.to_dict(),
            "similarity": self.similarity,
            "recommendedNormalization": self.recommended_normalization,
        }


@dataclass(slots=True)
class NormalizationSuggestion:
    """
    A variant group proposed for normalization.

    Surname suggestions carry the surname spellings as variants; given-name
    suggestions carry full names sharing one surname.
    """
    type: str
    """'surname' or 'given-name'"""

    primary: str
    """The recommended spelling every variant maps to"""

    variants: list[NameVariant] = field(default_factory=list)
    """All spellings in the group, the primary included"""

    similarity: float = 0.0
    surname: str = ""
    surname_key: str = ""
    recommended_first_name: str = ""
    normalized_given_name_key: str = ""
    total_frequency: int = 0

    @property
    def first_name_pattern(self) -> str:
        return self.recommended_first_name

    @property
    def is_surname(self) -> bool:
        return self.type == "surname"

    def alternatives(self) -> list[NameVariant]:
        """Variants that differ from the primary."""
        return [variant for variant in self.variants if not self.is_primary(variant)]

    def is_primary(self, variant: NameVariant) -> bool:
        if self.is_surname:
            return variant.name.casefold() == self.primary.casefold()
        return variant.name == self.primary

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type,
            "primary": self.primary,
            "variants": [variant.to_dict() for variant in self.variants],
            "similarity": self.similarity,
            "surname": self.surname,
            "surnameKey": self.surname_key,
            "totalFrequency": self.total_frequency,
        }
        if not self.is_surname:
            data["recommendedFirstName"] = self.recommended_first_name
            data["normalizedGivenNameKey"] = self.normalized_given_name_key
        return data


@dataclass(slots=True)
class AnalysisProgress:
    """A progress event emitted between chunks of analysis work."""
    stage: str
    processed: int = 0
    total: int = 0

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 100.0
        return round(100.0 * self.processed / self.total, 1)


@dataclass
class CreatorAnalysis:
    """Output of a clustering run over aggregated creator records."""
    surname_frequencies: dict[str, int] = field(default_factory=dict)
    """Display surname -> total occurrences"""

    potential_variants: list[PotentialVariant] = field(default_factory=list)
    suggestions: list[NormalizationSuggestion] = field(default_factory=list)

    @property
    def total_unique_surnames(self) -> int:
        return len(self.surname_frequencies)

    def to_dict(self) -> dict[str, Any]:
        return {
            "surnameFrequencies": dict(self.surname_frequencies),
            "potentialVariants": [pair.to_dict() for pair in self.potential_variants],
            "suggestions": [suggestion.to_dict() for suggestion in self.suggestions],
            "totalUniqueSurnames": self.total_unique_surnames,
        }
