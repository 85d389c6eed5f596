"""
Normalizers for the bibliographic fields that share the learning engine.

The set of field kinds is closed; `create_field_normalizer` is the only
place that maps a kind to its implementation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .core.identity.parser import NameParser
from .core.identity.variants import VariantGenerator
from .learning import LearningEngine


class FieldKind(str, Enum):
    NAME = "name"
    PUBLISHER = "publisher"
    LOCATION = "location"
    JOURNAL = "journal"

    @classmethod
    def from_label(cls, label: str) -> "FieldKind":
        normalized = label.strip().lower()
        match normalized:
            case "name" | "creator" | "author" | "editor":
                return cls.NAME
            case "publisher":
                return cls.PUBLISHER
            case "location" | "place":
                return cls.LOCATION
            case "journal" | "publicationtitle" | "publication_title":
                return cls.JOURNAL
        raise ValueError(f"Unknown field kind: {label}")


@dataclass(frozen=True, slots=True)
class FieldNormalization:
    original: str
    normalized: str
    source: str
    """'learned' (exact mapping), 'variant' (mapping of an alternate form) or 'none'"""
    scope: Optional[str] = None
    """Collection whose mapping matched; None for library-wide mappings"""


PUBLISHER_EXPANSIONS = {
    "co": "Company",
    "inc": "Incorporated",
    "ltd": "Limited",
    "corp": "Corporation",
    "univ": "University",
    "pub": "Publishing",
    "pubs": "Publishers",
    "assoc": "Association",
    "intl": "International",
    "&": "and",
}
PUBLISHER_CONTRACTIONS = {
    "company": "Co.",
    "incorporated": "Inc.",
    "limited": "Ltd.",
    "corporation": "Corp.",
    "university": "Univ.",
    "publishing": "Pub.",
    "publishers": "Pubs.",
    "association": "Assoc.",
    "international": "Intl.",
    "and": "&",
}
CORPORATE_DESIGNATORS = re.compile(
    r"[,\s]+(?:inc|incorporated|ltd|limited|co|company|corp|corporation|llc|gmbh|plc)\.?$",
    re.IGNORECASE,
)

JOURNAL_EXPANSIONS = {
    "j": "Journal",
    "proc": "Proceedings",
    "rev": "Review",
    "int": "International",
    "sci": "Science",
    "res": "Research",
    "am": "American",
    "soc": "Society",
    "trans": "Transactions",
    "q": "Quarterly",
    "ann": "Annals",
    "bull": "Bulletin",
    "natl": "National",
    "acad": "Academy",
    "psychol": "Psychology",
    "philos": "Philosophy",
}
JOURNAL_CONTRACTIONS = {value.lower(): f"{key.capitalize()}." for key, value in JOURNAL_EXPANSIONS.items()}

US_STATES = {
    "AL": "Alabama", "AK": "Alaska", "AZ": "Arizona", "AR": "Arkansas", "CA": "California",
    "CO": "Colorado", "CT": "Connecticut", "DE": "Delaware", "FL": "Florida", "GA": "Georgia",
    "HI": "Hawaii", "ID": "Idaho", "IL": "Illinois", "IN": "Indiana", "IA": "Iowa",
    "KS": "Kansas", "KY": "Kentucky", "LA": "Louisiana", "ME": "Maine", "MD": "Maryland",
    "MA": "Massachusetts", "MI": "Michigan", "MN": "Minnesota", "MS": "Mississippi", "MO": "Missouri",
    "MT": "Montana", "NE": "Nebraska", "NV": "Nevada", "NH": "New Hampshire", "NJ": "New Jersey",
    "NM": "New Mexico", "NY": "New York", "NC": "North Carolina", "ND": "North Dakota", "OH": "Ohio",
    "OK": "Oklahoma", "OR": "Oregon", "PA": "Pennsylvania", "RI": "Rhode Island", "SC": "South Carolina",
    "SD": "South Dakota", "TN": "Tennessee", "TX": "Texas", "UT": "Utah", "VT": "Vermont",
    "VA": "Virginia", "WA": "Washington", "WV": "West Virginia", "WI": "Wisconsin", "WY": "Wyoming",
    "DC": "District of Columbia",
}
US_STATE_CODES = {name.lower(): code for code, name in US_STATES.items()}


def _ordered(values: list[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(value for value in values if value))


def _rewrite_tokens(value: str, table: dict[str, str], require_period: bool = False) -> str:
    words = []
    for word in value.split():
        bare = word.rstrip(".,").lower()
        replacement = table.get(bare)
        if replacement is None or (require_period and not word.rstrip(",").endswith(".")):
            words.append(word)
            continue
        trailing = "," if word.endswith(",") else ""
        words.append(replacement + trailing)
    return " ".join(words)


class FieldNormalizer:
    kind: FieldKind

    def __init__(self, engine: LearningEngine) -> None:
        self.engine = engine

    def generate_variants(self, value: str) -> tuple[str, ...]:
        raise NotImplementedError

    def normalize(self, value: Optional[str], collection_id: Optional[str] = None) -> FieldNormalization:
        """
        Learned normalization of `value`: the exact form first, then each variant.

        With a `collection_id`, mappings learned for that collection win over
        library-wide ones at every step.
        """
        text = " ".join((value or "").split())
        if not text:
            return FieldNormalization(value or "", value or "", "none")
        learned = self.engine.get_scoped_mapping(text, collection_id)
        if learned is not None:
            return FieldNormalization(text, learned.normalized, "learned", learned.scope)
        for variant in self.generate_variants(text):
            if variant == text:
                continue
            learned = self.engine.get_scoped_mapping(variant, collection_id)
            if learned is not None:
                return FieldNormalization(text, learned.normalized, "variant", learned.scope)
        return FieldNormalization(text, text, "none")

    def learn(
        self,
        value: str,
        normalized: str,
        collection_id: Optional[str] = None,
        confidence: float = 1.0,
    ) -> bool:
        return self.engine.store_mapping(
            value,
            normalized,
            confidence=confidence,
            context={"fieldType": self.kind.value},
            collection_id=collection_id,
        )


class NameFieldNormalizer(FieldNormalizer):
    kind = FieldKind.NAME

    def __init__(self, engine: LearningEngine) -> None:
        super().__init__(engine)
        self.parser = NameParser()
        self.generator = VariantGenerator()

    def generate_variants(self, value: str) -> tuple[str, ...]:
        return self.generator.generate_variants(self.parser.parse(value))


class PublisherNormalizer(FieldNormalizer):
    kind = FieldKind.PUBLISHER

    def generate_variants(self, value: str) -> tuple[str, ...]:
        expanded = _rewrite_tokens(value, PUBLISHER_EXPANSIONS)
        expanded = re.sub(r"\bUP\b", "University Press", expanded)
        contracted = _rewrite_tokens(value, PUBLISHER_CONTRACTIONS)
        contracted = re.sub(r"\bUniv\. Press\b", "UP", contracted)
        return _ordered([value, expanded, contracted, CORPORATE_DESIGNATORS.sub("", value)])


class LocationNormalizer(FieldNormalizer):
    kind = FieldKind.LOCATION

    def generate_variants(self, value: str) -> tuple[str, ...]:
        city, _, region = (part.strip() for part in value.partition(","))
        if not region:
            return (value,)
        variants = [value]
        code = region.rstrip(".").upper()
        if code in US_STATES:
            variants.append(f"{city}, {US_STATES[code]}")
        elif region.lower() in US_STATE_CODES:
            variants.append(f"{city}, {US_STATE_CODES[region.lower()]}")
        variants.append(city)
        return _ordered(variants)


class JournalNormalizer(FieldNormalizer):
    kind = FieldKind.JOURNAL

    def generate_variants(self, value: str) -> tuple[str, ...]:
        without_article = re.sub(r"^the\s+", "", value, flags=re.IGNORECASE)
        expanded = _rewrite_tokens(without_article, JOURNAL_EXPANSIONS, require_period=True)
        contracted = _rewrite_tokens(without_article, JOURNAL_CONTRACTIONS)
        return _ordered([value, without_article, expanded, contracted])


def create_field_normalizer(kind: FieldKind, engine: LearningEngine) -> FieldNormalizer:
    match kind:
        case FieldKind.NAME:
            return NameFieldNormalizer(engine)
        case FieldKind.PUBLISHER:
            return PublisherNormalizer(engine)
        case FieldKind.LOCATION:
            return LocationNormalizer(engine)
        case FieldKind.JOURNAL:
            return JournalNormalizer(engine)
    raise ValueError(f"Unsupported field kind: {kind}")


def field_namespace(kind: FieldKind, base: str) -> str:
    """Storage namespace of a kind's learned mappings; names use the base namespace."""
    if kind is FieldKind.NAME:
        return base
    return f"{base}_{kind.value}"
