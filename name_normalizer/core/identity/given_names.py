"""
Given-name variant detection within one surname.

Creators that share a surname are bucketed by a normalized given-name key
("Jerry" and "Jerry A." share "jerry", "J.A." becomes "initial:ja", "Bill"
becomes "william"). An initials bucket is folded into the only full-name
bucket starting with the same letter; when several full names compete the
initials stay apart. Inside a bucket, spellings whose middle initials
disagree ("Jerry A." vs "Jerry B.") are kept in separate clusters.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from .constants import GIVEN_NAME_EQUIVALENTS
from .matching import NameMatcher, fold_diacritics, is_abbreviation
from .models import NameVariant, NormalizationSuggestion
from .parser import is_initials_token

logger = logging.getLogger(__name__)

_VOWELS = set("aeiouy")
_INITIAL_PREFIX = "initial:"


@dataclass(frozen=True, slots=True)
class GivenToken:
    kind: str
    """'word' or 'initial'"""

    value: str


@dataclass(slots=True)
class GivenNameSpelling:
    first_name: str
    last_name: str
    frequency: int

    @property
    def full_name(self) -> str:
        return " ".join(f"{self.first_name} {self.last_name}".split())


def is_likely_initial_sequence(token: str) -> bool:
    """"J.A.", "JA" and "JRR" read as initials; "Jo" and "Ann" do not."""
    if is_initials_token(token):
        return True
    letters = token.replace(".", "")
    if not letters.isalpha() or not 2 <= len(letters) <= 4:
        return False
    return letters.isupper() or not (_VOWELS & set(letters.lower()))


def parse_given_name_tokens(given: str) -> list[GivenToken]:
    tokens: list[GivenToken] = []
    for part in given.split():
        letters = part.replace(".", "")
        if not letters:
            continue
        if len(letters) == 1:
            tokens.append(GivenToken("initial", letters.upper()))
        elif is_likely_initial_sequence(part):
            tokens.extend(GivenToken("initial", letter.upper()) for letter in letters)
        else:
            tokens.append(GivenToken("word", part.rstrip(".")))
    return tokens


def normalize_given_name(given: str) -> str:
    tokens = parse_given_name_tokens(given)
    if not tokens:
        return ""
    if tokens[0].kind == "initial":
        letters = []
        for token in tokens:
            if token.kind != "initial":
                break
            letters.append(token.value.lower())
        return _INITIAL_PREFIX + fold_diacritics("".join(letters))
    base = fold_diacritics(tokens[0].value).lower()
    return GIVEN_NAME_EQUIVALENTS.get(base, base)


def middle_signature(given: str) -> tuple[str, ...]:
    """Initials of every given-name token after the first letter."""
    tokens = parse_given_name_tokens(given)
    letters = [fold_diacritics(token.value[0]).lower() for token in tokens]
    return tuple(letters[1:])


def _compatible(first: tuple[str, ...], second: tuple[str, ...]) -> bool:
    shorter, longer = sorted((first, second), key=len)
    return longer[: len(shorter)] == shorter


def merge_initial_buckets(buckets: dict[str, list[GivenNameSpelling]]) -> dict[str, list[GivenNameSpelling]]:
    merged = {key: list(values) for key, values in buckets.items()}
    for key in [key for key in buckets if key.startswith(_INITIAL_PREFIX)]:
        letters = key[len(_INITIAL_PREFIX):]
        targets = [
            other
            for other in merged
            if not other.startswith(_INITIAL_PREFIX) and other and is_abbreviation(letters[:1], other)
        ]
        if len(targets) != 1:
            if len(targets) > 1:
                logger.debug("Initials %s are ambiguous across %s", key, ", ".join(sorted(targets)))
            continue
        merged[targets[0]].extend(merged.pop(key))
    return merged


def cluster_by_signature(spellings: list[GivenNameSpelling]) -> list[list[GivenNameSpelling]]:
    signed = [(spelling, middle_signature(spelling.first_name)) for spelling in spellings]
    clusters: list[tuple[tuple[str, ...], list[GivenNameSpelling]]] = []
    bare: list[GivenNameSpelling] = []
    for spelling, signature in signed:
        if not signature:
            bare.append(spelling)
            continue
        for index, (existing, members) in enumerate(clusters):
            if _compatible(existing, signature):
                longest = existing if len(existing) >= len(signature) else signature
                clusters[index] = (longest, members + [spelling])
                break
        else:
            clusters.append((signature, [spelling]))

    groups = [members for _, members in clusters]
    if len(groups) == 1:
        groups[0].extend(bare)
    elif bare:
        groups.append(bare)
    return groups


def _primary_rank(spelling: GivenNameSpelling) -> tuple:
    has_word = any(token.kind == "word" for token in parse_given_name_tokens(spelling.first_name))
    return (
        -int(has_word),
        -spelling.frequency,
        -int("." not in spelling.first_name),
        -len(spelling.first_name),
        spelling.full_name,
    )


class GivenNameAnalyzer:
    """Produce given-name suggestions for the creators of one surname."""

    def __init__(self, matcher: Optional[NameMatcher] = None) -> None:
        self.matcher = matcher or NameMatcher()

    def suggest(
        self,
        surname: str,
        surname_key: str,
        spellings: Iterable[GivenNameSpelling],
    ) -> list[NormalizationSuggestion]:
        buckets: dict[str, list[GivenNameSpelling]] = {}
        for spelling in spellings:
            key = normalize_given_name(spelling.first_name)
            if not key:
                continue
            buckets.setdefault(key, []).append(spelling)

        suggestions = []
        for key, members in merge_initial_buckets(buckets).items():
            for cluster in cluster_by_signature(members):
                # surname case differences alone are not a given-name variant
                if len({spelling.first_name for spelling in cluster}) < 2:
                    continue
                suggestions.append(self._build(surname, surname_key, key, cluster))
        return suggestions

    def _build(
        self,
        surname: str,
        surname_key: str,
        key: str,
        cluster: list[GivenNameSpelling],
    ) -> NormalizationSuggestion:
        ordered = sorted(cluster, key=_primary_rank)
        best = ordered[0]
        primary = " ".join(f"{best.first_name} {surname}".split())
        variants = [
            NameVariant(
                name=spelling.full_name,
                frequency=spelling.frequency,
                first_name=spelling.first_name,
                last_name=spelling.last_name,
            )
            for spelling in ordered
        ]
        others = [variant for variant in variants if variant.name != primary]
        similarity = 1.0
        if others:
            similarity = sum(self.matcher.calculate_similarity(primary, variant.name) for variant in others) / len(others)
        return NormalizationSuggestion(
            type="given-name",
            primary=primary,
            variants=variants,
            similarity=round(similarity, 4),
            surname=surname,
            surname_key=surname_key,
            recommended_first_name=best.first_name,
            normalized_given_name_key=key,
            total_frequency=sum(spelling.frequency for spelling in cluster),
        )
