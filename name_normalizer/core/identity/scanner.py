"""
Candidate finder - library-wide surname and given-name clustering.

This module contains the pure clustering logic. It has NO I/O dependencies;
creator records are handed in by the caller and learned decisions are
consulted through an injected filter.

Responsibilities:
- Aggregating creator records into surname groups
- Scanning surname pairs for likely spelling variants
- Turning variant pairs into star-shaped suggestion groups
- Detecting given-name variants within one surname
"""

from __future__ import annotations

import logging
from collections.abc import Generator, Iterable
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Protocol

from ...errors import AnalysisCancelled
from .given_names import GivenNameAnalyzer, GivenNameSpelling
from .matching import NameMatcher
from .models import (
    AnalysisProgress,
    CreatorAnalysis,
    CreatorCount,
    NameVariant,
    NormalizationSuggestion,
    PotentialVariant,
)
from .parser import NameParser

logger = logging.getLogger(__name__)

AnalysisSteps = Generator[AnalysisProgress, None, CreatorAnalysis]


class SuggestionFilter(Protocol):
    def is_distinct_pair(self, first: str, second: str, scope: Optional[str] = None) -> bool: ...

    def filter_skipped_suggestions(self, suggestions: list[Any]) -> list[Any]: ...


@dataclass
class SurnameGroup:
    """All spellings that share one lowercase surname."""
    key: str
    spellings: dict[str, int] = field(default_factory=dict)
    """Surname as written -> occurrences"""

    given: dict[tuple[str, str], int] = field(default_factory=dict)
    """(first name, last name as written) -> occurrences"""

    total: int = 0

    @property
    def display(self) -> str:
        # max() keeps the first-seen spelling on ties
        return max(self.spellings.items(), key=lambda item: item[1])[0]

    def add(self, first_name: str, last_name: str, count: int) -> None:
        self.spellings[last_name] = self.spellings.get(last_name, 0) + count
        self.given[(first_name, last_name)] = self.given.get((first_name, last_name), 0) + count
        self.total += count


@dataclass
class _StarGroup:
    primary: str
    members: list[str]
    similarity: float


def drain(
    steps: AnalysisSteps,
    progress_callback: Optional[Callable[[AnalysisProgress], Any]] = None,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> CreatorAnalysis:
    """Run analysis steps to completion on the calling thread."""
    while True:
        try:
            event = next(steps)
        except StopIteration as stop:
            return stop.value
        if progress_callback:
            progress_callback(event)
        if should_cancel and should_cancel():
            steps.close()
            raise AnalysisCancelled(f"Analysis cancelled during {event.stage}")


class CandidateFinder:
    """
    Groups creator records into surname and given-name variant suggestions.

    The scan is exposed as a generator of progress events so that callers
    decide how to run it: `analyze_creators` drains it synchronously while
    the library analyzer interleaves it with an event loop.
    """

    def __init__(
        self,
        matcher: Optional[NameMatcher] = None,
        parser: Optional[NameParser] = None,
        decisions: Optional[SuggestionFilter] = None,
        surname_threshold: float = 0.8,
        length_window: Optional[int] = 2,
        chunk_size: int = 250,
        given_names: bool = True,
    ) -> None:
        self.matcher = matcher or NameMatcher()
        self.parser = parser or NameParser()
        self.decisions = decisions
        self.surname_threshold = surname_threshold
        self.length_window = length_window
        self.chunk_size = max(1, chunk_size)
        self.given_names = given_names
        self.given_name_analyzer = GivenNameAnalyzer(self.matcher)

    @classmethod
    def from_settings(
        cls,
        settings,
        matcher: Optional[NameMatcher] = None,
        decisions: Optional[SuggestionFilter] = None,
    ) -> "CandidateFinder":
        return cls(
            matcher=matcher or NameMatcher.from_settings(settings.matching),
            decisions=decisions,
            surname_threshold=settings.analysis.surname_threshold,
            length_window=settings.analysis.length_window,
            chunk_size=settings.analysis.chunk_size,
            given_names=settings.analysis.given_names,
        )

    def analyze_creators(
        self,
        records: Iterable[CreatorCount | Mapping[str, Any]],
        progress_callback: Optional[Callable[[AnalysisProgress], Any]] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> CreatorAnalysis:
        """
        Cluster creator records into variant suggestions.

        Args:
            records: CreatorCount objects or mappings with firstName/lastName/count
            progress_callback: Optional callback receiving AnalysisProgress events
            should_cancel: Optional predicate polled between chunks

        Returns:
            CreatorAnalysis with surname frequencies, variant pairs and suggestions

        Raises:
            AnalysisCancelled: when should_cancel() returns True
        """
        return drain(self.iter_analysis(records), progress_callback, should_cancel)

    def iter_analysis(self, records: Iterable[CreatorCount | Mapping[str, Any]]) -> AnalysisSteps:
        groups = yield from self._aggregate(records)
        ordered = sorted(groups.values(), key=lambda group: (-group.total, group.key))
        pairs = yield from self._scan_pairs(ordered)

        suggestions = self._surname_suggestions(pairs, groups)
        if self.given_names:
            given = yield from self._given_name_suggestions(ordered)
            suggestions.extend(given)
        if self.decisions is not None:
            suggestions = self.decisions.filter_skipped_suggestions(suggestions)

        result = CreatorAnalysis(
            surname_frequencies={group.display: group.total for group in groups.values()},
            potential_variants=pairs,
            suggestions=suggestions,
        )
        logger.info(
            "Analyzed %d surnames: %d variant pairs, %d suggestions",
            result.total_unique_surnames,
            len(pairs),
            len(suggestions),
        )
        yield AnalysisProgress("complete", 1, 1)
        return result

    def _split_creator(self, creator: CreatorCount) -> tuple[str, str]:
        first = " ".join(creator.first_name.split())
        last = " ".join(creator.last_name.split())
        if not first and len(last.split()) > 1:
            # single-field name such as "Jerry Fodor"
            parsed = self.parser.parse(last)
            first = " ".join(part for part in (parsed.first_name, parsed.middle_name) if part)
            last = " ".join(part for part in (parsed.prefix, parsed.last_name) if part)
        return first, last

    def _aggregate(
        self, records: Iterable[CreatorCount | Mapping[str, Any]]
    ) -> Generator[AnalysisProgress, None, dict[str, SurnameGroup]]:
        groups: dict[str, SurnameGroup] = {}
        processed = 0
        for record in records:
            processed += 1
            try:
                creator = CreatorCount.coerce(record)
            except (AttributeError, TypeError, ValueError) as exc:
                logger.warning("Skipping creator record %r: %s", record, exc)
                continue
            first, last = self._split_creator(creator)
            if not last or creator.count == 0:
                continue
            key = last.lower()
            groups.setdefault(key, SurnameGroup(key=key)).add(first, last, creator.count)
            if processed % self.chunk_size == 0:
                yield AnalysisProgress("aggregating_surnames", processed, processed)
        yield AnalysisProgress("aggregating_surnames", processed, processed)
        return groups

    def _scan_pairs(
        self, ordered: list[SurnameGroup]
    ) -> Generator[AnalysisProgress, None, list[PotentialVariant]]:
        total = len(ordered) * (len(ordered) - 1) // 2
        pairs: list[PotentialVariant] = []
        processed = 0
        for index, first in enumerate(ordered):
            for second in ordered[index + 1:]:
                processed += 1
                if processed % self.chunk_size == 0:
                    yield AnalysisProgress("analyzing_surnames", processed, total)
                if self.length_window is not None and abs(len(first.key) - len(second.key)) > self.length_window:
                    continue
                result = self.matcher.match(first.key, second.key, self.surname_threshold)
                if not result.matches:
                    continue
                # `ordered` is sorted by frequency, then key: `first` wins ties
                pairs.append(
                    PotentialVariant(
                        variant1=NameVariant(first.display, first.total),
                        variant2=NameVariant(second.display, second.total),
                        similarity=round(result.confidence, 4),
                        recommended_normalization=first.display,
                    )
                )
        yield AnalysisProgress("analyzing_surnames", total, total)
        pairs.sort(
            key=lambda pair: (
                -(pair.variant1.frequency + pair.variant2.frequency),
                -pair.similarity,
                pair.variant1.name,
                pair.variant2.name,
            )
        )
        return pairs

    def _surname_suggestions(
        self, pairs: list[PotentialVariant], groups: dict[str, SurnameGroup]
    ) -> list[NormalizationSuggestion]:
        stars: list[_StarGroup] = []
        claimed: dict[str, _StarGroup] = {}
        for pair in pairs:
            primary = pair.recommended_normalization
            other = pair.variant2.name if pair.variant1.name == primary else pair.variant1.name
            primary_key, other_key = primary.lower(), other.lower()
            if primary_key not in claimed and other_key not in claimed:
                star = _StarGroup(primary_key, [primary_key, other_key], pair.similarity)
                stars.append(star)
                claimed[primary_key] = claimed[other_key] = star
            elif other_key not in claimed and claimed[primary_key].primary == primary_key:
                star = claimed[primary_key]
                star.members.append(other_key)
                star.similarity = min(star.similarity, pair.similarity)
                claimed[other_key] = star

        suggestions = []
        for star in stars:
            primary_group = groups[star.primary]
            members = [
                key
                for key in star.members
                if key == star.primary or not self._is_distinct(groups[key].display, primary_group.display, None)
            ]
            if len(members) < 2:
                continue
            ordered = [primary_group] + sorted(
                (groups[key] for key in members if key != star.primary),
                key=lambda group: (-group.total, group.key),
            )
            suggestions.append(
                NormalizationSuggestion(
                    type="surname",
                    primary=primary_group.display,
                    variants=[NameVariant(group.display, group.total) for group in ordered],
                    similarity=star.similarity,
                    surname=primary_group.display,
                    surname_key=primary_group.key,
                    total_frequency=sum(group.total for group in ordered),
                )
            )
        suggestions.sort(key=lambda suggestion: (-suggestion.total_frequency, suggestion.primary))
        return suggestions

    def _given_name_suggestions(
        self, ordered: list[SurnameGroup]
    ) -> Generator[AnalysisProgress, None, list[NormalizationSuggestion]]:
        suggestions: list[NormalizationSuggestion] = []
        for index, group in enumerate(ordered, start=1):
            if index % self.chunk_size == 0:
                yield AnalysisProgress("analyzing_given_names", index, len(ordered))
            spellings = [
                GivenNameSpelling(first_name=first, last_name=last, frequency=count)
                for (first, last), count in sorted(group.given.items(), key=lambda item: (-item[1], item[0]))
                if first
            ]
            if len(spellings) < 2:
                continue
            for suggestion in self.given_name_analyzer.suggest(group.display, group.key, spellings):
                suggestion.variants = [
                    variant
                    for variant in suggestion.variants
                    if variant.name == suggestion.primary
                    or not self._is_distinct(variant.name, suggestion.primary, group.key)
                ]
                if len({variant.first_name for variant in suggestion.variants}) >= 2:
                    suggestions.append(suggestion)
        yield AnalysisProgress("analyzing_given_names", len(ordered), len(ordered))
        return suggestions

    def _is_distinct(self, first: str, second: str, scope: Optional[str]) -> bool:
        if self.decisions is None:
            return False
        return self.decisions.is_distinct_pair(first, second, scope)
