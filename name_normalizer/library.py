from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Sequence

from .config import Settings
from .core.identity.models import (
    AnalysisProgress,
    CreatorAnalysis,
    CreatorCount,
    NameVariant,
    NormalizationSuggestion,
)
from .core.identity.scanner import CandidateFinder
from .errors import AnalysisCancelled, InvalidInputError
from .learning import LearningEngine
from .records import Creator, RecordStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[AnalysisProgress], Any]
ConfirmCallback = Callable[[NormalizationSuggestion, NameVariant], "bool | Awaitable[bool]"]


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass
class LibraryAnalysis:
    total_records: int = 0
    total_creators: int = 0
    creators: CreatorAnalysis = field(default_factory=CreatorAnalysis)

    @property
    def suggestions(self) -> list[NormalizationSuggestion]:
        return self.creators.suggestions

    def to_dict(self) -> dict[str, Any]:
        data = self.creators.to_dict()
        data["totalRecords"] = self.total_records
        data["totalCreators"] = self.total_creators
        return data


@dataclass
class ApplyResult:
    total_suggestions: int = 0
    applied: int = 0
    skipped: int = 0
    errors: int = 0
    updated_records: int = 0
    declined: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "totalSuggestions": self.total_suggestions,
            "applied": self.applied,
            "skipped": self.skipped,
            "errors": self.errors,
            "updatedRecords": self.updated_records,
            "declined": self.declined,
        }


class LibraryAnalyzer:
    """
    Runs clustering over a host record store and applies accepted suggestions.

    Long scans hand control back to the event loop between chunks so a host
    UI stays responsive and can cancel through `should_cancel`.
    """

    def __init__(
        self,
        records: RecordStore,
        learning: LearningEngine,
        finder: Optional[CandidateFinder] = None,
        filter_batch_size: int = 200,
    ) -> None:
        self.records = records
        self.learning = learning
        self.finder = finder or CandidateFinder(matcher=learning.matcher, decisions=learning)
        self.filter_batch_size = max(1, filter_batch_size)

    @classmethod
    def from_settings(cls, settings: Settings, records: RecordStore, learning: LearningEngine) -> "LibraryAnalyzer":
        finder = CandidateFinder.from_settings(settings, matcher=learning.matcher, decisions=learning)
        return cls(records, learning, finder=finder, filter_batch_size=settings.analysis.filter_batch_size)

    async def _checkpoint(
        self,
        event: AnalysisProgress,
        progress_callback: Optional[ProgressCallback],
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> None:
        if progress_callback:
            await _resolve(progress_callback(event))
        if should_cancel and should_cancel():
            raise AnalysisCancelled(f"Analysis cancelled during {event.stage}")
        await asyncio.sleep(0)

    async def analyze_library(
        self,
        progress_callback: Optional[ProgressCallback] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
        collection_id: Optional[str] = None,
    ) -> LibraryAnalysis:
        """
        Aggregate every creator in the record store and cluster the result.

        Args:
            progress_callback: Optional sync or async callback receiving AnalysisProgress
            should_cancel: Optional predicate polled between chunks
            collection_id: Restrict the analysis to one sub-collection

        Raises:
            AnalysisCancelled: when should_cancel() returns True
        """
        batch = self.filter_batch_size
        candidates = []
        for record in self.records.iter_records(collection_id):
            if record.creators:
                candidates.append(record)
                if len(candidates) % batch == 0:
                    await self._checkpoint(
                        AnalysisProgress("filtering_items", len(candidates), 0), progress_callback, should_cancel
                    )
        await self._checkpoint(
            AnalysisProgress("filtering_items", len(candidates), len(candidates)), progress_callback, should_cancel
        )

        counts: dict[tuple[str, str], int] = {}
        total_creators = 0
        for index, record in enumerate(candidates, start=1):
            for creator in record.creators:
                first = " ".join((creator.first_name or "").split())
                last = " ".join((creator.last_name or "").split())
                if not first and not last:
                    continue
                counts[(first, last)] = counts.get((first, last), 0) + 1
                total_creators += 1
            if index % batch == 0:
                await self._checkpoint(
                    AnalysisProgress("extracting_creators", index, len(candidates)), progress_callback, should_cancel
                )
        await self._checkpoint(
            AnalysisProgress("extracting_creators", len(candidates), len(candidates)), progress_callback, should_cancel
        )
        logger.info("Collected %d creators from %d records", total_creators, len(candidates))

        creators = [CreatorCount(first, last, count) for (first, last), count in counts.items()]
        steps = self.finder.iter_analysis(creators)
        while True:
            try:
                event = next(steps)
            except StopIteration as stop:
                analysis = stop.value
                break
            try:
                await self._checkpoint(event, progress_callback, should_cancel)
            except AnalysisCancelled:
                steps.close()
                raise
        return LibraryAnalysis(total_records=len(candidates), total_creators=total_creators, creators=analysis)

    async def apply_normalization_suggestions(
        self,
        suggestions: Sequence[NormalizationSuggestion],
        auto_confirm: bool = False,
        confirm: Optional[ConfirmCallback] = None,
        progress_callback: Optional[ProgressCallback] = None,
        update_records: bool = True,
        collection_id: Optional[str] = None,
    ) -> ApplyResult:
        """
        Learn (and optionally write back) the accepted variants of each suggestion.

        Every variant other than the primary is either accepted outright
        (`auto_confirm`) or offered to `confirm(suggestion, variant)`. Accepted
        variants become mappings variant -> primary; declined ones are
        remembered as distinct names. A failure on one variant or record is
        counted in `errors` and the batch carries on.

        With a `collection_id` the mappings are learned for that collection
        only and only its records are rewritten.
        """
        if not auto_confirm and confirm is None:
            raise InvalidInputError("a confirm callback is required unless auto_confirm is set")
        result = ApplyResult(total_suggestions=len(suggestions))
        await self._checkpoint(AnalysisProgress("prepare", 0, len(suggestions)), progress_callback)

        accepted: list[tuple[NormalizationSuggestion, NameVariant]] = []
        for index, suggestion in enumerate(suggestions, start=1):
            for variant in suggestion.variants:
                if suggestion.is_primary(variant):
                    result.skipped += 1
                    continue
                answer = await self._ask(suggestion, variant, auto_confirm, confirm, result)
                if self._apply_variant(suggestion, variant, auto_confirm, result, answer, collection_id):
                    accepted.append((suggestion, variant))
            await self._checkpoint(AnalysisProgress("applying", index, len(suggestions)), progress_callback)

        if update_records and accepted:
            await self._rewrite_records(accepted, result, progress_callback, collection_id)

        await self._checkpoint(AnalysisProgress("complete", len(suggestions), len(suggestions)), progress_callback)
        logger.info(
            "Applied %d of %d suggestions (%d skipped, %d errors, %d records updated)",
            result.applied,
            result.total_suggestions,
            result.skipped,
            result.errors,
            result.updated_records,
        )
        return result

    async def _ask(
        self,
        suggestion: NormalizationSuggestion,
        variant: NameVariant,
        auto_confirm: bool,
        confirm: Optional[ConfirmCallback],
        result: ApplyResult,
    ) -> Optional[bool]:
        if auto_confirm or confirm is None:
            return True
        try:
            return bool(await _resolve(confirm(suggestion, variant)))
        except Exception as exc:
            logger.warning("Confirmation for %r -> %r failed: %s", variant.name, suggestion.primary, exc)
            result.errors += 1
            return None

    def _apply_variant(
        self,
        suggestion: NormalizationSuggestion,
        variant: NameVariant,
        auto_confirm: bool,
        result: ApplyResult,
        answer: Optional[bool],
        collection_id: Optional[str] = None,
    ) -> bool:
        if answer is None:
            return False
        if not answer:
            result.skipped += 1
            result.declined += 1
            scope = None if suggestion.is_surname else suggestion.surname_key
            try:
                self.learning.record_distinct_pair(variant.name, suggestion.primary, scope)
            except InvalidInputError as exc:
                logger.warning("Cannot remember declined pair %r/%r: %s", variant.name, suggestion.primary, exc)
            return False
        try:
            stored = self.learning.store_mapping(
                variant.name,
                suggestion.primary,
                confidence=suggestion.similarity if auto_confirm else 1.0,
                context={"type": suggestion.type, "surname": suggestion.surname},
                collection_id=collection_id,
            )
        except Exception as exc:
            logger.warning("Failed to learn %r -> %r: %s", variant.name, suggestion.primary, exc)
            result.errors += 1
            return False
        if not stored:
            result.errors += 1
            return False
        result.applied += 1
        return True

    def _renamed(
        self,
        creator: Creator,
        surnames: dict[str, str],
        given: dict[tuple[str, str], str],
    ) -> Optional[Creator]:
        first = " ".join(creator.first_name.split())
        last = " ".join(creator.last_name.split())
        new_first = given.get((first, last), first)
        new_last = surnames.get(last.lower(), last)
        if new_first == first and new_last == last:
            return None
        return Creator(first_name=new_first, last_name=new_last, creator_type=creator.creator_type)

    async def _rewrite_records(
        self,
        accepted: list[tuple[NormalizationSuggestion, NameVariant]],
        result: ApplyResult,
        progress_callback: Optional[ProgressCallback],
        collection_id: Optional[str] = None,
    ) -> None:
        surnames: dict[str, str] = {}
        given: dict[tuple[str, str], str] = {}
        for suggestion, variant in accepted:
            if suggestion.is_surname:
                surnames[variant.name.lower()] = suggestion.primary
            else:
                given[(variant.first_name, variant.last_name)] = suggestion.recommended_first_name

        processed = 0
        for record in list(self.records.iter_records(collection_id)):
            processed += 1
            try:
                creators = self.records.get_creators(record.record_id)
                changed = False
                for position, creator in enumerate(creators):
                    renamed = self._renamed(creator, surnames, given)
                    if renamed is not None:
                        creators[position] = renamed
                        changed = True
                if changed:
                    self.records.set_creators(record.record_id, creators)
                    result.updated_records += 1
            except Exception as exc:
                logger.warning("Failed to update record %s: %s", record.record_id, exc)
                result.errors += 1
            if processed % self.filter_batch_size == 0:
                await self._checkpoint(AnalysisProgress("updating_records", processed, 0), progress_callback)
        await self._checkpoint(AnalysisProgress("updating_records", processed, processed), progress_callback)
