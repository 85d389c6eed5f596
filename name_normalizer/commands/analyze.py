from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

from ..config import Settings
from ..core.identity.models import AnalysisProgress
from ..learning import LearningEngine
from ..library import LibraryAnalyzer
from ..prompt_io import ConsolePromptIO, PromptIO, SuggestionPrompter
from ..records import JsonRecordStore
from .output import ok, suggestion_lines, warning

logger = logging.getLogger(__name__)


def _log_progress(event: AnalysisProgress) -> None:
    logger.debug("%s: %d/%d (%.1f%%)", event.stage, event.processed, event.total, event.percent)


def run(
    settings: Settings,
    engine: LearningEngine,
    records_path: Path,
    *,
    collection_id: Optional[str] = None,
    apply: bool = False,
    auto_confirm: bool = False,
    json_output: bool = False,
    io: Optional[PromptIO] = None,
) -> int:
    """Analyze a JSON record file; returns the number of suggestions found."""
    store = JsonRecordStore.load(records_path)
    analyzer = LibraryAnalyzer.from_settings(settings, store, engine)
    analysis = asyncio.run(
        analyzer.analyze_library(progress_callback=_log_progress, collection_id=collection_id)
    )

    if json_output:
        print(json.dumps(analysis.to_dict(), indent=2, ensure_ascii=False))
    else:
        print(
            f"{analysis.total_records} records, {analysis.total_creators} creators, "
            f"{analysis.creators.total_unique_surnames} surnames"
        )
        if not analysis.suggestions:
            print(ok("Suggestions", "none"))
        for suggestion in analysis.suggestions:
            for line in suggestion_lines(suggestion):
                print(line)

    if not apply or not analysis.suggestions:
        return len(analysis.suggestions)

    prompter = SuggestionPrompter(io or ConsolePromptIO())
    result = asyncio.run(
        analyzer.apply_normalization_suggestions(
            analysis.suggestions,
            auto_confirm=auto_confirm,
            confirm=None if auto_confirm else prompter,
            progress_callback=_log_progress,
            collection_id=collection_id,
        )
    )
    if store.dirty:
        store.save()
    summary = (
        f"{result.applied} applied, {result.skipped} skipped, "
        f"{result.errors} errors, {result.updated_records} records updated"
    )
    print(warning("Apply", summary) if result.errors else ok("Apply", summary))
    return len(analysis.suggestions)
