from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from ..errors import InvalidInputError
from ..learning import LearningEngine
from .output import error, not_found, ok, warning


def _scope_label(collection_id: Optional[str]) -> str:
    return f" [collection {collection_id}]" if collection_id else ""


def run_learn(
    engine: LearningEngine,
    raw: str,
    normalized: str,
    *,
    confidence: float = 1.0,
    collection_id: Optional[str] = None,
) -> bool:
    try:
        stored = engine.store_mapping(
            raw,
            normalized,
            confidence=confidence,
            context={"source": "cli"},
            collection_id=collection_id,
        )
    except InvalidInputError as exc:
        print(error("Learn", str(exc)))
        return False
    if not stored:
        print(warning("Learn", "kept in memory only; storage write failed"))
        return False
    print(ok("Learn", f"{raw} -> {normalized}{_scope_label(collection_id)}"))
    return True


def run_lookup(engine: LearningEngine, raw: str, *, collection_id: Optional[str] = None) -> bool:
    details = engine.get_mapping_details(raw, collection_id)
    if details is None:
        print(not_found("Lookup", raw))
        for match in engine.find_similar(raw, top_n=3, collection_id=collection_id):
            print(f"  did you mean {match.raw} -> {match.normalized} ({match.similarity:.2f})")
        return False
    print(f"{details.raw} -> {details.normalized}")
    print(f"  confidence: {details.confidence:.2f}")
    print(f"  used: {details.usage_count}x (last {details.last_used})")
    return True


def run_similar(
    engine: LearningEngine,
    raw: str,
    *,
    top_n: Optional[int] = None,
    collection_id: Optional[str] = None,
) -> None:
    matches = engine.find_similar(raw, top_n=top_n, collection_id=collection_id)
    if not matches:
        print("No similar mappings found.")
        return
    for match in matches:
        print(
            f"{match.similarity:.3f}  {match.raw} -> {match.normalized}  "
            f"(used {match.usage_count}x){_scope_label(match.scope)}"
        )


def run_forget(
    engine: LearningEngine,
    raw: Optional[str],
    *,
    forget_all: bool = False,
    collection_id: Optional[str] = None,
) -> bool:
    if forget_all and collection_id:
        removed = engine.clear_scope(collection_id)
        print(ok("Forget", f"{removed} mappings removed{_scope_label(collection_id)}"))
        return True
    if forget_all:
        done = engine.clear_all_mappings()
        print(ok("Forget", "all mappings removed") if done else error("Forget", "storage write failed"))
        return done
    if not raw:
        print(error("Forget", "name a mapping or pass --all"))
        return False
    if not engine.has_mapping(raw, collection_id, include_global=not collection_id):
        print(not_found("Forget", raw))
        return False
    done = engine.remove_mapping(raw, collection_id)
    print(ok("Forget", raw) if done else error("Forget", "storage write failed"))
    return done


def run_skip(
    engine: LearningEngine,
    surname: Optional[str],
    first_name: Optional[str] = None,
    *,
    remove: bool = False,
    clear: bool = False,
) -> None:
    if clear:
        engine.clear_skipped_pairs()
        print(ok("Skip list", "cleared"))
        return
    if not surname:
        print(error("Skip", "a surname is required"))
        return
    label = " ".join(part for part in (first_name, surname) if part)
    if remove:
        removed = engine.remove_skip_decision(surname, first_name)
        print(ok("Skip removed", label) if removed else not_found("Skip", label))
        return
    added = engine.record_skip_decision(surname, first_name, context={"source": "cli"})
    print(ok("Skip recorded", label) if added else warning("Skip", f"{label} already skipped"))


def run_stats(engine: LearningEngine, *, json_output: bool = False) -> None:
    stats = engine.get_statistics()
    if json_output:
        print(json.dumps(stats, indent=2, sort_keys=True))
        return
    for key in sorted(stats):
        print(f"{key}: {stats[key]}")


def run_export(engine: LearningEngine, out: Optional[Path]) -> None:
    payload = json.dumps(engine.export_mappings(), indent=2, ensure_ascii=False)
    if out is None:
        print(payload)
        return
    out.write_text(payload, encoding="utf-8")
    print(ok("Export", f"{len(engine.get_all_mappings())} mappings written to {out}"))


def run_import(engine: LearningEngine, path: Path, *, merge: bool = False) -> bool:
    try:
        summary = engine.import_mappings(path.read_text(encoding="utf-8"), replace=not merge)
    except (OSError, InvalidInputError) as exc:
        print(error("Import", str(exc)))
        return False
    detail = f"{summary.imported} imported, {summary.skipped} skipped"
    if not summary.persisted:
        print(warning("Import", f"{detail}; storage write failed"))
        return False
    print(ok("Import", detail))
    return True
