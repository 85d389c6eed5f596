from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from .core.identity.matching import NameMatcher, canonical_key
from .errors import InvalidInputError
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"
SKIP_KEY_PREFIX = "name:skip:"
SCOPE_SEPARATOR = "::"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _confidence(value: Any) -> float:
    if isinstance(value, bool):
        raise InvalidInputError(f"confidence must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"confidence must be a number, got {value!r}") from exc
    if number != number:
        raise InvalidInputError("confidence must be a number, got NaN")
    return min(1.0, max(0.0, number))


def _scope(collection_id: Optional[str]) -> Optional[str]:
    scope = str(collection_id).strip() if collection_id is not None else ""
    return scope or None


class MappingEntry(BaseModel):
    """A learned raw -> normalized mapping, stored under the raw string's canonical key."""

    model_config = ConfigDict(extra="ignore")

    raw: str
    normalized: str
    confidence: float = 1.0
    usage_count: int = Field(
        default=1,
        validation_alias=AliasChoices("usageCount", "usage_count"),
        serialization_alias="usageCount",
    )
    created_at: str = Field(
        default_factory=_now,
        validation_alias=AliasChoices("createdAt", "created_at", "timestamp"),
        serialization_alias="createdAt",
    )
    last_used: str = Field(
        default_factory=_now,
        validation_alias=AliasChoices("lastUsed", "last_used"),
        serialization_alias="lastUsed",
    )
    context: dict[str, Any] = Field(default_factory=dict)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        return _confidence(value)

    @field_validator("usage_count", mode="before")
    @classmethod
    def _at_least_one(cls, value: Any) -> int:
        try:
            number = int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"usage count must be an integer, got {value!r}") from exc
        return max(1, number)

    @field_validator("context", mode="before")
    @classmethod
    def _context_mapping(cls, value: Any) -> dict[str, Any]:
        return dict(value) if isinstance(value, Mapping) else {}

    @property
    def raw_key(self) -> str:
        return canonical_key(self.raw)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


@dataclass(slots=True)
class SimilarMapping:
    raw: str
    normalized: str
    similarity: float
    usage_count: int
    confidence: float
    scope: Optional[str] = None
    """Collection the mapping was learned for; None for library-wide mappings"""


@dataclass(frozen=True, slots=True)
class ScopedLookup:
    normalized: str
    confidence: float
    scope: Optional[str] = None

    @property
    def is_scoped(self) -> bool:
        return self.scope is not None


@dataclass(slots=True)
class ImportSummary:
    imported: int = 0
    skipped: int = 0
    persisted: bool = True


def _short_hash(value: str) -> str:
    return hashlib.sha1(value.encode("utf-8")).hexdigest()[:16]


def _read_field(item: Any, names: Iterable[str]) -> str:
    for name in names:
        if isinstance(item, Mapping):
            value = item.get(name)
        else:
            value = getattr(item, name, None)
        if value:
            return str(value)
    return ""


class LearningEngine:
    """
    Owns learned mappings, skip decisions and distinct-name pairs.

    Every mutation is written back as a whole-collection JSON snapshot, so a
    failed write never leaves a half-updated collection behind. When the
    storage collaborator fails, the in-memory state stays authoritative and
    the calling operation reports failure.

    Mappings learned with a `collection_id` live in a separate scoped
    collection keyed "<collection>::<canonical key>". Lookups given a
    collection try that scope first and fall back to the library-wide
    mappings.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        matcher: Optional[NameMatcher] = None,
        namespace: str = "name_normalizer",
        similarity_threshold: float = 0.6,
        max_suggestions: int = 5,
    ) -> None:
        self.storage = storage
        self.matcher = matcher or NameMatcher()
        self.namespace = namespace
        self.similarity_threshold = similarity_threshold
        self.max_suggestions = max_suggestions
        self.mappings_key = f"{namespace}_mappings"
        self.skipped_key = f"{namespace}_skipped_suggestions"
        self.distinct_key = f"{namespace}_distinct_pairs"
        self.scoped_key = f"{namespace}_scoped_mappings"
        self._mappings: dict[str, MappingEntry] = self._load_mappings(self.mappings_key)
        self._scoped: dict[str, MappingEntry] = self._load_mappings(self.scoped_key)
        self._skipped: set[str] = self._load_key_set(self.skipped_key)
        self._distinct: set[str] = self._load_key_set(self.distinct_key)

    @classmethod
    def from_settings(
        cls,
        settings,
        storage: KeyValueStore,
        matcher: Optional[NameMatcher] = None,
        namespace: Optional[str] = None,
    ) -> "LearningEngine":
        return cls(
            storage,
            matcher=matcher or NameMatcher.from_settings(settings.matching),
            namespace=namespace or settings.storage.namespace,
            similarity_threshold=settings.learning.similarity_threshold,
            max_suggestions=settings.learning.max_suggestions,
        )

    # -- persistence -------------------------------------------------------

    def _read_json(self, key: str) -> Any:
        try:
            raw = self.storage.get(key)
        except Exception as exc:
            logger.warning("Failed to read %s from storage: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as exc:
            logger.warning("Ignoring unreadable %s: %s", key, exc)
            return None

    def _write_json(self, key: str, payload: Any) -> bool:
        try:
            self.storage.set(key, json.dumps(payload, ensure_ascii=False))
        except Exception as exc:
            logger.warning("Failed to persist %s: %s", key, exc)
            return False
        return True

    def _load_mappings(self, storage_key: str) -> dict[str, MappingEntry]:
        data = self._read_json(storage_key)
        if data is None:
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: expected an object, got %s", storage_key, type(data).__name__)
            return {}
        mappings: dict[str, MappingEntry] = {}
        for key, value in data.items():
            try:
                mappings[key] = MappingEntry.model_validate(value)
            except ValidationError as exc:
                logger.warning("Skipping malformed mapping %r: %s", key, exc.errors()[0].get("msg"))
        return mappings

    def _load_key_set(self, key: str) -> set[str]:
        data = self._read_json(key)
        if data is None:
            return set()
        if not isinstance(data, list):
            logger.warning("Ignoring %s: expected a list, got %s", key, type(data).__name__)
            return set()
        return {str(item) for item in data}

    def _save_mappings(self) -> bool:
        payload = {key: entry.to_json() for key, entry in self._mappings.items()}
        return self._write_json(self.mappings_key, payload)

    def _save_scoped(self) -> bool:
        payload = {key: entry.to_json() for key, entry in self._scoped.items()}
        return self._write_json(self.scoped_key, payload)

    def _save_skipped(self) -> bool:
        return self._write_json(self.skipped_key, sorted(self._skipped))

    def _save_distinct(self) -> bool:
        return self._write_json(self.distinct_key, sorted(self._distinct))

    # -- learned mappings --------------------------------------------------

    def _save_scope(self, scope: Optional[str]) -> bool:
        return self._save_mappings() if scope is None else self._save_scoped()

    def _table(self, scope: Optional[str]) -> dict[str, MappingEntry]:
        return self._mappings if scope is None else self._scoped

    @staticmethod
    def _entry_key(key: str, scope: Optional[str]) -> str:
        return key if scope is None else f"{scope}{SCOPE_SEPARATOR}{key}"

    def store_mapping(
        self,
        raw: str,
        normalized: str,
        confidence: float = 1.0,
        context: Optional[Mapping[str, Any]] = None,
        collection_id: Optional[str] = None,
    ) -> bool:
        """
        Learn that `raw` should be written as `normalized`.

        With a `collection_id` the mapping only applies to lookups for that
        collection. Returns False when the mapping could not be persisted;
        the mapping is still served from memory.

        Raises:
            InvalidInputError: raw or normalized is empty after trimming, or
                confidence is not a number
        """
        raw_text = raw.strip() if isinstance(raw, str) else ""
        normalized_text = normalized.strip() if isinstance(normalized, str) else ""
        if not raw_text or not normalized_text:
            raise InvalidInputError("raw and normalized values must be non-empty")
        key = canonical_key(raw_text)
        if not key:
            raise InvalidInputError(f"{raw!r} has no comparable characters")
        score = _confidence(confidence)
        scope = _scope(collection_id)
        table = self._table(scope)
        entry_key = self._entry_key(key, scope)

        now = _now()
        existing = table.get(entry_key)
        if existing is None:
            table[entry_key] = MappingEntry(
                raw=raw_text,
                normalized=normalized_text,
                confidence=score,
                usage_count=1,
                created_at=now,
                last_used=now,
                context=dict(context or {}),
            )
        else:
            table[entry_key] = existing.model_copy(
                update={
                    "normalized": normalized_text,
                    "confidence": max(existing.confidence, score),
                    "usage_count": existing.usage_count + 1,
                    "last_used": now,
                    "context": {**existing.context, **dict(context or {})},
                }
            )
        logger.debug("Learned %r -> %r (scope %s)", raw_text, normalized_text, scope or "global")
        return self._save_scope(scope)

    def _resolve(self, raw: Optional[str], collection_id: Optional[str]) -> tuple[Optional[MappingEntry], Optional[str]]:
        key = canonical_key(raw)
        if not key:
            return None, None
        scope = _scope(collection_id)
        if scope is not None:
            entry = self._scoped.get(self._entry_key(key, scope))
            if entry is not None:
                return entry, scope
        return self._mappings.get(key), None

    def _touch(self, raw: Optional[str], collection_id: Optional[str] = None) -> tuple[Optional[MappingEntry], Optional[str]]:
        entry, scope = self._resolve(raw, collection_id)
        if entry is None:
            return None, None
        entry.usage_count += 1
        entry.last_used = _now()
        self._save_scope(scope)
        return entry, scope

    def get_mapping(self, raw: Optional[str], collection_id: Optional[str] = None) -> Optional[str]:
        entry, _ = self._touch(raw, collection_id)
        return entry.normalized if entry else None

    def get_scoped_mapping(self, raw: Optional[str], collection_id: Optional[str] = None) -> Optional[ScopedLookup]:
        """Like `get_mapping`, but also reports which scope answered."""
        entry, scope = self._touch(raw, collection_id)
        if entry is None:
            return None
        return ScopedLookup(normalized=entry.normalized, confidence=entry.confidence, scope=scope)

    def get_mapping_details(self, raw: Optional[str], collection_id: Optional[str] = None) -> Optional[MappingEntry]:
        entry, _ = self._touch(raw, collection_id)
        return entry.model_copy() if entry else None

    def record_usage(self, raw: Optional[str], collection_id: Optional[str] = None) -> bool:
        entry, _ = self._touch(raw, collection_id)
        return entry is not None

    def has_mapping(
        self,
        raw: Optional[str],
        collection_id: Optional[str] = None,
        include_global: bool = True,
    ) -> bool:
        entry, scope = self._resolve(raw, collection_id)
        if entry is None:
            return False
        return include_global or scope is not None

    def remove_mapping(self, raw: Optional[str], collection_id: Optional[str] = None) -> bool:
        """Remove the mapping of `raw` from exactly one scope; no fallback to global."""
        scope = _scope(collection_id)
        table = self._table(scope)
        if table.pop(self._entry_key(canonical_key(raw), scope), None) is None:
            return False
        return self._save_scope(scope)

    def clear_all_mappings(self) -> bool:
        self._mappings.clear()
        self._scoped.clear()
        saved = self._save_mappings()
        return self._save_scoped() and saved

    def get_all_mappings(self) -> list[MappingEntry]:
        return [entry.model_copy() for entry in self._mappings.values()]

    def get_scoped_mappings(self, collection_id: str) -> list[MappingEntry]:
        scope = _scope(collection_id)
        if scope is None:
            return []
        prefix = self._entry_key("", scope)
        return [entry.model_copy() for key, entry in self._scoped.items() if key.startswith(prefix)]

    def get_available_scopes(self) -> dict[str, int]:
        """Collections holding scoped mappings, with their mapping counts."""
        scopes: dict[str, int] = {}
        for key in self._scoped:
            scope = key.rpartition(SCOPE_SEPARATOR)[0]
            scopes[scope] = scopes.get(scope, 0) + 1
        return dict(sorted(scopes.items()))

    def clear_scope(self, collection_id: str) -> int:
        """Drop every mapping learned for one collection; returns how many were removed."""
        scope = _scope(collection_id)
        if scope is None:
            raise InvalidInputError("a collection id is required")
        prefix = self._entry_key("", scope)
        doomed = [key for key in self._scoped if key.startswith(prefix)]
        for key in doomed:
            del self._scoped[key]
        if doomed:
            self._save_scoped()
        return len(doomed)

    def find_similar(
        self,
        raw: Optional[str],
        top_n: Optional[int] = None,
        collection_id: Optional[str] = None,
    ) -> list[SimilarMapping]:
        """
        Stored mappings whose raw form resembles `raw`, best first.

        With a collection, that collection's mappings are searched as well;
        a library-wide mapping with the same normalized value as a scoped
        one is not repeated.
        """
        query = canonical_key(raw)
        if not query:
            return []
        limit = top_n if top_n is not None else self.max_suggestions
        candidates: list[tuple[str, MappingEntry, Optional[str]]] = []
        scope = _scope(collection_id)
        if scope is not None:
            prefix = self._entry_key("", scope)
            candidates.extend(
                (key[len(prefix):], entry, scope) for key, entry in self._scoped.items() if key.startswith(prefix)
            )
        candidates.extend((key, entry, None) for key, entry in self._mappings.items())

        results: list[SimilarMapping] = []
        seen_scoped: set[str] = set()
        for key, entry, entry_scope in candidates:
            if entry_scope is None and entry.normalized in seen_scoped:
                continue
            similarity = self.matcher.calculate_similarity(query, key)
            if similarity < self.similarity_threshold:
                continue
            if entry_scope is not None:
                seen_scoped.add(entry.normalized)
            results.append(
                SimilarMapping(
                    raw=entry.raw,
                    normalized=entry.normalized,
                    similarity=round(similarity, 4),
                    usage_count=entry.usage_count,
                    confidence=entry.confidence,
                    scope=entry_scope,
                )
            )
        results.sort(key=lambda item: (-item.similarity, -item.usage_count, item.raw))
        return results[: max(0, limit)]

    # -- skip decisions ----------------------------------------------------

    def generate_skip_key(self, surname: Optional[str], first_name_pattern: Optional[str] = None) -> str:
        surname_part = (surname or "").strip().lower()
        first_part = (first_name_pattern or "").strip().lower()
        return f"{SKIP_KEY_PREFIX}{_short_hash(surname_part)}:{_short_hash(first_part)}"

    def record_skip_decision(
        self,
        surname: Optional[str],
        first_name_pattern: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Remember that this suggestion was declined. True only when newly recorded."""
        key = self.generate_skip_key(surname, first_name_pattern)
        if key in self._skipped:
            return False
        self._skipped.add(key)
        if context:
            logger.debug("Skip decision for %r/%r: %s", surname, first_name_pattern, dict(context))
        return self._save_skipped()

    def should_skip_pair(self, surname: Optional[str], first_name_pattern: Optional[str] = None) -> bool:
        return self.generate_skip_key(surname, first_name_pattern) in self._skipped

    def should_skip_suggestion(self, suggestion: Any) -> bool:
        surname = _read_field(suggestion, ("surname", "primary"))
        pattern = _read_field(suggestion, ("first_name_pattern", "firstNamePattern", "first_name", "firstName"))
        return self.should_skip_pair(surname, pattern)

    def filter_skipped_suggestions(self, suggestions: Iterable[Any]) -> list[Any]:
        return [suggestion for suggestion in suggestions if not self.should_skip_suggestion(suggestion)]

    def remove_skip_decision(self, surname: Optional[str], first_name_pattern: Optional[str] = None) -> bool:
        key = self.generate_skip_key(surname, first_name_pattern)
        if key not in self._skipped:
            return False
        self._skipped.discard(key)
        return self._save_skipped()

    def clear_skipped_pairs(self) -> bool:
        self._skipped.clear()
        return self._save_skipped()

    def get_skipped_pairs_count(self) -> int:
        return len(self._skipped)

    def get_skip_statistics(self) -> dict[str, int]:
        return {"skippedCount": len(self._skipped)}

    # -- distinct pairs ----------------------------------------------------

    def _pair_key(self, first: Optional[str], second: Optional[str], scope: Optional[str]) -> str:
        left, right = sorted((canonical_key(first), canonical_key(second)))
        scope_part = (scope or "global").strip().lower() or "global"
        return f"{scope_part}::{left}|{right}"

    def record_distinct_pair(self, first: str, second: str, scope: Optional[str] = None) -> bool:
        """Remember that two spellings belong to different people."""
        if not canonical_key(first) or not canonical_key(second):
            raise InvalidInputError("both names of a distinct pair must be non-empty")
        key = self._pair_key(first, second, scope)
        if key in self._distinct:
            return True
        self._distinct.add(key)
        return self._save_distinct()

    def is_distinct_pair(self, first: Optional[str], second: Optional[str], scope: Optional[str] = None) -> bool:
        return self._pair_key(first, second, scope) in self._distinct

    def clear_distinct_pair(self, first: Optional[str], second: Optional[str], scope: Optional[str] = None) -> bool:
        key = self._pair_key(first, second, scope)
        if key not in self._distinct:
            return False
        self._distinct.discard(key)
        return self._save_distinct()

    # -- introspection and portability ------------------------------------

    def get_statistics(self) -> dict[str, Any]:
        entries = list(self._mappings.values())
        total_usage = sum(entry.usage_count for entry in entries)
        count = len(entries)
        return {
            "totalMappings": count,
            "totalUsage": total_usage,
            "averageUsage": round(total_usage / count, 2) if count else 0,
            "averageConfidence": round(sum(entry.confidence for entry in entries) / count, 3) if count else 0,
            "skippedPairs": len(self._skipped),
            "distinctPairs": len(self._distinct),
            "scopedMappings": len(self._scoped),
            "scopes": len(self.get_available_scopes()),
        }

    def export_mappings(self) -> dict[str, Any]:
        return {
            "version": EXPORT_VERSION,
            "exportedAt": _now(),
            "mappings": [[key, entry.to_json()] for key, entry in self._mappings.items()],
            "scopedMappings": [[key, entry.to_json()] for key, entry in self._scoped.items()],
            "settings": {
                "similarityThreshold": self.similarity_threshold,
                "maxSuggestions": self.max_suggestions,
            },
        }

    @staticmethod
    def _export_items(value: Any) -> list[Any]:
        if isinstance(value, Mapping):
            return list(value.items())
        if not isinstance(value, list):
            raise InvalidInputError("Mapping export does not contain a mapping list")
        return value

    @staticmethod
    def _read_entries(items: list[Any], summary: ImportSummary, scoped: bool = False) -> dict[str, MappingEntry]:
        entries: dict[str, MappingEntry] = {}
        for item in items:
            key: Any = None
            data = item
            if isinstance(item, (list, tuple)) and len(item) == 2:
                key, data = item
            try:
                entry = MappingEntry.model_validate(data)
            except ValidationError:
                summary.skipped += 1
                continue
            text_key = key if isinstance(key, str) else ""
            scope: Optional[str] = None
            if scoped:
                scope_part, separator, text_key = text_key.rpartition(SCOPE_SEPARATOR)
                scope = _scope(scope_part) if separator else None
                if scope is None:
                    summary.skipped += 1
                    continue
            entry_key = canonical_key(text_key) or entry.raw_key
            if not entry_key or not entry.normalized.strip():
                summary.skipped += 1
                continue
            entries[LearningEngine._entry_key(entry_key, scope)] = entry
        return entries

    def import_mappings(self, blob: Any, replace: bool = True) -> ImportSummary:
        """
        Load mappings from an export.

        Accepts the current `{version, mappings: [[key, entry], ...]}` shape
        (with optional `scopedMappings`), the engine's own key -> entry
        snapshot, or a bare list of entries. Unknown fields are ignored and
        unusable entries are skipped. Scoped mappings are only replaced when
        the export carries a `scopedMappings` section.

        Raises:
            InvalidInputError: the blob is not JSON or has no mapping list;
                nothing is changed in that case
        """
        if isinstance(blob, (str, bytes)):
            try:
                blob = json.loads(blob)
            except ValueError as exc:
                raise InvalidInputError(f"Mapping export is not valid JSON: {exc}") from exc

        scoped_items: Optional[list[Any]] = None
        if isinstance(blob, Mapping):
            if "mappings" in blob:
                version = blob.get("version")
                if version != EXPORT_VERSION:
                    logger.warning("Importing mappings from export version %r (expected %s)", version, EXPORT_VERSION)
                items = self._export_items(blob["mappings"])
                if blob.get("scopedMappings") is not None:
                    scoped_items = self._export_items(blob["scopedMappings"])
            elif blob and all(isinstance(value, Mapping) for value in blob.values()):
                items = list(blob.items())
            else:
                raise InvalidInputError("Mapping export does not contain a mapping list")
        else:
            items = self._export_items(blob)

        summary = ImportSummary()
        imported = self._read_entries(items, summary)
        imported_scoped = self._read_entries(scoped_items or [], summary, scoped=True)

        if replace:
            self._mappings = imported
        else:
            self._mappings.update(imported)
        persisted = self._save_mappings()
        if scoped_items is not None:
            if replace:
                self._scoped = imported_scoped
            else:
                self._scoped.update(imported_scoped)
            persisted = self._save_scoped() and persisted
        summary.imported = len(imported) + len(imported_scoped)
        summary.persisted = persisted
        logger.info("Imported %d mappings (%d skipped)", summary.imported, summary.skipped)
        return summary
