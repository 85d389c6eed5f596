from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Optional, Protocol

from .errors import InvalidInputError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Creator:
    first_name: str = ""
    last_name: str = ""
    creator_type: str = "author"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Creator":
        return cls(
            first_name=str(data.get("firstName", data.get("first_name", "")) or ""),
            last_name=str(data.get("lastName", data.get("last_name", "")) or ""),
            creator_type=str(data.get("creatorType", data.get("creator_type", "author")) or "author"),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "firstName": self.first_name,
            "lastName": self.last_name,
            "creatorType": self.creator_type,
        }


@dataclass(slots=True)
class LibraryRecord:
    record_id: str
    creators: list[Creator] = field(default_factory=list)
    collection_ids: list[str] = field(default_factory=list)


class RecordStore(Protocol):
    """Host collection that supplies creator lists and accepts rewritten ones."""

    def iter_records(self, collection_id: Optional[str] = None) -> Iterable[LibraryRecord]: ...

    def get_creators(self, record_id: str) -> list[Creator]: ...

    def set_creators(self, record_id: str, creators: list[Creator]) -> None: ...


class JsonRecordStore:
    """
    Record store backed by a JSON array.

    Each element looks like:
        {"id": "ABC123", "collections": ["thesis"],
         "creators": [{"firstName": "Jerry", "lastName": "Fodor", "creatorType": "author"}]}
    """

    def __init__(self, records: Iterable[LibraryRecord], path: Optional[Path] = None) -> None:
        self.path = path
        self._records: dict[str, LibraryRecord] = {}
        for record in records:
            self._records[record.record_id] = record
        self.dirty = False

    @classmethod
    def load(cls, path: Path) -> "JsonRecordStore":
        with path.open("r", encoding="utf-8") as fh:
            try:
                raw = json.load(fh)
            except ValueError as exc:
                raise InvalidInputError(f"{path} is not valid JSON: {exc}") from exc
        if not isinstance(raw, list):
            raise InvalidInputError(f"{path} must contain a JSON array of records")
        records = []
        for index, item in enumerate(raw):
            if not isinstance(item, Mapping):
                logger.warning("Skipping record #%d in %s: not an object", index, path)
                continue
            creators = [Creator.from_dict(c) for c in item.get("creators") or [] if isinstance(c, Mapping)]
            records.append(
                LibraryRecord(
                    record_id=str(item.get("id", index)),
                    creators=creators,
                    collection_ids=[str(c) for c in item.get("collections") or []],
                )
            )
        return cls(records, path=path)

    def iter_records(self, collection_id: Optional[str] = None) -> Iterator[LibraryRecord]:
        for record in self._records.values():
            if not record.creators:
                continue
            if collection_id is not None and collection_id not in record.collection_ids:
                continue
            yield record

    def get_creators(self, record_id: str) -> list[Creator]:
        return [
            Creator(c.first_name, c.last_name, c.creator_type)
            for c in self._records[record_id].creators
        ]

    def set_creators(self, record_id: str, creators: list[Creator]) -> None:
        self._records[record_id].creators = list(creators)
        self.dirty = True

    def to_list(self) -> list[dict[str, Any]]:
        return [
            {
                "id": record.record_id,
                "collections": list(record.collection_ids),
                "creators": [creator.to_dict() for creator in record.creators],
            }
            for record in self._records.values()
        ]

    def save(self, path: Optional[Path] = None) -> None:
        target = path or self.path
        if target is None:
            raise ValueError("No path to save records to")
        target.write_text(json.dumps(self.to_list(), indent=2, ensure_ascii=False), encoding="utf-8")
        self.dirty = False
