from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Dict, Optional, Protocol

from .errors import PersistenceError


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class SQLiteStore:
    """SQLite-backed string blob store shared by the learning engines."""

    def __init__(self, path: Path, namespace: str = "default") -> None:
        self.path = path
        self.namespace = namespace
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        try:
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS store (
                    namespace TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY(namespace, key)
                )
                """
            )
            self._conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot open store at {path}: {exc}") from exc

    def get(self, key: str) -> Optional[str]:
        try:
            with self._lock:
                cursor = self._conn.execute(
                    "SELECT value FROM store WHERE namespace=? AND key=?",
                    (self.namespace, key),
                )
                row = cursor.fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot read {key}: {exc}") from exc
        if not row:
            return None
        return row[0]

    def set(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        try:
            with self._lock:
                self._conn.execute(
                    """
                    INSERT INTO store(namespace, key, value, updated_at)
                    VALUES(?, ?, ?, ?)
                    ON CONFLICT(namespace, key) DO UPDATE SET
                        value=excluded.value,
                        updated_at=excluded.updated_at
                    """,
                    (self.namespace, key, value, now),
                )
                self._conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot write {key}: {exc}") from exc

    def remove(self, key: str) -> None:
        try:
            with self._lock:
                self._conn.execute(
                    "DELETE FROM store WHERE namespace=? AND key=?",
                    (self.namespace, key),
                )
                self._conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot remove {key}: {exc}") from exc

    def keys(self) -> list[str]:
        with self._lock:
            cursor = self._conn.execute(
                "SELECT key FROM store WHERE namespace=? ORDER BY key",
                (self.namespace,),
            )
            return [row[0] for row in cursor.fetchall()]

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class MemoryStore:
    """In-process store; contents vanish with the object."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)

    def close(self) -> None:
        return None
