"""Durable key-value slots backed by a local SQLite file."""
from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Callable, Generic, List, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")

MEMORY = ":memory:"


class KeyValueStore:
    """JSON values stored under text keys, one row per slot.

    Reads and writes never raise: a missing or unreadable slot yields the
    caller's default, and a failed write is logged and reported as ``False``.
    Writes replace the whole slot (last write wins).
    """

    def __init__(self, path: Union[Path, str] = MEMORY) -> None:
        self.path = str(path)
        if self.path != MEMORY:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.path, timeout=5)
        with self._conn:
            self._conn.execute(
                "CREATE TABLE IF NOT EXISTS slots (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
            )

    def close(self) -> None:
        self._conn.close()

    def __contains__(self, key: str) -> bool:
        try:
            row = self._conn.execute("SELECT 1 FROM slots WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            logger.error("Error checking storage key %r: %s", key, exc)
            return False
        return row is not None

    def read(self, key: str, default: Any = None) -> Any:
        try:
            row = self._conn.execute("SELECT value FROM slots WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            logger.error("Error reading storage key %r: %s", key, exc)
            return default
        if row is None:
            return default
        try:
            return json.loads(row[0])
        except ValueError as exc:
            logger.error("Error decoding storage key %r: %s", key, exc)
            return default

    def write(self, key: str, value: Any) -> bool:
        try:
            payload = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            logger.error("Error encoding storage key %r: %s", key, exc)
            return False
        try:
            with self._conn:
                self._conn.execute(
                    "INSERT OR REPLACE INTO slots(key, value) VALUES(?, ?)",
                    (key, payload),
                )
        except sqlite3.Error as exc:
            logger.error("Error setting storage key %r: %s", key, exc)
            return False
        return True

    def remove(self, key: str) -> None:
        try:
            with self._conn:
                self._conn.execute("DELETE FROM slots WHERE key = ?", (key,))
        except sqlite3.Error as exc:
            logger.error("Error removing storage key %r: %s", key, exc)

    def keys(self, prefix: str = "") -> List[str]:
        try:
            rows = self._conn.execute("SELECT key FROM slots ORDER BY key").fetchall()
        except sqlite3.Error as exc:
            logger.error("Error listing storage keys: %s", exc)
            return []
        return [row[0] for row in rows if row[0].startswith(prefix)]


class PersistentSlot(Generic[T]):
    """An in-memory value kept in sync with one storage slot.

    ``decode`` turns the stored JSON into the in-memory value and ``encode``
    does the reverse. ``exists`` tells whether the key was present on load
    and ``loaded`` whether its value decoded. A value that fails to decode
    leaves the default in memory but the stored copy untouched, so first-run
    seeding never replaces it.
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str,
        default: T,
        *,
        decode: Optional[Callable[[Any], T]] = None,
        encode: Optional[Callable[[T], Any]] = None,
    ) -> None:
        self.store = store
        self.key = key
        self._decode = decode or (lambda raw: raw)
        self._encode = encode or (lambda value: value)
        self.exists = key in store
        self.loaded = False
        self._value = default
        if self.exists:
            raw = store.read(key, None)
            try:
                self._value = self._decode(raw)
            except (TypeError, ValueError, KeyError, AttributeError) as exc:
                logger.error("Error reading storage key %r, keeping stored value: %s", key, exc)
            else:
                self.loaded = True

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> bool:
        self._value = value
        return self.store.write(self.key, self._encode(value))

    def seed(self, value: T) -> None:
        """Write ``value`` only when the slot did not exist on load."""
        if not self.exists:
            self.exists = self.loaded = self.set(value)

    def ensure_persisted(self) -> None:
        self.seed(self._value)
