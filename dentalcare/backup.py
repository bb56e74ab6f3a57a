"""Periodic dated snapshots of the clinic data."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from .models import utc_now
from .storage import KeyValueStore, PersistentSlot

logger = logging.getLogger(__name__)

LAST_BACKUP_KEY = "last_backup"
BACKUP_PREFIX = "backup_"


class BackupScheduler:
    """Write a ``backup_<YYYY-MM-DD>`` snapshot when the last one is too old.

    The scheduler runs on a Tk-style event loop: anything with
    ``after(ms, callback)`` and ``after_cancel(token)``. It checks once on
    :meth:`start` and again every ``interval_minutes``, always snapshotting
    whatever ``snapshot()`` returns at that moment. Only the ``keep`` most
    recent snapshots are retained. Snapshots are never restored
    automatically; :meth:`read_backup` is there for manual recovery.
    """

    def __init__(
        self,
        store: KeyValueStore,
        snapshot: Callable[[], Dict[str, Any]],
        *,
        interval_minutes: int = 60,
        max_age_days: int = 7,
        keep: int = 4,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.snapshot = snapshot
        self.interval_ms = int(interval_minutes * 60 * 1000)
        self.max_age = timedelta(days=max_age_days)
        self.keep = keep
        self.clock = clock
        self._last_backup: PersistentSlot[Optional[str]] = PersistentSlot(store, LAST_BACKUP_KEY, None)
        self._loop: Any = None
        self._pending: Any = None

    @property
    def last_backup(self) -> Optional[str]:
        return self._last_backup.value

    def _is_due(self, now: datetime) -> bool:
        last = self._last_backup.value
        if not last:
            return True
        try:
            last_dt = datetime.fromisoformat(last)
        except (TypeError, ValueError):
            logger.warning("Unreadable last backup timestamp %r, backing up now", last)
            return True
        if last_dt.tzinfo is None and now.tzinfo is not None:
            last_dt = last_dt.replace(tzinfo=timezone.utc)
        return now - last_dt > self.max_age

    def check(self) -> bool:
        """Take a snapshot if one is due. Returns True when one was written."""
        now = self.clock()
        if not self._is_due(now):
            return False
        key = f"{BACKUP_PREFIX}{now.date().isoformat()}"
        payload = {"timestamp": now.isoformat(), "data": self.snapshot()}
        if not self.store.write(key, payload):
            logger.warning("Backup %s could not be written, retrying next cycle", key)
            return False
        self._last_backup.set(now.isoformat())
        logger.info("Wrote backup %s", key)
        self.prune()
        return True

    def prune(self) -> None:
        for key in self.backups()[self.keep:]:
            self.store.remove(key)
            logger.info("Removed old backup %s", key)

    def backups(self) -> List[str]:
        """Existing backup keys, newest first."""
        return sorted(self.store.keys(BACKUP_PREFIX), reverse=True)

    def read_backup(self, key: str) -> Optional[Dict[str, Any]]:
        return self.store.read(key, None)

    # ------------------------------------------------------------------

    def start(self, loop: Any) -> None:
        self.stop()
        self._loop = loop
        self._tick()

    def _tick(self) -> None:
        self._pending = None
        self.check()
        if self._loop is not None:
            self._pending = self._loop.after(self.interval_ms, self._tick)

    def stop(self) -> None:
        if self._loop is not None and self._pending is not None:
            self._loop.after_cancel(self._pending)
        self._pending = None
        self._loop = None

    @property
    def running(self) -> bool:
        return self._loop is not None
