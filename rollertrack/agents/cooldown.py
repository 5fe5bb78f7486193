"""
Alert cooldown ledger.

At most one delay alert per (roller, status) inside a rolling window
(ALERT_COOLDOWN_DAYS, default 7). The ledger has one operation:

    try_acquire(roller_id, status, window, now) -> bool

True means "send": the key had no entry, or its last alert is at least
`window` old. The entry is stamped with `now` in the same step, so the
cooldown holds whether or not the email that follows is delivered.

Check-then-write is serialized per key with a module-level lock registry
shared by every ledger in the process, so two sweeps in one process (the
scheduler thread and a manual run) cannot both grant the same key. Two
*processes* sweeping at the same moment can still both pass the check; with
one sweep a day that race is accepted.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone

from dateutil import parser as date_parser

from rollertrack.core.dates import to_iso

log = logging.getLogger("rollertrack.cooldown")


class _KeyLocks:
    """One lock per ledger key, created on demand."""

    def __init__(self):
        self._locks = {}
        self._guard = threading.Lock()

    def get(self, key) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock


_store_locks = _KeyLocks()


def _store_key(store):
    return getattr(store, "db_path", None) or id(store)


def _cooled_down(last_sent: datetime | None, window: timedelta, now: datetime) -> bool:
    if last_sent is None:
        return True
    return now - last_sent >= window


class MemoryCooldownLedger:
    """In-process ledger. Used by tests and by dry runs."""

    def __init__(self):
        self._last_sent = {}
        self._locks = _KeyLocks()

    def try_acquire(self, roller_id: str, status: str, window: timedelta, now: datetime) -> bool:
        key = (roller_id, status)
        with self._locks.get(key):
            if not _cooled_down(self._last_sent.get(key), window, now):
                return False
            self._last_sent[key] = now
            return True

    def last_sent(self, roller_id: str, status: str) -> datetime | None:
        return self._last_sent.get((roller_id, status))


class StoreCooldownLedger:
    """Ledger persisted in the store's roller_alerts collection.

    Read failures count as "never alerted" (send rather than stay silent);
    write failures are logged and the acquire still succeeds.
    """

    def __init__(self, store):
        self.store = store

    def _read(self, roller_id: str, status: str) -> datetime | None:
        try:
            entry = self.store.get_cooldown(roller_id, status)
        except Exception as e:
            log.warning("Could not read cooldown for %s/%s: %s", roller_id, status, e)
            return None
        if not entry or not entry.get("lastSent"):
            return None
        try:
            last = date_parser.isoparse(entry["lastSent"])
        except (ValueError, TypeError):
            log.warning("Unreadable lastSent %r for %s/%s", entry.get("lastSent"),
                        roller_id, status)
            return None
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        return last

    def try_acquire(self, roller_id: str, status: str, window: timedelta, now: datetime) -> bool:
        with _store_locks.get((_store_key(self.store), roller_id, status)):
            if not _cooled_down(self._read(roller_id, status), window, now):
                return False
            if not self.store.set_cooldown(roller_id, status, to_iso(now)):
                log.warning("Could not update cooldown for %s/%s", roller_id, status)
            return True

    def last_sent(self, roller_id: str, status: str) -> datetime | None:
        return self._read(roller_id, status)
