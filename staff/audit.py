"""
staff/audit.py -- Append-only audit trail for authentication events.

Entries are only ever appended. Nothing updates or deletes them, matching the
remediation audit trail pattern: records are inserted, never rewritten.

Queries return an AuditLogQuery, a lazy and restartable view. Filtering and
sorting happen when it is iterated, against a snapshot taken at that moment,
so iterating twice reflects any entries appended in between.

Ordering is by stored timestamp (newest first), not by insertion order.
Entries sharing a timestamp keep their insertion order.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from datetime import datetime

from staff.models import AuditAction, AuditLogEntry

logger = logging.getLogger("staffauth.audit")


class AuditLog:
    """Thread-safe append-only list of AuditLogEntry."""

    def __init__(self) -> None:
        self._entries: list[AuditLogEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: AuditLogEntry) -> None:
        with self._lock:
            self._entries.append(entry)
        logger.debug("%s", entry)

    def record(
        self,
        timestamp: datetime,
        username: str,
        action: AuditAction,
        details: str,
        client_info: str,
    ) -> AuditLogEntry:
        """Build an entry from its parts, append it, and return it."""
        entry = AuditLogEntry(
            timestamp=timestamp,
            username=username,
            action=action,
            details=details,
            client_info=client_info,
        )
        self.append(entry)
        return entry

    def snapshot(self) -> list[AuditLogEntry]:
        with self._lock:
            return list(self._entries)

    def query(
        self,
        username: str | None = None,
        from_time: datetime | None = None,
        to_time: datetime | None = None,
    ) -> AuditLogQuery:
        return AuditLogQuery(self, username=username, from_time=from_time, to_time=to_time)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class AuditLogQuery:
    """Filtered, newest-first view over an AuditLog.

    Both time bounds are exclusive: an entry is included only if its
    timestamp is strictly after from_time and strictly before to_time.
    """

    def __init__(
        self,
        log: AuditLog,
        username: str | None = None,
        from_time: datetime | None = None,
        to_time: datetime | None = None,
    ) -> None:
        self._log = log
        self.username = username
        self.from_time = from_time
        self.to_time = to_time

    def _matches(self, entry: AuditLogEntry) -> bool:
        if self.username is not None and entry.username != self.username:
            return False
        if self.from_time is not None and not entry.timestamp > self.from_time:
            return False
        if self.to_time is not None and not entry.timestamp < self.to_time:
            return False
        return True

    def __iter__(self) -> Iterator[AuditLogEntry]:
        matching = [e for e in self._log.snapshot() if self._matches(e)]
        # sorted() is stable under reverse=True, so ties keep insertion order.
        return iter(sorted(matching, key=lambda e: e.timestamp, reverse=True))

    def actions(self) -> list[AuditAction]:
        """Convenience: the action tags of the current result, newest first."""
        return [e.action for e in self]
