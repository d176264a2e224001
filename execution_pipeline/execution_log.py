"""
Execution Pipeline: Execution Log

CORE PRINCIPLE:
"Every transition is written down before anyone acts on it."

The execution log is an APPEND-ONLY, BOUNDED audit trail:
- Entries are never modified
- Once the capacity is exceeded the oldest entries are dropped (ring buffer)
- Entries are mirrored to the standard logging module
- Optionally appended to a JSON-lines file for compliance review

The only destructive operation is an explicit admin clear().
This is purely a STORAGE layer with NO business logic.
"""

import json
import logging
import threading
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from execution_pipeline.execution_models import (
    ExecutionLogCategory,
    ExecutionLogEntry,
)


logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 5000


class ExecutionLog:
    """
    Append-only bounded audit log shared by every pipeline component.

    add() is serialized with a lock so append order and oldest-first
    eviction hold under concurrent writers.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES, log_file: Optional[str] = None):
        """
        Initialize execution log.

        Args:
            max_entries: Ring-buffer capacity (oldest entries are evicted).
            log_file: Path to append-only JSON-lines file.
                     If None, entries are kept in memory only.
        """
        if max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self.max_entries = max_entries
        self.log_file = log_file
        self._entries: deque = deque(maxlen=max_entries)
        self._lock = threading.Lock()

        if self.log_file:
            Path(self.log_file).parent.mkdir(parents=True, exist_ok=True)
            Path(self.log_file).touch(exist_ok=True)

    def add(self, entry: ExecutionLogEntry) -> str:
        """
        Append an entry (internal order is append order).

        Args:
            entry: ExecutionLogEntry to append

        Returns:
            Entry ID
        """
        with self._lock:
            self._entries.append(entry)
            if self.log_file:
                self._write_line(entry)
        logger.info("[%s] %s", entry.to_dict()["category"], entry.message)
        return entry.entry_id

    def record(
        self,
        category: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        details: Optional[Any] = None,
    ) -> ExecutionLogEntry:
        """
        Build and append an entry in one call.

        Args:
            category: Log category (ExecutionLogCategory or a sibling str enum)
            message: Human-readable description
            context: Plan/step/rollback ids as applicable
            details: Optional structured payload

        Returns:
            The appended ExecutionLogEntry
        """
        entry = ExecutionLogEntry(
            category=category,
            message=message,
            context={k: v for k, v in (context or {}).items() if v is not None},
            details=details,
        )
        self.add(entry)
        return entry

    def list(self, category: Optional[str] = None) -> List[ExecutionLogEntry]:
        """
        Get entries oldest first (optionally filtered by category).
        """
        with self._lock:
            entries = list(self._entries)
        if category is not None:
            entries = [e for e in entries if e.category == category]
        return entries

    def get_recent(self, n: int = 20) -> List[ExecutionLogEntry]:
        """Get the n most recent entries, newest first."""
        if n <= 0:
            return []
        with self._lock:
            entries = list(self._entries)
        return list(reversed(entries[-n:]))

    def export(self) -> Dict[str, Any]:
        """
        Export a full snapshot of the log.

        The export itself is recorded after the snapshot is taken.

        Returns:
            {"exported_at", "total_entries", "entries"}
        """
        with self._lock:
            entries = [e.to_dict() for e in self._entries]
        snapshot = {
            "exported_at": datetime.now(timezone.utc).isoformat(),
            "total_entries": len(entries),
            "entries": entries,
        }
        self.record(
            ExecutionLogCategory.EXPORT,
            f"Exported {len(entries)} execution log entries",
        )
        return snapshot

    def export_json(self) -> str:
        """Export the log as a JSON string."""
        return json.dumps(self.export(), indent=2, default=str)

    def clear(self) -> int:
        """
        Remove every entry (admin operation).

        Returns:
            Number of entries removed
        """
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
        logger.warning("Execution log cleared (%d entries removed)", removed)
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _write_line(self, entry: ExecutionLogEntry):
        try:
            with open(self.log_file, "a") as f:
                f.write(json.dumps(entry.to_dict(), default=str) + "\n")
        except OSError:
            # In-memory log stays authoritative
            logger.exception("Failed to append execution log entry to %s", self.log_file)
