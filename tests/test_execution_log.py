"""
Execution Log Test Suite

Tests for:
- Append order and bounded ring-buffer eviction
- Entry validation
- Export snapshot and export audit entry
- Optional JSON-lines file sink
"""

import json
import threading

import pytest

from execution_pipeline.execution_log import DEFAULT_MAX_ENTRIES, ExecutionLog
from execution_pipeline.execution_models import ExecutionLogCategory, ExecutionLogEntry


# ============================================================================
# SECTION 1: APPEND & BOUNDING
# ============================================================================

class TestAppendAndBounding:
    """Entries are kept in append order and evicted oldest first."""

    def test_add_returns_entry_id(self, log):
        """add() returns the id of the appended entry."""
        entry = ExecutionLogEntry(category=ExecutionLogCategory.INGEST, message="hello")
        assert log.add(entry) == entry.entry_id
        assert log.list() == [entry]

    def test_default_capacity(self):
        """Default capacity is 5000 entries."""
        assert ExecutionLog().max_entries == DEFAULT_MAX_ENTRIES == 5000

    def test_keeps_most_recent_entries(self):
        """Adding more than the capacity keeps exactly the newest entries."""
        log = ExecutionLog(max_entries=5000)
        for i in range(5003):
            log.record(ExecutionLogCategory.MONITOR, f"entry {i}")

        entries = log.list()
        assert len(entries) == 5000
        assert entries[0].message == "entry 3"
        assert entries[-1].message == "entry 5002"

    def test_rejects_non_positive_capacity(self):
        """Capacity must be positive."""
        with pytest.raises(ValueError):
            ExecutionLog(max_entries=0)

    def test_concurrent_writers_lose_nothing(self):
        """Concurrent record() calls all land in the log."""
        log = ExecutionLog(max_entries=10000)

        def write(worker):
            for i in range(200):
                log.record(ExecutionLogCategory.MONITOR, f"worker {worker} entry {i}")

        threads = [threading.Thread(target=write, args=(w,)) for w in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(log) == 1600

    def test_get_recent_newest_first(self, log):
        """get_recent returns the newest entries first."""
        for i in range(5):
            log.record(ExecutionLogCategory.PLANNING, f"entry {i}")

        recent = log.get_recent(2)
        assert [e.message for e in recent] == ["entry 4", "entry 3"]
        assert log.get_recent(0) == []


# ============================================================================
# SECTION 2: ENTRY CONTENT
# ============================================================================

class TestEntryContent:
    """Entries carry category, context and details."""

    def test_entry_requires_message(self):
        """An entry without a message is rejected."""
        with pytest.raises(ValueError):
            ExecutionLogEntry(category=ExecutionLogCategory.INGEST, message="")

    def test_record_drops_empty_context_values(self, log):
        """None context values are not stored."""
        entry = log.record(
            ExecutionLogCategory.APPROVAL,
            "approved",
            context={"plan_id": "p-1", "step_id": None},
        )
        assert entry.context == {"plan_id": "p-1"}

    def test_entry_is_frozen(self, log):
        """Entries cannot be modified after creation."""
        entry = log.record(ExecutionLogCategory.APPROVAL, "approved")
        with pytest.raises(AttributeError):
            entry.message = "changed"

    def test_list_filters_by_category(self, log):
        """list(category) returns only matching entries."""
        log.record(ExecutionLogCategory.INGEST, "ingested")
        log.record(ExecutionLogCategory.ROLLBACK, "rolled back")

        rollback = log.list(ExecutionLogCategory.ROLLBACK)
        assert [e.message for e in rollback] == ["rolled back"]

    def test_to_dict_serializes_category_value(self, log):
        """to_dict emits the category string and an ISO timestamp."""
        data = log.record(ExecutionLogCategory.SAFETY_GATE, "gated").to_dict()
        assert data["category"] == "safety-gate"
        assert "T" in data["timestamp"]


# ============================================================================
# SECTION 3: EXPORT & CLEAR
# ============================================================================

class TestExportAndClear:
    """Export snapshots the log and records itself afterwards."""

    def test_export_snapshot(self, log):
        """Export contains entries present before the export."""
        log.record(ExecutionLogCategory.INGEST, "one")
        log.record(ExecutionLogCategory.PLANNING, "two")

        exported = log.export()
        assert exported["total_entries"] == 2
        assert [e["message"] for e in exported["entries"]] == ["one", "two"]
        assert "exported_at" in exported

    def test_export_is_logged(self, log):
        """Exporting appends an export entry after the snapshot."""
        log.export()
        entries = log.list()
        assert len(entries) == 1
        assert entries[0].category == ExecutionLogCategory.EXPORT

    def test_export_json_parses(self, log):
        """export_json produces valid JSON."""
        log.record(ExecutionLogCategory.INGEST, "one", details={"count": 1})
        data = json.loads(log.export_json())
        assert data["entries"][0]["details"] == {"count": 1}

    def test_clear_returns_removed_count(self, log):
        """clear() empties the log and reports how many entries were removed."""
        log.record(ExecutionLogCategory.INGEST, "one")
        log.record(ExecutionLogCategory.INGEST, "two")
        assert log.clear() == 2
        assert len(log) == 0


# ============================================================================
# SECTION 4: FILE SINK
# ============================================================================

class TestFileSink:
    """Entries are mirrored to an append-only JSON-lines file."""

    def test_entries_written_as_json_lines(self, tmp_path):
        """Each entry becomes one JSON line."""
        path = tmp_path / "audit" / "execution.jsonl"
        log = ExecutionLog(log_file=str(path))
        log.record(ExecutionLogCategory.INGEST, "one")
        log.record(ExecutionLogCategory.APPROVAL, "two")

        lines = path.read_text().splitlines()
        assert [json.loads(line)["message"] for line in lines] == ["one", "two"]

    def test_clear_keeps_file(self, tmp_path):
        """clear() only empties memory; the file is append-only."""
        path = tmp_path / "execution.jsonl"
        log = ExecutionLog(log_file=str(path))
        log.record(ExecutionLogCategory.INGEST, "one")
        log.clear()

        assert len(path.read_text().splitlines()) == 1
