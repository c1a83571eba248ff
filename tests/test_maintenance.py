"""
Tests for index consistency checks, index rebuilds and vector reloads.
"""

from datetime import datetime

import pytest

from docvec.core.errors import MaintenanceError
from docvec.core.maintenance import MaintenanceReport, check_index_consistency, rebuild_indexes, reload_vectors


class TestMaintenanceReport:
    """Test maintenance report functionality."""

    def test_report_defaults(self):
        report = MaintenanceReport(operation="index_rebuild", table="users", started_at=datetime.now())

        assert report.missing_entries == []
        assert report.stale_entries == []
        assert report.corrupt_records == []
        assert report.issues_found == 0
        assert report.consistent

    def test_report_to_dict(self):
        """Test report serialization."""
        report = MaintenanceReport(
            operation="index_consistency_check",
            table="users",
            started_at=datetime(2025, 1, 1, 12, 0, 0),
            completed_at=datetime(2025, 1, 1, 12, 1, 0),
            stale_entries=[("name", "Alice", 1)],
            metadata={"key": "value"}
        )

        data = report.to_dict()
        assert data["operation"] == "index_consistency_check"
        assert data["issues_found"] == 1
        assert data["stale_entries"] == [["name", "Alice", 1]]
        assert "completed_at" in data
        assert data["metadata"]["key"] == "value"


class TestIndexConsistency:
    """Drift detection and repair, against both backends."""

    def test_fresh_store_is_consistent(self, backend):
        backend.put("users", 1, {"name": "Alice", "skills": ["ruby"]})
        backend.put("users", 2, {"name": "Bob"})

        report = check_index_consistency(backend, "users")

        assert report.consistent
        assert report.documents == 2
        assert report.entries > 0

    def test_detects_missing_and_stale_entries(self, backend):
        backend.put("users", 1, {"name": "Alice"})
        backend.put("users", 2, {"name": "Bob"})
        backend.delete_index_entry("users", "name", "Alice")
        backend.write_index_ids("users", "name", "Bob", [2, 9])

        report = check_index_consistency(backend, "users")

        assert not report.consistent
        assert ("name", "Alice", 1) in report.missing_entries
        assert ("name", "Bob", 9) in report.stale_entries

    def test_reports_corrupt_documents(self, backend):
        backend.put("users", 1, {"name": "Alice"})
        backend._write_document("users", 2, b"\x00garbage")

        report = check_index_consistency(backend, "users")

        assert report.corrupt_records == ["users:2"]
        assert report.consistent

    def test_rebuild_repairs_drift(self, backend):
        backend.put("users", 1, {"name": "Alice", "skills": ["ruby"]})
        backend.put("users", 2, {"name": "Bob"})
        backend.delete_index_entry("users", "skills_includes", "ruby")
        backend.write_index_ids("users", "name", "Carol", [5])

        reports = rebuild_indexes(backend, "users")

        assert len(reports) == 1
        assert reports[0].documents == 2
        assert check_index_consistency(backend, "users").consistent
        assert [doc["id"] for doc in backend.find("users", {"skills": {"includes": "ruby"}})] == [1]
        assert backend.indexer.lookup("users", "name", "Carol") == []

    def test_rebuild_every_table(self, backend):
        backend.put("users", 1, {"name": "Alice"})
        backend.put("admins", 1, {"name": "Root"})

        reports = rebuild_indexes(backend)

        assert sorted(report.table for report in reports) == ["admins", "users"]

    def test_unknown_table(self, backend):
        with pytest.raises(MaintenanceError):
            rebuild_indexes(backend, "ghosts")


def test_reload_vectors(store, users):
    store.engine.drop_collection("users_embedding")
    assert store.search_similar("users_embedding", [1.0, 0.0, 0.0, 0.0]) == []

    reports = reload_vectors(store, "users")

    assert reports[0].metadata["collections"] == {"users_embedding": 4}
    hits = store.search_similar("users_embedding", [1.0, 0.0, 0.0, 0.0], limit=1)
    assert hits[0].id == users["alice"]["id"]


def test_reload_vectors_drops_vectors_of_deleted_documents(store, users):
    store.delete("users", users["bob"]["id"])

    reload_vectors(store)

    hits = store.search_similar("users_embedding", [0.0, 1.0, 0.0, 0.0], limit=10)
    assert users["bob"]["id"] not in [hit.id for hit in hits]
