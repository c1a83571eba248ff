"""
Index maintenance: entries always reflect the live documents.
"""

import pytest

from docvec.core.indexing import IndexMaintainer, is_indexable_field
from docvec.core.schema import IndexEntry, index_token


def _entries(backend, table="users"):
    return sorted((field, token, tuple(ids)) for field, token, ids in backend.index_entries(table))


def test_index_tokens():
    assert index_token("Alice") == "Alice"
    assert index_token(True) == "true"
    assert index_token(False) == "false"
    assert index_token(25) == "25"
    assert index_token(25.0) == "25"
    assert index_token(2.5) == "2.5"


def test_entries_for_scalars_and_arrays():
    """Test that arrays yield one deduplicated membership entry per element."""
    document = {"id": 1, "_table": "users", "name": "Alice", "skills": ["ruby", "ruby", "python"],
                "experience": {"years": 3}, "_private": "x"}

    entries = IndexMaintainer.entries_for(document)

    assert entries == {
        IndexEntry("id", "1"),
        IndexEntry("name", "Alice"),
        IndexEntry("skills_includes", "ruby"),
        IndexEntry("skills_includes", "python"),
    }
    assert IndexEntry("skills_includes", "ruby").is_membership
    assert not IndexEntry("name", "Alice").is_membership


def test_unindexable_fields():
    assert is_indexable_field("name")
    assert not is_indexable_field("_vectors")
    assert not is_indexable_field("experience.years")
    assert not is_indexable_field("a:b")
    assert not is_indexable_field("")


def test_update_removes_stale_entries(backend):
    backend.put("users", 1, {"name": "Alice", "skills": ["ruby", "python"]})
    backend.put("users", 1, {"name": "Alicia", "skills": ["python"]})

    assert backend.indexer.lookup("users", "name", "Alice") == []
    assert backend.indexer.lookup("users", "name", "Alicia") == [1]
    assert backend.indexer.lookup_includes("users", "skills", "ruby") == []
    assert backend.indexer.lookup_includes("users", "skills", "python") == [1]
    assert backend.find("users", {"name": "Alice"}) == []


def test_delete_removes_entries(backend):
    backend.put("users", 1, {"name": "Alice", "skills": ["ruby"]})
    backend.put("users", 2, {"name": "Bob", "skills": ["ruby"]})

    backend.delete("users", 1)

    assert backend.indexer.lookup("users", "name", "Alice") == []
    assert backend.indexer.lookup_includes("users", "skills", "ruby") == [2]
    assert ("name", "Alice") not in {(field, token) for field, token, _ in backend.index_entries("users")}


def test_deleting_missing_id_leaves_indexes_unchanged(backend):
    backend.put("users", 1, {"name": "Alice", "skills": ["ruby"]})
    before = _entries(backend)

    assert backend.delete("users", 99) is None
    assert _entries(backend) == before


def test_token_collisions_are_verified_in_memory(backend):
    """The int 25 and the string "25" share an index token but not a value."""
    backend.put("users", 1, {"code": 25})
    backend.put("users", 2, {"code": "25"})
    backend.put("users", 3, {"flag": True})
    backend.put("users", 4, {"flag": "true"})

    assert sorted(backend.indexer.lookup("users", "code", 25)) == [1, 2]
    assert [doc["id"] for doc in backend.find("users", {"code": 25})] == [1]
    assert [doc["id"] for doc in backend.find("users", {"code": "25"})] == [2]
    assert [doc["id"] for doc in backend.find("users", {"flag": True})] == [3]


def test_index_consistency_after_mixed_operations(backend):
    """After any put/delete sequence, equality finds match a full scan."""
    operations = [
        ("put", 1, {"city": "Oslo", "tags": ["a", "b"]}),
        ("put", 2, {"city": "Rome", "tags": ["b"]}),
        ("put", 3, {"city": "Oslo", "tags": []}),
        ("put", 1, {"city": "Rome", "tags": ["c"]}),
        ("delete", 2, None),
        ("put", 4, {"city": "Oslo", "tags": ["b", "c"]}),
        ("delete", 3, None),
    ]
    for operation, doc_id, document in operations:
        if operation == "put":
            backend.put("users", doc_id, document)
        else:
            backend.delete("users", doc_id)

    live = backend.all_documents("users")
    for city in ("Oslo", "Rome", "Paris"):
        expected = [doc["id"] for doc in live if doc["city"] == city]
        assert [doc["id"] for doc in backend.find("users", {"city": city})] == expected
    for tag in ("a", "b", "c"):
        expected = [doc["id"] for doc in live if tag in doc["tags"]]
        assert [doc["id"] for doc in backend.find("users", {"tags": {"includes": tag}})] == expected


def test_rebuild_recreates_entries(backend):
    backend.put("users", 1, {"name": "Alice", "skills": ["ruby"]})
    backend.put("users", 2, {"name": "Bob"})
    expected = _entries(backend)

    backend.clear_indexes("users")
    assert _entries(backend) == []

    counts = backend.indexer.rebuild("users")

    assert counts["documents"] == 2
    assert _entries(backend) == expected
