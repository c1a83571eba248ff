"""
File backend specifics: on-disk layout and atomic writes.
"""

import json

import pytest

from docvec.core.file_backend import FileBackend, _safe_component


@pytest.fixture
def files(tmp_path):
    return FileBackend(tmp_path / "data")


def test_layout_on_disk(files):
    """Test one file per document plus one index file per (field, value)."""
    files.put("users", 1, {"name": "Alice", "skills": ["ruby"]})
    root = files.data_dir / "users"

    assert (root / "1.json").is_file()
    assert json.loads((root / "1.json").read_text(encoding="utf-8"))["name"] == "Alice"

    index_file = root / "indexes" / _safe_component("name") / f"{_safe_component('Alice')}.idx"
    entry = json.loads(index_file.read_text(encoding="utf-8"))
    assert entry == {"field": "name", "value": "Alice", "ids": [1]}

    assert (root / "meta" / "next_id.json").is_file()


def test_safe_component_keeps_distinct_values_apart():
    assert _safe_component("a/b") != _safe_component("a_b")
    assert "/" not in _safe_component("../../etc/passwd")
    assert len(_safe_component("x" * 500)) < 100


def test_no_temp_files_left_behind(files):
    files.put("users", 1, {"name": "Alice"})
    files.put("users", 1, {"name": "Alicia"})

    leftovers = [p for p in files.data_dir.rglob("*.tmp")]
    assert leftovers == []


def test_empty_index_directories_are_removed(files):
    files.put("users", 1, {"nickname": "Al"})
    files.delete("users", 1)

    field_dir = files.data_dir / "users" / "indexes" / _safe_component("nickname")
    assert not field_dir.exists()


def test_stray_files_are_ignored(files):
    files.put("users", 1, {"name": "Alice"})
    (files.data_dir / "users" / "notes.json").write_text("{}", encoding="utf-8")
    (files.data_dir / "users" / "2.json").write_text("[]", encoding="utf-8")

    assert [doc["id"] for doc in files.all_documents("users")] == [1]
    assert files.size() == 2
