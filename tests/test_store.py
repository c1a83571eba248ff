"""
Store handle: model-facing save/destroy, vectors, configuration and locking.
"""

import threading

import pytest

from docvec.core.errors import ConcurrencyHazard, ConfigurationError, DimensionMismatch, RecordNotFound
from docvec.core.kv_backend import KVBackend
from docvec.core.schema import Document
from docvec.core.store import Store
from docvec.vector.engine import VectorEngine


def test_save_allocates_increasing_ids(store):
    first = store.save("users", {"name": "Alice"})
    second = store.save("users", {"name": "Bob"})

    assert (first["id"], second["id"]) == (1, 2)
    assert store.get("users", 2)["name"] == "Bob"


def test_save_with_id_updates_in_place(store):
    saved = store.save("users", {"name": "Alice", "age": 25})

    updated = store.save("users", {"id": saved["id"], "name": "Alice", "age": 26})

    assert updated["id"] == saved["id"]
    assert store.find("users", {"age": 26})[0]["id"] == saved["id"]
    assert store.find("users", {"age": 25}) == []


def test_save_unknown_id_raises(store):
    with pytest.raises(RecordNotFound) as excinfo:
        store.save("users", {"id": 77, "name": "Ghost"})
    assert excinfo.value.doc_id == 77
    assert excinfo.value.table == "users"


def test_id_collision_raises_concurrency_hazard(store):
    store.save("users", {"name": "Alice"})
    # Simulate a writer that allocated the same id through another handle
    store.backend.set_metadata("users", "next_id", 1)

    with pytest.raises(ConcurrencyHazard):
        store.save("users", {"name": "Bob"})
    assert store.get("users", 1)["name"] == "Alice"


def test_save_records_vectors(store):
    saved = store.save("users", {"name": "Alice"}, vectors={"embedding": [1.0, 0.0, 0.0, 0.0]})

    assert saved["_vectors"] == {"embedding": [1.0, 0.0, 0.0, 0.0]}
    hits = store.search_similar("users_embedding", [0.9, 0.1, 0.0, 0.0], limit=1)
    assert [hit.id for hit in hits] == [saved["id"]]


def test_none_vector_clears_the_field(store):
    saved = store.save("users", {"name": "Alice"}, vectors={"embedding": [1.0, 0.0]})

    updated = store.save("users", dict(saved), vectors={"embedding": None})

    assert "_vectors" not in updated
    assert store.search_similar("users_embedding", [1.0, 0.0]) == []


def test_edited_vectors_field_reaches_the_engine(store):
    saved = store.save("users", {"name": "Alice"}, vectors={"embedding": [1.0, 0.0]})
    document = dict(saved)
    document["_vectors"] = {"embedding": [0.0, 1.0]}

    updated = store.save("users", document)

    assert updated["_vectors"] == {"embedding": [0.0, 1.0]}
    hits = store.search_similar("users_embedding", [0.0, 1.0], limit=1)
    assert [hit.id for hit in hits] == [saved["id"]]
    assert hits[0].similarity == pytest.approx(1.0)


def test_vectors_argument_wins_over_vectors_field(store):
    saved = store.save("users", {"name": "Alice", "_vectors": {"embedding": [1.0, 0.0]}},
                       vectors={"embedding": [0.0, 1.0]})

    assert saved["_vectors"] == {"embedding": [0.0, 1.0]}
    hits = store.search_similar("users_embedding", [0.0, 1.0], limit=1)
    assert hits[0].similarity == pytest.approx(1.0)


def test_saving_a_document_wrapper(store):
    saved = store.save("users", {"name": "Alice"})
    document = store.find_by_id("users", saved["id"])
    document.set("name", "Alicia")

    store.save("users", document)

    assert store.find_by_id("users", saved["id"])["name"] == "Alicia"
    with pytest.raises(ValueError):
        document.set("id", 99)


def test_destroy_removes_document_and_vectors(store, users):
    """Scenario: after deleting Alice neither the range find nor the search returns her."""
    alice_id = users["alice"]["id"]

    removed = store.destroy("users", alice_id)

    assert removed["name"] == "Alice"
    assert store.find("users", {"age": {"lt": 30}}) == []
    hits = store.search_similar("users_embedding", [1.0, 0.0, 0.0, 0.0], limit=10)
    assert alice_id not in [hit.id for hit in hits]
    assert store.destroy("users", alice_id) is None


def test_find_by_id(store):
    saved = store.save("users", {"name": "Alice"})

    document = store.find_by_id("users", saved["id"])

    assert isinstance(document, Document)
    assert document.id == saved["id"]
    assert document.table == "users"
    assert document.get("name") == "Alice"
    with pytest.raises(RecordNotFound):
        store.find_by_id("users", 999)


def test_declared_dimensions_reject_bad_vectors_before_writing(store):
    store.declare_vector_field("users", "embedding", 3)

    with pytest.raises(DimensionMismatch):
        store.save("users", {"name": "Alice"}, vectors={"embedding": [1.0, 0.0]})

    assert store.find("users") == []
    assert store.backend.get_metadata("users", "vector_dimensions") == {"embedding": 3}


def test_load_vectors_restores_collections(store, users):
    fresh = Store(store.backend, VectorEngine("simple"))
    assert fresh.search_similar("users_embedding", [1.0, 0.0, 0.0, 0.0]) == []

    loaded = fresh.load_vectors()

    assert loaded == {"users_embedding": 4}
    hits = fresh.search_similar("users_embedding", [0.9, 0.1, 0.0, 0.0], limit=1)
    assert hits[0].id == users["alice"]["id"]


def test_stats(store, users):
    stats = store.stats("users")

    assert stats["vector_engine"] == "simple"
    assert stats["tables"]["users"]["documents"] == 4
    assert stats["tables"]["users"]["next_id"] == 5
    assert stats["tables"]["users"]["collections"] == {"users_embedding": 4}


def test_concurrent_saves_get_unique_ids(store):
    errors = []

    def writer(worker):
        try:
            for n in range(10):
                store.save("events", {"worker": worker, "n": n})
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=writer, args=(w,)) for w in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    ids = [doc["id"] for doc in store.find("events")]
    assert ids == list(range(1, 41))
    for worker in range(4):
        assert len(store.find("events", {"worker": worker})) == 10


def test_from_config_reads_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("DOCVEC_BACKEND", "file")
    monkeypatch.setenv("DOCVEC_DATA_DIR", str(tmp_path / "docs"))
    monkeypatch.setenv("DOCVEC_VECTOR_ENGINE", "tree")

    with Store.from_config() as store:
        assert store.backend.name == "file"
        assert store.engine.strategy.value == "tree"
        store.save("users", {"name": "Alice"}, vectors={"embedding": [1.0, 0.0]})

    # Vectors come back from the documents on the next start
    with Store.from_config() as reopened:
        hits = reopened.search_similar("users_embedding", [1.0, 0.0], limit=1)
        assert [hit.id for hit in hits] == [1]


def test_from_config_rejects_unknown_choices(tmp_path, monkeypatch):
    monkeypatch.setenv("DOCVEC_DB_PATH", str(tmp_path / "x.db"))
    with pytest.raises(ConfigurationError):
        Store.from_config(backend_kind="postgres")
    with pytest.raises(ConfigurationError):
        Store.from_config(backend_kind="kv", vector_engine="annoy")


def test_context_manager_closes_backend(tmp_path):
    backend = KVBackend(tmp_path / "store.db")
    with Store(backend, VectorEngine("simple")) as store:
        store.save("users", {"name": "Alice"})
    assert not backend.connected
