"""
Shared fixtures: every storage test runs against both backends.
"""

import pytest

from docvec.core.file_backend import FileBackend
from docvec.core.kv_backend import KVBackend
from docvec.core.store import Store
from docvec.vector.engine import VectorEngine


@pytest.fixture(params=["kv", "file"])
def backend(request, tmp_path):
    """A fresh, empty backend of each kind."""
    if request.param == "kv":
        instance = KVBackend(tmp_path / "docvec.db")
    else:
        instance = FileBackend(tmp_path / "docvec")
    yield instance
    instance.close()


@pytest.fixture
def engine():
    return VectorEngine("simple")


@pytest.fixture
def store(backend, engine):
    """Store over a fresh backend with a brute-force engine."""
    return Store(backend, engine, hybrid_overfetch=10, similarity_limit=50)


@pytest.fixture
def users(store):
    """The three-user fixture used by the query tests."""
    alice = store.save("users", {"name": "Alice", "age": 25, "skills": ["ruby", "python"]},
                       vectors={"embedding": [1.0, 0.0, 0.0, 0.0]})
    bob = store.save("users", {"name": "Bob", "age": 35, "skills": ["js"]},
                     vectors={"embedding": [0.0, 1.0, 0.0, 0.0]})
    carol = store.save("users", {"name": "Carol", "age": 42, "skills": ["python", "go"]},
                       vectors={"embedding": [0.7, 0.7, 0.0, 0.0]})
    dave = store.save("users", {"name": "Dave", "age": 31, "skills": ["ruby"]},
                      vectors={"embedding": [0.0, 0.0, 1.0, 0.0]})
    return {"alice": alice, "bob": bob, "carol": carol, "dave": dave}
