"""
Query planner in isolation, with the backend and engine mocked out.
"""

from unittest.mock import MagicMock

import pytest

from docvec.query.planner import ExecutionPath, QueryPlanner, order_documents, paginate
from docvec.query.schemas import OrderClause, SimilarityRequest
from docvec.core.schema import Document
from docvec.vector.types import QueryResult


@pytest.fixture
def backend():
    mock = MagicMock()
    documents = {
        1: {"id": 1, "name": "Alice", "team": "red"},
        2: {"id": 2, "name": "Bob", "team": "blue"},
        3: {"id": 3, "name": "Carol", "team": "red"},
    }
    mock.get.side_effect = lambda table, doc_id: documents.get(doc_id)
    mock.find.return_value = [documents[1], documents[3]]
    mock.all_documents.return_value = list(documents.values())
    return mock


@pytest.fixture
def engine():
    mock = MagicMock()
    mock.search_similar.return_value = [
        QueryResult(id=2, score=0.9),
        QueryResult(id=3, score=0.8),
        QueryResult(id=1, score=0.1),
    ]
    return mock


def test_documents_first_overfetches_vector_search(backend, engine):
    planner = QueryPlanner(backend, engine, hybrid_overfetch=7)
    request = SimilarityRequest(vector=[1.0, 0.0], limit=1)

    results = planner.execute("users", {"team": "red"}, [request])

    engine.search_similar.assert_called_once_with("users_embedding", [1.0, 0.0], limit=7, threshold=0.0)
    backend.find.assert_called_once_with("users", {"team": "red"})
    assert [doc.id for doc in results] == [3]
    assert results[0].similarity == 0.8


def test_vector_only_skips_vectors_without_documents(backend, engine):
    engine.search_similar.return_value = [QueryResult(id=99, score=1.0), QueryResult(id=1, score=0.5)]
    planner = QueryPlanner(backend, engine, hybrid_overfetch=10)

    results = planner.execute("users", {}, [SimilarityRequest(vector=[1.0, 0.0], field="photo")])

    engine.search_similar.assert_called_once_with("users_photo", [1.0, 0.0], limit=50, threshold=0.0)
    assert [doc.id for doc in results] == [1]


def test_vectors_first_filters_in_memory(backend, engine):
    planner = QueryPlanner(backend, engine, hybrid_overfetch=10)

    results = planner.execute("users", {"name": {"gte": "B"}}, [SimilarityRequest(vector=[1.0, 0.0])])

    backend.find.assert_not_called()
    assert [doc["name"] for doc in results] == ["Bob", "Carol"]


def test_choose_path():
    planner = QueryPlanner(MagicMock(), MagicMock(), hybrid_overfetch=10)
    request = SimilarityRequest(vector=[1.0])

    assert planner.choose_path({}, []) is ExecutionPath.SCAN
    assert planner.choose_path({"a": 1}, []) is ExecutionPath.DOCUMENT_ONLY
    assert planner.choose_path({}, [request]) is ExecutionPath.VECTOR_ONLY
    assert planner.choose_path({"a": 1}, [request]) is ExecutionPath.HYBRID_DOCUMENTS_FIRST
    assert planner.choose_path({"a": {"lt": 1}}, [request]) is ExecutionPath.HYBRID_VECTORS_FIRST


def test_order_handles_mixed_types():
    documents = [Document({"v": "b"}), Document({"v": 2}), Document({"v": None}),
                 Document({"v": True}), Document({"v": [1]})]

    ordered = order_documents(documents, [OrderClause(field="v")])

    assert [doc["v"] for doc in ordered] == [True, 2, "b", [1], None]


def test_paginate():
    items = list(range(5))
    assert paginate(items, None, 0) == items
    assert paginate(items, 2, 1) == [1, 2]
    assert paginate(items, None, 3) == [3, 4]
    assert paginate(items, 3, 10) == []
