"""
Structured logging output.
"""

import logging

import pytest

from docvec.core.file_backend import FileBackend
from docvec.util.logging import StructuredLogger, logger


def test_logger_has_single_handler():
    """Creating the logger twice must not duplicate handlers."""
    first = StructuredLogger("docvec.test_handlers")
    second = StructuredLogger("docvec.test_handlers")

    assert first.logger is second.logger
    assert len(second.logger.handlers) == 1
    assert first.logger.level == logging.INFO


def test_log_operation_format(caplog):
    structured = StructuredLogger("docvec.test_format")
    structured.logger.propagate = True

    with caplog.at_level(logging.INFO, logger="docvec.test_format"):
        structured.log_operation("store.open", "success", {"backend": "kv"})

    assert "Operation: store.open, Status: success, Details: {'backend': 'kv'}" in caplog.text


def test_hot_paths_log_at_debug(caplog):
    structured = StructuredLogger("docvec.test_debug")
    structured.logger.propagate = True

    with caplog.at_level(logging.INFO, logger="docvec.test_debug"):
        structured.log_document_operation("put", "users", 1)
        structured.log_vector_operation("added", "users_embedding", 1)
    assert caplog.records == []

    structured.logger.setLevel(logging.DEBUG)
    with caplog.at_level(logging.DEBUG, logger="docvec.test_debug"):
        structured.log_index_operation("add", "users", "bio", "x" * 80)
    assert "..." in caplog.text
    assert "x" * 80 not in caplog.text


def test_corrupt_records_warn(tmp_path, caplog):
    backend = FileBackend(tmp_path / "docs")
    backend.put("users", 1, {"name": "Alice"})
    backend._write_document("users", 2, b"{broken")
    logger.logger.propagate = True

    with caplog.at_level(logging.WARNING, logger="docvec"):
        documents = backend.all_documents("users")

    assert [doc["id"] for doc in documents] == [1]
    assert any(record.levelno == logging.WARNING and "skipped" in record.getMessage()
               for record in caplog.records)
