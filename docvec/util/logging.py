"""
Structured logging for storage, index, vector and query operations.
"""

import logging
from typing import Any, Dict, Optional


class StructuredLogger:
    """Structured logger for document store operations."""

    def __init__(self, name: str = "docvec"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None,
                      level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)

    def log_document_operation(self, operation: str, table: str, doc_id: Any = None,
                               status: str = "success", details: Dict[str, Any] = None):
        """Log a document write/delete. Reads are too frequent for INFO."""
        log_details = {"table": table}
        if doc_id is not None:
            log_details["id"] = doc_id
        if details:
            log_details.update(details)

        self.log_operation(f"document.{operation}", status, log_details, level=logging.DEBUG)

    def log_index_operation(self, operation: str, table: str, field: str, token: str,
                            status: str = "success", details: Dict[str, Any] = None):
        """Log an index entry change."""
        # Truncate long values
        log_details = {
            "table": table,
            "field": field,
            "value": token[:47] + "..." if len(token) > 50 else token,
        }
        if details:
            log_details.update(details)

        self.log_operation(f"index.{operation}", status, log_details, level=logging.DEBUG)

    def log_vector_operation(self, operation: str, collection: str, record_id: Any = None,
                             details: Dict[str, Any] = None, status: str = "success"):
        """Log a vector operation."""
        log_details = {"collection": collection}
        if record_id is not None:
            log_details["record_id"] = record_id
        if details:
            log_details.update(details)

        self.log_operation(f"vector.{operation}", status, log_details, level=logging.DEBUG)

    def log_query_plan(self, table: str, plan: str, details: Dict[str, Any] = None):
        """Log the execution path chosen by the query planner."""
        log_details = {"table": table, "plan": plan}
        if details:
            log_details.update(details)

        self.log_operation("query.plan", "selected", log_details, level=logging.DEBUG)

    def log_corrupt_record(self, location: str, error: Exception):
        """Log a record that failed to decode and was skipped."""
        self.log_operation("record.decode", "skipped", {
            "location": location,
            "error": str(error)[:100]
        }, level=logging.WARNING)

    def log_maintenance(self, operation: str, status: str, details: Optional[Dict[str, Any]] = None):
        """Log a maintenance run summary."""
        self.log_operation(f"maintenance.{operation}", status, details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()
