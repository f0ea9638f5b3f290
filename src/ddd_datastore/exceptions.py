"""
Exception hierarchy for the datastore persistence adapter.

All exceptions inherit from ``DatastoreError`` and provide
``to_dict()`` for API-friendly error responses.
"""

from __future__ import annotations

from difflib import get_close_matches
from typing import Any


class DatastoreError(Exception):
    """Root exception for the datastore persistence adapter."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": str(self),
        }


class QueryError(DatastoreError):
    """Raised when a query is malformed. Not recoverable by the engine."""

    def __init__(self, message: str, path: str | None = None) -> None:
        self.message = message
        self.path = path
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "QUERY_ERROR",
            "message": self.message,
            "path": self.path,
        }


class UnknownOperatorError(QueryError):
    """
    Unknown logical or comparison operator.

    Provides fuzzy-matched suggestions when the operator was given as a string.
    """

    def __init__(
        self,
        operator: object,
        valid_operators: list[str],
        path: str | None = None,
    ) -> None:
        self.operator = operator
        self.valid_operators = valid_operators
        self.suggestions = (
            get_close_matches(operator, valid_operators, n=3, cutoff=0.6)
            if isinstance(operator, str)
            else []
        )

        message = f"Unknown operator: {operator!r}."
        if self.suggestions:
            message += f" Did you mean: {', '.join(self.suggestions)}?"
        message += f" Valid operators: {', '.join(sorted(valid_operators))}"
        super().__init__(message, path=path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "UNKNOWN_OPERATOR",
            "operator": str(self.operator),
            "suggestions": self.suggestions,
            "valid_operators": sorted(self.valid_operators),
            "path": self.path,
        }


class ColumnTypeError(QueryError):
    """A domain value cannot be converted for the declared column type."""

    def __init__(self, column_type: object, value: object) -> None:
        self.column_type = column_type
        self.value = value
        super().__init__(
            f"Cannot store {type(value).__name__} value {value!r} "
            f"in a column of type {column_type}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "COLUMN_TYPE_ERROR",
            "column_type": str(self.column_type),
            "value_type": type(self.value).__name__,
        }


class CodecError(DatastoreError):
    """Raised when a record cannot be encoded or decoded."""


class StorageIOError(DatastoreError):
    """Raised by connectors when a backend round trip fails.

    Transient from the caller's point of view; the engine never retries.
    """


class DatastoreConnectionError(StorageIOError):
    """Raised when the connection to the backend cannot be established."""
