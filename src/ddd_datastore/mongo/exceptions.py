"""MongoDB connector exceptions."""

from __future__ import annotations

from ..exceptions import DatastoreConnectionError, StorageIOError


class MongoStorageError(StorageIOError):
    """Base for MongoDB connector errors."""


class MongoConnectionError(MongoStorageError, DatastoreConnectionError):
    """Raised when connection to MongoDB fails."""


class MongoQueryError(MongoStorageError):
    """Raised when a native query cannot be compiled or run."""
