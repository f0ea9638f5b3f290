"""MongoDB backend for the datastore persistence adapter."""

from __future__ import annotations

from .connection import MongoConnectionManager
from .connector import MongoConnector
from .exceptions import MongoConnectionError, MongoQueryError, MongoStorageError
from .query_builder import MongoFilterCompiler

__all__ = [
    "MongoConnectionManager",
    "MongoConnector",
    "MongoConnectionError",
    "MongoFilterCompiler",
    "MongoQueryError",
    "MongoStorageError",
]
