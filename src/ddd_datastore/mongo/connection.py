"""MongoConnectionManager — PyMongo client lifecycle, pooling, health check."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pymongo import MongoClient
from pymongo.errors import PyMongoError

from .exceptions import MongoConnectionError

if TYPE_CHECKING:
    from pymongo.database import Database

logger = logging.getLogger("ddd_datastore.mongo.connection")


class MongoConnectionManager:
    """Wrap a PyMongo client with lifecycle and health-check helpers."""

    def __init__(
        self,
        url: str = "mongodb://localhost:27017",
        *,
        server_selection_timeout_ms: int = 5000,
        connect_timeout_ms: int = 10000,
        **kwargs: Any,
    ) -> None:
        self._url = url
        self._server_selection_timeout_ms = server_selection_timeout_ms
        self._connect_timeout_ms = connect_timeout_ms
        self._kwargs = kwargs
        self._client: MongoClient[Any] | None = None

    def connect(self) -> MongoClient[Any]:
        """Create and cache the client. Idempotent."""
        if self._client is not None:
            return self._client
        try:
            self._client = MongoClient(
                self._url,
                serverSelectionTimeoutMS=self._server_selection_timeout_ms,
                connectTimeoutMS=self._connect_timeout_ms,
                **self._kwargs,
            )
        except (PyMongoError, ValueError, TypeError) as e:
            raise MongoConnectionError(str(e)) from e
        logger.debug("Created MongoDB client for %s", self._url)
        return self._client

    @property
    def client(self) -> MongoClient[Any]:
        """Return the client; raises if not connected."""
        if self._client is None:
            raise MongoConnectionError("Not connected; call connect() first")
        return self._client

    def database(self, name: str) -> Database[Any]:
        return self.client.get_database(name)

    def close(self) -> None:
        """Close the client. Safe to call repeatedly."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def health_check(self) -> bool:
        """Ping the server; return True if reachable."""
        if self._client is None:
            return False
        try:
            self._client.admin.command("ping")
        except PyMongoError:
            logger.warning("MongoDB health check failed", exc_info=True)
            return False
        return True
