"""
Collaborator interfaces consumed by the query engine.

``DatastoreConnector`` is the backend handle. It is handed in already scoped
to a namespace/tenant (and, when needed, to a transaction); the engine never
scopes, retries or reconnects on its own.

``RecordCodec`` converts between domain records and stored records.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from .filters import NativeQuery
    from .query import FieldMask, QueryPredicate
    from .records import Key, ResultPage, StoredRecord

TRecord = TypeVar("TRecord")


class DatastoreConnector(ABC):
    """Synchronous access to the key-value backend.

    Implementations raise :class:`~ddd_datastore.exceptions.StorageIOError`
    when a round trip fails.
    """

    @abstractmethod
    def lookup(self, keys: Sequence[Key]) -> list[StoredRecord | None]:
        """Batched get: one slot per key, in order, ``None`` where absent."""
        ...

    @abstractmethod
    def run_query(
        self,
        query: NativeQuery,
        page_size: int,
        cursor: str | None = None,
    ) -> ResultPage:
        """Run one page of a native query, starting at *cursor*."""
        ...

    @abstractmethod
    def put(self, records: Iterable[StoredRecord]) -> None:
        """Create or replace records."""
        ...

    @abstractmethod
    def delete(self, keys: Iterable[Key]) -> None:
        """Remove records; missing keys are ignored."""
        ...


class RecordCodec(ABC, Generic[TRecord]):
    """Domain record <-> stored record conversion."""

    @abstractmethod
    def encode(self, record: TRecord) -> StoredRecord: ...

    @abstractmethod
    def decode(self, stored: StoredRecord) -> TRecord: ...

    @abstractmethod
    def apply_field_mask(self, record: TRecord, mask: FieldMask) -> TRecord: ...

    def default_active_filter(self) -> QueryPredicate | None:
        """Predicate used when a query carries none. ``None`` = no filter."""
        return None
