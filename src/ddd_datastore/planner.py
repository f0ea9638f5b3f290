"""
Query strategy planner.

Every :class:`~ddd_datastore.query.RecordQuery` runs through exactly one of
two prepared queries:

``LookupByIds``
    The query names identifiers. One batched ``lookup`` fetches them; the
    predicate, ordering, limit and field mask are then applied in memory.
    Never calls ``run_query``.

``LookupByQuery``
    The query names no identifiers. Predicate and ordering become a native
    query driven through a :class:`~ddd_datastore.pagination.PagedResultStream`;
    only the field mask is applied here. Never calls ``lookup``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from itertools import islice
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from .evaluator import ColumnPredicate
from .filters import FilterAdapter
from .ordering import sort_records
from .pagination import DEFAULT_PAGE_SIZE, PagedResultStream

if TYPE_CHECKING:
    from .column_types import ValueAdapter
    from .layout import RecordSpec
    from .ports import DatastoreConnector, RecordCodec
    from .query import QueryPredicate, RecordQuery
    from .records import StoredRecord

logger = logging.getLogger("ddd_datastore.planner")

TRecord = TypeVar("TRecord")


@dataclass(frozen=True)
class StorageConfig:
    """
    Tuning for query execution.

    Attributes:
        page_size: Records requested per native-query round trip.
        apply_active_filter: Use the codec's default active filter when a
            query's predicate is empty.
    """

    page_size: int = DEFAULT_PAGE_SIZE
    apply_active_filter: bool = True

    def __post_init__(self) -> None:
        if self.page_size <= 0:
            raise ValueError("page_size must be positive")


class PreparedQuery(ABC, Generic[TRecord]):
    """A query bound to a retrieval strategy, ready to execute once."""

    def __init__(
        self,
        connector: DatastoreConnector,
        query: RecordQuery,
        predicate: QueryPredicate,
        codec: RecordCodec[TRecord],
        adapter: ValueAdapter,
        spec: RecordSpec,
    ) -> None:
        self._connector = connector
        self._query = query
        self._predicate = predicate
        self._codec = codec
        self._adapter = adapter
        self._spec = spec

    @property
    def query(self) -> RecordQuery:
        return self._query

    @abstractmethod
    def fetch(self) -> Iterator[StoredRecord]:
        """Stored records in their final order, filtered and limited."""
        ...

    def execute(self) -> Iterator[TRecord]:
        """Decoded, field-masked records."""
        mask = self._query.mask
        for stored in self.fetch():
            record = self._codec.decode(stored)
            yield self._codec.apply_field_mask(record, mask) if mask else record


class LookupByIds(PreparedQuery[TRecord]):
    """Batched get by key, then filter, sort and limit in memory."""

    def fetch(self) -> Iterator[StoredRecord]:
        keys = [self._spec.key_of(record_id) for record_id in self._query.ids]
        slots = self._connector.lookup(keys)
        logger.debug(
            "Looked up %d keys of kind %s, %d found",
            len(keys),
            self._spec.kind,
            sum(1 for s in slots if s is not None),
        )
        matcher = ColumnPredicate(self._predicate, self._adapter, self._spec)
        found = [
            record
            for record in slots
            if record is not None and (self._predicate.is_empty or matcher(record))
        ]
        if self._query.order_by:
            found = sort_records(found, self._query.order_by)
        limit = self._query.effective_limit
        selected = found if limit is None else islice(found, limit)
        return iter(selected)


class LookupByQuery(PreparedQuery[TRecord]):
    """Native filtered/sorted query, streamed page by page."""

    def __init__(
        self, *args: Any, page_size: int = DEFAULT_PAGE_SIZE, **kwargs: Any
    ) -> None:
        super().__init__(*args, **kwargs)
        self._page_size = page_size
        self._stream: PagedResultStream | None = None

    @property
    def stream(self) -> PagedResultStream | None:
        """The underlying stream once :meth:`fetch` has started."""
        return self._stream

    def fetch(self) -> Iterator[StoredRecord]:
        filters = FilterAdapter(self._adapter, self._spec)
        native = filters.to_native_query(
            self._predicate,
            self._query.order_by,
            self._query.effective_limit,
        )
        if native.matches_nothing:
            logger.debug(
                "Predicate on kind %s can never match; skipping backend query",
                self._spec.kind,
            )
            return iter(())
        self._stream = PagedResultStream(
            self._connector, native, page_size=self._page_size
        )
        return self._stream


class QueryPlanner(Generic[TRecord]):
    """Chooses and runs the retrieval strategy for record queries."""

    def __init__(
        self,
        connector: DatastoreConnector,
        codec: RecordCodec[TRecord],
        adapter: ValueAdapter,
        spec: RecordSpec,
        config: StorageConfig | None = None,
    ) -> None:
        self._connector = connector
        self._codec = codec
        self._adapter = adapter
        self._spec = spec
        self._config = config or StorageConfig()

    def _effective_predicate(self, query: RecordQuery) -> QueryPredicate:
        predicate = query.predicate
        if predicate.is_empty and self._config.apply_active_filter:
            default = self._codec.default_active_filter()
            if default is not None:
                return default
        return predicate

    def prepare(self, query: RecordQuery) -> PreparedQuery[TRecord]:
        """Bind *query* to its retrieval strategy without touching the backend."""
        predicate = self._effective_predicate(query)
        args = (
            self._connector,
            query,
            predicate,
            self._codec,
            self._adapter,
            self._spec,
        )
        if query.has_ids:
            logger.debug(
                "Planning lookup by %d ids for kind %s", len(query.ids), self._spec.kind
            )
            return LookupByIds(*args)
        logger.debug("Planning native query for kind %s", self._spec.kind)
        return LookupByQuery(*args, page_size=self._config.page_size)

    def execute(self, query: RecordQuery) -> Iterator[TRecord]:
        """Run *query*: a lazy, forward-only iterator of decoded records."""
        return self.prepare(query).execute()
