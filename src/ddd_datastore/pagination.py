"""
Lazy, forward-only iteration over a paged native query.

``PagedResultStream`` requests the first page on construction and every
following page only when the current one is used up, resuming from the
continuation cursor of the page before::

    FETCHING ──> HAS_PAGE ──(page consumed, more results)──> FETCHING
        │            │
        └────────────┴──(empty page / no cursor / limit reached)──> EXHAUSTED

Once ``EXHAUSTED`` the stream never calls the backend again.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .filters import NativeQuery
    from .ports import DatastoreConnector
    from .records import StoredRecord

logger = logging.getLogger("ddd_datastore.pagination")

DEFAULT_PAGE_SIZE = 100


class StreamState(str, Enum):
    FETCHING = "fetching"
    HAS_PAGE = "has_page"
    EXHAUSTED = "exhausted"


class PagedResultStream(Iterator["StoredRecord"]):
    """Iterator over every record a native query yields, page by page.

    Args:
        connector: Backend handle used for each page request.
        query: The native query; its ``limit`` caps the total record count.
        page_size: Records requested per round trip.
    """

    def __init__(
        self,
        connector: DatastoreConnector,
        query: NativeQuery,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self._connector = connector
        self._query = query
        self._page_size = page_size
        self._remaining: int | None = (
            query.limit if query.limit is not None and query.limit > 0 else None
        )
        self._state = StreamState.FETCHING
        self._page: tuple[StoredRecord, ...] = ()
        self._position = 0
        self._cursor: str | None = None
        self._more_results = False
        self._round_trips = 0
        self._fetch(None)

    # -- inspection ----------------------------------------------------------

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def round_trips(self) -> int:
        return self._round_trips

    @property
    def exhausted(self) -> bool:
        return self._state is StreamState.EXHAUSTED

    # -- iteration -----------------------------------------------------------

    def has_next(self) -> bool:
        if self._state is StreamState.EXHAUSTED:
            return False
        if self._position < len(self._page):
            return True
        if not self._can_continue():
            self._exhaust()
            return False
        self._fetch(self._cursor)
        return self._state is StreamState.HAS_PAGE

    def __next__(self) -> StoredRecord:
        if not self.has_next():
            raise StopIteration
        record = self._page[self._position]
        self._position += 1
        return record

    def __iter__(self) -> PagedResultStream:
        return self

    # -- internals -----------------------------------------------------------

    def _can_continue(self) -> bool:
        if self._remaining is not None and self._remaining <= 0:
            return False
        return self._more_results and self._cursor is not None

    def _request_size(self) -> int:
        if self._remaining is None:
            return self._page_size
        return min(self._page_size, self._remaining)

    def _fetch(self, cursor: str | None) -> None:
        self._state = StreamState.FETCHING
        size = self._request_size()
        page = self._connector.run_query(self._query, size, cursor)
        self._round_trips += 1
        records = tuple(page.records[:size])
        logger.debug(
            "Fetched page %d of kind %s: %d records, more_results=%s",
            self._round_trips,
            self._query.kind,
            len(records),
            page.more_results,
        )
        if self._remaining is not None:
            self._remaining -= len(records)
        self._page = records
        self._position = 0
        self._cursor = page.cursor
        self._more_results = page.more_results
        if records:
            self._state = StreamState.HAS_PAGE
        else:
            self._exhaust()

    def _exhaust(self) -> None:
        self._state = StreamState.EXHAUSTED
        self._page = ()
        self._position = 0
        self._cursor = None
        logger.debug(
            "Query over kind %s exhausted after %d round trips",
            self._query.kind,
            self._round_trips,
        )
