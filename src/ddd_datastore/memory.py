"""InMemoryConnector — dict-backed fake backend for unit tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .cursors import decode_offset_cursor, encode_offset_cursor
from .filters import evaluate_filter
from .ordering import sort_records
from .ports import DatastoreConnector
from .records import Key, ResultPage, StoredRecord

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from .filters import NativeQuery


def _descends_from(key: Key, ancestor: Key) -> bool:
    parent = key.parent
    while parent is not None:
        if parent == ancestor:
            return True
        parent = parent.parent
    return False


class InMemoryConnector(DatastoreConnector):
    """In-memory implementation of :class:`DatastoreConnector`.

    Native queries are filtered with
    :func:`~ddd_datastore.filters.evaluate_filter` and sorted with the
    record comparator; cursors are opaque offsets into the result.
    ``more_results`` is reported exactly, so a full scan takes
    ``ceil(N / page_size)`` calls.
    """

    def __init__(self, records: Iterable[StoredRecord] = ()) -> None:
        self._store: dict[Key, StoredRecord] = {}
        self.lookup_calls = 0
        self.query_calls = 0
        self.requested_page_sizes: list[int] = []
        self.put(records)

    def lookup(self, keys: Sequence[Key]) -> list[StoredRecord | None]:
        self.lookup_calls += 1
        return [self._store.get(key) for key in keys]

    def run_query(
        self,
        query: NativeQuery,
        page_size: int,
        cursor: str | None = None,
    ) -> ResultPage:
        self.query_calls += 1
        self.requested_page_sizes.append(page_size)
        offset = decode_offset_cursor(cursor)
        candidates = [
            record
            for record in self._store.values()
            if record.key.kind == query.kind
            and (query.ancestor is None or _descends_from(record.key, query.ancestor))
            and evaluate_filter(query.filter, record)
        ]
        candidates = sort_records(candidates, query.sort)
        if query.limit is not None and query.limit > 0:
            candidates = candidates[: query.limit]
        page = candidates[offset : offset + page_size]
        end = offset + len(page)
        return ResultPage(
            records=tuple(page),
            cursor=encode_offset_cursor(end),
            more_results=end < len(candidates),
        )

    def put(self, records: Iterable[StoredRecord]) -> None:
        for record in records:
            self._store[record.key] = record

    def delete(self, keys: Iterable[Key]) -> None:
        for key in keys:
            self._store.pop(key, None)

    # ── Test helpers ─────────────────────────────────────────────

    def reset_counters(self) -> None:
        self.lookup_calls = 0
        self.query_calls = 0
        self.requested_page_sizes.clear()

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)
