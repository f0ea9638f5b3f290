"""MongoConnector — DatastoreConnector over PyMongo."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Any

from pymongo import ASCENDING
from pymongo.errors import ConnectionFailure, PyMongoError

from ..cursors import decode_offset_cursor, encode_offset_cursor
from ..ports import DatastoreConnector
from ..records import ResultPage
from .exceptions import MongoConnectionError, MongoStorageError
from .query_builder import MongoFilterCompiler
from .serialization import (
    ANCESTORS_FIELD,
    ID_FIELD,
    key_to_id,
    record_from_doc,
    record_to_doc,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from pymongo.collection import Collection
    from pymongo.database import Database

    from ..filters import NativeQuery
    from ..layout import RecordSpec
    from ..records import Key, StoredRecord

logger = logging.getLogger("ddd_datastore.mongo.connector")


def _wrap(exc: PyMongoError, action: str) -> MongoStorageError:
    if isinstance(exc, ConnectionFailure):
        return MongoConnectionError(f"{action} failed: {exc}")
    return MongoStorageError(f"{action} failed: {exc}")


class MongoConnector(DatastoreConnector):
    """
    MongoDB implementation of :class:`~ddd_datastore.ports.DatastoreConnector`.

    Each record kind lives in its own collection (``<prefix><kind>``).
    Documents carry the key path in ``_id``, the indexed properties as
    top-level fields and the encoded record under ``_payload``.

    Continuation cursors are opaque offsets; each page is one ``find()``
    with ``skip``/``limit``, asking for one extra document to know whether
    more results follow.
    """

    def __init__(
        self,
        database: Database[Any],
        *,
        collection_prefix: str = "",
    ) -> None:
        self._database = database
        self._prefix = collection_prefix
        self._compiler = MongoFilterCompiler()

    def collection(self, kind: str) -> Collection[Any]:
        return self._database.get_collection(f"{self._prefix}{kind}")

    def lookup(self, keys: Sequence[Key]) -> list[StoredRecord | None]:
        by_kind: dict[str, list[str]] = defaultdict(list)
        for key in keys:
            by_kind[key.kind].append(key_to_id(key))
        found: dict[str, StoredRecord] = {}
        try:
            for kind, ids in by_kind.items():
                cursor = self.collection(kind).find({ID_FIELD: {"$in": list(set(ids))}})
                for doc in cursor:
                    found[doc[ID_FIELD]] = record_from_doc(doc)
        except PyMongoError as e:
            raise _wrap(e, "Lookup") from e
        logger.debug("Looked up %d keys, %d found", len(keys), len(found))
        return [found.get(key_to_id(key)) for key in keys]

    def run_query(
        self,
        query: NativeQuery,
        page_size: int,
        cursor: str | None = None,
    ) -> ResultPage:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        offset = decode_offset_cursor(cursor)
        wanted = page_size
        if query.limit is not None and query.limit > 0:
            wanted = min(page_size, query.limit - offset)
        if wanted <= 0 or query.matches_nothing:
            return ResultPage()

        mongo_filter = self._compiler.build_filter(query)
        sort = self._compiler.build_sort(query)
        logger.debug(
            "Querying %s: filter=%s sort=%s skip=%d limit=%d",
            query.kind,
            mongo_filter,
            sort,
            offset,
            wanted,
        )
        try:
            docs = list(
                self.collection(query.kind)
                .find(mongo_filter)
                .sort(sort)
                .skip(offset)
                .limit(wanted + 1)
            )
        except PyMongoError as e:
            raise _wrap(e, f"Query on {query.kind}") from e

        page = tuple(record_from_doc(doc) for doc in docs[:wanted])
        end = offset + len(page)
        more = len(docs) > wanted and (
            query.limit is None or query.limit <= 0 or end < query.limit
        )
        return ResultPage(
            records=page, cursor=encode_offset_cursor(end), more_results=more
        )

    def put(self, records: Iterable[StoredRecord]) -> None:
        count = 0
        try:
            for record in records:
                doc = record_to_doc(record)
                self.collection(record.key.kind).replace_one(
                    {ID_FIELD: doc[ID_FIELD]}, doc, upsert=True
                )
                count += 1
        except PyMongoError as e:
            raise _wrap(e, "Write") from e
        logger.debug("Wrote %d records", count)

    def delete(self, keys: Iterable[Key]) -> None:
        by_kind: dict[str, list[str]] = defaultdict(list)
        for key in keys:
            by_kind[key.kind].append(key_to_id(key))
        try:
            for kind, ids in by_kind.items():
                self.collection(kind).delete_many({ID_FIELD: {"$in": ids}})
        except PyMongoError as e:
            raise _wrap(e, "Delete") from e

    def ensure_indexes(self, spec: RecordSpec) -> list[str]:
        """Create single-field indexes for every column of *spec*, plus the
        ancestor index. Returns the index names."""
        coll = self.collection(spec.kind)
        fields = [ANCESTORS_FIELD, *(column.name for column in spec.columns)]
        try:
            return [coll.create_index([(field, ASCENDING)]) for field in fields]
        except PyMongoError as e:
            raise _wrap(e, f"Index creation on {spec.kind}") from e
