"""DsRecordStorage[T] — record storage over a datastore connector."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from pydantic import BaseModel

from .codec import PydanticRecordCodec
from .column_types import ValueAdapter, build_default_type_registry
from .planner import QueryPlanner, StorageConfig
from .query import FieldMask, RecordQuery

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from .column_types import ColumnTypeRegistry
    from .layout import RecordSpec
    from .ports import DatastoreConnector, RecordCodec

logger = logging.getLogger("ddd_datastore.storage")

T = TypeVar("T", bound=BaseModel)


class DsRecordStorage(Generic[T]):
    """
    Read/write storage for one record type.

    Writes go straight to the connector; reads go through the
    :class:`~ddd_datastore.planner.QueryPlanner`.

    Usage::

        storage = DsRecordStorage(connector, Task, spec)
        storage.write(task)
        open_tasks = list(storage.read_all(RecordQuery(predicate=...)))
    """

    def __init__(
        self,
        connector: DatastoreConnector,
        model_cls: type[T],
        spec: RecordSpec,
        *,
        config: StorageConfig | None = None,
        registry: ColumnTypeRegistry | None = None,
        codec: RecordCodec[T] | None = None,
    ) -> None:
        self._connector = connector
        self._spec = spec
        self._config = config or StorageConfig()
        self._adapter = ValueAdapter(registry or build_default_type_registry())
        self._codec: RecordCodec[T] = codec or PydanticRecordCodec(
            model_cls, spec, self._adapter
        )
        self._planner: QueryPlanner[T] = QueryPlanner(
            connector, self._codec, self._adapter, spec, self._config
        )

    @property
    def spec(self) -> RecordSpec:
        return self._spec

    @property
    def planner(self) -> QueryPlanner[T]:
        return self._planner

    def write(self, record: T) -> None:
        self.write_all([record])

    def write_all(self, records: Iterable[T]) -> None:
        stored = [self._codec.encode(record) for record in records]
        if stored:
            self._connector.put(stored)
            logger.debug("Wrote %d records of kind %s", len(stored), self._spec.kind)

    def read(self, record_id: Any, mask: FieldMask | None = None) -> T | None:
        """Read one record by id, regardless of its lifecycle flags."""
        (stored,) = self._connector.lookup([self._spec.key_of(record_id)])
        if stored is None:
            return None
        record = self._codec.decode(stored)
        if mask:
            record = self._codec.apply_field_mask(record, mask)
        return record

    def read_all(self, query: RecordQuery | None = None) -> Iterator[T]:
        return self._planner.execute(query or RecordQuery())

    def delete(self, record_id: Any) -> bool:
        """Physically remove a record. Returns whether it existed."""
        key = self._spec.key_of(record_id)
        (stored,) = self._connector.lookup([key])
        if stored is None:
            return False
        self._connector.delete([key])
        return True

    def index(self) -> Iterator[Any]:
        """Ids of all stored records of this kind, active or not."""
        query = RecordQuery()
        unfiltered = QueryPlanner(
            self._connector,
            self._codec,
            self._adapter,
            self._spec,
            StorageConfig(page_size=self._config.page_size, apply_active_filter=False),
        )
        for record in unfiltered.execute(query):
            yield self._spec.id_of(record)
