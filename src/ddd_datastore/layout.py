"""
Record layout: kind, key derivation and indexed columns of one record type.

``RecordSpec`` is to a record type what a collection schema is to a
document store: it names the backend kind, turns domain identifiers into
structural :class:`~ddd_datastore.records.Key` objects and declares which
attributes are stored as indexed, typed properties.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from .column_types import ColumnType, canonical_json
from .exceptions import QueryError
from .records import Key

ARCHIVED = "archived"
DELETED = "deleted"


def resolve_field(obj: Any, attr_path: str) -> Any:
    """
    Resolve a dot-separated attribute path on *obj*.

    Works on attribute objects and dicts; missing links resolve to ``None``.
    """
    for part in attr_path.split("."):
        if obj is None:
            return None
        obj = obj.get(part) if isinstance(obj, dict) else getattr(obj, part, None)
    return obj


def stringify_id(record_id: Any) -> str:
    """Turn a domain identifier into a key name."""
    if isinstance(record_id, str):
        result = record_id
    elif isinstance(record_id, (int, UUID)) and not isinstance(record_id, bool):
        result = str(record_id)
    elif isinstance(record_id, (BaseModel, dict)):
        result = canonical_json(record_id)
    else:
        raise QueryError(f"Unsupported identifier type: {type(record_id).__name__}")
    if not result:
        raise QueryError("Record identifier must not be empty")
    return result


@dataclass(frozen=True)
class Column:
    """An indexed, typed property extracted from a record."""

    name: str
    column_type: ColumnType
    getter: Callable[[Any], Any] | None = None

    def value_of(self, record: Any) -> Any:
        if self.getter is not None:
            return self.getter(record)
        return resolve_field(record, self.name)


def _lifecycle_flag(flag: str) -> Callable[[Any], bool]:
    def getter(record: Any) -> bool:
        return bool(resolve_field(record, flag) or False)

    return getter


class RecordSpec:
    """Describes how one record type is laid out in the backend."""

    def __init__(
        self,
        kind: str,
        columns: Iterable[Column] = (),
        *,
        id_field: str = "id",
        parent: Key | None = None,
        lifecycle_columns: bool = True,
    ) -> None:
        if not kind:
            raise ValueError("kind must not be empty")
        self._kind = kind
        self._id_field = id_field
        self._parent = parent
        self._columns: dict[str, Column] = {}
        if lifecycle_columns:
            for flag in (ARCHIVED, DELETED):
                self._columns[flag] = Column(
                    flag, ColumnType.BOOLEAN, _lifecycle_flag(flag)
                )
        for column in columns:
            self._columns[column.name] = column

    @property
    def kind(self) -> str:
        return self._kind

    @property
    def parent(self) -> Key | None:
        return self._parent

    @property
    def columns(self) -> tuple[Column, ...]:
        return tuple(self._columns.values())

    @property
    def has_lifecycle_columns(self) -> bool:
        return ARCHIVED in self._columns and DELETED in self._columns

    def column(self, name: str) -> Column | None:
        return self._columns.get(name)

    def column_type(self, name: str) -> ColumnType | None:
        column = self._columns.get(name)
        return column.column_type if column is not None else None

    def id_of(self, record: Any) -> Any:
        return resolve_field(record, self._id_field)

    def key_of(self, record_id: Any) -> Key:
        return Key(self._kind, stringify_id(record_id), self._parent)
