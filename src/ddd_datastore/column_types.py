"""
Column types and the domain-value → backend-value adapter.

A :class:`ColumnTypeRegistry` maps each declared :class:`ColumnType` to a
converter producing a :class:`~ddd_datastore.values.DsValue`. Registries
are plain instances built once (see :func:`build_default_type_registry`)
and handed to a :class:`ValueAdapter`; there is no module-level lookup
state.

Usage::

    registry = build_default_type_registry()
    adapter = ValueAdapter(registry)

    adapter.to_value(42, ColumnType.INTEGER)      # DsValue(integer, 42)
    adapter.to_value(None, ColumnType.STRING)     # DsValue(null, None)
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from .exceptions import ColumnTypeError
from .values import DsValue

Converter = Callable[[Any], DsValue]


class ColumnType(str, Enum):
    """Semantic type of a record column."""

    STRING = "string"
    INTEGER = "integer"
    LONG = "long"
    DOUBLE = "double"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"
    VERSION = "version"
    BLOB = "blob"
    MESSAGE = "message"


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=repr)
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def canonical_json(value: Any) -> str:
    """Compact, key-sorted JSON text of a structured value."""
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_json_default,
    )


# -- converters ---------------------------------------------------------------


def _to_string(value: Any) -> DsValue:
    value = _plain(value)
    if isinstance(value, (str, UUID)):
        return DsValue.of_str(str(value))
    raise ColumnTypeError(ColumnType.STRING, value)


def _to_integer(value: Any) -> DsValue:
    value = _plain(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return DsValue.of_int(value)
    raise ColumnTypeError(ColumnType.INTEGER, value)


def _to_long(value: Any) -> DsValue:
    value = _plain(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return DsValue.of_int(value)
    raise ColumnTypeError(ColumnType.LONG, value)


def _to_double(value: Any) -> DsValue:
    value = _plain(value)
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return DsValue.of_float(float(value))
    raise ColumnTypeError(ColumnType.DOUBLE, value)


def _to_boolean(value: Any) -> DsValue:
    if isinstance(value, bool):
        return DsValue.of_bool(value)
    raise ColumnTypeError(ColumnType.BOOLEAN, value)


def _to_timestamp(value: Any) -> DsValue:
    if isinstance(value, datetime):
        return DsValue.of_timestamp(value)
    raise ColumnTypeError(ColumnType.TIMESTAMP, value)


def _to_version(value: Any) -> DsValue:
    if isinstance(value, int) and not isinstance(value, bool):
        return DsValue.of_int(value)
    number = getattr(value, "number", None)
    if isinstance(number, int) and not isinstance(number, bool):
        return DsValue.of_int(number)
    raise ColumnTypeError(ColumnType.VERSION, value)


def _to_blob(value: Any) -> DsValue:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return DsValue.of_bytes(bytes(value))
    raise ColumnTypeError(ColumnType.BLOB, value)


def _to_message(value: Any) -> DsValue:
    if isinstance(value, str):
        return DsValue.of_str(value)
    try:
        return DsValue.of_str(canonical_json(value))
    except TypeError as exc:
        raise ColumnTypeError(ColumnType.MESSAGE, value) from exc


class ColumnTypeRegistry:
    """
    Mapping table from :class:`ColumnType` to its converter.

    Usage::

        registry = ColumnTypeRegistry()
        registry.register(ColumnType.STRING, to_string)
    """

    def __init__(
        self, converters: Mapping[ColumnType, Converter] | None = None
    ) -> None:
        self._converters: dict[ColumnType, Converter] = dict(converters or {})

    def register(self, column_type: ColumnType, converter: Converter) -> None:
        self._converters[column_type] = converter

    def get(self, column_type: ColumnType) -> Converter | None:
        return self._converters.get(column_type)

    def has(self, column_type: ColumnType) -> bool:
        return column_type in self._converters

    @property
    def supported_types(self) -> set[ColumnType]:
        return set(self._converters)

    def copy(self) -> ColumnTypeRegistry:
        return ColumnTypeRegistry(self._converters)


def build_default_type_registry() -> ColumnTypeRegistry:
    """Create a registry populated with all built-in column types."""
    return ColumnTypeRegistry(
        {
            ColumnType.STRING: _to_string,
            ColumnType.INTEGER: _to_integer,
            ColumnType.LONG: _to_long,
            ColumnType.DOUBLE: _to_double,
            ColumnType.BOOLEAN: _to_boolean,
            ColumnType.TIMESTAMP: _to_timestamp,
            ColumnType.VERSION: _to_version,
            ColumnType.BLOB: _to_blob,
            ColumnType.MESSAGE: _to_message,
        }
    )


class ValueAdapter:
    """Converts domain values into backend values for declared column types."""

    def __init__(self, registry: ColumnTypeRegistry) -> None:
        if registry is None:
            raise ValueError(
                "registry parameter is required. "
                "Use build_default_type_registry() to create one."
            )
        self._registry = registry

    @property
    def registry(self) -> ColumnTypeRegistry:
        return self._registry

    def to_value(self, value: Any, column_type: ColumnType | None) -> DsValue:
        """Convert *value* for a column of *column_type*.

        ``None`` always maps to the null value. With no declared type the
        kind is inferred from the Python type.

        Raises:
            ColumnTypeError: If the value does not fit the column type.
        """
        if value is None:
            return DsValue.null()
        if isinstance(value, DsValue):
            return value
        if column_type is None:
            try:
                return DsValue.infer(_plain(value))
            except TypeError as exc:
                raise ColumnTypeError("<undeclared>", value) from exc
        converter = self._registry.get(column_type)
        if converter is None:
            raise ColumnTypeError(column_type, value)
        return converter(value)
