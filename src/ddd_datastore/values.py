"""
Backend-native typed values.

``DsValue`` is a closed tagged union over the primitive types the backend
indexes: every comparison and every write goes through it, never through
raw domain values.

Cross-kind ordering follows the backend's own value-type ordering::

    NULL < BOOLEAN < INTEGER | DOUBLE < TIMESTAMP < STRING < BLOB

Integers and doubles share one rank and compare numerically; ``NaN``
sorts before every other number.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ValueKind(str, Enum):
    NULL = "null"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    DOUBLE = "double"
    TIMESTAMP = "timestamp"
    STRING = "string"
    BLOB = "blob"


_KIND_RANK: dict[ValueKind, int] = {
    ValueKind.NULL: 0,
    ValueKind.BOOLEAN: 1,
    ValueKind.INTEGER: 2,
    ValueKind.DOUBLE: 2,
    ValueKind.TIMESTAMP: 3,
    ValueKind.STRING: 4,
    ValueKind.BLOB: 5,
}

_NUMERIC_KINDS = frozenset({ValueKind.INTEGER, ValueKind.DOUBLE})


def _check_payload(kind: ValueKind, value: Any) -> bool:
    if kind is ValueKind.NULL:
        return value is None
    if kind is ValueKind.BOOLEAN:
        return isinstance(value, bool)
    if kind is ValueKind.INTEGER:
        return isinstance(value, int) and not isinstance(value, bool)
    if kind is ValueKind.DOUBLE:
        return isinstance(value, float)
    if kind is ValueKind.TIMESTAMP:
        return isinstance(value, datetime) and value.tzinfo is not None
    if kind is ValueKind.STRING:
        return isinstance(value, str)
    if kind is ValueKind.BLOB:
        return isinstance(value, bytes)
    return False


@dataclass(frozen=True, slots=True)
class DsValue:
    """A single backend value tagged with its kind."""

    kind: ValueKind
    value: Any = None

    def __post_init__(self) -> None:
        if not _check_payload(self.kind, self.value):
            raise TypeError(
                f"{type(self.value).__name__} is not a valid payload "
                f"for a {self.kind.value} value"
            )

    # -- constructors --------------------------------------------------------

    @classmethod
    def null(cls) -> DsValue:
        return cls(ValueKind.NULL)

    @classmethod
    def of_bool(cls, value: bool) -> DsValue:
        return cls(ValueKind.BOOLEAN, value)

    @classmethod
    def of_int(cls, value: int) -> DsValue:
        return cls(ValueKind.INTEGER, value)

    @classmethod
    def of_float(cls, value: float) -> DsValue:
        return cls(ValueKind.DOUBLE, float(value))

    @classmethod
    def of_timestamp(cls, value: datetime) -> DsValue:
        """Build a TIMESTAMP value. Naive datetimes are taken as UTC."""
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return cls(ValueKind.TIMESTAMP, value.astimezone(timezone.utc))

    @classmethod
    def of_str(cls, value: str) -> DsValue:
        return cls(ValueKind.STRING, value)

    @classmethod
    def of_bytes(cls, value: bytes) -> DsValue:
        return cls(ValueKind.BLOB, bytes(value))

    @classmethod
    def infer(cls, value: Any) -> DsValue:
        """Pick the kind from the Python type of *value*.

        Raises:
            TypeError: If the type has no backend counterpart.
        """
        if value is None:
            return cls.null()
        if isinstance(value, bool):
            return cls.of_bool(value)
        if isinstance(value, int):
            return cls.of_int(value)
        if isinstance(value, float):
            return cls.of_float(value)
        if isinstance(value, datetime):
            return cls.of_timestamp(value)
        if isinstance(value, str):
            return cls.of_str(value)
        if isinstance(value, (bytes, bytearray)):
            return cls.of_bytes(bytes(value))
        raise TypeError(f"No backend value kind for {type(value).__name__}")

    # -- accessors -----------------------------------------------------------

    @property
    def is_null(self) -> bool:
        return self.kind is ValueKind.NULL

    def to_python(self) -> Any:
        return self.value

    def __repr__(self) -> str:
        return f"DsValue({self.kind.value}, {self.value!r})"


def _sign(left: Any, right: Any) -> int:
    return (left > right) - (left < right)


def _compare_numbers(left: int | float, right: int | float) -> int:
    left_nan = isinstance(left, float) and math.isnan(left)
    right_nan = isinstance(right, float) and math.isnan(right)
    if left_nan or right_nan:
        return int(right_nan) - int(left_nan)
    return _sign(left, right)


def compare_values(left: DsValue, right: DsValue) -> int:
    """Three-way comparison of two backend values.

    Returns a negative number, zero, or a positive number. Total over all
    kinds: values of different ranks compare by rank.
    """
    rank_diff = _KIND_RANK[left.kind] - _KIND_RANK[right.kind]
    if rank_diff:
        return -1 if rank_diff < 0 else 1
    if left.kind is ValueKind.NULL:
        return 0
    if left.kind in _NUMERIC_KINDS:
        return _compare_numbers(left.value, right.value)
    return _sign(left.value, right.value)
