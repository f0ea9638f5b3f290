"""DsValue <-> BSON field values and StoredRecord <-> document round-trip."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from bson import Binary, Int64

from ..records import Key, StoredRecord
from ..values import DsValue, ValueKind
from .exceptions import MongoStorageError

if TYPE_CHECKING:
    from collections.abc import Mapping

ID_FIELD = "_id"
KIND_FIELD = "_kind"
ANCESTORS_FIELD = "_ancestors"
PATH_FIELD = "_path"
PAYLOAD_FIELD = "_payload"
TIMESTAMPS_FIELD = "_timestamps"

RESERVED_FIELDS = frozenset(
    {
        ID_FIELD,
        KIND_FIELD,
        ANCESTORS_FIELD,
        PATH_FIELD,
        PAYLOAD_FIELD,
        TIMESTAMPS_FIELD,
    }
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)


def timestamp_to_micros(value: datetime) -> Int64:
    """Microseconds since the epoch; BSON datetimes only keep milliseconds."""
    return Int64((value - _EPOCH) // _MICROSECOND)


def timestamp_from_micros(micros: int) -> datetime:
    return _EPOCH + timedelta(microseconds=micros)


def value_to_bson(value: DsValue) -> Any:
    """Convert a backend value to a BSON-safe field value."""
    if value.kind is ValueKind.BLOB:
        return Binary(value.value)
    if value.kind is ValueKind.INTEGER:
        return Int64(value.value)
    if value.kind is ValueKind.TIMESTAMP:
        return timestamp_to_micros(value.value)
    return value.value


def value_from_bson(raw: Any, *, timestamp: bool = False) -> DsValue:
    """Convert a BSON field value back to a backend value.

    With *timestamp* set, an integer is read as microseconds since the
    epoch. Driver datetimes are naive UTC unless the client is tz-aware;
    both map to the same UTC timestamp.
    """
    if raw is None:
        return DsValue.null()
    if isinstance(raw, bool):
        return DsValue.of_bool(raw)
    if isinstance(raw, int):
        if timestamp:
            return DsValue.of_timestamp(timestamp_from_micros(int(raw)))
        return DsValue.of_int(int(raw))
    if isinstance(raw, float):
        return DsValue.of_float(raw)
    if isinstance(raw, datetime):
        return DsValue.of_timestamp(raw)
    if isinstance(raw, str):
        return DsValue.of_str(raw)
    if isinstance(raw, (bytes, bytearray)):
        return DsValue.of_bytes(bytes(raw))
    raise MongoStorageError(f"Unsupported BSON value type: {type(raw).__name__}")


def key_to_id(key: Key) -> str:
    return key.to_path_string()


def key_from_path(path: Any) -> Key:
    """Rebuild a key from its stored ancestor-first ``[kind, name]`` pairs."""
    key: Key | None = None
    try:
        for kind, name in path:
            key = Key(kind, name, key)
    except (TypeError, ValueError) as e:
        raise MongoStorageError(f"Malformed record path: {path!r}") from e
    if key is None:
        raise MongoStorageError(f"Malformed record path: {path!r}")
    return key


def ancestor_ids(key: Key) -> list[str]:
    ids: list[str] = []
    parent = key.parent
    while parent is not None:
        ids.append(key_to_id(parent))
        parent = parent.parent
    return ids


def record_to_doc(record: StoredRecord) -> dict[str, Any]:
    """Convert a stored record to a BSON-ready document.

    Properties become top-level fields so they can be indexed and sorted.
    """
    clash = RESERVED_FIELDS.intersection(record.properties)
    if clash:
        raise MongoStorageError(
            f"Column names clash with reserved fields: {sorted(clash)}"
        )
    doc: dict[str, Any] = {
        ID_FIELD: key_to_id(record.key),
        KIND_FIELD: record.key.kind,
        ANCESTORS_FIELD: ancestor_ids(record.key),
        PATH_FIELD: [[kind, name] for kind, name in record.key.path],
        PAYLOAD_FIELD: Binary(record.payload),
        TIMESTAMPS_FIELD: sorted(
            column
            for column, value in record.properties.items()
            if value.kind is ValueKind.TIMESTAMP
        ),
    }
    doc.update(
        (column, value_to_bson(value)) for column, value in record.properties.items()
    )
    return doc


def record_from_doc(doc: Mapping[str, Any]) -> StoredRecord:
    timestamps = set(doc.get(TIMESTAMPS_FIELD) or ())
    properties = {
        field: value_from_bson(raw, timestamp=field in timestamps)
        for field, raw in doc.items()
        if field not in RESERVED_FIELDS
    }
    return StoredRecord(
        key=key_from_path(doc.get(PATH_FIELD)),
        properties=properties,
        payload=bytes(doc.get(PAYLOAD_FIELD) or b""),
    )
