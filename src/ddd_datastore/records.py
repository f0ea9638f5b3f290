"""Backend-side record shapes: keys, stored records and result pages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .values import DsValue

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping


@dataclass(frozen=True, slots=True)
class Key:
    """Structural key: record kind plus name, optionally under an ancestor."""

    kind: str
    name: str
    parent: Key | None = None

    def __post_init__(self) -> None:
        if not self.kind:
            raise ValueError("Key kind must not be empty")
        if not self.name:
            raise ValueError("Key name must not be empty")

    @property
    def path(self) -> tuple[tuple[str, str], ...]:
        """Ancestor-first ``(kind, name)`` pairs."""
        own = ((self.kind, self.name),)
        return own if self.parent is None else (*self.parent.path, *own)

    def to_path_string(self) -> str:
        return "/".join(f"{kind}:{name}" for kind, name in self.path)

    def __str__(self) -> str:
        return self.to_path_string()


@dataclass(frozen=True)
class StoredRecord:
    """A record as the backend holds it: key, indexed properties, payload."""

    key: Key
    properties: Mapping[str, DsValue] = field(default_factory=dict)
    payload: bytes = b""

    def has(self, column: str) -> bool:
        return column in self.properties

    def get(self, column: str) -> DsValue:
        """Return the column value; a missing column reads as null."""
        return self.properties.get(column, DsValue.null())


@dataclass(frozen=True)
class ResultPage:
    """One backend round trip's worth of records."""

    records: tuple[StoredRecord, ...] = ()
    cursor: str | None = None
    more_results: bool = False

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[StoredRecord]:
        return iter(self.records)
