"""Shared fixtures for datastore adapter tests."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from pydantic import BaseModel

from ddd_datastore import (
    Column,
    ColumnType,
    DsValue,
    InMemoryConnector,
    Key,
    PydanticRecordCodec,
    RecordSpec,
    StoredRecord,
    ValueAdapter,
    build_default_type_registry,
)

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


class Details(BaseModel):
    note: str = ""
    tags: list[str] = []


class Task(BaseModel):
    id: str
    title: str
    priority: int = 0
    owner: str | None = None
    done: bool = False
    created: datetime = EPOCH
    archived: bool = False
    deleted: bool = False
    details: Details = Details()


@pytest.fixture
def registry():
    return build_default_type_registry()


@pytest.fixture
def adapter(registry) -> ValueAdapter:
    return ValueAdapter(registry)


@pytest.fixture
def task_spec() -> RecordSpec:
    return RecordSpec(
        "Task",
        [
            Column("title", ColumnType.STRING),
            Column("priority", ColumnType.INTEGER),
            Column("owner", ColumnType.STRING),
            Column("done", ColumnType.BOOLEAN),
            Column("created", ColumnType.TIMESTAMP),
        ],
    )


@pytest.fixture
def codec(task_spec: RecordSpec, adapter: ValueAdapter) -> PydanticRecordCodec[Task]:
    return PydanticRecordCodec(Task, task_spec, adapter)


@pytest.fixture
def connector() -> InMemoryConnector:
    return InMemoryConnector()


@pytest.fixture
def make_task() -> Callable[..., Task]:
    """Factory for tasks numbered ``t00``, ``t01``, ..."""

    def _make(n: int, **overrides: Any) -> Task:
        fields: dict[str, Any] = {
            "id": f"t{n:02d}",
            "title": f"task {n}",
            "priority": n % 5,
            "created": EPOCH + timedelta(hours=n),
        }
        fields.update(overrides)
        return Task(**fields)

    return _make


@pytest.fixture
def seed(
    connector: InMemoryConnector, codec: PydanticRecordCodec[Task]
) -> Callable[..., list[Task]]:
    """Encode tasks into the in-memory connector and reset its counters."""

    def _seed(*tasks: Task) -> list[Task]:
        connector.put(codec.encode(task) for task in tasks)
        connector.reset_counters()
        return list(tasks)

    return _seed


@pytest.fixture
def raw_record() -> Callable[..., StoredRecord]:
    """Build a stored record; plain values are wrapped with DsValue.infer."""

    def _raw(name: str, kind: str = "Row", **properties: Any) -> StoredRecord:
        return StoredRecord(
            key=Key(kind, name),
            properties={
                column: value if isinstance(value, DsValue) else DsValue.infer(value)
                for column, value in properties.items()
            },
        )

    return _raw
