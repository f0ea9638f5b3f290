"""Tests for the MongoDB connector, run against mongomock."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import mongomock
import pytest
from pymongo.errors import AutoReconnect, OperationFailure

from ddd_datastore import (
    ComparisonOperator,
    DatastoreConnectionError,
    DsRecordStorage,
    DsValue,
    Key,
    NativeQuery,
    OrderBy,
    PredicateBuilder,
    RecordQuery,
    StorageConfig,
    StorageIOError,
    StoredRecord,
)
from ddd_datastore.filters import NO_MATCH, PropertyFilter
from ddd_datastore.mongo import (
    MongoConnectionError,
    MongoConnectionManager,
    MongoConnector,
)


@pytest.fixture
def database():
    client = mongomock.MongoClient()
    yield client.get_database("test_db")
    client.close()


@pytest.fixture
def mongo(database) -> MongoConnector:
    return MongoConnector(database)


@pytest.fixture
def rows(raw_record):
    return [raw_record(f"r{n}", n=n, even=(n % 2 == 0)) for n in range(7)]


# -- Writes and lookups ------------------------------------------------------


def test_put_stores_one_collection_per_kind(mongo, database, raw_record) -> None:
    mongo.put([raw_record("a"), raw_record("b", kind="Other")])
    assert database.get_collection("Row").count_documents({}) == 1
    assert database.get_collection("Other").count_documents({}) == 1


def test_collection_prefix(database, raw_record) -> None:
    MongoConnector(database, collection_prefix="ds_").put([raw_record("a")])
    assert database.list_collection_names() == ["ds_Row"]


def test_put_replaces_existing(mongo, raw_record) -> None:
    mongo.put([raw_record("a", n=1)])
    mongo.put([raw_record("a", n=2)])
    (found,) = mongo.lookup([Key("Row", "a")])
    assert found is not None
    assert found.get("n") == DsValue.of_int(2)


def test_lookup_keeps_slot_order(mongo, raw_record) -> None:
    a, b = raw_record("a", n=1), raw_record("b", n=2)
    mongo.put([a, b])
    keys = [Key("Row", "b"), Key("Row", "zz"), Key("Row", "a"), Key("Row", "b")]
    assert mongo.lookup(keys) == [b, None, a, b]


def test_lookup_across_kinds(mongo, raw_record) -> None:
    a, o = raw_record("a"), raw_record("o", kind="Other")
    mongo.put([a, o])
    assert mongo.lookup([Key("Other", "o"), Key("Row", "a")]) == [o, a]


def test_delete(mongo, raw_record) -> None:
    mongo.put([raw_record("a"), raw_record("b")])
    mongo.delete([Key("Row", "a"), Key("Row", "missing")])
    assert mongo.lookup([Key("Row", "a"), Key("Row", "b")])[0] is None


def test_payload_round_trip(mongo) -> None:
    record = StoredRecord(Key("Row", "p"), {"n": DsValue.of_int(1)}, b"\x00payload")
    mongo.put([record])
    assert mongo.lookup([record.key]) == [record]


# -- Queries -----------------------------------------------------------------


class TestRunQuery:
    def test_filter_and_sort(self, mongo, rows) -> None:
        mongo.put(rows)
        native = NativeQuery(
            kind="Row",
            filter=PropertyFilter("n", ComparisonOperator.GREATER, DsValue.of_int(3)),
            sort=(OrderBy("n", "desc"),),
        )
        page = mongo.run_query(native, 10)
        assert [r.key.name for r in page] == ["r6", "r5", "r4"]
        assert not page.more_results

    def test_pages_until_exhausted(self, mongo, rows) -> None:
        mongo.put(rows)
        native = NativeQuery(kind="Row", sort=(OrderBy("n"),))
        names: list[str] = []
        cursor = None
        calls = 0
        while True:
            page = mongo.run_query(native, 3, cursor)
            calls += 1
            names.extend(r.key.name for r in page)
            if not page.more_results:
                break
            cursor = page.cursor
        assert names == [f"r{n}" for n in range(7)]
        assert calls == 3

    def test_limit_is_respected_across_pages(self, mongo, rows) -> None:
        mongo.put(rows)
        native = NativeQuery(kind="Row", sort=(OrderBy("n"),), limit=4)
        first = mongo.run_query(native, 3)
        assert first.more_results
        second = mongo.run_query(native, 3, first.cursor)
        assert [r.key.name for r in second] == ["r3"]
        assert not second.more_results

    def test_match_nothing_skips_the_database(self, mongo, rows) -> None:
        mongo.put(rows)
        page = mongo.run_query(NativeQuery(kind="Row", filter=NO_MATCH), 10)
        assert len(page) == 0
        assert not page.more_results

    def test_ancestor_scope(self, mongo) -> None:
        project = Key("Project", "p1")
        mongo.put(
            [
                StoredRecord(Key("Task", "t1", project)),
                StoredRecord(Key("Task", "t2", Key("Project", "p2"))),
            ]
        )
        page = mongo.run_query(NativeQuery(kind="Task", ancestor=project), 10)
        assert [r.key for r in page] == [Key("Task", "t1", project)]

    def test_missing_column_is_not_matched(self, mongo, raw_record) -> None:
        mongo.put([raw_record("with", n=1), raw_record("without")])
        native = NativeQuery(
            kind="Row",
            filter=PropertyFilter(
                "n", ComparisonOperator.GREATER_OR_EQUAL, DsValue.of_int(0)
            ),
        )
        assert [r.key.name for r in mongo.run_query(native, 10)] == ["with"]

    def test_page_size_must_be_positive(self, mongo) -> None:
        with pytest.raises(ValueError):
            mongo.run_query(NativeQuery(kind="Row"), 0)


def test_ensure_indexes(mongo, task_spec) -> None:
    names = mongo.ensure_indexes(task_spec)
    assert len(names) == len(task_spec.columns) + 1


# -- Errors ------------------------------------------------------------------


class TestErrors:
    def test_query_failures_become_storage_errors(
        self, mongo, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def boom(*args, **kwargs):
            raise OperationFailure("bad query")

        monkeypatch.setattr(mongomock.collection.Collection, "find", boom)
        with pytest.raises(StorageIOError, match="bad query"):
            mongo.run_query(NativeQuery(kind="Row"), 10)
        with pytest.raises(StorageIOError):
            mongo.lookup([Key("Row", "a")])

    def test_connection_failures_are_connection_errors(
        self, mongo, raw_record, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def boom(*args, **kwargs):
            raise AutoReconnect("primary stepped down")

        monkeypatch.setattr(mongomock.collection.Collection, "replace_one", boom)
        with pytest.raises(DatastoreConnectionError):
            mongo.put([raw_record("a")])


# -- End to end --------------------------------------------------------------


def test_storage_over_mongo(database, codec, task_spec, make_task) -> None:
    storage = DsRecordStorage(
        MongoConnector(database),
        codec.model_cls,
        task_spec,
        config=StorageConfig(page_size=2),
    )
    storage.write_all([make_task(n) for n in range(6)])
    storage.write(make_task(6, deleted=True))

    query = RecordQuery(
        predicate=PredicateBuilder().where("priority", ">=", 2).build(),
        order_by=("-priority", "title"),
        limit=3,
    )
    assert [t.id for t in storage.read_all(query)] == ["t04", "t03", "t02"]
    assert [t.id for t in storage.read_all(RecordQuery(order_by=("title",)))] == [
        f"t{n:02d}" for n in range(6)
    ]
    assert [t.id for t in storage.read_all(RecordQuery(ids=("t05", "t06")))] == [
        "t05"
    ]
    assert sorted(storage.index()) == [f"t{n:02d}" for n in range(7)]


@pytest.mark.parametrize("op", ["=", "<=", ">="])
def test_sub_millisecond_timestamps_match_on_both_paths(
    database, codec, task_spec, make_task, op
) -> None:
    storage = DsRecordStorage(MongoConnector(database), codec.model_cls, task_spec)
    created = datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)
    storage.write(make_task(1, created=created))
    storage.write(make_task(2, created=created + timedelta(microseconds=1)))
    predicate = PredicateBuilder().where("created", op, created).build()

    by_ids = RecordQuery(predicate=predicate, ids=("t01", "t02"))
    native = RecordQuery(predicate=predicate)
    expected = {"=": ["t01"], "<=": ["t01"], ">=": ["t01", "t02"]}[op]
    assert sorted(t.id for t in storage.read_all(by_ids)) == expected
    assert sorted(t.id for t in storage.read_all(native)) == expected


def test_timestamps_keep_microseconds(mongo, raw_record) -> None:
    at = datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)
    mongo.put([raw_record("a", at=at)])
    (found,) = mongo.lookup([Key("Row", "a")])
    assert found is not None
    assert found.get("at") == DsValue.of_timestamp(at)


# -- Connection manager ------------------------------------------------------


class TestConnectionManager:
    def test_client_raises_before_connect(self) -> None:
        manager = MongoConnectionManager(url="mongodb://localhost:27017")
        with pytest.raises(MongoConnectionError, match="Not connected"):
            _ = manager.client

    def test_close_is_idempotent(self) -> None:
        manager = MongoConnectionManager()
        manager.close()
        manager.close()

    def test_health_check_without_client(self) -> None:
        assert MongoConnectionManager().health_check() is False

    def test_connect_is_idempotent(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            "ddd_datastore.mongo.connection.MongoClient", mongomock.MongoClient
        )
        manager = MongoConnectionManager()
        client = manager.connect()
        assert manager.connect() is client
        assert manager.database("test_db").name == "test_db"
        assert manager.health_check() is True
        manager.close()
        with pytest.raises(MongoConnectionError):
            _ = manager.client

    def test_invalid_url(self) -> None:
        with pytest.raises(MongoConnectionError):
            MongoConnectionManager(url="mongodb://localhost:notaport").connect()
