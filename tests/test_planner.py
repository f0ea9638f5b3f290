"""Tests for strategy selection and execution of record queries."""

from __future__ import annotations

import pytest

from ddd_datastore import (
    AndPredicate,
    ColumnParameter,
    ComparisonOperator,
    InMemoryConnector,
    LookupByIds,
    LookupByQuery,
    OrPredicate,
    PredicateBuilder,
    QueryPlanner,
    RecordQuery,
    StorageConfig,
)

GE = ComparisonOperator.GREATER_OR_EQUAL


@pytest.fixture
def planner(connector, codec, adapter, task_spec) -> QueryPlanner:
    config = StorageConfig(page_size=3)
    return QueryPlanner(connector, codec, adapter, task_spec, config)


def ids_of(records) -> list[str]:
    return [r.id for r in records]


# -- Strategy selection ------------------------------------------------------


class TestStrategy:
    def test_prepare_does_not_touch_the_backend(self, planner, connector) -> None:
        assert isinstance(planner.prepare(RecordQuery(ids=("t01",))), LookupByIds)
        assert isinstance(planner.prepare(RecordQuery()), LookupByQuery)
        assert connector.lookup_calls == 0
        assert connector.query_calls == 0

    @pytest.mark.parametrize(
        "query",
        [
            RecordQuery(ids=("t01",)),
            RecordQuery(ids=("t01", "t02", "zz")),
            RecordQuery(ids=("t03",), order_by=("-priority",), limit=1),
            RecordQuery(
                ids=("t01", "t02"),
                predicate=PredicateBuilder().where("priority", ">", 1).build(),
            ),
        ],
    )
    def test_ids_use_one_lookup_and_no_query(
        self, planner, connector, seed, make_task, query
    ) -> None:
        seed(*(make_task(n) for n in range(10)))
        list(planner.execute(query))
        assert connector.lookup_calls == 1
        assert connector.query_calls == 0

    @pytest.mark.parametrize(
        "query",
        [
            RecordQuery(),
            RecordQuery(order_by=("title",), limit=4),
            RecordQuery(predicate=PredicateBuilder().where("priority", "<", 2).build()),
        ],
    )
    def test_no_ids_use_queries_and_no_lookup(
        self, planner, connector, seed, make_task, query
    ) -> None:
        seed(*(make_task(n) for n in range(10)))
        list(planner.execute(query))
        assert connector.lookup_calls == 0
        assert connector.query_calls >= 1


# -- Lookup by ids -----------------------------------------------------------


class TestLookupByIds:
    def test_single_id_among_ten(self, planner, connector, seed, make_task) -> None:
        seed(*(make_task(n) for n in range(10)))
        result = list(planner.execute(RecordQuery(ids=("t04",))))
        assert ids_of(result) == ["t04"]
        assert result[0].title == "task 4"
        assert connector.lookup_calls == 1

    def test_duplicates_kept_and_missing_dropped(
        self, planner, seed, make_task
    ) -> None:
        seed(*(make_task(n) for n in range(3)))
        query = RecordQuery(ids=("t02", "nope", "t00", "t02"))
        assert ids_of(planner.execute(query)) == ["t02", "t00", "t02"]

    def test_predicate_order_and_limit_apply_in_memory(
        self, planner, seed, make_task
    ) -> None:
        seed(*(make_task(n) for n in range(10)))
        query = RecordQuery(
            ids=("t01", "t02", "t03", "t04", "t08"),
            predicate=AndPredicate(params=(ColumnParameter("priority", GE, 2),)),
            order_by=("-priority", "title"),
            limit=2,
        )
        # priorities: t02=2, t03=3, t04=4, t08=3
        assert ids_of(planner.execute(query)) == ["t04", "t03"]

    @pytest.mark.parametrize("limit", [None, 0, -1])
    def test_non_positive_limit_is_unlimited(
        self, planner, seed, make_task, limit
    ) -> None:
        seed(*(make_task(n) for n in range(5)))
        query = RecordQuery(ids=("t00", "t01", "t02"), limit=limit)
        assert len(list(planner.execute(query))) == 3

    def test_empty_or_child_matches_nothing(self, planner, seed, make_task) -> None:
        seed(make_task(1))
        query = RecordQuery(
            ids=("t01",),
            predicate=AndPredicate(
                params=(ColumnParameter("priority", GE, 0),), children=(OrPredicate(),)
            ),
        )
        assert list(planner.execute(query)) == []


# -- Native query ------------------------------------------------------------


class TestLookupByQuery:
    def test_filter_sort_and_limit(self, planner, seed, make_task) -> None:
        seed(*(make_task(n) for n in range(10)))
        query = RecordQuery(
            predicate=PredicateBuilder().where("priority", ">=", 3).build(),
            order_by=("-created",),
            limit=3,
        )
        assert ids_of(planner.execute(query)) == ["t09", "t08", "t04"]

    def test_pages_follow_configured_page_size(
        self, planner, connector, seed, make_task
    ) -> None:
        seed(*(make_task(n) for n in range(7)))
        assert len(list(planner.execute(RecordQuery(order_by=("title",))))) == 7
        assert connector.requested_page_sizes == [3, 3, 3]

    def test_stream_is_lazy(self, planner, connector, seed, make_task) -> None:
        seed(*(make_task(n) for n in range(7)))
        results = planner.execute(RecordQuery())
        assert connector.query_calls == 0
        next(results)
        assert connector.query_calls == 1

    def test_never_matching_predicate_skips_the_backend(
        self, planner, connector, seed, make_task
    ) -> None:
        seed(make_task(1))
        query = RecordQuery(
            predicate=AndPredicate(
                params=(ColumnParameter("priority", GE, 0),), children=(OrPredicate(),)
            )
        )
        assert list(planner.execute(query)) == []
        assert connector.query_calls == 0

    def test_prepared_query_exposes_its_stream(self, planner, seed, make_task) -> None:
        seed(*(make_task(n) for n in range(4)))
        prepared = planner.prepare(RecordQuery())
        assert isinstance(prepared, LookupByQuery)
        assert prepared.stream is None
        assert len(list(prepared.execute())) == 4
        assert prepared.stream is not None
        assert prepared.stream.round_trips == 2


# -- Default active filter ---------------------------------------------------


class TestActiveFilter:
    @pytest.fixture
    def lifecycle_tasks(self, seed, make_task):
        return seed(
            make_task(1),
            make_task(2, archived=True),
            make_task(3, deleted=True),
            make_task(4),
        )

    def test_empty_predicate_hides_inactive_records(
        self, planner, lifecycle_tasks
    ) -> None:
        assert ids_of(planner.execute(RecordQuery(order_by=("title",)))) == [
            "t01",
            "t04",
        ]
        by_ids = RecordQuery(ids=("t01", "t02", "t03"))
        assert ids_of(planner.execute(by_ids)) == ["t01"]

    def test_empty_or_root_is_treated_as_empty(self, planner, lifecycle_tasks) -> None:
        query = RecordQuery(predicate=OrPredicate(), order_by=("title",))
        assert ids_of(planner.execute(query)) == ["t01", "t04"]

    def test_explicit_predicate_is_not_augmented(
        self, planner, lifecycle_tasks
    ) -> None:
        query = RecordQuery(
            predicate=PredicateBuilder().where("archived", "=", True).build()
        )
        assert ids_of(planner.execute(query)) == ["t02"]

    def test_can_be_disabled(
        self, connector, codec, adapter, task_spec, lifecycle_tasks
    ) -> None:
        config = StorageConfig(apply_active_filter=False)
        planner = QueryPlanner(connector, codec, adapter, task_spec, config)
        assert len(list(planner.execute(RecordQuery()))) == 4


# -- Field masks -------------------------------------------------------------


class TestFieldMask:
    @pytest.mark.parametrize("with_ids", [True, False])
    def test_mask_keeps_listed_fields_and_id(
        self, planner, seed, make_task, with_ids
    ) -> None:
        seed(make_task(1, owner="ann", details={"note": "n", "tags": ["x"]}))
        query = RecordQuery(ids=("t01",) if with_ids else ()).with_mask(
            "owner", "details.note"
        )
        (task,) = planner.execute(query)
        assert task.id == "t01"
        assert task.owner == "ann"
        assert task.details.note == "n"
        assert task.details.tags == []
        assert "title" not in task.model_fields_set

    def test_empty_mask_returns_full_records(self, planner, seed, make_task) -> None:
        seed(make_task(1, owner="ann"))
        (task,) = planner.execute(RecordQuery())
        assert task.title == "task 1"
        assert task.owner == "ann"


def test_config_rejects_non_positive_page_size() -> None:
    with pytest.raises(ValueError, match="page_size"):
        StorageConfig(page_size=0)


def test_unused_connector_is_never_called(codec, adapter, task_spec) -> None:
    connector = InMemoryConnector()
    planner = QueryPlanner(connector, codec, adapter, task_spec)
    assert list(planner.execute(RecordQuery(ids=("missing",)))) == []
    assert connector.query_calls == 0
