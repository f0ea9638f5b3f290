"""
In-memory evaluation of predicate trees against stored records.

Used on the lookup-by-keys path, where the backend hands back records by
key and cannot filter them itself.

Rules:

* AND matches when every own parameter and every child matches
  (an empty AND is vacuously true).
* OR matches when any own parameter or any child matches
  (an empty OR is false).
* A parameter on a column the record does not carry never matches.
* Values compare with :func:`~ddd_datastore.values.compare_values`, so a
  stored null equals an expected null and sorts below everything else.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from .exceptions import UnknownOperatorError
from .operators import ComparisonOperator, LogicalOperator
from .query import (
    AndPredicate,
    ColumnParameter,
    OrPredicate,
    QueryPredicate,
    check_depth,
)
from .values import DsValue, compare_values

if TYPE_CHECKING:
    from .column_types import ValueAdapter
    from .layout import RecordSpec
    from .records import StoredRecord

_OPERATOR_CHECKS: dict[ComparisonOperator, Callable[[int], bool]] = {
    ComparisonOperator.EQUAL: lambda cmp: cmp == 0,
    ComparisonOperator.GREATER: lambda cmp: cmp > 0,
    ComparisonOperator.GREATER_OR_EQUAL: lambda cmp: cmp >= 0,
    ComparisonOperator.LESS: lambda cmp: cmp < 0,
    ComparisonOperator.LESS_OR_EQUAL: lambda cmp: cmp <= 0,
}


def compare(operator: ComparisonOperator, actual: DsValue, expected: DsValue) -> bool:
    """Apply *operator* to ``actual <op> expected``."""
    check = _OPERATOR_CHECKS.get(operator)
    if check is None:
        raise UnknownOperatorError(operator, [m.value for m in ComparisonOperator])
    return check(compare_values(actual, expected))


class ColumnPredicate:
    """
    Callable ``StoredRecord -> bool`` for one predicate tree.

    Expected values are converted once per parameter with the column's
    declared type from *spec*; undeclared columns fall back to inference.
    """

    def __init__(
        self,
        predicate: QueryPredicate,
        adapter: ValueAdapter,
        spec: RecordSpec | None = None,
    ) -> None:
        check_depth(predicate)
        self._predicate = predicate
        self._adapter = adapter
        self._spec = spec
        self._expected: dict[int, DsValue] = {}

    @property
    def predicate(self) -> QueryPredicate:
        return self._predicate

    def __call__(self, record: StoredRecord | None) -> bool:
        if record is None:
            return False
        return self._test(self._predicate, record)

    def _test(self, node: QueryPredicate, record: StoredRecord) -> bool:
        if isinstance(node, AndPredicate):
            return all(self._check_param(p, record) for p in node.params) and all(
                self._test(child, record) for child in node.children
            )
        if isinstance(node, OrPredicate):
            return any(self._check_param(p, record) for p in node.params) or any(
                self._test(child, record) for child in node.children
            )
        raise UnknownOperatorError(
            type(node).__name__, [m.value for m in LogicalOperator]
        )

    def _check_param(self, param: ColumnParameter, record: StoredRecord) -> bool:
        if not record.has(param.column):
            return False
        expected = self._expected_of(param)
        return compare(param.operator, record.get(param.column), expected)

    def _expected_of(self, param: ColumnParameter) -> DsValue:
        cached = self._expected.get(id(param))
        if cached is None:
            column_type = (
                self._spec.column_type(param.column) if self._spec is not None else None
            )
            cached = self._adapter.to_value(param.value, column_type)
            self._expected[id(param)] = cached
        return cached


def matches(
    predicate: QueryPredicate,
    record: StoredRecord,
    adapter: ValueAdapter,
    spec: RecordSpec | None = None,
) -> bool:
    """One-shot evaluation of *predicate* against *record*."""
    return ColumnPredicate(predicate, adapter, spec)(record)
