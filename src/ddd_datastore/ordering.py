"""
Multi-column ordering of stored records.

:func:`record_comparator` folds an ordering list into one three-way
comparison function: columns are compared in list order and the first
non-zero result wins, negated for descending columns.

A missing column reads as null. Nulls sort before every present value,
so records without the column come first ascending and last descending.
Records equal on every column compare equal; add an explicit tiebreaker
column when a deterministic order is required.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from functools import cmp_to_key, reduce
from typing import TYPE_CHECKING

from .values import compare_values

if TYPE_CHECKING:
    from .query import OrderBy
    from .records import StoredRecord

RecordComparator = Callable[["StoredRecord", "StoredRecord"], int]


def _equal(_left: StoredRecord, _right: StoredRecord) -> int:
    return 0


def column_comparator(order: OrderBy) -> RecordComparator:
    """Comparator over a single ordering column."""
    column = order.column
    sign = -1 if order.descending else 1

    def compare(left: StoredRecord, right: StoredRecord) -> int:
        return sign * compare_values(left.get(column), right.get(column))

    return compare


def then_comparing(
    first: RecordComparator, second: RecordComparator
) -> RecordComparator:
    """Chain two comparators: *second* only breaks ties of *first*."""

    def compare(left: StoredRecord, right: StoredRecord) -> int:
        return first(left, right) or second(left, right)

    return compare


def record_comparator(order_by: Sequence[OrderBy]) -> RecordComparator:
    """Build the total-order comparator for an ordering list."""
    return reduce(
        lambda acc, order: then_comparing(acc, column_comparator(order)),
        order_by,
        _equal,
    )


def sort_records(
    records: Iterable[StoredRecord], order_by: Sequence[OrderBy]
) -> list[StoredRecord]:
    """Stable sort of *records*; equal records keep their input order."""
    if not order_by:
        return list(records)
    return sorted(records, key=cmp_to_key(record_comparator(order_by)))
