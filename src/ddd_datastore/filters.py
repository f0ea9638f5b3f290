"""
Translation of predicate trees and orderings into backend-native queries.

The native form is backend-agnostic: connectors compile
:class:`PropertyFilter` / :class:`CompositeFilter` trees into their own
query language (see :mod:`ddd_datastore.mongo.query_builder`).

Constant folding keeps the native tree free of degenerate composites:

* an empty AND node means "match all" and is dropped (``None``);
* an empty OR node means "match nothing" (:data:`NO_MATCH`);
* AND with a match-nothing part is match-nothing;
* OR drops match-nothing parts and is match-all if any part is.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .evaluator import compare
from .exceptions import UnknownOperatorError
from .operators import ComparisonOperator, LogicalOperator
from .query import AndPredicate, OrPredicate, OrderBy, QueryPredicate, check_depth
from .values import DsValue

if TYPE_CHECKING:
    from .column_types import ValueAdapter
    from .layout import RecordSpec
    from .records import Key, StoredRecord


@dataclass(frozen=True)
class PropertyFilter:
    column: str
    operator: ComparisonOperator
    value: DsValue


@dataclass(frozen=True)
class CompositeFilter:
    operator: LogicalOperator
    filters: tuple[NativeFilter, ...]


@dataclass(frozen=True)
class MatchNothing:
    """A filter no record satisfies."""


NO_MATCH = MatchNothing()

NativeFilter = PropertyFilter | CompositeFilter | MatchNothing


@dataclass(frozen=True)
class NativeQuery:
    """A filtered, sorted query the backend runs itself."""

    kind: str
    filter: NativeFilter | None = None
    sort: tuple[OrderBy, ...] = ()
    limit: int | None = None
    ancestor: Key | None = None

    @property
    def matches_nothing(self) -> bool:
        return isinstance(self.filter, MatchNothing)


def _fold_and(parts: list[NativeFilter | None]) -> NativeFilter | None:
    kept = [p for p in parts if p is not None]
    if any(isinstance(p, MatchNothing) for p in kept):
        return NO_MATCH
    if not kept:
        return None
    if len(kept) == 1:
        return kept[0]
    return CompositeFilter(LogicalOperator.AND, tuple(kept))


def _fold_or(parts: list[NativeFilter | None]) -> NativeFilter | None:
    if any(p is None for p in parts):
        return None
    kept = [p for p in parts if not isinstance(p, MatchNothing)]
    if not kept:
        return NO_MATCH
    if len(kept) == 1:
        return kept[0]
    return CompositeFilter(LogicalOperator.OR, tuple(kept))  # type: ignore[arg-type]


class FilterAdapter:
    """Builds native filters for one record layout."""

    def __init__(self, adapter: ValueAdapter, spec: RecordSpec) -> None:
        self._adapter = adapter
        self._spec = spec

    def to_native_filter(self, predicate: QueryPredicate) -> NativeFilter | None:
        """Translate *predicate*. ``None`` means "no filter".

        A trivially empty root (no parameters, no children) is "no filter"
        whatever its operator; nested empty nodes fold as described above.
        """
        if predicate.is_empty:
            return None
        check_depth(predicate)
        return self._translate(predicate)

    def to_native_query(
        self,
        predicate: QueryPredicate,
        order_by: tuple[OrderBy, ...] = (),
        limit: int | None = None,
    ) -> NativeQuery:
        return NativeQuery(
            kind=self._spec.kind,
            filter=self.to_native_filter(predicate),
            sort=tuple(order_by),
            limit=limit,
            ancestor=self._spec.parent,
        )

    def _translate(self, node: QueryPredicate) -> NativeFilter | None:
        parts: list[NativeFilter | None] = [
            PropertyFilter(
                param.column,
                param.operator,
                self._adapter.to_value(
                    param.value, self._spec.column_type(param.column)
                ),
            )
            for param in node.params
        ]
        parts.extend(self._translate(child) for child in node.children)
        if isinstance(node, AndPredicate):
            return _fold_and(parts)
        if isinstance(node, OrPredicate):
            return _fold_or(parts)
        raise UnknownOperatorError(
            type(node).__name__, [m.value for m in LogicalOperator]
        )


def evaluate_filter(native: NativeFilter | None, record: StoredRecord) -> bool:
    """Evaluate a native filter in memory, as a backend index would."""
    if native is None:
        return True
    if isinstance(native, MatchNothing):
        return False
    if isinstance(native, PropertyFilter):
        if not record.has(native.column):
            return False
        return compare(native.operator, record.get(native.column), native.value)
    if native.operator is LogicalOperator.AND:
        return all(evaluate_filter(f, record) for f in native.filters)
    if native.operator is LogicalOperator.OR:
        return any(evaluate_filter(f, record) for f in native.filters)
    raise UnknownOperatorError(native.operator, [m.value for m in LogicalOperator])
