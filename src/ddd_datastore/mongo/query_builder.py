"""Mongo filter and sort compilation from native queries."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pymongo import ASCENDING, DESCENDING

from ..filters import CompositeFilter, MatchNothing, PropertyFilter
from ..operators import ComparisonOperator, LogicalOperator
from .exceptions import MongoQueryError
from .serialization import ANCESTORS_FIELD, ID_FIELD, KIND_FIELD, value_to_bson

if TYPE_CHECKING:
    from ..filters import NativeFilter, NativeQuery

_MATCH_NOTHING: dict[str, Any] = {ID_FIELD: {"$in": []}}

_COMPARISON_OPS: dict[ComparisonOperator, str] = {
    ComparisonOperator.EQUAL: "$eq",
    ComparisonOperator.GREATER: "$gt",
    ComparisonOperator.GREATER_OR_EQUAL: "$gte",
    ComparisonOperator.LESS: "$lt",
    ComparisonOperator.LESS_OR_EQUAL: "$lte",
}


def _compile_null(field: str, operator: ComparisonOperator) -> dict[str, Any]:
    """Comparisons against null.

    Null sorts below every other value and a missing field never matches,
    so ``$eq: null`` (which also matches missing fields) cannot be used.
    """
    if operator in (ComparisonOperator.EQUAL, ComparisonOperator.LESS_OR_EQUAL):
        return {field: {"$type": "null"}}
    if operator is ComparisonOperator.GREATER_OR_EQUAL:
        return {field: {"$exists": True}}
    if operator is ComparisonOperator.GREATER:
        return {field: {"$exists": True, "$not": {"$type": "null"}}}
    return dict(_MATCH_NOTHING)


def _compile_leaf(leaf: PropertyFilter) -> dict[str, Any]:
    if leaf.value.is_null:
        return _compile_null(leaf.column, leaf.operator)
    op = _COMPARISON_OPS.get(leaf.operator)
    if op is None:
        raise MongoQueryError(f"Unsupported comparison operator: {leaf.operator!r}")
    return {leaf.column: {op: value_to_bson(leaf.value)}}


def _compile_node(node: NativeFilter) -> dict[str, Any]:
    if isinstance(node, MatchNothing):
        return dict(_MATCH_NOTHING)
    if isinstance(node, PropertyFilter):
        return _compile_leaf(node)
    if isinstance(node, CompositeFilter):
        if not node.filters:
            return {} if node.operator is LogicalOperator.AND else dict(_MATCH_NOTHING)
        compiled = [_compile_node(child) for child in node.filters]
        if node.operator is LogicalOperator.AND:
            return {"$and": compiled}
        if node.operator is LogicalOperator.OR:
            return {"$or": compiled}
    raise MongoQueryError(f"Cannot compile filter node: {node!r}")


class MongoFilterCompiler:
    """Compiles :class:`~ddd_datastore.filters.NativeQuery` to MongoDB
    filter documents and sort specifications."""

    def build_filter(self, query: NativeQuery) -> dict[str, Any]:
        """Build the full find() filter: kind, ancestor and property filter."""
        clauses: list[dict[str, Any]] = [{KIND_FIELD: query.kind}]
        if query.ancestor is not None:
            clauses.append({ANCESTORS_FIELD: query.ancestor.to_path_string()})
        if query.filter is not None:
            compiled = _compile_node(query.filter)
            if compiled:
                clauses.append(compiled)
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}

    def compile_filter(self, native: NativeFilter | None) -> dict[str, Any]:
        """Compile a property filter alone; ``None`` is the empty filter."""
        if native is None:
            return {}
        return _compile_node(native)

    def build_sort(self, query: NativeQuery) -> list[tuple[str, int]]:
        """Sort spec for *query*, with ``_id`` as the final tiebreaker so
        skip-based pages are stable."""
        sort = [
            (order.column, DESCENDING if order.descending else ASCENDING)
            for order in query.sort
        ]
        if not any(column == ID_FIELD for column, _ in sort):
            sort.append((ID_FIELD, ASCENDING))
        return sort
