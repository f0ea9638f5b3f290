"""
Structured record queries.

A :class:`RecordQuery` says *which* records to read (identifiers and a
predicate tree) and *how* to return them (ordering, limit, field mask).
It is built per read and consumed once by the
:class:`~ddd_datastore.planner.QueryPlanner`.

Predicate trees are a closed sum of :class:`AndPredicate` and
:class:`OrPredicate`; each node carries its own column parameters plus
child nodes::

    predicate = AndPredicate(
        params=(ColumnParameter("status", ComparisonOperator.EQUAL, "open"),),
        children=(
            OrPredicate(
                params=(
                    ColumnParameter("priority", ComparisonOperator.GREATER, 3),
                    ColumnParameter("escalated", ComparisonOperator.EQUAL, True),
                ),
            ),
        ),
    )
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any

from .exceptions import QueryError, UnknownOperatorError
from .operators import ComparisonOperator, LogicalOperator, SortDirection

MAX_PREDICATE_DEPTH = 32


@dataclass(frozen=True)
class ColumnParameter:
    """A single ``column <operator> value`` comparison."""

    column: str
    operator: ComparisonOperator
    value: Any

    def __post_init__(self) -> None:
        if not self.column:
            raise QueryError("Column parameter requires a column name")
        if not isinstance(self.operator, ComparisonOperator):
            try:
                operator = ComparisonOperator(self.operator)
            except ValueError as exc:
                raise UnknownOperatorError(
                    self.operator, [m.value for m in ComparisonOperator]
                ) from exc
            object.__setattr__(self, "operator", operator)

    def to_dict(self) -> dict[str, Any]:
        return {
            "column": self.column,
            "op": self.operator.value,
            "value": self.value,
        }


@dataclass(frozen=True)
class QueryPredicate(ABC):
    """Base of the predicate tree. Only the two subclasses are valid nodes."""

    params: tuple[ColumnParameter, ...] = ()
    children: tuple[QueryPredicate, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "params", tuple(self.params))
        object.__setattr__(self, "children", tuple(self.children))

    @property
    @abstractmethod
    def operator(self) -> LogicalOperator: ...

    @property
    def is_empty(self) -> bool:
        """True when the node has neither parameters nor children."""
        return not self.params and not self.children

    def depth(self) -> int:
        """Number of levels in the tree rooted here. Iterative."""
        deepest = 0
        stack: list[tuple[QueryPredicate, int]] = [(self, 1)]
        while stack:
            node, level = stack.pop()
            if level > MAX_PREDICATE_DEPTH:
                return level
            deepest = max(deepest, level)
            stack.extend((child, level + 1) for child in node.children)
        return deepest

    def to_dict(self) -> dict[str, Any]:
        return {
            "op": self.operator.value,
            "params": [p.to_dict() for p in self.params],
            "children": [c.to_dict() for c in self.children],
        }


@dataclass(frozen=True)
class AndPredicate(QueryPredicate):
    """Matches when every parameter and every child matches."""

    @property
    def operator(self) -> LogicalOperator:
        return LogicalOperator.AND


@dataclass(frozen=True)
class OrPredicate(QueryPredicate):
    """Matches when at least one parameter or child matches."""

    @property
    def operator(self) -> LogicalOperator:
        return LogicalOperator.OR


def check_depth(predicate: QueryPredicate) -> None:
    """Raise :class:`QueryError` if the tree is deeper than allowed."""
    depth = predicate.depth()
    if depth > MAX_PREDICATE_DEPTH:
        raise QueryError(
            f"Predicate tree exceeds the maximum depth of {MAX_PREDICATE_DEPTH}"
        )


@dataclass(frozen=True)
class OrderBy:
    column: str
    direction: SortDirection = SortDirection.ASC

    def __post_init__(self) -> None:
        if not isinstance(self.direction, SortDirection):
            object.__setattr__(
                self, "direction", SortDirection(str(self.direction).lower())
            )

    @classmethod
    def parse(cls, spec: str) -> OrderBy:
        """Parse ``"column"`` or ``"-column"`` (descending)."""
        if spec.startswith("-"):
            return cls(spec[1:], SortDirection.DESC)
        return cls(spec, SortDirection.ASC)

    @property
    def descending(self) -> bool:
        return self.direction is SortDirection.DESC


@dataclass(frozen=True)
class FieldMask:
    """Field paths to retain in returned records. Empty keeps everything."""

    paths: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "paths", frozenset(self.paths))

    @classmethod
    def of(cls, *paths: str) -> FieldMask:
        return cls(frozenset(paths))

    @property
    def is_empty(self) -> bool:
        return not self.paths

    def __bool__(self) -> bool:
        return bool(self.paths)


@dataclass(frozen=True)
class RecordQuery:
    """
    Immutable structured query over one record kind.

    Attributes:
        ids: Identifiers to restrict to; empty means unrestricted.
            Duplicates are kept.
        predicate: Root of the predicate tree.
        order_by: Ordering, first entry is the primary sort column.
        limit: Maximum number of records; ``None`` or ``<= 0`` = unlimited.
        mask: Field mask applied to every returned record.
    """

    ids: tuple[Any, ...] = ()
    predicate: QueryPredicate = field(default_factory=AndPredicate)
    order_by: tuple[OrderBy, ...] = ()
    limit: int | None = None
    mask: FieldMask = field(default_factory=FieldMask)

    def __post_init__(self) -> None:
        object.__setattr__(self, "ids", tuple(self.ids))
        object.__setattr__(
            self,
            "order_by",
            tuple(OrderBy.parse(o) if isinstance(o, str) else o for o in self.order_by),
        )

    @property
    def effective_limit(self) -> int | None:
        """The limit, with non-positive values normalised to ``None``."""
        if self.limit is None or self.limit <= 0:
            return None
        return self.limit

    @property
    def has_ids(self) -> bool:
        return bool(self.ids)

    def with_ids(self, *ids: Any) -> RecordQuery:
        return replace(self, ids=tuple(ids))

    def with_predicate(self, predicate: QueryPredicate) -> RecordQuery:
        return replace(self, predicate=predicate)

    def with_ordering(self, *order_by: OrderBy | str) -> RecordQuery:
        return replace(self, order_by=tuple(order_by))  # type: ignore[arg-type]

    def with_limit(self, limit: int | None) -> RecordQuery:
        return replace(self, limit=limit)

    def with_mask(self, *paths: str) -> RecordQuery:
        return replace(self, mask=FieldMask.of(*paths))

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-compatible dictionary (for logs)."""
        result: dict[str, Any] = {}
        if self.ids:
            result["ids"] = [str(i) for i in self.ids]
        if not self.predicate.is_empty:
            result["predicate"] = self.predicate.to_dict()
        if self.order_by:
            result["order_by"] = [
                f"-{o.column}" if o.descending else o.column for o in self.order_by
            ]
        if self.effective_limit is not None:
            result["limit"] = self.effective_limit
        if self.mask:
            result["mask"] = sorted(self.mask.paths)
        return result
