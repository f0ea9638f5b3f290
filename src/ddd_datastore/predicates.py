"""
Construction of predicate trees: a fluent builder and a dict/JSON factory.

Example::

    predicate = (
        PredicateBuilder()
        .where("status", "=", "open")
        .or_group()
            .where("priority", ">=", 3)
            .where("owner", "=", "alice")
        .end_group()
        .build()
    )
    # → AND(status = "open", OR(priority >= 3, owner = "alice"))

The serialised form is the one produced by
:meth:`~ddd_datastore.query.QueryPredicate.to_dict`::

    {"op": "and",
     "params": [{"column": "status", "op": "=", "value": "open"}],
     "children": [{"op": "or", "params": [...], "children": []}]}
"""

from __future__ import annotations

import base64
import binascii
import json
from datetime import datetime
from typing import TYPE_CHECKING, Any

from .exceptions import QueryError, UnknownOperatorError
from .operators import ComparisonOperator, LogicalOperator
from .query import (
    MAX_PREDICATE_DEPTH,
    AndPredicate,
    ColumnParameter,
    OrPredicate,
    QueryPredicate,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

_VALID_COMPARISONS: frozenset[str] = frozenset(m.value for m in ComparisonOperator)
_VALID_LOGICAL: frozenset[str] = frozenset(m.value for m in LogicalOperator)

_NODE_TYPES: dict[LogicalOperator, type[QueryPredicate]] = {
    LogicalOperator.AND: AndPredicate,
    LogicalOperator.OR: OrPredicate,
}


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no"):
        return False
    raise ValueError(f"Not a boolean: {value!r}")


def _parse_blob(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    return base64.b64decode(str(value), validate=True)


_VALUE_CASTS: dict[str, Callable[[Any], Any]] = {
    "string": str,
    "integer": int,
    "double": float,
    "boolean": _parse_bool,
    "timestamp": _parse_timestamp,
    "blob": _parse_blob,
}


def cast_value(value: Any, value_type: str) -> Any:
    """Cast a JSON-friendly *value* to the Python type named by *value_type*.

    ``None`` stays ``None`` whatever the type.
    """
    if value is None:
        return None
    cast = _VALUE_CASTS.get(value_type)
    if cast is None:
        raise QueryError(
            f"Unknown value_type {value_type!r}; "
            f"expected one of: {', '.join(sorted(_VALUE_CASTS))}"
        )
    try:
        return cast(value)
    except (TypeError, ValueError, binascii.Error) as exc:
        raise QueryError(f"Cannot cast {value!r} to {value_type}") from exc


class _Group:
    __slots__ = ("operator", "params", "children")

    def __init__(self, operator: LogicalOperator) -> None:
        self.operator = operator
        self.params: list[ColumnParameter] = []
        self.children: list[QueryPredicate] = []

    def to_predicate(self) -> QueryPredicate:
        return _NODE_TYPES[self.operator](
            params=tuple(self.params), children=tuple(self.children)
        )


class PredicateBuilder:
    """
    Fluent builder for predicate trees.

    Parameters added at the same level are combined with AND. Use
    ``or_group()`` / ``and_group()`` for explicit grouping and
    ``end_group()`` to close the current group. A builder with no
    conditions builds the empty predicate.
    """

    def __init__(self) -> None:
        self._root = _Group(LogicalOperator.AND)
        self._stack: list[_Group] = []

    # -- leaf conditions -----------------------------------------------------

    def where(
        self,
        column: str,
        op: ComparisonOperator | str,
        value: Any = None,
    ) -> PredicateBuilder:
        """Add a ``column <op> value`` parameter to the current group."""
        param = ColumnParameter(column, op, value)  # type: ignore[arg-type]
        self._current().params.append(param)
        return self

    def add(self, predicate: QueryPredicate) -> PredicateBuilder:
        """Add an already-constructed predicate as a child of the current group."""
        self._current().children.append(predicate)
        return self

    # -- grouping ------------------------------------------------------------

    def and_group(self) -> PredicateBuilder:
        self._stack.append(_Group(LogicalOperator.AND))
        return self

    def or_group(self) -> PredicateBuilder:
        self._stack.append(_Group(LogicalOperator.OR))
        return self

    def end_group(self) -> PredicateBuilder:
        """Close the current group and add it to the parent."""
        if not self._stack:
            raise ValueError("No open group to close")
        group = self._stack.pop()
        self._current().children.append(group.to_predicate())
        return self

    # -- build ---------------------------------------------------------------

    def build(self) -> QueryPredicate:
        """
        Finalise and return the predicate tree.

        Raises:
            ValueError: If groups are still open.
        """
        if self._stack:
            raise ValueError(
                f"{len(self._stack)} group(s) still open; "
                f"call end_group() before build()"
            )
        return self._root.to_predicate()

    def reset(self) -> PredicateBuilder:
        self._root = _Group(LogicalOperator.AND)
        self._stack.clear()
        return self

    def _current(self) -> _Group:
        return self._stack[-1] if self._stack else self._root


class PredicateFactory:
    """
    Factory for predicate trees from dictionary / JSON representations.

    - ``from_dict(data)`` — parse a nested dict tree (fail-fast)
    - ``from_json(text)`` — parse a JSON string
    - ``validate(data)``  — collect every error without constructing

    A parameter may carry a ``value_type`` (see :func:`cast_value`) for
    values JSON cannot express, such as timestamps and blobs.
    """

    @staticmethod
    def from_dict(
        data: dict[str, Any],
        *,
        allowed_columns: Sequence[str] | None = None,
    ) -> QueryPredicate:
        """
        Create a predicate tree from a dictionary.

        Raises:
            UnknownOperatorError: For an unknown logical or comparison operator.
            QueryError: For any other structural problem, with its ``path``.
        """
        errors: list[tuple[str, str]] = []
        PredicateFactory._check_node(
            data,
            errors,
            path="<root>",
            depth=1,
            allowed_columns=allowed_columns,
            fail_fast=True,
        )
        return PredicateFactory._build(data)

    @staticmethod
    def from_json(
        text: str,
        *,
        allowed_columns: Sequence[str] | None = None,
    ) -> QueryPredicate:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise QueryError(f"Invalid JSON: {exc}", path="<root>") from exc
        if not isinstance(data, dict):
            raise QueryError("Top-level JSON value must be an object", path="<root>")
        return PredicateFactory.from_dict(data, allowed_columns=allowed_columns)

    @staticmethod
    def validate(
        data: Any,
        *,
        allowed_columns: Sequence[str] | None = None,
    ) -> list[str]:
        """Return every validation error message; empty when valid."""
        errors: list[tuple[str, str]] = []
        PredicateFactory._check_node(
            data,
            errors,
            path="<root>",
            depth=1,
            allowed_columns=allowed_columns,
            fail_fast=False,
        )
        return [f"{path}: {message}" for path, message in errors]

    # -- internals -----------------------------------------------------------

    @staticmethod
    def _build(data: dict[str, Any]) -> QueryPredicate:
        node_type = _NODE_TYPES[LogicalOperator(data["op"].lower())]
        params = tuple(
            ColumnParameter(
                param["column"],
                param["op"],  # type: ignore[arg-type]
                cast_value(param.get("value"), param["value_type"])
                if "value_type" in param
                else param.get("value"),
            )
            for param in data.get("params") or ()
        )
        children = tuple(
            PredicateFactory._build(child) for child in data.get("children") or ()
        )
        return node_type(params=params, children=children)

    @staticmethod
    def _report(
        errors: list[tuple[str, str]], path: str, message: str, fail_fast: bool
    ) -> None:
        if fail_fast:
            raise QueryError(message, path=path)
        errors.append((path, message))

    @staticmethod
    def _check_node(
        data: Any,
        errors: list[tuple[str, str]],
        *,
        path: str,
        depth: int,
        allowed_columns: Sequence[str] | None,
        fail_fast: bool,
    ) -> None:
        report = PredicateFactory._report
        if not isinstance(data, dict):
            message = f"expected dict, got {type(data).__name__}"
            report(errors, path, message, fail_fast)
            return
        if depth > MAX_PREDICATE_DEPTH:
            message = (
                f"predicate tree exceeds the maximum depth of {MAX_PREDICATE_DEPTH}"
            )
            report(errors, path, message, fail_fast)
            return

        op = data.get("op")
        if not op or not isinstance(op, str):
            report(errors, path, "missing or empty 'op' key", fail_fast)
        elif op.lower() not in _VALID_LOGICAL:
            if fail_fast:
                raise UnknownOperatorError(op, sorted(_VALID_LOGICAL), path=path)
            errors.append((path, f"unknown logical operator '{op}'"))

        params = data.get("params", [])
        if not isinstance(params, list):
            report(errors, path, "'params' must be a list", fail_fast)
            params = []
        for idx, param in enumerate(params):
            PredicateFactory._check_param(
                param, errors, f"{path}.params[{idx}]", allowed_columns, fail_fast
            )

        children = data.get("children", [])
        if not isinstance(children, list):
            report(errors, path, "'children' must be a list", fail_fast)
            return
        for idx, child in enumerate(children):
            PredicateFactory._check_node(
                child,
                errors,
                path=f"{path}.children[{idx}]",
                depth=depth + 1,
                allowed_columns=allowed_columns,
                fail_fast=fail_fast,
            )

    @staticmethod
    def _check_param(
        param: Any,
        errors: list[tuple[str, str]],
        path: str,
        allowed_columns: Sequence[str] | None,
        fail_fast: bool,
    ) -> None:
        report = PredicateFactory._report
        if not isinstance(param, dict):
            message = f"expected dict, got {type(param).__name__}"
            report(errors, path, message, fail_fast)
            return

        op = param.get("op")
        if not isinstance(op, str) or op not in _VALID_COMPARISONS:
            if fail_fast:
                raise UnknownOperatorError(op, sorted(_VALID_COMPARISONS), path=path)
            errors.append((path, f"unknown comparison operator {op!r}"))

        column = param.get("column")
        if not column or not isinstance(column, str):
            report(errors, path, "missing 'column'", fail_fast)
        elif allowed_columns is not None and column not in allowed_columns:
            report(errors, path, f"column '{column}' not allowed", fail_fast)

        value_type = param.get("value_type")
        if value_type is not None and value_type not in _VALUE_CASTS:
            report(errors, path, f"unknown value_type {value_type!r}", fail_fast)
