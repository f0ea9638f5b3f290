"""Pydantic record <-> stored record codec."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, Literal, TypeVar, get_args, get_origin

from pydantic import BaseModel, ValidationError

from .exceptions import CodecError
from .layout import ARCHIVED, DELETED
from .operators import ComparisonOperator
from .ports import RecordCodec
from .query import AndPredicate, ColumnParameter, QueryPredicate
from .records import StoredRecord

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from .column_types import ValueAdapter
    from .layout import RecordSpec
    from .query import FieldMask

TModel = TypeVar("TModel", bound=BaseModel)

MaskTree = dict[str, "MaskTree | bool"]


def mask_tree(paths: Iterable[str]) -> MaskTree:
    """Nest dotted field paths: ``{"a.b", "c"}`` -> ``{"a": {"b": True}, "c": True}``.

    A path that is a prefix of another keeps the whole sub-tree.
    """
    tree: MaskTree = {}
    for path in sorted(paths, key=lambda p: p.count(".")):
        node = tree
        parts = path.split(".")
        for part in parts[:-1]:
            child = node.get(part)
            if child is True:
                break
            if child is None:
                child = {}
                node[part] = child
            node = child  # type: ignore[assignment]
        else:
            node[parts[-1]] = True
    return tree


_EMPTY_SCALARS: dict[Any, Any] = {str: "", int: 0, float: 0.0, bool: False, bytes: b""}
_EMPTY_CONTAINERS: dict[Any, Callable[[], Any]] = {
    list: list,
    tuple: tuple,
    set: set,
    frozenset: frozenset,
    dict: dict,
}


def _empty_value(annotation: Any) -> Any:
    """The value a cleared field of type *annotation* holds."""
    origin = get_origin(annotation)
    container = _EMPTY_CONTAINERS.get(origin or annotation)
    if container is not None:
        return container()
    if origin is Literal:
        return get_args(annotation)[0]
    if origin is not None:
        args = get_args(annotation)
        if type(None) in args:
            return None
        return _empty_value(args[0]) if args else None
    if annotation in _EMPTY_SCALARS:
        return _EMPTY_SCALARS[annotation]
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return _masked_construct(annotation, {})
    return None


def _masked_construct(model_cls: type[BaseModel], data: dict[str, Any]) -> BaseModel:
    cleared = {
        name: _empty_value(field.annotation)
        for name, field in model_cls.model_fields.items()
        if name not in data and field.is_required()
    }
    return model_cls.model_construct(_fields_set=set(data), **data, **cleared)


def _masked(model: BaseModel, tree: MaskTree) -> BaseModel:
    data: dict[str, Any] = {}
    for name, sub in tree.items():
        if name not in type(model).model_fields:
            continue
        value = getattr(model, name)
        if sub is True or not isinstance(value, BaseModel):
            data[name] = value
        else:
            data[name] = _masked(value, sub)  # type: ignore[arg-type]
    return _masked_construct(type(model), data)


class PydanticRecordCodec(RecordCodec[TModel], Generic[TModel]):
    """
    Stores pydantic records as a JSON payload plus indexed columns.

    The payload is ``model_dump_json()``; columns come from the
    :class:`~ddd_datastore.layout.RecordSpec` and are converted with the
    injected :class:`~ddd_datastore.column_types.ValueAdapter`.

    Field masks keep the listed (dotted) paths and the id field. Every
    other field falls back to its default, or to the empty value of its
    type (``""``, ``0``, ``False``, ``None``, an empty container) when it
    has none.
    """

    def __init__(
        self,
        model_cls: type[TModel],
        spec: RecordSpec,
        adapter: ValueAdapter,
        *,
        id_field: str = "id",
    ) -> None:
        self._model_cls = model_cls
        self._spec = spec
        self._adapter = adapter
        self._id_field = id_field

    @property
    def model_cls(self) -> type[TModel]:
        return self._model_cls

    def encode(self, record: TModel) -> StoredRecord:
        key = self._spec.key_of(self._spec.id_of(record))
        properties = {
            column.name: self._adapter.to_value(
                column.value_of(record), column.column_type
            )
            for column in self._spec.columns
        }
        try:
            payload = record.model_dump_json().encode("utf-8")
        except (ValueError, TypeError) as e:
            raise CodecError(f"Cannot encode {key}: {e}") from e
        return StoredRecord(key=key, properties=properties, payload=payload)

    def decode(self, stored: StoredRecord) -> TModel:
        try:
            return self._model_cls.model_validate_json(stored.payload)
        except ValidationError as e:
            raise CodecError(f"Cannot decode {stored.key}: {e}") from e

    def apply_field_mask(self, record: TModel, mask: FieldMask) -> TModel:
        if not mask:
            return record
        tree = mask_tree(mask.paths)
        tree.setdefault(self._id_field, True)
        return _masked(record, tree)  # type: ignore[return-value]

    def default_active_filter(self) -> QueryPredicate | None:
        if not self._spec.has_lifecycle_columns:
            return None
        return AndPredicate(
            params=(
                ColumnParameter(ARCHIVED, ComparisonOperator.EQUAL, False),
                ColumnParameter(DELETED, ComparisonOperator.EQUAL, False),
            )
        )
