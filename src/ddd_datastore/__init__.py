"""Query execution engine of a datastore persistence adapter."""

from .codec import PydanticRecordCodec
from .column_types import (
    ColumnType,
    ColumnTypeRegistry,
    ValueAdapter,
    build_default_type_registry,
)
from .evaluator import ColumnPredicate, matches
from .exceptions import (
    CodecError,
    ColumnTypeError,
    DatastoreConnectionError,
    DatastoreError,
    QueryError,
    StorageIOError,
    UnknownOperatorError,
)
from .filters import FilterAdapter, NativeQuery
from .layout import ARCHIVED, DELETED, Column, RecordSpec
from .memory import InMemoryConnector
from .operators import ComparisonOperator, LogicalOperator, SortDirection
from .ordering import record_comparator, sort_records
from .pagination import PagedResultStream, StreamState
from .planner import LookupByIds, LookupByQuery, QueryPlanner, StorageConfig
from .ports import DatastoreConnector, RecordCodec
from .predicates import PredicateBuilder, PredicateFactory
from .query import (
    AndPredicate,
    ColumnParameter,
    FieldMask,
    OrderBy,
    OrPredicate,
    QueryPredicate,
    RecordQuery,
)
from .records import Key, ResultPage, StoredRecord
from .storage import DsRecordStorage
from .values import DsValue, ValueKind, compare_values

__all__ = [
    # Values
    "DsValue",
    "ValueKind",
    "compare_values",
    "ColumnType",
    "ColumnTypeRegistry",
    "ValueAdapter",
    "build_default_type_registry",
    # Queries
    "AndPredicate",
    "OrPredicate",
    "QueryPredicate",
    "ColumnParameter",
    "ComparisonOperator",
    "LogicalOperator",
    "SortDirection",
    "OrderBy",
    "FieldMask",
    "RecordQuery",
    "PredicateBuilder",
    "PredicateFactory",
    # Evaluation
    "ColumnPredicate",
    "matches",
    "record_comparator",
    "sort_records",
    "FilterAdapter",
    "NativeQuery",
    # Execution
    "QueryPlanner",
    "LookupByIds",
    "LookupByQuery",
    "StorageConfig",
    "PagedResultStream",
    "StreamState",
    # Records and layout
    "Key",
    "StoredRecord",
    "ResultPage",
    "Column",
    "RecordSpec",
    "ARCHIVED",
    "DELETED",
    # Ports and adapters
    "DatastoreConnector",
    "RecordCodec",
    "PydanticRecordCodec",
    "InMemoryConnector",
    "DsRecordStorage",
    # Exceptions
    "DatastoreError",
    "QueryError",
    "UnknownOperatorError",
    "ColumnTypeError",
    "CodecError",
    "StorageIOError",
    "DatastoreConnectionError",
]
