from enum import Enum


class ComparisonOperator(str, Enum):
    """Column comparison operators supported by the backend."""

    EQUAL = "="
    GREATER = ">"
    GREATER_OR_EQUAL = ">="
    LESS = "<"
    LESS_OR_EQUAL = "<="


class LogicalOperator(str, Enum):
    """Composition operators of a predicate tree."""

    AND = "and"
    OR = "or"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"
