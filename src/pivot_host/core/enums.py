"""Core enumerations used across the package."""

from __future__ import annotations

from enum import Enum, IntEnum


class LogicalType(str, Enum):
    """Logical column types of a table schema.

    Values are the wire names used by ``Table.schema()`` and schema-only input.
    """

    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    BOOLEAN = "boolean"
    DATE = "date"


class FilterOp(str, Enum):
    """Filter predicates understood by pivot contexts.

    ``AND``/``OR`` combine the individual filter predicates of a view.
    """

    AND = "and"
    OR = "or"
    LT = "<"
    GT = ">"
    EQ = "=="
    NE = "!="
    LTEQ = "<="
    GTEQ = ">="
    CONTAINS = "contains"
    BEGINS_WITH = "begins with"
    ENDS_WITH = "ends with"
    IN = "in"
    IS_NAN = "is nan"
    IS_NOT_NAN = "is not nan"


class AggregateOp(str, Enum):
    """Aggregate operators of pivoted views."""

    DISTINCT_COUNT = "distinct count"
    SUM = "sum"
    MUL = "mul"
    MEAN = "mean"
    COUNT = "count"
    WEIGHTED_MEAN = "weighted mean"
    UNIQUE = "unique"
    ANY = "any"
    MEDIAN = "median"
    JOIN = "join"
    SCALED_DIV = "div"
    SCALED_ADD = "add"
    DOMINANT = "dominant"
    FIRST_BY_INDEX = "first by index"
    LAST_BY_INDEX = "last by index"
    AND = "and"
    OR = "or"
    LAST_VALUE = "last"
    HIGH_WATER_MARK = "high"
    LOW_WATER_MARK = "low"
    SUM_ABS = "sum abs"
    SUM_NOT_NULL = "sum not null"
    MEAN_BY_COUNT = "mean by count"
    IDENTITY = "identity"
    DISTINCT_LEAF = "distinct leaf"
    PCT_SUM_PARENT = "pct sum parent"
    PCT_SUM_GRAND_TOTAL = "pct sum grand total"


class SortOrder(str, Enum):
    """Sort orders. The declaration order is the positional code sent to contexts."""

    NONE = "none"
    ASC = "asc"
    DESC = "desc"
    COL_ASC = "col asc"
    COL_DESC = "col desc"
    ASC_ABS = "asc abs"
    DESC_ABS = "desc abs"
    COL_ASC_ABS = "col asc abs"
    COL_DESC_ABS = "col desc abs"

    @property
    def code(self) -> int:
        return list(SortOrder).index(self)

    @property
    def is_column_sort(self) -> bool:
        return self.value.startswith("col ")

    @property
    def is_descending(self) -> bool:
        return "desc" in self.value

    @property
    def is_absolute(self) -> bool:
        return self.value.endswith(" abs")


class ContextType(IntEnum):
    """Side-count tag a pivot context is registered with."""

    ZERO_SIDED = 0
    ONE_SIDED = 1
    TWO_SIDED = 2


class Header(str, Enum):
    """Header axis of a two-sided context."""

    ROW = "row"
    COLUMN = "column"


__all__ = [
    "AggregateOp",
    "ContextType",
    "FilterOp",
    "Header",
    "LogicalType",
    "SortOrder",
]
