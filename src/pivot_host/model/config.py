"""Translation of view configurations into engine arguments.

A view configuration is a plain mapping:

    ```python
    {
        "row_pivot": ["region"],
        "column_pivot": ["year"],
        "aggregate": [{"column": "sales", "op": "sum"}],
        "filter": [["sales", ">", 0]],
        "filter_op": "and",
        "sort": [["sales", "desc"]],
    }
    ```

Operator names are resolved through fixed tables; anything else is an
``UnknownOperatorError``.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pivot_host.core import config
from pivot_host.core.dates import DateParser
from pivot_host.core.enums import AggregateOp, FilterOp, LogicalType, SortOrder
from pivot_host.core.errors import InvalidAggregateArityError, UnknownOperatorError

logger = logging.getLogger(__name__)

# ============================================================================
# OPERATOR TABLES
# ============================================================================

FILTER_OPERATORS: Dict[str, FilterOp] = {op.value: op for op in FilterOp}
FILTER_OPERATORS.update({"&": FilterOp.AND, "|": FilterOp.OR})

AGGREGATE_OPERATORS: Dict[str, AggregateOp] = {op.value: op for op in AggregateOp}
AGGREGATE_OPERATORS.update(
    {
        "distinctcount": AggregateOp.DISTINCT_COUNT,
        "distinct": AggregateOp.DISTINCT_COUNT,
        "avg": AggregateOp.MEAN,
        "weighted_mean": AggregateOp.WEIGHTED_MEAN,
    }
)

SORT_ORDERS: Dict[str, SortOrder] = {order.value: order for order in SortOrder}


@dataclass(frozen=True)
class Aggregate:
    """One aggregate column of a pivoted view.

    Attributes:
        name: Output column name.
        op: Resolved operator.
        columns: Input columns (two for weighted mean).
        op_name: Operator name as configured, used to type the output.
    """

    name: str
    op: AggregateOp
    columns: Tuple[str, ...]
    op_name: str

    def as_spec(self) -> Tuple[str, AggregateOp, List[str]]:
        return (self.name, self.op, list(self.columns))


@dataclass
class ViewConfig:
    row_pivot: List[str] = field(default_factory=list)
    column_pivot: List[str] = field(default_factory=list)
    aggregate: Optional[List[Any]] = None
    filter: List[List[Any]] = field(default_factory=list)
    filter_op: Optional[str] = None
    sort: List[Any] = field(default_factory=list)
    row_pivot_depth: Optional[int] = None
    column_pivot_depth: Optional[int] = None
    viewport: Dict[str, int] = field(default_factory=dict)
    column_only: bool = False

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]] = None) -> "ViewConfig":
        """Apply defaulting, including the column-only row pivot."""
        raw = copy.deepcopy(dict(raw or {}))
        view_config = cls(
            row_pivot=list(raw.get("row_pivot") or []),
            column_pivot=list(raw.get("column_pivot") or []),
            aggregate=raw.get("aggregate"),
            filter=list(raw.get("filter") or []),
            filter_op=raw.get("filter_op"),
            sort=list(raw.get("sort") or []),
            row_pivot_depth=raw.get("row_pivot_depth"),
            column_pivot_depth=raw.get("column_pivot_depth"),
            viewport=dict(raw.get("viewport") or {}),
        )
        if not view_config.row_pivot and view_config.column_pivot:
            view_config.row_pivot = [config.ORDER_KEY]
            view_config.column_only = True
        return view_config

    @property
    def sides(self) -> int:
        if self.row_pivot:
            return 2 if self.column_pivot else 1
        return 0

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "row_pivot": list(self.row_pivot),
            "column_pivot": list(self.column_pivot),
            "aggregate": copy.deepcopy(self.aggregate),
            "filter": copy.deepcopy(self.filter),
            "sort": copy.deepcopy(self.sort),
        }
        for key in ("filter_op", "row_pivot_depth", "column_pivot_depth"):
            if getattr(self, key) is not None:
                out[key] = getattr(self, key)
        if self.viewport:
            out["viewport"] = dict(self.viewport)
        return out


# ============================================================================
# TRANSLATION
# ============================================================================


def translate_filter_op(name: Optional[str]) -> FilterOp:
    if name is None:
        return FilterOp.AND
    op = FILTER_OPERATORS.get(str(name).lower())
    if op not in (FilterOp.AND, FilterOp.OR):
        raise UnknownOperatorError("filter combination", name)
    return op


def translate_filters(
    filters: List[List[Any]], schema: Mapping[str, LogicalType]
) -> List[Tuple[str, FilterOp, Any]]:
    """Resolve ``[column, operator, value]`` triples.

    Values of date columns are parsed to epoch milliseconds.
    """
    out = []
    for entry in filters:
        column, op_name = entry[0], entry[1]
        value = entry[2] if len(entry) > 2 else None
        op = FILTER_OPERATORS.get(str(op_name).lower())
        if op is None:
            raise UnknownOperatorError("filter", op_name)
        if schema.get(column) is LogicalType.DATE and value is not None:
            value = DateParser().parse(value)
        out.append((column, op, value))
    return out


def translate_aggregates(
    view_config: ViewConfig, schema: Mapping[str, LogicalType]
) -> List[Aggregate]:
    """Resolve the aggregate list.

    Without an ``aggregate`` entry every schema column gets a distinct count
    (``any`` for column-only views). In column-only mode every operator is
    forced to ``any`` and the stored configuration is updated to match.
    """
    forced = "any" if view_config.column_only else None
    if view_config.aggregate is None:
        op_name = forced or AggregateOp.DISTINCT_COUNT.value
        return [
            Aggregate(name, AGGREGATE_OPERATORS[op_name], (name,), op_name)
            for name in schema
            if name != config.ORDER_KEY
        ]

    aggregates = []
    for pos, entry in enumerate(view_config.aggregate):
        if isinstance(entry, str):
            entry = {"column": entry}
            view_config.aggregate[pos] = entry
        columns = entry["column"]
        columns = tuple(columns) if isinstance(columns, (list, tuple)) else (columns,)

        op_name = entry.get("op")
        if op_name is None:
            ltype = schema.get(columns[0], LogicalType.STRING)
            op_name = config.TYPE_AGGREGATES[ltype].value
        if forced:
            op_name = forced
            entry["op"] = forced
        op = AGGREGATE_OPERATORS.get(str(op_name).lower())
        if op is None:
            raise UnknownOperatorError("aggregate", op_name)

        expected = 2 if op is AggregateOp.WEIGHTED_MEAN else 1
        if len(columns) != expected:
            raise InvalidAggregateArityError(op.value, columns, expected)

        name = entry.get("name") or config.COLUMN_SEPARATOR.join(columns)
        aggregates.append(Aggregate(name, op, columns, str(op_name).lower()))
    return aggregates


def translate_sort(sort: List[Any], aggregates: List[Aggregate]) -> List[Tuple[int, SortOrder]]:
    """Resolve sort entries to ``(aggregate position, order)``.

    A bare column name sorts ascending. Columns that are not aggregated are
    skipped with a warning.
    """
    names = [agg.name for agg in aggregates]
    out = []
    for entry in sort:
        if isinstance(entry, str):
            column, order_name = entry, SortOrder.ASC.value
        else:
            column = entry[0]
            order_name = entry[1] if len(entry) > 1 else SortOrder.ASC.value
        order = SORT_ORDERS.get(str(order_name).lower())
        if order is None:
            raise UnknownOperatorError("sort", order_name)
        if column not in names:
            logger.warning("Cannot sort by %r: not an aggregated column", column)
            continue
        out.append((names.index(column), order))
    return out


def replicate_sort(
    sort: List[Tuple[int, SortOrder]], aggregate_count: int, column_count: int
) -> List[Tuple[int, SortOrder]]:
    """Repeat each sort entry once per column group of a two-sided view.

    Entry ``(i, order)`` becomes ``(i + k * aggregate_count, order)`` for every
    group ``k`` of ``column_count / aggregate_count``.
    """
    if aggregate_count == 0:
        return []
    groups = column_count // aggregate_count
    return [
        (idx + group * aggregate_count, order)
        for group in range(groups)
        for idx, order in sort
    ]
