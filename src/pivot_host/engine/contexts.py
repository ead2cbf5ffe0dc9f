"""Pivot contexts of the reference engine.

A context recomputes its output from the graph node's master frame whenever
the node is filled. Three shapes exist:

- ``ContextZero``: filtered and sorted raw rows.
- ``ContextOne``: a row tree grouped by the row pivots. Row 0 is the grand
  total (depth 0); a node's children are visible when the node is expanded.
- ``ContextTwo``: the same row tree, with every aggregate repeated once per
  column path of the column pivots.

Slices are row-major. For pivoted contexts slice column 0 is the row header
and data columns start at 1.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional, Set, Tuple

import polars as pl

from pivot_host.core.config import ORDER_KEY
from pivot_host.core.enums import FilterOp, Header, SortOrder

from .aggregates import NEEDS_TREE, aggregate_expr, postprocess
from .binding import AggregateSpec, FilterSpec, Handle, SortSpec
from .filters import build_predicate

logger = logging.getLogger(__name__)

Path = Tuple[Any, ...]


class DeltaCell(NamedTuple):
    row: int
    column: int


def _sort_key(value: Any) -> Tuple[bool, Any]:
    return (value is None, value)


def _same(a: Any, b: Any) -> bool:
    """Cell equality where NaN equals NaN."""
    if isinstance(a, float) and isinstance(b, float) and math.isnan(a) and math.isnan(b):
        return True
    return a == b


class _Context(Handle):
    def __init__(
        self,
        live: Set[Handle],
        gnode: Any,
        filter_op: FilterOp,
        filters: FilterSpec,
        sort: SortSpec,
    ) -> None:
        super().__init__(live)
        self._gnode = gnode
        self._predicate = build_predicate(filters, filter_op)
        self._sort: SortSpec = list(sort)
        self._delta: List[DeltaCell] = []

    def _frame(self) -> pl.DataFrame:
        frame = self._gnode.frame()
        if self._predicate is not None:
            frame = frame.filter(self._predicate)
        return frame

    def sort(self, spec: SortSpec) -> None:
        self._check()
        self._sort = list(spec)
        self._rebuild()

    def get_step_delta(self, start: int, end: int) -> List[DeltaCell]:
        """Cells changed by the last fill, restricted to rows ``start..end``."""
        return [cell for cell in self._delta if start <= cell.row < end]

    def _rebuild(self) -> None:
        raise NotImplementedError

    def notify(self, changed: Set[Any]) -> None:
        raise NotImplementedError

    def _on_release(self) -> None:
        self._gnode = None


class ContextZero(_Context):
    """Flat context over raw rows."""

    def __init__(self, live, gnode, filter_op, filters, columns: List[str], sort) -> None:
        super().__init__(live, gnode, filter_op, filters, sort)
        self._columns = list(columns)
        self._keys: List[Any] = []
        self._rows: List[Tuple[Any, ...]] = []
        self._rebuild()

    def _rebuild(self) -> None:
        frame = self._frame()
        by, descending = [], []
        for idx, order in self._sort:
            if order is SortOrder.NONE or order.is_column_sort or idx >= len(self._columns):
                continue
            expr = pl.col(self._columns[idx])
            by.append(expr.abs() if order.is_absolute else expr)
            descending.append(order.is_descending)
        if by:
            frame = frame.sort(by, descending=descending, nulls_last=True, maintain_order=True)
        self._keys = frame.get_column(ORDER_KEY).to_list()
        self._rows = frame.select(self._columns).rows()

    def notify(self, changed: Set[Any]) -> None:
        self._rebuild()
        width = len(self._columns)
        self._delta = [
            DeltaCell(row, column)
            for row, key in enumerate(self._keys)
            if key in changed
            for column in range(width)
        ]

    def get_row_count(self) -> int:
        return len(self._rows)

    def unity_get_column_count(self) -> int:
        return len(self._columns)

    def get_column_names(self) -> List[str]:
        return list(self._columns)

    def unity_get_column_path(self, idx: int) -> List[Any]:
        return []

    def unity_get_row_path(self, idx: int) -> List[Any]:
        return []

    def unity_get_row_depth(self, idx: int) -> int:
        return 0

    def unity_get_row_expanded(self, idx: int) -> bool:
        return False

    def get_data(self, start_row: int, end_row: int, start_col: int, end_col: int) -> List[Any]:
        return [
            value
            for row in self._rows[start_row:end_row]
            for value in row[start_col:end_col]
        ]


@dataclass
class _Node:
    path: Path
    values: List[Any]
    children: List["_Node"] = field(default_factory=list)

    @property
    def depth(self) -> int:
        return len(self.path)


class ContextOne(_Context):
    """Row-pivoted context."""

    def __init__(
        self,
        live,
        gnode,
        row_pivots: List[str],
        filter_op,
        filters,
        aggregates: AggregateSpec,
        sort,
        column_pivots: Optional[List[str]] = None,
    ) -> None:
        super().__init__(live, gnode, filter_op, filters, sort)
        self._row_pivots = list(row_pivots)
        self._column_pivots = list(column_pivots or [])
        self._aggregates = list(aggregates)
        self._column_depth = 0
        self._auto_depth = -1
        self._expanded: Set[Path] = set()
        self._collapsed: Set[Path] = set()
        self._col_paths: List[Path] = [()]
        self._visible: List[_Node] = []
        self._root = _Node((), [])
        self._rebuild()

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    def _aggregate(self, frame: pl.DataFrame) -> Dict[Path, Dict[Path, List[Any]]]:
        aliases = [f"__agg_{i}" for i in range(len(self._aggregates))]
        exprs = [
            aggregate_expr(op, columns, alias)
            for (_, op, columns), alias in zip(self._aggregates, aliases)
        ]
        col_keys = self._column_pivots[: self._column_depth]
        cells: Dict[Path, Dict[Path, List[Any]]] = {(): {}}
        for depth in range(len(self._row_pivots) + 1):
            keys = self._row_pivots[:depth] + col_keys
            if keys:
                result = frame.group_by(keys).agg(exprs)
            else:
                result = frame.select(exprs)
            for row in result.select(keys + aliases).rows():
                row_path = tuple(row[:depth])
                col_path = tuple(row[depth : len(keys)])
                cells.setdefault(row_path, {})[col_path] = list(row[len(keys) :])
        return cells

    def _column_paths(self, root: Dict[Path, List[Any]]) -> List[Path]:
        if self._column_depth == 0:
            return [()]
        paths = sorted(root, key=lambda p: tuple(_sort_key(v) for v in p))
        col_sorts = [
            (idx % len(self._aggregates), order)
            for idx, order in self._sort
            if order.is_column_sort and self._aggregates
        ]
        if col_sorts:
            agg, order = col_sorts[0]
            present = [p for p in paths if root[p][agg] is not None]
            missing = [p for p in paths if root[p][agg] is None]
            present.sort(
                key=lambda p: abs(root[p][agg]) if order.is_absolute else root[p][agg],
                reverse=order.is_descending,
            )
            paths = present + missing
        return paths

    def _rebuild(self) -> None:
        cells = self._aggregate(self._frame())
        self._col_paths = self._column_paths(cells[()])
        width = len(self._aggregates)
        empty = [None] * width

        raw: Dict[Path, List[Any]] = {
            row_path: [v for cp in self._col_paths for v in per_col.get(cp, empty)]
            for row_path, per_col in cells.items()
        }
        ops = [op for _, op, _ in self._aggregates]
        leaf_depth = len(self._row_pivots)
        nodes: Dict[Path, _Node] = {}
        for row_path, values in raw.items():
            if any(op in NEEDS_TREE for op in ops):
                parent = raw.get(row_path[:-1]) if row_path else None
                values = [
                    postprocess(
                        ops[i % width],
                        value,
                        None if parent is None else parent[i],
                        raw[()][i],
                        len(row_path) == leaf_depth,
                    )
                    for i, value in enumerate(values)
                ]
            nodes[row_path] = _Node(row_path, values)

        for row_path in sorted(nodes, key=len):
            if row_path:
                nodes[row_path[:-1]].children.append(nodes[row_path])
        self._root = nodes[()]
        self._refresh_visible()

    # ------------------------------------------------------------------
    # Tree layout
    # ------------------------------------------------------------------

    def _ordered(self, children: List[_Node]) -> List[_Node]:
        nodes = sorted(children, key=lambda n: _sort_key(n.path[-1]))
        for idx, order in reversed(self._sort):
            if order is SortOrder.NONE or order.is_column_sort:
                continue
            present = [n for n in nodes if idx < len(n.values) and n.values[idx] is not None]
            missing = [n for n in nodes if not (idx < len(n.values) and n.values[idx] is not None)]
            present.sort(
                key=lambda n: abs(n.values[idx]) if order.is_absolute else n.values[idx],
                reverse=order.is_descending,
            )
            nodes = present + missing
        return nodes

    def _is_expanded(self, node: _Node) -> bool:
        if node.path in self._collapsed:
            return False
        return node.path in self._expanded or node.depth <= self._auto_depth

    def _refresh_visible(self) -> None:
        visible: List[_Node] = []
        stack = [self._root]
        while stack:
            node = stack.pop()
            visible.append(node)
            if node.children and self._is_expanded(node):
                stack.extend(reversed(self._ordered(node.children)))
        self._visible = visible

    def notify(self, changed: Set[Any]) -> None:
        previous = {node.path: node.values for node in self._visible}
        self._rebuild()
        width = self.unity_get_column_count()
        self._delta = []
        for row, node in enumerate(self._visible):
            before = previous.get(node.path)
            if before is not None and len(before) != width:
                before = None
            for column in range(width):
                if before is None or not _same(before[column], node.values[column]):
                    self._delta.append(DeltaCell(row, column + 1))

    # ------------------------------------------------------------------
    # Expansion
    # ------------------------------------------------------------------

    def open(self, *args: Any) -> int:
        header, idx = self._header_args(args)
        if header is Header.COLUMN:
            raise NotImplementedError("Column headers expand by depth only")
        node = self._visible[idx]
        before = len(self._visible)
        self._collapsed.discard(node.path)
        self._expanded.add(node.path)
        self._refresh_visible()
        return len(self._visible) - before

    def close(self, *args: Any) -> int:
        header, idx = self._header_args(args)
        if header is Header.COLUMN:
            raise NotImplementedError("Column headers collapse by depth only")
        node = self._visible[idx]
        before = len(self._visible)
        self._expanded.discard(node.path)
        self._collapsed.add(node.path)
        self._refresh_visible()
        return len(self._visible) - before

    def expand_to_depth(self, *args: Any) -> None:
        header, depth = self._header_args(args)
        if header is Header.COLUMN:
            self._column_depth = min(depth + 1, len(self._column_pivots))
            self._rebuild()
            return
        self._auto_depth = max(self._auto_depth, depth)
        self._collapsed = {p for p in self._collapsed if len(p) > depth}
        self._refresh_visible()

    def collapse_to_depth(self, *args: Any) -> None:
        header, depth = self._header_args(args)
        if header is Header.COLUMN:
            self._column_depth = min(self._column_depth, max(depth, 0))
            self._rebuild()
            return
        self._auto_depth = min(self._auto_depth, depth - 1)
        self._expanded = {p for p in self._expanded if len(p) < depth}
        self._refresh_visible()

    @staticmethod
    def _header_args(args: Tuple[Any, ...]) -> Tuple[Header, int]:
        if len(args) == 2:
            return Header(args[0]), int(args[1])
        return Header.ROW, int(args[0])

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_row_count(self) -> int:
        return len(self._visible)

    def unity_get_column_count(self) -> int:
        return len(self._col_paths) * len(self._aggregates)

    def get_column_names(self) -> List[str]:
        return [name for name, _, _ in self._aggregates]

    def unity_get_column_path(self, idx: int) -> List[Any]:
        if not self._aggregates:
            return []
        path = self._col_paths[(idx - 1) // len(self._aggregates)]
        return list(reversed(path))

    def unity_get_row_path(self, idx: int) -> List[Any]:
        return list(self._visible[idx].path)

    def unity_get_row_depth(self, idx: int) -> int:
        return self._visible[idx].depth

    def unity_get_row_expanded(self, idx: int) -> bool:
        node = self._visible[idx]
        return bool(node.children) and self._is_expanded(node)

    def get_data(self, start_row: int, end_row: int, start_col: int, end_col: int) -> List[Any]:
        out: List[Any] = []
        for node in self._visible[start_row:end_row]:
            header = node.path[-1] if node.path else None
            out.extend(([header] + node.values)[start_col:end_col])
        return out


class ContextTwo(ContextOne):
    """Row- and column-pivoted context."""

    def __init__(
        self,
        live,
        gnode,
        row_pivots: List[str],
        column_pivots: List[str],
        filter_op,
        filters,
        aggregates: AggregateSpec,
        sort,
    ) -> None:
        super().__init__(
            live,
            gnode,
            row_pivots,
            filter_op,
            filters,
            aggregates,
            sort,
            column_pivots=column_pivots,
        )

