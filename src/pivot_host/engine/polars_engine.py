"""Reference engine over polars.

Implements ``EngineBinding`` in-process. A ``GraphNode`` holds the master
table keyed by order key: the index value for indexed tables, otherwise the
circular offset ``(start_index + i) % limit``. Filling a node upserts every
non-``MISSING`` cell of a batch (or deletes the batch keys), then notifies the
node's registered contexts and the pool's update delegate.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

import polars as pl

from pivot_host.core.config import ORDER_KEY
from pivot_host.core.enums import ContextType, FilterOp, LogicalType
from pivot_host.core.sentinels import MISSING

from .binding import AggregateSpec, FilterSpec, Handle, SortSpec
from .contexts import ContextOne, ContextTwo, ContextZero

logger = logging.getLogger(__name__)

POLARS_TYPES = {
    LogicalType.INTEGER: pl.Int64,
    LogicalType.FLOAT: pl.Float64,
    LogicalType.STRING: pl.String,
    LogicalType.BOOLEAN: pl.Boolean,
    LogicalType.DATE: pl.Int64,
}


def _key_order(key: Any) -> Tuple[bool, Any]:
    return (key is None, key)


class EngineSchema(Handle):
    def __init__(self, live, names: List[str], types: List[LogicalType]) -> None:
        super().__init__(live)
        self._names = names
        self._types = types

    def columns(self) -> List[str]:
        self._check()
        return list(self._names)

    def types(self) -> List[LogicalType]:
        self._check()
        return list(self._types)


class EngineTable(Handle):
    """A batch of rows submitted to ``fill``."""

    def __init__(
        self,
        live,
        row_count: int,
        names: Sequence[str],
        types: Sequence[LogicalType],
        columns: Sequence[Sequence[Any]],
        start_index: int,
        limit: int,
        index: str,
        is_binary: bool,
        is_delete: bool,
        order_keys: Optional[List[Any]] = None,
    ) -> None:
        super().__init__(live)
        self.row_count = row_count
        self.names = list(names)
        self.types = list(types)
        self.columns = [list(column) for column in columns]
        self.start_index = start_index
        self.limit = limit
        self.index = index
        self.is_binary = is_binary
        self.is_delete = is_delete
        self.order_keys = order_keys

    def size(self) -> int:
        return self.row_count

    def keys(self) -> List[Any]:
        if self.order_keys is not None:
            return list(self.order_keys)
        if self.index:
            return self.columns[self.names.index(self.index)]
        return [(self.start_index + i) % self.limit for i in range(self.row_count)]

    def set_column(self, name: str, ltype: LogicalType, values: List[Any]) -> None:
        self._check()
        if name in self.names:
            pos = self.names.index(name)
            self.types[pos] = ltype
            self.columns[pos] = values
        else:
            self.names.append(name)
            self.types.append(ltype)
            self.columns.append(values)


class GraphNode(Handle):
    """Master table of a pool, keyed by order key."""

    def __init__(self, live, gid: int, names: List[str], types: List[LogicalType], index: str) -> None:
        super().__init__(live)
        self._id = gid
        self._names = names
        self._types = types
        self._index = index
        self._rows: Dict[Any, List[Any]] = {}

    def get_id(self) -> int:
        return self._id

    @property
    def index(self) -> str:
        return self._index

    def size(self) -> int:
        return len(self._rows)

    def key_type(self) -> LogicalType:
        if self._index:
            return self._types[self._names.index(self._index)]
        return LogicalType.INTEGER

    def get_table_schema(self) -> EngineSchema:
        self._check()
        return EngineSchema(
            self._live, self._names + [ORDER_KEY], self._types + [self.key_type()]
        )

    def apply(self, batch: EngineTable) -> Set[Any]:
        """Upsert or delete a batch; return the order keys it touched."""
        self._check()
        batch._check()
        keys = batch.keys()
        changed: Set[Any] = set()
        if batch.is_delete:
            for key in keys:
                if self._rows.pop(key, None) is not None:
                    changed.add(key)
            return changed

        mapping = [
            (bpos, self._names.index(name))
            for bpos, name in enumerate(batch.names)
            if name in self._names
        ]
        for i, key in enumerate(keys):
            if key is MISSING:
                continue
            row = self._rows.get(key)
            if row is None:
                row = [None] * len(self._names)
                self._rows[key] = row
            for bpos, gpos in mapping:
                value = batch.columns[bpos][i]
                if value is not MISSING:
                    row[gpos] = value
            changed.add(key)
        return changed

    def frame(self) -> pl.DataFrame:
        self._check()
        keys = sorted(self._rows, key=_key_order)
        data = {ORDER_KEY: keys}
        for pos, name in enumerate(self._names):
            data[name] = [self._rows[key][pos] for key in keys]
        schema = {ORDER_KEY: POLARS_TYPES[self.key_type()]}
        schema.update({name: POLARS_TYPES[t] for name, t in zip(self._names, self._types)})
        return pl.DataFrame(data, schema=schema, strict=False)

    def snapshot(self) -> Tuple[List[Any], List[List[Any]]]:
        keys = sorted(self._rows, key=_key_order)
        columns = [[self._rows[key][pos] for key in keys] for pos in range(len(self._names))]
        return keys, columns

    def _on_release(self) -> None:
        self._rows = {}


class Pool(Handle):
    """Registry of graph nodes and their contexts."""

    def __init__(self, live) -> None:
        super().__init__(live)
        self._gnodes: Dict[int, GraphNode] = {}
        self._contexts: Dict[Tuple[int, str], Tuple[ContextType, Any]] = {}
        self._update_delegate: Optional[Callable[[], None]] = None

    def set_update_delegate(self, delegate: Optional[Callable[[], None]]) -> None:
        self._update_delegate = delegate

    def register_graph_node(self, gnode: GraphNode) -> int:
        self._check()
        self._gnodes[gnode.get_id()] = gnode
        return gnode.get_id()

    def unregister_graph_node(self, gid: int) -> None:
        self._gnodes.pop(gid, None)
        for key in [k for k in self._contexts if k[0] == gid]:
            del self._contexts[key]

    def register_context(self, gid: int, name: str, ctx_type: ContextType, context: Any) -> None:
        self._check()
        self._contexts[(gid, name)] = (ContextType(ctx_type), context)

    def unregister_context(self, gid: int, name: str) -> None:
        self._contexts.pop((gid, name), None)

    def contexts(self, gid: int) -> List[Any]:
        return [ctx for (g, _), (_, ctx) in self._contexts.items() if g == gid]

    def _process(self, gnode: GraphNode, changed: Set[Any]) -> None:
        for context in self.contexts(gnode.get_id()):
            context.notify(changed)
        if self._update_delegate is not None:
            self._update_delegate()

    def _on_release(self) -> None:
        self._gnodes = {}
        self._contexts = {}
        self._update_delegate = None


class PolarsEngine:
    """In-process ``EngineBinding`` implementation."""

    def __init__(self) -> None:
        self._live: Set[Handle] = set()
        self._next_gid = 0

    def live_handles(self) -> int:
        """Number of handles not yet released."""
        return len(self._live)

    def create_pool(self) -> Pool:
        return Pool(self._live)

    def create_table(
        self,
        row_count,
        names,
        types,
        columns,
        start_index,
        limit,
        index,
        is_binary,
        is_delete,
    ) -> EngineTable:
        return EngineTable(
            self._live, row_count, names, types, columns,
            start_index, limit, index, is_binary, is_delete,
        )

    def create_graph_node(self, table: EngineTable) -> GraphNode:
        table._check()
        gid = self._next_gid
        self._next_gid += 1
        return GraphNode(self._live, gid, list(table.names), list(table.types), table.index)

    def fill(self, pool: Pool, gnode: GraphNode, table: EngineTable) -> None:
        pool._check()
        changed = gnode.apply(table)
        logger.debug("Filled graph node %d: %d row(s) touched", gnode.get_id(), len(changed))
        pool._process(gnode, changed)

    def create_context_zero(
        self, gnode: GraphNode, filter_op: FilterOp, filters: FilterSpec, columns: List[str], sort: SortSpec
    ) -> ContextZero:
        return ContextZero(self._live, gnode, filter_op, filters, columns, sort)

    def create_context_one(
        self,
        gnode: GraphNode,
        row_pivots: List[str],
        filter_op: FilterOp,
        filters: FilterSpec,
        aggregates: AggregateSpec,
        sort: SortSpec,
    ) -> ContextOne:
        return ContextOne(self._live, gnode, row_pivots, filter_op, filters, aggregates, sort)

    def create_context_two(
        self,
        gnode: GraphNode,
        row_pivots: List[str],
        column_pivots: List[str],
        filter_op: FilterOp,
        filters: FilterSpec,
        aggregates: AggregateSpec,
        sort: SortSpec,
    ) -> ContextTwo:
        return ContextTwo(
            self._live, gnode, row_pivots, column_pivots, filter_op, filters, aggregates, sort
        )

    def get_data_slice(self, context, start_row: int, end_row: int, start_col: int, end_col: int) -> List[Any]:
        context._check()
        return context.get_data(start_row, end_row, start_col, end_col)

    def add_computed_column(
        self,
        table: EngineTable,
        name: str,
        ltype: LogicalType,
        func: Callable[..., Any],
        inputs: List[str],
    ) -> None:
        table._check()
        missing = [column for column in inputs if column not in table.names]
        if missing:
            raise KeyError(f"Computed column '{name}' depends on unknown column(s) {missing}")
        sources = [table.columns[table.names.index(column)] for column in inputs]
        values = []
        for args in zip(*sources) if sources else [()] * table.row_count:
            if any(arg is MISSING for arg in args):
                values.append(MISSING)
            else:
                values.append(func(*args))
        table.set_column(name, ltype, values)

    def clone_table_snapshot(self, gnode: GraphNode) -> EngineTable:
        gnode._check()
        keys, columns = gnode.snapshot()
        with gnode.get_table_schema() as schema:
            names, types = schema.columns()[:-1], schema.types()[:-1]
        return EngineTable(
            self._live, len(keys), names, types, columns,
            0, len(keys) or 1, gnode.index, False, False, order_keys=keys,
        )
