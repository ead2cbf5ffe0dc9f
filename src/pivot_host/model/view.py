"""View: one pivot/filter/sort configuration over a Table.

The configuration is fixed at creation. Reads (``to_json``, ``to_columns``,
``to_csv``) pull a slice from the view's pivot context and reshape it; the
only mutable state is row expansion.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import ExitStack
from typing import Any, Callable, Dict, List, Mapping, Optional

import numpy as np

from pivot_host.core import config
from pivot_host.core.enums import ContextType, Header, LogicalType
from pivot_host.core.errors import ViewDeletedError
from pivot_host.model.config import (
    Aggregate,
    ViewConfig,
    replicate_sort,
    translate_aggregates,
    translate_filter_op,
    translate_filters,
    translate_sort,
)
from pivot_host.model.formatters import FORMATTERS

logger = logging.getLogger(__name__)

READ_OPTIONS = ("start_row", "end_row", "start_col", "end_col")


class View:
    def __init__(
        self,
        table: Any,
        context: Any,
        view_config: ViewConfig,
        aggregates: List[Aggregate],
        name: str,
    ) -> None:
        self.name = name
        self.table = table
        self.config = view_config
        self.aggregates = aggregates
        self._context = context
        self._engine = table._engine
        self._delete_callback: Optional[Callable[[], Any]] = None
        self._deleted = False

    @classmethod
    def create(cls, table: Any, raw_config: Optional[Mapping[str, Any]] = None) -> "View":
        """Translate ``raw_config`` and build the matching pivot context.

        The context is released if any step after its creation fails, so a
        failed creation leaves nothing registered.
        """
        view_config = ViewConfig.from_dict(raw_config)
        schema = table._schema(include_order_key=True)
        filter_op = translate_filter_op(view_config.filter_op)
        filters = translate_filters(view_config.filter, schema)
        aggregates = translate_aggregates(view_config, schema)
        sort = translate_sort(view_config.sort, aggregates)
        specs = [agg.as_spec() for agg in aggregates]

        engine = table._engine
        gnode = table._gnode
        sides = view_config.sides
        name = uuid.uuid4().hex

        with ExitStack() as cleanup:
            if sides == 0:
                context = engine.create_context_zero(
                    gnode, filter_op, filters, [agg.name for agg in aggregates], sort
                )
                cleanup.callback(context.release)
            elif sides == 1:
                context = engine.create_context_one(
                    gnode, view_config.row_pivot, filter_op, filters, specs, sort
                )
                cleanup.callback(context.release)
                context.expand_to_depth(
                    cls._initial_depth(view_config.row_pivot_depth, view_config.row_pivot)
                )
            else:
                context = engine.create_context_two(
                    gnode,
                    view_config.row_pivot,
                    view_config.column_pivot,
                    filter_op,
                    filters,
                    specs,
                    [],
                )
                cleanup.callback(context.release)
                context.expand_to_depth(
                    Header.ROW,
                    cls._initial_depth(view_config.row_pivot_depth, view_config.row_pivot),
                )
                context.expand_to_depth(
                    Header.COLUMN,
                    cls._initial_depth(view_config.column_pivot_depth, view_config.column_pivot),
                )
                replicated = replicate_sort(
                    sort, len(aggregates), context.unity_get_column_count()
                )
                if replicated:
                    context.sort(replicated)

            table._pool.register_context(gnode.get_id(), name, ContextType(sides), context)
            cleanup.pop_all()

        view = cls(table, context, view_config, aggregates, name)
        table.views.append(view)
        return view

    @staticmethod
    def _initial_depth(depth: Optional[int], pivots: List[str]) -> int:
        return len(pivots) if depth is None else depth - 1

    def _check(self) -> None:
        if self._deleted:
            raise ViewDeletedError(self.name)

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def sides(self) -> int:
        return self.config.sides

    def get_config(self) -> Dict[str, Any]:
        return self.config.to_dict()

    def num_rows(self) -> int:
        self._check()
        return self._context.get_row_count()

    def num_columns(self) -> int:
        self._check()
        return self._context.unity_get_column_count()

    def get_row_expanded(self, idx: int) -> bool:
        self._check()
        return self._context.unity_get_row_expanded(idx)

    def _column_names(self) -> List[str]:
        """Output column names, composite for pivoted views."""
        names = []
        agg_names = self._context.get_column_names()
        count = self._context.unity_get_column_count()
        if self.sides() == 0:
            return [name for name in agg_names if name != config.ORDER_KEY]
        for key in range(count):
            agg_name = agg_names[key % len(agg_names)]
            path = self._context.unity_get_column_path(key + 1)
            segments = [str(segment) for segment in reversed(path)]
            names.append(config.COLUMN_SEPARATOR.join(segments + [agg_name]))
        return names

    def schema(self) -> Dict[str, str]:
        """Type of every output column, keyed by the last name segment.

        Pivoted views report count-like aggregates as integer and mean-like
        ones as float.
        """
        self._check()
        table_schema = self.table._schema()
        if self.sides() == 0:
            return {
                name: table_schema.get(name, LogicalType.STRING).value
                for name in self._column_names()
            }

        out: Dict[str, str] = {}
        for agg in self.aggregates:
            ltype = table_schema.get(agg.columns[0], LogicalType.STRING)
            if agg.op_name in config.INTEGER_AGGREGATES:
                ltype = LogicalType.INTEGER
            elif agg.op_name in config.FLOAT_AGGREGATES or agg.op.value in config.FLOAT_AGGREGATES:
                ltype = LogicalType.FLOAT
            out[agg.name] = ltype.value
        return out

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _format(self, kind: str, options: Optional[Mapping[str, Any]], kwargs: Dict[str, Any]):
        self._check()
        options = {**dict(options or {}), **kwargs}
        formatter = FORMATTERS[kind]
        viewport = self.config.viewport
        sides = self.sides()
        column_only = self.config.column_only

        skip = self._header_rows()
        num_rows = self._context.get_row_count() - skip
        extent = self._context.unity_get_column_count() + (0 if sides == 0 else 1)

        start_row = options.get("start_row")
        if start_row is None:
            start_row = viewport.get("top", 0)
        end_row = options.get("end_row")
        if end_row is None:
            end_row = start_row + viewport["height"] if "height" in viewport else num_rows
        start_col = options.get("start_col")
        if start_col is None:
            start_col = viewport.get("left", 0)
        end_col = options.get("end_col")
        if end_col is None:
            end_col = start_col + viewport["width"] if "width" in viewport else extent
        end_row = min(end_row, num_rows)
        end_col = min(end_col, extent)

        col_names = [config.ROW_PATH] + self._column_names()
        offset = 1 if sides == 0 else 0
        columns = list(range(start_col, max(end_col, start_col)))
        header = [
            col_names[col + offset]
            for col in columns
            if not (col + offset == 0 and column_only)
        ]
        data = formatter.init_data(header)
        if end_row <= start_row or not columns:
            return formatter.format(data, header, options.get("config"))

        flat = self._engine.get_data_slice(
            self._context, start_row + skip, end_row + skip, start_col, end_col
        )
        width = len(columns)
        for ridx in range(len(flat) // width):
            row = formatter.init_row()
            for cidx, col in enumerate(columns):
                if col + offset == 0:
                    if not column_only:
                        path = self._context.unity_get_row_path(start_row + skip + ridx)
                        formatter.set_value(data, row, config.ROW_PATH, path)
                    continue
                formatter.set_value(data, row, col_names[col + offset], flat[ridx * width + cidx])
            formatter.add_row(data, row)

        return formatter.format(data, header, options.get("config"))

    def _header_rows(self) -> int:
        """Leading grand-total rows hidden from column-only output."""
        if not self.config.column_only:
            return 0
        depth = len(self.config.row_pivot)
        total = self._context.get_row_count()
        count = 0
        while count < total and self._context.unity_get_row_depth(count) < depth:
            count += 1
        return count

    def to_json(self, options: Optional[Mapping[str, Any]] = None, **kwargs: Any):
        """Rows as ``{column: value}`` records."""
        return self._format("json", options, kwargs)

    def to_columns(self, options: Optional[Mapping[str, Any]] = None, **kwargs: Any):
        """Columns as ``{column: [values]}``."""
        return self._format("columns", options, kwargs)

    def to_csv(self, options: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> str:
        """CSV text; ``config`` in the options is forwarded to pandas."""
        return self._format("csv", options, kwargs)

    def col_to_array(self, column: str) -> Optional[np.ndarray]:
        """One output column as a float array, or None if it does not exist."""
        data = self.to_columns()
        if column not in data or column == config.ROW_PATH:
            return None
        return np.array(
            [np.nan if v is None else v for v in data[column]], dtype=np.float64
        )

    # ------------------------------------------------------------------
    # Expansion
    # ------------------------------------------------------------------

    def expand(self, idx: int) -> int:
        self._check()
        if self.sides() == 2:
            if self._context.unity_get_row_depth(idx) < len(self.config.row_pivot):
                return self._context.open(Header.ROW, idx)
            return 0
        if self.sides() == 1:
            return self._context.open(idx)
        return 0

    def collapse(self, idx: int) -> int:
        self._check()
        if self.sides() == 2:
            return self._context.close(Header.ROW, idx)
        if self.sides() == 1:
            return self._context.close(idx)
        return 0

    def expand_to_depth(self, depth: int) -> None:
        self._check()
        if len(self.config.row_pivot) < depth:
            logger.warning("Cannot expand past %d", len(self.config.row_pivot))
            return
        if self.sides() == 2:
            self._context.expand_to_depth(Header.ROW, depth)
        elif self.sides() == 1:
            self._context.expand_to_depth(depth)

    def collapse_to_depth(self, depth: int) -> None:
        self._check()
        if len(self.config.row_pivot) < depth:
            logger.warning("Cannot collapse past %d", len(self.config.row_pivot))
            return
        if self.sides() == 2:
            self._context.collapse_to_depth(Header.ROW, depth)
        elif self.sides() == 1:
            self._context.collapse_to_depth(depth)

    # ------------------------------------------------------------------
    # Callbacks and lifecycle
    # ------------------------------------------------------------------

    def on_update(self, callback: Callable[..., Any]) -> None:
        """Call ``callback`` after every update of the owning table.

        With step-delta support the callback receives ``to_json`` of each
        changed row (or the whole view when nothing visible changed); without
        it the callback is called with no arguments.
        """
        self._check()

        def dispatch() -> None:
            get_delta = getattr(self._context, "get_step_delta", None)
            if get_delta is None:
                callback()
                return
            delta = get_delta(0, config.INT32_MAX)
            skip = self._header_rows()
            rows = list(dict.fromkeys(cell.row - skip for cell in delta if cell.row >= skip))
            if not rows:
                callback(self.to_json())
                return
            for row in rows:
                callback(self.to_json(start_row=row, end_row=row + 1))

        self.table._callbacks.add(self, dispatch)

    def on_delete(self, callback: Callable[[], Any]) -> None:
        self._delete_callback = callback

    def delete(self) -> None:
        """Release the context and detach from the table."""
        self._check()
        self.table._pool.unregister_context(self.table._gnode.get_id(), self.name)
        self._context.release()
        self._deleted = True
        self.table.views = [view for view in self.table.views if view is not self]
        self.table._callbacks.remove_owner(self)
        logger.debug("Deleted view %s", self.name)
        if self._delete_callback is not None:
            self._delete_callback()
