"""Table: a schema-stable dataset bound to an engine pool.

A table is either unbounded, bounded by ``limit`` (a circular buffer that
overwrites its oldest rows) or keyed by ``index`` (updates upsert by key).
Views derived from it are tracked in ``Table.views`` and are notified after
every successful update.
"""

from __future__ import annotations

import logging
import math
import uuid
from contextlib import ExitStack
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from tqdm import tqdm

from pivot_host.core import config
from pivot_host.core.callbacks import CallbackRegistry
from pivot_host.core.enums import LogicalType
from pivot_host.core.errors import (
    ConflictingOptionsError,
    IndexNotSetError,
    MalformedInputError,
    TableHasViewsError,
    UnknownIndexColumnError,
)
from pivot_host.engine import get_default_engine
from pivot_host.engine.transforms import Computation, get_computation
from pivot_host.ingestion.normalize import NormalizedData, normalize, parse_type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComputedColumn:
    """A derived column produced by a registered computation.

    Attributes:
        column: Output column name.
        computation: The registered transform.
        inputs: Source columns, one per transform parameter.
        type: Output logical type (defaults to the transform's return type).
    """

    column: str
    computation: Computation
    inputs: tuple
    type: LogicalType

    @classmethod
    def from_dict(cls, definition: Mapping[str, Any]) -> "ComputedColumn":
        """Build from ``{column, func|computation, inputs, type?}``."""
        try:
            column = definition["column"]
            name = definition.get("computation", definition.get("func"))
            inputs = tuple(definition.get("inputs", definition.get("input_columns", ())))
        except (KeyError, AttributeError) as e:
            raise MalformedInputError(
                f"Invalid computed column definition: {definition!r}"
            ) from e
        if isinstance(name, Mapping):
            name = name.get("name")
        computation = get_computation(name)
        if len(inputs) != computation.arity:
            raise MalformedInputError(
                f"Computation '{computation.name}' takes {computation.arity} input(s), "
                f"got {len(inputs)}",
                column=column,
                computation=computation.name,
            )
        ltype = definition.get("type")
        ltype = computation.return_type if ltype is None else parse_type(ltype, column)
        return cls(column, computation, inputs, ltype)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column": self.column,
            "computation": self.computation.name,
            "inputs": list(self.inputs),
            "type": self.type.value,
        }


class Table:
    def __init__(
        self,
        engine: Any,
        pool: Any,
        gnode: Any,
        index: Optional[str] = None,
        limit: Optional[int] = None,
        limit_index: int = 0,
        computed: Optional[List[ComputedColumn]] = None,
    ) -> None:
        self.name = uuid.uuid4().hex
        self.index = index
        self.limit = limit
        self.limit_index = limit_index
        self.computed: List[ComputedColumn] = list(computed or [])
        self.views: List[Any] = []
        self._engine = engine
        self._pool = pool
        self._gnode = gnode
        self._callbacks = CallbackRegistry()
        self._delete_callback: Optional[Callable[[], Any]] = None
        pool.set_update_delegate(self._callbacks.notify)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def create(
        cls,
        data: Any,
        index: Optional[str] = None,
        limit: Optional[int] = None,
        engine: Any = None,
    ) -> "Table":
        """Create a table from any input ``normalize`` accepts.

        Args:
            data: Rows, columns, a schema, CSV text or an Arrow IPC buffer.
            index: Primary-key column for upserts.
            limit: Maximum row count; older rows are overwritten.
            engine: Engine binding; the process default when omitted.

        Raises:
            ConflictingOptionsError: If both ``index`` and ``limit`` are set.
            UnknownIndexColumnError: If ``index`` is not a column of ``data``.
        """
        engine = engine or get_default_engine()
        if index and limit:
            raise ConflictingOptionsError(index, limit)

        normalized = normalize(data)
        if index and index not in normalized.names:
            raise UnknownIndexColumnError(index)

        with ExitStack() as cleanup:
            pool = engine.create_pool()
            cleanup.callback(pool.release)
            gnode = None
            limit_index = 0

            pages = normalized.pages(config.CHUNKED_THRESHOLD)
            if normalized.row_count > config.CHUNKED_THRESHOLD:
                pages = tqdm(
                    pages,
                    total=math.ceil(normalized.row_count / config.CHUNKED_THRESHOLD),
                    desc="Loading table",
                    unit="page",
                    disable=None,
                    leave=False,
                )
            for page in pages:
                with cls._make_batch(engine, page, limit_index, limit, index) as batch:
                    if gnode is None:
                        gnode = engine.create_graph_node(batch)
                        cleanup.callback(gnode.release)
                        pool.register_graph_node(gnode)
                    engine.fill(pool, gnode, batch)
                limit_index = cls._advance(limit_index, page.row_count, limit)

            cleanup.pop_all()

        logger.debug(
            "Created table with %d row(s), %d column(s)",
            normalized.row_count,
            len(normalized.names),
        )
        return cls(engine, pool, gnode, index=index, limit=limit, limit_index=limit_index)

    @staticmethod
    def _make_batch(engine, data: NormalizedData, start: int, limit, index, is_delete=False):
        return engine.create_table(
            data.row_count,
            data.names,
            data.types,
            data.columns,
            start,
            limit or config.NO_LIMIT,
            index or "",
            data.is_binary,
            is_delete,
        )

    @staticmethod
    def _advance(limit_index: int, row_count: int, limit: Optional[int]) -> int:
        limit_index += row_count
        return limit_index % limit if limit else limit_index

    # ------------------------------------------------------------------
    # Schema projections
    # ------------------------------------------------------------------

    def _schema(self, include_order_key: bool = False) -> Dict[str, LogicalType]:
        with self._gnode.get_table_schema() as schema:
            pairs = zip(schema.columns(), schema.types())
            return {
                name: ltype
                for name, ltype in pairs
                if include_order_key or name != config.ORDER_KEY
            }

    def schema(self) -> Dict[str, str]:
        """Column name to type name, in schema order."""
        return {name: ltype.value for name, ltype in self._schema().items()}

    def computed_schema(self) -> Dict[str, Dict[str, Any]]:
        return {
            c.column: {
                "type": c.type.value,
                "input_columns": list(c.inputs),
                "input_type": c.computation.input_type.value,
                "computation": c.computation.to_dict(),
            }
            for c in self.computed
        }

    def columns(self) -> List[str]:
        return list(self._schema())

    def column_metadata(self) -> List[Dict[str, Any]]:
        computed = self.computed_schema()
        metadata = []
        for name, ltype in self._schema().items():
            entry = computed.get(name)
            metadata.append(
                {
                    "name": name,
                    "type": ltype.value,
                    "computed": None
                    if entry is None
                    else {
                        "input_columns": entry["input_columns"],
                        "input_type": entry["input_type"],
                        "computation": entry["computation"],
                    },
                }
            )
        return metadata

    def size(self) -> int:
        return self._gnode.size()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def _apply_computed(self, batch: Any, computed: Sequence[ComputedColumn]) -> None:
        for c in computed:
            self._engine.add_computed_column(
                batch, c.column, c.type, c.computation, list(c.inputs)
            )

    def _submit(self, normalized: NormalizedData, is_delete: bool) -> bool:
        try:
            with self._make_batch(
                self._engine, normalized, self.limit_index, self.limit, self.index, is_delete
            ) as batch:
                if not is_delete:
                    self._apply_computed(batch, self.computed)
                self._engine.fill(self._pool, self._gnode, batch)
        except Exception:  # pylint: disable=broad-except
            logger.exception(
                "%s of %d row(s) on table %s failed; table left unchanged",
                "Remove" if is_delete else "Update",
                normalized.row_count,
                self.name,
            )
            return False
        self.limit_index = self._advance(self.limit_index, normalized.row_count, self.limit)
        return True

    def update(self, data: Any) -> bool:
        """Append rows, or upsert them by ``index``.

        Input is normalized against the current schema (normalization errors
        propagate). Engine failures are logged and the update is skipped.

        Returns:
            True if the update was applied.
        """
        schema = self._schema()
        normalized = normalize(data, list(schema), list(schema.values()))
        return self._submit(normalized, is_delete=False)

    def remove(self, keys: Sequence[Any]) -> bool:
        """Remove rows by index value.

        Raises:
            IndexNotSetError: If the table has no index.
        """
        if not self.index:
            raise IndexNotSetError(self.name)
        schema = self._schema()
        normalized = normalize(
            [{self.index: key} for key in keys], [self.index], [schema[self.index]]
        )
        if normalized.row_count == 0:
            return True
        return self._submit(normalized, is_delete=True)

    def add_computed(self, definitions: Sequence[Mapping[str, Any]]) -> "Table":
        """Return a new table with extra computed columns.

        The current rows are cloned; the new table shares no state with this
        one and carries over ``index``, ``limit`` and ``limit_index``.
        """
        computed = [ComputedColumn.from_dict(d) for d in definitions]
        with ExitStack() as cleanup:
            pool = self._engine.create_pool()
            cleanup.callback(pool.release)
            with self._engine.clone_table_snapshot(self._gnode) as snapshot:
                self._apply_computed(snapshot, self.computed + computed)
                gnode = self._engine.create_graph_node(snapshot)
                cleanup.callback(gnode.release)
                pool.register_graph_node(gnode)
                self._engine.fill(pool, gnode, snapshot)
            cleanup.pop_all()

        return Table(
            self._engine,
            pool,
            gnode,
            index=self.index,
            limit=self.limit,
            limit_index=self.limit_index,
            computed=self.computed + computed,
        )

    # ------------------------------------------------------------------
    # Views and lifecycle
    # ------------------------------------------------------------------

    def view(self, config: Optional[Mapping[str, Any]] = None, **kwargs: Any):
        """Create a View. Keyword arguments are merged into ``config``."""
        from pivot_host.model.view import View

        return View.create(self, {**dict(config or {}), **kwargs})

    def on_delete(self, callback: Callable[[], Any]) -> None:
        self._delete_callback = callback

    def delete(self) -> None:
        """Release the table.

        Raises:
            TableHasViewsError: If views derived from this table still exist.
        """
        if self.views:
            raise TableHasViewsError(self.name, len(self.views))
        self._pool.unregister_graph_node(self._gnode.get_id())
        self._gnode.release()
        self._pool.release()
        logger.debug("Deleted table %s", self.name)
        if self._delete_callback is not None:
            self._delete_callback()
