"""Engine binding contract.

Table and View only talk to the engine through the methods of
``EngineBinding``. Every object the engine hands out (pools, graph nodes,
table batches, contexts, schemas) is a ``Handle`` that must be released
explicitly; handles are context managers so one-shot handles can be scoped
with ``with``:

    ```python
    with engine.create_table(...) as batch:
        engine.fill(pool, gnode, batch)
    ```

To plug in another engine, implement the ``EngineBinding`` protocol and pass
the instance to ``Table.create(..., engine=...)`` or to the host's engine
factory.
"""

from __future__ import annotations

from typing import Any, Callable, List, Optional, Protocol, Sequence, Set, Tuple

from pivot_host.core.enums import FilterOp, LogicalType, SortOrder
from pivot_host.core.errors import ReleasedHandleError

SortSpec = List[Tuple[int, SortOrder]]
FilterSpec = List[Tuple[str, FilterOp, Any]]
AggregateSpec = List[Tuple[str, Any, List[str]]]


class Handle:
    """An engine resource that must be released exactly once."""

    def __init__(self, live: Optional[Set["Handle"]] = None) -> None:
        self._released = False
        self._live = live
        if live is not None:
            live.add(self)

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        if self._live is not None:
            self._live.discard(self)
        self._on_release()

    def _on_release(self) -> None:
        pass

    def _check(self) -> None:
        if self._released:
            raise ReleasedHandleError(type(self).__name__)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class PivotContext(Protocol):
    """Operations a View performs directly on its pivot context."""

    def get_row_count(self) -> int: ...

    def unity_get_column_count(self) -> int: ...

    def get_column_names(self) -> List[str]: ...

    def unity_get_column_path(self, idx: int) -> List[Any]: ...

    def unity_get_row_path(self, idx: int) -> List[Any]: ...

    def unity_get_row_depth(self, idx: int) -> int: ...

    def unity_get_row_expanded(self, idx: int) -> bool: ...

    def sort(self, spec: SortSpec) -> None: ...

    def release(self) -> None: ...


class EngineBinding(Protocol):
    """Engine operations consumed by Table and View."""

    def create_pool(self) -> Any: ...

    def create_table(
        self,
        row_count: int,
        names: Sequence[str],
        types: Sequence[LogicalType],
        columns: Sequence[Sequence[Any]],
        start_index: int,
        limit: int,
        index: str,
        is_binary: bool,
        is_delete: bool,
    ) -> Any: ...

    def create_graph_node(self, table: Any) -> Any: ...

    def fill(self, pool: Any, gnode: Any, table: Any) -> None: ...

    def create_context_zero(
        self,
        gnode: Any,
        filter_op: FilterOp,
        filters: FilterSpec,
        columns: List[str],
        sort: SortSpec,
    ) -> PivotContext: ...

    def create_context_one(
        self,
        gnode: Any,
        row_pivots: List[str],
        filter_op: FilterOp,
        filters: FilterSpec,
        aggregates: AggregateSpec,
        sort: SortSpec,
    ) -> PivotContext: ...

    def create_context_two(
        self,
        gnode: Any,
        row_pivots: List[str],
        column_pivots: List[str],
        filter_op: FilterOp,
        filters: FilterSpec,
        aggregates: AggregateSpec,
        sort: SortSpec,
    ) -> PivotContext: ...

    def get_data_slice(
        self, context: PivotContext, start_row: int, end_row: int, start_col: int, end_col: int
    ) -> List[Any]: ...

    def add_computed_column(
        self,
        table: Any,
        name: str,
        ltype: LogicalType,
        func: Callable[..., Any],
        inputs: List[str],
    ) -> None: ...

    def clone_table_snapshot(self, gnode: Any) -> Any: ...


__all__ = [
    "AggregateSpec",
    "EngineBinding",
    "FilterSpec",
    "Handle",
    "PivotContext",
    "SortSpec",
]
