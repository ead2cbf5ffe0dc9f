"""Message-dispatch host for tables and views.

``Host.process`` handles one message at a time. Every reply goes through
``Host.post``, which transports override. Handler failures are caught at the
dispatch boundary and posted as error replies; ``process`` itself never
raises.

Lifecycle:
    UNINITIALIZED --init--> LOADING (awaitable engine factory) --> READY
    UNINITIALIZED --init--> READY (synchronous engine factory)

Messages arriving while LOADING are queued and replayed in order once READY.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

from pivot_host.core.errors import (
    EngineNotReadyError,
    UnknownMethodError,
    ViewNotInitializedError,
)
from pivot_host.engine import PolarsEngine
from pivot_host.interfaces.host.generators import generate
from pivot_host.interfaces.host.protocol import (
    Command,
    Reply,
    Request,
    TableMethod,
    ViewMethod,
    error_to_json,
)
from pivot_host.model.table import Table
from pivot_host.model.view import View

logger = logging.getLogger(__name__)


class HostState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"


TABLE_METHODS: Dict[TableMethod, Callable[..., Any]] = {
    TableMethod.SCHEMA: Table.schema,
    TableMethod.COMPUTED_SCHEMA: Table.computed_schema,
    TableMethod.COLUMNS: Table.columns,
    TableMethod.COLUMN_METADATA: Table.column_metadata,
    TableMethod.SIZE: Table.size,
    TableMethod.UPDATE: Table.update,
    TableMethod.REMOVE: Table.remove,
    TableMethod.DELETE: Table.delete,
    TableMethod.ON_DELETE: Table.on_delete,
}

VIEW_METHODS: Dict[ViewMethod, Callable[..., Any]] = {
    ViewMethod.SCHEMA: View.schema,
    ViewMethod.TO_JSON: View.to_json,
    ViewMethod.TO_COLUMNS: View.to_columns,
    ViewMethod.TO_CSV: View.to_csv,
    ViewMethod.NUM_ROWS: View.num_rows,
    ViewMethod.NUM_COLUMNS: View.num_columns,
    ViewMethod.GET_ROW_EXPANDED: View.get_row_expanded,
    ViewMethod.EXPAND: View.expand,
    ViewMethod.COLLAPSE: View.collapse,
    ViewMethod.EXPAND_TO_DEPTH: View.expand_to_depth,
    ViewMethod.COLLAPSE_TO_DEPTH: View.collapse_to_depth,
    ViewMethod.SIDES: View.sides,
    ViewMethod.GET_CONFIG: View.get_config,
    ViewMethod.DELETE: View.delete,
    ViewMethod.ON_UPDATE: View.on_update,
    ViewMethod.ON_DELETE: View.on_delete,
}

SUBSCRIBABLE = {TableMethod.ON_DELETE, ViewMethod.ON_UPDATE, ViewMethod.ON_DELETE}


def default_engine_factory(payload: Any = None) -> PolarsEngine:
    if payload:
        logger.info("Ignoring %d byte engine payload; using the polars engine", len(payload))
    return PolarsEngine()


class Host:
    """Dispatches protocol messages to tables and views.

    Args:
        engine_factory: Called with the ``init`` payload; returns an engine or
            an awaitable resolving to one.
    """

    def __init__(self, engine_factory: Optional[Callable[[Any], Any]] = None) -> None:
        self._engine_factory = engine_factory or default_engine_factory
        self.engine: Any = None
        self.state = HostState.UNINITIALIZED
        self._tables: Dict[str, Table] = {}
        self._views: Dict[str, View] = {}
        self._view_clients: Dict[str, Any] = {}
        self._queued: List[Tuple[Mapping[str, Any], Any]] = []
        self._tasks: Set[asyncio.Task] = set()
        self._handlers = {
            Command.TABLE: self._table,
            Command.ADD_COMPUTED: self._add_computed,
            Command.TABLE_GENERATE: self._table_generate,
            Command.TABLE_EXECUTE: self._table_execute,
            Command.VIEW: self._view,
            Command.TABLE_METHOD: self._table_method,
            Command.VIEW_METHOD: self._view_method,
        }

    def post(self, message: Dict[str, Any]) -> None:
        raise NotImplementedError("post() not implemented!")

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def process(self, msg: Mapping[str, Any], client_id: Any = None) -> None:
        try:
            request = Request.from_message(msg)
        except Exception as e:  # pylint: disable=broad-except
            msg_id = msg.get("id") if isinstance(msg, Mapping) else None
            self._reply_error(msg_id, e)
            return

        if request.cmd is Command.INIT:
            self._init(request)
            return
        if self.state is HostState.LOADING:
            self._queued.append((msg, client_id))
            return
        if self.state is not HostState.READY:
            self._reply_error(request.id, EngineNotReadyError(self.state.value))
            return

        try:
            self._handlers[request.cmd](request, client_id)
        except Exception as e:  # pylint: disable=broad-except
            logger.debug("Error handling %s request %r: %s", request.cmd.value, request.id, e)
            self._reply_error(request.id, e)

    def _reply(self, msg_id: Any, data: Any = None) -> None:
        self.post(Reply(msg_id, data=data).to_dict())

    def _reply_error(self, msg_id: Any, error: BaseException) -> None:
        self.post(Reply(msg_id, error=error_to_json(error)).to_dict())

    def _schedule(self, awaitable: Any, on_result: Callable[[Any], None], msg_id: Any) -> None:
        async def run() -> None:
            try:
                result = await awaitable
            except Exception as e:  # pylint: disable=broad-except
                self._reply_error(msg_id, e)
                return
            on_result(result)

        task = asyncio.ensure_future(run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _init(self, request: Request) -> None:
        if self.state is not HostState.UNINITIALIZED:
            logger.info("Host already %s; ignoring init", self.state.value)
            self._reply(request.id, self.state.value)
            return
        try:
            engine = self._engine_factory(request.data)
        except Exception as e:  # pylint: disable=broad-except
            logger.error("Engine initialization failed: %s", e)
            self._reply_error(request.id, e)
            return

        if inspect.isawaitable(engine):
            self.state = HostState.LOADING
            logger.info("Loading engine")

            def ready(result: Any) -> None:
                self._set_ready(result, request.id)

            self._schedule(self._load(engine), ready, request.id)
            return
        self._set_ready(engine, request.id)

    async def _load(self, awaitable: Any) -> Any:
        try:
            return await awaitable
        except Exception:
            self.state = HostState.UNINITIALIZED
            self._flush_queue()
            raise

    def _set_ready(self, engine: Any, msg_id: Any) -> None:
        self.engine = engine
        self.state = HostState.READY
        logger.info("Host ready (%s)", type(engine).__name__)
        self._reply(msg_id, self.state.value)
        self._flush_queue()

    def _flush_queue(self) -> None:
        queued, self._queued = self._queued, []
        for msg, client_id in queued:
            self.process(msg, client_id)

    def clear_views(self, client_id: Any) -> None:
        """Delete every view created by ``client_id``.

        A view that fails to delete is logged and skipped.
        """
        for name in [n for n, c in self._view_clients.items() if c == client_id]:
            view = self._views.pop(name, None)
            self._view_clients.pop(name, None)
            if view is None:
                continue
            try:
                view.delete()
            except Exception:  # pylint: disable=broad-except
                logger.exception("Failed to delete view %s", name)
        logger.debug("GC %d views in memory", len(self._views))

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _table(self, request: Request, client_id: Any) -> None:
        data = request.args[0] if request.args else request.data
        options = request.options
        table = Table.create(
            data,
            index=options.get("index"),
            limit=options.get("limit"),
            engine=self.engine,
        )
        name = request.name or table.name
        self._tables[name] = table
        self._reply(request.id, name)

    def _add_computed(self, request: Request, client_id: Any) -> None:
        original = self._tables.get(request.original)
        table = original.add_computed(request.computed or [])
        name = request.name or table.name
        self._tables[name] = table
        self._reply(request.id, name)

    def _table_generate(self, request: Request, client_id: Any) -> None:
        spec = request.args[0] if request.args else (request.data or {})
        table = generate(self.engine, spec)
        name = request.name or table.name
        self._tables[name] = table
        self._reply(request.id, name)

    def _table_execute(self, request: Request, client_id: Any) -> None:
        table = self._tables.get(request.name)
        steps = request.args[0] if request.args else (request.data or [])
        results = []
        for step in steps:
            method = self._resolve(TableMethod, "Table", step.get("method"))
            if method in SUBSCRIBABLE:
                raise UnknownMethodError("Table", method.value, "cannot run in table_execute")
            results.append(TABLE_METHODS[method](table, *step.get("args", [])))
        self._reply(request.id, results)

    def _view(self, request: Request, client_id: Any) -> None:
        table = self._tables.get(request.table_name)
        view = table.view(request.config or {})
        name = request.view_name or view.name
        self._views[name] = view
        self._view_clients[name] = client_id
        self._reply(request.id, name)

    def _table_method(self, request: Request, client_id: Any) -> None:
        # Unknown table names are not guarded: the call fails on None.
        table = self._tables.get(request.name)
        method = self._resolve(TableMethod, "Table", request.method)
        self._invoke(request, table, TABLE_METHODS[method], method)
        if method is TableMethod.DELETE:
            self._tables.pop(request.name, None)

    def _view_method(self, request: Request, client_id: Any) -> None:
        view = self._views.get(request.name)
        if view is None:
            self._reply_error(request.id, ViewNotInitializedError(request.name))
            return
        method = self._resolve(ViewMethod, "View", request.method)
        self._invoke(request, view, VIEW_METHODS[method], method)
        if method is ViewMethod.DELETE:
            self._views.pop(request.name, None)
            self._view_clients.pop(request.name, None)

    @staticmethod
    def _resolve(kind, target: str, name: Any):
        try:
            return kind(name)
        except ValueError as e:
            raise UnknownMethodError(target, name) from e

    def _invoke(self, request: Request, obj: Any, func: Callable[..., Any], method: Enum) -> None:
        if request.subscribe:
            if method not in SUBSCRIBABLE:
                raise UnknownMethodError(
                    type(obj).__name__, method.value, "does not support subscriptions"
                )

            def callback(*data: Any) -> None:
                self._reply(request.id, data[0] if data else None)

            func(obj, callback)
            return

        result = func(obj, *request.args)
        if inspect.isawaitable(result):
            self._schedule(result, lambda value: self._reply(request.id, value), request.id)
        else:
            self._reply(request.id, result)
