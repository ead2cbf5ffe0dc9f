"""In-process worker transport.

``WorkerHost`` runs a ``Host`` behind an asyncio queue and serves any number
of ``Client`` connections. Messages are deep-copied in both directions, so
clients never share objects with the host. Each client numbers its own
requests; the worker tags them with the client id to route replies back.

    ```python
    async def main():
        worker = WorkerHost()
        await worker.start()
        client = worker.connect()
        await client.initialize()
        table = await client.table([{"x": 1}, {"x": 2}])
        view = await table.view({"row_pivot": ["x"]})
        print(await view.to_json())
        await client.close()
        await worker.stop()
    ```
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from pivot_host.core.errors import PivotHostError
from pivot_host.interfaces.host.host import Host
from pivot_host.interfaces.host.protocol import Command, Reply, Request

logger = logging.getLogger(__name__)


@dataclass
class _Disconnect:
    done: asyncio.Future


class RemoteError(PivotHostError):
    """An error reply received by a client."""

    def __init__(self, error: Mapping[str, Any]) -> None:
        details = {k: v for k, v in error.items() if k != "message"}
        remote_name = details.pop("name", None)
        super().__init__(str(error.get("message", "Remote error")), **details)
        self.remote_name = remote_name


class WorkerHost(Host):
    def __init__(self, engine_factory: Optional[Callable[[Any], Any]] = None) -> None:
        super().__init__(engine_factory)
        self._inbox: Optional[asyncio.Queue] = None
        self._pump: Optional[asyncio.Task] = None
        self._clients: Dict[int, "Client"] = {}
        self._client_ids = itertools.count(1)

    async def start(self) -> None:
        self._inbox = asyncio.Queue()
        self._pump = asyncio.ensure_future(self._run())

    async def stop(self) -> None:
        if self._pump is not None:
            self._pump.cancel()
            try:
                await self._pump
            except asyncio.CancelledError:
                pass
            self._pump = None
        for client in list(self._clients.values()):
            client._stop()
        self._clients = {}

    def connect(self) -> "Client":
        if self._inbox is None:
            raise RuntimeError("WorkerHost.start() must be awaited before connect()")
        client_id = next(self._client_ids)
        client = Client(self, client_id)
        self._clients[client_id] = client
        return client

    def send(self, client_id: int, message: Any) -> None:
        self._inbox.put_nowait((client_id, copy.deepcopy(message)))

    def disconnect(self, client_id: int) -> asyncio.Future:
        """Queue the disconnect of a client; resolves once its views are cleared."""
        done = asyncio.get_running_loop().create_future()
        self._inbox.put_nowait((client_id, _Disconnect(done)))
        return done

    async def _run(self) -> None:
        while True:
            client_id, message = await self._inbox.get()
            if isinstance(message, _Disconnect):
                self.clear_views(client_id)
                self._clients.pop(client_id, None)
                if not message.done.done():
                    message.done.set_result(None)
                continue
            routed = dict(message, id=(client_id, message.get("id")))
            self.process(routed, client_id)

    def post(self, message: Dict[str, Any]) -> None:
        client_id, msg_id = message["id"]
        client = self._clients.get(client_id)
        if client is None:
            logger.debug("Dropping reply %r for disconnected client %s", msg_id, client_id)
            return
        client._deliver(copy.deepcopy(dict(message, id=msg_id)))


class Client:
    """Request-correlating connection to a ``WorkerHost``."""

    def __init__(self, worker: WorkerHost, client_id: int) -> None:
        self._worker = worker
        self.client_id = client_id
        self._ids = itertools.count(1)
        self._pending: Dict[int, asyncio.Future] = {}
        self._subscriptions: Dict[int, Callable[..., Any]] = {}
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._pump = asyncio.ensure_future(self._run())

    def _deliver(self, message: Dict[str, Any]) -> None:
        self._inbox.put_nowait(message)

    async def _run(self) -> None:
        while True:
            message = await self._inbox.get()
            self._handle(Reply.from_message(message))

    def _handle(self, reply: Reply) -> None:
        if reply.id in self._subscriptions:
            if reply.error is not None:
                logger.error("Subscription %s failed: %s", reply.id, reply.error.get("message"))
                return
            callback = self._subscriptions[reply.id]
            if reply.data is None:
                callback()
            else:
                callback(reply.data)
            return
        future = self._pending.pop(reply.id, None)
        if future is None or future.done():
            return
        if reply.error is not None:
            future.set_exception(RemoteError(reply.error))
        else:
            future.set_result(reply.data)

    def _send(self, request: Request) -> None:
        self._worker.send(self.client_id, request.to_message())

    async def request(self, cmd: Command, **fields: Any) -> Any:
        msg_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[msg_id] = future
        self._send(Request(id=msg_id, cmd=cmd, **fields))
        return await future

    def subscribe(self, cmd: Command, callback: Callable[..., Any], **fields: Any) -> None:
        msg_id = next(self._ids)
        self._subscriptions[msg_id] = callback
        self._send(Request(id=msg_id, cmd=cmd, subscribe=True, **fields))

    async def initialize(self, payload: Any = None) -> Any:
        return await self.request(Command.INIT, data=payload)

    async def table(
        self, data: Any, index: Optional[str] = None, limit: Optional[int] = None
    ) -> "RemoteTable":
        options = {k: v for k, v in (("index", index), ("limit", limit)) if v is not None}
        name = await self.request(Command.TABLE, args=[data], options=options)
        return RemoteTable(self, name)

    async def generate(self, generator: str, **params: Any) -> "RemoteTable":
        name = await self.request(
            Command.TABLE_GENERATE, args=[{"generator": generator, "params": params}]
        )
        return RemoteTable(self, name)

    async def close(self) -> None:
        """Disconnect; the worker deletes every view this client created."""
        await self._worker.disconnect(self.client_id)
        self._stop()

    def _stop(self) -> None:
        self._pump.cancel()
        for future in self._pending.values():
            if not future.done():
                future.cancel()
        self._pending = {}


class RemoteTable:
    def __init__(self, client: Client, name: str) -> None:
        self._client = client
        self.name = name

    async def _call(self, method: str, *args: Any) -> Any:
        return await self._client.request(
            Command.TABLE_METHOD, name=self.name, method=method, args=list(args)
        )

    async def view(self, config: Optional[Mapping[str, Any]] = None) -> "RemoteView":
        name = await self._client.request(
            Command.VIEW, table_name=self.name, config=dict(config or {})
        )
        return RemoteView(self._client, name)

    async def add_computed(self, computed: list) -> "RemoteTable":
        name = await self._client.request(
            Command.ADD_COMPUTED, original=self.name, computed=computed
        )
        return RemoteTable(self._client, name)

    async def execute(self, steps: list) -> list:
        return await self._client.request(Command.TABLE_EXECUTE, name=self.name, args=[steps])

    async def schema(self) -> Dict[str, str]:
        return await self._call("schema")

    async def computed_schema(self) -> Dict[str, Any]:
        return await self._call("computed_schema")

    async def columns(self) -> list:
        return await self._call("columns")

    async def column_metadata(self) -> list:
        return await self._call("column_metadata")

    async def size(self) -> int:
        return await self._call("size")

    async def update(self, data: Any) -> bool:
        return await self._call("update", data)

    async def remove(self, keys: list) -> bool:
        return await self._call("remove", keys)

    async def delete(self) -> None:
        return await self._call("delete")

    def on_delete(self, callback: Callable[..., Any]) -> None:
        self._client.subscribe(
            Command.TABLE_METHOD, callback, name=self.name, method="on_delete"
        )


class RemoteView:
    def __init__(self, client: Client, name: str) -> None:
        self._client = client
        self.name = name

    async def _call(self, method: str, *args: Any) -> Any:
        return await self._client.request(
            Command.VIEW_METHOD, name=self.name, method=method, args=list(args)
        )

    async def schema(self) -> Dict[str, str]:
        return await self._call("schema")

    async def to_json(self, **options: Any) -> list:
        return await self._call("to_json", options)

    async def to_columns(self, **options: Any) -> dict:
        return await self._call("to_columns", options)

    async def to_csv(self, **options: Any) -> str:
        return await self._call("to_csv", options)

    async def num_rows(self) -> int:
        return await self._call("num_rows")

    async def num_columns(self) -> int:
        return await self._call("num_columns")

    async def sides(self) -> int:
        return await self._call("sides")

    async def get_config(self) -> dict:
        return await self._call("get_config")

    async def get_row_expanded(self, idx: int) -> bool:
        return await self._call("get_row_expanded", idx)

    async def expand(self, idx: int) -> int:
        return await self._call("expand", idx)

    async def collapse(self, idx: int) -> int:
        return await self._call("collapse", idx)

    async def expand_to_depth(self, depth: int) -> None:
        return await self._call("expand_to_depth", depth)

    async def collapse_to_depth(self, depth: int) -> None:
        return await self._call("collapse_to_depth", depth)

    async def delete(self) -> None:
        return await self._call("delete")

    def on_update(self, callback: Callable[..., Any]) -> None:
        self._client.subscribe(
            Command.VIEW_METHOD, callback, name=self.name, method="on_update"
        )

    def on_delete(self, callback: Callable[..., Any]) -> None:
        self._client.subscribe(
            Command.VIEW_METHOD, callback, name=self.name, method="on_delete"
        )
