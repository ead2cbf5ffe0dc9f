"""Message host exposing tables and views over a request/reply protocol."""

from pivot_host.interfaces.host.host import Host, HostState
from pivot_host.interfaces.host.protocol import Command, Reply, Request, error_to_json
from pivot_host.interfaces.host.worker import Client, RemoteError, WorkerHost

__all__ = [
    "Client",
    "Command",
    "Host",
    "HostState",
    "RemoteError",
    "Reply",
    "Request",
    "WorkerHost",
    "error_to_json",
]
