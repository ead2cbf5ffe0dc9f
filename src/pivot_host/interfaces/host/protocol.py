"""Host protocol messages.

Requests are plain mappings:

    {"id": 3, "cmd": "view_method", "name": "<view>", "method": "to_json", "args": []}

Replies are ``{"id", "data"}`` or ``{"id", "error": {"name", "message", ...}}``.
Only data crosses the boundary: commands, table/view methods and table
generators are closed enums.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pivot_host.core.errors import MalformedInputError, UnknownCommandError


class Command(str, Enum):
    INIT = "init"
    TABLE = "table"
    ADD_COMPUTED = "add_computed"
    TABLE_GENERATE = "table_generate"
    TABLE_EXECUTE = "table_execute"
    VIEW = "view"
    TABLE_METHOD = "table_method"
    VIEW_METHOD = "view_method"


class TableMethod(str, Enum):
    SCHEMA = "schema"
    COMPUTED_SCHEMA = "computed_schema"
    COLUMNS = "columns"
    COLUMN_METADATA = "column_metadata"
    SIZE = "size"
    UPDATE = "update"
    REMOVE = "remove"
    DELETE = "delete"
    ON_DELETE = "on_delete"


class ViewMethod(str, Enum):
    SCHEMA = "schema"
    TO_JSON = "to_json"
    TO_COLUMNS = "to_columns"
    TO_CSV = "to_csv"
    NUM_ROWS = "num_rows"
    NUM_COLUMNS = "num_columns"
    GET_ROW_EXPANDED = "get_row_expanded"
    EXPAND = "expand"
    COLLAPSE = "collapse"
    EXPAND_TO_DEPTH = "expand_to_depth"
    COLLAPSE_TO_DEPTH = "collapse_to_depth"
    SIDES = "sides"
    GET_CONFIG = "get_config"
    DELETE = "delete"
    ON_UPDATE = "on_update"
    ON_DELETE = "on_delete"


@dataclass
class Request:
    """A parsed host request."""

    id: Any
    cmd: Command
    name: Optional[str] = None
    method: Optional[str] = None
    args: List[Any] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)
    config: Optional[Dict[str, Any]] = None
    subscribe: bool = False
    table_name: Optional[str] = None
    view_name: Optional[str] = None
    original: Optional[str] = None
    computed: Optional[List[Dict[str, Any]]] = None
    data: Any = None

    @classmethod
    def from_message(cls, msg: Mapping[str, Any]) -> "Request":
        if not isinstance(msg, Mapping):
            raise MalformedInputError(f"Message must be a mapping, got {type(msg).__name__}")
        try:
            cmd = Command(msg.get("cmd"))
        except ValueError as e:
            raise UnknownCommandError(msg.get("cmd")) from e
        args = msg.get("args")
        if args is None:
            args = []
        elif not isinstance(args, list):
            args = [args]
        return cls(
            id=msg.get("id"),
            cmd=cmd,
            name=msg.get("name"),
            method=msg.get("method"),
            args=args,
            options=dict(msg.get("options") or {}),
            config=msg.get("config"),
            subscribe=bool(msg.get("subscribe", False)),
            table_name=msg.get("table_name"),
            view_name=msg.get("view_name"),
            original=msg.get("original"),
            computed=msg.get("computed"),
            data=msg.get("data"),
        )

    def to_message(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id, "cmd": self.cmd.value}
        for key in (
            "name", "method", "config", "table_name", "view_name",
            "original", "computed", "data",
        ):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        if self.args:
            out["args"] = list(self.args)
        if self.options:
            out["options"] = dict(self.options)
        if self.subscribe:
            out["subscribe"] = True
        return out


@dataclass
class Reply:
    id: Any
    data: Any = None
    error: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return {"id": self.id, "error": self.error}
        return {"id": self.id, "data": self.data}

    @classmethod
    def from_message(cls, msg: Mapping[str, Any]) -> "Reply":
        return cls(id=msg.get("id"), data=msg.get("data"), error=msg.get("error"))


def error_to_json(error: BaseException) -> Dict[str, Any]:
    """Serialize an exception with all of its own attributes."""
    out: Dict[str, Any] = {"name": type(error).__name__, "message": str(error)}
    for key, value in vars(error).items():
        if not key.startswith("_"):
            out[key] = value
    if not out.get("message"):
        out["message"] = type(error).__name__
    return out
