"""Arrow IPC buffers as table input.

Only flat scalar columns survive: booleans, signed integers, floats, UTF-8 and
binary (as string), timestamps (as date) and dictionary-encoded columns
(resolved to their value type). Nested, unsigned and other columns are
dropped.
"""

from __future__ import annotations

import io
import logging
from typing import Any, List, Optional, TYPE_CHECKING

import polars as pl

from pivot_host.core.enums import LogicalType
from pivot_host.core.sentinels import MISSING

if TYPE_CHECKING:
    from pivot_host.ingestion.normalize import NormalizedData

logger = logging.getLogger(__name__)

ARROW_FILE_MAGIC = b"ARROW1"

_DTYPES = [
    (pl.Boolean, LogicalType.BOOLEAN),
    (pl.Int8, LogicalType.INTEGER),
    (pl.Int16, LogicalType.INTEGER),
    (pl.Int32, LogicalType.INTEGER),
    (pl.Int64, LogicalType.INTEGER),
    (pl.Float32, LogicalType.FLOAT),
    (pl.Float64, LogicalType.FLOAT),
    (pl.String, LogicalType.STRING),
    (pl.Binary, LogicalType.STRING),
    (pl.Categorical, LogicalType.STRING),
    (pl.Enum, LogicalType.STRING),
    (pl.Datetime, LogicalType.DATE),
]


def logical_type(dtype: pl.DataType) -> Optional[LogicalType]:
    base = dtype.base_type()
    for candidate, ltype in _DTYPES:
        if base == candidate:
            return ltype
    return None


def _values(series: pl.Series) -> List[Any]:
    base = series.dtype.base_type()
    if base == pl.Datetime:
        return series.dt.epoch("ms").to_list()
    if base == pl.Binary:
        return [
            None if v is None else v.decode("utf-8", errors="replace")
            for v in series.to_list()
        ]
    if base in (pl.Categorical, pl.Enum):
        return series.cast(pl.String).to_list()
    return series.to_list()


def load_binary(
    buffer: Any,
    names: Optional[List[str]] = None,
    types: Optional[List[LogicalType]] = None,
) -> "NormalizedData":
    """Read an Arrow IPC buffer in the file or the streaming format.

    When ``names``/``types`` are given (an update), columns are matched by name
    against the existing schema; columns absent from the buffer are ``MISSING``
    and columns the schema does not know are ignored.
    """
    from pivot_host.ingestion.normalize import NormalizedData, coerce_column

    data = bytes(buffer)
    if data[: len(ARROW_FILE_MAGIC)] == ARROW_FILE_MAGIC:
        frame = pl.read_ipc(io.BytesIO(data))
    else:
        frame = pl.read_ipc_stream(io.BytesIO(data))

    found = {}
    for series in frame.get_columns():
        ltype = logical_type(series.dtype)
        if ltype is None:
            logger.debug(
                "Dropping column %r of unsupported type %s", series.name, series.dtype
            )
            continue
        found[series.name] = (ltype, _values(series))

    if names is None or types is None:
        return NormalizedData(
            row_count=frame.height,
            is_binary=True,
            names=list(found),
            types=[ltype for ltype, _ in found.values()],
            columns=[values for _, values in found.values()],
        )

    columns = []
    for name, ltype in zip(names, types):
        if name in found:
            column, _ = coerce_column(ltype, found[name][1], widen=False)
        else:
            column = [MISSING] * frame.height
        columns.append(column)
    return NormalizedData(frame.height, True, list(names), list(types), columns)
