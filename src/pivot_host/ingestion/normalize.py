"""Normalization of raw input into the canonical columnar shape.

Supported inputs:
    - row-oriented: a sequence of mappings ``[{"x": 1, "y": "a"}, ...]``
    - column-oriented: a mapping of column name to values ``{"x": [1, 2]}``
    - schema-only: a mapping of column name to type name ``{"x": "integer"}``
    - CSV text (header row required)
    - binary columnar buffer (Arrow IPC)
    - pandas / polars DataFrames (converted to column-oriented)

Missing cells are kept as ``MISSING`` so updates leave them unchanged; explicit
``None`` and the string ``"null"`` become ``None``.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import polars as pl

from pivot_host.core import config
from pivot_host.core.dates import DateParser
from pivot_host.core.enums import LogicalType
from pivot_host.core.errors import MalformedInputError, UnknownTypeError
from pivot_host.core.sentinels import MISSING
from pivot_host.ingestion.binary import load_binary
from pivot_host.ingestion.inference import (
    discover_names,
    infer_column_type,
    is_number,
    parse_number,
)

logger = logging.getLogger(__name__)

BINARY_TYPES = (bytes, bytearray, memoryview)


@dataclass
class NormalizedData:
    """Canonical ``{row_count, is_binary, names, types, columns}`` shape."""

    row_count: int
    is_binary: bool
    names: List[str]
    types: List[LogicalType]
    columns: List[List[Any]] = field(default_factory=list)

    def pages(self, size: int) -> Iterator["NormalizedData"]:
        """Split into consecutive pages of at most ``size`` rows.

        Always yields at least one page, so an empty load still produces one
        (empty) engine submission.
        """
        if self.row_count <= size:
            yield self
            return
        for start in range(0, self.row_count, size):
            stop = min(start + size, self.row_count)
            yield NormalizedData(
                row_count=stop - start,
                is_binary=self.is_binary,
                names=self.names,
                types=self.types,
                columns=[column[start:stop] for column in self.columns],
            )


# ============================================================================
# VALUE COERCION
# ============================================================================


def clean_value(value: Any) -> Any:
    if value is None or (isinstance(value, str) and value == "null"):
        return None
    return value


def _to_number(value: Any, ltype: LogicalType) -> Any:
    if isinstance(value, (bool, np.bool_)):
        number: Any = int(value)
    elif is_number(value):
        number = value.item() if isinstance(value, np.generic) else value
    else:
        number = parse_number(str(value))
        if number is None:
            return None
    if ltype is LogicalType.INTEGER and float(number).is_integer():
        return int(number)
    return float(number)


def _to_boolean(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() == "true"
    return bool(value)


def _to_string(value: Any) -> str:
    if isinstance(value, (bool, np.bool_)):
        return "true" if value else "false"
    return str(value)


def coerce_column(
    ltype: LogicalType, values: Sequence[Any], widen: bool = True
) -> Tuple[List[Any], LogicalType]:
    """Coerce raw values to ``ltype``.

    When ``widen`` is set, an integer column holding a fractional value or a
    value outside the 32-bit signed range becomes a float column.
    """
    parser = DateParser()
    out: List[Any] = []
    for raw in values:
        if raw is MISSING:
            out.append(MISSING)
            continue
        value = clean_value(raw)
        if value is None:
            out.append(None)
        elif ltype in (LogicalType.INTEGER, LogicalType.FLOAT):
            out.append(_to_number(value, ltype))
        elif ltype is LogicalType.BOOLEAN:
            out.append(_to_boolean(value))
        elif ltype is LogicalType.DATE:
            out.append(parser.parse(value))
        else:
            out.append(_to_string(value))

    if widen and ltype is LogicalType.INTEGER:
        widened = any(
            isinstance(v, float) or not config.INT32_MIN <= v <= config.INT32_MAX
            for v in out
            if v is not MISSING and v is not None
        )
        if widened:
            logger.debug("Integer column holds non-int32 values; widening to float")
            ltype = LogicalType.FLOAT
            out = [float(v) if isinstance(v, int) else v for v in out]
    return out, ltype


def parse_type(type_name: Any, column: Optional[str] = None) -> LogicalType:
    try:
        return LogicalType(type_name)
    except ValueError as e:
        raise UnknownTypeError(type_name, column) from e


# ============================================================================
# INPUT SHAPES
# ============================================================================


def parse_csv_text(text: str) -> List[Dict[str, Any]]:
    """Parse CSV text with a header row into row mappings.

    A leading comma (blank first header) is given the name ``_``.
    """
    if text.startswith(","):
        text = "_" + text
    frame = pd.read_csv(io.StringIO(text.strip()))
    frame = frame.astype(object).where(frame.notna(), None)
    return frame.to_dict(orient="records")


def _normalize_rows(
    rows: Sequence[Any],
    names: Optional[List[str]],
    types: Optional[List[LogicalType]],
) -> NormalizedData:
    if not rows:
        if names is None or types is None:
            raise MalformedInputError(
                "Cannot infer a schema from zero rows; pass a schema instead"
            )
        return NormalizedData(0, False, list(names), list(types), [[] for _ in names])

    for row in rows:
        if not isinstance(row, Mapping):
            raise MalformedInputError(
                f"Row-oriented input must hold mappings, got {type(row).__name__}"
            )

    preloaded = types is not None
    out_names = list(names) if names is not None else discover_names(rows)
    out_types: List[LogicalType] = []
    columns: List[List[Any]] = []
    sample = rows[: config.INFERENCE_SAMPLE_ROWS]
    for n, name in enumerate(out_names):
        if preloaded:
            ltype = types[n]
        else:
            ltype = infer_column_type(
                (row[name] for row in sample if name in row), name
            )
        column, ltype = coerce_column(
            ltype, [row.get(name, MISSING) for row in rows], widen=not preloaded
        )
        out_types.append(ltype)
        columns.append(column)
    return NormalizedData(len(rows), False, out_names, out_types, columns)


def _normalize_columns(
    data: Mapping[str, Sequence[Any]],
    names: Optional[List[str]],
    types: Optional[List[LogicalType]],
) -> NormalizedData:
    present = {name: list(values) for name, values in data.items()}
    lengths = {len(values) for values in present.values()}
    if len(lengths) > 1:
        raise MalformedInputError(
            f"Column-oriented input has columns of unequal length: {sorted(lengths)}"
        )
    row_count = lengths.pop()

    preloaded = types is not None
    out_names = list(names) if names is not None else list(present)
    out_types: List[LogicalType] = []
    columns: List[List[Any]] = []
    for n, name in enumerate(out_names):
        values = present.get(name, [MISSING] * row_count)
        if preloaded:
            ltype = types[n]
        else:
            ltype = infer_column_type(values, name)
        column, ltype = coerce_column(ltype, values, widen=not preloaded)
        out_types.append(ltype)
        columns.append(column)
    return NormalizedData(row_count, False, out_names, out_types, columns)


def _normalize_schema(schema: Mapping[str, Any]) -> NormalizedData:
    names = list(schema)
    types = [parse_type(schema[name], name) for name in names]
    return NormalizedData(0, False, names, types, [[] for _ in names])


def _is_column_values(value: Any) -> bool:
    return isinstance(value, (list, tuple, np.ndarray, pd.Series, pl.Series))


def normalize(
    data: Any,
    names: Optional[List[str]] = None,
    types: Optional[List[LogicalType]] = None,
) -> NormalizedData:
    """Normalize any supported input into ``NormalizedData``.

    Args:
        data: Raw input (see module docstring for accepted shapes).
        names: Existing column names when updating a table.
        types: Existing column types, parallel to ``names``.

    Returns:
        The canonical columnar shape.

    Raises:
        MalformedInputError: If the shape cannot be classified or schema-less
            input has no rows.
        UnknownTypeError: If a schema-only input names an unknown type.
    """
    if isinstance(data, BINARY_TYPES):
        return load_binary(data, names, types)
    if isinstance(data, str):
        data = parse_csv_text(data)
    elif isinstance(data, pd.DataFrame):
        data = {str(name): data[name].tolist() for name in data.columns}
    elif isinstance(data, pl.DataFrame):
        data = data.to_dict(as_series=False)

    if isinstance(data, Mapping):
        if not data:
            raise MalformedInputError("Cannot create a table from an empty mapping")
        first = next(iter(data.values()))
        if _is_column_values(first):
            return _normalize_columns(data, names, types)
        if isinstance(first, (str, LogicalType)):
            if names is not None:
                raise MalformedInputError(
                    "Cannot update an already initialized table with a schema"
                )
            return _normalize_schema(data)
        raise MalformedInputError(
            f"Cannot classify mapping input with values of type {type(first).__name__}"
        )

    if isinstance(data, (list, tuple)):
        return _normalize_rows(data, names, types)

    raise MalformedInputError(f"Unsupported input type {type(data).__name__}")
