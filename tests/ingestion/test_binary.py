"""Tests for Arrow IPC buffers as table input."""

from datetime import datetime

import polars as pl

from pivot_host.core.enums import LogicalType
from pivot_host.core.sentinels import MISSING
from pivot_host.ingestion.binary import logical_type
from pivot_host.ingestion.normalize import normalize
from pivot_host.model.table import Table


def _ipc(frame: pl.DataFrame) -> bytes:
    return frame.write_ipc(None).getvalue()


def test_scalar_columns_are_kept():
    frame = pl.DataFrame(
        {
            "flag": [True, False],
            "small": pl.Series([1, 2], dtype=pl.Int8),
            "big": pl.Series([3, 4], dtype=pl.Int64),
            "ratio": pl.Series([0.5, 1.5], dtype=pl.Float32),
            "label": ["a", "b"],
            "when": [datetime(2020, 1, 1), datetime(2020, 1, 2)],
        }
    )

    data = normalize(_ipc(frame))

    assert data.is_binary is True
    assert data.row_count == 2
    assert data.names == ["flag", "small", "big", "ratio", "label", "when"]
    assert data.types == [
        LogicalType.BOOLEAN,
        LogicalType.INTEGER,
        LogicalType.INTEGER,
        LogicalType.FLOAT,
        LogicalType.STRING,
        LogicalType.DATE,
    ]
    assert data.columns[5] == [1577836800000, 1577923200000]


def test_nested_and_unsigned_columns_are_dropped():
    frame = pl.DataFrame(
        {
            "keep": [1, 2],
            "items": [[1, 2], [3]],
            "unsigned": pl.Series([1, 2], dtype=pl.UInt8),
        }
    )
    data = normalize(_ipc(frame))
    assert data.names == ["keep"]


def test_dictionary_columns_resolve_to_strings():
    frame = pl.DataFrame({"color": pl.Series(["red", "blue", "red"], dtype=pl.Categorical)})
    data = normalize(_ipc(frame))
    assert data.types == [LogicalType.STRING]
    assert data.columns == [["red", "blue", "red"]]


def test_update_matches_existing_schema_by_name():
    frame = pl.DataFrame({"y": ["z"], "extra": [1.0]})
    data = normalize(
        _ipc(frame), ["x", "y"], [LogicalType.INTEGER, LogicalType.STRING]
    )
    assert data.names == ["x", "y"]
    assert data.columns == [[MISSING], ["z"]]


def test_logical_type_of_unsupported_dtype():
    assert logical_type(pl.List(pl.Int64)) is None
    assert logical_type(pl.Datetime("ms")) is LogicalType.DATE


def test_stream_format(engine):
    frame = pl.DataFrame({"x": [1, 2], "label": ["a", "b"]})
    buffer = frame.write_ipc_stream(None).getvalue()

    data = normalize(buffer)
    assert data.names == ["x", "label"]
    assert data.columns == [[1, 2], ["a", "b"]]

    table = Table.create(buffer, engine=engine)
    assert table.schema() == {"x": "integer", "label": "string"}
    assert table.size() == 2
