"""Tests for value and column type inference and column-name discovery."""

import logging
from datetime import date, datetime

import numpy as np
import pytest

from pivot_host.core import config
from pivot_host.core.enums import LogicalType
from pivot_host.core.errors import MalformedInputError
from pivot_host.core.sentinels import MISSING
from pivot_host.ingestion.inference import (
    discover_names,
    infer_column_type,
    infer_type,
    parse_number,
)


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, None),
        (MISSING, None),
        (5, LogicalType.INTEGER),
        (-9999, LogicalType.INTEGER),
        (np.int64(12), LogicalType.INTEGER),
        (0, LogicalType.FLOAT),
        (10000, LogicalType.FLOAT),
        (2.5, LogicalType.FLOAT),
        (True, LogicalType.BOOLEAN),
        (np.bool_(False), LogicalType.BOOLEAN),
        (datetime(2020, 1, 1), LogicalType.DATE),
        (date(2020, 1, 1), LogicalType.DATE),
        ("1.5", LogicalType.FLOAT),
        ("42", LogicalType.FLOAT),
        ("2020-01-01", LogicalType.DATE),
        ("TRUE", LogicalType.BOOLEAN),
        ("false", LogicalType.BOOLEAN),
        ("apple", LogicalType.STRING),
        ("", LogicalType.STRING),
        ("nan", LogicalType.STRING),
        ("1_000", LogicalType.STRING),
        ({"nested": 1}, LogicalType.STRING),
    ],
    ids=[
        "null",
        "missing",
        "small-int",
        "negative-int",
        "numpy-int",
        "zero",
        "large-int",
        "float",
        "bool",
        "numpy-bool",
        "datetime",
        "date",
        "float-string",
        "int-string",
        "date-string",
        "true-upper",
        "false-lower",
        "word",
        "empty-string",
        "nan-string",
        "underscore-number",
        "mapping",
    ],
)
def test_infer_type(value, expected):
    assert infer_type(value) is expected


@pytest.mark.parametrize("text", ["inf", "-inf", "nan", "", "  ", "1e", "0x10"])
def test_parse_number_rejects_non_finite_and_garbage(text):
    assert parse_number(text) is None


def test_parse_number_accepts_padded_numbers():
    assert parse_number(" 3.25 ") == 3.25


def test_infer_column_type_stops_at_first_typed_value():
    assert infer_column_type([None, MISSING, 7, "apple"]) is LogicalType.INTEGER


def test_infer_column_type_defaults_to_string(caplog):
    with caplog.at_level(logging.WARNING):
        assert infer_column_type([None, None], "empty") is LogicalType.STRING
    assert "'empty'" in caplog.text


def test_infer_column_type_only_samples_leading_rows(monkeypatch):
    monkeypatch.setattr(config, "INFERENCE_SAMPLE_ROWS", 2)
    assert infer_column_type([None, None, 5]) is LogicalType.STRING


def test_discover_names_widens_from_later_rows():
    rows = [{"a": 1}, {"a": 2, "b": 3}, {"c": 4}]
    assert discover_names(rows) == ["a", "b", "c"]


def test_discover_names_window_doubles_on_growth(monkeypatch):
    monkeypatch.setattr(config, "NAME_SCAN_WINDOW", 2)
    rows = [{"a": 1}, {"a": 1, "b": 2}, {"a": 1}, {"a": 1, "c": 3}]
    assert discover_names(rows) == ["a", "b", "c"]


def test_discover_names_is_best_effort(monkeypatch):
    monkeypatch.setattr(config, "NAME_SCAN_WINDOW", 2)
    rows = [{"a": 1}, {"a": 1}, {"a": 1}, {"a": 1, "late": 2}]
    assert discover_names(rows) == ["a"]


def test_discover_names_requires_rows():
    with pytest.raises(MalformedInputError):
        discover_names([])
