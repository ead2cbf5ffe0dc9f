"""Tests for filter predicates."""

import polars as pl
import pytest

from pivot_host.core.enums import FilterOp
from pivot_host.engine.filters import build_predicate, predicate

FRAME = pl.DataFrame(
    {
        "name": ["alpha", "beta", "gamma", None],
        "score": [1.0, 2.0, 3.0, 4.0],
    }
)


def _names(expr, frame=FRAME):
    return frame.filter(expr).get_column("name").to_list()


@pytest.mark.parametrize(
    "column,op,value,expected",
    [
        ("score", FilterOp.LT, 3.0, ["alpha", "beta"]),
        ("score", FilterOp.GTEQ, 3.0, ["gamma", None]),
        ("name", FilterOp.EQ, "beta", ["beta"]),
        ("name", FilterOp.NE, "beta", ["alpha", "gamma"]),
        ("name", FilterOp.CONTAINS, "mm", ["gamma"]),
        ("name", FilterOp.BEGINS_WITH, "al", ["alpha"]),
        ("name", FilterOp.ENDS_WITH, "ta", ["beta"]),
        ("name", FilterOp.IN, ["alpha", "gamma"], ["alpha", "gamma"]),
    ],
    ids=["lt", "gteq", "eq", "ne", "contains", "begins", "ends", "in"],
)
def test_predicate(column, op, value, expected):
    assert _names(predicate(column, op, value)) == expected


def test_nan_predicates():
    frame = pl.DataFrame({"name": ["a", "b", "c"], "score": [1.0, float("nan"), None]})
    assert _names(predicate("score", FilterOp.IS_NAN, None), frame) == ["b"]
    assert _names(predicate("score", FilterOp.IS_NOT_NAN, None), frame) == ["a", "c"]


def test_combination_ops_are_not_predicates():
    with pytest.raises(ValueError):
        predicate("name", FilterOp.AND, None)


def test_build_predicate():
    assert build_predicate([], FilterOp.AND) is None
    filters = [("score", FilterOp.GT, 2.0), ("name", FilterOp.EQ, "alpha")]
    assert _names(build_predicate(filters, FilterOp.AND)) == []
    assert _names(build_predicate(filters, FilterOp.OR)) == ["alpha", "gamma", None]
