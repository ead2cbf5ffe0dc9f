"""Tests for the computed-column transform registry."""

import pytest

from pivot_host.core.dates import DateParser
from pivot_host.core.enums import LogicalType
from pivot_host.core.errors import UnknownComputationError
from pivot_host.engine.transforms import COMPUTATIONS, get_computation

# 2021-03-17 (a Wednesday) 14:25 UTC
WEDNESDAY = DateParser().parse("2021-03-17 14:25:00")


@pytest.mark.parametrize(
    "name,args,expected",
    [
        ("add", (1, 2), 3),
        ("subtract", (5, 2), 3),
        ("multiply", (3, 4), 12),
        ("divide", (1, 4), 0.25),
        ("divide", (1, 0), None),
        ("percent_of", (1, 4), 25.0),
        ("pow2", (3,), 9),
        ("sqrt", (16,), 4.0),
        ("sqrt", (-1,), None),
        ("abs", (-2.5,), 2.5),
        ("invert", (4,), 0.25),
        ("bin10", (37,), 30.0),
        ("bin100", (-1,), -100.0),
        ("uppercase", ("abc",), "ABC"),
        ("lowercase", ("AbC",), "abc"),
        ("length", ("four",), 4),
        ("concat_space", ("a", "b"), "a b"),
        ("concat_comma", ("a", "b"), "a, b"),
        ("hour_of_day", (WEDNESDAY,), 14),
        ("day_of_week", (WEDNESDAY,), "Wednesday"),
        ("month_of_year", (WEDNESDAY,), "March"),
        ("day_bucket", (WEDNESDAY,), DateParser().parse("2021-03-17")),
        ("week_bucket", (WEDNESDAY,), DateParser().parse("2021-03-15")),
        ("month_bucket", (WEDNESDAY,), DateParser().parse("2021-03-01")),
        ("year_bucket", (WEDNESDAY,), DateParser().parse("2021-01-01")),
    ],
)
def test_computations(name, args, expected):
    assert get_computation(name)(*args) == expected


def test_nulls_propagate():
    assert get_computation("add")(None, 1) is None
    assert get_computation("uppercase")(None) is None


def test_unknown_computation():
    with pytest.raises(UnknownComputationError) as excinfo:
        get_computation("cube")
    assert excinfo.value.computation == "cube"


def test_metadata():
    assert get_computation("length").to_dict() == {
        "name": "length",
        "input_type": "string",
        "return_type": "integer",
        "num_params": 1,
    }
    assert all(c.return_type in LogicalType for c in COMPUTATIONS.values())
