"""Tests for view configuration defaulting and translation."""

import pytest

from pivot_host.core.config import ORDER_KEY
from pivot_host.core.enums import AggregateOp, FilterOp, LogicalType, SortOrder
from pivot_host.core.errors import UnknownOperatorError
from pivot_host.model.config import (
    ViewConfig,
    replicate_sort,
    translate_aggregates,
    translate_filter_op,
    translate_filters,
    translate_sort,
)

SCHEMA = {
    "region": LogicalType.STRING,
    "units": LogicalType.INTEGER,
    "price": LogicalType.FLOAT,
    "when": LogicalType.DATE,
    ORDER_KEY: LogicalType.INTEGER,
}


def test_from_dict_does_not_alias_input():
    raw = {"row_pivot": ["region"], "aggregate": [{"column": "units"}]}
    view_config = ViewConfig.from_dict(raw)
    translate_aggregates(view_config, SCHEMA)
    assert raw == {"row_pivot": ["region"], "aggregate": [{"column": "units"}]}


def test_column_only_defaulting():
    view_config = ViewConfig.from_dict({"column_pivot": ["region"]})
    assert view_config.row_pivot == [ORDER_KEY]
    assert view_config.column_only is True
    assert view_config.sides == 2


def test_to_dict_omits_unset_options():
    assert ViewConfig.from_dict({"row_pivot": ["region"]}).to_dict() == {
        "row_pivot": ["region"],
        "column_pivot": [],
        "aggregate": None,
        "filter": [],
        "sort": [],
    }


@pytest.mark.parametrize(
    "name,expected",
    [(None, FilterOp.AND), ("and", FilterOp.AND), ("OR", FilterOp.OR), ("|", FilterOp.OR)],
)
def test_translate_filter_op(name, expected):
    assert translate_filter_op(name) is expected


def test_translate_filter_op_rejects_predicates():
    with pytest.raises(UnknownOperatorError):
        translate_filter_op("==")


def test_translate_filters_parses_dates():
    filters = translate_filters(
        [["when", ">", "2020-01-01"], ["region", "begins with", "n"]], SCHEMA
    )
    assert filters == [
        ("when", FilterOp.GT, 1577836800000),
        ("region", FilterOp.BEGINS_WITH, "n"),
    ]


def test_translate_filters_unknown_operator():
    with pytest.raises(UnknownOperatorError) as excinfo:
        translate_filters([["units", "~=", 1]], SCHEMA)
    assert excinfo.value.op == "~="


class TestTranslateAggregates:
    def test_defaults_to_distinct_count_per_column(self):
        aggregates = translate_aggregates(ViewConfig.from_dict({"row_pivot": ["region"]}), SCHEMA)
        assert [a.name for a in aggregates] == ["region", "units", "price", "when"]
        assert {a.op for a in aggregates} == {AggregateOp.DISTINCT_COUNT}

    def test_type_defaults_and_aliases(self):
        view_config = ViewConfig.from_dict(
            {
                "row_pivot": ["region"],
                "aggregate": [
                    "units",
                    {"column": "region"},
                    {"column": "price", "op": "avg"},
                    {"column": "units", "op": "distinctcount", "name": "n"},
                ],
            }
        )
        aggregates = translate_aggregates(view_config, SCHEMA)
        assert [(a.name, a.op) for a in aggregates] == [
            ("units", AggregateOp.SUM),
            ("region", AggregateOp.COUNT),
            ("price", AggregateOp.MEAN),
            ("n", AggregateOp.DISTINCT_COUNT),
        ]
        assert aggregates[2].op_name == "avg"

    def test_column_only_forces_any(self):
        view_config = ViewConfig.from_dict(
            {"column_pivot": ["region"], "aggregate": [{"column": "units", "op": "sum"}]}
        )
        aggregates = translate_aggregates(view_config, SCHEMA)
        assert aggregates[0].op is AggregateOp.ANY
        assert view_config.aggregate == [{"column": "units", "op": "any"}]


def test_translate_sort():
    aggregates = translate_aggregates(
        ViewConfig.from_dict({"aggregate": ["units", "price"]}), SCHEMA
    )
    sort = translate_sort([["price", "desc"], "units", ["region", "asc"]], aggregates)
    assert sort == [(1, SortOrder.DESC), (0, SortOrder.ASC)]

    with pytest.raises(UnknownOperatorError):
        translate_sort([["units", "sideways"]], aggregates)


@pytest.mark.parametrize(
    "sort,aggregates,columns,expected",
    [
        ([(0, SortOrder.ASC)], 1, 3, [(0, SortOrder.ASC), (1, SortOrder.ASC), (2, SortOrder.ASC)]),
        (
            [(1, SortOrder.DESC)],
            2,
            4,
            [(1, SortOrder.DESC), (3, SortOrder.DESC)],
        ),
        (
            [(0, SortOrder.ASC), (1, SortOrder.DESC)],
            2,
            4,
            [
                (0, SortOrder.ASC),
                (1, SortOrder.DESC),
                (2, SortOrder.ASC),
                (3, SortOrder.DESC),
            ],
        ),
        ([(0, SortOrder.ASC)], 0, 0, []),
    ],
    ids=["one-aggregate", "second-aggregate", "two-entries", "no-aggregates"],
)
def test_replicate_sort(sort, aggregates, columns, expected):
    assert replicate_sort(sort, aggregates, columns) == expected
