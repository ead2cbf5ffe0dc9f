"""Tests for Table creation, updates, removal, computed columns and deletion."""

from unittest import mock

import pytest

from pivot_host.core import config
from pivot_host.core.errors import (
    ConflictingOptionsError,
    IndexNotSetError,
    MalformedInputError,
    TableHasViewsError,
    UnknownComputationError,
    UnknownIndexColumnError,
)
from pivot_host.model.table import ComputedColumn, Table


def test_schema_from_rows(engine):
    table = Table.create([{"x": 1, "y": "a"}, {"x": 2, "y": "b"}], engine=engine)
    assert table.schema() == {"x": "integer", "y": "string"}
    assert table.columns() == ["x", "y"]
    assert table.size() == 2
    assert table.limit_index == 2


def test_schema_only_table_starts_empty(engine):
    table = Table.create({"x": "integer", "when": "date"}, engine=engine)
    assert table.schema() == {"x": "integer", "when": "date"}
    assert table.size() == 0


def test_limit_index_wraps(engine):
    table = Table.create({"x": "integer"}, limit=2, engine=engine)
    seen = []
    for value in (1, 2, 3):
        assert table.update([{"x": value}]) is True
        seen.append(table.limit_index)
    assert seen == [1, 0, 1]
    assert table.size() == 2
    assert sorted(table.view().to_columns()["x"]) == [2, 3]


def test_conflicting_options(engine):
    with pytest.raises(ConflictingOptionsError):
        Table.create([{"x": 1}], index="x", limit=10, engine=engine)
    assert engine.live_handles() == 0


def test_unknown_index_column(engine):
    with pytest.raises(UnknownIndexColumnError, match="does not exist"):
        Table.create([{"x": 1}], index="id", engine=engine)
    assert engine.live_handles() == 0


def test_indexed_update_and_remove(engine):
    table = Table.create(
        [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}], index="id", engine=engine
    )
    table.update([{"id": 2, "name": "B"}, {"id": 3, "name": "c"}])
    assert table.size() == 3
    assert table.view().to_columns()["name"] == ["a", "B", "c"]

    assert table.remove([1, 3]) is True
    assert table.view().to_columns() == {"id": [2], "name": ["B"]}


def test_partial_update_keeps_missing_cells(engine):
    table = Table.create(
        [{"id": 1, "name": "a", "score": 5}], index="id", engine=engine
    )
    table.update({"id": [1], "score": [6]})
    assert table.view().to_json() == [{"id": 1, "name": "a", "score": 6}]


def test_remove_requires_index(sales_table):
    with pytest.raises(IndexNotSetError):
        sales_table.remove([0])


def test_update_ignores_unknown_columns(sales_table):
    sales_table.update([{"region": "east", "units": 2, "color": "red"}])
    assert "color" not in sales_table.schema()
    assert sales_table.size() == 6


def test_engine_failure_skips_update(sales_table):
    before = sales_table.limit_index
    with mock.patch.object(sales_table._engine, "fill", side_effect=RuntimeError("engine down")):
        assert sales_table.update([{"region": "east", "units": 2}]) is False
    assert sales_table.limit_index == before
    assert sales_table.size() == 5
    assert sales_table._engine.live_handles() == 2


def test_normalization_errors_propagate(sales_table):
    with pytest.raises(MalformedInputError):
        sales_table.update(42)


def test_chunked_load(engine, monkeypatch):
    monkeypatch.setattr(config, "CHUNKED_THRESHOLD", 2)
    rows = [{"x": i} for i in range(1, 6)]
    with mock.patch.object(engine, "fill", wraps=engine.fill) as fill:
        table = Table.create(rows, engine=engine)
    assert fill.call_count == 3
    assert table.size() == 5
    assert table.limit_index == 5


class TestComputed:
    def test_add_computed_returns_new_table(self, sales_table):
        derived = sales_table.add_computed(
            [{"column": "revenue", "computation": "multiply", "inputs": ["units", "price"]}]
        )

        assert derived is not sales_table
        assert "revenue" not in sales_table.schema()
        assert derived.schema()["revenue"] == "float"
        assert derived.size() == sales_table.size()
        assert derived.view().to_columns()["revenue"][0] == pytest.approx(4.5)

    def test_computed_columns_follow_updates(self, sales_table):
        derived = sales_table.add_computed(
            [{"column": "label", "func": "uppercase", "input_columns": ["region"]}]
        )
        derived.update([{"region": "east", "product": "fig", "units": 1, "price": 1.0}])
        assert derived.view().to_columns()["label"][-1] == "EAST"

    def test_computed_metadata(self, sales_table):
        derived = sales_table.add_computed(
            [{"column": "n", "computation": "length", "inputs": ["product"]}]
        )
        assert derived.computed_schema() == {
            "n": {
                "type": "integer",
                "input_columns": ["product"],
                "input_type": "string",
                "computation": {
                    "name": "length",
                    "input_type": "string",
                    "return_type": "integer",
                    "num_params": 1,
                },
            }
        }
        metadata = {entry["name"]: entry for entry in derived.column_metadata()}
        assert metadata["region"]["computed"] is None
        assert metadata["n"]["computed"]["input_columns"] == ["product"]

    def test_stacked_computed_columns(self, sales_table):
        first = sales_table.add_computed(
            [{"column": "revenue", "computation": "multiply", "inputs": ["units", "price"]}]
        )
        second = first.add_computed(
            [{"column": "big", "computation": "bin10", "inputs": ["revenue"]}]
        )
        assert [c.column for c in second.computed] == ["revenue", "big"]
        assert second.view().to_columns()["big"] == [0.0, 10.0, 0.0, 0.0, 0.0]

    def test_arity_is_checked(self):
        with pytest.raises(MalformedInputError, match="takes 2 input"):
            ComputedColumn.from_dict(
                {"column": "bad", "computation": "add", "inputs": ["units"]}
            )

    def test_unknown_computation(self, sales_table):
        with pytest.raises(UnknownComputationError):
            sales_table.add_computed([{"column": "c", "computation": "cube", "inputs": ["units"]}])

    def test_failed_derivation_releases_handles(self, sales_table):
        live = sales_table._engine.live_handles()
        with pytest.raises(KeyError):
            sales_table.add_computed(
                [{"column": "c", "computation": "pow2", "inputs": ["nope"]}]
            )
        assert sales_table._engine.live_handles() == live


class TestDelete:
    def test_delete_blocked_by_views(self, sales_table):
        view = sales_table.view()
        with pytest.raises(TableHasViewsError):
            sales_table.delete()
        view.delete()
        sales_table.delete()
        assert sales_table._engine.live_handles() == 0

    def test_on_delete_callback(self, sales_table):
        called = []
        sales_table.on_delete(lambda: called.append(True))
        sales_table.delete()
        assert called == [True]
