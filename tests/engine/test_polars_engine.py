"""Tests for the reference engine: filling, keys, handles and computed columns."""

import pytest

from pivot_host.core.config import NO_LIMIT, ORDER_KEY
from pivot_host.core.enums import FilterOp, LogicalType
from pivot_host.core.errors import ReleasedHandleError
from pivot_host.core.sentinels import MISSING

NAMES = ["id", "value"]
TYPES = [LogicalType.INTEGER, LogicalType.STRING]


def _batch(engine, columns, start=0, limit=NO_LIMIT, index="", is_delete=False):
    return engine.create_table(
        len(columns[0]), NAMES, TYPES, columns, start, limit, index, False, is_delete
    )


@pytest.fixture
def node(engine):
    pool = engine.create_pool()
    with _batch(engine, [[1, 2], ["a", "b"]]) as batch:
        gnode = engine.create_graph_node(batch)
        pool.register_graph_node(gnode)
        engine.fill(pool, gnode, batch)
    return pool, gnode


def test_fill_appends_rows_keyed_by_offset(engine, node):
    pool, gnode = node
    with _batch(engine, [[3], ["c"]], start=2) as batch:
        engine.fill(pool, gnode, batch)

    frame = gnode.frame()
    assert frame.get_column(ORDER_KEY).to_list() == [0, 1, 2]
    assert frame.get_column("value").to_list() == ["a", "b", "c"]


def test_limit_wraps_and_overwrites_oldest_rows(engine, node):
    pool, gnode = node
    with _batch(engine, [[3], ["c"]], start=0, limit=2) as batch:
        engine.fill(pool, gnode, batch)
    assert gnode.size() == 2
    assert gnode.frame().get_column("value").to_list() == ["c", "b"]


def test_indexed_upsert_and_delete(engine):
    pool = engine.create_pool()
    with _batch(engine, [[10, 20], ["a", "b"]], index="id") as batch:
        gnode = engine.create_graph_node(batch)
        pool.register_graph_node(gnode)
        engine.fill(pool, gnode, batch)

    with _batch(engine, [[20, 30], [MISSING, "c"]], index="id") as batch:
        engine.fill(pool, gnode, batch)
    assert gnode.frame().rows() == [(10, 10, "a"), (20, 20, "b"), (30, 30, "c")]

    with engine.create_table(1, ["id"], [LogicalType.INTEGER], [[10]], 0, NO_LIMIT, "id", False, True) as batch:
        engine.fill(pool, gnode, batch)
    assert gnode.frame().get_column("id").to_list() == [20, 30]


def test_schema_reports_order_key(node):
    _, gnode = node
    with gnode.get_table_schema() as schema:
        assert schema.columns() == ["id", "value", ORDER_KEY]
        assert schema.types()[-1] is LogicalType.INTEGER


def test_released_handles_refuse_use(engine, node):
    _, gnode = node
    schema = gnode.get_table_schema()
    schema.release()
    schema.release()
    with pytest.raises(ReleasedHandleError):
        schema.columns()


def test_every_handle_is_released(engine):
    assert engine.live_handles() == 0
    pool = engine.create_pool()
    with _batch(engine, [[1], ["a"]]) as batch:
        gnode = engine.create_graph_node(batch)
        pool.register_graph_node(gnode)
        engine.fill(pool, gnode, batch)
    ctx = engine.create_context_zero(gnode, FilterOp.AND, [], NAMES, [])
    assert engine.live_handles() == 3

    ctx.release()
    gnode.release()
    pool.release()
    assert engine.live_handles() == 0


def test_fill_notifies_contexts_then_delegate(engine, node):
    pool, gnode = node
    ctx = engine.create_context_zero(gnode, FilterOp.AND, [], NAMES, [])
    pool.register_context(gnode.get_id(), "v", 0, ctx)
    seen = []
    pool.set_update_delegate(lambda: seen.append(ctx.get_row_count()))

    with _batch(engine, [[3], ["c"]], start=2) as batch:
        engine.fill(pool, gnode, batch)

    assert seen == [3]
    assert [cell.row for cell in ctx.get_step_delta(0, 10)] == [2, 2]


def test_add_computed_column(engine):
    with _batch(engine, [[1, 2], ["a", MISSING]]) as batch:
        engine.add_computed_column(batch, "upper", LogicalType.STRING, str.upper, ["value"])
        assert batch.names == ["id", "value", "upper"]
        assert batch.columns[2] == ["A", MISSING]

        with pytest.raises(KeyError):
            engine.add_computed_column(batch, "bad", LogicalType.STRING, str.upper, ["nope"])


def test_clone_table_snapshot_keeps_keys(engine, node):
    _, gnode = node
    with engine.clone_table_snapshot(gnode) as snapshot:
        assert snapshot.keys() == [0, 1]
        assert snapshot.names == NAMES
        assert snapshot.columns == [[1, 2], ["a", "b"]]
