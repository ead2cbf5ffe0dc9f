"""Aggregate operators as polars expressions.

``aggregate_expr`` builds the per-group expression. A few operators need the
tree around a group (percent of parent/grand total, leaf-only values); those
are finished by ``postprocess`` once all levels are aggregated.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional

import polars as pl

from pivot_host.core.config import ORDER_KEY
from pivot_host.core.enums import AggregateOp


def _distinct_count(c: pl.Expr, _: List[str]) -> pl.Expr:
    return c.n_unique()


def _unique(c: pl.Expr, _: List[str]) -> pl.Expr:
    return pl.when(c.n_unique() == 1).then(c.first()).otherwise(None)


def _join(c: pl.Expr, _: List[str]) -> pl.Expr:
    return c.drop_nulls().cast(pl.String).unique(maintain_order=True).str.join(", ")


def _dominant(c: pl.Expr, _: List[str]) -> pl.Expr:
    return c.drop_nulls().mode().sort().first()


def _weighted_mean(_: pl.Expr, columns: List[str]) -> pl.Expr:
    value, weight = pl.col(columns[0]), pl.col(columns[1])
    return (value * weight).sum() / weight.sum()


def _scaled_div(c: pl.Expr, _: List[str]) -> pl.Expr:
    return c.sum() / pl.len()


_BUILDERS: Dict[AggregateOp, Callable[[pl.Expr, List[str]], pl.Expr]] = {
    AggregateOp.DISTINCT_COUNT: _distinct_count,
    AggregateOp.DISTINCT_LEAF: _distinct_count,
    AggregateOp.SUM: lambda c, _: c.sum(),
    AggregateOp.SUM_NOT_NULL: lambda c, _: c.drop_nulls().sum(),
    AggregateOp.SUM_ABS: lambda c, _: c.abs().sum(),
    AggregateOp.SCALED_ADD: lambda c, _: c.sum(),
    AggregateOp.SCALED_DIV: _scaled_div,
    AggregateOp.PCT_SUM_PARENT: lambda c, _: c.sum(),
    AggregateOp.PCT_SUM_GRAND_TOTAL: lambda c, _: c.sum(),
    AggregateOp.MUL: lambda c, _: c.product(),
    AggregateOp.MEAN: lambda c, _: c.mean(),
    AggregateOp.MEAN_BY_COUNT: lambda c, _: c.mean(),
    AggregateOp.WEIGHTED_MEAN: _weighted_mean,
    AggregateOp.COUNT: lambda c, _: pl.len(),
    AggregateOp.MEDIAN: lambda c, _: c.median(),
    AggregateOp.UNIQUE: _unique,
    AggregateOp.ANY: lambda c, _: c.first(),
    AggregateOp.IDENTITY: lambda c, _: c.first(),
    AggregateOp.JOIN: _join,
    AggregateOp.DOMINANT: _dominant,
    AggregateOp.FIRST_BY_INDEX: lambda c, _: c.sort_by(ORDER_KEY).first(),
    AggregateOp.LAST_BY_INDEX: lambda c, _: c.sort_by(ORDER_KEY).last(),
    AggregateOp.LAST_VALUE: lambda c, _: c.last(),
    AggregateOp.HIGH_WATER_MARK: lambda c, _: c.max(),
    AggregateOp.LOW_WATER_MARK: lambda c, _: c.min(),
    AggregateOp.AND: lambda c, _: c.cast(pl.Boolean).all(),
    AggregateOp.OR: lambda c, _: c.cast(pl.Boolean).any(),
}


def aggregate_expr(op: AggregateOp, columns: List[str], alias: str) -> pl.Expr:
    return _BUILDERS[op](pl.col(columns[0]), columns).alias(alias)


def _percent(value, total) -> Optional[float]:
    if value is None or not total:
        return None
    return value / total * 100


def postprocess(
    op: AggregateOp,
    value,
    parent_value,
    root_value,
    is_leaf: bool,
):
    """Finish one aggregated cell given its parent and grand-total cells."""
    if op is AggregateOp.PCT_SUM_PARENT:
        return _percent(value, value if parent_value is None else parent_value)
    if op is AggregateOp.PCT_SUM_GRAND_TOTAL:
        return _percent(value, root_value)
    if op is AggregateOp.DISTINCT_LEAF and not is_leaf:
        return None
    return value


NEEDS_TREE = {
    AggregateOp.PCT_SUM_PARENT,
    AggregateOp.PCT_SUM_GRAND_TOTAL,
    AggregateOp.DISTINCT_LEAF,
}
