"""Filter predicates as polars expressions."""

from __future__ import annotations

from typing import Any, List, Optional

import polars as pl

from pivot_host.core.enums import FilterOp

from .binding import FilterSpec


def _as_text(column: str) -> pl.Expr:
    return pl.col(column).cast(pl.String)


def _nan(column: str) -> pl.Expr:
    return pl.col(column).cast(pl.Float64, strict=False).is_nan().fill_null(False)


def predicate(column: str, op: FilterOp, value: Any) -> pl.Expr:
    col = pl.col(column)
    if op is FilterOp.EQ:
        return col == value
    if op is FilterOp.NE:
        return col != value
    if op is FilterOp.LT:
        return col < value
    if op is FilterOp.GT:
        return col > value
    if op is FilterOp.LTEQ:
        return col <= value
    if op is FilterOp.GTEQ:
        return col >= value
    if op is FilterOp.CONTAINS:
        return _as_text(column).str.contains(str(value), literal=True)
    if op is FilterOp.BEGINS_WITH:
        return _as_text(column).str.starts_with(str(value))
    if op is FilterOp.ENDS_WITH:
        return _as_text(column).str.ends_with(str(value))
    if op is FilterOp.IN:
        values = list(value) if isinstance(value, (list, tuple, set)) else [value]
        return col.is_in(values)
    if op is FilterOp.IS_NAN:
        return _nan(column)
    if op is FilterOp.IS_NOT_NAN:
        return ~_nan(column)
    raise ValueError(f"'{op.value}' combines filters and cannot filter a column")


def build_predicate(filters: FilterSpec, filter_op: FilterOp) -> Optional[pl.Expr]:
    """Combine filter triples into one predicate, or None when there are none."""
    exprs: List[pl.Expr] = [predicate(column, op, value) for column, op, value in filters]
    if not exprs:
        return None
    if filter_op is FilterOp.OR:
        return pl.any_horizontal(exprs)
    return pl.all_horizontal(exprs)
