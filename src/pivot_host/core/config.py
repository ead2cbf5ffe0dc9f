"""Configuration constants.

This module centralizes the tunables of ingestion, pivoting and the host
protocol. Constants are read through the module (``config.CHUNKED_THRESHOLD``)
so tests can patch them.

Reserved names:
    - ``ORDER_KEY``: internal row-identity column, never part of a user schema.
      Also the synthetic row pivot of column-only views.
    - ``ROW_PATH``: synthetic output column holding a pivoted row's path.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Union

import yaml

from pivot_host.core.enums import AggregateOp, LogicalType
from pivot_host.core.errors import MalformedInputError

# ============================================================================
# RESERVED NAMES
# ============================================================================

ORDER_KEY = "__ORDER_KEY__"
ROW_PATH = "__ROW_PATH__"
COLUMN_SEPARATOR = "|"


# ============================================================================
# INGESTION
# ============================================================================

# Loads larger than this are submitted to the engine page by page
CHUNKED_THRESHOLD = 100_000

# Rows sampled when inferring a column type
INFERENCE_SAMPLE_ROWS = 100

# Initial window of rows scanned for additional column names (doubles on growth)
NAME_SCAN_WINDOW = 50

# Integers outside this range widen an inferred integer column to float
INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1

# Limit passed to the engine for unbounded tables
NO_LIMIT = 4294967295


# ============================================================================
# AGGREGATES
# ============================================================================

# Aggregate used for a column named without an explicit op
TYPE_AGGREGATES: Dict[LogicalType, AggregateOp] = {
    LogicalType.INTEGER: AggregateOp.SUM,
    LogicalType.FLOAT: AggregateOp.SUM,
    LogicalType.STRING: AggregateOp.COUNT,
    LogicalType.BOOLEAN: AggregateOp.COUNT,
    LogicalType.DATE: AggregateOp.COUNT,
}

# Output type overrides for pivoted view schemas
INTEGER_AGGREGATES = ["distinct count", "distinctcount", "distinct", "count"]
FLOAT_AGGREGATES = [
    "avg",
    "mean",
    "mean by count",
    "weighted mean",
    "pct sum parent",
    "pct sum grand total",
]


# ============================================================================
# VIEW CONFIG FILES
# ============================================================================

VIEW_CONFIG_KEYS = (
    "row_pivot",
    "column_pivot",
    "aggregate",
    "filter",
    "filter_op",
    "sort",
    "row_pivot_depth",
    "column_pivot_depth",
    "viewport",
)


def load_view_config(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a view configuration from a YAML file.

    Args:
        path: YAML file whose top level is a mapping of view config keys.

    Returns:
        The configuration mapping. Unknown keys are rejected.

    Raises:
        MalformedInputError: If the document is not a mapping or names an
            unknown key.

    Examples:
        >>> load_view_config("by_region.yaml")  # doctest: +SKIP
        {'row_pivot': ['region'], 'aggregate': [{'column': 'sales', 'op': 'sum'}]}
    """
    with open(path, "r", encoding="utf-8") as f:
        document = yaml.safe_load(f)

    if document is None:
        return {}
    if not isinstance(document, dict):
        raise MalformedInputError(
            f"View config {path} must be a mapping, got {type(document).__name__}",
            path=str(path),
        )

    unknown = sorted(set(document) - set(VIEW_CONFIG_KEYS))
    if unknown:
        raise MalformedInputError(
            f"Unknown view config key(s) in {path}: {', '.join(unknown)}",
            path=str(path),
            keys=unknown,
        )
    return document
