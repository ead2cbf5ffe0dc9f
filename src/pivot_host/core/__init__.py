"""Shared enums, errors, constants and small utilities."""

from pivot_host.core.enums import (
    AggregateOp,
    ContextType,
    FilterOp,
    Header,
    LogicalType,
    SortOrder,
)
from pivot_host.core.sentinels import MISSING

__all__ = [
    "AggregateOp",
    "ContextType",
    "FilterOp",
    "Header",
    "LogicalType",
    "MISSING",
    "SortOrder",
]
