"""Exception hierarchy.

Every error carries its diagnostic context as plain attributes so that
``error_to_json`` can ship them across the host boundary unchanged.
"""

from __future__ import annotations

from typing import Any, Optional


class PivotHostError(Exception):
    """Base class for all errors raised by pivot_host."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        for key, value in details.items():
            setattr(self, key, value)


# ============================================================================
# INGESTION
# ============================================================================


class MalformedInputError(PivotHostError):
    """Input shape cannot be classified, or schema-less input has no rows."""


class UnknownTypeError(PivotHostError):
    def __init__(self, type_name: Any, column: Optional[str] = None) -> None:
        super().__init__(
            f"Unknown type '{type_name}'" + (f" for column '{column}'" if column else ""),
            type_name=str(type_name),
            column=column,
        )


# ============================================================================
# TABLE
# ============================================================================


class ConflictingOptionsError(PivotHostError):
    def __init__(self, index: str, limit: int) -> None:
        super().__init__(
            "Cannot specify both index and limit", index=index, limit=limit
        )


class UnknownIndexColumnError(PivotHostError):
    def __init__(self, index: str) -> None:
        super().__init__(
            f"Specified index '{index}' does not exist in data.", index=index
        )


class IndexNotSetError(PivotHostError):
    def __init__(self, table: str) -> None:
        super().__init__(
            f"Table '{table}' has no index; rows can only be removed by key",
            table=table,
        )


class TableHasViewsError(PivotHostError):
    def __init__(self, table: str, view_count: int) -> None:
        super().__init__(
            f"Cannot delete Table as it still has {view_count} registered View(s).",
            table=table,
            view_count=view_count,
        )


class UnknownComputationError(PivotHostError):
    def __init__(self, computation: str) -> None:
        super().__init__(
            f"Unknown computation '{computation}'", computation=computation
        )


# ============================================================================
# VIEW
# ============================================================================


class InvalidAggregateArityError(PivotHostError):
    def __init__(self, op: str, columns: Any, expected: int) -> None:
        super().__init__(
            f"'{op}' has incorrect arity ({len(columns)}) for column dependencies.",
            op=op,
            columns=list(columns),
            arity=len(columns),
            expected=expected,
        )


class UnknownOperatorError(PivotHostError):
    def __init__(self, kind: str, op: Any) -> None:
        super().__init__(f"Unknown {kind} operator '{op}'", kind=kind, op=str(op))


class ViewDeletedError(PivotHostError):
    def __init__(self, view: str) -> None:
        super().__init__(f"View '{view}' has been deleted", view=view)


# ============================================================================
# HOST
# ============================================================================


class ViewNotInitializedError(PivotHostError):
    def __init__(self, view: Optional[str] = None) -> None:
        super().__init__("View is not initialized", view=view)


class EngineNotReadyError(PivotHostError):
    def __init__(self, state: str) -> None:
        super().__init__(
            f"Host is not ready (state: {state}); send 'init' first", state=state
        )


class UnknownCommandError(PivotHostError):
    def __init__(self, cmd: Any) -> None:
        super().__init__(f"Unknown command '{cmd}'", cmd=str(cmd))


class UnknownMethodError(PivotHostError):
    def __init__(self, target: str, method: Any, reason: str = "is not supported") -> None:
        super().__init__(
            f"{target} method '{method}' {reason}", target=target, method=str(method)
        )


class UnknownGeneratorError(PivotHostError):
    def __init__(self, generator: Any) -> None:
        super().__init__(f"Unknown table generator '{generator}'", generator=str(generator))


# ============================================================================
# ENGINE
# ============================================================================


class ReleasedHandleError(PivotHostError):
    def __init__(self, kind: str) -> None:
        super().__init__(f"{kind} handle has already been released", kind=kind)


__all__ = [
    "ConflictingOptionsError",
    "EngineNotReadyError",
    "IndexNotSetError",
    "InvalidAggregateArityError",
    "MalformedInputError",
    "PivotHostError",
    "ReleasedHandleError",
    "TableHasViewsError",
    "UnknownCommandError",
    "UnknownComputationError",
    "UnknownGeneratorError",
    "UnknownIndexColumnError",
    "UnknownMethodError",
    "UnknownOperatorError",
    "UnknownTypeError",
    "ViewDeletedError",
    "ViewNotInitializedError",
]
