"""Engine binding and the reference polars engine."""

from __future__ import annotations

from functools import lru_cache

from pivot_host.engine.binding import EngineBinding, Handle
from pivot_host.engine.polars_engine import PolarsEngine


@lru_cache(maxsize=1)
def get_default_engine() -> PolarsEngine:
    """Process-wide engine used when a Table is created without one."""
    return PolarsEngine()


__all__ = ["EngineBinding", "Handle", "PolarsEngine", "get_default_engine"]
