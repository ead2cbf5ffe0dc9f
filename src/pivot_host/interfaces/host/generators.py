"""Named table generators for the ``table_generate`` command.

Each generator builds a Table from parameters only.
"""

from __future__ import annotations

import inspect
from typing import Any, Callable, Dict, List, Mapping, Optional

from pivot_host.core.errors import MalformedInputError, UnknownGeneratorError
from pivot_host.model.table import Table


def sequence_table(
    engine: Any,
    count: int,
    column: str = "x",
    start: int = 0,
    step: int = 1,
    index: Optional[str] = None,
    limit: Optional[int] = None,
) -> Table:
    """One numeric column holding ``start, start + step, ...``."""
    values = [start + i * step for i in range(int(count))]
    if not values:
        return Table.create({column: "integer"}, index=index, limit=limit, engine=engine)
    return Table.create({column: values}, index=index, limit=limit, engine=engine)


def repeat_table(
    engine: Any,
    rows: List[Mapping[str, Any]],
    times: int = 1,
    index: Optional[str] = None,
    limit: Optional[int] = None,
) -> Table:
    """The given rows repeated ``times`` times."""
    data = [dict(row) for _ in range(int(times)) for row in rows]
    return Table.create(data, index=index, limit=limit, engine=engine)


def schema_table(
    engine: Any,
    schema: Mapping[str, str],
    index: Optional[str] = None,
    limit: Optional[int] = None,
) -> Table:
    """An empty table with the given schema."""
    return Table.create(dict(schema), index=index, limit=limit, engine=engine)


GENERATORS: Dict[str, Callable[..., Table]] = {
    "sequence": sequence_table,
    "repeat": repeat_table,
    "schema": schema_table,
}


def generate(engine: Any, spec: Mapping[str, Any]) -> Table:
    """Run the generator named by ``spec["generator"]`` with ``spec["params"]``."""
    name = spec.get("generator")
    if name not in GENERATORS:
        raise UnknownGeneratorError(name)
    generator = GENERATORS[name]
    params = dict(spec.get("params") or {})
    try:
        inspect.signature(generator).bind(engine, **params)
    except TypeError as e:
        raise MalformedInputError(
            f"Invalid parameters for generator '{name}': {e}", generator=name
        ) from e
    return generator(engine, **params)
