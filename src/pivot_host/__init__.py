"""pivot-host: tables, pivot views and a message host over a columnar engine.

Typical use:

    ```python
    import pivot_host

    t = pivot_host.table([{"region": "north", "sales": 10}, {"region": "south", "sales": 5}])
    v = t.view(row_pivot=["region"], aggregate=[{"column": "sales", "op": "sum"}])
    v.to_json()
    ```
"""

from typing import Any, Optional

from pivot_host.model.table import Table
from pivot_host.model.view import View

__all__ = [
    "Table",
    "View",
    "__version__",
    "table",
]

__version__ = "0.1.0"


def table(
    data: Any,
    index: Optional[str] = None,
    limit: Optional[int] = None,
    engine: Any = None,
) -> Table:
    """Create a Table; see ``Table.create``."""
    return Table.create(data, index=index, limit=limit, engine=engine)
