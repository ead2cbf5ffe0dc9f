"""Tables, views and view-configuration translation."""

from pivot_host.model.table import ComputedColumn, Table
from pivot_host.model.view import View

__all__ = ["ComputedColumn", "Table", "View"]
