"""Output formatters for view slices.

A formatter receives cells one at a time from ``View._format`` and builds
row-oriented records, column arrays or CSV text.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pandas as pd

from pivot_host.core.config import COLUMN_SEPARATOR, ROW_PATH


class JsonFormatter:
    """Row-oriented output: a list of ``{column: value}`` records."""

    def init_data(self, header: List[str]) -> List[Dict[str, Any]]:
        return []

    def init_row(self) -> Dict[str, Any]:
        return {}

    def set_value(self, data, row: Dict[str, Any], name: str, value: Any) -> None:
        row[name] = value

    def add_row(self, data: List[Dict[str, Any]], row: Dict[str, Any]) -> None:
        data.append(row)

    def format(self, data, header: List[str], options: Optional[Dict[str, Any]] = None):
        return data


class ColumnsFormatter:
    """Column-oriented output: ``{column: [values]}``."""

    def init_data(self, header: List[str]) -> Dict[str, List[Any]]:
        return {name: [] for name in header}

    def init_row(self) -> None:
        return None

    def set_value(self, data: Dict[str, List[Any]], row, name: str, value: Any) -> None:
        data.setdefault(name, []).append(value)

    def add_row(self, data, row) -> None:
        pass

    def format(self, data, header: List[str], options: Optional[Dict[str, Any]] = None):
        return data


class CsvFormatter(JsonFormatter):
    """CSV text. ``options`` are forwarded to ``DataFrame.to_csv``."""

    def format(self, data, header: List[str], options: Optional[Dict[str, Any]] = None) -> str:
        records = []
        for row in data:
            if ROW_PATH in row:
                row = dict(row)
                row[ROW_PATH] = COLUMN_SEPARATOR.join(str(v) for v in row[ROW_PATH])
            records.append(row)
        frame = pd.DataFrame.from_records(records, columns=header)
        return frame.to_csv(**{"index": False, **(options or {})})


FORMATTERS = {
    "json": JsonFormatter(),
    "columns": ColumnsFormatter(),
    "csv": CsvFormatter(),
}
