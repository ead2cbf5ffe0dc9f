"""Type inference for raw input values.

``infer_type`` classifies a single value; the first matching rule wins:

1. null or missing -> no signal (``None``)
2. integral number, magnitude below 10000 and nonzero -> integer
3. any other number -> float
4. boolean -> boolean
5. native date/time value -> date
6. non-empty string holding a finite number -> float
7. string recognized as a date literal -> date
8. "true"/"false" in any case -> boolean
9. anything else -> string
"""

from __future__ import annotations

import logging
import math
from datetime import date
from numbers import Real
from typing import Any, Iterable, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from pivot_host.core import config
from pivot_host.core.dates import is_valid_date
from pivot_host.core.enums import LogicalType
from pivot_host.core.errors import MalformedInputError
from pivot_host.core.sentinels import MISSING

logger = logging.getLogger(__name__)

SMALL_INTEGER_BOUND = 10000


def is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, (bool, np.bool_))


def parse_number(text: str) -> Optional[float]:
    """Parse a numeric string, returning None unless it is a finite number."""
    text = text.strip()
    if not text or "_" in text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def infer_type(value: Any) -> Optional[LogicalType]:
    if value is None or value is MISSING or value is pd.NaT:
        return None
    if is_number(value):
        if float(value).is_integer() and 0 < abs(value) < SMALL_INTEGER_BOUND:
            return LogicalType.INTEGER
        return LogicalType.FLOAT
    if isinstance(value, (bool, np.bool_)):
        return LogicalType.BOOLEAN
    if isinstance(value, (date, np.datetime64)):
        return LogicalType.DATE
    if isinstance(value, str):
        if parse_number(value) is not None:
            return LogicalType.FLOAT
        if is_valid_date(value):
            return LogicalType.DATE
        if value.lower() in ("true", "false"):
            return LogicalType.BOOLEAN
    return LogicalType.STRING


def infer_column_type(values: Iterable[Any], name: Optional[str] = None) -> LogicalType:
    """Infer a column type from the first ``INFERENCE_SAMPLE_ROWS`` values.

    Stops at the first value that yields a type. Columns without any typed
    value in the sample default to string.
    """
    for ix, value in enumerate(values):
        if ix >= config.INFERENCE_SAMPLE_ROWS:
            break
        inferred = infer_type(value)
        if inferred is not None:
            return inferred

    logger.warning(
        "Could not infer type for column %r from sampled values; defaulting to string",
        name,
    )
    return LogicalType.STRING


def discover_names(rows: Sequence[Mapping[str, Any]]) -> List[str]:
    """Discover column names of row-oriented input.

    Starts from the keys of the first row and widens the name list while
    scanning a window of rows. The window starts at ``NAME_SCAN_WINDOW`` and
    doubles whenever a row introduces new names, so this is a heuristic: names
    that first appear beyond the window are not discovered.
    """
    if not rows:
        raise MalformedInputError("Cannot discover column names from zero rows")

    names = list(rows[0].keys())
    known = set(names)
    window = config.NAME_SCAN_WINDOW
    ix = 0
    while ix < min(window, len(rows)):
        row = rows[ix]
        extra = [key for key in row.keys() if key not in known]
        if extra:
            if window == config.NAME_SCAN_WINDOW:
                logger.warning("Row data has inconsistent keys; widening schema")
            logger.warning(
                "Extending from %d to %d columns at row %d",
                len(names),
                len(names) + len(extra),
                ix,
            )
            names.extend(extra)
            known.update(extra)
            window *= 2
        ix += 1
    return names
