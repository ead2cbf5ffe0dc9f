"""Date-literal parsing.

Date columns are stored as epoch milliseconds (UTC). ``DateParser`` tries a
fixed list of formats with ``pandas.to_datetime`` and remembers the last one
that matched, since a column almost always uses a single format throughout.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from numbers import Real
from typing import Any, Optional

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

DATE_FORMATS = [
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S%z",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%m/%d/%y",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%a, %d %b %Y %H:%M:%S %z",
    "%a %b %d %Y",
]


def to_epoch_ms(value: datetime) -> int:
    """Convert a datetime to epoch milliseconds, treating naive values as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - EPOCH) // timedelta(milliseconds=1)


def from_epoch_ms(value: int) -> datetime:
    return EPOCH + timedelta(milliseconds=value)


def _strip(text: str) -> str:
    text = text.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return text


def _match(text: str, fmt: str) -> Optional[int]:
    """Epoch milliseconds of ``text`` read strictly as ``fmt``, or None."""
    parsed = pd.to_datetime(text, format=fmt, errors="coerce", utc=True)
    if pd.isna(parsed):
        return None
    return int(parsed.value // 10**6)


class DateParser:
    """Parse date literals into epoch milliseconds.

    Accepts native ``datetime``/``date``/``numpy.datetime64`` values, numbers
    (already epoch milliseconds) and strings in any of ``DATE_FORMATS``.
    Unparseable strings yield ``None``.
    """

    def __init__(self) -> None:
        self._format: Optional[str] = None

    def parse(self, value: Any) -> Optional[int]:
        if value is None:
            return None
        if isinstance(value, datetime):
            return to_epoch_ms(value)
        if isinstance(value, date):
            return to_epoch_ms(datetime(value.year, value.month, value.day))
        if isinstance(value, np.datetime64):
            if np.isnat(value):
                return None
            return int(value.astype("datetime64[ms]").astype(np.int64))
        if isinstance(value, Real) and not isinstance(value, bool):
            return int(value)

        text = _strip(str(value))
        if not text:
            return None
        if self._format is not None:
            parsed = _match(text, self._format)
            if parsed is not None:
                return parsed

        for fmt in DATE_FORMATS:
            parsed = _match(text, fmt)
            if parsed is not None:
                self._format = fmt
                return parsed

        logger.debug("Could not parse date literal %r", value)
        return None


def is_valid_date(text: str) -> bool:
    """Return True if ``text`` matches one of the supported date formats."""
    stripped = _strip(text)
    if not stripped:
        return False
    return any(_match(stripped, fmt) is not None for fmt in DATE_FORMATS)
