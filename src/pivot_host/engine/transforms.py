"""Registry of named computed-column transforms.

Computed columns reference a transform by name; only data crosses the host
boundary. Every transform propagates nulls: if any input is ``None`` the
output is ``None``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List

from pivot_host.core.dates import from_epoch_ms, to_epoch_ms
from pivot_host.core.enums import LogicalType
from pivot_host.core.errors import UnknownComputationError


@dataclass(frozen=True)
class Computation:
    """A named pure function usable as a computed column.

    Attributes:
        name: Registry key sent over the wire.
        func: Pure function of ``arity`` non-null arguments.
        arity: Number of input columns.
        input_type: Logical type the inputs are expected to have.
        return_type: Logical type of the produced column.
    """

    name: str
    func: Callable[..., Any]
    arity: int
    input_type: LogicalType
    return_type: LogicalType

    def __call__(self, *args: Any) -> Any:
        if any(arg is None for arg in args):
            return None
        return self.func(*args)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "input_type": self.input_type.value,
            "return_type": self.return_type.value,
            "num_params": self.arity,
        }


def _divide(a, b):
    return None if b == 0 else a / b


def _percent_of(a, b):
    return None if b == 0 else a / b * 100


def _invert(x):
    return None if x == 0 else 1 / x


def _sqrt(x):
    return None if x < 0 else math.sqrt(x)


def _date(ms: int) -> datetime:
    return from_epoch_ms(ms)


def _day_bucket(ms: int) -> int:
    d = _date(ms)
    return to_epoch_ms(datetime(d.year, d.month, d.day))


def _week_bucket(ms: int) -> int:
    d = _date(ms)
    start = datetime(d.year, d.month, d.day)
    return to_epoch_ms(start) - d.weekday() * 86_400_000


def _month_bucket(ms: int) -> int:
    d = _date(ms)
    return to_epoch_ms(datetime(d.year, d.month, 1))


def _year_bucket(ms: int) -> int:
    return to_epoch_ms(datetime(_date(ms).year, 1, 1))


_F, _I, _S, _D = LogicalType.FLOAT, LogicalType.INTEGER, LogicalType.STRING, LogicalType.DATE

_COMPUTATIONS: List[Computation] = [
    # Numeric
    Computation("add", lambda a, b: a + b, 2, _F, _F),
    Computation("subtract", lambda a, b: a - b, 2, _F, _F),
    Computation("multiply", lambda a, b: a * b, 2, _F, _F),
    Computation("divide", _divide, 2, _F, _F),
    Computation("percent_of", _percent_of, 2, _F, _F),
    Computation("pow2", lambda x: x * x, 1, _F, _F),
    Computation("sqrt", _sqrt, 1, _F, _F),
    Computation("abs", abs, 1, _F, _F),
    Computation("invert", _invert, 1, _F, _F),
    Computation("bin10", lambda x: math.floor(x / 10) * 10.0, 1, _F, _F),
    Computation("bin100", lambda x: math.floor(x / 100) * 100.0, 1, _F, _F),
    # String
    Computation("uppercase", lambda s: s.upper(), 1, _S, _S),
    Computation("lowercase", lambda s: s.lower(), 1, _S, _S),
    Computation("length", len, 1, _S, _I),
    Computation("concat_space", lambda a, b: f"{a} {b}", 2, _S, _S),
    Computation("concat_comma", lambda a, b: f"{a}, {b}", 2, _S, _S),
    # Date
    Computation("hour_of_day", lambda ms: _date(ms).hour, 1, _D, _I),
    Computation("day_of_week", lambda ms: _date(ms).strftime("%A"), 1, _D, _S),
    Computation("month_of_year", lambda ms: _date(ms).strftime("%B"), 1, _D, _S),
    Computation("day_bucket", _day_bucket, 1, _D, _D),
    Computation("week_bucket", _week_bucket, 1, _D, _D),
    Computation("month_bucket", _month_bucket, 1, _D, _D),
    Computation("year_bucket", _year_bucket, 1, _D, _D),
]

COMPUTATIONS: Dict[str, Computation] = {c.name: c for c in _COMPUTATIONS}


def get_computation(name: str) -> Computation:
    try:
        return COMPUTATIONS[name]
    except KeyError as e:
        raise UnknownComputationError(name) from e
