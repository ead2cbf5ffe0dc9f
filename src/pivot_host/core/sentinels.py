"""The ``MISSING`` cell marker.

``None`` is an explicit null. ``MISSING`` means the input did not mention the
cell at all, so an update leaves the stored value unchanged.
"""

from __future__ import annotations


class _Missing:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    def __reduce__(self):
        return "MISSING"


MISSING = _Missing()

__all__ = ["MISSING"]
