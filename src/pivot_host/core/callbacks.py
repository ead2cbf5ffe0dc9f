"""Stable callback registry.

Callbacks are keyed by a monotonically increasing id. Removing an owner while
``notify`` is running only tombstones its entries; they are compacted once the
outermost ``notify`` returns, so removal during notification never skips or
repeats another callback.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    owner: Any
    callback: Callable[[], None]
    alive: bool = True


class CallbackRegistry:
    def __init__(self) -> None:
        self._entries: Dict[int, _Entry] = {}
        self._next_id = 0
        self._depth = 0

    def add(self, owner: Any, callback: Callable[[], None]) -> int:
        key = self._next_id
        self._next_id += 1
        self._entries[key] = _Entry(owner, callback)
        return key

    def remove_owner(self, owner: Any) -> int:
        """Tombstone every callback registered by ``owner``; return how many."""
        removed = 0
        for entry in self._entries.values():
            if entry.alive and entry.owner is owner:
                entry.alive = False
                removed += 1
        if self._depth == 0:
            self._compact()
        return removed

    def notify(self) -> None:
        self._depth += 1
        try:
            for key in list(self._entries):
                entry = self._entries.get(key)
                if entry is None or not entry.alive:
                    continue
                try:
                    entry.callback()
                except Exception:  # pylint: disable=broad-except
                    logger.exception("Update callback for %r failed", entry.owner)
        finally:
            self._depth -= 1
            if self._depth == 0:
                self._compact()

    def _compact(self) -> None:
        self._entries = {k: e for k, e in self._entries.items() if e.alive}

    def __len__(self) -> int:
        return sum(1 for e in self._entries.values() if e.alive)
