# src/minibus/core/routes.py
from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from .contracts import DuplicateHandler, TypeKey

Callback = Callable[[Any], Any]


class RouteTable:
    """
    The three routing tables of a bus, behind one re-entrant lock.

    Readers get tuple snapshots, so callbacks run outside the lock and may
    register more callbacks (or publish) without deadlocking. Nothing is
    ever removed.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._handlers: Dict[TypeKey, Callback] = {}
        self._listeners: Dict[TypeKey, List[Callback]] = {}
        self._wildcards: List[Callback] = []

    # ---- writes ----
    def add_handler(self, key: TypeKey, fn: Callback) -> None:
        with self._lock:
            if key in self._handlers:
                raise DuplicateHandler(key)
            self._handlers[key] = fn

    def add_listener(self, key: TypeKey, fn: Callback) -> int:
        """Append and return how many listeners the key now has."""
        with self._lock:
            fns = self._listeners.setdefault(key, [])
            fns.append(fn)
            return len(fns)

    def add_wildcard(self, fn: Callback) -> int:
        with self._lock:
            self._wildcards.append(fn)
            return len(self._wildcards)

    # ---- reads ----
    def handler_for(self, key: TypeKey) -> Optional[Callback]:
        with self._lock:
            return self._handlers.get(key)

    def has_handler(self, key: TypeKey) -> bool:
        with self._lock:
            return key in self._handlers

    def listeners_for(self, key: TypeKey) -> Tuple[Callback, ...]:
        with self._lock:
            return tuple(self._listeners.get(key, ()))

    def wildcard_snapshot(self) -> Tuple[Callback, ...]:
        with self._lock:
            return tuple(self._wildcards)

    def handler_keys(self) -> Tuple[TypeKey, ...]:
        with self._lock:
            return tuple(self._handlers)

    def listener_keys(self) -> Tuple[TypeKey, ...]:
        with self._lock:
            return tuple(self._listeners)

    def handler_count(self) -> int:
        with self._lock:
            return len(self._handlers)
