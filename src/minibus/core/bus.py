# src/minibus/core/bus.py
from __future__ import annotations

import functools
import itertools
import logging
from typing import Any, Callable, Optional, Tuple

from minibus.core import log
from minibus.core.contracts import NoHandlerRegistered, TypeHint, TypeKey
from minibus.core.metrics import Timer, emit, gauge_set, inc, snapshot
from minibus.core.resolve import handler_type, message_type, type_key_of
from minibus.core.routes import RouteTable


_bus_ids = itertools.count(1)


def _fn_name(fn: Callable[..., Any]) -> str:
    """Stable label for a callable; never includes a memory address."""
    while isinstance(fn, functools.partial):
        fn = fn.func
    name = getattr(fn, "__qualname__", None) or getattr(fn, "__name__", None)
    return name if isinstance(name, str) else type(fn).__qualname__


def _as_key(type_or_key: str | type) -> TypeKey:
    return type_or_key if isinstance(type_or_key, str) else type_key_of(type_or_key)


class Bus:
    """
    Synchronous, in-process command/event bus.

    - dispatch(): one command -> exactly one handler, result returned as-is
    - publish(): one event -> every listener for its type (registration order),
      then every wildcard listener (registration order)

    Routing keys come from type annotations / runtime classes unless a
    ``type_hint`` is given, which always wins. Exceptions raised by handlers
    and listeners propagate unchanged; a failing listener stops the rest of
    that publish.
    """

    def __init__(self, name: str = "minibus.bus", metrics: bool = True):
        self.name = name
        self.metrics = bool(metrics)
        # buses may share a name; bus_id keeps their metric series apart
        self.bus_id = next(_bus_ids)
        self.metric_labels = {"bus": self.name, "bus_id": self.bus_id}
        self.l = log.get(self.name)
        self._routes = RouteTable()

    # -------------------- registration --------------------
    def register_handler(self, handler: Callable[[Any], Any], type_hint: TypeHint = None) -> "Bus":
        """Register the single handler for a command type."""
        key = handler_type(handler, type_hint)
        self._routes.add_handler(key, handler)
        self.l.info("handler registered type=%s fn=%s", key, _fn_name(handler))
        if self.metrics:
            gauge_set("bus_handlers", float(self._routes.handler_count()), **self.metric_labels)
        return self

    def register_listener(self, listener: Callable[[Any], Any], type_hint: TypeHint = None) -> "Bus":
        """Add a listener for an event type; listeners run in registration order."""
        key = handler_type(listener, type_hint)
        n = self._routes.add_listener(key, listener)
        self.l.info("listener registered type=%s fn=%s", key, _fn_name(listener))
        if self.metrics:
            gauge_set("bus_listeners", float(n), **self.metric_labels, type=key)
        return self

    def register_wildcard(self, listener: Callable[[Any], Any]) -> "Bus":
        """Add a listener for every event; wildcards run after type listeners."""
        n = self._routes.add_wildcard(listener)
        self.l.info("wildcard registered fn=%s", _fn_name(listener))
        if self.metrics:
            gauge_set("bus_wildcards", float(n), **self.metric_labels)
        return self

    # -------------------- routing --------------------
    def dispatch(self, command: Any, type_hint: TypeHint = None) -> Any:
        key = message_type(command, type_hint)
        handler = self._routes.handler_for(key)
        if handler is None:
            if self.metrics:
                inc("bus_dispatch_miss_total", 1, **self.metric_labels, type=key)
            raise NoHandlerRegistered(key)

        self.l.debug("dispatch type=%s fn=%s", key, _fn_name(handler))
        if self.metrics:
            inc("bus_dispatch_total", 1, **self.metric_labels, type=key)
        with Timer("bus_dispatch_ms", enabled=self.metrics, **self.metric_labels, type=key):
            return handler(command)

    def publish(self, event: Any, type_hint: TypeHint = None) -> None:
        key = message_type(event, type_hint)
        listeners = self._routes.listeners_for(key)
        wildcards = self._routes.wildcard_snapshot()

        self.l.debug("publish type=%s listeners=%d wildcards=%d", key, len(listeners), len(wildcards))
        if self.metrics:
            inc("bus_publish_total", 1, **self.metric_labels, type=key)

        with Timer("bus_publish_ms", enabled=self.metrics, **self.metric_labels, type=key):
            # the first exception escapes and skips everything after it
            for fn in listeners + wildcards:
                fn(event)
                if self.metrics:
                    inc("bus_deliver_total", 1, **self.metric_labels, type=key, sub=_fn_name(fn))

    # -------------------- introspection --------------------
    def has_handler(self, type_or_key: str | type) -> bool:
        return self._routes.has_handler(_as_key(type_or_key))

    def handler_keys(self) -> Tuple[TypeKey, ...]:
        return self._routes.handler_keys()

    def listener_count(self, type_or_key: str | type) -> int:
        return len(self._routes.listeners_for(_as_key(type_or_key)))

    def wildcard_count(self) -> int:
        return len(self._routes.wildcard_snapshot())

    def stats(self) -> dict:
        """This bus's metric series only (see metrics.snapshot)."""
        return snapshot(bus_id=self.bus_id)

    def report(self, logger: Optional[logging.Logger] = None) -> None:
        """Log this bus's metric series at INFO."""
        emit(logger or self.l, bus_id=self.bus_id)

    def __repr__(self) -> str:
        return (
            f"Bus(name={self.name!r}, handlers={self._routes.handler_count()}, "
            f"listener_types={len(self._routes.listener_keys())}, wildcards={self.wildcard_count()})"
        )
