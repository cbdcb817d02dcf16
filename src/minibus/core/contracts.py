from __future__ import annotations

from typing import Any, Optional, Protocol, Union


__all__ = [
    "TypeKey",
    "TypeHint",
    "BusError",
    "AmbiguousTypeError",
    "AmbiguousHandlerType",
    "AmbiguousMessageType",
    "DuplicateHandler",
    "NoHandlerRegistered",
    "CommandBus",
]


# --------- Primitive / aliases ---------
TypeKey = str
TypeHint = Optional[Union[str, type]]


# --------- Errors ---------
class BusError(Exception):
    """Root of every error raised by the bus itself (never by a handler)."""


class AmbiguousTypeError(BusError, TypeError):
    """A type key could not be derived and no type_hint was given."""


class AmbiguousHandlerType(AmbiguousTypeError):
    def __init__(self, handler: Any = None, reason: str = ""):
        self.handler = handler
        self.reason = reason
        msg = "The handler given did not have an explicit type hint, and no type_hint was given"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)


class AmbiguousMessageType(AmbiguousTypeError):
    def __init__(self, message: Any = None):
        self.message = message
        super().__init__(
            "The message given has no type identity "
            f"({type(message).__name__}), and no type_hint was given"
        )


class DuplicateHandler(BusError, ValueError):
    """Only one handler may answer a type key."""

    def __init__(self, type_key: TypeKey):
        self.type_key = type_key
        super().__init__(f"A handler has already been registered for type {type_key}")


class NoHandlerRegistered(BusError, LookupError):
    def __init__(self, type_key: TypeKey):
        self.type_key = type_key
        super().__init__(f"No handler has been registered for type {type_key}")


# --------- Interface ---------
class CommandBus(Protocol):
    """What callers need from a bus: send a command, announce an event."""

    def dispatch(self, command: Any, type_hint: TypeHint = None) -> Any:  # pragma: no cover - Protocol
        ...

    def publish(self, event: Any, type_hint: TypeHint = None) -> None:  # pragma: no cover - Protocol
        ...
