# src/minibus/core/resolve.py
"""
Type-key resolution shared by registration and dispatch/publish.

- an explicit type_hint always wins (str verbatim, class -> its key)
- handlers: key of the first parameter's annotated class
- messages: key of the runtime class of the value
"""
from __future__ import annotations

import inspect
import types
from typing import Any, Callable, get_origin

from .contracts import AmbiguousHandlerType, AmbiguousMessageType, TypeHint, TypeKey

# values of these exact types carry no message identity of their own
PRIMITIVES: frozenset = frozenset({
    type(None), bool, int, float, complex,
    str, bytes, bytearray,
    list, tuple, dict, set, frozenset,
})

# classes, functions and modules are code, not messages (subclasses included)
NON_MESSAGES = (
    type, types.ModuleType,
    types.FunctionType, types.BuiltinFunctionType, types.MethodType,
)

_POSITIONAL = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
    inspect.Parameter.VAR_POSITIONAL,
)


def type_key_of(cls: type) -> TypeKey:
    """Routing key for a class: its module plus qualified name."""
    return f"{cls.__module__}.{cls.__qualname__}"


def _from_hint(type_hint: TypeHint) -> TypeKey | None:
    if type_hint is None:
        return None
    if isinstance(type_hint, str):
        return type_hint
    if isinstance(type_hint, type):
        return type_key_of(type_hint)
    raise TypeError(f"type_hint must be a str or a class, got {type(type_hint).__name__}")


def _is_concrete(ann: Any) -> bool:
    if not isinstance(ann, type) or get_origin(ann) is not None:
        return False
    if ann is Any or ann is object:
        return False
    return ann not in PRIMITIVES


def _signature(fn: Callable[..., Any]) -> inspect.Signature:
    try:
        return inspect.signature(fn, eval_str=True)
    except (NameError, SyntaxError, AttributeError):
        # an unrelated parameter may hold the unresolvable annotation
        return inspect.signature(fn)


def handler_type(fn: Callable[..., Any], type_hint: TypeHint = None) -> TypeKey:
    """Resolve the key a handler/listener is registered under."""
    key = _from_hint(type_hint)
    if key is not None:
        return key

    try:
        sig = _signature(fn)
    except (TypeError, ValueError) as e:
        raise AmbiguousHandlerType(fn, "signature is not inspectable") from e

    params = list(sig.parameters.values())
    if not params:
        raise AmbiguousHandlerType(fn, "takes no parameters")

    first = params[0]
    if first.kind not in _POSITIONAL:
        raise AmbiguousHandlerType(fn, f"first parameter '{first.name}' is not positional")

    ann = first.annotation
    if ann is inspect.Parameter.empty:
        raise AmbiguousHandlerType(fn, f"first parameter '{first.name}' is not annotated")
    if isinstance(ann, str):
        raise AmbiguousHandlerType(fn, f"annotation {ann!r} could not be resolved")
    if not _is_concrete(ann):
        raise AmbiguousHandlerType(fn, f"annotation {ann!r} is not a concrete class")
    return type_key_of(ann)


def message_type(message: Any, type_hint: TypeHint = None) -> TypeKey:
    """Resolve the key a command/event is routed by."""
    key = _from_hint(type_hint)
    if key is not None:
        return key
    cls = type(message)
    if cls in PRIMITIVES or isinstance(message, NON_MESSAGES):
        raise AmbiguousMessageType(message)
    return type_key_of(cls)
