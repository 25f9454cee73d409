"""Runtime helpers for payload type tags."""

from __future__ import annotations

import types
from typing import Any, Union, get_args, get_origin

from .exceptions import ExecutionResolutionError

_UNION_ORIGINS = (Union, types.UnionType)


def friendly_type_name(tp: Any) -> str:
    """Short display name for a payload type, e.g. ``float`` or ``list[int]``."""
    if tp is None:
        return "unknown"
    if tp is Any:
        return "Any"
    if tp is type(None):
        return "None"
    origin = get_origin(tp)
    if origin is not None:
        args = get_args(tp)
        if origin in _UNION_ORIGINS:
            return " | ".join(friendly_type_name(arg) for arg in args)
        base = getattr(origin, "__name__", repr(origin))
        if not args:
            return base
        return f"{base}[{', '.join(friendly_type_name(arg) for arg in args)}]"
    return getattr(tp, "__name__", repr(tp))


def is_payload_compatible(payload: Any, tp: Any) -> bool:
    """Check ``payload`` against ``tp`` without any coercion.

    ``None`` is accepted only by ``object``/``Any`` and optional types.
    Types that cannot be checked at runtime are accepted.
    """
    if tp is object or tp is Any:
        return True
    origin = get_origin(tp)
    if origin in _UNION_ORIGINS:
        return any(is_payload_compatible(payload, arg) for arg in get_args(tp))
    if payload is None:
        return tp is type(None)
    check = origin or tp
    if isinstance(check, type):
        return isinstance(payload, check)
    return True


def default_payload(tp: Any) -> Any:
    """Build the no-argument default instance of ``tp``."""
    factory = get_origin(tp) or tp
    if not isinstance(factory, type):
        raise ExecutionResolutionError(
            f"Payload type {friendly_type_name(tp)} has no default constructor."
        )
    try:
        return factory()
    except Exception as exc:
        raise ExecutionResolutionError(
            f"Unable to construct a default {friendly_type_name(tp)}: {exc}"
        ) from exc
