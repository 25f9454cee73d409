"""Composed callbacks and subscriber identity helpers."""

from __future__ import annotations

from collections.abc import Callable, Iterator
import functools
import inspect
from typing import Any

STATIC_SENTINEL = "(static)"


class CallbackChain:
    """Ordered group of callbacks invoked as a single unit.

    Calling the chain invokes each element in order with the same payload.
    An exception raised by one element propagates and skips the rest.
    """

    __slots__ = ("_callbacks",)

    def __init__(self, *callbacks: Callable[[Any], None]) -> None:
        flat: list[Callable[[Any], None]] = []
        for callback in callbacks:
            flat.extend(invocation_list(callback))
        self._callbacks: tuple[Callable[[Any], None], ...] = tuple(flat)

    def __call__(self, payload: Any) -> None:
        for callback in self._callbacks:
            callback(payload)

    def __iter__(self) -> Iterator[Callable[[Any], None]]:
        return iter(self._callbacks)

    def __len__(self) -> int:
        return len(self._callbacks)

    def __add__(self, other: Callable[[Any], None]) -> CallbackChain:
        return CallbackChain(self, other)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CallbackChain):
            return NotImplemented
        return self._callbacks == other._callbacks

    def __hash__(self) -> int:
        return hash(self._callbacks)

    def __repr__(self) -> str:
        names = ", ".join(describe_callback(cb)[1] for cb in self._callbacks)
        return f"CallbackChain({names})"


def invocation_list(callback: Callable[[Any], None]) -> list[Callable[[Any], None]]:
    """Return the flat list of underlying callables in ``callback``."""
    if isinstance(callback, CallbackChain):
        return list(callback._callbacks)
    return [callback]


def instance_identity(target: object) -> str:
    return f"{type(target).__name__}@{id(target):#x}"


def describe_callback(callback: Callable[..., Any]) -> tuple[str, str, str]:
    """Return ``(declaring type name, method name, instance identity)``.

    Functions without a bound instance report the static sentinel for both
    the declaring type and the identity.
    """
    while isinstance(callback, functools.partial):
        callback = callback.func

    if inspect.ismethod(callback):
        target = callback.__self__
        if isinstance(target, type):
            # classmethod: bound to the class, not an instance.
            return target.__name__, callback.__func__.__name__, STATIC_SENTINEL
        return type(target).__name__, callback.__func__.__name__, instance_identity(target)

    if inspect.isbuiltin(callback):
        target = getattr(callback, "__self__", None)
        if target is not None and not inspect.ismodule(target):
            return type(target).__name__, callback.__name__, instance_identity(target)
        return STATIC_SENTINEL, callback.__name__, STATIC_SENTINEL

    if inspect.isfunction(callback):
        return STATIC_SENTINEL, getattr(callback, "__name__", repr(callback)), STATIC_SENTINEL

    # Any other callable object dispatches through __call__.
    return type(callback).__name__, "__call__", instance_identity(callback)
