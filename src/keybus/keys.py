"""Typed event keys.

An ``EventKey`` names one channel on the bus. The payload type is carried
statically by the type parameter and at runtime by ``payload_type`` so the
registry can check it explicitly::

    class ScoreKeys:
        SCORE_CHANGED: EventKey[float] = EventKey("Score", "Score changed", float)
        # equivalent
        BEST_SCORE = EventKey[float]("BestScore", "New best score")
"""

from __future__ import annotations

from functools import total_ordering
from typing import Any, Generic, TypeVar, get_args

T = TypeVar("T")


@total_ordering
class EventKey(Generic[T]):
    """Immutable channel identifier; identity is the string ``value`` only."""

    __slots__ = ("_value", "_description", "_payload_type", "__orig_class__")

    def __init__(
        self, value: str, description: str = "", payload_type: Any = None
    ) -> None:
        object.__setattr__(self, "_value", value)
        object.__setattr__(self, "_description", description)
        object.__setattr__(self, "_payload_type", payload_type)

    def __setattr__(self, name: str, value: Any) -> None:
        # typing sets __orig_class__ after EventKey[T](...) construction.
        if name == "__orig_class__":
            object.__setattr__(self, name, value)
            return
        raise AttributeError(f"{type(self).__name__} is immutable")

    @property
    def value(self) -> str:
        return self._value

    @property
    def description(self) -> str:
        return self._description

    @property
    def payload_type(self) -> Any:
        """Runtime tag of ``T``; ``object`` when the key was declared untyped."""
        if self._payload_type is not None:
            return self._payload_type
        orig = getattr(self, "__orig_class__", None)
        args = get_args(orig) if orig is not None else ()
        if args and not isinstance(args[0], TypeVar):
            return args[0]
        return object

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        type_name = getattr(self.payload_type, "__name__", repr(self.payload_type))
        return f"EventKey[{type_name}]({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EventKey):
            return NotImplemented
        return self._value == other._value

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, EventKey):
            return NotImplemented
        return self._value < other._value

    def __hash__(self) -> int:
        return hash(self._value)
