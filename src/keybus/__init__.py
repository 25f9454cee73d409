"""Top-level package for keybus."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .bus import EventBusSystem, SubscriberInfo, event_bus, get_event_bus
    from .callbacks import CallbackChain
    from .config import load_config
    from .exceptions import (
        ConfigValidationError,
        ExecutionResolutionError,
        KeyBusError,
        KeyCatalogError,
    )
    from .introspection import KeyIndex
    from .keys import EventKey

__all__ = [
    "CallbackChain",
    "ConfigValidationError",
    "EventBusSystem",
    "EventKey",
    "ExecutionResolutionError",
    "KeyBusError",
    "KeyCatalogError",
    "KeyIndex",
    "SubscriberInfo",
    "event_bus",
    "get_event_bus",
    "load_config",
]


def __getattr__(name: str) -> Any:
    """Lazily import symbols so tooling-only dependencies load on demand."""
    if name == "EventKey":
        from .keys import EventKey

        return EventKey
    if name == "CallbackChain":
        from .callbacks import CallbackChain

        return CallbackChain
    if name in {"EventBusSystem", "SubscriberInfo", "event_bus", "get_event_bus"}:
        from . import bus

        return getattr(bus, name)
    if name == "load_config":
        from .config import load_config

        return load_config
    if name in {
        "ConfigValidationError",
        "ExecutionResolutionError",
        "KeyBusError",
        "KeyCatalogError",
    }:
        from . import exceptions

        return getattr(exceptions, name)
    if name == "KeyIndex":
        from .introspection import KeyIndex

        return KeyIndex
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
