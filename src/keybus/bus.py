"""Process-wide typed event bus.

Channels are identified by the string value of an ``EventKey``. Each live
channel is bound to exactly one payload type and holds its subscribers in
registration order::

    bus = EventBusSystem()
    bus.register(ScoreKeys.SCORE_CHANGED, on_score)
    bus.execute(ScoreKeys.SCORE_CHANGED, 12.5)
    bus.unregister(ScoreKeys.SCORE_CHANGED, on_score)

Misuse never raises: type conflicts, unknown channels and subscriber faults
are reported through logging only.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
import logging
from types import MappingProxyType
from typing import Any, TypeVar

from .callbacks import describe_callback, invocation_list
from .config import BusConfig
from .exceptions import ExecutionResolutionError
from .keys import EventKey
from .typecheck import default_payload, friendly_type_name, is_payload_compatible

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


@dataclass(frozen=True)
class ChannelHandle:
    """Read-only view of one channel: its bound type and subscriber chain."""

    payload_type: Any
    subscribers: tuple[Callable[[Any], None], ...] = ()

    @property
    def subscriber_count(self) -> int:
        return len(self.subscribers)


@dataclass(frozen=True)
class SubscriberInfo:
    """Debug record describing one registered subscriber."""

    payload_type: Any
    target_class_name: str
    method_name: str
    target_identity: str
    key_value: str

    @property
    def payload_type_name(self) -> str:
        return friendly_type_name(self.payload_type)

    def matches(self, callback: Callable[..., Any]) -> bool:
        return describe_callback(callback) == (
            self.target_class_name,
            self.method_name,
            self.target_identity,
        )


class EventBusSystem:
    """Registry mapping channel identifiers to typed subscriber chains.

    All operations run synchronously on the caller's thread. There is no
    locking; callers that share a bus across threads must serialize access.
    """

    def __init__(self, config: BusConfig | None = None) -> None:
        self.config = config or BusConfig()
        self._event_table: dict[str, ChannelHandle] = {}
        self._register_meta: dict[str, list[SubscriberInfo]] = {}
        self._resolve_cache: dict[tuple[Any, Any], Any] = {}

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> EventBusSystem:
        """Build a bus from a loaded config mapping (see ``load_config``)."""
        return cls(BusConfig.model_validate(config.get("bus", {})))

    def configure(self, config: BusConfig) -> None:
        """Swap in new settings; channels and subscribers are kept."""
        self.config = config
        self._resolve_cache.clear()
        LOGGER.debug(
            "Bus configured with fault_policy=%s",
            config.fault_policy,
            extra={"event": "bus.configured", "policy": config.fault_policy},
        )

    # Registration

    def register(self, key: EventKey[T], callback: Callable[[T], None]) -> None:
        """Append ``callback`` to the channel named by ``key``.

        The first registration binds the channel to ``key.payload_type``.
        Registering under a different payload type is rejected with a
        warning and leaves the channel untouched.
        """
        key_value = key.value
        payload_type = key.payload_type

        if not callable(callback):
            LOGGER.warning(
                "Ignoring non-callable subscriber for channel %s",
                key_value,
                extra={"event": "bus.invalid_callback", "channel": key_value},
            )
            return

        callbacks = tuple(invocation_list(callback))
        if not callbacks:
            return

        handle = self._event_table.get(key_value)
        if handle is None:
            self._event_table[key_value] = ChannelHandle(payload_type, callbacks)
        elif handle.payload_type == payload_type:
            self._event_table[key_value] = ChannelHandle(
                payload_type, handle.subscribers + callbacks
            )
        else:
            LOGGER.warning(
                "Type conflict on channel %s: bound to %s, rejected %s subscriber",
                key_value,
                friendly_type_name(handle.payload_type),
                friendly_type_name(payload_type),
                extra={
                    "event": "bus.type_conflict",
                    "channel": key_value,
                    "bound_type": friendly_type_name(handle.payload_type),
                    "payload_type": friendly_type_name(payload_type),
                },
            )
            return

        if self.config.introspection:
            records = self._register_meta.setdefault(key_value, [])
            records.extend(
                self._describe(key_value, payload_type, item) for item in callbacks
            )

        if self.config.trace_registrations:
            target = ", ".join(
                ".".join(describe_callback(item)[:2]) for item in callbacks
            )
            LOGGER.debug(
                "Register event key=%s payload_type=%s target=%s",
                key_value,
                friendly_type_name(payload_type),
                target,
                extra={
                    "event": "bus.register",
                    "channel": key_value,
                    "payload_type": friendly_type_name(payload_type),
                    "target": target,
                },
            )

    def unregister(self, key: EventKey[T], callback: Callable[[T], None]) -> None:
        """Remove one occurrence of each callable in ``callback`` from the channel.

        Unknown channels, channels bound to another type and callbacks that
        were never registered are silently ignored.
        """
        key_value = key.value
        handle = self._event_table.get(key_value)
        if handle is None or handle.payload_type != key.payload_type:
            LOGGER.debug(
                "Unregister ignored for channel %s",
                key_value,
                extra={"event": "bus.unregister_ignored", "channel": key_value},
            )
            return

        remaining = list(handle.subscribers)
        removed: list[Callable[[Any], None]] = []
        for item in invocation_list(callback):
            for index, existing in enumerate(remaining):
                if existing == item:
                    removed.append(remaining.pop(index))
                    break

        if not removed:
            return

        if remaining:
            self._event_table[key_value] = ChannelHandle(
                handle.payload_type, tuple(remaining)
            )
        else:
            del self._event_table[key_value]

        self._forget(key_value, removed)

    def unregister_all(self) -> None:
        """Drop every channel and all subscriber metadata."""
        self._event_table.clear()
        self._register_meta.clear()
        LOGGER.debug("All channels cleared", extra={"event": "bus.cleared"})

    # Dispatch

    def execute(self, key: EventKey[T], payload: T) -> None:
        """Invoke every subscriber of ``key`` with ``payload`` in registration order."""
        self._dispatch(key.value, key.payload_type, payload)

    def execute_default(self, key: EventKey[T]) -> None:
        """Dispatch a default-constructed payload of the key's type."""
        try:
            payload = default_payload(key.payload_type)
        except ExecutionResolutionError as exc:
            LOGGER.warning(
                "Cannot execute channel %s with a default payload: %s",
                key.value,
                exc,
                extra={"event": "bus.default_payload_failed", "channel": key.value},
            )
            return
        self._dispatch(key.value, key.payload_type, payload)

    def execute_void(self, key: EventKey[object]) -> None:
        """Dispatch ``None`` on an ``object``-typed channel."""
        self._dispatch(key.value, object, None)

    def _dispatch(self, key_value: str, payload_type: Any, payload: Any) -> bool:
        handle = self._event_table.get(key_value)
        if handle is None:
            LOGGER.warning(
                "No listener registered for channel %s",
                key_value,
                extra={"event": "bus.no_listener", "channel": key_value},
            )
            return False

        if handle.payload_type != payload_type:
            LOGGER.warning(
                "Channel %s is bound to %s, not %s",
                key_value,
                friendly_type_name(handle.payload_type),
                friendly_type_name(payload_type),
                extra={
                    "event": "bus.type_mismatch",
                    "channel": key_value,
                    "bound_type": friendly_type_name(handle.payload_type),
                    "payload_type": friendly_type_name(payload_type),
                },
            )
            return False

        if self.config.fault_policy == "isolate":
            for subscriber in handle.subscribers:
                try:
                    subscriber(payload)
                except Exception as exc:
                    self._log_fault(key_value, subscriber, exc)
            return True

        # The chain runs as one unit: a failing subscriber ends delivery for this call.
        subscriber: Callable[[Any], None] | None = None
        try:
            for subscriber in handle.subscribers:
                subscriber(payload)
        except Exception as exc:
            self._log_fault(key_value, subscriber, exc)
        return True

    def _log_fault(
        self, key_value: str, subscriber: Callable[..., Any] | None, exc: Exception
    ) -> None:
        target = "?"
        if subscriber is not None:
            target = ".".join(describe_callback(subscriber)[:2])
        LOGGER.error(
            "Error while executing channel %s in %s: %s",
            key_value,
            target,
            exc,
            exc_info=True,
            extra={
                "event": "bus.subscriber_failed",
                "channel": key_value,
                "target": target,
                "policy": self.config.fault_policy,
            },
        )

    # Introspection

    def get_all_registered(self) -> Mapping[str, ChannelHandle]:
        """Live read-only view of the channel table."""
        return MappingProxyType(self._event_table)

    def get_register_meta(self) -> Mapping[str, tuple[SubscriberInfo, ...]]:
        """Snapshot of subscriber records per channel, in registration order."""
        return MappingProxyType(
            {key: tuple(records) for key, records in self._register_meta.items()}
        )

    get_subscriber_metadata = get_register_meta

    def list_registered_channels(self) -> frozenset[str]:
        return frozenset(self._event_table)

    def is_registered(self, key: EventKey[Any] | str) -> bool:
        return str(key) in self._event_table

    def subscriber_count(self, key: EventKey[Any] | str) -> int:
        handle = self._event_table.get(str(key))
        return 0 if handle is None else handle.subscriber_count

    # Type-erased execution for tooling

    def try_execute(
        self,
        key: EventKey[Any] | str,
        payload_type: Any = None,
        payload: Any = MISSING,
    ) -> bool:
        """Execute a channel when the payload type is only known at runtime.

        ``key`` may be a key instance or a bare identifier. A missing payload
        is synthesized from the resolved type. Returns ``True`` when the
        payload reached a live channel; failures are logged, never raised.
        """
        try:
            resolved_key = self._resolve_key(key, payload_type)
            entry_type = self._resolve_entry_type(resolved_key.payload_type, payload_type)
            if payload is MISSING:
                payload = default_payload(entry_type)
            if not is_payload_compatible(payload, entry_type):
                raise ExecutionResolutionError(
                    f"Payload {payload!r} is not a {friendly_type_name(entry_type)}."
                )
            return self._dispatch(resolved_key.value, entry_type, payload)
        except ExecutionResolutionError as exc:
            LOGGER.warning(
                "Unable to execute channel %s: %s",
                key,
                exc,
                extra={"event": "bus.try_execute_failed", "channel": str(key)},
            )
        except Exception:
            LOGGER.exception(
                "Unexpected failure executing channel %s",
                key,
                extra={"event": "bus.try_execute_failed", "channel": str(key)},
            )
        return False

    def try_execute_void(self, key: EventKey[Any] | str) -> bool:
        """Execute a channel with a ``None`` payload through the ``object`` entry point."""
        return self.try_execute(key, object, None)

    def _resolve_key(self, key: EventKey[Any] | str, payload_type: Any) -> EventKey[Any]:
        if isinstance(key, EventKey):
            return key
        if isinstance(key, str):
            handle = self._event_table.get(key)
            if handle is not None:
                return EventKey(key, "", handle.payload_type)
            return EventKey(key, "", payload_type or object)
        raise ExecutionResolutionError(f"Cannot resolve a channel from {key!r}.")

    def _resolve_entry_type(self, key_type: Any, declared_type: Any) -> Any:
        cache_key = (key_type, declared_type)
        try:
            return self._resolve_cache[cache_key]
        except KeyError:
            pass
        except TypeError:
            # Unhashable type objects are resolved without caching.
            return key_type

        if declared_type is not None and declared_type != key_type:
            LOGGER.debug(
                "No %s entry point for a %s key, using the key's own type",
                friendly_type_name(declared_type),
                friendly_type_name(key_type),
                extra={"event": "bus.resolve_fallback"},
            )
        self._resolve_cache[cache_key] = key_type
        return key_type

    @staticmethod
    def _describe(
        key_value: str, payload_type: Any, callback: Callable[..., Any]
    ) -> SubscriberInfo:
        class_name, method_name, identity = describe_callback(callback)
        return SubscriberInfo(
            payload_type=payload_type,
            target_class_name=class_name,
            method_name=method_name,
            target_identity=identity,
            key_value=key_value,
        )

    def _forget(self, key_value: str, removed: list[Callable[[Any], None]]) -> None:
        records = self._register_meta.get(key_value)
        if records is None:
            return
        for item in removed:
            for index, info in enumerate(records):
                if info.matches(item):
                    del records[index]
                    break
        if not records:
            del self._register_meta[key_value]


# Global event bus instance
event_bus = EventBusSystem()


def get_event_bus() -> EventBusSystem:
    """Return the process-wide default bus."""
    return event_bus
