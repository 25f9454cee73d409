"""Key discovery and read-only helpers for tooling built on the bus."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from itertools import groupby
import importlib
import inspect
import logging
import threading
from types import ModuleType
from typing import TYPE_CHECKING, Any

from .keys import EventKey
from .typecheck import friendly_type_name

if TYPE_CHECKING:
    from .bus import EventBusSystem

LOGGER = logging.getLogger(__name__)

PRIMITIVE_TYPES: tuple[type, ...] = (int, float, bool, str)


@dataclass
class DebuggerKeyInfo:
    """One declared key as seen by the inspector."""

    key_value: str
    description: str
    declaring_type: str
    field_name: str
    payload_type: Any
    key: EventKey[Any] = field(repr=False)

    @property
    def friendly_type_name(self) -> str:
        return friendly_type_name(self.payload_type)

    def status_text(self, is_registered: bool) -> str:
        return "Status: registered" if is_registered else "Status: not registered"


class KeyIndex:
    """Index of ``EventKey`` declarations found in a set of modules.

    Keys are declared as class attributes of plain holder classes, or as
    module-level constants. The index is built lazily and can be refreshed
    after modules are reloaded.
    """

    def __init__(self, modules: Iterable[ModuleType | str] = ()) -> None:
        self._modules: list[ModuleType | str] = list(modules)
        self._lock = threading.Lock()
        self._built = False
        self._keys: list[DebuggerKeyInfo] = []
        self._key_map: dict[str, DebuggerKeyInfo] = {}
        self._last_filter = ""
        self._cached_results: list[DebuggerKeyInfo] = []

    @property
    def keys(self) -> list[DebuggerKeyInfo]:
        return self._keys if self._built else self._build()

    def add_module(self, module: ModuleType | str) -> None:
        self._modules.append(module)
        self.clear()

    def get(self, key_value: str) -> DebuggerKeyInfo | None:
        if not self._built:
            self._build()
        return self._key_map.get(key_value)

    def refresh(self) -> list[DebuggerKeyInfo]:
        self.clear()
        return self._build()

    def clear(self) -> None:
        with self._lock:
            self._built = False
            self._keys = []
            self._key_map = {}
            self._cached_results = []
            self._last_filter = ""

    def search(self, text: str) -> list[DebuggerKeyInfo]:
        """Case-insensitive match on key value, declaring type or description."""
        needle = (text or "").strip()
        if not needle:
            return self.keys
        keys = self.keys
        with self._lock:
            if needle == self._last_filter:
                return self._cached_results
            lowered = needle.lower()
            results = [
                info
                for info in keys
                if lowered in info.key_value.lower()
                or lowered in info.declaring_type.lower()
                or lowered in info.description.lower()
            ]
            self._last_filter = needle
            self._cached_results = results
            return results

    def groups(self, text: str = "") -> list[tuple[str, list[DebuggerKeyInfo]]]:
        """Search results grouped by declaring type, in index order."""
        return [
            (declaring_type, list(items))
            for declaring_type, items in groupby(
                self.search(text), key=lambda info: info.declaring_type
            )
        ]

    def _build(self) -> list[DebuggerKeyInfo]:
        with self._lock:
            if self._built:
                return self._keys
            results: list[DebuggerKeyInfo] = []
            for module in self._modules:
                resolved = self._import(module)
                if resolved is not None:
                    results.extend(self._scan_module(resolved))
            results.sort(key=lambda info: (info.declaring_type, info.key_value))
            self._keys = results
            self._key_map = {info.key_value: info for info in results}
            self._built = True
            LOGGER.debug(
                "Indexed %d event keys",
                len(results),
                extra={"event": "index.built", "count": len(results)},
            )
            return self._keys

    @staticmethod
    def _import(module: ModuleType | str) -> ModuleType | None:
        if isinstance(module, ModuleType):
            return module
        try:
            return importlib.import_module(module)
        except Exception as exc:  # noqa: BLE001 - a broken module must not hide the rest.
            LOGGER.warning(
                "Unable to import key module %s: %s",
                module,
                exc,
                extra={"event": "index.import_failed", "module_name": str(module)},
            )
            return None

    @staticmethod
    def _scan_module(module: ModuleType) -> list[DebuggerKeyInfo]:
        found: list[DebuggerKeyInfo] = []
        module_label = module.__name__.rsplit(".", 1)[-1]
        for name, value in vars(module).items():
            if isinstance(value, EventKey):
                _append_key(found, value, module_label, name)
            elif inspect.isclass(value) and value.__module__ == module.__name__:
                for attr_name, attr in vars(value).items():
                    if isinstance(attr, EventKey):
                        _append_key(found, attr, value.__name__, attr_name)
        return found


def _append_key(
    found: list[DebuggerKeyInfo],
    key: EventKey[Any],
    declaring_type: str,
    field_name: str,
) -> None:
    if not key.value:
        return
    found.append(
        DebuggerKeyInfo(
            key_value=key.value,
            description=key.description or "",
            declaring_type=declaring_type,
            field_name=field_name,
            payload_type=key.payload_type,
            key=key,
        )
    )


def parse_payload(text: str, payload_type: Any) -> Any:
    """Parse manual input for primitive payload types; ``None`` when unparsable."""
    try:
        if payload_type is bool:
            return text.strip().lower() in {"true", "1"}
        if payload_type is int:
            return int(text.strip())
        if payload_type is float:
            return float(text.strip())
        if payload_type is str:
            return text
    except ValueError:
        LOGGER.warning(
            "Failed to parse %r as %s",
            text,
            friendly_type_name(payload_type),
            extra={"event": "debugger.parse_failed"},
        )
    return None


def describe_channel(info: DebuggerKeyInfo, bus: EventBusSystem) -> str:
    """Multi-line status of a declared key against the live registry."""
    registered = bus.is_registered(info.key_value)
    lines = [f"{info.key_value}  <{info.friendly_type_name}>"]
    if info.description:
        lines.append(info.description)
    lines.append(info.status_text(registered))
    if registered:
        for record in bus.get_register_meta().get(info.key_value, ()):
            lines.append(
                f"  -> {record.target_class_name}.{record.method_name}"
                f" (Param: {record.payload_type_name})"
            )
        lines.append(f"Registered actions: {bus.subscriber_count(info.key_value)}")
    return "\n".join(lines)
