"""Key catalog: the authoring data shape and Python code generation.

A catalog groups key definitions into categories. Each enabled category is
rendered to a module holding one class of ``EventKey`` constants, which is
the only artifact the bus needs from the authoring side.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
import getpass
import importlib
import json
import keyword
import logging
from pathlib import Path
import re
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import KeyCatalogError

LOGGER = logging.getLogger(__name__)

COMMON_TYPES: tuple[str, ...] = (
    "object",
    "str",
    "int",
    "float",
    "bool",
    "bytes",
    "list",
    "dict",
    "Custom",
)

_DOTTED_PATH = re.compile(r"^[A-Za-z_]\w*(\.[A-Za-z_]\w*)+$")


def _now() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def _current_user() -> str:
    try:
        return getpass.getuser()
    except Exception:  # noqa: BLE001 - no login name in some containers.
        return ""


class EventKeyDefinition(BaseModel):
    """One key: constant name, channel value and payload type."""

    key_name: str = ""
    key_value: str = ""
    parameter_type: str = "object"
    custom_type: str = ""
    description: str = ""
    enabled: bool = True

    @field_validator("key_name", "key_value", "custom_type", "description", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("Expected a string value.")
        return value.strip()

    @field_validator("parameter_type", mode="before")
    @classmethod
    def _validate_parameter_type(cls, value: Any) -> str:
        if not isinstance(value, str) or value.strip() not in COMMON_TYPES:
            raise ValueError(f"parameter_type must be one of {', '.join(COMMON_TYPES)}.")
        return value.strip()

    def actual_type(self) -> str:
        return self.custom_type if self.parameter_type == "Custom" else self.parameter_type

    def is_custom_type(self) -> bool:
        return self.parameter_type == "Custom" and bool(self.custom_type)


class EventKeyCategory(BaseModel):
    """A named group of keys rendered as one holder class."""

    category_name: str = ""
    class_name: str = ""
    description: str = ""
    keys: list[EventKeyDefinition] = Field(default_factory=list)
    enabled: bool = True

    def enabled_keys(self) -> list[EventKeyDefinition]:
        return [key for key in self.keys if key.enabled]


class EventKeyCollection(BaseModel):
    """Root document of a key catalog file."""

    categories: list[EventKeyCategory] = Field(default_factory=list)
    version: str = "1.0"
    last_modified: str = Field(default_factory=_now)
    author: str = Field(default_factory=_current_user)

    def iter_enabled(self) -> list[tuple[EventKeyCategory, EventKeyDefinition]]:
        return [
            (category, key)
            for category in self.categories
            if category.enabled
            for key in category.enabled_keys()
        ]


def load_collection(path: Path) -> EventKeyCollection:
    """Load a catalog from JSON; a missing file yields an empty catalog."""
    if not path.exists():
        LOGGER.info("Key catalog %s not found, starting empty", path)
        return EventKeyCollection()
    try:
        return EventKeyCollection.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValidationError) as exc:
        raise KeyCatalogError(f"Unable to load key catalog {path}: {exc}") from exc


def save_collection(collection: EventKeyCollection, path: Path) -> Path:
    """Write the catalog as indented UTF-8 JSON, stamping ``last_modified``."""
    collection.last_modified = _now()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(collection.model_dump_json(indent=2), encoding="utf-8")
    except OSError as exc:
        raise KeyCatalogError(f"Unable to save key catalog {path}: {exc}") from exc
    LOGGER.info(
        "catalog.saved",
        extra={"event": "catalog.saved", "path": str(path)},
    )
    return path


def cleanup_collection(collection: EventKeyCollection) -> tuple[int, int]:
    """Drop keys and categories with a blank name or value.

    Returns ``(removed keys, removed categories)``.
    """
    removed_keys = 0
    for category in collection.categories:
        before = len(category.keys)
        category.keys = [
            key for key in category.keys if key.key_name.strip() and key.key_value.strip()
        ]
        removed_keys += before - len(category.keys)

    before = len(collection.categories)
    collection.categories = [
        category
        for category in collection.categories
        if category.category_name.strip() and category.class_name.strip()
    ]
    removed_categories = before - len(collection.categories)
    if removed_keys or removed_categories:
        LOGGER.info(
            "catalog.cleaned",
            extra={
                "event": "catalog.cleaned",
                "removed_keys": removed_keys,
                "removed_categories": removed_categories,
            },
        )
    return removed_keys, removed_categories


@dataclass(frozen=True)
class CatalogStats:
    categories: int
    enabled_categories: int
    keys: int
    enabled_keys: int
    keys_per_category: list[tuple[str, int]] = field(default_factory=list)

    def lines(self) -> list[str]:
        lines = [
            f"categories: {self.categories} ({self.enabled_categories} enabled)",
            f"keys: {self.keys} ({self.enabled_keys} enabled)",
        ]
        lines.extend(f"  {name}: {count}" for name, count in self.keys_per_category)
        return lines


def collection_stats(collection: EventKeyCollection) -> CatalogStats:
    return CatalogStats(
        categories=len(collection.categories),
        enabled_categories=sum(1 for c in collection.categories if c.enabled),
        keys=sum(len(c.keys) for c in collection.categories),
        enabled_keys=sum(len(c.enabled_keys()) for c in collection.categories),
        keys_per_category=[
            (c.category_name or c.class_name, len(c.keys)) for c in collection.categories
        ],
    )


def find_duplicate_keys(collection: EventKeyCollection) -> dict[str, list[str]]:
    """Map each key value declared more than once to its ``Class.NAME`` owners."""
    owners: dict[str, list[str]] = defaultdict(list)
    for category, key in collection.iter_enabled():
        if key.key_value:
            owners[key.key_value].append(f"{category.class_name}.{key.key_name}")
    return {value: names for value, names in owners.items() if len(names) > 1}


def resolve_custom_type(dotted: str) -> Any:
    """Import ``package.module.Type`` and return the type object."""
    if not _DOTTED_PATH.match(dotted):
        raise KeyCatalogError(f"Custom type {dotted!r} must be a dotted module path.")
    module_name, _, attr = dotted.rpartition(".")
    try:
        module = importlib.import_module(module_name)
        return getattr(module, attr)
    except (ImportError, AttributeError) as exc:
        raise KeyCatalogError(f"Custom type {dotted!r} cannot be resolved: {exc}") from exc


def _is_identifier(name: str) -> bool:
    return name.isidentifier() and not keyword.iskeyword(name)


def validate_collection(
    collection: EventKeyCollection, check_imports: bool = True
) -> list[str]:
    """Return human-readable problems; an empty list means the catalog can be generated."""
    problems: list[str] = []
    category_names: set[str] = set()
    class_owners: dict[str, str] = {}
    file_owners: dict[str, str] = {}
    for category in collection.categories:
        if not category.enabled:
            continue
        label = category.category_name or category.class_name or "<unnamed>"
        if category.category_name:
            if category.category_name in category_names:
                problems.append(f"{label}: category name is declared twice")
            category_names.add(category.category_name)
        if not _is_identifier(category.class_name):
            problems.append(f"{label}: class name {category.class_name!r} is not a valid identifier")
        elif category.class_name in class_owners:
            problems.append(
                f"{label}: class name {category.class_name!r} is already used by "
                f"{class_owners[category.class_name]}"
            )
        else:
            class_owners[category.class_name] = label
            file_name = module_file_name(category.class_name)
            if file_name in file_owners:
                problems.append(
                    f"{label}: module {file_name!r} is already generated for "
                    f"{file_owners[file_name]}"
                )
            file_owners.setdefault(file_name, label)
        seen_names: set[str] = set()
        for key in category.enabled_keys():
            if not _is_identifier(key.key_name):
                problems.append(f"{label}: key name {key.key_name!r} is not a valid identifier")
            elif key.key_name in seen_names:
                problems.append(f"{label}: key name {key.key_name!r} is declared twice")
            seen_names.add(key.key_name)
            if not key.key_value:
                problems.append(f"{label}.{key.key_name}: key value is empty")
            if key.parameter_type == "Custom":
                problems.extend(_custom_type_problems(label, key, check_imports))

    for value, owners in find_duplicate_keys(collection).items():
        problems.append(f"duplicate key value {value!r}: {', '.join(owners)}")
    return problems


def _custom_type_problems(
    label: str, key: EventKeyDefinition, check_imports: bool
) -> list[str]:
    if not key.custom_type:
        return [f"{label}.{key.key_name}: custom type is empty"]
    if not _DOTTED_PATH.match(key.custom_type):
        return [f"{label}.{key.key_name}: custom type {key.custom_type!r} must be module.Type"]
    if check_imports:
        try:
            resolve_custom_type(key.custom_type)
        except KeyCatalogError as exc:
            return [f"{label}.{key.key_name}: {exc}"]
    return []


def module_file_name(class_name: str) -> str:
    """``UIEventKeys`` -> ``ui_event_keys.py``."""
    snake = re.sub(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])", "_", class_name)
    return f"{snake.lower()}.py"


def _one_line(text: str) -> str:
    return " ".join(text.split())


def _docstring(text: str) -> str:
    return _one_line(text).replace("\\", "\\\\").replace('"', '\\"')


def _literal(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def render_category(category: EventKeyCategory, generated_at: str | None = None) -> str:
    """Render the Python module source for one category."""
    keys = category.enabled_keys()
    custom_modules = sorted(
        {key.custom_type.rpartition(".")[0] for key in keys if key.is_custom_type()}
    )
    summary = category.description or category.category_name or category.class_name

    lines = [
        "# This file is generated by keybus from the key catalog.",
        "# Do not edit it by hand; edit the catalog and regenerate.",
        f"# Generated: {generated_at or _now()}",
        f'"""{_docstring(summary)}"""',
        "",
        "from __future__ import annotations",
        "",
    ]
    lines.extend(f"import {module}" for module in custom_modules)
    if custom_modules:
        lines.append("")
    lines.extend(
        [
            "from keybus.keys import EventKey",
            "",
            "",
            f"class {category.class_name}:",
            f'    """{_docstring(summary)}',
            "",
            f"    {len(keys)} keys are defined.",
            '    """',
        ]
    )
    for key in keys:
        actual = key.actual_type()
        lines.append("")
        if key.description:
            lines.append(f"    # {_one_line(key.description)}")
        lines.append(
            f"    {key.key_name}: EventKey[{actual}] = EventKey("
            f"{_literal(key.key_value)}, {_literal(key.description)}, {actual})"
        )
    lines.append("")
    return "\n".join(lines)


def generate_modules(
    collection: EventKeyCollection, output_dir: Path, check_imports: bool = True
) -> list[Path]:
    """Write one module per enabled, non-empty category and return the paths."""
    problems = validate_collection(collection, check_imports=check_imports)
    if problems:
        raise KeyCatalogError(
            "Key catalog has problems:\n" + "\n".join(f"- {p}" for p in problems)
        )

    generated_at = _now()
    written: list[Path] = []
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        for category in collection.categories:
            if not category.enabled or not category.enabled_keys():
                continue
            target = output_dir / module_file_name(category.class_name)
            target.write_text(render_category(category, generated_at), encoding="utf-8")
            written.append(target)
    except OSError as exc:
        raise KeyCatalogError(f"Unable to write key modules to {output_dir}: {exc}") from exc

    LOGGER.info(
        "catalog.generated",
        extra={
            "event": "catalog.generated",
            "output_dir": str(output_dir),
            "files": len(written),
        },
    )
    return written
