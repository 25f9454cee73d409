"""CLI entrypoint for keybus tooling."""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from importlib import metadata
from pathlib import Path
import sys
from typing import Any

from .catalog import (
    cleanup_collection,
    collection_stats,
    generate_modules,
    load_collection,
    save_collection,
    validate_collection,
)
from .config import BusConfig, ensure_config_dir, load_config
from .exceptions import KeyCatalogError
from .introspection import KeyIndex
from .logging_utils import configure_logging


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="keybus",
        description="keybus - typed event keys, catalog generation and live inspection",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config.toml (default: ~/.config/keybus/config.toml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    keys_parser = subparsers.add_parser("keys", help="List event keys declared in modules")
    keys_parser.add_argument("modules", nargs="+", help="Dotted module names to scan")
    keys_parser.add_argument("--filter", default="", help="Only show matching keys")

    validate_parser = subparsers.add_parser("validate", help="Check a key catalog")
    validate_parser.add_argument("--catalog", type=Path, default=None)
    validate_parser.add_argument(
        "--stats", action="store_true", help="Also print category and key counts"
    )

    cleanup_parser = subparsers.add_parser(
        "cleanup", help="Remove keys and categories with blank names or values"
    )
    cleanup_parser.add_argument("--catalog", type=Path, default=None)

    generate_parser = subparsers.add_parser(
        "generate", help="Generate key modules from a key catalog"
    )
    generate_parser.add_argument("--catalog", type=Path, default=None)
    generate_parser.add_argument("--output-dir", type=Path, default=None)

    debug_parser = subparsers.add_parser("debug", help="Open the live inspector")
    debug_parser.add_argument("modules", nargs="*", help="Dotted module names to scan")
    return parser


def _print_version() -> None:
    try:
        version = metadata.version("keybus")
    except metadata.PackageNotFoundError:
        version = "0.0.0"
    print(f"keybus {version}")


def _list_keys(modules: list[str], text: str) -> int:
    index = KeyIndex(modules)
    for group, infos in index.groups(text):
        print(group)
        for info in infos:
            line = f"  {info.field_name} = {info.key_value!r} <{info.friendly_type_name}>"
            if info.description:
                line += f"  # {info.description}"
            print(line)
    return 0


def _validate(catalog_path: Path, stats: bool = False) -> int:
    try:
        collection = load_collection(catalog_path)
    except KeyCatalogError as exc:
        print(exc, file=sys.stderr)
        return 1
    if stats:
        for line in collection_stats(collection).lines():
            print(line)
    problems = validate_collection(collection)
    for problem in problems:
        print(problem, file=sys.stderr)
    if problems:
        return 1
    print(f"{catalog_path}: ok")
    return 0


def _cleanup(catalog_path: Path) -> int:
    try:
        collection = load_collection(catalog_path)
        removed_keys, removed_categories = cleanup_collection(collection)
        if removed_keys or removed_categories:
            save_collection(collection, catalog_path)
    except KeyCatalogError as exc:
        print(exc, file=sys.stderr)
        return 1
    print(f"removed {removed_keys} keys and {removed_categories} categories")
    return 0


def _generate(catalog_path: Path, output_dir: Path) -> int:
    try:
        written = generate_modules(load_collection(catalog_path), output_dir)
    except KeyCatalogError as exc:
        print(exc, file=sys.stderr)
        return 1
    for path in written:
        print(path)
    return 0


def _debug(modules: list[str], config: dict[str, Any]) -> int:
    from .bus import get_event_bus
    from .debugger import BusDebuggerApp

    bus = get_event_bus()
    bus.configure(BusConfig.model_validate(config["bus"]))
    index = KeyIndex(modules or config["debugger"]["modules"])
    app = BusDebuggerApp(
        bus=bus,
        index=index,
        live_interval=config["debugger"]["live_interval_seconds"],
    )
    app.run()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Load configuration, set up logging and run the requested command."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.version:
        _print_version()
        return 0

    if args.config is None:
        ensure_config_dir()
    config = load_config(args.config)
    configure_logging(config["logging"])

    catalog_path = Path(getattr(args, "catalog", None) or config["catalog"]["catalog_path"])
    if args.command == "keys":
        return _list_keys(args.modules, args.filter)
    if args.command == "validate":
        return _validate(catalog_path, args.stats)
    if args.command == "cleanup":
        return _cleanup(catalog_path)
    if args.command == "generate":
        output_dir = Path(args.output_dir or config["catalog"]["output_dir"])
        return _generate(catalog_path, output_dir)
    if args.command == "debug":
        return _debug(args.modules, config)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
