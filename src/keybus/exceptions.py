"""Domain exception hierarchy for the keybus registry and its tooling."""

from __future__ import annotations


class KeyBusError(RuntimeError):
    """Base class for all keybus errors."""


class ConfigValidationError(KeyBusError):
    """Raised when configuration cannot be validated safely."""


class KeyCatalogError(KeyBusError):
    """Raised when a key catalog cannot be loaded, validated or generated."""


class ExecutionResolutionError(KeyBusError):
    """Raised when a type-erased execute call cannot be resolved to a typed dispatch."""
