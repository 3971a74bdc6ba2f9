"""Language adapters and the registry that selects them."""

from __future__ import annotations

from .base import LanguageAdapter, NodePattern, TreeSitterAdapter
from .python import PythonAdapter
from .registry import AdapterRegistry
from .typescript import JavaScriptAdapter, TypeScriptAdapter

__all__ = [
    "AdapterRegistry",
    "JavaScriptAdapter",
    "LanguageAdapter",
    "NodePattern",
    "PythonAdapter",
    "TreeSitterAdapter",
    "TypeScriptAdapter",
    "build_default_registry",
]


def build_default_registry() -> AdapterRegistry:
    """A fresh registry with every adapter whose grammar is installed."""
    return AdapterRegistry([PythonAdapter(), TypeScriptAdapter(), JavaScriptAdapter()])
