"""Type registry and discovery utilities."""

from __future__ import annotations

import importlib
import pkgutil
from collections.abc import Iterable
from importlib import metadata
from typing import Any

from textool.graph.errors import UnknownTypeError
from textool.graph.types import TypeDescriptor


class TypeRegistry:
    """Registry that discovers and stores texture operation descriptors."""

    def __init__(self) -> None:
        self._types: dict[str, TypeDescriptor] = {}

    def register(self, descriptor: TypeDescriptor) -> None:
        self._types[descriptor.id] = descriptor

    def register_all(self, descriptors: Iterable[TypeDescriptor]) -> None:
        for descriptor in descriptors:
            self.register(descriptor)

    def discover_entry_points(self, group: str = "textool.types") -> None:
        for entry_point in metadata.entry_points(group=group):
            loaded = entry_point.load()
            if isinstance(loaded, TypeDescriptor):
                self.register(loaded)
            elif isinstance(loaded, (list, tuple)):
                self.register_all(d for d in loaded if isinstance(d, TypeDescriptor))

    def discover_modules(self, package: str = "textool.library") -> None:
        pkg = importlib.import_module(package)
        for module_info in pkgutil.walk_packages(pkg.__path__, prefix=f"{package}."):
            module = importlib.import_module(module_info.name)
            # Helper modules without a descriptor table are skipped.
            descriptors = getattr(module, "TYPES", None)
            if descriptors is None:
                continue
            self.register_all(d for d in descriptors if isinstance(d, TypeDescriptor))

    def discover(self) -> None:
        self.discover_modules()
        self.discover_entry_points()

    def list_types(self) -> list[str]:
        return sorted(self._types.keys())

    def has(self, type_id: str) -> bool:
        return type_id in self._types

    def get(self, type_id: str) -> TypeDescriptor:
        if type_id not in self._types:
            available = ", ".join(self.list_types())
            raise UnknownTypeError(f"Unknown type '{type_id}'. Available: {available}")
        return self._types[type_id]

    def describe(self, type_id: str) -> dict[str, Any]:
        return self.get(type_id).describe()


def builtin_registry() -> TypeRegistry:
    registry = TypeRegistry()
    registry.discover()
    return registry
