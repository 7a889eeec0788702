"""Tool adapters and discovery utilities."""

from __future__ import annotations

from importlib import metadata
from pathlib import Path
from typing import Iterable, List

from .base import ToolAdapter, determine_action
from .catalog import BUILTIN_SPECS, BUILTIN_TOOL_IDS, spec_for
from .managed import AdapterSpec, DetectSpec, ManagedToolAdapter, ScopeSpec
from .registry import AdapterRegistry

_ENTRY_POINT_GROUP = "dotai.adapters"


def build_builtin_adapters(repo_local_path: Path | str, *, home: Path | None = None) -> List[ToolAdapter]:
    """Instantiate every built-in adapter against the mirror at ``repo_local_path``."""
    return [ManagedToolAdapter(spec, repo_local_path, home=home) for spec in BUILTIN_SPECS]


def build_registry(
    repo_local_path: Path | str,
    *,
    home: Path | None = None,
    include_plugins: bool = True,
) -> AdapterRegistry:
    """Built-ins first, then any adapters published under ``dotai.adapters``.

    A plugin reusing a built-in id replaces it.
    """
    registry = AdapterRegistry()
    for adapter in build_builtin_adapters(repo_local_path, home=home):
        registry.register(adapter)
    if include_plugins:
        for entry in _iter_entry_points():
            try:
                loaded = entry.load()
            except Exception as exc:
                raise RuntimeError(f"Failed to load adapter entry point '{entry.name}': {exc}") from exc
            registry.register(_coerce_adapter(loaded, Path(repo_local_path)))
    return registry


def _coerce_adapter(obj: object, repo_local_path: Path) -> ToolAdapter:
    if isinstance(obj, ToolAdapter):
        return obj
    if isinstance(obj, AdapterSpec):
        return ManagedToolAdapter(obj, repo_local_path)
    if isinstance(obj, type) and issubclass(obj, ToolAdapter):
        return obj(repo_local_path)  # type: ignore[call-arg]
    if callable(obj):
        instance = obj(repo_local_path)
        if isinstance(instance, ToolAdapter):
            return instance
    raise TypeError("Adapter entry point must be a ToolAdapter, an AdapterSpec, or a factory")


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points().select(group=_ENTRY_POINT_GROUP)


__all__ = [
    "AdapterRegistry",
    "AdapterSpec",
    "BUILTIN_SPECS",
    "BUILTIN_TOOL_IDS",
    "DetectSpec",
    "ManagedToolAdapter",
    "ScopeSpec",
    "ToolAdapter",
    "build_builtin_adapters",
    "build_registry",
    "determine_action",
    "spec_for",
]
