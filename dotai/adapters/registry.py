"""Lookup table of adapters keyed by tool id."""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional

from ..logging import get_logger
from .base import ToolAdapter

logger = get_logger("adapters.registry")


class AdapterRegistry:
    """Insertion-ordered adapters; registering an existing id replaces it."""

    def __init__(self) -> None:
        self._adapters: Dict[str, ToolAdapter] = {}

    def register(self, adapter: ToolAdapter) -> None:
        if adapter.tool_id in self._adapters:
            logger.debug("Replacing adapter for %s", adapter.tool_id)
        self._adapters[adapter.tool_id] = adapter

    def get(self, tool_id: str) -> Optional[ToolAdapter]:
        return self._adapters.get(tool_id)

    def all(self) -> List[ToolAdapter]:
        return list(self._adapters.values())

    def tool_ids(self) -> List[str]:
        return list(self._adapters)

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self._adapters

    def __iter__(self) -> Iterator[ToolAdapter]:
        return iter(list(self._adapters.values()))

    def __len__(self) -> int:
        return len(self._adapters)


__all__ = ["AdapterRegistry"]
