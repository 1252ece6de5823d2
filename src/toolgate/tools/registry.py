"""Static tool catalogue and capability-based visibility."""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable, Iterator
from typing import Any

from toolgate.tools.base import ALWAYS_ON_CAPABILITY, ToolCapability, ToolDescriptor

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Holds every tool the process can offer.

    Tools are registered once, at construction. There is no way to add,
    replace or remove a tool afterwards.
    """

    def __init__(self, tools: Iterable[ToolDescriptor[Any]]) -> None:
        by_name: dict[str, ToolDescriptor[Any]] = {}
        for tool in tools:
            if tool.name in by_name:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            by_name[tool.name] = tool
        self._tools = by_name
        self._ordered = tuple(by_name.values())
        logger.debug("Registered %d tools", len(self._ordered))

    def list(self) -> tuple[ToolDescriptor[Any], ...]:
        return self._ordered

    def resolve(self, name: str) -> ToolDescriptor[Any] | None:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDescriptor[Any]]:
        return iter(self._ordered)

    def __len__(self) -> int:
        return len(self._ordered)


def is_visible(tool: ToolDescriptor[Any], granted: Collection[ToolCapability] | None) -> bool:
    """Whether a tool is visible under the granted capabilities.

    ``None`` means no restriction was configured and everything is visible.
    An empty collection is a real restriction: only always-on tools remain.
    """
    if granted is None:
        return True
    return tool.capability is ALWAYS_ON_CAPABILITY or tool.capability in granted


def filter_tools(
    tools: Iterable[ToolDescriptor[Any]],
    granted: Collection[ToolCapability] | None,
) -> tuple[ToolDescriptor[Any], ...]:
    """Return the subset of ``tools`` visible under ``granted``, keeping order."""
    return tuple(tool for tool in tools if is_visible(tool, granted))
