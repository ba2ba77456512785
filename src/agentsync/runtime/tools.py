"""Registry of invocable tools for a run."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
import inspect
import json
import logging
from typing import Any

from agentsync.core.adapters.toolbridge import ToolDefinition
from agentsync.core.errors import ConfigurationError, ToolNotFoundError
from agentsync.core.message import thaw_json

LOGGER = logging.getLogger(__name__)


class ToolRegistry:
    """Name-indexed set of tool definitions.

    Names are unique across frontend and backend tools; a collision raises
    :class:`ConfigurationError` as soon as the clashing tool is registered.
    """

    def __init__(self, tools: Iterable[ToolDefinition] = ()) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: ToolDefinition) -> None:
        if not isinstance(tool, ToolDefinition):
            msg = "only ToolDefinition instances can be registered"
            raise ConfigurationError(msg)
        existing = self._tools.get(tool.name)
        if existing is not None:
            msg = (
                f"tool '{tool.name}' is already registered as a {existing.location.value} tool"
            )
            raise ConfigurationError(msg)
        self._tools[tool.name] = tool
        LOGGER.debug("registered %s tool %s", tool.location.value, tool.name)

    def union(self, tools: Iterable[ToolDefinition]) -> ToolRegistry:
        """Return a new registry holding these tools plus ``tools``."""

        merged = ToolRegistry(self._tools.values())
        for tool in tools:
            merged.register(tool)
        return merged

    def get(self, name: str) -> ToolDefinition:
        try:
            return self._tools[name]
        except KeyError:
            msg = f"tool '{name}' is not registered"
            raise ToolNotFoundError(msg) from None

    @property
    def definitions(self) -> tuple[ToolDefinition, ...]:
        return tuple(self._tools.values())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)


async def execute_tool(tool: ToolDefinition, arguments: Mapping[str, Any]) -> str:
    """Run a backend tool's handler and render its result as text."""

    if tool.handler is None:
        msg = f"tool '{tool.name}' has no handler to execute"
        raise ConfigurationError(msg)
    result = tool.handler(**thaw_json(arguments))
    if inspect.isawaitable(result):
        result = await result
    if isinstance(result, str):
        return result
    return json.dumps(thaw_json(result), sort_keys=True, default=str)


__all__ = ["ToolRegistry", "execute_tool"]
