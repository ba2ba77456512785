from __future__ import annotations

import asyncio

import pytest

from agentsync.core.adapters.toolbridge import ParameterDescriptor, ParameterKind, ToolDefinition
from agentsync.core.errors import ConfigurationError, ToolNotFoundError
from agentsync.runtime.tools import ToolRegistry, execute_tool


def _add(a: int, b: int) -> int:
    return a + b


async def _lookup(city: str) -> dict:
    await asyncio.sleep(0)
    return {"city": city, "temp": 21}


def test_registry_rejects_name_collisions_across_locations() -> None:
    registry = ToolRegistry([ToolDefinition.backend("add", _add)])

    with pytest.raises(ConfigurationError, match="already registered as a backend tool"):
        registry.register(ToolDefinition.frontend("add"))


def test_union_returns_a_new_registry() -> None:
    registry = ToolRegistry([ToolDefinition.backend("add", _add)])

    merged = registry.union([ToolDefinition.frontend("confirm")])

    assert "confirm" in merged
    assert "confirm" not in registry
    assert [tool.name for tool in merged] == ["add", "confirm"]
    assert len(merged.definitions) == 2


def test_unknown_tool_lookup_raises() -> None:
    with pytest.raises(ToolNotFoundError, match="'missing'"):
        ToolRegistry().get("missing")


def test_execute_tool_renders_sync_and_async_results() -> None:
    add = ToolDefinition.backend(
        "add",
        _add,
        [ParameterDescriptor("a", ParameterKind.INTEGER), ParameterDescriptor("b", "integer")],
    )
    lookup = ToolDefinition.backend("lookup", _lookup)

    assert asyncio.run(execute_tool(add, {"a": 2, "b": 3})) == "5"
    assert asyncio.run(execute_tool(lookup, {"city": "Oslo"})) == '{"city": "Oslo", "temp": 21}'


def test_execute_tool_requires_a_handler() -> None:
    with pytest.raises(ConfigurationError):
        asyncio.run(execute_tool(ToolDefinition.frontend("confirm"), {}))
