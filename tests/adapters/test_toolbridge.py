from __future__ import annotations

import pytest

from agentsync.core.adapters.toolbridge import (
    ParameterDescriptor,
    ParameterKind,
    ToolDefinition,
    ToolLocation,
    tool_specs_to_openai,
)
from agentsync.core.errors import ConfigurationError


def test_json_schema_lists_required_parameters() -> None:
    tool = ToolDefinition.frontend(
        "set_theme",
        [
            ParameterDescriptor("theme", ParameterKind.STRING, enum=("light", "dark")),
            ParameterDescriptor("animate", "boolean", required=False),
        ],
    )

    assert tool.is_frontend
    assert tool.json_schema() == {
        "type": "object",
        "properties": {
            "theme": {"type": "string", "enum": ["light", "dark"]},
            "animate": {"type": "boolean"},
        },
        "required": ["theme"],
    }


def test_from_json_schema_builds_a_frontend_tool() -> None:
    schema = {
        "type": "object",
        "properties": {
            "city": {"type": "string", "description": "City"},
            "days": {"type": "integer"},
        },
        "required": ["city"],
    }

    tool = ToolDefinition.from_json_schema("forecast", schema, description="  Forecast  ")

    assert tool.description == "Forecast"
    assert tool.location is ToolLocation.FRONTEND
    assert tool.json_schema() == {
        "type": "object",
        "properties": {
            "city": {"type": "string", "description": "City"},
            "days": {"type": "integer"},
        },
        "required": ["city"],
    }


@pytest.mark.parametrize(
    "build",
    [
        lambda: ToolDefinition.frontend("has space"),
        lambda: ToolDefinition.frontend("x" * 65),
        lambda: ToolDefinition.frontend("ok", description="   "),
        lambda: ToolDefinition.frontend("ok", [ParameterDescriptor("a", "string")] * 2),
        lambda: ToolDefinition(name="ok", location=ToolLocation.BACKEND),
        lambda: ToolDefinition(name="ok", handler=print),
        lambda: ParameterDescriptor("a", "decimal"),
        lambda: ParameterDescriptor("a", "integer", enum=("1",)),
        lambda: ToolDefinition.from_json_schema("ok", {"type": "array"}),
        lambda: ToolDefinition.from_json_schema("ok", {"properties": {}, "required": ["ghost"]}),
    ],
)
def test_invalid_definitions_raise_configuration_errors(build) -> None:
    with pytest.raises(ConfigurationError):
        build()


def test_openai_specs_reject_duplicates_and_strings() -> None:
    tool = ToolDefinition.frontend("confirm")

    assert tool_specs_to_openai([tool]) == [
        {"type": "function", "function": {"name": "confirm", "parameters": {"type": "object", "properties": {}}}}
    ]
    with pytest.raises(ConfigurationError, match="duplicate"):
        tool_specs_to_openai([tool, tool])
    with pytest.raises(ConfigurationError):
        tool_specs_to_openai("confirm")  # type: ignore[arg-type]
