"""Tool descriptions and their mapping to provider schemas."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
import re
from typing import Any, Union

from ..errors import ConfigurationError

_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")

ToolHandler = Callable[..., Union[Any, Awaitable[Any]]]


class ParameterKind(str, Enum):
    """JSON types a tool parameter may take."""

    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"


class ToolLocation(str, Enum):
    """Where a tool executes."""

    FRONTEND = "frontend"
    BACKEND = "backend"


@dataclass(frozen=True, slots=True)
class ParameterDescriptor:
    """One named argument of a tool."""

    name: str
    kind: ParameterKind
    required: bool = True
    description: str | None = None
    enum: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            msg = "tool parameter names must be non-empty strings"
            raise ConfigurationError(msg)
        if not isinstance(self.kind, ParameterKind):
            try:
                object.__setattr__(self, "kind", ParameterKind(self.kind))
            except ValueError as exc:
                msg = f"parameter '{self.name}' has unsupported kind {self.kind!r}"
                raise ConfigurationError(msg) from exc
        if self.enum is not None:
            values = tuple(self.enum)
            if self.kind is not ParameterKind.STRING or not values:
                msg = f"parameter '{self.name}' may only enumerate non-empty string values"
                raise ConfigurationError(msg)
            object.__setattr__(self, "enum", values)

    def json_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.kind.value}
        if self.description:
            schema["description"] = self.description
        if self.enum:
            schema["enum"] = list(self.enum)
        return schema


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """A tool the agent may invoke.

    Frontend tools are executed by the calling UI, which answers through
    ``respond``; backend tools carry a ``handler`` and run inside the runtime.
    Everything is validated when the definition is built so mistakes surface at
    registration rather than in the middle of a run.
    """

    name: str
    parameters: tuple[ParameterDescriptor, ...] = ()
    description: str | None = None
    location: ToolLocation = ToolLocation.FRONTEND
    handler: ToolHandler | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not _NAME_PATTERN.fullmatch(self.name):
            msg = "tool name must match ^[a-zA-Z0-9_-]{1,64}$"
            raise ConfigurationError(msg)

        if self.description is not None:
            stripped = self.description.strip() if isinstance(self.description, str) else ""
            if not stripped:
                msg = f"tool '{self.name}' description cannot be empty"
                raise ConfigurationError(msg)
            object.__setattr__(self, "description", stripped)

        if not isinstance(self.location, ToolLocation):
            object.__setattr__(self, "location", ToolLocation(self.location))

        parameters = tuple(self.parameters)
        seen: set[str] = set()
        for parameter in parameters:
            if not isinstance(parameter, ParameterDescriptor):
                msg = f"tool '{self.name}' parameters must be ParameterDescriptor instances"
                raise ConfigurationError(msg)
            if parameter.name in seen:
                msg = f"tool '{self.name}' declares parameter '{parameter.name}' twice"
                raise ConfigurationError(msg)
            seen.add(parameter.name)
        object.__setattr__(self, "parameters", parameters)

        if self.location is ToolLocation.BACKEND and self.handler is None:
            msg = f"backend tool '{self.name}' requires a handler"
            raise ConfigurationError(msg)
        if self.location is ToolLocation.FRONTEND and self.handler is not None:
            msg = f"frontend tool '{self.name}' cannot carry a handler"
            raise ConfigurationError(msg)

    @property
    def is_frontend(self) -> bool:
        return self.location is ToolLocation.FRONTEND

    def json_schema(self) -> dict[str, Any]:
        """Return the JSON-schema object describing the tool's arguments."""

        schema: dict[str, Any] = {
            "type": "object",
            "properties": {p.name: p.json_schema() for p in self.parameters},
        }
        required = [p.name for p in self.parameters if p.required]
        if required:
            schema["required"] = required
        return schema

    @classmethod
    def frontend(
        cls,
        name: str,
        parameters: Sequence[ParameterDescriptor] = (),
        *,
        description: str | None = None,
    ) -> ToolDefinition:
        return cls(name=name, parameters=tuple(parameters), description=description)

    @classmethod
    def backend(
        cls,
        name: str,
        handler: ToolHandler,
        parameters: Sequence[ParameterDescriptor] = (),
        *,
        description: str | None = None,
    ) -> ToolDefinition:
        return cls(
            name=name,
            parameters=tuple(parameters),
            description=description,
            location=ToolLocation.BACKEND,
            handler=handler,
        )

    @classmethod
    def from_json_schema(
        cls,
        name: str,
        schema: Mapping[str, Any],
        *,
        description: str | None = None,
    ) -> ToolDefinition:
        """Build a frontend tool from a JSON-schema object description."""

        if schema.get("type", "object") != "object":
            msg = f"tool '{name}' parameters must describe a JSON object"
            raise ConfigurationError(msg)
        properties = schema.get("properties") or {}
        if not isinstance(properties, Mapping):
            msg = f"tool '{name}' must include an object 'properties' mapping"
            raise ConfigurationError(msg)
        required = set(schema.get("required") or ())
        unknown = required - set(properties)
        if unknown:
            msg = f"required parameter '{sorted(unknown)[0]}' is not defined"
            raise ConfigurationError(msg)

        parameters = []
        for key, spec in properties.items():
            spec = spec if isinstance(spec, Mapping) else {}
            enum = spec.get("enum")
            parameters.append(
                ParameterDescriptor(
                    name=key,
                    kind=spec.get("type", "string"),
                    required=key in required,
                    description=spec.get("description"),
                    enum=tuple(enum) if enum else None,
                )
            )
        return cls.frontend(name, parameters, description=description)


def tool_specs_to_openai(tools: Sequence[ToolDefinition]) -> list[dict[str, Any]]:
    """Convert tool definitions to OpenAI's chat tools schema."""

    if isinstance(tools, (str, bytes, bytearray)):
        msg = "tools must be provided as a sequence of ToolDefinition instances"
        raise ConfigurationError(msg)

    normalized_tools: list[dict[str, Any]] = []
    seen_names: set[str] = set()

    for index, spec in enumerate(tools):
        if not isinstance(spec, ToolDefinition):
            msg = f"tools[{index}] must be a ToolDefinition"
            raise ConfigurationError(msg)
        if spec.name in seen_names:
            msg = f"duplicate tool name '{spec.name}'"
            raise ConfigurationError(msg)
        seen_names.add(spec.name)

        function_payload: dict[str, Any] = {
            "name": spec.name,
            "parameters": spec.json_schema(),
        }
        if spec.description is not None:
            function_payload["description"] = spec.description

        normalized_tools.append({"type": "function", "function": function_payload})

    return normalized_tools


__all__ = [
    "ParameterDescriptor",
    "ParameterKind",
    "ToolDefinition",
    "ToolHandler",
    "ToolLocation",
    "tool_specs_to_openai",
]
