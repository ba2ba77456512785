"""Conversation primitives shared by adapters, the runtime and thread stores."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
import json
import math
from types import MappingProxyType
from typing import Any
from uuid import uuid4


class MessageRole(str, Enum):
    """Canonical role names supported by agentsync."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


def generate_id(prefix: str) -> str:
    """Return a fresh identifier such as ``run-3f2a...``."""

    return f"{prefix}-{uuid4().hex}"


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A finalized tool invocation attached to an assistant message.

    The result of the call is not stored here: it is recorded as a ``tool``
    message whose ``tool_call_id`` points back at :attr:`id`.
    """

    id: str
    name: str
    arguments: Mapping[str, Any]

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id:
            msg = "tool call id must be a non-empty string"
            raise ValueError(msg)
        if not isinstance(self.name, str) or not self.name:
            msg = "tool call name must be a non-empty string"
            raise ValueError(msg)
        if not isinstance(self.arguments, Mapping):
            msg = "tool call arguments must be a mapping"
            raise TypeError(msg)

        plain_arguments = thaw_json(dict(self.arguments))
        ensure_json_compatible(plain_arguments, path="ToolCall.arguments")

        sanitized = json.loads(json.dumps(plain_arguments, allow_nan=False))
        object.__setattr__(self, "arguments", freeze_json(sanitized))

    @classmethod
    def from_json_arguments(cls, id: str, name: str, raw: str) -> ToolCall:
        """Build a call from the concatenated argument fragments of a stream."""

        try:
            parsed = json.loads(raw or "{}")
        except json.JSONDecodeError as exc:
            msg = f"arguments for tool call '{id}' are not valid JSON"
            raise ValueError(msg) from exc
        if not isinstance(parsed, Mapping):
            msg = f"arguments for tool call '{id}' must decode to a JSON object"
            raise ValueError(msg)
        return cls(id=id, name=name, arguments=parsed)


@dataclass(frozen=True, slots=True)
class Message:
    """A single finalized message in a thread's history."""

    id: str
    role: MessageRole
    content: str
    tool_calls: tuple[ToolCall, ...] | None = None
    tool_call_id: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id:
            msg = "message id must be a non-empty string"
            raise ValueError(msg)
        if not isinstance(self.content, str):
            msg = "message content must be a string"
            raise TypeError(msg)
        if not isinstance(self.role, MessageRole):
            object.__setattr__(self, "role", MessageRole(self.role))

        normalized_tool_calls: tuple[ToolCall, ...] | None = None
        if self.tool_calls is not None:
            if not isinstance(self.tool_calls, Sequence) or isinstance(
                self.tool_calls, (str, bytes, bytearray)
            ):
                msg = "tool_calls must be a sequence of ToolCall instances"
                raise TypeError(msg)
            candidates = tuple(self.tool_calls)
            for call in candidates:
                if not isinstance(call, ToolCall):
                    msg = "tool_calls must contain ToolCall instances"
                    raise TypeError(msg)
            if candidates and self.role is not MessageRole.ASSISTANT:
                msg = "only assistant messages may carry tool calls"
                raise ValueError(msg)
            normalized_tool_calls = candidates or None
            object.__setattr__(self, "tool_calls", normalized_tool_calls)

        if self.role is MessageRole.TOOL and not self.tool_call_id:
            msg = "tool messages must reference the tool call they answer"
            raise ValueError(msg)
        if self.role is not MessageRole.TOOL and self.tool_call_id is not None:
            msg = "tool_call_id is only valid on tool messages"
            raise ValueError(msg)

        if self.content == "" and normalized_tool_calls is None and self.role is not MessageRole.TOOL:
            msg = "message content cannot be empty when no tool calls are present"
            raise ValueError(msg)

    @classmethod
    def user(cls, content: str, *, id: str | None = None) -> Message:
        return cls(id=id or generate_id("msg"), role=MessageRole.USER, content=content)

    @classmethod
    def tool_result(cls, tool_call_id: str, content: str, *, id: str | None = None) -> Message:
        return cls(
            id=id or generate_id("msg"),
            role=MessageRole.TOOL,
            content=content,
            tool_call_id=tool_call_id,
        )


@dataclass(frozen=True, slots=True)
class ContextItem:
    """Read-only information supplied by the caller for the duration of one run."""

    description: str
    value: Any = field(default=None)

    def __post_init__(self) -> None:
        if not isinstance(self.description, str) or not self.description.strip():
            msg = "context item description must be a non-empty string"
            raise ValueError(msg)
        plain = thaw_json(self.value)
        ensure_json_compatible(plain, path=f"ContextItem({self.description!r}).value")
        object.__setattr__(self, "value", _freeze_nested(plain))


def ensure_json_compatible(value: Any, *, path: str) -> None:
    """Raise ``TypeError``/``ValueError`` unless ``value`` is plain JSON data."""

    if isinstance(value, Mapping):
        for key, inner in value.items():
            if not isinstance(key, str):
                msg = f"{path} keys must be strings"
                raise TypeError(msg)
            ensure_json_compatible(inner, path=f"{path}.{key}")
        return

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        for index, item in enumerate(value):
            ensure_json_compatible(item, path=f"{path}[{index}]")
        return

    if isinstance(value, (bool, type(None), str)):
        return

    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            msg = f"{path} contains non-finite float values"
            raise ValueError(msg)
        return

    msg = f"{path} contains unsupported value type {type(value).__name__}"
    raise TypeError(msg)


def freeze_json(value: dict[str, Any]) -> Mapping[str, Any]:
    """Return a read-only view of a decoded JSON object."""

    return MappingProxyType({key: _freeze_nested(inner) for key, inner in value.items()})


def _freeze_nested(value: Any) -> Any:
    if isinstance(value, dict):
        return freeze_json(value)

    if isinstance(value, list):
        return tuple(_freeze_nested(inner) for inner in value)

    return value


def thaw_json(value: Any) -> Any:
    """Convert frozen mappings and tuples back into plain ``dict``/``list`` data."""

    if isinstance(value, Mapping):
        return {key: thaw_json(inner) for key, inner in value.items()}

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [thaw_json(inner) for inner in value]

    return value


__all__ = [
    "ContextItem",
    "Message",
    "MessageRole",
    "ToolCall",
    "ensure_json_compatible",
    "freeze_json",
    "generate_id",
    "thaw_json",
]
