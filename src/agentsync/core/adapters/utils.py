"""Pure conversion helpers shared by adapter implementations."""

from __future__ import annotations

from collections.abc import Sequence
import json
from typing import Any

from ..message import ContextItem, Message, MessageRole, thaw_json


def tool_call_to_openai(call_id: str, name: str, arguments: Any) -> dict[str, Any]:
    return {
        "id": call_id,
        "type": "function",
        "function": {
            "name": name,
            "arguments": json.dumps(thaw_json(arguments), allow_nan=False),
        },
    }


def messages_to_openai(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Convert thread messages into the OpenAI Chat API format."""

    converted: list[dict[str, Any]] = []
    for message in messages:
        payload: dict[str, Any] = {
            "role": message.role.value,
            "content": message.content,
        }
        if message.tool_calls:
            payload["tool_calls"] = [
                tool_call_to_openai(call.id, call.name, call.arguments)
                for call in message.tool_calls
            ]
            if not message.content:
                payload["content"] = None
        if message.role is MessageRole.TOOL:
            payload["tool_call_id"] = message.tool_call_id
        converted.append(payload)

    return converted


def render_context(context: Sequence[ContextItem]) -> str | None:
    """Render run context items as a system prompt section, or ``None`` if empty."""

    if not context:
        return None
    lines = ["The following context is provided by the application:"]
    for item in context:
        value = json.dumps(thaw_json(item.value), ensure_ascii=False, sort_keys=True)
        lines.append(f"- {item.description}: {value}")
    return "\n".join(lines)


__all__ = ["messages_to_openai", "render_context", "tool_call_to_openai"]
