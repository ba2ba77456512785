"""Execution targets: LLM providers, step graphs and remote agents."""

from __future__ import annotations

from .base import AgentAdapter, AgentRequest, ResumeCommand
from .graph import StepAgent, StepContext, StepInterrupt
from .openai import OpenAIAdapter
from .remote import RemoteAgentAdapter
from .stream import (
    BaseStreamIterator,
    ScriptedAdapter,
    ScriptedStreamIterator,
    StreamNormalizer,
    collect_text,
    replay_stream,
    text_message_events,
    tool_call_events,
)
from .toolbridge import (
    ParameterDescriptor,
    ParameterKind,
    ToolDefinition,
    ToolLocation,
    tool_specs_to_openai,
)
from .utils import messages_to_openai, render_context

__all__ = [
    "AgentAdapter",
    "AgentRequest",
    "BaseStreamIterator",
    "OpenAIAdapter",
    "ParameterDescriptor",
    "ParameterKind",
    "RemoteAgentAdapter",
    "ResumeCommand",
    "ScriptedAdapter",
    "ScriptedStreamIterator",
    "StepAgent",
    "StepContext",
    "StepInterrupt",
    "StreamNormalizer",
    "ToolDefinition",
    "ToolLocation",
    "collect_text",
    "messages_to_openai",
    "render_context",
    "replay_stream",
    "text_message_events",
    "tool_call_events",
    "tool_specs_to_openai",
]
