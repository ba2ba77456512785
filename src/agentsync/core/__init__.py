"""Core data structures and error types for agentsync."""

from __future__ import annotations

from .errors import (
    AdapterError,
    AgentSyncError,
    ConfigurationError,
    PatchError,
    ProtocolError,
    RunTimeoutError,
    ToolNotFoundError,
)
from .message import ContextItem, Message, MessageRole, ToolCall

__all__ = [
    "AdapterError",
    "AgentSyncError",
    "ConfigurationError",
    "ContextItem",
    "Message",
    "MessageRole",
    "PatchError",
    "ProtocolError",
    "RunTimeoutError",
    "ToolCall",
    "ToolNotFoundError",
]
