"""Agent event streaming and bidirectional state synchronization.

The package provides a closed vocabulary of run events with an SSE and
JSON-lines codec, a state synchronizer that applies agent deltas and UI writes
in receipt order, a run orchestrator with frontend tool round-trips and
human-in-the-loop checkpoints, and thread stores for reconnecting clients.
"""

from __future__ import annotations

from .config import RuntimeConfig
from .core import (
    AdapterError,
    AgentSyncError,
    ConfigurationError,
    ContextItem,
    Message,
    MessageRole,
    PatchError,
    ProtocolError,
    RunTimeoutError,
    ToolCall,
    ToolNotFoundError,
)
from .io import CheckpointRecord, InMemoryThreadStore, LocalThreadStore, ThreadRecord, ThreadStore
from .protocol import EventDecoder, EventEncoder, EventType, SequenceVerifier, verify_events
from .runtime import RunHandle, RunOrchestrator, RunStatus, StateSynchronizer

__all__ = [
    "AdapterError",
    "AgentSyncError",
    "CheckpointRecord",
    "ConfigurationError",
    "ContextItem",
    "EventDecoder",
    "EventEncoder",
    "EventType",
    "InMemoryThreadStore",
    "LocalThreadStore",
    "Message",
    "MessageRole",
    "PatchError",
    "ProtocolError",
    "RunHandle",
    "RunOrchestrator",
    "RunStatus",
    "RunTimeoutError",
    "RuntimeConfig",
    "SequenceVerifier",
    "StateSynchronizer",
    "ThreadRecord",
    "ThreadStore",
    "ToolCall",
    "ToolNotFoundError",
    "verify_events",
]

__version__ = "0.1.0"
