"""Async runtime: state synchronization, event publishing and run orchestration."""

from .bus import EventListener, EventPublisher, RunStream
from .loop import DEFAULT_AGENT, RunHandle, RunOrchestrator
from .patch import apply_operation, apply_patch, deep_merge, get_value, parse_pointer
from .run import Checkpoint, Run, RunContext, RunStatus
from .state import StateListener, StateSynchronizer
from .tools import ToolRegistry, execute_tool

__all__ = [
    "Checkpoint",
    "DEFAULT_AGENT",
    "EventListener",
    "EventPublisher",
    "Run",
    "RunContext",
    "RunHandle",
    "RunOrchestrator",
    "RunStatus",
    "RunStream",
    "StateListener",
    "StateSynchronizer",
    "ToolRegistry",
    "apply_operation",
    "apply_patch",
    "deep_merge",
    "execute_tool",
    "get_value",
    "parse_pointer",
]
