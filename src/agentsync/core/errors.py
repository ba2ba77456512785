"""Exception types raised by the agentsync runtime."""

from __future__ import annotations


class AgentSyncError(RuntimeError):
    """Base class for all runtime errors.

    ``code`` is the machine-readable value reported on ``RUN_ERROR`` events when
    the error terminates a run.
    """

    code = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ProtocolError(AgentSyncError):
    """Raised when an event stream is malformed or out of order."""

    code = "protocol_error"


class PatchError(AgentSyncError):
    """Raised when a state delta cannot be applied."""

    code = "patch_error"


class AdapterError(AgentSyncError):
    """Raised when an adapter cannot fulfil a request."""

    code = "adapter_error"


class ToolNotFoundError(AgentSyncError):
    """Raised when a tool call references an unregistered tool."""

    code = "tool_not_found"


class RunTimeoutError(AgentSyncError, TimeoutError):
    """Raised when a suspension point exceeds its configured bound."""

    code = "timeout"


class RunCancelledError(AgentSyncError):
    """Raised inside a run that was cancelled by its caller."""

    code = "cancelled"


class MaxTurnsExceededError(AgentSyncError):
    """Raised when the tool loop does not settle within the turn bound."""

    code = "max_turns_exceeded"


class ConfigurationError(AgentSyncError):
    """Raised for invalid registrations or runtime configuration."""

    code = "configuration_error"


class UnknownCheckpointError(AgentSyncError):
    """Raised when resuming a checkpoint that is not pending."""

    code = "unknown_checkpoint"


class ToolCallNotPendingError(AgentSyncError):
    """Raised when a result is supplied for a tool call nobody awaits."""

    code = "tool_call_not_pending"


__all__ = [
    "AdapterError",
    "AgentSyncError",
    "ConfigurationError",
    "MaxTurnsExceededError",
    "PatchError",
    "ProtocolError",
    "RunCancelledError",
    "RunTimeoutError",
    "ToolCallNotPendingError",
    "ToolNotFoundError",
    "UnknownCheckpointError",
]
