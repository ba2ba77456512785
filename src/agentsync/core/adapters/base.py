"""Capability interface shared by every execution target."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from agentsync.protocol.events import BaseEvent

from ..message import ContextItem, Message
from .toolbridge import ToolDefinition


@dataclass(frozen=True, slots=True)
class ResumeCommand:
    """Instructions for re-entering an interrupted execution."""

    checkpoint_id: str
    step: str | None
    payload: Any = None


@dataclass(frozen=True, slots=True)
class AgentRequest:
    """Everything a target needs to execute one turn of a run."""

    thread_id: str
    run_id: str
    messages: tuple[Message, ...]
    context: tuple[ContextItem, ...] = ()
    tools: tuple[ToolDefinition, ...] = ()
    state: Any = None
    resume: ResumeCommand | None = None


class AgentAdapter(ABC):
    """Anything that can turn a request into a stream of protocol events.

    LLM providers, in-process step graphs and remote agents all implement this
    single method; the runtime selects among them by name.
    """

    @abstractmethod
    def stream(self, request: AgentRequest) -> AsyncIterator[BaseEvent]:
        """Return an async iterator yielding the events of one turn."""


__all__ = ["AgentAdapter", "AgentRequest", "ResumeCommand"]
