"""Run lifecycle primitives and the explicit per-run context."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from agentsync.core.adapters.base import AgentAdapter, ResumeCommand
from agentsync.core.errors import AgentSyncError
from agentsync.core.message import ContextItem
from agentsync.io.schema import CheckpointRecord
from agentsync.protocol.events import BaseEvent, InterruptInfo
from agentsync.protocol.verifier import SequenceVerifier

from .bus import EventPublisher
from .state import StateSynchronizer
from .tools import ToolRegistry


class RunStatus(str, Enum):
    """Lifecycle states of a run."""

    PENDING = "pending"
    RUNNING = "running"
    INTERRUPTED = "interrupted"
    FINISHED = "finished"
    ERRORED = "errored"


_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.PENDING: frozenset({RunStatus.RUNNING, RunStatus.ERRORED}),
    RunStatus.RUNNING: frozenset({RunStatus.FINISHED, RunStatus.ERRORED, RunStatus.INTERRUPTED}),
    RunStatus.INTERRUPTED: frozenset(),
    RunStatus.FINISHED: frozenset(),
    RunStatus.ERRORED: frozenset(),
}


@dataclass(slots=True)
class Run:
    """One agent execution and the events it emitted."""

    run_id: str
    thread_id: str
    agent_name: str
    parent_run_id: str | None = None
    status: RunStatus = RunStatus.PENDING
    events: list[BaseEvent] = field(default_factory=list)
    error: AgentSyncError | None = None
    interrupt: InterruptInfo | None = None
    resumed_by: str | None = None

    @property
    def done(self) -> bool:
        return not _TRANSITIONS[self.status]

    def transition(self, status: RunStatus) -> None:
        if status not in _TRANSITIONS[self.status]:
            msg = f"run {self.run_id} cannot move from {self.status.value} to {status.value}"
            raise AgentSyncError(msg)
        self.status = status


@dataclass(frozen=True, slots=True)
class Checkpoint:
    """Pause point of an interrupted run, as handed to callers."""

    checkpoint_id: str
    thread_id: str
    run_id: str
    agent_name: str
    step: str | None = None
    value: Any = None

    @classmethod
    def from_record(cls, thread_id: str, record: CheckpointRecord) -> Checkpoint:
        return cls(
            checkpoint_id=record.checkpoint_id,
            thread_id=thread_id,
            run_id=record.run_id,
            agent_name=record.agent_name,
            step=record.step,
            value=record.value,
        )

    def to_command(self, payload: Any = None) -> ResumeCommand:
        return ResumeCommand(checkpoint_id=self.checkpoint_id, step=self.step, payload=payload)


@dataclass(slots=True)
class RunContext:
    """Everything the orchestrator needs while driving one run.

    A context is created per run and passed explicitly; nothing about the
    current run is held in module or orchestrator globals.
    """

    run: Run
    adapter: AgentAdapter
    tools: ToolRegistry
    state: StateSynchronizer
    publisher: EventPublisher
    context: tuple[ContextItem, ...] = ()
    resume: ResumeCommand | None = None
    verifier: SequenceVerifier = field(default_factory=SequenceVerifier)
    pending_tools: dict[str, asyncio.Future[Any]] = field(default_factory=dict)
    cancel_requested: bool = False

    @property
    def thread_id(self) -> str:
        return self.run.thread_id

    @property
    def run_id(self) -> str:
        return self.run.run_id

    @property
    def agent_name(self) -> str:
        return self.run.agent_name

    def release(self) -> None:
        """Drop run-scoped resources once the run is terminal."""

        self.context = ()
        self.resume = None
        for future in self.pending_tools.values():
            if not future.done():
                future.cancel()
        self.pending_tools.clear()


__all__ = ["Checkpoint", "Run", "RunContext", "RunStatus"]
