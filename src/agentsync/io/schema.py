"""Persistence records for threads, agent state and checkpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from agentsync.core.message import Message
from agentsync.protocol.events import MessageRecord


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class CheckpointRecord(BaseModel):
    """Minimum information needed to resume an interrupted run."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    checkpoint_id: str = Field(..., description="Identifier handed to the caller for resuming.")
    run_id: str = Field(..., description="Run that reached the checkpoint.")
    agent_name: str = Field(..., description="Target the run was executing.")
    step: Optional[str] = Field(None, description="Step or node the run paused in, if known.")
    value: Any = Field(None, description="Payload the target attached to the interrupt.")
    state: Any = Field(None, description="Agent state at the moment of the interrupt.")
    created_at: datetime = Field(default_factory=utcnow, description="When the checkpoint was taken.")


class ThreadRecord(BaseModel):
    """Everything persisted for one conversation thread."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    thread_id: str = Field(..., description="Stable identifier of the thread.")
    messages: List[MessageRecord] = Field(default_factory=list, description="Finalized messages in order.")
    agent_states: Dict[str, Any] = Field(default_factory=dict, description="Last known state per agent name.")
    checkpoints: Dict[str, CheckpointRecord] = Field(default_factory=dict, description="Pending checkpoints by id.")
    created_at: datetime = Field(default_factory=utcnow, description="Creation timestamp in UTC.")
    updated_at: datetime = Field(default_factory=utcnow, description="Last write timestamp in UTC.")

    @classmethod
    def empty(cls, thread_id: str) -> ThreadRecord:
        return cls(thread_id=thread_id)

    @property
    def is_empty(self) -> bool:
        return not self.messages and not self.agent_states and not self.checkpoints

    def to_messages(self) -> list[Message]:
        """Return the history as core :class:`Message` objects."""

        return [record.to_message() for record in self.messages]

    def state_for(self, agent_name: str) -> Any:
        return self.agent_states.get(agent_name)


__all__ = ["CheckpointRecord", "ThreadRecord", "utcnow"]
