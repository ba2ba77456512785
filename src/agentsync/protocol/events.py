"""Closed vocabulary of events exchanged between agents, the runtime and UIs."""

from __future__ import annotations

from enum import Enum
import json
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from agentsync.core.message import Message, MessageRole, ToolCall, thaw_json


class EventType(str, Enum):
    """Discriminator values carried in the ``type`` field of every event."""

    RUN_STARTED = "RUN_STARTED"
    RUN_FINISHED = "RUN_FINISHED"
    RUN_ERROR = "RUN_ERROR"
    TEXT_MESSAGE_START = "TEXT_MESSAGE_START"
    TEXT_MESSAGE_CONTENT = "TEXT_MESSAGE_CONTENT"
    TEXT_MESSAGE_END = "TEXT_MESSAGE_END"
    TOOL_CALL_START = "TOOL_CALL_START"
    TOOL_CALL_ARGS = "TOOL_CALL_ARGS"
    TOOL_CALL_END = "TOOL_CALL_END"
    STATE_SNAPSHOT = "STATE_SNAPSHOT"
    STATE_DELTA = "STATE_DELTA"
    MESSAGES_SNAPSHOT = "MESSAGES_SNAPSHOT"
    CUSTOM = "CUSTOM"
    RAW = "RAW"
    STEP_STARTED = "STEP_STARTED"
    STEP_FINISHED = "STEP_FINISHED"


# Names of CUSTOM events produced or interpreted by the runtime.
INTERRUPT_EVENT = "on_interrupt"
TOOL_RESULT_EVENT = "tool_result"
PATCH_REJECTED_EVENT = "state_patch_rejected"

RoleName = Literal["user", "assistant", "system", "tool"]


class ProtocolModel(BaseModel):
    """Base model using camelCase field names on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


class PatchOperation(ProtocolModel):
    """One JSON-Patch style operation carried by ``STATE_DELTA``."""

    op: Literal["add", "remove", "replace", "move", "copy", "test"]
    path: str = Field(..., description="JSON pointer addressing the target location.")
    value: Any = Field(None, description="Operand for add, replace and test.")
    from_: Optional[str] = Field(None, alias="from", description="Source pointer for move and copy.")


class FunctionCallRecord(ProtocolModel):
    name: str
    arguments: str = Field("{}", description="JSON encoded argument object.")


class ToolCallRecord(ProtocolModel):
    id: str
    type: Literal["function"] = "function"
    function: FunctionCallRecord


class MessageRecord(ProtocolModel):
    """Serialized form of a finalized :class:`~agentsync.core.message.Message`."""

    id: str
    role: RoleName
    content: Optional[str] = None
    tool_calls: Optional[List[ToolCallRecord]] = None
    tool_call_id: Optional[str] = None

    @classmethod
    def from_message(cls, message: Message) -> MessageRecord:
        tool_calls = None
        if message.tool_calls:
            tool_calls = [
                ToolCallRecord(
                    id=call.id,
                    function=FunctionCallRecord(
                        name=call.name,
                        arguments=json.dumps(thaw_json(call.arguments), sort_keys=True),
                    ),
                )
                for call in message.tool_calls
            ]
        return cls(
            id=message.id,
            role=message.role.value,
            content=message.content,
            tool_calls=tool_calls,
            tool_call_id=message.tool_call_id,
        )

    def to_message(self) -> Message:
        tool_calls = None
        if self.tool_calls:
            tool_calls = tuple(
                ToolCall.from_json_arguments(call.id, call.function.name, call.function.arguments)
                for call in self.tool_calls
            )
        return Message(
            id=self.id,
            role=MessageRole(self.role),
            content=self.content or "",
            tool_calls=tool_calls,
            tool_call_id=self.tool_call_id,
        )


class InterruptInfo(ProtocolModel):
    """Describes the checkpoint a run paused at."""

    checkpoint_id: str
    step: Optional[str] = None
    value: Any = None


class BaseEvent(ProtocolModel):
    """Fields shared by every event."""

    type: str
    timestamp: Optional[int] = Field(None, description="Milliseconds since the epoch.")
    raw_event: Any = Field(None, description="Provider payload the event was derived from.")


class RunStartedEvent(BaseEvent):
    type: Literal["RUN_STARTED"] = "RUN_STARTED"
    thread_id: str
    run_id: str
    parent_run_id: Optional[str] = None


class RunFinishedEvent(BaseEvent):
    type: Literal["RUN_FINISHED"] = "RUN_FINISHED"
    thread_id: str
    run_id: str
    outcome: Literal["success", "interrupt"] = "success"
    result: Any = None
    interrupt: Optional[InterruptInfo] = None


class RunErrorEvent(BaseEvent):
    type: Literal["RUN_ERROR"] = "RUN_ERROR"
    message: str
    code: Optional[str] = None
    thread_id: Optional[str] = None
    run_id: Optional[str] = None


class TextMessageStartEvent(BaseEvent):
    type: Literal["TEXT_MESSAGE_START"] = "TEXT_MESSAGE_START"
    message_id: str
    role: RoleName = "assistant"


class TextMessageContentEvent(BaseEvent):
    type: Literal["TEXT_MESSAGE_CONTENT"] = "TEXT_MESSAGE_CONTENT"
    message_id: str
    delta: str


class TextMessageEndEvent(BaseEvent):
    type: Literal["TEXT_MESSAGE_END"] = "TEXT_MESSAGE_END"
    message_id: str


class ToolCallStartEvent(BaseEvent):
    type: Literal["TOOL_CALL_START"] = "TOOL_CALL_START"
    tool_call_id: str
    tool_name: str
    parent_message_id: Optional[str] = None


class ToolCallArgsEvent(BaseEvent):
    type: Literal["TOOL_CALL_ARGS"] = "TOOL_CALL_ARGS"
    tool_call_id: str
    delta: str


class ToolCallEndEvent(BaseEvent):
    type: Literal["TOOL_CALL_END"] = "TOOL_CALL_END"
    tool_call_id: str


class StateSnapshotEvent(BaseEvent):
    type: Literal["STATE_SNAPSHOT"] = "STATE_SNAPSHOT"
    snapshot: Any = None


class StateDeltaEvent(BaseEvent):
    type: Literal["STATE_DELTA"] = "STATE_DELTA"
    delta: List[PatchOperation]


class MessagesSnapshotEvent(BaseEvent):
    type: Literal["MESSAGES_SNAPSHOT"] = "MESSAGES_SNAPSHOT"
    messages: List[MessageRecord]


class CustomEvent(BaseEvent):
    type: Literal["CUSTOM"] = "CUSTOM"
    name: str
    value: Any = None


class RawEvent(BaseEvent):
    type: Literal["RAW"] = "RAW"
    event: Any = None
    source: Optional[str] = None


class StepStartedEvent(BaseEvent):
    type: Literal["STEP_STARTED"] = "STEP_STARTED"
    step_name: str


class StepFinishedEvent(BaseEvent):
    type: Literal["STEP_FINISHED"] = "STEP_FINISHED"
    step_name: str


Event = Annotated[
    Union[
        RunStartedEvent,
        RunFinishedEvent,
        RunErrorEvent,
        TextMessageStartEvent,
        TextMessageContentEvent,
        TextMessageEndEvent,
        ToolCallStartEvent,
        ToolCallArgsEvent,
        ToolCallEndEvent,
        StateSnapshotEvent,
        StateDeltaEvent,
        MessagesSnapshotEvent,
        CustomEvent,
        RawEvent,
        StepStartedEvent,
        StepFinishedEvent,
    ],
    Field(discriminator="type"),
]

EVENT_ADAPTER: TypeAdapter[Event] = TypeAdapter(Event)

TERMINAL_EVENT_TYPES = frozenset({EventType.RUN_FINISHED.value, EventType.RUN_ERROR.value})


def event_to_dict(event: BaseEvent) -> dict[str, Any]:
    """Return the wire representation of ``event``."""

    return event.model_dump(mode="json", by_alias=True, exclude_none=True)


__all__ = [
    "BaseEvent",
    "CustomEvent",
    "EVENT_ADAPTER",
    "Event",
    "EventType",
    "FunctionCallRecord",
    "INTERRUPT_EVENT",
    "InterruptInfo",
    "MessageRecord",
    "MessagesSnapshotEvent",
    "PATCH_REJECTED_EVENT",
    "PatchOperation",
    "ProtocolModel",
    "RawEvent",
    "RunErrorEvent",
    "RunFinishedEvent",
    "RunStartedEvent",
    "StateDeltaEvent",
    "StateSnapshotEvent",
    "StepFinishedEvent",
    "StepStartedEvent",
    "TERMINAL_EVENT_TYPES",
    "TOOL_RESULT_EVENT",
    "TextMessageContentEvent",
    "TextMessageEndEvent",
    "TextMessageStartEvent",
    "ToolCallArgsEvent",
    "ToolCallEndEvent",
    "ToolCallRecord",
    "ToolCallStartEvent",
    "event_to_dict",
]
