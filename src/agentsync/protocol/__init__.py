"""Event vocabulary, wire codec and stream contract checks."""

from .codec import EventDecoder, EventEncoder, decode_event, decode_stream, encode_event
from .events import (
    BaseEvent,
    CustomEvent,
    Event,
    EventType,
    MessageRecord,
    MessagesSnapshotEvent,
    PatchOperation,
    RawEvent,
    RunErrorEvent,
    RunFinishedEvent,
    RunStartedEvent,
    StateDeltaEvent,
    StateSnapshotEvent,
    StepFinishedEvent,
    StepStartedEvent,
    TextMessageContentEvent,
    TextMessageEndEvent,
    TextMessageStartEvent,
    ToolCallArgsEvent,
    ToolCallEndEvent,
    ToolCallStartEvent,
)
from .verifier import SequenceVerifier, verify_events

__all__ = [
    "BaseEvent",
    "CustomEvent",
    "Event",
    "EventDecoder",
    "EventEncoder",
    "EventType",
    "MessageRecord",
    "MessagesSnapshotEvent",
    "PatchOperation",
    "RawEvent",
    "RunErrorEvent",
    "RunFinishedEvent",
    "RunStartedEvent",
    "SequenceVerifier",
    "StateDeltaEvent",
    "StateSnapshotEvent",
    "StepFinishedEvent",
    "StepStartedEvent",
    "TextMessageContentEvent",
    "TextMessageEndEvent",
    "TextMessageStartEvent",
    "ToolCallArgsEvent",
    "ToolCallEndEvent",
    "ToolCallStartEvent",
    "decode_event",
    "decode_stream",
    "encode_event",
    "verify_events",
]
