from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from agentsync.core.message import Message, MessageRole, ToolCall
from agentsync.io.schema import CheckpointRecord, ThreadRecord
from agentsync.protocol.events import MessageRecord


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def test_thread_record_roundtrip() -> None:
    assistant = Message(
        id="m2",
        role=MessageRole.ASSISTANT,
        content="",
        tool_calls=(ToolCall(id="tc1", name="search", arguments={"q": "tides"}),),
    )
    record = ThreadRecord(
        thread_id="t1",
        messages=[
            MessageRecord.from_message(Message.user("hi", id="m1")),
            MessageRecord.from_message(assistant),
        ],
        agent_states={"default": {"count": 1}},
        checkpoints={
            "ckpt-1": CheckpointRecord(
                checkpoint_id="ckpt-1",
                run_id="run-1",
                agent_name="default",
                step="approve",
                value={"question": "ok?"},
                created_at=_now(),
            )
        },
    )

    restored = ThreadRecord.model_validate_json(record.model_dump_json(by_alias=True))

    assert restored == record
    assert restored.to_messages()[1] == assistant
    assert restored.state_for("default") == {"count": 1}
    assert restored.state_for("other") is None


def test_empty_thread_record() -> None:
    record = ThreadRecord.empty("t1")

    assert record.is_empty
    assert record.to_messages() == []


def test_records_reject_unknown_fields() -> None:
    with pytest.raises(ValidationError):
        ThreadRecord.model_validate({"thread_id": "t1", "owner": "someone"})
    with pytest.raises(ValidationError):
        CheckpointRecord.model_validate(
            {"checkpoint_id": "c", "run_id": "r", "agent_name": "a", "extra": 1}
        )


def test_records_are_frozen() -> None:
    record = ThreadRecord.empty("t1")

    with pytest.raises(ValidationError):
        record.thread_id = "t2"  # type: ignore[misc]
