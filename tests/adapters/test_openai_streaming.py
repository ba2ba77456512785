from __future__ import annotations

import asyncio

import pytest

from agentsync.core.adapters.openai import OpenAIAdapter
from agentsync.core.adapters.toolbridge import ParameterDescriptor, ToolDefinition
from agentsync.core.errors import AdapterError
from agentsync.io.adapters import InMemoryThreadStore
from agentsync.protocol.events import (
    TextMessageContentEvent,
    ToolCallArgsEvent,
    ToolCallStartEvent,
)
from agentsync.runtime.loop import RunOrchestrator
from tests.fixtures.openai_fake import (
    build_streaming_client,
    text_chunks,
    token_only_chunks,
    tool_call_chunks,
)
from tests.harness import collect, event_types, make_request, run_to_end


def _adapter(*responses):
    client, streams = build_streaming_client(*responses)
    return OpenAIAdapter(client, default_model="gpt-4o-mini"), client, streams


def test_token_stream_becomes_one_text_message() -> None:
    adapter, _, streams = _adapter(token_only_chunks())

    events = collect(adapter, make_request("hello"))

    assert event_types(events) == [
        "TEXT_MESSAGE_START",
        "TEXT_MESSAGE_CONTENT",
        "TEXT_MESSAGE_CONTENT",
        "TEXT_MESSAGE_END",
    ]
    assert "".join(e.delta for e in events if isinstance(e, TextMessageContentEvent)) == "Hello, world"
    assert len({e.message_id for e in events}) == 1
    assert streams[0].closed


def test_tool_call_fragments_are_streamed_under_the_text_message() -> None:
    adapter, _, _ = _adapter(tool_call_chunks())

    events = collect(adapter, make_request("add 1 and 3"))

    assert event_types(events) == [
        "TEXT_MESSAGE_START",
        "TEXT_MESSAGE_CONTENT",
        "TEXT_MESSAGE_END",
        "TOOL_CALL_START",
        "TOOL_CALL_ARGS",
        "TOOL_CALL_ARGS",
        "TOOL_CALL_END",
    ]
    start = next(e for e in events if isinstance(e, ToolCallStartEvent))
    assert start.tool_call_id == "call-1"
    assert start.tool_name == "sum"
    assert start.parent_message_id == events[0].message_id
    args = "".join(e.delta for e in events if isinstance(e, ToolCallArgsEvent))
    assert args == '{"a": 1, "b": 3}'


def test_tool_call_without_preamble_opens_no_text_message() -> None:
    adapter, _, _ = _adapter(tool_call_chunks(preamble=None, fragments=("{}",)))

    events = collect(adapter, make_request("go"))

    assert event_types(events) == ["TOOL_CALL_START", "TOOL_CALL_ARGS", "TOOL_CALL_END"]


@pytest.mark.parametrize(
    ("chunks", "message"),
    [
        ([{"choices": [{"index": 0, "delta": {"content": "cut"}}]}], "without a finish reason"),
        (
            [{"choices": [{"index": 0, "delta": {"content": "x"}}]}, ConnectionError("reset")],
            "unexpected error",
        ),
        (
            [{"choices": [{"index": 0, "delta": {"tool_calls": [{"index": 0, "function": {"arguments": "{}"}}]}}]}],
            "before its id and name",
        ),
        (
            [
                *tool_call_chunks()[:-1],
                {"choices": [{"index": 0, "delta": {"content": "late text"}}]},
            ],
            "resumed text after a tool call",
        ),
        ([{"choices": 5}], "must be a sequence"),
        ([{"choices": ["nope"]}], "must be a mapping"),
    ],
)
def test_malformed_provider_streams_raise_adapter_errors(chunks, message) -> None:
    adapter, _, _ = _adapter(chunks)

    with pytest.raises(AdapterError, match=message):
        collect(adapter, make_request("hello"))


def test_openai_tool_loop_through_the_orchestrator() -> None:
    add = ToolDefinition.backend(
        "sum",
        lambda a, b: a + b,
        [ParameterDescriptor("a", "integer"), ParameterDescriptor("b", "integer")],
    )
    adapter, client, _ = _adapter(tool_call_chunks(), text_chunks("Sum is ", "4"))

    async def scenario():
        orchestrator = RunOrchestrator(InMemoryThreadStore(), adapter=adapter, tools=[add])
        handle = await orchestrator.start("t1", "what is 1 + 3?")
        events = await run_to_end(handle)
        record = await orchestrator.store.get("t1")
        return events, record

    events, record = asyncio.run(scenario())
    second_call = client.completions.calls[1]["messages"]

    assert events[-1].type == "RUN_FINISHED"
    assert [message["role"] for message in second_call] == ["user", "assistant", "tool"]
    assert second_call[1]["content"] == "Calling calculator"
    assert second_call[1]["tool_calls"][0]["function"] == {"name": "sum", "arguments": '{"a": 1, "b": 3}'}
    assert second_call[2] == {"role": "tool", "content": "4", "tool_call_id": "call-1"}
    assert [message.content for message in record.to_messages()][-1] == "Sum is 4"
