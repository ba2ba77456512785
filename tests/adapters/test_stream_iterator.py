from __future__ import annotations

import asyncio
from typing import Any

import pytest

from agentsync.core.adapters.stream import (
    BaseStreamIterator,
    ScriptedAdapter,
    ScriptedStreamIterator,
    collect_text,
    replay_stream,
    text_message_events,
    tool_call_events,
)
from agentsync.protocol.events import (
    CustomEvent,
    RunFinishedEvent,
    TextMessageContentEvent,
    TextMessageEndEvent,
)
from tests.harness import collect, event_types, make_request


class _ChunkNormalizer:
    """Turn ``{"text": ...}`` chunks into content events and close the message at the end."""

    def __init__(self) -> None:
        self.finished = False

    async def normalize_chunk(self, chunk: dict[str, Any]) -> list:
        return [TextMessageContentEvent(message_id="m1", delta=chunk["text"])]

    async def finish(self) -> list:
        self.finished = True
        return [TextMessageEndEvent(message_id="m1")]


class _ListIterator(BaseStreamIterator):
    def __init__(self, chunks: list[dict[str, Any]]) -> None:
        self._chunks = list(chunks)
        self.closed_provider = False
        super().__init__(_ChunkNormalizer())

    async def _get_next_chunk(self) -> dict[str, Any]:
        if not self._chunks:
            raise StopAsyncIteration
        return self._chunks.pop(0)

    async def _on_close(self) -> None:
        self.closed_provider = True


def test_trailing_events_are_flushed_when_the_provider_is_exhausted() -> None:
    iterator = _ListIterator([{"text": "a"}, {"text": "b"}])

    events = asyncio.run(replay_stream(iterator))

    assert event_types(events) == ["TEXT_MESSAGE_CONTENT", "TEXT_MESSAGE_CONTENT", "TEXT_MESSAGE_END"]
    assert iterator.closed_provider


def test_iteration_stops_after_a_terminal_event() -> None:
    iterator = ScriptedStreamIterator(
        [
            CustomEvent(name="before"),
            RunFinishedEvent(thread_id="t1", run_id="r1"),
            CustomEvent(name="after"),
        ]
    )

    events = asyncio.run(replay_stream(iterator))

    assert [event.type for event in events] == ["CUSTOM", "RUN_FINISHED"]


def test_scripted_exceptions_are_raised_in_place() -> None:
    iterator = ScriptedStreamIterator([CustomEvent(name="first"), RuntimeError("dropped")])
    seen: list[str] = []

    async def consume() -> None:
        async for event in iterator:
            seen.append(event.name)

    with pytest.raises(RuntimeError, match="dropped"):
        asyncio.run(consume())
    assert seen == ["first"]


def test_scripted_adapter_records_requests_and_runs_out_quietly() -> None:
    adapter = ScriptedAdapter(text_message_events("m1", "one"))

    first = collect(adapter, make_request("hi"))
    second = collect(adapter, make_request("again", run_id="run-2"))

    assert event_types(first) == ["TEXT_MESSAGE_START", "TEXT_MESSAGE_CONTENT", "TEXT_MESSAGE_END"]
    assert second == []
    assert [request.run_id for request in adapter.requests] == ["run-1", "run-2"]


def test_collect_text_joins_deltas_per_message() -> None:
    script = [
        *text_message_events("m1", "Hel", "lo"),
        *tool_call_events("tc1", "noop"),
        *text_message_events("m2"),
    ]

    text = asyncio.run(collect_text(ScriptedStreamIterator(script)))

    assert text == {"m1": "Hello", "m2": ""}
