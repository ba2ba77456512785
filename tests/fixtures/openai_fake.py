"""Deterministic OpenAI streaming fixtures for offline adapter tests."""

from __future__ import annotations

import asyncio
from collections import deque
from types import SimpleNamespace
from typing import Any, Deque, Iterable, Mapping, Sequence

StreamChunk = Mapping[str, Any]


class FakeAsyncStream:
    """Async iterator that replays pre-defined OpenAI chunks.

    Exceptions placed among the chunks are raised when reached, which is how
    tests simulate a connection dropping mid-response.
    """

    def __init__(self, chunks: Iterable[StreamChunk | BaseException]) -> None:
        self._chunks: Deque[Any] = deque(
            chunk if isinstance(chunk, BaseException) else dict(chunk) for chunk in chunks
        )
        self.closed = False

    def __aiter__(self) -> "FakeAsyncStream":
        return self

    async def __anext__(self) -> dict[str, Any]:
        if not self._chunks:
            raise StopAsyncIteration
        await asyncio.sleep(0)
        item = self._chunks.popleft()
        if isinstance(item, BaseException):
            raise item
        return item

    async def aclose(self) -> None:
        self.closed = True


class FakeCompletions:
    """Minimal stub for ``client.chat.completions`` serving one stream per call."""

    def __init__(self, streams: Sequence[FakeAsyncStream]) -> None:
        self._streams: Deque[FakeAsyncStream] = deque(streams)
        self.calls: list[dict[str, Any]] = []

    def create(self, **kwargs: Any) -> FakeAsyncStream:
        self.calls.append(dict(kwargs))
        if not self._streams:
            raise AssertionError("no scripted OpenAI response left")
        return self._streams.popleft()


def build_streaming_client(
    *responses: Sequence[StreamChunk | BaseException],
) -> tuple[SimpleNamespace, list[FakeAsyncStream]]:
    """Return a fake OpenAI client answering each call with the next response."""

    streams = [FakeAsyncStream(chunks) for chunks in responses]
    completions = FakeCompletions(streams)
    chat = SimpleNamespace(completions=completions)
    client = SimpleNamespace(chat=chat, completions=completions)
    return client, streams


def text_chunks(*parts: str, finish_reason: str = "stop") -> list[dict[str, Any]]:
    """Chunks streaming ``parts`` as assistant content."""

    chunks: list[dict[str, Any]] = [
        {"choices": [{"index": 0, "delta": {"content": part}}]} for part in parts
    ]
    chunks.append({"choices": [{"index": 0, "delta": {}, "finish_reason": finish_reason}]})
    return chunks


def token_only_chunks() -> list[dict[str, Any]]:
    """OpenAI chunks representing a token-only streaming response."""

    return [
        {"choices": [{"index": 0, "delta": {"role": "assistant", "content": "Hello"}}]},
        {"choices": [{"index": 0, "delta": {"content": ", world"}}]},
        {
            "choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}],
            "usage": {"total_tokens": 4},
        },
    ]


def tool_call_chunks(
    call_id: str = "call-1",
    name: str = "sum",
    fragments: Sequence[str] = ('{"a": 1', ', "b": 3}'),
    *,
    preamble: str | None = "Calling calculator",
) -> list[dict[str, Any]]:
    """OpenAI chunks representing a streaming tool call flow."""

    chunks: list[dict[str, Any]] = []
    if preamble:
        chunks.append({"choices": [{"index": 0, "delta": {"content": preamble}}]})
    for position, fragment in enumerate(fragments):
        call: dict[str, Any] = {"index": 0, "function": {"arguments": fragment}}
        if position == 0:
            call.update({"id": call_id, "type": "function"})
            call["function"]["name"] = name
        chunks.append({"choices": [{"index": 0, "delta": {"tool_calls": [call]}}]})
    chunks.append({"choices": [{"index": 0, "delta": {}, "finish_reason": "tool_calls"}]})
    return chunks


def create_openai_stream(client: Any, payload: Mapping[str, Any]) -> FakeAsyncStream:
    """Replica of the adapter's streaming factory that records invocations."""

    return client.completions.create(**payload)


__all__ = [
    "FakeAsyncStream",
    "FakeCompletions",
    "build_streaming_client",
    "create_openai_stream",
    "text_chunks",
    "token_only_chunks",
    "tool_call_chunks",
]
