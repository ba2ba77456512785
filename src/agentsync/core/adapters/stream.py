"""Base stream iterator primitives and scripted event sources."""

from __future__ import annotations

import abc
import asyncio
import inspect
from collections import deque
from collections.abc import Sequence
from typing import Any, AsyncIterator, Deque, Dict, List, Protocol, Union

from agentsync.protocol.events import (
    TERMINAL_EVENT_TYPES,
    BaseEvent,
    EventType,
    TextMessageContentEvent,
    TextMessageEndEvent,
    TextMessageStartEvent,
    ToolCallArgsEvent,
    ToolCallEndEvent,
    ToolCallStartEvent,
)

from .base import AgentAdapter, AgentRequest


class BaseStreamIterator(AsyncIterator[BaseEvent], metaclass=abc.ABCMeta):
    """Shared async iterator driving provider-specific streaming adapters.

    Subclasses are responsible for sourcing raw provider chunks by
    implementing :meth:`_get_next_chunk`. Each chunk is normalized into zero or
    more protocol events via a :class:`StreamNormalizer`. The iterator buffers
    normalized events so consumers receive a linear stream regardless of how
    providers batch their updates, and closes itself after a terminal event.
    """

    def __init__(self, normalizer: StreamNormalizer) -> None:
        self._normalizer = normalizer
        self._buffer: Deque[BaseEvent] = deque()
        self._closed = False
        self._finalized = False
        self._exhausted = False
        self._close_lock = asyncio.Lock()

    def __aiter__(self) -> BaseStreamIterator:
        return self

    async def __anext__(self) -> BaseEvent:
        if self._closed and not self._buffer:
            raise StopAsyncIteration

        if self._finalized and not self._buffer:
            await self.close()
            raise StopAsyncIteration

        buffered = self._pop_buffered_event()
        if buffered is not None:
            return await self._finalize_if_needed(buffered)

        while True:
            if self._closed:
                raise StopAsyncIteration

            if self._finalized:
                await self.close()
                raise StopAsyncIteration

            chunk = await self._consume_chunk()
            if chunk is not None:
                self._buffer.extend(await self._normalizer.normalize_chunk(chunk))

            buffered = self._pop_buffered_event()
            if buffered is not None:
                return await self._finalize_if_needed(buffered)

    async def close(self) -> None:
        """Release provider resources and prevent additional iteration."""

        async with self._close_lock:
            if self._closed:
                return

            self._closed = True
            self._buffer.clear()
            await self._on_close()

    async def aclose(self) -> None:
        await self.close()

    async def _consume_chunk(self) -> Dict[str, Any] | None:
        try:
            return await self._get_next_chunk()
        except StopAsyncIteration:
            if not self._exhausted:
                self._exhausted = True
                trailing = await self._normalizer.finish()
                if trailing:
                    self._buffer.extend(trailing)
                    return None
            await self.close()
            raise

    async def _finalize_if_needed(self, event: BaseEvent) -> BaseEvent:
        if event.type in TERMINAL_EVENT_TYPES:
            self._finalized = True
            if not self._buffer:
                await self.close()
        return event

    def _pop_buffered_event(self) -> BaseEvent | None:
        if not self._buffer:
            return None
        return self._buffer.popleft()

    @abc.abstractmethod
    async def _get_next_chunk(self) -> Dict[str, Any]:
        """Retrieve the next raw chunk from the provider stream."""

    async def _on_close(self) -> None:
        """Allow subclasses to dispose provider resources when closing."""


class StreamNormalizer(Protocol):
    async def normalize_chunk(self, chunk: Dict[str, Any]) -> List[BaseEvent]:
        """Map a provider-specific chunk into protocol events."""

    async def finish(self) -> List[BaseEvent]:
        """Return events that close anything still open once the provider is exhausted."""


class _PassthroughNormalizer:
    async def normalize_chunk(self, chunk: Dict[str, Any]) -> List[BaseEvent]:
        return list(chunk.get("events", []))

    async def finish(self) -> List[BaseEvent]:
        return []


ScriptItem = Union[BaseEvent, BaseException]


class ScriptedStreamIterator(BaseStreamIterator):
    """Deterministic in-memory event source for tests and demos.

    Exceptions placed in the script are raised at that position, which makes
    it easy to simulate an adapter failing mid-stream.
    """

    def __init__(self, script: Sequence[ScriptItem], *, delay: float = 0.0) -> None:
        self._items: Deque[ScriptItem] = deque(script)
        self._delay = delay
        super().__init__(_PassthroughNormalizer())

    async def _get_next_chunk(self) -> Dict[str, Any]:
        await asyncio.sleep(self._delay)
        if not self._items:
            raise StopAsyncIteration
        item = self._items.popleft()
        if isinstance(item, BaseException):
            raise item
        return {"events": [item]}


class ScriptedAdapter(AgentAdapter):
    """Adapter replaying one scripted event list per turn.

    The requests it receives are recorded in :attr:`requests` so tests can
    assert on the history, context and tools each turn was given.
    """

    def __init__(self, *turns: Sequence[ScriptItem], delay: float = 0.0) -> None:
        self._turns: Deque[Sequence[ScriptItem]] = deque(turns)
        self._delay = delay
        self.requests: list[AgentRequest] = []

    def stream(self, request: AgentRequest) -> ScriptedStreamIterator:
        self.requests.append(request)
        script = self._turns.popleft() if self._turns else ()
        return ScriptedStreamIterator(script, delay=self._delay)


def text_message_events(message_id: str, *chunks: str) -> list[BaseEvent]:
    """Build a complete start/content/end sequence for an assistant message."""

    events: list[BaseEvent] = [TextMessageStartEvent(message_id=message_id, role="assistant")]
    events.extend(TextMessageContentEvent(message_id=message_id, delta=chunk) for chunk in chunks)
    events.append(TextMessageEndEvent(message_id=message_id))
    return events


def tool_call_events(
    tool_call_id: str,
    tool_name: str,
    *fragments: str,
    parent_message_id: str | None = None,
) -> list[BaseEvent]:
    """Build a complete start/args/end sequence for a tool call."""

    events: list[BaseEvent] = [
        ToolCallStartEvent(
            tool_call_id=tool_call_id,
            tool_name=tool_name,
            parent_message_id=parent_message_id,
        )
    ]
    events.extend(ToolCallArgsEvent(tool_call_id=tool_call_id, delta=part) for part in fragments)
    events.append(ToolCallEndEvent(tool_call_id=tool_call_id))
    return events


async def replay_stream(iterator: AsyncIterator[BaseEvent]) -> List[BaseEvent]:
    """Collect all events emitted by a stream iterator."""

    events: List[BaseEvent] = []
    try:
        async for event in iterator:
            events.append(event)
    finally:
        await _close(iterator)
    return events


async def collect_text(events: AsyncIterator[BaseEvent]) -> dict[str, str]:
    """Concatenate text deltas per message id, in arrival order."""

    messages: dict[str, list[str]] = {}
    try:
        async for event in events:
            if event.type == EventType.TEXT_MESSAGE_START:
                messages.setdefault(event.message_id, [])  # type: ignore[attr-defined]
            elif isinstance(event, TextMessageContentEvent):
                messages.setdefault(event.message_id, []).append(event.delta)
    finally:
        await _close(events)
    return {message_id: "".join(parts) for message_id, parts in messages.items()}


async def _close(iterator: Any) -> None:
    for closer_name in ("aclose", "close"):
        closer = getattr(iterator, closer_name, None)
        if closer is not None and callable(closer):
            result = closer()
            if inspect.isawaitable(result):
                await result
            return


__all__ = [
    "BaseStreamIterator",
    "ScriptItem",
    "ScriptedAdapter",
    "ScriptedStreamIterator",
    "StreamNormalizer",
    "collect_text",
    "replay_stream",
    "text_message_events",
    "tool_call_events",
]
