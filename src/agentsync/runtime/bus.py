"""Explicit publish/subscribe plumbing for run events."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Union

from agentsync.protocol.events import TERMINAL_EVENT_TYPES, BaseEvent

LOGGER = logging.getLogger(__name__)

EventListener = Callable[[BaseEvent], Union[None, Awaitable[None]]]

_CLOSED = object()


class EventPublisher:
    """Deliver events, in emission order, to explicitly registered listeners.

    Listeners may be plain callables or coroutine functions. A failing
    listener is logged and skipped so one observer cannot stall the run.
    Published events are retained so late consumers can replay the run from
    its first event.
    """

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []
        self._streams: list[RunStream] = []
        self._history: list[BaseEvent] = []
        self._closed = False

    @property
    def history(self) -> tuple[BaseEvent, ...]:
        return tuple(self._history)

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def stream(self, *, replay: bool = True) -> RunStream:
        """Return an async iterator over this publisher's events."""

        stream = RunStream()
        if replay:
            for event in self._history:
                stream.push(event)
        if self._closed:
            stream.close()
        else:
            self._streams.append(stream)
        return stream

    async def publish(self, event: BaseEvent) -> None:
        if self._closed:
            msg = f"cannot publish {event.type} on a closed publisher"
            raise RuntimeError(msg)

        self._history.append(event)
        for stream in self._streams:
            stream.push(event)

        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                LOGGER.warning("event listener %r failed on %s", listener, event.type, exc_info=True)

        if event.type in TERMINAL_EVENT_TYPES:
            self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for stream in self._streams:
            stream.close()
        self._streams.clear()


class RunStream(AsyncIterator[BaseEvent]):
    """Queue-backed async iterator fed by an :class:`EventPublisher`."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._done = False

    def push(self, event: BaseEvent) -> None:
        self._queue.put_nowait(event)

    def close(self) -> None:
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> RunStream:
        return self

    async def __anext__(self) -> BaseEvent:
        if self._done:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._done = True
            raise StopAsyncIteration
        return item  # type: ignore[return-value]


__all__ = ["EventListener", "EventPublisher", "RunStream"]
