"""In-process agent built from an ordered list of named steps.

Each step is an ``async def step(ctx: StepContext)`` coroutine. Steps talk to
the outside world through the context: ``say`` streams an assistant message,
``update_state`` publishes a state delta and ``interrupt`` pauses the run at a
checkpoint until the caller resumes it.

Resuming re-enters the graph at the interrupted step. Earlier steps are not
executed again; the interrupted step runs from its beginning and its call to
``interrupt`` returns the resume payload instead of pausing.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from copy import deepcopy
from typing import Any

from agentsync.protocol.events import (
    INTERRUPT_EVENT,
    BaseEvent,
    CustomEvent,
    PatchOperation,
    StateDeltaEvent,
    StepFinishedEvent,
    StepStartedEvent,
)
from agentsync.runtime.patch import deep_merge

from ..errors import ConfigurationError
from ..message import generate_id
from .base import AgentAdapter, AgentRequest
from .stream import text_message_events

LOGGER = logging.getLogger(__name__)

Step = Callable[["StepContext"], Awaitable[None]]

_DONE = object()


class StepInterrupt(Exception):
    """Raised inside a step to pause execution at a checkpoint."""

    def __init__(self, value: Any) -> None:
        super().__init__("step interrupted")
        self.value = value


class StepContext:
    """Per-step view of the request plus helpers for emitting events."""

    def __init__(
        self,
        request: AgentRequest,
        state: Any,
        queue: asyncio.Queue[object],
        *,
        step_name: str,
        resume_value: Any = None,
        resuming: bool = False,
    ) -> None:
        self.request = request
        self.state = state
        self.step_name = step_name
        self._queue = queue
        self._resume_value = resume_value
        self._resuming = resuming

    @property
    def messages(self):
        return self.request.messages

    @property
    def context(self):
        return self.request.context

    async def emit(self, event: BaseEvent) -> None:
        await self._queue.put(event)

    async def say(self, *chunks: str) -> str:
        """Stream an assistant message made of ``chunks``; returns its id."""

        message_id = generate_id("msg")
        for event in text_message_events(message_id, *chunks):
            await self.emit(event)
        return message_id

    async def update_state(self, partial: Mapping[str, Any]) -> None:
        """Merge ``partial`` into the working state and publish it as a delta."""

        self.state = deep_merge(self.state if isinstance(self.state, Mapping) else {}, partial)
        operations = [
            PatchOperation(op="add", path=f"/{_escape(key)}", value=deepcopy(self.state[key]))
            for key in partial
        ]
        if operations:
            await self.emit(StateDeltaEvent(delta=operations))

    def interrupt(self, value: Any = None) -> Any:
        """Pause at a checkpoint, or return the resume payload when resuming."""

        if self._resuming:
            self._resuming = False
            return self._resume_value
        raise StepInterrupt(value)


def _escape(token: str) -> str:
    return token.replace("~", "~0").replace("/", "~1")


class StepAgent(AgentAdapter):
    """Execute named steps in order, wrapping each in step lifecycle events."""

    def __init__(self, steps: list[tuple[str, Step]] | None = None) -> None:
        self._steps: list[tuple[str, Step]] = []
        for name, fn in steps or ():
            self.add_step(name, fn)

    @property
    def step_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self._steps)

    def add_step(self, name: str, fn: Step) -> None:
        if not name or name in self.step_names:
            msg = f"step name '{name}' must be unique and non-empty"
            raise ConfigurationError(msg)
        self._steps.append((name, fn))

    def step(self, name: str) -> Callable[[Step], Step]:
        """Decorator form of :meth:`add_step`."""

        def _register(fn: Step) -> Step:
            self.add_step(name, fn)
            return fn

        return _register

    async def stream(self, request: AgentRequest) -> AsyncIterator[BaseEvent]:
        queue: asyncio.Queue[object] = asyncio.Queue()
        task = asyncio.create_task(self._execute(request, queue))
        try:
            while True:
                item = await queue.get()
                if item is _DONE:
                    break
                yield item  # type: ignore[misc]
            await task
        finally:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    async def _execute(self, request: AgentRequest, queue: asyncio.Queue[object]) -> None:
        try:
            state = deepcopy(request.state) if request.state is not None else {}
            start_index = 0
            resume = request.resume
            if resume is not None:
                if resume.step not in self.step_names:
                    msg = f"cannot resume unknown step '{resume.step}'"
                    raise ConfigurationError(msg)
                start_index = self.step_names.index(resume.step)
                LOGGER.info("resuming step graph at %s", resume.step)

            for index in range(start_index, len(self._steps)):
                name, fn = self._steps[index]
                resuming = resume is not None and index == start_index
                ctx = StepContext(
                    request,
                    state,
                    queue,
                    step_name=name,
                    resume_value=resume.payload if resuming else None,
                    resuming=resuming,
                )
                await queue.put(StepStartedEvent(step_name=name))
                try:
                    await fn(ctx)
                except StepInterrupt as interrupt:
                    await queue.put(StepFinishedEvent(step_name=name))
                    await queue.put(
                        CustomEvent(
                            name=INTERRUPT_EVENT,
                            value={"step": name, "value": interrupt.value},
                        )
                    )
                    LOGGER.info("step %s requested an interrupt", name)
                    return
                state = ctx.state
                await queue.put(StepFinishedEvent(step_name=name))
        finally:
            await queue.put(_DONE)


__all__ = ["Step", "StepAgent", "StepContext", "StepInterrupt"]
