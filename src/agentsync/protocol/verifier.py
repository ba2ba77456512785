"""Stream contract enforcement for a single run's event sequence."""

from __future__ import annotations

from collections.abc import Iterable

from agentsync.core.errors import ProtocolError

from .events import (
    BaseEvent,
    EventType,
    RunFinishedEvent,
    RunStartedEvent,
    StepFinishedEvent,
    StepStartedEvent,
    TextMessageContentEvent,
    TextMessageEndEvent,
    TextMessageStartEvent,
    ToolCallArgsEvent,
    ToolCallEndEvent,
    ToolCallStartEvent,
)


class _Lifecycle:
    """Open/closed bookkeeping for one identifier namespace."""

    def __init__(self, label: str) -> None:
        self.label = label
        self.open: dict[str, None] = {}
        self.closed: set[str] = set()

    def start(self, identifier: str) -> None:
        if identifier in self.open or identifier in self.closed:
            msg = f"duplicate {self.label} id '{identifier}'"
            raise ProtocolError(msg)
        self.open[identifier] = None

    def require_open(self, identifier: str, action: str) -> None:
        if identifier in self.open:
            return
        if identifier in self.closed:
            msg = f"{action} for {self.label} '{identifier}' after its end"
        else:
            msg = f"{action} for {self.label} '{identifier}' before its start"
        raise ProtocolError(msg)

    def end(self, identifier: str) -> None:
        self.require_open(identifier, "end")
        del self.open[identifier]
        self.closed.add(identifier)


class SequenceVerifier:
    """Validate events one at a time against the stream contract.

    Every ``*_START`` must be matched by exactly one ``*_END`` with the same
    identifier, deltas may only arrive while their identifier is open, and a
    run consists of one ``RUN_STARTED`` followed by exactly one terminal event.

    ``require_run_framing`` can be disabled to check a bare adapter turn that
    carries no run lifecycle events of its own.
    """

    def __init__(self, *, require_run_framing: bool = True) -> None:
        self._require_framing = require_run_framing
        self._messages = _Lifecycle("message")
        self._tool_calls = _Lifecycle("tool call")
        self._steps = _Lifecycle("step")
        self._run_id: str | None = None
        self._started = False
        self._terminated = False
        self.count = 0

    @property
    def run_id(self) -> str | None:
        return self._run_id

    @property
    def terminated(self) -> bool:
        return self._terminated

    @property
    def open_message_ids(self) -> tuple[str, ...]:
        return tuple(self._messages.open)

    @property
    def open_tool_call_ids(self) -> tuple[str, ...]:
        return tuple(self._tool_calls.open)

    def check(self, event: BaseEvent) -> None:
        """Raise :class:`ProtocolError` if ``event`` may not follow the events seen so far."""

        if self._terminated:
            msg = f"{event.type} received after the run terminated"
            raise ProtocolError(msg)

        if event.type == EventType.RUN_STARTED:
            self._on_run_started(event)
        elif not self._started and self._require_framing:
            msg = f"{event.type} received before RUN_STARTED"
            raise ProtocolError(msg)
        elif event.type == EventType.RUN_FINISHED:
            self._on_run_finished(event)
        elif event.type == EventType.RUN_ERROR:
            self._terminated = True
        elif isinstance(event, TextMessageStartEvent):
            self._messages.start(event.message_id)
        elif isinstance(event, TextMessageContentEvent):
            self._messages.require_open(event.message_id, "content")
        elif isinstance(event, TextMessageEndEvent):
            self._messages.end(event.message_id)
        elif isinstance(event, ToolCallStartEvent):
            self._tool_calls.start(event.tool_call_id)
        elif isinstance(event, ToolCallArgsEvent):
            self._tool_calls.require_open(event.tool_call_id, "args")
        elif isinstance(event, ToolCallEndEvent):
            self._tool_calls.end(event.tool_call_id)
        elif isinstance(event, StepStartedEvent):
            self._steps.start(event.step_name)
        elif isinstance(event, StepFinishedEvent):
            self._steps.end(event.step_name)
            # Step names may be reused once the previous execution finished.
            self._steps.closed.discard(event.step_name)

        self.count += 1

    def finish(self) -> None:
        """Assert the stream ended cleanly."""

        if self._require_framing and not self._terminated:
            msg = "stream ended without RUN_FINISHED or RUN_ERROR"
            raise ProtocolError(msg)
        if self._terminated:
            return
        self.ensure_closed("stream ended")

    def _on_run_started(self, event: BaseEvent) -> None:
        if self._started:
            msg = "duplicate RUN_STARTED"
            raise ProtocolError(msg)
        self._started = True
        if isinstance(event, RunStartedEvent):
            self._run_id = event.run_id

    def _on_run_finished(self, event: BaseEvent) -> None:
        if isinstance(event, RunFinishedEvent) and self._run_id and event.run_id != self._run_id:
            msg = f"RUN_FINISHED for run '{event.run_id}' inside run '{self._run_id}'"
            raise ProtocolError(msg)
        self.ensure_closed("RUN_FINISHED")
        self._terminated = True

    def ensure_closed(self, where: str) -> None:
        """Raise :class:`ProtocolError` if any message, tool call or step is still open."""

        for lifecycle in (self._messages, self._tool_calls, self._steps):
            if lifecycle.open:
                identifier = next(iter(lifecycle.open))
                msg = f"{where} with unterminated {lifecycle.label} '{identifier}'"
                raise ProtocolError(msg)


def verify_events(events: Iterable[BaseEvent], *, require_run_framing: bool = True) -> int:
    """Check a complete event sequence and return the number of events seen."""

    verifier = SequenceVerifier(require_run_framing=require_run_framing)
    for event in events:
        verifier.check(event)
    verifier.finish()
    return verifier.count


__all__ = ["SequenceVerifier", "verify_events"]
