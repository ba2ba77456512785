"""Run orchestration: dispatch, event relay, tool round-trips and interrupts."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, TypeVar

from agentsync.config import RuntimeConfig
from agentsync.core.adapters.base import AgentAdapter, AgentRequest
from agentsync.core.adapters.toolbridge import ToolDefinition
from agentsync.core.errors import (
    AdapterError,
    AgentSyncError,
    ConfigurationError,
    MaxTurnsExceededError,
    PatchError,
    ProtocolError,
    RunCancelledError,
    RunTimeoutError,
    ToolCallNotPendingError,
    UnknownCheckpointError,
)
from agentsync.core.message import (
    ContextItem,
    Message,
    MessageRole,
    ToolCall,
    ensure_json_compatible,
    generate_id,
    thaw_json,
)
from agentsync.io.interfaces import ThreadStore
from agentsync.io.schema import CheckpointRecord, utcnow
from agentsync.protocol.events import (
    INTERRUPT_EVENT,
    PATCH_REJECTED_EVENT,
    TOOL_RESULT_EVENT,
    BaseEvent,
    CustomEvent,
    InterruptInfo,
    MessagesSnapshotEvent,
    RunErrorEvent,
    RunFinishedEvent,
    RunStartedEvent,
    StateDeltaEvent,
    StateSnapshotEvent,
    TextMessageContentEvent,
    TextMessageEndEvent,
    TextMessageStartEvent,
    ToolCallArgsEvent,
    ToolCallEndEvent,
    ToolCallStartEvent,
)

from .bus import EventListener, EventPublisher, RunStream
from .run import Checkpoint, Run, RunContext, RunStatus
from .state import StateSynchronizer
from .tools import ToolRegistry, execute_tool

LOGGER = logging.getLogger(__name__)

DEFAULT_AGENT = "default"

T = TypeVar("T")

_END = object()


async def _bounded(awaitable: Awaitable[T], timeout: float | None, label: str) -> T:
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except RunTimeoutError:
        raise
    except asyncio.TimeoutError as exc:
        msg = f"timed out after {timeout}s waiting for {label}"
        raise RunTimeoutError(msg) from exc


async def _next_event(iterator: AsyncIterator[BaseEvent]) -> object:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return _END


async def _close_stream(iterator: Any) -> None:
    closer = getattr(iterator, "aclose", None)
    if closer is None:
        return
    try:
        result = closer()
        if inspect.isawaitable(result):
            await result
    except Exception:
        LOGGER.debug("closing agent stream failed", exc_info=True)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _render_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(thaw_json(result), sort_keys=True)


@dataclass
class _PendingCall:
    """A tool call streamed during the current turn."""

    tool_call_id: str
    name: str
    parent_message_id: str | None
    fragments: list[str] = field(default_factory=list)
    call: ToolCall | None = None
    error: str | None = None
    result: Message | None = None

    def finalize(self) -> None:
        raw = "".join(self.fragments) or "{}"
        try:
            self.call = ToolCall.from_json_arguments(self.tool_call_id, self.name, raw)
        except ValueError as exc:
            self.call = ToolCall(id=self.tool_call_id, name=self.name, arguments={})
            self.error = f"invalid arguments for tool '{self.name}': {exc}"


class _TurnBuffer:
    """Accumulate one adapter turn until its messages are final.

    Only messages that saw their end event are ever reported, and a tool call
    is reported only once its result exists, so an aborted turn leaves no
    partial content behind.
    """

    def __init__(self) -> None:
        self._order: list[str] = []
        self._roles: dict[str, str] = {}
        self._texts: dict[str, list[str]] = {}
        self._ended: set[str] = set()
        self._calls: dict[str, _PendingCall] = {}
        self.interrupt: tuple[str | None, Any] | None = None
        self.persisted = False

    def observe(self, event: BaseEvent) -> _PendingCall | None:
        """Track ``event``; returns the tool call it completed, if any."""

        if isinstance(event, TextMessageStartEvent):
            self._order.append(event.message_id)
            self._roles[event.message_id] = event.role
            self._texts[event.message_id] = []
        elif isinstance(event, TextMessageContentEvent):
            self._texts[event.message_id].append(event.delta)
        elif isinstance(event, TextMessageEndEvent):
            self._ended.add(event.message_id)
        elif isinstance(event, ToolCallStartEvent):
            self._calls[event.tool_call_id] = _PendingCall(
                tool_call_id=event.tool_call_id,
                name=event.tool_name,
                parent_message_id=event.parent_message_id,
            )
        elif isinstance(event, ToolCallArgsEvent):
            self._calls[event.tool_call_id].fragments.append(event.delta)
        elif isinstance(event, ToolCallEndEvent):
            pending = self._calls[event.tool_call_id]
            pending.finalize()
            return pending
        return None

    @property
    def tool_calls(self) -> list[_PendingCall]:
        return [pending for pending in self._calls.values() if pending.call is not None]

    def finalized(self) -> list[Message]:
        """Return the turn's complete messages in history order."""

        answered = [pending for pending in self._calls.values() if pending.result is not None]
        grouped: dict[str, list[ToolCall]] = {}
        orphans: list[ToolCall] = []
        for pending in answered:
            parent = pending.parent_message_id
            assert pending.call is not None
            if (
                parent in self._ended
                and self._roles.get(parent) == MessageRole.ASSISTANT.value
            ):
                grouped.setdefault(parent, []).append(pending.call)
            else:
                orphans.append(pending.call)

        messages: list[Message] = []
        for message_id in self._order:
            if message_id not in self._ended:
                continue
            content = "".join(self._texts[message_id])
            calls = grouped.pop(message_id, None)
            if not content and not calls:
                continue
            messages.append(
                Message(
                    id=message_id,
                    role=self._roles[message_id],
                    content=content,
                    tool_calls=tuple(calls) if calls else None,
                )
            )
        if orphans:
            messages.append(
                Message(
                    id=generate_id("msg"),
                    role=MessageRole.ASSISTANT,
                    content="",
                    tool_calls=tuple(orphans),
                )
            )
        messages.extend(pending.result for pending in answered if pending.result is not None)
        return messages


class RunHandle:
    """Caller-facing view of one run."""

    def __init__(self, ctx: RunContext, task: asyncio.Task[None], orchestrator: RunOrchestrator) -> None:
        self._ctx = ctx
        self._task = task
        self._orchestrator = orchestrator

    @property
    def run(self) -> Run:
        return self._ctx.run

    @property
    def run_id(self) -> str:
        return self._ctx.run.run_id

    @property
    def thread_id(self) -> str:
        return self._ctx.run.thread_id

    def events(self, *, replay: bool = True) -> RunStream:
        """Async iterator over the run's events, ending after the terminal one."""

        return self._ctx.publisher.stream(replay=replay)

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        return self._ctx.publisher.subscribe(listener)

    async def wait(self, timeout: float | None = None) -> Run:
        """Wait until the run is terminal and return it."""

        await asyncio.wait_for(asyncio.shield(self._task), timeout)
        return self._ctx.run

    async def cancel(self) -> bool:
        return await self._orchestrator.cancel(self.run_id)


class RunOrchestrator:
    """Drive agent runs from dispatch to exactly one terminal event.

    Targets are registered by name; ``start`` without an agent name uses the
    default target passed as ``adapter``. Backend tools are registered once
    and executed in-process; frontend tools are declared per run and answered
    through :meth:`respond`.
    """

    def __init__(
        self,
        store: ThreadStore | None = None,
        *,
        adapter: AgentAdapter | None = None,
        agents: Mapping[str, AgentAdapter] | None = None,
        tools: Iterable[ToolDefinition] = (),
        config: RuntimeConfig | None = None,
    ) -> None:
        self._config = config or RuntimeConfig()
        self._store = store if store is not None else self._config.build_store()
        self._agents: dict[str, AgentAdapter] = {}
        self._tools = ToolRegistry()
        # Synchronizers live only while a run or merge holds them; the store
        # stays the source of truth between runs.
        self._states: dict[tuple[str, str], StateSynchronizer] = {}
        self._state_users: dict[tuple[str, str], int] = {}
        # Active runs and interrupted runs whose checkpoint is still pending.
        self._runs: dict[str, Run] = {}
        self._active: dict[str, tuple[RunContext, asyncio.Task[None]]] = {}
        self._pending_tools: dict[str, RunContext] = {}
        self._listeners: list[EventListener] = []

        if adapter is not None:
            self.register_agent(DEFAULT_AGENT, adapter)
        for name, target in (agents or {}).items():
            self.register_agent(name, target)
        for tool in tools:
            self.register_tool(tool)

    @property
    def store(self) -> ThreadStore:
        return self._store

    @property
    def config(self) -> RuntimeConfig:
        return self._config

    @property
    def agent_names(self) -> tuple[str, ...]:
        return tuple(self._agents)

    def register_agent(self, name: str, adapter: AgentAdapter) -> None:
        if not name:
            msg = "agent name must not be empty"
            raise ConfigurationError(msg)
        if not isinstance(adapter, AgentAdapter):
            msg = f"agent '{name}' must implement AgentAdapter"
            raise ConfigurationError(msg)
        if name in self._agents:
            msg = f"agent '{name}' is already registered"
            raise ConfigurationError(msg)
        self._agents[name] = adapter
        LOGGER.info("registered agent %s (%s)", name, type(adapter).__name__)

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a backend tool available to every run."""

        if isinstance(tool, ToolDefinition) and tool.is_frontend:
            msg = f"tool '{tool.name}' is a frontend tool; declare it when starting a run"
            raise ConfigurationError(msg)
        self._tools.register(tool)

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Attach ``listener`` to every run started from now on."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def get_run(self, run_id: str) -> Run | None:
        """Return an active run, or an interrupted one that can still be resumed."""

        return self._runs.get(run_id)

    async def state_for(self, thread_id: str, agent: str | None = None) -> StateSynchronizer:
        """Return the synchronizer for a (thread, agent) pair.

        While a run is active on the pair this is the live synchronizer it
        writes through; otherwise a fresh one is seeded from the store.
        """

        key = (thread_id, agent or DEFAULT_AGENT)
        synchronizer = self._states.get(key)
        if synchronizer is not None:
            return synchronizer
        record = await self._store.get(thread_id)
        live = self._states.get(key)
        if live is not None:
            return live
        return StateSynchronizer(record.state_for(key[1]), thread_id=thread_id, agent_name=key[1])

    async def _acquire_state(self, thread_id: str, agent: str) -> StateSynchronizer:
        key = (thread_id, agent)
        self._state_users[key] = self._state_users.get(key, 0) + 1
        try:
            synchronizer = self._states.get(key)
            if synchronizer is None:
                record = await self._store.get(thread_id)
                synchronizer = self._states.setdefault(
                    key,
                    StateSynchronizer(record.state_for(agent), thread_id=thread_id, agent_name=agent),
                )
        except BaseException:
            self._release_state(thread_id, agent)
            raise
        return synchronizer

    def _release_state(self, thread_id: str, agent: str) -> None:
        key = (thread_id, agent)
        users = self._state_users.get(key, 0) - 1
        if users > 0:
            self._state_users[key] = users
            return
        self._state_users.pop(key, None)
        self._states.pop(key, None)

    async def merge_local(self, thread_id: str, partial: Mapping[str, Any], *, agent: str | None = None) -> Any:
        """Apply a UI-originated partial update and persist the result."""

        name = agent or DEFAULT_AGENT
        synchronizer = await self._acquire_state(thread_id, name)
        try:
            value = synchronizer.merge_local(partial)
            await self._store.upsert_state(thread_id, name, value)
        finally:
            self._release_state(thread_id, name)
        return value

    async def pending_checkpoints(self, thread_id: str) -> list[Checkpoint]:
        """List resumable checkpoints, purging the ones that expired."""

        live = await self._purge_expired(thread_id)
        return [Checkpoint.from_record(thread_id, item) for item in live]

    async def delete_thread(self, thread_id: str) -> bool:
        for key in [key for key in self._states if key[0] == thread_id]:
            del self._states[key]
            self._state_users.pop(key, None)
        for run_id in [run_id for run_id, run in self._runs.items() if run.thread_id == thread_id]:
            if run_id not in self._active:
                del self._runs[run_id]
        return await self._store.delete(thread_id)

    def _expired(self, record: CheckpointRecord) -> bool:
        timeout = self._config.resume_timeout
        return timeout is not None and utcnow() - record.created_at > timedelta(seconds=timeout)

    async def _purge_expired(self, thread_id: str) -> list[CheckpointRecord]:
        record = await self._store.get(thread_id)
        live: list[CheckpointRecord] = []
        for item in record.checkpoints.values():
            if not self._expired(item):
                live.append(item)
                continue
            await self._store.clear_checkpoint(thread_id, item.checkpoint_id)
            self._runs.pop(item.run_id, None)
            LOGGER.info(
                "checkpoint %s of run %s on thread %s expired after %ss",
                item.checkpoint_id,
                item.run_id,
                thread_id,
                self._config.resume_timeout,
            )
        return live

    async def start(
        self,
        thread_id: str,
        message: Message | str | None = None,
        *,
        context: Iterable[ContextItem] = (),
        tools: Iterable[ToolDefinition] = (),
        agent: str | None = None,
    ) -> RunHandle:
        """Dispatch a new run on ``thread_id``.

        Tool name collisions between ``tools`` and the registered backend
        tools raise :class:`ConfigurationError` here, before the run exists.
        """

        if isinstance(message, str):
            message = Message.user(message)
        return await self._launch(thread_id, agent, message, context=context, tools=tools)

    async def resume(
        self,
        thread_id: str,
        checkpoint_id: str,
        payload: Any = None,
        *,
        context: Iterable[ContextItem] = (),
        tools: Iterable[ToolDefinition] = (),
    ) -> RunHandle:
        """Continue an interrupted run from its checkpoint.

        A mapping ``payload`` is merged into the agent state before the
        continuation run starts; the payload is also handed to the target so
        the interrupted step can read it back.
        """

        record = await self._store.get_checkpoint(thread_id, checkpoint_id)
        if record is None:
            msg = f"no pending checkpoint '{checkpoint_id}' on thread '{thread_id}'"
            raise UnknownCheckpointError(msg)
        await self._store.clear_checkpoint(thread_id, checkpoint_id)

        if self._expired(record):
            self._runs.pop(record.run_id, None)
            msg = f"checkpoint '{checkpoint_id}' expired after {self._config.resume_timeout}s"
            raise RunTimeoutError(msg)

        checkpoint = Checkpoint.from_record(thread_id, record)
        if isinstance(payload, Mapping):
            await self.merge_local(thread_id, payload, agent=checkpoint.agent_name)

        handle = await self._launch(
            thread_id,
            checkpoint.agent_name,
            None,
            context=context,
            tools=tools,
            parent_run_id=checkpoint.run_id,
            resume=checkpoint.to_command(payload),
        )
        parent = self._runs.pop(checkpoint.run_id, None)
        if parent is not None:
            parent.resumed_by = handle.run_id
        LOGGER.info(
            "resuming run %s from checkpoint %s as run %s",
            checkpoint.run_id,
            checkpoint_id,
            handle.run_id,
        )
        return handle

    def respond(self, tool_call_id: str, result: Any) -> None:
        """Deliver the result of a frontend tool call."""

        ctx = self._pending_tools.get(tool_call_id)
        future = ctx.pending_tools.get(tool_call_id) if ctx is not None else None
        if future is None or future.done():
            msg = f"tool call '{tool_call_id}' is not awaiting a result"
            raise ToolCallNotPendingError(msg)
        ensure_json_compatible(thaw_json(result), path="result")
        future.set_result(result)
        LOGGER.info("received frontend result for tool call %s", tool_call_id)

    async def cancel(self, run_id: str) -> bool:
        """Request cancellation; returns ``False`` if the run is not active.

        The run still terminates with ``RUN_ERROR`` (code ``cancelled``); use
        :meth:`RunHandle.wait` to wait for it.
        """

        entry = self._active.get(run_id)
        if entry is None:
            return False
        ctx, task = entry
        if task.done() or ctx.cancel_requested:
            return False
        ctx.cancel_requested = True
        LOGGER.info("cancelling run %s", run_id)
        if ctx.run.status is RunStatus.RUNNING:
            task.cancel()
        return True

    async def _launch(
        self,
        thread_id: str,
        agent: str | None,
        message: Message | None,
        *,
        context: Iterable[ContextItem],
        tools: Iterable[ToolDefinition],
        parent_run_id: str | None = None,
        resume: Any = None,
    ) -> RunHandle:
        name = agent or DEFAULT_AGENT
        adapter = self._agents.get(name)
        if adapter is None:
            msg = f"no agent registered under '{name}'"
            raise ConfigurationError(msg)

        frontend = tuple(tools)
        for tool in frontend:
            if not isinstance(tool, ToolDefinition) or not tool.is_frontend:
                msg = "tools declared per run must be frontend ToolDefinition instances"
                raise ConfigurationError(msg)
        registry = self._tools.union(frontend)

        items = tuple(context)
        if any(not isinstance(item, ContextItem) for item in items):
            msg = "context must contain ContextItem instances"
            raise ConfigurationError(msg)

        await self._purge_expired(thread_id)
        run = Run(
            run_id=generate_id("run"),
            thread_id=thread_id,
            agent_name=name,
            parent_run_id=parent_run_id,
        )
        publisher = EventPublisher()
        for listener in self._listeners:
            publisher.subscribe(listener)
        ctx = RunContext(
            run=run,
            adapter=adapter,
            tools=registry,
            state=await self._acquire_state(thread_id, name),
            publisher=publisher,
            context=items,
            resume=resume,
        )
        self._runs[run.run_id] = run
        task = asyncio.create_task(self._execute(ctx, message), name=f"agentsync-{run.run_id}")
        self._active[run.run_id] = (ctx, task)
        LOGGER.info("dispatched run %s on thread %s to agent %s", run.run_id, thread_id, name)
        return RunHandle(ctx, task, self)

    async def _execute(self, ctx: RunContext, message: Message | None) -> None:
        run = ctx.run
        try:
            run.transition(RunStatus.RUNNING)
            await self._emit(
                ctx,
                RunStartedEvent(
                    thread_id=run.thread_id,
                    run_id=run.run_id,
                    parent_run_id=run.parent_run_id,
                ),
            )
            if ctx.cancel_requested:
                msg = f"run {run.run_id} was cancelled before it started"
                raise RunCancelledError(msg)
            if message is not None:
                await self._store.append_message(run.thread_id, message)
            interrupt = await _bounded(self._drive(ctx), self._config.run_timeout, f"run {run.run_id}")
            await self._finish(ctx, interrupt)
        except asyncio.CancelledError:
            await self._fail(ctx, RunCancelledError(f"run {run.run_id} was cancelled"))
        except AgentSyncError as exc:
            await self._fail(ctx, exc)
        except Exception as exc:
            LOGGER.exception("run %s failed unexpectedly", run.run_id)
            error = AgentSyncError(f"internal error: {exc}")
            error.__cause__ = exc
            await self._fail(ctx, error)
        finally:
            for tool_call_id in list(ctx.pending_tools):
                self._pending_tools.pop(tool_call_id, None)
            ctx.release()
            self._release_state(run.thread_id, run.agent_name)
            self._active.pop(run.run_id, None)
            if run.status is not RunStatus.INTERRUPTED:
                self._runs.pop(run.run_id, None)

    async def _drive(self, ctx: RunContext) -> InterruptInfo | None:
        max_turns = self._config.max_turns
        for turn in range(1, max_turns + 1):
            record = await self._store.get(ctx.thread_id)
            request = AgentRequest(
                thread_id=ctx.thread_id,
                run_id=ctx.run_id,
                messages=tuple(record.to_messages()),
                context=ctx.context,
                tools=ctx.tools.definitions,
                state=ctx.state.value,
                resume=ctx.resume if turn == 1 else None,
            )
            LOGGER.debug("run %s turn %d dispatched to %s", ctx.run_id, turn, ctx.agent_name)
            buffer = await self._run_turn(ctx, request)
            if buffer.interrupt is not None:
                return await self._checkpoint(ctx, *buffer.interrupt)
            if not buffer.tool_calls:
                return None
        msg = f"run {ctx.run_id} exceeded {max_turns} turns"
        raise MaxTurnsExceededError(msg)

    async def _run_turn(self, ctx: RunContext, request: AgentRequest) -> _TurnBuffer:
        try:
            stream = ctx.adapter.stream(request)
        except AgentSyncError:
            raise
        except Exception as exc:
            msg = f"agent '{ctx.agent_name}' failed to start: {exc}"
            raise AdapterError(msg) from exc

        iterator = stream.__aiter__()
        buffer = _TurnBuffer()
        try:
            while True:
                try:
                    event = await _bounded(
                        _next_event(iterator),
                        self._config.chunk_timeout,
                        f"the next event from agent '{ctx.agent_name}'",
                    )
                except AgentSyncError:
                    raise
                except Exception as exc:
                    msg = f"agent '{ctx.agent_name}' failed mid-stream: {exc}"
                    raise AdapterError(msg) from exc
                if event is _END:
                    break
                if not isinstance(event, BaseEvent):
                    msg = f"agent '{ctx.agent_name}' produced {type(event).__name__}, not an event"
                    raise ProtocolError(msg)
                if not await self._relay(ctx, buffer, event):
                    break
            ctx.verifier.ensure_closed(f"turn of agent '{ctx.agent_name}' ended")
        except BaseException:
            await _close_stream(iterator)
            await self._persist_after_failure(ctx, buffer)
            raise
        await _close_stream(iterator)
        await self._persist(ctx, buffer)
        return buffer

    async def _relay(self, ctx: RunContext, buffer: _TurnBuffer, event: BaseEvent) -> bool:
        """Handle one target event; returns ``False`` when the turn is over."""

        if isinstance(event, RunStartedEvent):
            return True
        if isinstance(event, RunFinishedEvent):
            return False
        if isinstance(event, RunErrorEvent):
            msg = f"agent '{ctx.agent_name}' reported an error: {event.message}"
            raise AdapterError(msg)
        if isinstance(event, CustomEvent) and event.name == INTERRUPT_EVENT:
            buffer.interrupt = _interrupt_request(event.value)
            return False
        if isinstance(event, (StateSnapshotEvent, StateDeltaEvent)):
            await self._apply_state(ctx, event)
            return True
        if isinstance(event, TextMessageStartEvent) and event.role == MessageRole.TOOL.value:
            # Tool messages are built from tool call results, never streamed as text.
            msg = (
                f"agent '{ctx.agent_name}' streamed text message '{event.message_id}' "
                "with role 'tool'; tool results must answer a tool call"
            )
            raise ProtocolError(msg)
        if isinstance(event, ToolCallStartEvent):
            tool = ctx.tools.get(event.tool_name)
            if tool.is_frontend:
                ctx.pending_tools[event.tool_call_id] = asyncio.get_running_loop().create_future()
                self._pending_tools[event.tool_call_id] = ctx

        await self._emit(ctx, event)
        pending = buffer.observe(event)
        if pending is not None:
            await self._resolve_tool(ctx, pending)
        return True

    async def _apply_state(self, ctx: RunContext, event: StateSnapshotEvent | StateDeltaEvent) -> None:
        try:
            ctx.state.apply_event(event)
        except PatchError as exc:
            LOGGER.warning("rejected %s in run %s: %s", event.type, ctx.run_id, exc)
            value: dict[str, Any] = {"error": str(exc)}
            if isinstance(event, StateDeltaEvent):
                value["delta"] = [
                    operation.model_dump(mode="json", by_alias=True, exclude_none=True)
                    for operation in event.delta
                ]
            await self._emit(ctx, CustomEvent(name=PATCH_REJECTED_EVENT, value=value))
            return
        await self._emit(ctx, event)
        await self._store.upsert_state(ctx.thread_id, ctx.agent_name, ctx.state.value)

    async def _resolve_tool(self, ctx: RunContext, pending: _PendingCall) -> None:
        assert pending.call is not None
        tool = ctx.tools.get(pending.name)
        is_error = False
        if pending.error is not None:
            LOGGER.warning("tool call %s rejected: %s", pending.tool_call_id, pending.error)
            ctx.pending_tools.pop(pending.tool_call_id, None)
            self._pending_tools.pop(pending.tool_call_id, None)
            content = json.dumps({"error": pending.error})
            is_error = True
        elif tool.is_frontend:
            content = await self._await_frontend(ctx, pending)
        else:
            LOGGER.info("executing backend tool %s for call %s", tool.name, pending.tool_call_id)
            try:
                content = await execute_tool(tool, pending.call.arguments)
            except Exception as exc:
                LOGGER.warning("backend tool %s failed: %s", tool.name, exc)
                content = json.dumps({"error": str(exc)})
                is_error = True

        pending.result = Message.tool_result(pending.tool_call_id, content)
        await self._emit(
            ctx,
            CustomEvent(
                name=TOOL_RESULT_EVENT,
                value={
                    "toolCallId": pending.tool_call_id,
                    "toolName": pending.name,
                    "content": content,
                    "isError": is_error,
                },
            ),
        )

    async def _await_frontend(self, ctx: RunContext, pending: _PendingCall) -> str:
        future = ctx.pending_tools[pending.tool_call_id]
        LOGGER.info(
            "run %s waiting for frontend result of %s (%s)",
            ctx.run_id,
            pending.name,
            pending.tool_call_id,
        )
        try:
            result = await _bounded(
                future,
                self._config.tool_timeout,
                f"the result of tool call '{pending.tool_call_id}'",
            )
        finally:
            ctx.pending_tools.pop(pending.tool_call_id, None)
            self._pending_tools.pop(pending.tool_call_id, None)
        return _render_result(result)

    async def _checkpoint(self, ctx: RunContext, step: str | None, value: Any) -> InterruptInfo:
        plain = thaw_json(value)
        try:
            ensure_json_compatible(plain, path="interrupt")
        except (TypeError, ValueError) as exc:
            msg = f"interrupt payload from agent '{ctx.agent_name}' is not JSON compatible"
            raise ProtocolError(msg) from exc

        record = CheckpointRecord(
            checkpoint_id=generate_id("ckpt"),
            run_id=ctx.run_id,
            agent_name=ctx.agent_name,
            step=step,
            value=plain,
            state=ctx.state.value,
        )
        await self._store.save_checkpoint(ctx.thread_id, record)
        LOGGER.info(
            "run %s interrupted at step %s; checkpoint %s persisted",
            ctx.run_id,
            step,
            record.checkpoint_id,
        )
        return InterruptInfo(checkpoint_id=record.checkpoint_id, step=step, value=plain)

    async def _persist(self, ctx: RunContext, buffer: _TurnBuffer) -> None:
        if buffer.persisted:
            return
        buffer.persisted = True
        for message in buffer.finalized():
            try:
                await self._store.append_message(ctx.thread_id, message)
            except ValueError as exc:
                msg = f"agent '{ctx.agent_name}' reused message id '{message.id}'"
                raise ProtocolError(msg) from exc

    async def _persist_after_failure(self, ctx: RunContext, buffer: _TurnBuffer) -> None:
        try:
            await self._persist(ctx, buffer)
        except Exception:
            LOGGER.warning("could not persist finalized messages of run %s", ctx.run_id, exc_info=True)

    async def _finish(self, ctx: RunContext, interrupt: InterruptInfo | None) -> None:
        run = ctx.run
        await self._store.upsert_state(run.thread_id, run.agent_name, ctx.state.value)
        record = await self._store.get(run.thread_id)
        await self._emit(ctx, MessagesSnapshotEvent(messages=list(record.messages)))

        if interrupt is None:
            run.transition(RunStatus.FINISHED)
            final = RunFinishedEvent(thread_id=run.thread_id, run_id=run.run_id)
        else:
            run.interrupt = interrupt
            run.transition(RunStatus.INTERRUPTED)
            final = RunFinishedEvent(
                thread_id=run.thread_id,
                run_id=run.run_id,
                outcome="interrupt",
                interrupt=interrupt,
            )
        await self._emit(ctx, final)
        LOGGER.info("run %s %s", run.run_id, run.status.value)

    async def _fail(self, ctx: RunContext, error: AgentSyncError) -> None:
        run = ctx.run
        if ctx.publisher.closed:
            LOGGER.warning("run %s failed after its terminal event: %s", run.run_id, error)
            return
        run.error = error
        if not run.done:
            run.transition(RunStatus.ERRORED)
        if isinstance(error, RunCancelledError):
            LOGGER.info("run %s cancelled", run.run_id)
        else:
            LOGGER.warning("run %s errored (%s): %s", run.run_id, error.code, error)
        await self._emit(
            ctx,
            RunErrorEvent(
                message=str(error) or error.code,
                code=error.code,
                thread_id=run.thread_id,
                run_id=run.run_id,
            ),
            check=False,
        )

    async def _emit(self, ctx: RunContext, event: BaseEvent, *, check: bool = True) -> None:
        if event.timestamp is None:
            event = event.model_copy(update={"timestamp": _now_ms()})
        if check:
            ctx.verifier.check(event)
        ctx.run.events.append(event)
        await ctx.publisher.publish(event)


def _interrupt_request(value: Any) -> tuple[str | None, Any]:
    if isinstance(value, Mapping) and "step" in value:
        step = value.get("step")
        return (str(step) if step is not None else None, value.get("value"))
    return (None, value)


__all__ = ["DEFAULT_AGENT", "RunHandle", "RunOrchestrator"]
