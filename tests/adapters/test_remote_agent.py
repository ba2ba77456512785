from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from agentsync.core.adapters.base import ResumeCommand
from agentsync.core.adapters.remote import RemoteAgentAdapter, build_run_input
from agentsync.core.adapters.stream import text_message_events
from agentsync.core.adapters.toolbridge import ToolDefinition
from agentsync.core.errors import AdapterError
from agentsync.core.message import ContextItem, Message
from agentsync.io.adapters import InMemoryThreadStore
from agentsync.protocol.codec import EventEncoder
from agentsync.protocol.events import RunFinishedEvent, RunStartedEvent
from agentsync.runtime.loop import RunOrchestrator
from tests.harness import collect, event_types, make_request, run_to_end


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _streaming_handler(events, captured: list[httpx.Request], fmt: str = "sse"):
    encoder = EventEncoder(fmt)

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(
            200,
            content=encoder.encode_all(events).encode("utf-8"),
            headers={"content-type": encoder.content_type},
        )

    return handler


def test_run_input_serializes_the_request() -> None:
    request = make_request(
        Message.user("hi", id="m1"),
        context=[ContextItem("page", {"path": "/docs"})],
        tools=[ToolDefinition.frontend("confirm", description="Ask the user")],
        state={"count": 1},
        resume=ResumeCommand(checkpoint_id="ckpt-1", step="approve", payload={"ok": True}),
    )

    body = build_run_input(request)

    assert body == {
        "threadId": "thread-1",
        "runId": "run-1",
        "messages": [{"id": "m1", "role": "user", "content": "hi"}],
        "context": [{"description": "page", "value": {"path": "/docs"}}],
        "tools": [
            {
                "name": "confirm",
                "description": "Ask the user",
                "parameters": {"type": "object", "properties": {}},
            }
        ],
        "state": {"count": 1},
        "resume": {"checkpointId": "ckpt-1", "step": "approve", "payload": {"ok": True}},
    }


@pytest.mark.parametrize("fmt", ["sse", "jsonl"])
def test_remote_events_are_decoded(fmt: str) -> None:
    captured: list[httpx.Request] = []
    handler = _streaming_handler(text_message_events("m1", "Hi", "!"), captured, fmt)
    adapter = RemoteAgentAdapter(
        "http://agent.test/run",
        client=_client(handler),
        headers={"Authorization": "Bearer token"},
        stream_format=fmt,
    )

    events = collect(adapter, make_request("hello"))

    assert event_types(events) == [
        "TEXT_MESSAGE_START",
        "TEXT_MESSAGE_CONTENT",
        "TEXT_MESSAGE_CONTENT",
        "TEXT_MESSAGE_END",
    ]
    request = captured[0]
    assert request.method == "POST"
    assert request.headers["authorization"] == "Bearer token"
    assert request.headers["accept"] == EventEncoder(fmt).content_type
    assert json.loads(request.content)["messages"][0]["content"] == "hello"


def test_http_errors_become_adapter_errors() -> None:
    adapter = RemoteAgentAdapter(
        "http://agent.test/run",
        client=_client(lambda request: httpx.Response(503, text="overloaded")),
    )

    with pytest.raises(AdapterError, match="HTTP 503"):
        collect(adapter, make_request("hello"))


def test_transport_failures_become_adapter_errors() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    adapter = RemoteAgentAdapter("http://agent.test/run", client=_client(refuse))

    with pytest.raises(AdapterError, match="connection refused"):
        collect(adapter, make_request("hello"))


def test_empty_url_is_rejected() -> None:
    with pytest.raises(ValueError):
        RemoteAgentAdapter("")


def test_remote_agent_runs_inside_the_orchestrator() -> None:
    captured: list[httpx.Request] = []
    remote_events = [
        RunStartedEvent(thread_id="remote-thread", run_id="remote-run"),
        *text_message_events("m-remote", "From afar"),
        RunFinishedEvent(thread_id="remote-thread", run_id="remote-run"),
    ]
    adapter = RemoteAgentAdapter(
        "http://agent.test/run", client=_client(_streaming_handler(remote_events, captured))
    )

    async def scenario():
        orchestrator = RunOrchestrator(InMemoryThreadStore(), agents={"remote": adapter})
        handle = await orchestrator.start("t1", "ping", agent="remote")
        events = await run_to_end(handle)
        record = await orchestrator.store.get("t1")
        return handle, events, record

    handle, events, record = asyncio.run(scenario())

    assert event_types(events) == [
        "RUN_STARTED",
        "TEXT_MESSAGE_START",
        "TEXT_MESSAGE_CONTENT",
        "TEXT_MESSAGE_END",
        "MESSAGES_SNAPSHOT",
        "RUN_FINISHED",
    ]
    assert events[0].run_id == handle.run_id
    assert json.loads(captured[0].content)["runId"] == handle.run_id
    assert [message.content for message in record.to_messages()] == ["ping", "From afar"]
