from __future__ import annotations

import asyncio

import pytest

from agentsync.protocol.events import CustomEvent, RunFinishedEvent, RunStartedEvent
from agentsync.runtime.bus import EventPublisher
from tests.harness import drain, event_types


def test_streams_replay_history_and_end_after_terminal_event() -> None:
    async def scenario():
        publisher = EventPublisher()
        await publisher.publish(RunStartedEvent(thread_id="t1", run_id="r1"))
        stream = publisher.stream()
        live = publisher.stream(replay=False)
        await publisher.publish(CustomEvent(name="tick"))
        await publisher.publish(RunFinishedEvent(thread_id="t1", run_id="r1"))
        late = publisher.stream()
        return await drain(stream), await drain(live), await drain(late), publisher.closed

    replayed, live, late, closed = asyncio.run(scenario())

    assert event_types(replayed) == ["RUN_STARTED", "CUSTOM", "RUN_FINISHED"]
    assert event_types(live) == ["CUSTOM", "RUN_FINISHED"]
    assert event_types(late) == event_types(replayed)
    assert closed


def test_listeners_run_in_order_and_failures_are_isolated(caplog: pytest.LogCaptureFixture) -> None:
    seen: list[str] = []

    def broken(_event) -> None:
        raise ValueError("boom")

    async def async_listener(event) -> None:
        seen.append(f"async:{event.type}")

    async def scenario():
        publisher = EventPublisher()
        publisher.subscribe(broken)
        publisher.subscribe(lambda event: seen.append(f"sync:{event.type}"))
        unsubscribe = publisher.subscribe(async_listener)
        await publisher.publish(CustomEvent(name="a"))
        unsubscribe()
        await publisher.publish(CustomEvent(name="b"))

    with caplog.at_level("WARNING"):
        asyncio.run(scenario())

    assert seen == ["sync:CUSTOM", "async:CUSTOM", "sync:CUSTOM"]
    assert any("failed on CUSTOM" in record.getMessage() for record in caplog.records)


def test_publishing_after_close_is_an_error() -> None:
    async def scenario():
        publisher = EventPublisher()
        publisher.close()
        await publisher.publish(CustomEvent(name="late"))

    with pytest.raises(RuntimeError, match="closed publisher"):
        asyncio.run(scenario())
