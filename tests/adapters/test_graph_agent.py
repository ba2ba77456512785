from __future__ import annotations

import pytest

from agentsync.core.adapters.base import ResumeCommand
from agentsync.core.adapters.graph import StepAgent
from agentsync.core.errors import ConfigurationError
from agentsync.protocol.events import CustomEvent, StateDeltaEvent
from agentsync.protocol.verifier import verify_events
from tests.harness import collect, event_types, make_request


def _agent() -> StepAgent:
    agent = StepAgent()

    @agent.step("research")
    async def research(ctx) -> None:
        await ctx.update_state({"notes": ["tides"], "a/b": 1})

    @agent.step("answer")
    async def answer(ctx) -> None:
        await ctx.say("Low tide ", "at 14:00")

    return agent


def test_steps_run_in_order_with_lifecycle_events() -> None:
    agent = _agent()

    events = collect(agent, make_request("when is low tide?"))

    assert agent.step_names == ("research", "answer")
    assert event_types(events) == [
        "STEP_STARTED",
        "STATE_DELTA",
        "STEP_FINISHED",
        "STEP_STARTED",
        "TEXT_MESSAGE_START",
        "TEXT_MESSAGE_CONTENT",
        "TEXT_MESSAGE_CONTENT",
        "TEXT_MESSAGE_END",
        "STEP_FINISHED",
    ]
    assert verify_events(events, require_run_framing=False) == len(events)
    delta = next(event for event in events if isinstance(event, StateDeltaEvent))
    assert [(op.op, op.path, op.value) for op in delta.delta] == [
        ("add", "/notes", ["tides"]),
        ("add", "/a~1b", 1),
    ]


def test_state_flows_from_request_through_steps() -> None:
    agent = StepAgent()
    seen: list[dict] = []

    @agent.step("bump")
    async def bump(ctx) -> None:
        await ctx.update_state({"count": ctx.state["count"] + 1, "nested": {"b": 2}})

    @agent.step("observe")
    async def observe(ctx) -> None:
        seen.append(ctx.state)

    collect(agent, make_request("go", state={"count": 1, "nested": {"a": 1}}))

    assert seen == [{"count": 2, "nested": {"a": 1, "b": 2}}]


def test_interrupt_stops_the_graph_with_a_custom_event() -> None:
    agent = StepAgent()
    reached: list[str] = []

    @agent.step("ask")
    async def ask(ctx) -> None:
        ctx.interrupt({"question": "continue?"})
        reached.append("ask")

    @agent.step("after")
    async def after(ctx) -> None:
        reached.append("after")

    events = collect(agent, make_request("go"))

    assert event_types(events) == ["STEP_STARTED", "STEP_FINISHED", "CUSTOM"]
    assert events[-1] == CustomEvent(
        name="on_interrupt", value={"step": "ask", "value": {"question": "continue?"}}
    )
    assert reached == []


def test_resume_reenters_at_the_interrupted_step() -> None:
    agent = StepAgent()
    reached: list[object] = []

    @agent.step("first")
    async def first(ctx) -> None:
        reached.append("first")

    @agent.step("ask")
    async def ask(ctx) -> None:
        reached.append(ctx.interrupt("continue?"))

    resume = ResumeCommand(checkpoint_id="ckpt-1", step="ask", payload="yes")
    events = collect(agent, make_request("go", resume=resume))

    assert reached == ["yes"]
    assert event_types(events) == ["STEP_STARTED", "STEP_FINISHED"]


def test_resume_at_unknown_step_fails() -> None:
    resume = ResumeCommand(checkpoint_id="ckpt-1", step="missing")

    with pytest.raises(ConfigurationError, match="unknown step 'missing'"):
        collect(_agent(), make_request("go", resume=resume))


def test_step_failures_propagate() -> None:
    agent = StepAgent()

    @agent.step("boom")
    async def boom(ctx) -> None:
        raise RuntimeError("step exploded")

    with pytest.raises(RuntimeError, match="step exploded"):
        collect(agent, make_request("go"))


def test_step_names_must_be_unique() -> None:
    async def noop(ctx) -> None:
        return None

    agent = StepAgent([("one", noop)])

    with pytest.raises(ConfigurationError):
        agent.add_step("one", noop)
    with pytest.raises(ConfigurationError):
        agent.add_step("", noop)
