"""Tests for the event emitter and the event-streaming callback."""

import asyncio

import pytest

from europa_agent.core.agent import CANCELLED, DONE
from europa_agent.core.agent_events import (
    AgentEvent,
    EventEmitter,
    EventEmitterCallback,
    EventType,
)
from europa_agent.core.callbacks import EvaluateResponseEndEvent
from europa_agent.core.runtime import AgentRuntime
from europa_agent.schemas.agent import AgentDefinition
from europa_agent.tools import tool


@pytest.fixture
def emitter_events():
    emitter = EventEmitter()
    events: list[AgentEvent] = []

    async def collect(event):
        events.append(event)

    emitter.on_all(collect)
    return emitter, events


class TestEventEmitter:
    @pytest.mark.asyncio
    async def test_typed_and_global_handlers(self):
        emitter = EventEmitter()
        seen = []

        async def on_goal(event):
            seen.append(("goal", event.message))

        async def on_any(event):
            seen.append(("any", event.type))

        emitter.on(EventType.GOAL, on_goal)
        emitter.on_all(on_any)

        await emitter.emit(AgentEvent(type=EventType.GOAL, data={"message": "Goal:\nx"}))
        await emitter.emit(AgentEvent(type=EventType.TURN, data={}))

        assert seen == [("any", EventType.GOAL), ("goal", "Goal:\nx"), ("any", EventType.TURN)]

        emitter.off(EventType.GOAL, on_goal)
        emitter.off_all(on_any)
        await emitter.emit(AgentEvent(type=EventType.GOAL, data={}))
        assert len(seen) == 3


class TestEventEmitterCallback:
    @pytest.mark.asyncio
    async def test_done_only_when_outermost_agent_ends(self, services, chat_provider, test_settings, emitter_events):
        emitter, events = emitter_events
        services.register_agent(AgentDefinition(name="boss", allowed_tools=["helper"]))
        services.register_agent(AgentDefinition(name="helper"))
        chat_provider.queue(
            'Action: helper\nAction Input: {"goal": "find it"}',
            "Final Answer: found",
            "Final Answer: done",
        )
        runtime = AgentRuntime(services, settings=test_settings)

        await runtime.run_by_name("boss", {"goal": "delegate"}, callbacks=[EventEmitterCallback(emitter)])

        types = [e.type for e in events]
        assert types.count(EventType.DONE) == 1
        assert types[-1] == EventType.DONE
        assert events[-1].data["response"] == "done"

        goals = [e for e in events if e.type == EventType.GOAL]
        assert [(e.data["agent"], e.data["depth"]) for e in goals] == [("boss", 0), ("helper", 1)]
        assert goals[1].data["parent"] == "boss"

        call = next(e for e in events if e.type == EventType.TOOL_CALL)
        assert call.data["tool"] == "helper"
        assert "Agent helper finished: found" in [e.message for e in events]

    @pytest.mark.asyncio
    async def test_errors_are_reported(self, services, chat_provider, test_settings, emitter_events):
        emitter, events = emitter_events
        chat_provider.queue(RuntimeError("provider down"))
        runtime = AgentRuntime(services, settings=test_settings)

        with pytest.raises(RuntimeError):
            await runtime.run(AgentDefinition(name="solo"), {"goal": "x"}, callbacks=[EventEmitterCallback(emitter)])

        assert [e.type for e in events][-2:] == [EventType.ERROR, EventType.DONE]
        assert events[-2].message == "provider down"

    @pytest.mark.asyncio
    async def test_done_after_sub_agent_is_cancelled(self, services, chat_provider, test_settings, emitter_events):
        emitter, events = emitter_events

        @tool(description="Never finishes")
        async def slow(input: str) -> str:
            await asyncio.sleep(10)
            return "late"

        services.register_tool(slow)
        services.register_agent(AgentDefinition(name="boss", allowed_tools=["helper"]))
        services.register_agent(AgentDefinition(name="helper", allowed_tools=["slow"]))
        chat_provider.queue('Action: helper\nAction Input: {"goal": "wait"}', "Action: slow\nAction Input: x")
        runtime = AgentRuntime(services, settings=test_settings)

        result = await runtime.run_by_name(
            "boss",
            {"goal": "delegate"},
            callbacks=[EventEmitterCallback(emitter)],
            elapsed_time=test_settings.AGENT_MAX_EXECUTION_TIME_MS - 200,
        )

        assert result == DONE
        assert [e.type for e in events][-3:] == [EventType.ERROR, EventType.RESPONSE, EventType.DONE]
        assert events[-3].message == CANCELLED
        assert (events[-3].data["agent"], events[-3].data["depth"]) == ("helper", 1)
        assert events[-1].data["response"] == DONE

    @pytest.mark.asyncio
    async def test_evaluation_messages(self, emitter_events):
        emitter, events = emitter_events
        callback = EventEmitterCallback(emitter)

        await callback.on_evaluate_response_end(EvaluateResponseEndEvent(valid=False, retry=True))
        await callback.on_evaluate_response_end(EvaluateResponseEndEvent(valid=False))
        await callback.on_evaluate_response_end(EvaluateResponseEndEvent(valid=True))

        assert [e.message for e in events] == [
            "Response: No, let me try again.",
            "Response: No",
            "Response: Yes",
        ]
