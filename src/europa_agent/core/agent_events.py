"""Agent event stream for live progress display."""

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from europa_agent.core.callbacks import (
    AgentCallback,
    AgentEndEvent,
    AgentStartEvent,
    EvaluateResponseEndEvent,
    EvaluateResponseStartEvent,
    EvaluateStepEndEvent,
    EvaluateStepStartEvent,
    EvaluateTurnStartEvent,
    ExecutePlanEndEvent,
    FunctionCallEndEvent,
    FunctionCallStartEvent,
    ModelEndEvent,
)


class EventType(Enum):
    GOAL = "goal"
    PLAN = "plan"
    STEP = "step"
    OBSERVATION = "observation"
    TURN = "turn"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    EVALUATION = "evaluation"
    RESPONSE = "response"
    ERROR = "error"
    DONE = "done"


@dataclass
class AgentEvent:
    type: EventType
    data: dict[str, Any]
    step: int = 0
    timestamp: float = field(default_factory=time.time)

    @property
    def message(self) -> str:
        return self.data.get("message", "")


EventHandler = Callable[[AgentEvent], Awaitable[None]]


class EventEmitter:
    def __init__(self) -> None:
        self._handlers: dict[EventType, list[EventHandler]] = {}
        self._global_handlers: list[EventHandler] = []

    def on(self, event_type: EventType, handler: EventHandler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def off(self, event_type: EventType, handler: EventHandler) -> None:
        if handler in self._handlers.get(event_type, []):
            self._handlers[event_type].remove(handler)

    def on_all(self, handler: EventHandler) -> None:
        self._global_handlers.append(handler)

    def off_all(self, handler: EventHandler) -> None:
        if handler in self._global_handlers:
            self._global_handlers.remove(handler)

    async def emit(self, event: AgentEvent) -> None:
        for handler in self._global_handlers:
            await handler(event)
        for handler in self._handlers.get(event.type, []):
            await handler(event)

    def clear(self) -> None:
        self._handlers.clear()
        self._global_handlers.clear()


class EventEmitterCallback(AgentCallback):
    """Turns agent hooks into human-readable events.

    ``DONE`` is emitted once, when the outermost agent of the run ends.
    """

    def __init__(self, emitter: EventEmitter) -> None:
        self.emitter = emitter
        self._agents: list[str] = []
        self._turn = 0

    async def _emit(self, event_type: EventType, message: str, **data: Any) -> None:
        agent = self._agents[-1] if self._agents else None
        depth = max(len(self._agents) - 1, 0)
        await self.emitter.emit(
            AgentEvent(
                type=event_type,
                data={"message": message, "agent": agent, "depth": depth, **data},
                step=self._turn,
            )
        )

    async def on_agent_start(self, event: AgentStartEvent) -> None:
        self._agents.append(event.name)
        goal = event.args.get("goal", "")
        await self._emit(EventType.GOAL, f"Goal:\n{goal}", parent=event.parent)

    async def on_agent_end(self, event: AgentEndEvent) -> None:
        if event.errors:
            await self._emit(EventType.ERROR, "; ".join(e.get("message", "") for e in event.errors))
        if self._agents:
            self._agents.pop()
        if self._agents:
            await self._emit(EventType.RESPONSE, f"Agent {event.name} finished: {event.response}")
        else:
            await self._emit(EventType.DONE, "Agent finished", response=event.response)

    async def on_model_end_plan(self, event: ModelEndEvent) -> None:
        steps = "".join(f"\n{i + 1}. {step}" for i, step in enumerate(event.plan or []))
        await self._emit(EventType.PLAN, f"Plan:{steps}", plan=event.plan)

    async def on_execute_plan_end(self, event: ExecutePlanEndEvent) -> None:
        await self._emit(EventType.RESPONSE, f"Agent Response:\n{event.response}")

    async def on_evaluate_step_start(self, event: EvaluateStepStartEvent) -> None:
        self._turn = event.index
        await self._emit(EventType.STEP, f"Step {event.index}. {event.step}")

    async def on_evaluate_step_end(self, event: EvaluateStepEndEvent) -> None:
        await self._emit(EventType.OBSERVATION, f"Observation:\n{event.response}")

    async def on_evaluate_turn_start(self, event: EvaluateTurnStartEvent) -> None:
        self._turn = event.index + 1
        await self._emit(EventType.TURN, f"Turn {event.index + 1}")

    async def on_function_call_start(self, event: FunctionCallStartEvent) -> None:
        await self._emit(
            EventType.TOOL_CALL,
            f"Call External Tool: {event.call.name}, args: {json.dumps(event.args, default=str)}",
            tool=event.call.name,
        )

    async def on_function_call_end(self, event: FunctionCallEndEvent) -> None:
        await self._emit(EventType.TOOL_RESULT, f"Tool Result: {event.response}")

    async def on_evaluate_response_start(self, event: EvaluateResponseStartEvent) -> None:
        await self._emit(EventType.EVALUATION, "Thought: Is this a valid answer?")

    async def on_evaluate_response_end(self, event: EvaluateResponseEndEvent) -> None:
        if event.valid:
            result = "Response: Yes"
        elif event.retry:
            result = "Response: No, let me try again."
        else:
            result = "Response: No"
        await self._emit(EventType.EVALUATION, result, valid=event.valid)
