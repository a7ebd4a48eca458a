"""Callback that logs the agent lifecycle at DEBUG level."""
import logging
from typing import Any

from europa_agent.core.callbacks import (
    AgentCallback,
    AgentEndEvent,
    AgentStartEvent,
    EvaluateResponseEndEvent,
    EvaluateResponseStartEvent,
    EvaluateStepEndEvent,
    EvaluateStepStartEvent,
    EvaluateTurnEndEvent,
    EvaluateTurnStartEvent,
    ExecutePlanEndEvent,
    ExecutePlanStartEvent,
    FunctionCallEndEvent,
    FunctionCallStartEvent,
    ModelEndEvent,
    ModelStartEvent,
    ParsePlanEvent,
    PromptTemplateEndEvent,
    PromptTemplateStartEvent,
)


class DebugCallback(AgentCallback):
    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger(__name__)

    async def on_agent_start(self, event: AgentStartEvent) -> None:
        self.logger.debug(
            f"start agent: {event.name} (parent={event.parent}, depth={event.depth}) "
            f"args={event.args} allowed_tools={event.allowed_tools}"
        )

    async def on_agent_end(self, event: AgentEndEvent) -> None:
        if event.errors:
            self.logger.debug(f"end agent: {event.name} errors={event.errors}")
        else:
            self.logger.debug(f"end agent: {event.name} response={event.response!r}")

    async def on_agent_error(self, errors: list[dict[str, Any]]) -> None:
        self.logger.debug(f"agent error: {errors}")

    async def on_prompt_template_start(self, event: PromptTemplateStartEvent) -> None:
        self.logger.debug(f"start prompt template: {event.prompt_set_name} args={event.args}")

    async def on_prompt_template_end(self, event: PromptTemplateEndEvent) -> None:
        self.logger.debug(f"end prompt template: {len(event.messages or [])} messages")

    async def on_model_start_plan(self, event: ModelStartEvent) -> None:
        self.logger.debug(f"start plan: model={event.request.model}")

    async def on_model_end_plan(self, event: ModelEndEvent) -> None:
        self.logger.debug(f"end plan: {event.plan}")

    async def on_parse_plan(self, event: ParsePlanEvent) -> None:
        self.logger.debug(f"parsed plan: {event.plan}")

    async def on_execute_plan_start(self, event: ExecutePlanStartEvent) -> None:
        self.logger.debug(f"executing plan with {len(event.plan)} steps")

    async def on_execute_plan_end(self, event: ExecutePlanEndEvent) -> None:
        self.logger.debug(f"plan executed: {event.response!r}")

    async def on_evaluate_step_start(self, event: EvaluateStepStartEvent) -> None:
        self.logger.debug(f"evaluating step {event.index}: {event.step}")

    async def on_evaluate_step_end(self, event: EvaluateStepEndEvent) -> None:
        self.logger.debug(f"step result: {event.response!r}")

    async def on_evaluate_turn_start(self, event: EvaluateTurnStartEvent) -> None:
        self.logger.debug(f"evaluating turn {event.index + 1} of {event.name}")

    async def on_evaluate_turn_end(self, event: EvaluateTurnEndEvent) -> None:
        self.logger.debug(f"turn result: done={event.done} content={event.content!r}")

    async def on_function_call_start(self, event: FunctionCallStartEvent) -> None:
        self.logger.debug(f"calling tool: {event.call.name} args={event.args}")

    async def on_function_call_end(self, event: FunctionCallEndEvent) -> None:
        self.logger.debug(f"tool result: {event.response!r}")

    async def on_observe_model_start(self, event: ModelStartEvent) -> None:
        self.logger.debug(f"calling model: {event.request.model}")

    async def on_observe_model_end(self, event: ModelEndEvent) -> None:
        self.logger.debug(f"model response: {event.response}")

    async def on_evaluate_response_start(self, event: EvaluateResponseStartEvent) -> None:
        self.logger.debug(f"evaluating response to: {event.question}")

    async def on_evaluate_response_end(self, event: EvaluateResponseEndEvent) -> None:
        self.logger.debug(f"response valid={event.valid} retry={event.retry}")
