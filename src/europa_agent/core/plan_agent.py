"""Plan-and-execute agent.

Asks the model for a numbered plan, then works through the steps one by
one. Each step is a single model call that may request one action; the
step's result is the action's observation or the model's text. The answer
of the run is the result of the last step.
"""
import asyncio
import json
import logging
from typing import Any, Optional

from europa_agent.core.agent import DONE, BaseAgent
from europa_agent.core.callbacks import (
    AgentCallback,
    EvaluateResponseEndEvent,
    EvaluateResponseStartEvent,
    EvaluateStepEndEvent,
    EvaluateStepStartEvent,
    ExecutePlanEndEvent,
    ExecutePlanStartEvent,
    ModelEndEvent,
    ModelStartEvent,
    ParsePlanEvent,
)
from europa_agent.core.dispatcher import DispatchContext, FunctionDispatcher
from europa_agent.core.exceptions import AgentError
from europa_agent.core.output_parser import parse_numbered_list
from europa_agent.core.prompt_assembler import convert_content_type_to_string, get_tool_definitions
from europa_agent.schemas.actions import Step
from europa_agent.schemas.message import (
    PARA_DELIM,
    ChatPrompt,
    ChatRequest,
    FunctionCall,
    FunctionDescriptor,
    assistant_message,
    function_message,
    user_message,
)

logger = logging.getLogger(__name__)

PLAN_STOP_SEQUENCES = ["<END_OF_PLAN>"]
STEP_STOP_SEQUENCES = ["Observation:", "\tObservation:", "\nObservation:"]
MAX_EVALUATION_RETRIES = 2

ORACLE_PROMPT = (
    "You are an oracle providing direct answers to questions. Answer the question below. "
    "Just respond with the answer or I don't know.\n\n"
    "{response}\n\nQuestion:\n{question}\n\nAnswer:"
)


class PlanAndExecuteAgent(BaseAgent):
    agent_type = "plan"

    @property
    def prompt_skill(self) -> str:
        return "plan"

    async def run(
        self,
        args: dict[str, Any],
        allowed_tools: Optional[list[str]] = None,
        extra_function_call_params: Optional[dict[str, Any]] = None,
        self_evaluate: bool = False,
        callbacks: Optional[list[AgentCallback]] = None,
        elapsed_time: int = 0,
    ) -> str:
        allowed_tools = list(allowed_tools or [])
        extra_function_call_params = dict(extra_function_call_params or {})
        await self._start_run(args, allowed_tools, extra_function_call_params, self_evaluate, callbacks, elapsed_time)

        try:
            dispatcher = self._make_dispatcher(allowed_tools)
            functions = dispatcher.get_functions()
            ctx = self._dispatch_context(extra_function_call_params)
            goal = args.get("goal", "")

            try:
                plan = await asyncio.wait_for(
                    self._get_plan({**args, "content": goal, "tool_definitions": get_tool_definitions(functions or [])}),
                    timeout=self._remaining_seconds(),
                )
            except asyncio.TimeoutError:
                if not self._budget_spent():
                    raise
                logger.warning(f"Agent {self.name} exceeded {self.max_execution_time}ms while planning")
                await self._on_end(response=DONE)
                return DONE

            if not plan:
                await self._throw_agent_error("Could not parse a plan from the model output")

            await self.current_callbacks.trigger("on_execute_plan_start", ExecutePlanStartEvent(plan=plan))
            steps: list[Step] = []
            response = ""
            for index, step in enumerate(plan, start=1):
                try:
                    response = await asyncio.wait_for(
                        self._execute_step(step, index, steps, functions, dispatcher, ctx, self_evaluate),
                        timeout=self._remaining_seconds(),
                    )
                except asyncio.TimeoutError:
                    if not self._budget_spent():
                        raise
                    logger.warning(
                        f"Agent {self.name} exceeded {self.max_execution_time}ms at step {index} of {len(plan)}"
                    )
                    break
                steps.append(Step(step=step, response=response))

            await self.current_callbacks.trigger(
                "on_execute_plan_end", ExecutePlanEndEvent(response=response, steps=steps)
            )
            logger.info(f"Agent {self.name} executed {len(steps)} of {len(plan)} step(s)")
            await self._on_end(response=response)
            return response

        except asyncio.CancelledError:
            await self._cancelled()
            raise
        except Exception as e:
            await self._fail(e)
            raise

    async def _get_plan(self, args: dict[str, Any]) -> list[str]:
        messages = await self._get_setup_prompts(args)
        request = ChatRequest(
            model=self.model,
            model_params=self.model_params.model_copy(update={"stop": PLAN_STOP_SEQUENCES}),
            prompt=ChatPrompt(messages=messages),
        )
        await self.current_callbacks.trigger(
            "on_model_start_plan",
            ModelStartEvent(
                request=request,
                provider=type(self.services.chat_provider).__name__,
                name=self.name,
                parent=self.parent_agent_name,
            ),
        )
        response = await self.services.chat_provider.chat(request)
        message = response.message
        content = convert_content_type_to_string(message.content) if message else ""
        self.history.append(assistant_message(content))

        plan = parse_numbered_list(content)
        await self.current_callbacks.trigger("on_parse_plan", ParsePlanEvent(content=content, plan=plan))
        await self.current_callbacks.trigger(
            "on_model_end_plan",
            ModelEndEvent(response=response, model=self.model, plan=plan, name=self.name, parent=self.parent_agent_name),
        )
        return plan

    async def _execute_step(
        self,
        step: str,
        index: int,
        previous_steps: list[Step],
        functions: Optional[list[FunctionDescriptor]],
        dispatcher: FunctionDispatcher,
        ctx: DispatchContext,
        self_evaluate: bool,
        retry_count: int = 0,
    ) -> str:
        message = user_message(self._get_return_content(previous_steps, step))
        request = ChatRequest(
            model=self.model,
            model_params=self.model_params.model_copy(update={"stop": STEP_STOP_SEQUENCES}),
            prompt=ChatPrompt(history=list(self.history), messages=[message]),
            functions=functions,
        )
        self.history.append(message)

        await self.current_callbacks.trigger(
            "on_evaluate_step_start", EvaluateStepStartEvent(step=step, index=index, request=request)
        )
        response = await self._chat(request)
        reply = response.message
        if reply is None:
            raise AgentError(f"Model {request.model} returned no choices")

        retry = False
        if reply.function_call:
            call = reply.function_call
            output = await dispatcher.call_function(call, ctx)
            if self.use_functions:
                content = output
            else:
                content = self._get_return_content(previous_steps, step, call, output)
            self.history.append(function_message(content, call.name))
            if self_evaluate:
                valid = await self._evaluate_response(step, output)
                retry = not valid and retry_count < MAX_EVALUATION_RETRIES
                await self.current_callbacks.trigger(
                    "on_evaluate_response_end", EvaluateResponseEndEvent(valid=valid, retry=retry)
                )
        else:
            content = convert_content_type_to_string(reply.content)

        await self.current_callbacks.trigger("on_evaluate_step_end", EvaluateStepEndEvent(response=content))
        if retry:
            logger.info(f"Retrying step {index} of agent {self.name} (attempt {retry_count + 2})")
            return await self._execute_step(
                step, index, previous_steps, functions, dispatcher, ctx, self_evaluate, retry_count + 1
            )
        return content

    async def _evaluate_response(self, question: str, response: str) -> bool:
        """Ask the model whether ``response`` answers ``question``."""
        request = ChatRequest(
            model=self.model,
            model_params=self.model_params.model_copy(update={"max_tokens": 5, "n": 1, "stop": None}),
            prompt=ChatPrompt(messages=[user_message(ORACLE_PROMPT.format(response=response, question=question))]),
        )
        await self.current_callbacks.trigger(
            "on_evaluate_response_start",
            EvaluateResponseStartEvent(question=question, response=response, request=request),
        )
        result = await self.services.chat_provider.chat(request)
        message = result.message
        answer = convert_content_type_to_string(message.content).strip() if message else ""
        return bool(answer) and not answer.lower().startswith("i don't know")

    @staticmethod
    def _get_return_content(
        previous_steps: list[Step],
        current_step: str,
        call: Optional[FunctionCall] = None,
        function_output: Optional[str] = None,
    ) -> str:
        contents = []
        if previous_steps:
            numbered = "\n".join(f"{i}. {s.step}" for i, s in enumerate(previous_steps, start=1))
            contents.append(f"Previous steps:\n{numbered}")
        contents.append(f"Current objective: {current_step}")
        if call is not None:
            try:
                args = json.loads(call.arguments)
            except json.JSONDecodeError:
                args = call.arguments
            action_input = args.get("input", args) if isinstance(args, dict) else args
            action = json.dumps({"action": call.name, "action_input": action_input}, indent=2)
            contents.extend(
                [
                    "This was your previous work (but I haven't seen any of it! "
                    f"I only see what you return as final answer):\nAction:\n```\n{action}\n```",
                    f"Observation: {function_output}\n",
                    "Thought:",
                ]
            )
        return PARA_DELIM.join(contents)
