"""Agent reasoning loop.

A run goes SETUP -> TURN -> (TURN | DONE | FAILED):

- SETUP fills the prompt set of the agent's skill with the goal and the
  function catalog.
- Each TURN sends the history plus the current messages to the model,
  then either finishes with a final answer or dispatches the requested
  action and feeds the observation into the next turn.
- The loop stops after ``max_iterations`` turns or ``max_execution_time``
  milliseconds of wall-clock time and returns ``"Done"``.

Messages of a turn are appended to ``history`` before the model is called.
"""
import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, NoReturn, Optional

from jinja2 import TemplateError

from europa_agent.core.callbacks import (
    AgentCallback,
    AgentEndEvent,
    AgentStartEvent,
    CallbackManager,
    EvaluateTurnEndEvent,
    EvaluateTurnStartEvent,
    ModelEndEvent,
    ModelStartEvent,
    PromptTemplateEndEvent,
    PromptTemplateStartEvent,
)
from europa_agent.core.config import Settings, settings as default_settings
from europa_agent.core.dispatcher import DispatchContext, FunctionDispatcher, SubAgentRunner
from europa_agent.core.exceptions import AgentError, OutputParserException, PromptNotFoundError
from europa_agent.core.output_parser import FINAL_ANSWER_ACTION, STOP_SEQUENCES, ReActOutputParser
from europa_agent.core.prompt_assembler import convert_content_type_to_string, get_tool_definitions
from europa_agent.core.prompt_templates import get_messages
from europa_agent.core.services import AgentServices
from europa_agent.schemas.actions import AgentFinish, TurnResult
from europa_agent.schemas.message import (
    ChatPrompt,
    ChatRequest,
    ChatResponse,
    FunctionCall,
    FunctionDescriptor,
    Message,
    ModelParams,
    assistant_message,
    function_message,
    user_message,
)

logger = logging.getLogger(__name__)

DONE = "Done"
CANCELLED = "Agent run cancelled"


class BaseAgent(ABC):
    """State and plumbing shared by the agent variants.

    One instance owns one conversation ``history``; do not run the same
    instance concurrently.
    """

    agent_type: str = "react"
    default_max_tokens: Optional[int] = None

    def __init__(
        self,
        name: str,
        services: AgentServices,
        *,
        model: Optional[str] = None,
        model_params: Optional[dict[str, Any]] = None,
        is_chat: bool = True,
        use_functions: bool = False,
        callbacks: Optional[list[AgentCallback]] = None,
        parent_agent_name: Optional[str] = None,
        sub_agent_runner: Optional[SubAgentRunner] = None,
        call_chain: tuple[str, ...] = (),
        depth: int = 0,
        max_iterations: Optional[int] = None,
        max_execution_time: Optional[int] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.name = name
        self.services = services
        self.settings = settings or default_settings
        self.is_chat = is_chat
        self.use_functions = use_functions
        self.model = model or (self.settings.LLM_MODEL if is_chat else self.settings.LLM_COMPLETION_MODEL)
        self.model_params = ModelParams(
            **{
                "max_tokens": self.default_max_tokens or self.settings.AGENT_MAX_TOKENS,
                **(model_params or {}),
                "n": 1,
                "stop": STOP_SEQUENCES,
            }
        )
        self.callbacks: list[AgentCallback] = list(callbacks or [])
        self.current_callbacks = CallbackManager(self.callbacks)
        self.parent_agent_name = parent_agent_name
        self.sub_agent_runner = sub_agent_runner
        self.call_chain = call_chain or (name,)
        self.depth = depth
        self.max_iterations = max_iterations or self.settings.AGENT_MAX_ITERATIONS
        self.max_execution_time = max_execution_time or self.settings.AGENT_MAX_EXECUTION_TIME_MS
        self.history: list[Message] = []
        self._started_at = time.monotonic()

    @property
    @abstractmethod
    def prompt_skill(self) -> str:
        """Skill used to look up the agent's prompt set."""

    def reset(self) -> None:
        self.history = []

    @abstractmethod
    async def run(
        self,
        args: dict[str, Any],
        allowed_tools: Optional[list[str]] = None,
        extra_function_call_params: Optional[dict[str, Any]] = None,
        self_evaluate: bool = False,
        callbacks: Optional[list[AgentCallback]] = None,
        elapsed_time: int = 0,
    ) -> str:
        ...

    # -- run lifecycle -------------------------------------------------------

    async def _start_run(
        self,
        args: dict[str, Any],
        allowed_tools: list[str],
        extra_function_call_params: dict[str, Any],
        self_evaluate: bool,
        callbacks: Optional[list[AgentCallback]],
        elapsed_time: int,
    ) -> None:
        self.current_callbacks = CallbackManager([*self.callbacks, *(callbacks or [])])
        self._started_at = time.monotonic() - elapsed_time / 1000
        logger.info(f"Agent {self.name} started (type={self.agent_type}, depth={self.depth})")
        await self.current_callbacks.trigger(
            "on_agent_start",
            AgentStartEvent(
                name=self.name,
                args=args,
                allowed_tools=allowed_tools,
                extra_function_call_params=extra_function_call_params,
                self_evaluate=self_evaluate,
                parent=self.parent_agent_name,
                agent_type=self.agent_type,
                depth=self.depth,
            ),
        )

    async def _on_end(self, response: Optional[str] = None, errors: Optional[list[dict[str, Any]]] = None) -> None:
        await self.current_callbacks.trigger(
            "on_agent_end",
            AgentEndEvent(name=self.name, response=response, errors=errors, parent=self.parent_agent_name),
        )

    async def _fail(self, error: Exception) -> None:
        errors = getattr(error, "errors", None) or [{"message": str(error)}]
        logger.error(f"Agent {self.name} failed: {error}")
        await self._on_end(errors=errors)

    async def _cancelled(self) -> None:
        # usually the calling agent ran out of time
        logger.warning(f"Agent {self.name} cancelled (depth={self.depth})")
        await self._on_end(errors=[{"message": CANCELLED}])

    async def _throw_agent_error(self, message: str, error_cls: type[AgentError] = AgentError) -> NoReturn:
        errors = [{"message": message}]
        await self.current_callbacks.trigger("on_agent_error", errors)
        raise error_cls(message, errors)

    # -- budget ----------------------------------------------------------------

    def _elapsed_ms(self) -> float:
        return (time.monotonic() - self._started_at) * 1000

    def _remaining_seconds(self) -> float:
        return max(0.0, (self.max_execution_time - self._elapsed_ms()) / 1000)

    def _should_continue(self, iterations: int) -> bool:
        return iterations < self.max_iterations and self._elapsed_ms() < self.max_execution_time

    def _budget_spent(self) -> bool:
        """Whether a ``TimeoutError`` out of ``wait_for`` was the time budget.

        The event loop may fire the deadline up to one clock tick early.
        """
        return self._remaining_seconds() < 0.001

    # -- collaborators ---------------------------------------------------------

    def _make_dispatcher(self, allowed_tools: list[str], tools_only: bool = False) -> FunctionDispatcher:
        return FunctionDispatcher(
            self.services,
            allowed_tools,
            sub_agent_runner=self.sub_agent_runner,
            settings=self.settings,
            tools_only=tools_only,
        )

    def _dispatch_context(self, extra_function_call_params: dict[str, Any]) -> DispatchContext:
        return DispatchContext(
            agent_name=self.name,
            callbacks=self.current_callbacks,
            parent_agent_name=self.parent_agent_name,
            extra_function_call_params=extra_function_call_params,
            call_chain=self.call_chain,
            depth=self.depth,
        )

    async def _get_setup_prompts(self, args: dict[str, Any]) -> list[Message]:
        prompt_sets = await self.services.prompt_store.get_prompt_sets_by_skill(self.prompt_skill)
        if not prompt_sets:
            await self._throw_agent_error("Prompt not found", PromptNotFoundError)
        prompt_set = prompt_sets[0]

        await self.current_callbacks.trigger(
            "on_prompt_template_start",
            PromptTemplateStartEvent(
                prompt_set_id=prompt_set.id,
                prompt_set_name=prompt_set.name,
                message_templates=prompt_set.prompts,
                args=args,
            ),
        )
        try:
            messages = get_messages(prompt_set.prompts, args)
        except TemplateError as e:
            await self.current_callbacks.trigger(
                "on_prompt_template_end", PromptTemplateEndEvent(errors=[{"message": str(e)}])
            )
            raise AgentError(f"Failed to fill prompt set {prompt_set.name}: {e}") from e
        await self.current_callbacks.trigger("on_prompt_template_end", PromptTemplateEndEvent(messages=messages))
        return messages

    async def _chat(self, request: ChatRequest) -> ChatResponse:
        """Call the model, reporting the call to the observe-model hooks."""
        await self.current_callbacks.trigger(
            "on_observe_model_start",
            ModelStartEvent(
                request=request,
                provider=type(self.services.chat_provider).__name__,
                name=self.name,
                parent=self.parent_agent_name,
            ),
        )
        try:
            response = await self.services.chat_provider.chat(request)
        except Exception as e:
            await self.current_callbacks.trigger(
                "on_observe_model_end",
                ModelEndEvent(errors=[{"message": str(e)}], model=request.model, name=self.name),
            )
            raise
        await self.current_callbacks.trigger(
            "on_observe_model_end",
            ModelEndEvent(response=response, model=request.model, name=self.name, parent=self.parent_agent_name),
        )
        if response.message is None:
            raise AgentError(f"Model {request.model} returned no choices")
        return response

    @staticmethod
    def _make_observation(output: str) -> str:
        return f"Observation: {output}\nThought:"


class ReActAgent(BaseAgent):
    """Reason/act loop over the ReAct text protocol or native function calls."""

    agent_type = "react"

    def __init__(self, name: str, services: AgentServices, **kwargs: Any) -> None:
        super().__init__(name, services, **kwargs)
        self.output_parser = ReActOutputParser()

    @property
    def prompt_skill(self) -> str:
        return "react_plan_1" if self.use_functions else "react_plan"

    @property
    def tools_only(self) -> bool:
        return False

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
            dispatcher = self._make_dispatcher(allowed_tools, tools_only=self.tools_only)
            functions = dispatcher.get_functions()
            ctx = self._dispatch_context(extra_function_call_params)

            messages = await self._get_setup_prompts(
                {
                    **args,
                    "content": args.get("goal", ""),
                    "agent_scratchpad": "",
                    "tools": get_tool_definitions(functions or []),
                    "tool_names": ", ".join(f.name for f in functions or []),
                }
            )

            iterations = 0
            while self._should_continue(iterations):
                request = ChatRequest(
                    model=self.model,
                    model_params=self.model_params,
                    prompt=ChatPrompt(history=list(self.history), messages=list(messages)),
                    functions=functions if self.use_functions else None,
                )
                self.history.extend(messages)

                await self.current_callbacks.trigger(
                    "on_evaluate_turn_start",
                    EvaluateTurnStartEvent(
                        index=iterations, request=request, name=self.name, parent=self.parent_agent_name
                    ),
                )
                try:
                    result = await asyncio.wait_for(
                        self._next(request, functions, dispatcher, ctx), timeout=self._remaining_seconds()
                    )
                except asyncio.TimeoutError:
                    if not self._budget_spent():
                        raise
                    logger.warning(
                        f"Agent {self.name} exceeded {self.max_execution_time}ms in turn {iterations + 1}; "
                        "in-flight call cancelled"
                    )
                    break

                await self.current_callbacks.trigger(
                    "on_evaluate_turn_end",
                    EvaluateTurnEndEvent(
                        model=self.model,
                        done=result.done,
                        content=result.content,
                        name=self.name,
                        parent=self.parent_agent_name,
                    ),
                )
                if result.done:
                    logger.info(f"Agent {self.name} finished after {iterations + 1} turn(s)")
                    await self._on_end(response=result.content)
                    return result.content

                if self.use_functions and result.name:
                    messages = [function_message(result.content, result.name)]
                else:
                    messages = [user_message(result.content)]
                iterations += 1

            logger.info(f"Agent {self.name} stopped without a final answer after {iterations} turn(s)")
            await self._on_end(response=DONE)
            return DONE

        except asyncio.CancelledError:
            await self._cancelled()
            raise
        except Exception as e:
            await self._fail(e)
            raise

    async def _next(
        self,
        request: ChatRequest,
        functions: Optional[list[FunctionDescriptor]],
        dispatcher: FunctionDispatcher,
        ctx: DispatchContext,
    ) -> TurnResult:
        message = (await self._chat(request)).message
        if message is None:
            raise AgentError(f"Model {request.model} returned no choices")
        content = convert_content_type_to_string(message.content)

        if self.use_functions:
            if message.function_call:
                output = await dispatcher.call_function(message.function_call, ctx)
                return TurnResult(done=False, content=self._make_observation(output), name=message.function_call.name)
            if message.final:
                if FINAL_ANSWER_ACTION in content:
                    content = content.split(FINAL_ANSWER_ACTION)[1]
                return TurnResult(done=True, content=content.strip())

        self.history.append(assistant_message(content))
        return await self._process_response(content, dispatcher, ctx)

    async def _process_response(self, content: str, dispatcher: FunctionDispatcher, ctx: DispatchContext) -> TurnResult:
        try:
            parsed = self.output_parser.parse(content)
        except OutputParserException as e:
            if e.send_to_llm:
                logger.warning(f"Agent {self.name} got unparseable output, asking model to retry: {e.observation}")
                return TurnResult(done=False, content=e.observation or "")
            await self._throw_agent_error(str(e))

        if isinstance(parsed, AgentFinish):
            return TurnResult(done=True, content=parsed.output)

        call = FunctionCall(name=parsed.action, arguments=self._action_arguments(parsed.tool_input))
        output = await dispatcher.call_function(call, ctx)
        return TurnResult(done=False, content=self._make_observation(output), name=parsed.action)

    @staticmethod
    def _action_arguments(tool_input: str) -> str:
        """JSON arguments for a ReAct action input.

        A JSON object input is used as is; anything else becomes ``{"input": ...}``.
        """
        try:
            value = json.loads(tool_input)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return json.dumps(value)
        return json.dumps({"input": tool_input})


class SimpleAgent(ReActAgent):
    """ReAct agent restricted to registered tools, with short completions."""

    agent_type = "simple"
    default_max_tokens = 255

    @property
    def prompt_skill(self) -> str:
        return "simple_agent"

    @property
    def tools_only(self) -> bool:
        return True
