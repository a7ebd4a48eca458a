"""Resolution and execution of the actions an agent asks for.

An action name resolves to exactly one kind of resource, first match wins:
the built-in search action, a semantic function, a composition, a sub-agent
or a registered tool. Failures never escape ``call_function``; they are
returned as a ``ToolFailure`` and shown to the model as a negative
observation.
"""
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol

from europa_agent.core.callbacks import (
    AgentCallback,
    CallbackManager,
    FunctionCallEndEvent,
    FunctionCallStartEvent,
)
from europa_agent.core.config import Settings, settings as default_settings
from europa_agent.core.exceptions import AgentRecursionError, ToolExecutionError
from europa_agent.core.prompt_assembler import convert_content_type_to_string
from europa_agent.core.services import AgentServices
from europa_agent.schemas.agent import AgentDefinition, Composition, SemanticFunction
from europa_agent.schemas.message import PARA_DELIM, EmbeddingRequest, FunctionCall, FunctionDescriptor
from europa_agent.tools.base import Tool, validate_tool_arguments

logger = logging.getLogger(__name__)

SEARCH_ACTION = "searchIndex"
EMAIL_TOOL = "email"
INVALID_TOOL_CALL = "Invalid tool call"
ARGUMENT_PARSE_APOLOGY = "I don't know how to answer that"

# Vector stores that embed the query themselves
NATIVE_EMBEDDING_STORES = frozenset({"redis", "elasticsearch"})

SEARCH_DESCRIPTOR = FunctionDescriptor(
    name=SEARCH_ACTION,
    description=(
        "a search engine. useful for when you need to answer questions about "
        "current events. input should be a search query."
    ),
    parameters={
        "type": "object",
        "properties": {"input": {"description": "Input text", "type": "string"}},
        "required": ["input"],
    },
)

SUB_AGENT_PARAMETERS = {
    "type": "object",
    "properties": {
        "goal": {"type": "string", "description": "The goal that the agent is tasked to achieve."},
    },
    "required": ["goal"],
}


class ActionKind(str, Enum):
    SEARCH = "search"
    SEMANTIC_FUNCTION = "semantic_function"
    COMPOSITION = "composition"
    SUB_AGENT = "sub_agent"
    TOOL = "tool"


@dataclass
class ResolvedAction:
    kind: ActionKind
    name: str
    target: Any = None


@dataclass
class ToolFailure:
    """Why a dispatched action produced no output."""
    name: str
    message: str
    kind: Optional[ActionKind] = None
    exception: Optional[BaseException] = None


@dataclass
class DispatchResult:
    """Outcome of one dispatch: ``output`` on success, ``failure`` otherwise."""
    name: str
    output: Optional[str] = None
    failure: Optional[ToolFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def observation(self) -> str:
        """What the model sees."""
        if self.failure is not None:
            return INVALID_TOOL_CALL
        return self.output or ""


@dataclass
class DispatchContext:
    """Attribution and recursion state of the calling agent."""
    agent_name: str
    callbacks: CallbackManager
    parent_agent_name: Optional[str] = None
    extra_function_call_params: dict[str, Any] = field(default_factory=dict)
    call_chain: tuple[str, ...] = ()
    depth: int = 0


class SubAgentRunner(Protocol):
    async def __call__(
        self,
        definition: AgentDefinition,
        args: dict[str, Any],
        *,
        callbacks: list[AgentCallback],
        parent_agent_name: str,
        call_chain: tuple[str, ...],
        depth: int,
        extra_function_call_params: dict[str, Any],
    ) -> str:
        ...


Strategy = Callable[[ResolvedAction, dict[str, Any], DispatchContext], Awaitable[str]]


class FunctionDispatcher:
    """Dispatches function calls for one agent.

    Only resources named in ``allowed_tools`` are visible. Pass
    ``tools_only=True`` to hide sub-agents, semantic functions and
    compositions.
    """

    def __init__(
        self,
        services: AgentServices,
        allowed_tools: list[str],
        sub_agent_runner: Optional[SubAgentRunner] = None,
        settings: Optional[Settings] = None,
        tools_only: bool = False,
    ) -> None:
        self._services = services
        self._allowed = list(dict.fromkeys(allowed_tools))
        self._sub_agent_runner = sub_agent_runner
        self._settings = settings or default_settings
        self._tools_only = tools_only
        self._strategies: dict[ActionKind, Strategy] = {
            ActionKind.SEARCH: self._search,
            ActionKind.SEMANTIC_FUNCTION: self._execute_function,
            ActionKind.COMPOSITION: self._execute_composition,
            ActionKind.SUB_AGENT: self._run_sub_agent,
            ActionKind.TOOL: self._call_tool,
        }

    def resolve(self, name: str) -> Optional[ResolvedAction]:
        if name not in self._allowed:
            return None
        if name == SEARCH_ACTION:
            return ResolvedAction(ActionKind.SEARCH, name)
        if not self._tools_only:
            if name in self._services.semantic_functions:
                return ResolvedAction(ActionKind.SEMANTIC_FUNCTION, name, self._services.semantic_functions[name])
            if name in self._services.compositions:
                return ResolvedAction(ActionKind.COMPOSITION, name, self._services.compositions[name])
            if name in self._services.agents:
                return ResolvedAction(ActionKind.SUB_AGENT, name, self._services.agents[name])
        if name in self._services.tools:
            return ResolvedAction(ActionKind.TOOL, name, self._services.tools[name])
        return None

    def get_functions(self) -> Optional[list[FunctionDescriptor]]:
        """Descriptors of every allowed action, or None if there are none."""
        functions: list[FunctionDescriptor] = []
        for name in self._allowed:
            resolved = self.resolve(name)
            if resolved is None:
                logger.warning(f"Allowed tool '{name}' is not registered")
                continue
            functions.append(self._describe(resolved))
        return functions or None

    @staticmethod
    def _describe(resolved: ResolvedAction) -> FunctionDescriptor:
        target = resolved.target
        if resolved.kind == ActionKind.SEARCH:
            return SEARCH_DESCRIPTOR
        if resolved.kind == ActionKind.TOOL:
            return target.to_descriptor()
        if resolved.kind == ActionKind.SUB_AGENT:
            return FunctionDescriptor(
                name=target.name, description=target.description, parameters=SUB_AGENT_PARAMETERS
            )
        return FunctionDescriptor(name=target.name, description=target.description, parameters=target.arguments)

    async def call_function(self, call: FunctionCall, ctx: DispatchContext) -> str:
        """Run a function call and return the observation for the model."""
        try:
            args = json.loads(call.arguments) if call.arguments else {}
        except json.JSONDecodeError as e:
            logger.error(f"Error parsing call arguments of {call.name}: {e}; arguments={call.arguments!r}")
            return ARGUMENT_PARSE_APOLOGY
        if not isinstance(args, dict):
            args = {"input": args}

        await ctx.callbacks.trigger(
            "on_function_call_start",
            FunctionCallStartEvent(call=call, args=args, name=ctx.agent_name, parent=ctx.parent_agent_name),
        )
        result = await self.dispatch(call.name, args, ctx)
        await ctx.callbacks.trigger(
            "on_function_call_end",
            FunctionCallEndEvent(
                response=result.observation,
                name=ctx.agent_name,
                parent=ctx.parent_agent_name,
                error=result.failure.message if result.failure else None,
            ),
        )
        return result.observation

    async def dispatch(self, name: str, args: dict[str, Any], ctx: DispatchContext) -> DispatchResult:
        resolved = self.resolve(name)
        if resolved is None:
            failure = ToolFailure(name=name, message=f"Unknown action: {name}")
            logger.warning(f"Tool call failed: {failure.message}")
            return DispatchResult(name=name, failure=failure)

        try:
            output = await self._strategies[resolved.kind](resolved, args, ctx)
        except Exception as e:
            logger.warning(f"Error calling {resolved.kind.value} '{name}': {e}")
            return DispatchResult(
                name=name,
                failure=ToolFailure(name=name, message=str(e), kind=resolved.kind, exception=e),
            )
        return DispatchResult(name=name, output=output)

    def _function_params(self) -> dict[str, Any]:
        return {"max_tokens": self._settings.AGENT_MAX_TOKENS}

    async def _search(self, resolved: ResolvedAction, args: dict[str, Any], ctx: DispatchContext) -> str:
        services = self._services
        if services.index_store is None or services.vector_store is None:
            raise ToolExecutionError("Search is not configured")

        index_name = ctx.extra_function_call_params.get("index_name")
        index = await services.index_store.get_index_by_name(index_name) if index_name else None
        if index is None:
            raise ToolExecutionError(f"Index not found: {index_name}")
        if not index.vector_store_provider:
            raise ToolExecutionError("Only vector stores currently support search")

        query = str(args.get("input", ""))
        query_embedding = None
        if index.vector_store_provider not in NATIVE_EMBEDDING_STORES:
            if services.embedding_provider is None:
                raise ToolExecutionError("No embedding provider configured")
            response = await services.embedding_provider.create_embedding(
                EmbeddingRequest(model=index.embedding_model, input=query, input_type="search_query")
            )
            query_embedding = response.embeddings[0]

        hits = await services.vector_store.search(
            index, query, k=self._settings.SEARCH_TOP_K, query_embedding=query_embedding
        )
        return PARA_DELIM.join(hits)

    async def _execute_function(self, resolved: ResolvedAction, args: dict[str, Any], ctx: DispatchContext) -> str:
        if self._services.executions is None:
            raise ToolExecutionError("No executions service configured")
        function: SemanticFunction = resolved.target
        response = await self._services.executions.execute_function(function, args, self._function_params())
        message = response.message
        if message is None:
            raise ToolExecutionError(f"Function {function.name} returned no message")
        if message.function_call:
            return message.function_call.arguments
        return convert_content_type_to_string(message.content)

    async def _execute_composition(self, resolved: ResolvedAction, args: dict[str, Any], ctx: DispatchContext) -> str:
        if self._services.executions is None:
            raise ToolExecutionError("No executions service configured")
        composition: Composition = resolved.target
        return await self._services.executions.execute_composition(composition, args, self._function_params())

    async def _run_sub_agent(self, resolved: ResolvedAction, args: dict[str, Any], ctx: DispatchContext) -> str:
        if self._sub_agent_runner is None:
            raise ToolExecutionError("Sub-agents are not supported here")
        definition: AgentDefinition = resolved.target

        chain = ctx.call_chain or (ctx.agent_name,)
        if definition.name in chain:
            raise AgentRecursionError(f"Agent cycle detected: {' -> '.join((*chain, definition.name))}")
        if ctx.depth + 1 > self._settings.AGENT_MAX_DEPTH:
            raise AgentRecursionError(
                f"Maximum agent depth {self._settings.AGENT_MAX_DEPTH} exceeded calling {definition.name}"
            )

        if "goal" not in args and "input" in args:
            # plain ReAct action input
            args = dict(args)
            args["goal"] = str(args.pop("input"))
        parent = f"{ctx.parent_agent_name} - {ctx.agent_name}" if ctx.parent_agent_name else ctx.agent_name
        return await self._sub_agent_runner(
            definition,
            args,
            callbacks=ctx.callbacks.callbacks,
            parent_agent_name=parent,
            call_chain=(*chain, definition.name),
            depth=ctx.depth + 1,
            extra_function_call_params=ctx.extra_function_call_params,
        )

    async def _call_tool(self, resolved: ResolvedAction, args: dict[str, Any], ctx: DispatchContext) -> str:
        tool: Tool = resolved.target
        if resolved.name == EMAIL_TOOL:
            # Identity comes from the caller, never from model output
            args = {**args, "name": ctx.agent_name, "email": ctx.extra_function_call_params.get("email")}

        errors = validate_tool_arguments(tool.parameters, args)
        if errors:
            raise ToolExecutionError(f"Invalid arguments for {tool.name}: {'; '.join(errors)}")

        result = await tool.execute(**args)
        if not result.success:
            raise ToolExecutionError(result.error or f"Tool {tool.name} failed")
        return result.to_observation()
