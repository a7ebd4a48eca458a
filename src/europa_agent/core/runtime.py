"""Builds and runs agents from their definitions.

``AgentRuntime`` is where names are resolved: agent type strings to agent
classes and agent names to definitions. It is also the sub-agent runner
handed to every dispatcher, so nested agents are built the same way as
top-level ones.
"""
import logging
from typing import Any, Callable, Optional

from europa_agent.core.agent import BaseAgent, ReActAgent, SimpleAgent
from europa_agent.core.callbacks import AgentCallback
from europa_agent.core.config import Settings, settings as default_settings
from europa_agent.core.exceptions import AgentError, UnsupportedAgentTypeError
from europa_agent.core.plan_agent import PlanAndExecuteAgent
from europa_agent.core.services import AgentServices
from europa_agent.schemas.agent import AgentDefinition
from europa_agent.schemas.message import PARA_DELIM

logger = logging.getLogger(__name__)

AGENT_CLASSES: dict[str, type[BaseAgent]] = {
    "react": ReActAgent,
    "openai": ReActAgent,
    "simple": SimpleAgent,
    "plan": PlanAndExecuteAgent,
}

CallbackFactory = Callable[[], AgentCallback]


def merge_args(definition: AgentDefinition, args: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    """Call args over definition args; the two goals are concatenated."""
    args = args or {}
    goals = [g for g in (definition.args.get("goal"), args.get("goal")) if g]
    return {**definition.args, **args, "goal": PARA_DELIM.join(goals)}


class AgentRuntime:
    def __init__(
        self,
        services: AgentServices,
        settings: Optional[Settings] = None,
        callbacks: Optional[list[AgentCallback]] = None,
    ) -> None:
        self.services = services
        self.settings = settings or default_settings
        self.callbacks: list[AgentCallback] = list(callbacks or [])

    def create_agent(
        self,
        definition: AgentDefinition,
        *,
        callbacks: Optional[list[AgentCallback]] = None,
        parent_agent_name: Optional[str] = None,
        call_chain: tuple[str, ...] = (),
        depth: int = 0,
    ) -> BaseAgent:
        agent_cls = AGENT_CLASSES.get(definition.agent_type)
        if agent_cls is None:
            raise UnsupportedAgentTypeError(definition.agent_type)
        return agent_cls(
            definition.name,
            self.services,
            model=definition.model,
            model_params=definition.model_params,
            is_chat=definition.is_chat,
            use_functions=definition.use_functions or definition.agent_type == "openai",
            callbacks=callbacks,
            parent_agent_name=parent_agent_name,
            sub_agent_runner=self.run_sub_agent,
            call_chain=call_chain or (definition.name,),
            depth=depth,
            settings=self.settings,
        )

    def extra_function_call_params(
        self, definition: AgentDefinition, email: Optional[str] = None
    ) -> dict[str, Any]:
        return {
            "email": self.settings.EMAIL_OVERRIDE or email,
            "index_name": definition.index_name,
        }

    def get_definition(self, name: str) -> AgentDefinition:
        definition = self.services.agents.get(name)
        if definition is None:
            raise AgentError(f"Agent not found: {name}")
        return definition

    async def run(
        self,
        definition: AgentDefinition,
        args: Optional[dict[str, Any]] = None,
        *,
        callbacks: Optional[list[AgentCallback]] = None,
        callback_factories: Optional[list[CallbackFactory]] = None,
        email: Optional[str] = None,
        elapsed_time: int = 0,
    ) -> str:
        """Run a top-level agent.

        Args:
            definition: Agent to run
            args: Call arguments, typically ``{"goal": ...}``
            callbacks: Observers shared across runs
            callback_factories: Called once per run for observers that keep
                per-run state, such as ``TracingCallback``
            email: Identity passed to the email tool
            elapsed_time: Milliseconds already spent by the caller
        """
        run_callbacks = [
            *self.callbacks,
            *(callbacks or []),
            *(factory() for factory in callback_factories or []),
        ]
        agent = self.create_agent(definition, callbacks=run_callbacks)
        logger.info(f"Running agent {definition.name} ({definition.agent_type})")
        return await agent.run(
            merge_args(definition, args),
            allowed_tools=definition.allowed_tools,
            extra_function_call_params=self.extra_function_call_params(definition, email),
            self_evaluate=definition.self_evaluate,
            elapsed_time=elapsed_time,
        )

    async def run_by_name(self, name: str, args: Optional[dict[str, Any]] = None, **kwargs: Any) -> str:
        return await self.run(self.get_definition(name), args, **kwargs)

    async def run_sub_agent(
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
        agent = self.create_agent(
            definition,
            callbacks=callbacks,
            parent_agent_name=parent_agent_name,
            call_chain=call_chain,
            depth=depth,
        )
        logger.info(f"Running sub-agent {definition.name} for {parent_agent_name} (depth={depth})")
        return await agent.run(
            merge_args(definition, args),
            allowed_tools=definition.allowed_tools,
            extra_function_call_params={
                **extra_function_call_params,
                "index_name": definition.index_name or extra_function_call_params.get("index_name"),
            },
            self_evaluate=definition.self_evaluate,
        )
