"""Agent lifecycle callbacks.

Observers subclass ``AgentCallback`` and override the hooks they care about.
Payload fields default to ``None``; an observer must cope with partial
payloads, e.g. ``AgentEndEvent`` carries either ``response`` or ``errors``.
"""
import logging
from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from europa_agent.schemas.actions import Step
from europa_agent.schemas.agent import PromptTemplate
from europa_agent.schemas.message import ChatRequest, ChatResponse, FunctionCall, Message

logger = logging.getLogger(__name__)


@dataclass
class AgentStartEvent:
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    allowed_tools: list[str] = field(default_factory=list)
    extra_function_call_params: dict[str, Any] = field(default_factory=dict)
    self_evaluate: bool = False
    parent: Optional[str] = None
    agent_type: Optional[str] = None
    depth: int = 0


@dataclass
class AgentEndEvent:
    name: str
    response: Optional[Any] = None
    errors: Optional[list[dict[str, Any]]] = None
    parent: Optional[str] = None


@dataclass
class PromptTemplateStartEvent:
    prompt_set_id: Optional[str] = None
    prompt_set_name: Optional[str] = None
    message_templates: list[PromptTemplate] = field(default_factory=list)
    args: dict[str, Any] = field(default_factory=dict)
    is_batch: bool = False


@dataclass
class PromptTemplateEndEvent:
    messages: Optional[list[Message]] = None
    errors: Optional[list[dict[str, Any]]] = None


@dataclass
class ModelStartEvent:
    request: ChatRequest
    provider: Optional[str] = None
    name: Optional[str] = None
    parent: Optional[str] = None


@dataclass
class ModelEndEvent:
    response: Optional[ChatResponse] = None
    model: Optional[str] = None
    plan: Optional[list[str]] = None
    errors: Optional[list[dict[str, Any]]] = None
    name: Optional[str] = None
    parent: Optional[str] = None


@dataclass
class ParsePlanEvent:
    content: str
    plan: list[str] = field(default_factory=list)


@dataclass
class ExecutePlanStartEvent:
    plan: list[str] = field(default_factory=list)


@dataclass
class ExecutePlanEndEvent:
    response: Optional[str] = None
    steps: list[Step] = field(default_factory=list)


@dataclass
class EvaluateStepStartEvent:
    step: str
    index: int
    request: Optional[ChatRequest] = None


@dataclass
class EvaluateStepEndEvent:
    response: Optional[str] = None


@dataclass
class EvaluateTurnStartEvent:
    index: int
    request: ChatRequest
    name: Optional[str] = None
    parent: Optional[str] = None


@dataclass
class EvaluateTurnEndEvent:
    model: Optional[str] = None
    done: bool = False
    content: Optional[str] = None
    name: Optional[str] = None
    parent: Optional[str] = None


@dataclass
class FunctionCallStartEvent:
    call: FunctionCall
    args: dict[str, Any] = field(default_factory=dict)
    name: Optional[str] = None
    parent: Optional[str] = None


@dataclass
class FunctionCallEndEvent:
    response: str
    name: Optional[str] = None
    parent: Optional[str] = None
    error: Optional[str] = None


@dataclass
class EvaluateResponseStartEvent:
    question: str
    response: str
    request: Optional[ChatRequest] = None


@dataclass
class EvaluateResponseEndEvent:
    valid: bool
    retry: bool = False


class AgentCallback(ABC):
    """Base class of agent observers. Every hook is optional."""

    async def on_agent_start(self, event: AgentStartEvent) -> None:
        pass

    async def on_agent_end(self, event: AgentEndEvent) -> None:
        pass

    async def on_agent_error(self, errors: list[dict[str, Any]]) -> None:
        pass

    async def on_prompt_template_start(self, event: PromptTemplateStartEvent) -> None:
        pass

    async def on_prompt_template_end(self, event: PromptTemplateEndEvent) -> None:
        pass

    async def on_model_start_plan(self, event: ModelStartEvent) -> None:
        pass

    async def on_model_end_plan(self, event: ModelEndEvent) -> None:
        pass

    async def on_parse_plan(self, event: ParsePlanEvent) -> None:
        pass

    async def on_execute_plan_start(self, event: ExecutePlanStartEvent) -> None:
        pass

    async def on_execute_plan_end(self, event: ExecutePlanEndEvent) -> None:
        pass

    async def on_evaluate_step_start(self, event: EvaluateStepStartEvent) -> None:
        pass

    async def on_evaluate_step_end(self, event: EvaluateStepEndEvent) -> None:
        pass

    async def on_evaluate_turn_start(self, event: EvaluateTurnStartEvent) -> None:
        pass

    async def on_evaluate_turn_end(self, event: EvaluateTurnEndEvent) -> None:
        pass

    async def on_function_call_start(self, event: FunctionCallStartEvent) -> None:
        pass

    async def on_function_call_end(self, event: FunctionCallEndEvent) -> None:
        pass

    async def on_observe_model_start(self, event: ModelStartEvent) -> None:
        pass

    async def on_observe_model_end(self, event: ModelEndEvent) -> None:
        pass

    async def on_evaluate_response_start(self, event: EvaluateResponseStartEvent) -> None:
        pass

    async def on_evaluate_response_end(self, event: EvaluateResponseEndEvent) -> None:
        pass


HOOK_NAMES = frozenset(
    name for name in vars(AgentCallback) if name.startswith("on_")
)


class CallbackManager:
    """Ordered fan-out of hooks to callbacks.

    A failing callback is logged and skipped; it never interrupts the agent
    or the callbacks after it.
    """

    def __init__(self, callbacks: Optional[Iterable[AgentCallback]] = None) -> None:
        self._callbacks: list[AgentCallback] = list(callbacks or [])

    @property
    def callbacks(self) -> list[AgentCallback]:
        return list(self._callbacks)

    def add(self, callback: AgentCallback) -> None:
        self._callbacks.append(callback)

    def remove(self, callback: AgentCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def __len__(self) -> int:
        return len(self._callbacks)

    async def trigger(self, hook: str, payload: Any) -> None:
        if hook not in HOOK_NAMES:
            raise ValueError(f"Unknown callback hook: {hook}")
        for callback in self._callbacks:
            try:
                await getattr(callback, hook)(payload)
            except Exception:
                logger.exception(f"Callback {type(callback).__name__}.{hook} failed")
