"""Span-tree tracing of agent runs.

``Tracer`` builds a tree of spans with a push/down/up discipline:
``push`` appends a span to the current scope, ``down`` opens the children of
the last pushed span as the new scope, ``up`` returns to the enclosing
scope. ``TracingCallback`` drives a tracer from agent hooks and hands the
closed tree to a ``TraceStore``.
"""
import dataclasses
import json
import logging
import time
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel

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

logger = logging.getLogger(__name__)


class TracerError(Exception):
    """Unbalanced or out-of-scope tracer operation."""


class Tracer:
    def __init__(self, name: str, trace_type: str = "agent") -> None:
        self.name = name
        self.trace_type = trace_type
        self.trace: list[dict[str, Any]] = []
        self._stack: list[list[dict[str, Any]]] = [self.trace]

    @property
    def depth(self) -> int:
        """Number of scopes opened by ``down`` and not yet closed."""
        return len(self._stack) - 1

    @property
    def current_step(self) -> Optional[dict[str, Any]]:
        scope = self._stack[-1]
        return scope[-1] if scope else None

    def push(self, step: dict[str, Any]) -> "Tracer":
        self._stack[-1].append(step)
        return self

    def add_property(self, key: str, value: Any) -> "Tracer":
        step = self.current_step
        if step is None:
            raise TracerError(f"add_property('{key}') on an empty scope")
        step[key] = value
        return self

    def add_parent_property(self, key: str, value: Any) -> "Tracer":
        if len(self._stack) < 2 or not self._stack[-2]:
            raise TracerError(f"add_parent_property('{key}') at the root scope")
        self._stack[-2][-1][key] = value
        return self

    def down(self) -> "Tracer":
        step = self.current_step
        if step is None:
            raise TracerError("down() requires a pushed step")
        step["children"] = []
        self._stack.append(step["children"])
        return self

    def up(self) -> "Tracer":
        if len(self._stack) == 1:
            raise TracerError("up() without a matching down()")
        self._stack.pop()
        return self

    def close(self) -> dict[str, Any]:
        if self.depth != 0:
            raise TracerError(f"close() with {self.depth} unclosed scope(s)")
        return {"name": self.name, "trace_type": self.trace_type, "trace": self.trace}


def to_jsonable(value: Any) -> Any:
    """Convert pydantic models and dataclasses nested in ``value`` to plain data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def _now_ms() -> int:
    return int(time.time() * 1000)


class TraceStore(ABC):
    """Destination of closed traces."""

    @abstractmethod
    async def upsert_trace(self, record: dict[str, Any]) -> None:
        ...


class FileTraceStore(TraceStore):
    """Writes each trace to its own JSON file."""

    def __init__(self, log_dir: Optional[str] = None) -> None:
        self.log_dir = Path(log_dir) if log_dir else Path.home() / ".europa-agent" / "traces"
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.last_path: Optional[Path] = None

    async def upsert_trace(self, record: dict[str, Any]) -> None:
        trace_id = record.get("id") or str(uuid.uuid4())[:8]
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = self.log_dir / f"trace_{record.get('trace_type', 'agent')}_{timestamp}_{trace_id}.json"
        path.write_text(json.dumps(record, ensure_ascii=False, indent=2, default=str), encoding="utf-8")
        self.last_path = path
        logger.info(f"Trace saved: {path}")


def create_trace_store(settings: Any) -> Optional[TraceStore]:
    """Trace store selected by ``TRACE_BACKEND``."""
    if settings.TRACE_BACKEND == "none":
        return None
    if settings.TRACE_BACKEND == "langfuse":
        from europa_agent.core.langfuse_tracing import LangfuseTraceStore

        return LangfuseTraceStore.from_settings(settings)
    return FileTraceStore(settings.TRACE_DIR or None)


class TracingCallback(AgentCallback):
    """Records one agent run, including nested sub-agents, as a span tree.

    Holds the tracer stack of a single run: create a new instance per run.
    """

    def __init__(
        self,
        trace_store: Optional[TraceStore] = None,
        workspace_id: Optional[str] = None,
        username: Optional[str] = None,
    ) -> None:
        self.trace_store = trace_store
        self.workspace_id = workspace_id
        self.username = username
        self.tracer: Optional[Tracer] = None
        self.last_trace: Optional[dict[str, Any]] = None
        # tracer depth to restore when each open agent span ends
        self._agent_depths: list[int] = []

    def _push(self, step_type: str, down: bool = False, **fields: Any) -> None:
        if self.tracer is None:
            logger.debug(f"Ignoring '{step_type}' span outside of an agent run")
            return
        self.tracer.push({"id": str(uuid.uuid4()), "type": step_type, **to_jsonable(fields), "start_time": _now_ms()})
        if down:
            self.tracer.down()

    def _finish(self, up: bool = False, errors: Any = None, **fields: Any) -> None:
        if self.tracer is None:
            return
        if up:
            self.tracer.up()
        step = self.tracer.current_step
        if step is None:
            return
        end_time = _now_ms()
        self.tracer.add_property("end_time", end_time)
        self.tracer.add_property("elapsed_millis", end_time - step.get("start_time", end_time))
        if errors:
            self.tracer.add_property("errors", to_jsonable(errors)).add_property("success", False)
        else:
            for key, value in fields.items():
                self.tracer.add_property(key, to_jsonable(value))
            self.tracer.add_property("success", True)

    async def on_agent_start(self, event: AgentStartEvent) -> None:
        if self.tracer is None:
            started = datetime.now(timezone.utc).isoformat()
            self.tracer = Tracer(f"{event.name} - {started}", "agent")
        self._agent_depths.append(self.tracer.depth)
        self._push(
            f"{event.agent_type or 'react'} agent",
            down=True,
            agent_name=event.name,
            parent=event.parent,
            args=event.args,
            allowed_tools=event.allowed_tools,
            extra_function_call_params=event.extra_function_call_params,
            self_evaluate=event.self_evaluate,
        )

    async def on_agent_end(self, event: AgentEndEvent) -> None:
        if self.tracer is None or not self._agent_depths:
            return
        depth = self._agent_depths.pop()
        # a failed run may leave inner scopes open
        while self.tracer.depth > depth + 1:
            self.tracer.up()
        self._finish(up=True, errors=event.errors, response=event.response)

        if self._agent_depths:
            return
        record = self.tracer.close()
        record.update({"workspace_id": self.workspace_id, "username": self.username})
        self.last_trace = record
        self.tracer = None
        if self.trace_store is not None:
            await self.trace_store.upsert_trace(record)

    async def on_agent_error(self, errors: list[dict[str, Any]]) -> None:
        if self.tracer is not None:
            self.tracer.push({"id": str(uuid.uuid4()), "type": "error", "errors": to_jsonable(errors)})

    async def on_prompt_template_start(self, event: PromptTemplateStartEvent) -> None:
        self._push(
            "call-prompt-template",
            prompt_set_id=event.prompt_set_id,
            prompt_set_name=event.prompt_set_name,
            message_templates=event.message_templates,
            args=event.args,
            is_batch=event.is_batch,
        )

    async def on_prompt_template_end(self, event: PromptTemplateEndEvent) -> None:
        self._finish(errors=event.errors, messages=event.messages)

    async def on_model_start_plan(self, event: ModelStartEvent) -> None:
        self._push("call-model: plan", down=True, request=event.request)

    async def on_model_end_plan(self, event: ModelEndEvent) -> None:
        self._finish(up=True, errors=event.errors, plan=event.plan)

    async def on_parse_plan(self, event: ParsePlanEvent) -> None:
        self._push("parse-plan", content=event.content, plan=event.plan)

    async def on_execute_plan_start(self, event: ExecutePlanStartEvent) -> None:
        self._push("execute-plan", down=True, plan=event.plan)

    async def on_execute_plan_end(self, event: ExecutePlanEndEvent) -> None:
        self._finish(up=True, response=event.response)

    async def on_evaluate_step_start(self, event: EvaluateStepStartEvent) -> None:
        self._push("evaluate-step", down=True, step=event.step, index=event.index, request=event.request)

    async def on_evaluate_step_end(self, event: EvaluateStepEndEvent) -> None:
        self._finish(up=True, response=event.response)

    async def on_evaluate_turn_start(self, event: EvaluateTurnStartEvent) -> None:
        self._push("evaluate-turn", down=True, index=event.index, request=event.request)

    async def on_evaluate_turn_end(self, event: EvaluateTurnEndEvent) -> None:
        self._finish(up=True, done=event.done, content=event.content)

    async def on_function_call_start(self, event: FunctionCallStartEvent) -> None:
        # sub-agent runs nest under the call
        self._push("call-tool", down=True, call=event.call, args=event.args)

    async def on_function_call_end(self, event: FunctionCallEndEvent) -> None:
        self._finish(up=True, response=event.response, error=event.error)

    async def on_observe_model_start(self, event: ModelStartEvent) -> None:
        self._push("call-model: observe", down=True, request=event.request)

    async def on_observe_model_end(self, event: ModelEndEvent) -> None:
        self._finish(up=True, errors=event.errors, response=event.response)

    async def on_evaluate_response_start(self, event: EvaluateResponseStartEvent) -> None:
        self._push(
            "evaluate-response", question=event.question, response=event.response, request=event.request
        )

    async def on_evaluate_response_end(self, event: EvaluateResponseEndEvent) -> None:
        self._finish(valid=event.valid, retry=event.retry)
