"""Pytest configuration and fixtures."""

import json
from typing import Any, Union

import pytest

from europa_agent.core.callbacks import AgentCallback
from europa_agent.core.config import Settings
from europa_agent.core.services import AgentServices, ChatProvider
from europa_agent.schemas.message import (
    ChatChoice,
    ChatRequest,
    ChatResponse,
    FunctionCall,
    Message,
    assistant_message,
)
from europa_agent.tools import tool

Reply = Union[str, Message, ChatResponse, Exception]


def function_call_reply(name: str, arguments: Any = None, content: str | None = None) -> Message:
    """Assistant message requesting a function call."""
    return assistant_message(
        content,
        function_call=FunctionCall(name=name, arguments=json.dumps(arguments if arguments is not None else {})),
    )


class ScriptedChatProvider(ChatProvider):
    """Chat provider that returns queued replies in order and records requests."""

    def __init__(self, replies: list[Reply] | None = None) -> None:
        self.replies: list[Reply] = list(replies or [])
        self.requests: list[ChatRequest] = []

    def queue(self, *replies: Reply) -> None:
        self.replies.extend(replies)

    async def chat(self, request: ChatRequest) -> ChatResponse:
        self.requests.append(request)
        if not self.replies:
            raise AssertionError("ScriptedChatProvider ran out of replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, ChatResponse):
            return reply
        message = reply if isinstance(reply, Message) else assistant_message(reply)
        return ChatResponse(model=request.model, choices=[ChatChoice(message=message)])


class RecordingCallback(AgentCallback):
    """Records every hook call as ``(hook, payload)``."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []

    def __getattribute__(self, name: str) -> Any:
        if name.startswith("on_"):
            async def record(payload: Any) -> None:
                self.calls.append((name, payload))

            return record
        return super().__getattribute__(name)

    def hooks(self) -> list[str]:
        return [hook for hook, _ in self.calls]

    def payloads(self, hook: str) -> list[Any]:
        return [payload for name, payload in self.calls if name == hook]


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        _env_file=None,
        LLM_API_KEY="test-api-key",
        LLM_MODEL="openai/gpt-4o-mini",
        LLM_MAX_RETRIES=0,
        AGENT_MAX_ITERATIONS=6,
        AGENT_MAX_EXECUTION_TIME_MS=30000,
        AGENT_MAX_DEPTH=3,
        TRACE_BACKEND="none",
        EMAIL_OVERRIDE="",
    )


@pytest.fixture
def chat_provider() -> ScriptedChatProvider:
    return ScriptedChatProvider()


@pytest.fixture
def echo_tool():
    @tool(description="Echo the input back")
    def echo(input: str) -> str:
        return f"echo: {input}"

    return echo


@pytest.fixture
def failing_tool():
    @tool(description="Always fails")
    def broken(input: str) -> str:
        raise RuntimeError("tool exploded")

    return broken


@pytest.fixture
def services(chat_provider, echo_tool, failing_tool) -> AgentServices:
    services = AgentServices(chat_provider=chat_provider)
    services.register_tool(echo_tool)
    services.register_tool(failing_tool)
    return services


@pytest.fixture
def recorder() -> RecordingCallback:
    return RecordingCallback()


@pytest.fixture
def call_reply():
    """Factory for assistant messages requesting a function call."""
    return function_call_reply
