"""Tests for function dispatch."""

import json
from unittest.mock import AsyncMock

import pytest

from europa_agent.core.callbacks import CallbackManager
from europa_agent.core.dispatcher import (
    ARGUMENT_PARSE_APOLOGY,
    INVALID_TOOL_CALL,
    SEARCH_ACTION,
    ActionKind,
    DispatchContext,
    FunctionDispatcher,
)
from europa_agent.core.exceptions import AgentRecursionError
from europa_agent.core.services import ExecutionsService, InMemoryIndexStore, VectorStore
from europa_agent.schemas.agent import AgentDefinition, Composition, SearchIndex, SemanticFunction
from europa_agent.schemas.message import (
    PARA_DELIM,
    ChatChoice,
    ChatResponse,
    EmbeddingResponse,
    FunctionCall,
    assistant_message,
)
from europa_agent.tools import tool


def make_ctx(recorder=None, **kwargs) -> DispatchContext:
    callbacks = CallbackManager([recorder] if recorder else [])
    return DispatchContext(agent_name=kwargs.pop("agent_name", "outer"), callbacks=callbacks, **kwargs)


class TestResolution:
    def test_only_allowed_names_resolve(self, services, test_settings):
        dispatcher = FunctionDispatcher(services, ["echo"], settings=test_settings)

        assert dispatcher.resolve("echo").kind == ActionKind.TOOL
        assert dispatcher.resolve("broken") is None

    def test_precedence(self, services, test_settings):
        services.register_function(SemanticFunction(name="echo", description="function named echo"))
        dispatcher = FunctionDispatcher(services, ["echo"], settings=test_settings)

        assert dispatcher.resolve("echo").kind == ActionKind.SEMANTIC_FUNCTION

    def test_tools_only_hides_other_kinds(self, services, test_settings):
        services.register_agent(AgentDefinition(name="helper"))
        dispatcher = FunctionDispatcher(services, ["helper", "echo"], settings=test_settings, tools_only=True)

        assert dispatcher.resolve("helper") is None
        assert [f.name for f in dispatcher.get_functions()] == ["echo"]

    def test_get_functions_skips_unregistered(self, services, test_settings):
        services.register_agent(AgentDefinition(name="helper", description="Helps"))
        dispatcher = FunctionDispatcher(services, [SEARCH_ACTION, "helper", "nope"], settings=test_settings)

        functions = dispatcher.get_functions()

        assert [f.name for f in functions] == [SEARCH_ACTION, "helper"]
        assert functions[1].parameters["required"] == ["goal"]

    def test_no_functions_is_none(self, services, test_settings):
        assert FunctionDispatcher(services, [], settings=test_settings).get_functions() is None


class TestCallFunction:
    @pytest.mark.asyncio
    async def test_tool_success(self, services, test_settings, recorder):
        dispatcher = FunctionDispatcher(services, ["echo"], settings=test_settings)

        result = await dispatcher.call_function(FunctionCall(name="echo", arguments='{"input": "hi"}'), make_ctx(recorder))

        assert result == "echo: hi"
        assert recorder.hooks() == ["on_function_call_start", "on_function_call_end"]
        assert recorder.payloads("on_function_call_end")[0].response == "echo: hi"

    @pytest.mark.asyncio
    async def test_tool_exception_is_invalid_tool_call(self, services, test_settings, recorder):
        dispatcher = FunctionDispatcher(services, ["broken"], settings=test_settings)

        result = await dispatcher.call_function(FunctionCall(name="broken", arguments='{"input": "x"}'), make_ctx(recorder))

        assert result == INVALID_TOOL_CALL
        end = recorder.payloads("on_function_call_end")[0]
        assert end.response == INVALID_TOOL_CALL
        assert end.error == "tool exploded"

    @pytest.mark.asyncio
    async def test_unknown_action_is_invalid_tool_call(self, services, test_settings):
        dispatcher = FunctionDispatcher(services, ["echo"], settings=test_settings)

        result = await dispatcher.dispatch("nope", {}, make_ctx())

        assert not result.ok
        assert result.observation == INVALID_TOOL_CALL
        assert "nope" in result.failure.message

    @pytest.mark.asyncio
    async def test_bad_json_arguments(self, services, test_settings, recorder):
        dispatcher = FunctionDispatcher(services, ["echo"], settings=test_settings)

        result = await dispatcher.call_function(FunctionCall(name="echo", arguments="{not json"), make_ctx(recorder))

        assert result == ARGUMENT_PARSE_APOLOGY
        assert recorder.calls == []

    @pytest.mark.asyncio
    async def test_scalar_arguments_are_wrapped(self, services, test_settings):
        dispatcher = FunctionDispatcher(services, ["echo"], settings=test_settings)

        result = await dispatcher.call_function(FunctionCall(name="echo", arguments='"hi"'), make_ctx())

        assert result == "echo: hi"

    @pytest.mark.asyncio
    async def test_invalid_arguments_fail_validation(self, services, test_settings):
        dispatcher = FunctionDispatcher(services, ["echo"], settings=test_settings)

        result = await dispatcher.dispatch("echo", {"input": 3}, make_ctx())

        assert not result.ok
        assert "expected string" in result.failure.message

    @pytest.mark.asyncio
    async def test_email_identity_is_injected(self, services, test_settings):
        received = {}

        @tool(name="email", description="Send an email")
        def send_email(subject: str, name: str = "", email: str = "") -> str:
            received.update(subject=subject, name=name, email=email)
            return "sent"

        services.register_tool(send_email)
        dispatcher = FunctionDispatcher(services, ["email"], settings=test_settings)
        ctx = make_ctx(agent_name="mailer", extra_function_call_params={"email": "me@example.com"})

        result = await dispatcher.call_function(
            FunctionCall(name="email", arguments=json.dumps({"subject": "hi", "email": "evil@example.com"})), ctx
        )

        assert result == "sent"
        assert received == {"subject": "hi", "name": "mailer", "email": "me@example.com"}


class FakeVectorStore(VectorStore):
    def __init__(self):
        self.calls = []

    async def search(self, index, query, k, query_embedding=None):
        self.calls.append((index.name, query, k, query_embedding))
        return ["first hit", "second hit"]


class TestSearch:
    @pytest.mark.asyncio
    async def test_search_embeds_query(self, services, test_settings):
        services.index_store = InMemoryIndexStore(
            [SearchIndex(name="docs", vector_store_provider="chroma", embedding_model="embed-small")]
        )
        services.vector_store = FakeVectorStore()
        services.embedding_provider = AsyncMock()
        services.embedding_provider.create_embedding.return_value = EmbeddingResponse(embeddings=[[0.1, 0.2]])
        dispatcher = FunctionDispatcher(services, [SEARCH_ACTION], settings=test_settings)

        result = await dispatcher.dispatch(
            SEARCH_ACTION, {"input": "paris"}, make_ctx(extra_function_call_params={"index_name": "docs"})
        )

        assert result.output == f"first hit{PARA_DELIM}second hit"
        assert services.vector_store.calls == [("docs", "paris", test_settings.SEARCH_TOP_K, [0.1, 0.2])]
        request = services.embedding_provider.create_embedding.call_args.args[0]
        assert request.model == "embed-small"
        assert request.input_type == "search_query"

    @pytest.mark.asyncio
    async def test_native_store_skips_embedding(self, services, test_settings):
        services.index_store = InMemoryIndexStore([SearchIndex(name="docs", vector_store_provider="redis")])
        services.vector_store = FakeVectorStore()
        services.embedding_provider = AsyncMock()
        dispatcher = FunctionDispatcher(services, [SEARCH_ACTION], settings=test_settings)

        await dispatcher.dispatch(SEARCH_ACTION, {"input": "q"}, make_ctx(extra_function_call_params={"index_name": "docs"}))

        services.embedding_provider.create_embedding.assert_not_called()
        assert services.vector_store.calls[0][3] is None

    @pytest.mark.asyncio
    async def test_missing_index_fails(self, services, test_settings):
        services.index_store = InMemoryIndexStore()
        services.vector_store = FakeVectorStore()
        dispatcher = FunctionDispatcher(services, [SEARCH_ACTION], settings=test_settings)

        result = await dispatcher.dispatch(SEARCH_ACTION, {"input": "q"}, make_ctx())

        assert result.observation == INVALID_TOOL_CALL


class FakeExecutions(ExecutionsService):
    async def execute_function(self, function, args, model_params):
        if function.name == "extract":
            message = assistant_message(None, function_call=FunctionCall(name="extract", arguments='{"city": "Paris"}'))
        else:
            message = assistant_message(f"summary of {args['text']}")
        return ChatResponse(choices=[ChatChoice(message=message)])

    async def execute_composition(self, composition, args, model_params):
        return f"{composition.name} ran with max_tokens={model_params['max_tokens']}"


class TestExecutions:
    @pytest.mark.asyncio
    async def test_semantic_function_text(self, services, test_settings):
        services.executions = FakeExecutions()
        services.register_function(SemanticFunction(name="summarize"))
        dispatcher = FunctionDispatcher(services, ["summarize"], settings=test_settings)

        result = await dispatcher.dispatch("summarize", {"text": "a book"}, make_ctx())

        assert result.output == "summary of a book"

    @pytest.mark.asyncio
    async def test_semantic_function_call_arguments(self, services, test_settings):
        services.executions = FakeExecutions()
        services.register_function(SemanticFunction(name="extract"))
        dispatcher = FunctionDispatcher(services, ["extract"], settings=test_settings)

        result = await dispatcher.dispatch("extract", {}, make_ctx())

        assert result.output == '{"city": "Paris"}'

    @pytest.mark.asyncio
    async def test_composition(self, services, test_settings):
        services.executions = FakeExecutions()
        services.register_composition(Composition(name="pipeline"))
        dispatcher = FunctionDispatcher(services, ["pipeline"], settings=test_settings)

        result = await dispatcher.dispatch("pipeline", {}, make_ctx())

        assert result.output == f"pipeline ran with max_tokens={test_settings.AGENT_MAX_TOKENS}"


class TestSubAgents:
    @pytest.mark.asyncio
    async def test_parent_name_chain(self, services, test_settings):
        services.register_agent(AgentDefinition(name="child"))
        runner = AsyncMock(return_value="child answer")
        dispatcher = FunctionDispatcher(services, ["child"], sub_agent_runner=runner, settings=test_settings)
        ctx = make_ctx(agent_name="middle", parent_agent_name="root", call_chain=("root", "middle"), depth=1)

        result = await dispatcher.dispatch("child", {"goal": "do it"}, ctx)

        assert result.output == "child answer"
        kwargs = runner.call_args.kwargs
        assert kwargs["parent_agent_name"] == "root - middle"
        assert kwargs["call_chain"] == ("root", "middle", "child")
        assert kwargs["depth"] == 2

    @pytest.mark.asyncio
    async def test_input_becomes_goal(self, services, test_settings):
        services.register_agent(AgentDefinition(name="child"))
        runner = AsyncMock(return_value="ok")
        dispatcher = FunctionDispatcher(services, ["child"], sub_agent_runner=runner, settings=test_settings)

        await dispatcher.dispatch("child", {"input": "find the capital"}, make_ctx())
        await dispatcher.dispatch("child", {"goal": "kept", "input": "ignored"}, make_ctx())

        first, second = runner.call_args_list
        assert first.args[1] == {"goal": "find the capital"}
        assert second.args[1] == {"goal": "kept", "input": "ignored"}

    @pytest.mark.asyncio
    async def test_top_level_parent_is_agent_name(self, services, test_settings):
        services.register_agent(AgentDefinition(name="child"))
        runner = AsyncMock(return_value="ok")
        dispatcher = FunctionDispatcher(services, ["child"], sub_agent_runner=runner, settings=test_settings)

        await dispatcher.dispatch("child", {"goal": "x"}, make_ctx(agent_name="root"))

        assert runner.call_args.kwargs["parent_agent_name"] == "root"

    @pytest.mark.asyncio
    async def test_cycle_is_rejected(self, services, test_settings):
        services.register_agent(AgentDefinition(name="root"))
        runner = AsyncMock()
        dispatcher = FunctionDispatcher(services, ["root"], sub_agent_runner=runner, settings=test_settings)

        result = await dispatcher.dispatch("root", {"goal": "again"}, make_ctx(agent_name="root"))

        assert result.observation == INVALID_TOOL_CALL
        assert isinstance(result.failure.exception, AgentRecursionError)
        runner.assert_not_called()

    @pytest.mark.asyncio
    async def test_depth_limit(self, services, test_settings):
        services.register_agent(AgentDefinition(name="deep"))
        runner = AsyncMock()
        dispatcher = FunctionDispatcher(services, ["deep"], sub_agent_runner=runner, settings=test_settings)
        ctx = make_ctx(agent_name="a3", call_chain=("a1", "a2", "a3"), depth=test_settings.AGENT_MAX_DEPTH)

        result = await dispatcher.dispatch("deep", {"goal": "x"}, ctx)

        assert isinstance(result.failure.exception, AgentRecursionError)
        runner.assert_not_called()
