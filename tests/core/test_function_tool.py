"""Tests for callable-backed tools and argument validation."""

from typing import Optional

import pytest

from europa_agent.tools import FunctionTool, ToolResult, tool
from europa_agent.tools.base import validate_tool_arguments


class TestFunctionTool:
    def test_schema_from_signature(self):
        def lookup(city: str, days: int, units: Optional[str] = None, tags: list[str] = None) -> str:
            """Look up the weather.

            Longer description that is not shown.
            """
            return city

        t = FunctionTool(lookup)

        assert t.name == "lookup"
        assert t.description == "Look up the weather."
        assert t.parameters["required"] == ["city", "days"]
        assert t.parameters["properties"]["days"]["type"] == "integer"
        assert t.parameters["properties"]["units"]["type"] == "string"
        assert t.parameters["properties"]["tags"]["items"] == {"type": "string"}

    def test_decorator_overrides(self):
        @tool(name="wx", description="Weather")
        def weather(city: str) -> str:
            return city

        descriptor = weather.to_descriptor()

        assert descriptor.name == "wx"
        assert descriptor.description == "Weather"

    @pytest.mark.asyncio
    async def test_result_conversion(self):
        @tool()
        async def data() -> dict:
            return {"a": 1}

        @tool()
        def number() -> int:
            return 42

        @tool()
        def explicit() -> ToolResult:
            return ToolResult(success=False, error="nope")

        assert (await data.execute()).content == '{"a": 1}'
        assert (await number.execute()).content == "42"
        assert (await explicit.execute()).error == "nope"

    @pytest.mark.asyncio
    async def test_exceptions_propagate(self, failing_tool):
        with pytest.raises(RuntimeError, match="tool exploded"):
            await failing_tool.execute(input="x")


class TestValidateToolArguments:
    SCHEMA = {
        "type": "object",
        "properties": {
            "q": {"type": "string"},
            "limit": {"type": "integer"},
            "mode": {"enum": ["fast", "slow"]},
            "tags": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["q"],
    }

    def test_valid(self):
        assert validate_tool_arguments(self.SCHEMA, {"q": "x", "limit": 3, "mode": "fast", "tags": ["a"]}) == []

    def test_errors(self):
        errors = validate_tool_arguments(self.SCHEMA, {"limit": True, "mode": "medium", "tags": ["a", 1]})

        assert "$.q: missing required field" in errors
        assert "$.limit: expected integer, got bool" in errors
        assert "$.mode: value must be one of ['fast', 'slow']" in errors
        assert "$.tags[1]: expected string, got int" in errors

    def test_tool_result_observation(self):
        assert ToolResult(success=True, data=[1, 2]).to_observation() == "[1, 2]"
        assert ToolResult(success=True).to_observation() == ""
