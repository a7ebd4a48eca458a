"""Tests for the command line entry point."""

from unittest.mock import patch

import pytest

from europa_agent.cli.display import Colors, format_event
from europa_agent.cli.main import load_agent_file, load_tools, parse_args, run_agent_cli
from europa_agent.core.agent_events import AgentEvent, EventType
from europa_agent.core.exceptions import AgentError, RetryExhaustedError

AGENT_YAML = """
name: researcher
agent_type: plan
allowed_tools: [searchIndex, summarizer]
args:
  goal: Cite your sources.
agents:
  - name: summarizer
    description: Summarizes text
    agent_type: simple
"""


class TestParseArgs:
    def test_run_command(self):
        args = parse_args(["run", "-a", "agent.yaml", "-g", "why?", "--tools", "a", "--tools", "b", "-q"])

        assert args.command == "run"
        assert args.agent == "agent.yaml"
        assert args.goal == "why?"
        assert args.tools == ["a", "b"]
        assert args.quiet is True
        assert args.debug is False

    def test_goal_is_required(self):
        with pytest.raises(SystemExit):
            parse_args(["run", "-a", "agent.yaml"])


class TestLoading:
    def test_load_agent_file(self, tmp_path):
        path = tmp_path / "agent.yaml"
        path.write_text(AGENT_YAML)

        definition, sub_agents = load_agent_file(str(path))

        assert definition.name == "researcher"
        assert definition.agent_type == "plan"
        assert definition.args == {"goal": "Cite your sources."}
        assert [(d.name, d.agent_type) for d in sub_agents] == [("summarizer", "simple")]

    def test_load_tools_collects_tool_objects(self):
        tools = load_tools(["europa_agent.tools"])

        # the package exports classes, not instances
        assert tools == []


class TestRunAgentCli:
    @pytest.mark.asyncio
    async def test_missing_agent_file(self, tmp_path, capsys):
        args = parse_args(["run", "-a", str(tmp_path / "missing.yaml"), "-g", "x"])

        assert await run_agent_cli(args) == 2
        assert "Error:" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_quiet_run_prints_answer(self, tmp_path, test_settings, capsys):
        path = tmp_path / "agent.yaml"
        path.write_text("name: solo\n")
        args = parse_args(["run", "-a", str(path), "-g", "x", "-q"])

        with patch("europa_agent.cli.main.settings", test_settings), patch(
            "europa_agent.core.runtime.AgentRuntime.run", return_value="forty-two"
        ) as run:
            code = await run_agent_cli(args)

        assert code == 0
        assert capsys.readouterr().out.strip() == "forty-two"
        assert run.await_args.kwargs["email"] is None

    @pytest.mark.asyncio
    async def test_agent_error_exit_code(self, tmp_path, test_settings):
        path = tmp_path / "agent.yaml"
        path.write_text("name: solo\n")
        args = parse_args(["run", "-a", str(path), "-g", "x", "-q"])

        with patch("europa_agent.cli.main.settings", test_settings), patch(
            "europa_agent.core.runtime.AgentRuntime.run", side_effect=AgentError("Prompt not found")
        ):
            assert await run_agent_cli(args) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error, message",
        [
            (RetryExhaustedError(ConnectionError("reset"), 3), "Retry failed after 3 attempts: reset"),
            (RuntimeError("provider down"), "RuntimeError: provider down"),
        ],
    )
    async def test_model_errors_exit_code(self, tmp_path, test_settings, capsys, error, message):
        path = tmp_path / "agent.yaml"
        path.write_text("name: solo\n")
        args = parse_args(["run", "-a", str(path), "-g", "x", "-q"])

        with patch("europa_agent.cli.main.settings", test_settings), patch(
            "europa_agent.core.runtime.AgentRuntime.run", side_effect=error
        ):
            assert await run_agent_cli(args) == 1

        assert message in capsys.readouterr().out


def test_format_event_indents_sub_agents():
    event = AgentEvent(type=EventType.TOOL_RESULT, data={"message": "x" * 600, "agent": "helper", "depth": 1})

    line = format_event(event)

    assert line.startswith(f"  {Colors.DIM}[helper]")
    assert "x" * 500 + "..." in line
    assert "x" * 501 not in line
