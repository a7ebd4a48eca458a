"""Tests for ReAct output parsing."""

import pytest

from europa_agent.core.exceptions import OutputParserException
from europa_agent.core.output_parser import (
    BOTH_FINAL_AND_ACTION_ERROR,
    MISSING_ACTION_ERROR,
    MISSING_ACTION_INPUT_ERROR,
    ReActOutputParser,
    parse_json_blob,
    parse_numbered_list,
)
from europa_agent.schemas.actions import AgentAction, AgentFinish


@pytest.fixture
def parser():
    return ReActOutputParser()


class TestReActOutputParser:
    def test_action_with_quoted_input(self, parser):
        result = parser.parse('Thought: x\nAction: search\nAction Input: "weather in Paris"')

        assert isinstance(result, AgentAction)
        assert result.action == "search"
        assert result.tool_input == "weather in Paris"

    def test_sql_input_keeps_quotes(self, parser):
        result = parser.parse('Action: sql\nAction Input: SELECT * FROM t WHERE a = "b"')

        assert isinstance(result, AgentAction)
        assert result.tool_input == 'SELECT * FROM t WHERE a = "b"'

    def test_numbered_action_markers(self, parser):
        result = parser.parse("Action 1: lookup\nAction 1 Input: 42")

        assert isinstance(result, AgentAction)
        assert result.action == "lookup"
        assert result.tool_input == "42"

    def test_final_answer(self, parser):
        result = parser.parse("Thought: done\nFinal Answer: 42")

        assert isinstance(result, AgentFinish)
        assert result.output == "42"

    def test_final_answer_and_action_is_retriable(self, parser):
        with pytest.raises(OutputParserException) as exc_info:
            parser.parse("Action: search\nAction Input: q\nFinal Answer: 42")

        assert exc_info.value.send_to_llm is True
        assert exc_info.value.observation == f"{BOTH_FINAL_AND_ACTION_ERROR}: search"

    def test_missing_action_is_retriable(self, parser):
        with pytest.raises(OutputParserException) as exc_info:
            parser.parse("I am just thinking out loud")

        assert exc_info.value.send_to_llm is True
        assert exc_info.value.observation == MISSING_ACTION_ERROR

    def test_missing_action_input_is_retriable(self, parser):
        with pytest.raises(OutputParserException) as exc_info:
            parser.parse("Thought: hmm\nAction: search")

        assert exc_info.value.send_to_llm is True
        assert exc_info.value.observation == MISSING_ACTION_INPUT_ERROR

    def test_observation_required_for_retriable_errors(self):
        with pytest.raises(ValueError):
            OutputParserException("bad", send_to_llm=True)


class TestParseNumberedList:
    def test_plan(self):
        text = "Plan:\n1. Search for the capital\n2. Answer the question\n"

        assert parse_numbered_list(text) == ["Search for the capital", "Answer the question"]

    def test_no_items(self):
        assert parse_numbered_list("nothing to do") == []


class TestParseJsonBlob:
    def test_fenced_block(self):
        blob, rest = parse_json_blob('Thought: go\nAction:\n```json\n{"action": "echo", "action_input": "hi"}\n```')

        assert blob == {"action": "echo", "action_input": "hi"}
        assert rest == "Thought: go\nAction:"

    def test_bare_braces(self):
        blob, _ = parse_json_blob('sure {"action": "Final Answer", "action_input": "4"} done')

        assert blob == {"action": "Final Answer", "action_input": "4"}

    def test_no_json(self):
        assert parse_json_blob("plain text") == (None, "plain text")
