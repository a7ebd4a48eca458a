"""Parsers for model output.

The ReAct text protocol is the contract between stored prompt templates and
the runtime: ``Final Answer:``, ``Action:`` and ``Action Input:`` must be
matched exactly as written here.
"""
import json
import logging
import re
from typing import Any, Optional, Union

from europa_agent.core.exceptions import OutputParserException
from europa_agent.schemas.actions import AgentAction, AgentFinish

logger = logging.getLogger(__name__)

FINAL_ANSWER_ACTION = "Final Answer:"
STOP_SEQUENCES = ["Observation:", "\tObservation:"]

MISSING_ACTION_ERROR = 'Invalid Format: Missing "Action:" after "Thought:"'
MISSING_ACTION_INPUT_ERROR = 'Invalid Format: Missing "Action Input:" after "Thought:"'
BOTH_FINAL_AND_ACTION_ERROR = "Parsing LLM output produced both a final answer and a parseable action"

ACTION_PATTERN = re.compile(
    r"Action\s*\d*\s*:[\s]*(.*?)[\s]*Action\s*\d*\s*Input\s*\d*\s*:[\s]*(.*)", re.DOTALL
)
_ACTION_ONLY = re.compile(r"Action\s*\d*\s*:[\s]*(.*?)", re.DOTALL)
_ACTION_INPUT_ONLY = re.compile(r"[\s]*Action\s*\d*\s*Input\s*\d*\s*:[\s]*(.*)", re.DOTALL)

_NUMBERED_ITEM = re.compile(r"^\s*\d+[.)]\s+(.+?)\s*$", re.MULTILINE)
_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


class ReActOutputParser:
    """Recognizes a final answer or an action in ReAct-formatted text."""

    def parse(self, text: str) -> Union[AgentAction, AgentFinish]:
        """Parse one model turn.

        Raises:
            OutputParserException: ``send_to_llm`` tells whether the error
                should be fed back to the model or abort the run.
        """
        includes_answer = FINAL_ANSWER_ACTION in text
        match = ACTION_PATTERN.search(text)

        if match:
            action = match.group(1).strip()
            if includes_answer:
                raise OutputParserException(
                    f"{BOTH_FINAL_AND_ACTION_ERROR}: {text}",
                    observation=f"{BOTH_FINAL_AND_ACTION_ERROR}: {action}",
                    llm_output=text,
                    send_to_llm=True,
                )
            tool_input = match.group(2).strip()
            # SQL statements keep their quoted literals intact
            if not tool_input.startswith("SELECT "):
                tool_input = tool_input.strip('"')
            return AgentAction(action=action, tool_input=tool_input, log=text)

        if includes_answer:
            output = text.split(FINAL_ANSWER_ACTION)[1].strip()
            return AgentFinish(return_values={"output": output}, log=text)

        raise self.get_parse_error(text)

    @staticmethod
    def get_parse_error(text: str) -> OutputParserException:
        """Classify text that has neither an action nor a final answer."""
        if not _ACTION_ONLY.search(text):
            return OutputParserException(
                f"Could not parse LLM output: {text}",
                observation=MISSING_ACTION_ERROR,
                llm_output=text,
                send_to_llm=True,
            )
        if not _ACTION_INPUT_ONLY.search(text):
            return OutputParserException(
                f"Could not parse LLM output: {text}",
                observation=MISSING_ACTION_INPUT_ERROR,
                llm_output=text,
                send_to_llm=True,
            )
        return OutputParserException(f'Could not parse LLM output: "{text}"', llm_output=text)


def parse_numbered_list(text: str) -> list[str]:
    """Extract the items of a numbered list, e.g. a plan.

    >>> parse_numbered_list("Plan:\\n1. search\\n2. answer")
    ['search', 'answer']
    """
    return [item for item in _NUMBERED_ITEM.findall(text) if item]


def _load_object(candidate: str) -> Optional[dict[str, Any]]:
    try:
        value = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def parse_json_blob(text: str) -> tuple[Optional[dict[str, Any]], str]:
    """Find a JSON object in free text.

    Looks in fenced code blocks first, then at the outermost braces.

    Returns:
        (json object or None, the text with the blob removed)
    """
    for block in _FENCED_BLOCK.finditer(text):
        obj = _load_object(block.group(1).strip())
        if obj is not None:
            rest = (text[: block.start()] + text[block.end():]).strip()
            return obj, rest

    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        obj = _load_object(text[start: end + 1])
        if obj is not None:
            return obj, (text[:start] + text[end + 1:]).strip()

    return None, text
