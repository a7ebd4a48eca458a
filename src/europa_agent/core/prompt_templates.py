"""Prompt template filling and the text tool-calling protocol prompts."""
from typing import Any, Sequence

from jinja2 import Environment, StrictUndefined

from europa_agent.core.prompt_assembler import fill_content
from europa_agent.schemas.agent import PromptTemplate
from europa_agent.schemas.message import Message

_env = Environment(undefined=StrictUndefined, keep_trailing_newline=True, autoescape=False)


def fill_template(text: str, args: dict[str, Any]) -> str:
    """Render a jinja2 template string with ``args``.

    Raises:
        jinja2.UndefinedError: if the template references a missing argument
    """
    return _env.from_string(text).render(**args)


def get_messages(prompts: Sequence[PromptTemplate], args: dict[str, Any]) -> list[Message]:
    """Build messages from a prompt set.

    A template without an explicit role is a system message, except the last
    one, which is the user message.
    """
    messages: list[Message] = []
    last = len(prompts) - 1
    for i, p in enumerate(prompts):
        role = p.role or ("system" if i < last else "user")
        messages.append(Message(role=role, content=fill_content(fill_template, args, p.prompt)))
    return messages


def get_tools_prompt(tool_definitions: str, tool_keys: str) -> list[str]:
    """Tool prompt for the JSON-blob protocol with a final-answer action."""
    return [
        "Respond to the human as helpfully and accurately as possible. "
        "You have access to the following tools:",

        tool_definitions,

        "Use a json blob to specify a tool by providing an action key (tool "
        "name) and an action_input key (tool input).",

        f'Valid "action" values: "Final Answer" or {tool_keys}',

        "Provide only ONE action per $JSON_BLOB, as shown:",

        "```\n"
        "{\n"
        '  "action": $TOOL_NAME,\n'
        '  "action_input": $INPUT\n'
        "}\n"
        "```",

        "Follow this format:",

        "Question: input question to answer\n"
        "Thought: consider previous steps and the current objective\n"
        "Action:\n"
        "```\n"
        "$JSON_BLOB\n"
        "```\n"
        "Observation: action result\n"
        "... (repeat Thought/Action/Observation N times)\n"
        "Thought: I know what to respond\n"
        "Action:\n"
        "```\n"
        "{\n"
        '  "action": "Final Answer",\n'
        '  "action_input": "Final response to human"\n'
        "}\n"
        "```",

        "Begin! Reminder to ALWAYS respond with a valid json blob of a single "
        "action, and to wrap the json blob within triple backticks. Use tools "
        "if necessary. Respond directly if appropriate. "
        "Format is Action:```$JSON_BLOB```then Observation:.\n"
        "Thought:",
    ]


def get_tools_prompt_with_final_answer_marker(tool_definitions: str, tool_keys: str) -> list[str]:
    """Tool prompt for the JSON-blob protocol ending in a ``Final Answer:`` line."""
    return [
        "Answer the following questions as best you can. "
        "You have access to the following tools:",

        tool_definitions,

        "The way you use the tools is by specifying a json blob. Specifically, "
        "this json should have an `action` key (with the name of the tool to "
        "use) and an `action_input` key (with the input to the tool going here).",

        f'The only values that should be in the "action" field are: "Final Answer" or {tool_keys}',

        "The $JSON_BLOB should only contain a SINGLE action. Do NOT return "
        "a list of multiple actions. Here is an example of a valid $JSON_BLOB:",

        "```\n"
        "{\n"
        '  "action": $TOOL_NAME,\n'
        '  "action_input": $INPUT\n'
        "}\n"
        "```",

        "ALWAYS use the following format:",

        "Question: the input question you must answer\n"
        "Thought: you should always think about what to do\n"
        "Action:\n"
        "```\n"
        "$JSON_BLOB\n"
        "```\n"
        "Observation: the result of the action\n"
        "... (this Thought/Action/Observation can repeat N times)\n"
        "Thought: I now know the final answer\n"
        "Final Answer: the final answer to the original input question",

        "Begin! Reminder to always use the exact characters `Final Answer` when responding.\n"
        "Thought:",
    ]
