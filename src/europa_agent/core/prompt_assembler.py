"""Assembly of canonical prompts into an ordered message list.

The system content of a request is merged from three sources, in order:
the request context (system prompt, additional context, retrieved chunks),
system-role messages found in history or the current turn, and a tool
description block for models that do not call functions natively.
"""
import json
import logging
from typing import Any, Callable, Optional, Sequence, Union

from europa_agent.schemas.message import (
    PARA_DELIM,
    ChatPrompt,
    ChatRequestContext,
    ContentType,
    FunctionDescriptor,
    ImageContent,
    Message,
    TextContent,
    function_message,
    system_message,
)

logger = logging.getLogger(__name__)

ToolsPromptBuilder = Callable[[str, str], list[str]]

OBSERVATION_PREFIX = "Observation:"

SystemParts = Union[list[str], list[Union[TextContent, ImageContent]]]


def is_object_array(content: Any) -> bool:
    """True if ``content`` is a non-empty list of typed content parts."""
    return (
        isinstance(content, list)
        and len(content) > 0
        and isinstance(content[0], (TextContent, ImageContent))
    )


def convert_content_type_to_string(content: Optional[ContentType]) -> str:
    """Flatten message content to text. Non-text parts are dropped."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if not content:
        return ""
    if isinstance(content[0], str):
        return PARA_DELIM.join(content)
    return PARA_DELIM.join(c.text for c in content if isinstance(c, TextContent))


def fill_content(
    template_filler: Callable[[str, dict[str, Any]], str],
    args: dict[str, Any],
    content: ContentType,
) -> ContentType:
    """Apply ``template_filler`` to every text part of ``content``."""
    if isinstance(content, str):
        return template_filler(content, args)
    if not content:
        return content
    if isinstance(content[0], str):
        return [template_filler(c, args) for c in content]
    return [
        c.model_copy(update={"text": template_filler(c.text, args)}) if isinstance(c, TextContent) else c
        for c in content
    ]


def make_observation(content: Optional[ContentType]) -> str:
    text = convert_content_type_to_string(content)
    if text.lstrip().startswith(OBSERVATION_PREFIX):
        return text
    return f"{OBSERVATION_PREFIX} {text}"


def to_schemish(schema: dict[str, Any]) -> str:
    """Render a JSON schema in a compact TypeScript-like notation.

    ``{"type": "object", "properties": {"q": {"type": "string"}}, "required": ["q"]}``
    becomes ``{q: string}``; optional keys get a ``?`` suffix.
    """
    if "enum" in schema:
        return " | ".join(json.dumps(v) for v in schema["enum"])
    schema_type = schema.get("type")
    if schema_type == "object" or "properties" in schema:
        required = set(schema.get("required", []))
        fields = [
            f"{key}{'' if key in required else '?'}: {to_schemish(sub)}"
            for key, sub in schema.get("properties", {}).items()
        ]
        return "{" + ", ".join(fields) + "}"
    if schema_type == "array":
        items = schema.get("items")
        return f"{to_schemish(items) if items else 'any'}[]"
    if isinstance(schema_type, list):
        return " | ".join(str(t) for t in schema_type)
    if schema_type is None:
        raise ValueError(f"cannot render schema without type: {schema}")
    return str(schema_type)


def get_tool_definitions(functions: Sequence[FunctionDescriptor]) -> str:
    """One ``name: description, args: ...`` line per function."""
    lines: list[str] = []
    for f in functions:
        try:
            args = to_schemish(f.parameters)
        except (ValueError, TypeError, AttributeError) as e:
            logger.error(f"Failed to render schema of {f.name}: {e}")
            args = json.dumps(f.parameters)
        lines.append(f"{f.name}: {f.description}, args: {args}")
    return "\n".join(lines)


def get_function_prompts(
    functions: Sequence[FunctionDescriptor],
    tools_prompt_builder: Optional[ToolsPromptBuilder] = None,
) -> list[str]:
    if tools_prompt_builder is None:
        from europa_agent.core.prompt_templates import get_tools_prompt

        tools_prompt_builder = get_tools_prompt
    tool_definitions = get_tool_definitions(functions)
    tool_keys = ", ".join(f.name for f in functions)
    return tools_prompt_builder(tool_definitions, tool_keys)


def get_context_prompt(context: ChatRequestContext) -> SystemParts:
    system_prompt: list[Any] = []
    if context.system_prompt:
        if isinstance(context.system_prompt, str):
            system_prompt = [context.system_prompt]
        else:
            system_prompt = list(context.system_prompt)

    as_objects = is_object_array(system_prompt)

    def add(text: str) -> None:
        system_prompt.append(TextContent(text=text) if as_objects else text)

    if context.additional_context:
        if context.additional_context.content:
            add(context.additional_context.content)
        for chunk in context.additional_context.chunks:
            ctx = chunk.content
            if chunk.citation_metadata:
                sources = [s.uri for s in chunk.citation_metadata.citation_sources if s.uri]
                ctx += f" Sources: [{', '.join(sources)}]"
            add(ctx)

    return system_prompt


def _as_parts(content: ContentType) -> list[Union[TextContent, ImageContent]]:
    if isinstance(content, str):
        return [TextContent(text=content)]
    return [c if isinstance(c, (TextContent, ImageContent)) else TextContent(text=c) for c in content]


def create_system_prompt(
    context: Optional[ChatRequestContext],
    system_messages: Sequence[Message],
    functions: Optional[Sequence[FunctionDescriptor]] = None,
    tools_prompt_builder: Optional[ToolsPromptBuilder] = None,
) -> SystemParts:
    """Merge context, system messages and tool prompts into one part list.

    The result is a list of strings unless any source carries typed parts,
    in which case everything is converted to typed parts.
    """
    system_prompt: list[Any] = list(get_context_prompt(context)) if context else []
    as_objects = is_object_array(system_prompt)

    if system_messages:
        if not as_objects and any(is_object_array(m.content) for m in system_messages):
            system_prompt = [TextContent(text=PARA_DELIM.join(system_prompt))] if system_prompt else []
            as_objects = True
        for m in system_messages:
            if m.content is None:
                continue
            if as_objects:
                system_prompt.extend(_as_parts(m.content))
            elif isinstance(m.content, list):
                system_prompt.extend(m.content)
            else:
                system_prompt.append(m.content)

    if functions:
        prompts = get_function_prompts(functions, tools_prompt_builder)
        if as_objects:
            system_prompt.append(TextContent(text=PARA_DELIM.join(prompts)))
        else:
            system_prompt.extend(prompts)

    return system_prompt


def _partition(messages: Sequence[Message], system: list[Message], rest: list[Message]) -> None:
    for message in messages:
        if message.role == "system":
            system.append(message)
        elif message.role == "function":
            rest.append(function_message(make_observation(message.content), message.name or "function"))
        else:
            rest.append(message)


def create_messages(
    prompt: ChatPrompt,
    functions: Optional[Sequence[FunctionDescriptor]] = None,
    tools_prompt_builder: Optional[ToolsPromptBuilder] = None,
) -> list[Message]:
    """Flatten a canonical prompt into the message list sent to a model.

    Pass ``functions`` only for models without native function calling;
    their descriptions are then rendered into the system message. A system
    message is emitted only when there is system content.
    """
    system_messages: list[Message] = []
    messages: list[Message] = []

    _partition(prompt.history, system_messages, messages)
    for example in prompt.examples:
        messages.append(Message(role="user", content=example.input.content or ""))
        messages.append(Message(role="assistant", content=convert_content_type_to_string(example.output.content)))
    _partition(prompt.messages, system_messages, messages)

    system_prompt = create_system_prompt(prompt.context, system_messages, functions, tools_prompt_builder)
    logger.debug(f"System prompt parts: {len(system_prompt)}")
    if not system_prompt:
        return messages
    if is_object_array(system_prompt):
        return [system_message(system_prompt), *messages]
    return [system_message(PARA_DELIM.join(system_prompt)), *messages]
