"""Chat provider on top of LiteLLM.

Supports 100+ providers through LiteLLM's unified ``provider/model`` names.
Models with native function calling get the function catalog as ``tools``.
For other models the catalog is rendered into the system prompt as a JSON
blob protocol, and the action blob in the reply is turned back into a
function call.
"""
import json
import logging
import re
from typing import Any, Optional

import litellm

from europa_agent.core.config import Settings, settings as default_settings
from europa_agent.core.output_parser import parse_json_blob
from europa_agent.core.prompt_assembler import ToolsPromptBuilder, convert_content_type_to_string, create_messages
from europa_agent.core.retry import RetryConfig, async_retry
from europa_agent.core.services import ChatProvider
from europa_agent.schemas.message import (
    PARA_DELIM,
    ChatChoice,
    ChatRequest,
    ChatResponse,
    FunctionCall,
    ImageContent,
    Message,
    TextContent,
    Usage,
)

logger = logging.getLogger(__name__)

FINAL_ANSWER_BLOB_ACTION = "Final Answer"
NO_RESPONSE = "No response from model"
_CITATIONS = re.compile(r"\s*Citations:\s*")


def to_openai_message(message: Message) -> dict[str, Any]:
    """Convert a canonical message to the OpenAI chat format."""
    if message.role == "function":
        # create_messages already prefixed the observation
        return {"role": "user", "content": convert_content_type_to_string(message.content)}

    content = message.content
    if isinstance(content, list) and content and not isinstance(content[0], str):
        parts: list[dict[str, Any]] = []
        for part in content:
            if isinstance(part, TextContent):
                parts.append({"type": "text", "text": part.text})
            elif isinstance(part, ImageContent):
                parts.append({"type": "image_url", "image_url": part.image_url.model_dump(exclude_none=True)})
        return {"role": message.role, "content": parts}

    text = convert_content_type_to_string(content)
    if message.role == "assistant" and message.function_call is not None:
        call = message.function_call
        try:
            action_input = json.loads(call.arguments or "{}")
        except json.JSONDecodeError:
            action_input = call.arguments
        blob = json.dumps({"action": call.name, "action_input": action_input}, indent=2)
        text = f"{text}{PARA_DELIM if text else ''}Action:\n```\n{blob}\n```"
    return {"role": message.role, "content": text}


def _tool_choice(function_call: Any) -> Any:
    if isinstance(function_call, dict):
        return {"type": "function", "function": {"name": function_call["name"]}}
    return function_call


class LLMClient(ChatProvider):
    """LiteLLM-backed ``ChatProvider``."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        retry_config: Optional[RetryConfig] = None,
        settings: Optional[Settings] = None,
        tools_prompt_builder: Optional[ToolsPromptBuilder] = None,
    ) -> None:
        self.settings = settings or default_settings
        # renders functions for models without native function calling
        self.tools_prompt_builder = tools_prompt_builder
        self.api_key = api_key if api_key is not None else self.settings.LLM_API_KEY
        self.api_base = api_base if api_base is not None else self.settings.LLM_API_BASE
        self.retry_config = retry_config or RetryConfig.from_settings(self.settings)
        self._completion = async_retry(self.retry_config, on_retry=self._log_retry)(self._acompletion)

    @staticmethod
    def _log_retry(attempt: int, error: Exception) -> None:
        logger.warning(f"LLM call failed (attempt {attempt}): {error}")

    @staticmethod
    def supports_native_functions(model: str) -> bool:
        try:
            return bool(litellm.supports_function_calling(model=model))
        except Exception as e:
            # unmapped models raise instead of returning False
            logger.debug(f"Function calling support unknown for {model}: {e}")
            return False

    async def _acompletion(self, **params: Any) -> Any:
        return await litellm.acompletion(**params)

    def build_params(self, request: ChatRequest) -> tuple[dict[str, Any], bool]:
        """LiteLLM call parameters, and whether native tools are used."""
        native = bool(request.functions) and self.supports_native_functions(request.model)
        messages = create_messages(
            request.prompt, None if native else request.functions, self.tools_prompt_builder
        )

        params: dict[str, Any] = {
            "model": request.model,
            "messages": [to_openai_message(m) for m in messages],
            **request.model_params.model_dump(exclude_none=True),
        }
        if native:
            params["tools"] = [
                {"type": "function", "function": f.model_dump(exclude_none=True)} for f in request.functions or []
            ]
            if request.function_call is not None:
                params["tool_choice"] = _tool_choice(request.function_call)
        if request.user:
            params["user"] = request.user
        if self.api_key:
            params["api_key"] = self.api_key
        if self.api_base:
            params["api_base"] = self.api_base
        return params, native

    async def chat(self, request: ChatRequest) -> ChatResponse:
        params, native = self.build_params(request)
        logger.debug(f"LLM request: model={request.model} messages={len(params['messages'])} native_tools={native}")
        response = await self._completion(**params)
        return self.to_chat_response(response, native=native, functions_offered=bool(request.functions))

    @classmethod
    def to_chat_response(cls, response: Any, native: bool = False, functions_offered: bool = False) -> ChatResponse:
        """Convert a LiteLLM (OpenAI-format) response to the canonical shape."""
        usage = getattr(response, "usage", None)
        result = ChatResponse(
            id=getattr(response, "id", None),
            created=getattr(response, "created", None),
            model=getattr(response, "model", None),
            usage=Usage(
                prompt_tokens=usage.prompt_tokens or 0,
                completion_tokens=usage.completion_tokens or 0,
                total_tokens=usage.total_tokens or 0,
            ) if usage else None,
        )

        if not response.choices:
            result.choices.append(ChatChoice(message=Message(role="assistant", content=NO_RESPONSE, final=True)))
            return result

        for index, choice in enumerate(response.choices):
            raw = choice.message
            text = raw.content or ""
            if native:
                message = cls._from_native(raw, text)
            elif functions_offered:
                message = cls._from_json_blob(text)
            else:
                message = Message(role="assistant", content=text)
            result.choices.append(ChatChoice(index=index, message=message, finish_reason=choice.finish_reason))
        return result

    @staticmethod
    def _from_native(raw: Any, text: str) -> Message:
        tool_calls = getattr(raw, "tool_calls", None)
        if tool_calls:
            fn = tool_calls[0].function
            if len(tool_calls) > 1:
                logger.warning(f"Model requested {len(tool_calls)} tool calls; only the first one is used")
            return Message(
                role="assistant",
                content=text or None,
                function_call=FunctionCall(name=fn.name, arguments=fn.arguments or "{}"),
            )
        legacy = getattr(raw, "function_call", None)
        if legacy:
            return Message(
                role="assistant",
                content=text or None,
                function_call=FunctionCall(name=legacy.name, arguments=legacy.arguments or "{}"),
            )
        return Message(role="assistant", content=text, final=True)

    @staticmethod
    def _from_json_blob(text: str) -> Message:
        blob, rest = parse_json_blob(text)
        if blob is None or "action" not in blob:
            return Message(role="assistant", content=_CITATIONS.sub(PARA_DELIM, text))

        action_input = blob.get("action_input")
        if blob["action"] == FINAL_ANSWER_BLOB_ACTION:
            answer = action_input if isinstance(action_input, str) else json.dumps(action_input)
            return Message(role="assistant", content=answer, final=True)
        return Message(
            role="assistant",
            content=rest or None,
            function_call=FunctionCall(name=str(blob["action"]), arguments=json.dumps(action_input)),
        )
