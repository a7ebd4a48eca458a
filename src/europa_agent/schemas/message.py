"""Canonical message, request and response schemas.

Every provider adapter reads and writes these models. They carry no behavior
beyond validation of the content/role invariants.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

PARA_DELIM = "\n\n"

MessageRole = Literal["system", "user", "assistant", "function", "tool"]


class TextContent(BaseModel):
    """Text part of a multi-part message."""
    type: Literal["text"] = "text"
    text: str


class ImageURL(BaseModel):
    url: str
    detail: Optional[Literal["auto", "low", "high"]] = None


class ImageContent(BaseModel):
    """Image reference part of a multi-part message."""
    type: Literal["image_url"] = "image_url"
    image_url: ImageURL
    object_name: Optional[str] = None


ContentObject = Annotated[Union[TextContent, ImageContent], Field(discriminator="type")]

# A message body is a plain string, a list of strings, or a list of typed parts.
ContentType = Union[str, list[str], list[ContentObject]]


class FunctionCall(BaseModel):
    """Function call requested by the model.

    ``arguments`` is always a JSON-encoded string, whether it came from a
    native function-calling response or was synthesized from ReAct text.
    """
    name: str
    arguments: str = "{}"


class CitationSource(BaseModel):
    start_index: Optional[int] = None
    end_index: Optional[int] = None
    uri: Optional[str] = None
    license: Optional[str] = None


class CitationMetadata(BaseModel):
    citation_sources: list[CitationSource] = Field(default_factory=list)


class Message(BaseModel):
    """Message in a canonical prompt."""
    role: MessageRole
    content: Optional[ContentType] = None
    name: Optional[str] = None
    function_call: Optional[FunctionCall] = None
    citation_metadata: Optional[CitationMetadata] = None
    final: Optional[bool] = None

    @model_validator(mode="after")
    def check_invariants(self) -> "Message":
        if self.content is None and self.function_call is None:
            raise ValueError("content may only be None when function_call is present")
        if self.name is not None and self.role != "function":
            raise ValueError(f"name is only allowed on function messages, got role={self.role}")
        return self


def system_message(content: ContentType) -> Message:
    return Message(role="system", content=content)


def user_message(content: ContentType) -> Message:
    return Message(role="user", content=content)


def assistant_message(
    content: Optional[ContentType],
    function_call: Optional[FunctionCall] = None,
) -> Message:
    return Message(role="assistant", content=content, function_call=function_call)


def function_message(content: ContentType, name: str) -> Message:
    return Message(role="function", content=content, name=name)


class ContextChunk(BaseModel):
    """Retrieved passage attached to a request."""
    content: str
    author: Optional[str] = None
    citation_metadata: Optional[CitationMetadata] = None


class AdditionalContext(BaseModel):
    content: Optional[str] = None
    chunks: list[ContextChunk] = Field(default_factory=list)


class ChatRequestContext(BaseModel):
    system_prompt: Optional[ContentType] = None
    additional_context: Optional[AdditionalContext] = None


class Example(BaseModel):
    """Few-shot example rendered as a user/assistant pair."""
    input: Message
    output: Message


class ChatPrompt(BaseModel):
    """Prompt for one turn.

    ``history`` holds prior turns and is owned by the agent runtime;
    ``messages`` is the delta for the current turn.
    """
    context: Optional[ChatRequestContext] = None
    examples: list[Example] = Field(default_factory=list)
    history: list[Message] = Field(default_factory=list)
    messages: list[Message] = Field(default_factory=list)


class ModelParams(BaseModel):
    """Sampling parameters. Provider specific keys pass through as extras."""
    model_config = ConfigDict(extra="allow")

    max_tokens: Optional[int] = None
    n: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    stop: Optional[list[str]] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None
    logit_bias: Optional[dict[str, float]] = None
    seed: Optional[int] = None
    response_format: Optional[dict[str, Any]] = None


class FunctionDescriptor(BaseModel):
    """An invocable action surfaced to the model."""
    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})


FunctionCallType = Union[Literal["none", "auto"], dict[str, str]]


class ChatRequest(BaseModel):
    """Canonical chat request. Built fresh for every turn."""
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model: str
    prompt: ChatPrompt
    model_params: ModelParams = Field(default_factory=ModelParams)
    functions: Optional[list[FunctionDescriptor]] = None
    function_call: Optional[FunctionCallType] = None
    stream: bool = False
    user: Optional[str] = None


class ChatChoice(BaseModel):
    index: int = 0
    message: Message
    finish_reason: Optional[str] = None
    safety_ratings: Optional[list[dict[str, Any]]] = None
    logprobs: Optional[Any] = None


class Usage(BaseModel):
    """Token usage statistics."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatResponse(BaseModel):
    """Canonical chat response."""
    id: Optional[str] = None
    created: Optional[int] = None
    model: Optional[str] = None
    choices: list[ChatChoice] = Field(default_factory=list)
    usage: Optional[Usage] = None

    @property
    def message(self) -> Optional[Message]:
        """The first choice's message, if any."""
        if not self.choices:
            return None
        return self.choices[0].message


class EmbeddingRequest(BaseModel):
    model: Optional[str] = None
    input: Union[str, list[str]]
    input_type: Optional[Literal["search_document", "search_query", "classification", "clustering"]] = None


class EmbeddingResponse(BaseModel):
    model: Optional[str] = None
    embeddings: list[list[float]] = Field(default_factory=list)
    usage: Optional[Usage] = None
