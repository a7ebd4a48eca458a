"""Data contracts shared by the agent core and provider adapters."""

from europa_agent.schemas.actions import AgentAction, AgentFinish, Step, TurnResult
from europa_agent.schemas.agent import (
    AgentDefinition,
    Composition,
    PromptSet,
    PromptTemplate,
    SearchIndex,
    SemanticFunction,
)
from europa_agent.schemas.message import (
    PARA_DELIM,
    AdditionalContext,
    ChatChoice,
    ChatPrompt,
    ChatRequest,
    ChatRequestContext,
    ChatResponse,
    CitationMetadata,
    CitationSource,
    ContextChunk,
    EmbeddingRequest,
    EmbeddingResponse,
    Example,
    FunctionCall,
    FunctionDescriptor,
    ImageContent,
    ImageURL,
    Message,
    ModelParams,
    TextContent,
    Usage,
    assistant_message,
    function_message,
    system_message,
    user_message,
)

__all__ = [
    "PARA_DELIM",
    "AdditionalContext",
    "AgentAction",
    "AgentDefinition",
    "AgentFinish",
    "ChatChoice",
    "ChatPrompt",
    "ChatRequest",
    "ChatRequestContext",
    "ChatResponse",
    "CitationMetadata",
    "CitationSource",
    "Composition",
    "ContextChunk",
    "EmbeddingRequest",
    "EmbeddingResponse",
    "Example",
    "FunctionCall",
    "FunctionDescriptor",
    "ImageContent",
    "ImageURL",
    "Message",
    "ModelParams",
    "PromptSet",
    "PromptTemplate",
    "SearchIndex",
    "SemanticFunction",
    "Step",
    "TextContent",
    "TurnResult",
    "Usage",
    "assistant_message",
    "function_message",
    "system_message",
    "user_message",
]
