"""Agent runtime core."""
from .agent import BaseAgent, ReActAgent, SimpleAgent
from .agent_events import AgentEvent, EventEmitter, EventEmitterCallback, EventType
from .callbacks import AgentCallback, CallbackManager
from .config import Settings, settings
from .debug_callback import DebugCallback
from .dispatcher import DispatchContext, DispatchResult, FunctionDispatcher, ToolFailure
from .embedding import LiteLLMEmbeddingProvider, OpenAIEmbeddingProvider
from .exceptions import (
    AgentError,
    AgentRecursionError,
    OutputParserException,
    PromptNotFoundError,
    RetryExhaustedError,
    ToolExecutionError,
    UnsupportedAgentTypeError,
)
from .llm_client import LLMClient
from .output_parser import ReActOutputParser
from .plan_agent import PlanAndExecuteAgent
from .retry import RetryConfig, async_retry
from .runtime import AgentRuntime
from .services import (
    AgentServices,
    ChatProvider,
    EmbeddingProvider,
    ExecutionsService,
    InMemoryIndexStore,
    InMemoryPromptStore,
    IndexStore,
    PromptStore,
    VectorStore,
)
from .tracing import FileTraceStore, TraceStore, Tracer, TracingCallback, create_trace_store

__all__ = [
    "AgentCallback",
    "AgentError",
    "AgentEvent",
    "AgentRecursionError",
    "AgentRuntime",
    "AgentServices",
    "BaseAgent",
    "CallbackManager",
    "ChatProvider",
    "DebugCallback",
    "DispatchContext",
    "DispatchResult",
    "EmbeddingProvider",
    "EventEmitter",
    "EventEmitterCallback",
    "EventType",
    "ExecutionsService",
    "FileTraceStore",
    "FunctionDispatcher",
    "InMemoryIndexStore",
    "InMemoryPromptStore",
    "IndexStore",
    "LLMClient",
    "LiteLLMEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "OutputParserException",
    "PlanAndExecuteAgent",
    "PromptNotFoundError",
    "PromptStore",
    "ReActAgent",
    "ReActOutputParser",
    "RetryConfig",
    "RetryExhaustedError",
    "Settings",
    "SimpleAgent",
    "ToolExecutionError",
    "ToolFailure",
    "TraceStore",
    "Tracer",
    "TracingCallback",
    "UnsupportedAgentTypeError",
    "VectorStore",
    "async_retry",
    "create_trace_store",
    "settings",
]
