"""Interfaces of the agent's external collaborators.

An ``AgentServices`` instance is the capability map handed to every agent:
model provider, prompt store, search backends, executors and the registries
of callable resources. Registries are filled once at startup and read-only
while agents run.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from europa_agent.schemas.agent import AgentDefinition, Composition, PromptSet, SearchIndex, SemanticFunction
from europa_agent.schemas.message import ChatRequest, ChatResponse, EmbeddingRequest, EmbeddingResponse
from europa_agent.tools.base import Tool

logger = logging.getLogger(__name__)


class ChatProvider(ABC):
    """Sends canonical chat requests to a model."""

    @abstractmethod
    async def chat(self, request: ChatRequest) -> ChatResponse:
        ...


class PromptStore(ABC):
    @abstractmethod
    async def get_prompt_sets_by_skill(self, skill: str) -> list[PromptSet]:
        ...


class IndexStore(ABC):
    @abstractmethod
    async def get_index_by_name(self, name: str) -> Optional[SearchIndex]:
        ...


class VectorStore(ABC):
    """Similarity search over an index. Returns the text of each hit."""

    @abstractmethod
    async def search(
        self,
        index: SearchIndex,
        query: str,
        k: int,
        query_embedding: Optional[list[float]] = None,
    ) -> list[str]:
        ...


class EmbeddingProvider(ABC):
    @abstractmethod
    async def create_embedding(self, request: EmbeddingRequest) -> EmbeddingResponse:
        ...


class ExecutionsService(ABC):
    """Runs semantic functions and compositions."""

    @abstractmethod
    async def execute_function(
        self,
        function: SemanticFunction,
        args: dict[str, Any],
        model_params: dict[str, Any],
    ) -> ChatResponse:
        ...

    @abstractmethod
    async def execute_composition(
        self,
        composition: Composition,
        args: dict[str, Any],
        model_params: dict[str, Any],
    ) -> str:
        ...


class InMemoryPromptStore(PromptStore):
    """Prompt store backed by a list, seeded with the built-in prompt sets."""

    def __init__(self, prompt_sets: Optional[Iterable[PromptSet]] = None, include_defaults: bool = True):
        from europa_agent.core.default_prompts import DEFAULT_PROMPT_SETS

        self._prompt_sets: list[PromptSet] = list(prompt_sets or [])
        if include_defaults:
            self._prompt_sets.extend(DEFAULT_PROMPT_SETS)

    def add(self, prompt_set: PromptSet) -> None:
        # Later additions take precedence over the defaults
        self._prompt_sets.insert(0, prompt_set)

    async def get_prompt_sets_by_skill(self, skill: str) -> list[PromptSet]:
        return [p for p in self._prompt_sets if p.skill == skill]


class InMemoryIndexStore(IndexStore):
    def __init__(self, indexes: Optional[Iterable[SearchIndex]] = None):
        self._indexes = {index.name: index for index in indexes or []}

    async def get_index_by_name(self, name: str) -> Optional[SearchIndex]:
        return self._indexes.get(name)


@dataclass
class AgentServices:
    """Capability map passed to agents at construction."""

    chat_provider: ChatProvider
    prompt_store: PromptStore = field(default_factory=InMemoryPromptStore)
    index_store: Optional[IndexStore] = None
    vector_store: Optional[VectorStore] = None
    embedding_provider: Optional[EmbeddingProvider] = None
    executions: Optional[ExecutionsService] = None
    tools: dict[str, Tool] = field(default_factory=dict)
    semantic_functions: dict[str, SemanticFunction] = field(default_factory=dict)
    compositions: dict[str, Composition] = field(default_factory=dict)
    agents: dict[str, AgentDefinition] = field(default_factory=dict)

    def register_tool(self, tool: Tool) -> None:
        self.tools[tool.name] = tool

    def register_function(self, function: SemanticFunction) -> None:
        self.semantic_functions[function.name] = function

    def register_composition(self, composition: Composition) -> None:
        self.compositions[composition.name] = composition

    def register_agent(self, definition: AgentDefinition) -> None:
        self.agents[definition.name] = definition
