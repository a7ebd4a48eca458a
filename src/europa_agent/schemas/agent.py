"""Definitions of the resources an agent can call.

These are the records the surrounding system stores. The agent core only
reads them through the capability map.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class PromptTemplate(BaseModel):
    """One message template of a prompt set.

    ``role`` may be omitted; see ``prompt_templates.get_messages`` for the
    default.
    """
    prompt: str
    role: Optional[str] = None


class PromptSet(BaseModel):
    id: str
    name: str
    skill: str
    prompts: list[PromptTemplate] = Field(default_factory=list)


class SearchIndex(BaseModel):
    """A searchable document index."""
    name: str
    vector_store_provider: Optional[str] = None
    embedding_provider: Optional[str] = None
    embedding_model: Optional[str] = None


class SemanticFunction(BaseModel):
    """A prompt-backed function the agent can call like a tool."""
    name: str
    description: str = ""
    arguments: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


class Composition(BaseModel):
    """A stored flow of functions executed as one unit."""
    name: str
    description: str = ""
    arguments: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


class AgentDefinition(BaseModel):
    """Configuration of a named agent.

    ``agent_type`` selects the runtime variant: ``react``, ``openai``,
    ``simple`` or ``plan``.
    """
    model_config = ConfigDict(protected_namespaces=())

    name: str
    description: str = ""
    agent_type: str = "react"
    model: Optional[str] = None
    model_params: dict[str, Any] = Field(default_factory=dict)
    is_chat: bool = True
    use_functions: bool = False
    self_evaluate: bool = False
    allowed_tools: list[str] = Field(default_factory=list)
    args: dict[str, Any] = Field(default_factory=dict)
    index_name: Optional[str] = None
