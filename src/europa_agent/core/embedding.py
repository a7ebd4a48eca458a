"""Embedding providers for search queries."""
import logging
from typing import Optional

import litellm
from openai import AsyncOpenAI

from europa_agent.core.config import Settings, settings as default_settings
from europa_agent.core.services import EmbeddingProvider
from europa_agent.schemas.message import EmbeddingRequest, EmbeddingResponse, Usage

logger = logging.getLogger(__name__)


def _as_list(value: str | list[str]) -> list[str]:
    return [value] if isinstance(value, str) else list(value)


class LiteLLMEmbeddingProvider(EmbeddingProvider):
    """Embeddings through LiteLLM, for any supported provider."""

    def __init__(self, model: Optional[str] = None, settings: Optional[Settings] = None) -> None:
        self.settings = settings or default_settings
        self.model = model or self.settings.EMBEDDING_MODEL

    async def create_embedding(self, request: EmbeddingRequest) -> EmbeddingResponse:
        model = request.model or self.model
        kwargs = {}
        if self.settings.LLM_API_KEY:
            kwargs["api_key"] = self.settings.LLM_API_KEY
        if self.settings.LLM_API_BASE:
            kwargs["api_base"] = self.settings.LLM_API_BASE

        response = await litellm.aembedding(model=model, input=_as_list(request.input), **kwargs)
        usage = getattr(response, "usage", None)
        return EmbeddingResponse(
            model=model,
            embeddings=[item["embedding"] for item in response.data],
            usage=Usage(
                prompt_tokens=usage.prompt_tokens or 0,
                total_tokens=usage.total_tokens or 0,
            ) if usage else None,
        )


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embeddings from an OpenAI-compatible endpoint."""

    batch_size = 25

    def __init__(self, model: Optional[str] = None, settings: Optional[Settings] = None) -> None:
        self.settings = settings or default_settings
        self.model = model or self.settings.EMBEDDING_MODEL
        self._client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.settings.LLM_API_KEY or None,
                base_url=self.settings.LLM_API_BASE or None,
            )
        return self._client

    async def create_embedding(self, request: EmbeddingRequest) -> EmbeddingResponse:
        texts = _as_list(request.input)
        model = request.model or self.model
        if not texts:
            return EmbeddingResponse(model=model)

        client = self._get_client()
        embeddings: list[list[float]] = []
        prompt_tokens = 0
        # Batch to stay under provider rate limits
        for i in range(0, len(texts), self.batch_size):
            response = await client.embeddings.create(model=model, input=texts[i: i + self.batch_size])
            ordered = sorted(response.data, key=lambda x: x.index)
            embeddings.extend(item.embedding for item in ordered)
            if response.usage:
                prompt_tokens += response.usage.prompt_tokens

        logger.debug(f"Embedded {len(texts)} text(s) with {model}")
        return EmbeddingResponse(
            model=model,
            embeddings=embeddings,
            usage=Usage(prompt_tokens=prompt_tokens, total_tokens=prompt_tokens),
        )
