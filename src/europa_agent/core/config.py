"""Application configuration using pydantic-settings."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables and ``.env``."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Project metadata
    PROJECT_NAME: str = "Europa Agent"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = Field(default="INFO", description="Root log level used by the CLI")

    # LLM settings (supports 100+ providers via LiteLLM)
    # Model naming: "provider/model" e.g. "openai/gpt-4o", "anthropic/claude-3-5-sonnet-20241022"
    LLM_API_KEY: str = Field(default="", description="API key for LLM service")
    LLM_API_BASE: str = Field(
        default="",
        description="Optional custom API base URL (leave empty for default provider endpoints)"
    )
    LLM_MODEL: str = Field(
        default="openai/gpt-3.5-turbo-0613",
        description="Default chat model in format 'provider/model'"
    )
    LLM_COMPLETION_MODEL: str = Field(
        default="openai/text-davinci-003",
        description="Default model for agents configured with is_chat=False"
    )
    EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small",
        description="Embedding model used for search queries"
    )

    # Retry settings for model calls
    LLM_MAX_RETRIES: int = Field(default=3, ge=0, le=10)
    LLM_RETRY_INITIAL_DELAY: float = Field(default=1.0, ge=0)
    LLM_RETRY_MAX_DELAY: float = Field(default=30.0, ge=0)

    # Agent loop budgets
    AGENT_MAX_ITERATIONS: int = Field(default=6, ge=1, le=100)
    AGENT_MAX_EXECUTION_TIME_MS: int = Field(
        default=30000, ge=1, description="Wall-clock budget of one run in milliseconds"
    )
    AGENT_MAX_TOKENS: int = Field(default=1024, ge=1)
    AGENT_MAX_DEPTH: int = Field(
        default=3, ge=1, le=10, description="Maximum nesting depth of sub-agent calls"
    )

    # Function dispatch
    SEARCH_TOP_K: int = Field(default=5, ge=1, le=100)
    EMAIL_OVERRIDE: str = Field(
        default="", description="If set, every email tool call is sent to this address"
    )

    # Tracing
    TRACE_BACKEND: str = Field(default="file", description="file | langfuse | none")
    TRACE_DIR: str = Field(default="", description="Trace directory (defaults to ~/.europa-agent/traces)")

    # Langfuse
    LANGFUSE_PUBLIC_KEY: str = Field(default="", description="Langfuse public key")
    LANGFUSE_SECRET_KEY: str = Field(default="", description="Langfuse secret key")
    LANGFUSE_HOST: str = Field(default="https://cloud.langfuse.com", description="Langfuse host URL")

    @field_validator("LLM_MODEL", "LLM_COMPLETION_MODEL")
    @classmethod
    def validate_model_format(cls, v: str) -> str:
        """Standardize model name format to 'provider/model'.

        Supports:
        - Standard format: "anthropic/claude-3-5-sonnet-20241022"
        - Legacy colon format: "openai:gpt-4o" -> "openai/gpt-4o"
        - No prefix format: "gpt-4o" -> auto-detect provider
        """
        if not v or not v.strip():
            raise ValueError("model name cannot be empty")

        v = v.strip()

        if ":" in v and "/" not in v:
            v = v.replace(":", "/")

        if "/" in v:
            return v

        model_lower = v.lower()
        if "claude" in model_lower:
            return f"anthropic/{v}"
        elif "gemini" in model_lower:
            return f"gemini/{v}"
        elif "mistral" in model_lower:
            return f"mistral/{v}"
        elif "llama" in model_lower:
            return f"together_ai/{v}"
        else:
            # gpt, o1/o3 and unknown models (custom endpoints) go through the openai adapter
            return f"openai/{v}"

    @field_validator("TRACE_BACKEND")
    @classmethod
    def validate_trace_backend(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in {"file", "langfuse", "none"}:
            raise ValueError(f"TRACE_BACKEND must be one of file, langfuse, none; got {v!r}")
        return v


# Global settings instance
settings = Settings()
