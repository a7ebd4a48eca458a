"""Agent error types."""

from typing import Any, Optional


class AgentError(Exception):
    """Run-level error.

    Carries ``errors``, a list of ``{"message": ...}`` dicts reported to the
    agent-end callback before the error reaches the caller.
    """

    def __init__(self, message: str, errors: Optional[list[dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors if errors is not None else [{"message": message}]


class PromptNotFoundError(AgentError):
    """No prompt set exists for the agent's skill."""


class UnsupportedAgentTypeError(AgentError):
    def __init__(self, agent_type: str):
        super().__init__(f"Unsupported agent type: {agent_type}")
        self.agent_type = agent_type


class AgentRecursionError(AgentError):
    """Sub-agent call exceeded the depth limit or formed a cycle."""


class ToolExecutionError(Exception):
    """A dispatched action reported failure or could not be resolved."""


class OutputParserException(Exception):
    """Raised when model output cannot be parsed.

    When ``send_to_llm`` is true the error is retriable: ``observation`` is
    sent back to the model as the next turn instead of aborting the run.
    """

    def __init__(
        self,
        message: str,
        observation: Optional[str] = None,
        llm_output: Optional[str] = None,
        send_to_llm: bool = False,
    ):
        super().__init__(message)
        if send_to_llm and observation is None:
            raise ValueError("observation is required when send_to_llm is set")
        self.observation = observation
        self.llm_output = llm_output
        self.send_to_llm = send_to_llm


class RetryExhaustedError(Exception):
    """All retry attempts of a model call failed."""

    def __init__(self, last_exception: Exception, attempts: int):
        super().__init__(f"Retry failed after {attempts} attempts: {last_exception}")
        self.last_exception = last_exception
        self.attempts = attempts
