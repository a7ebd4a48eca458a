"""Outcomes of parsing one model turn."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class AgentAction:
    """The model asked to run ``action`` with ``tool_input``."""
    action: str
    tool_input: str
    log: str = ""


@dataclass
class AgentFinish:
    """The model produced a final answer."""
    return_values: dict[str, Any] = field(default_factory=dict)
    log: str = ""

    @property
    def output(self) -> str:
        return self.return_values.get("output", "")


@dataclass
class Step:
    """One executed plan step."""
    step: str
    response: str


@dataclass
class TurnResult:
    """Result of a single turn of the reasoning loop.

    ``name`` is set when the observation came from a function call, so the
    next turn can attribute it with a function-role message.
    """
    done: bool
    content: str
    name: str | None = None
