"""ANSI colors and agent event rendering for the CLI."""
from europa_agent.core.agent_events import AgentEvent, EventType


class Colors:
    """Terminal color definitions using ANSI escape codes."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"

    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"
    BRIGHT_BLUE = "\033[94m"
    BRIGHT_MAGENTA = "\033[95m"
    BRIGHT_CYAN = "\033[96m"


EVENT_COLORS: dict[EventType, str] = {
    EventType.GOAL: Colors.BOLD + Colors.BRIGHT_CYAN,
    EventType.PLAN: Colors.BRIGHT_BLUE,
    EventType.STEP: Colors.BOLD + Colors.BLUE,
    EventType.OBSERVATION: Colors.DIM,
    EventType.TURN: Colors.DIM + Colors.CYAN,
    EventType.TOOL_CALL: Colors.BRIGHT_YELLOW,
    EventType.TOOL_RESULT: Colors.DIM,
    EventType.EVALUATION: Colors.MAGENTA,
    EventType.RESPONSE: Colors.BRIGHT_GREEN,
    EventType.ERROR: Colors.RED,
    EventType.DONE: Colors.GREEN,
}

MAX_RESULT_CHARS = 500


def format_event(event: AgentEvent) -> str:
    """Format an agent event for display.

    Tool results are truncated; sub-agent events are prefixed with the agent name.
    """
    message = event.message
    if event.type in (EventType.TOOL_RESULT, EventType.OBSERVATION) and len(message) > MAX_RESULT_CHARS:
        message = message[:MAX_RESULT_CHARS] + "..."

    depth = event.data.get("depth", 0)
    indent = "  " * depth
    prefix = f"{indent}{Colors.DIM}[{event.data.get('agent')}]{Colors.RESET} " if depth else ""
    color = EVENT_COLORS.get(event.type, "")
    return f"{prefix}{color}{message}{Colors.RESET}"


def format_error(message: str) -> str:
    return f"{Colors.RED}Error: {message}{Colors.RESET}"
