"""Europa Agent CLI module.

Usage:
    europa-agent run --agent agent.yaml --goal "..."
"""
import logging
from typing import Optional

from europa_agent.cli.display import Colors


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging; ``level`` defaults to ``LOG_LEVEL``."""
    from europa_agent.core.config import settings

    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # LiteLLM is chatty at INFO
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)


__all__ = ["Colors", "setup_logging"]
