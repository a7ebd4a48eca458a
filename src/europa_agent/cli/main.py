"""Europa Agent CLI - run an agent definition on a goal.

Usage:
    europa-agent run --agent agent.yaml --goal "..." [OPTIONS]

Options:
    --agent, -a FILE        YAML agent definition
    --goal, -g TEXT         Goal for the run
    --email EMAIL           Identity passed to the email tool
    --tools MODULE          Module whose Tool objects are registered (repeatable)
    --model MODEL           Override the definition's model
    --quiet, -q             Only print the final answer
    --debug                 Log every agent hook
    --version, -v           Show version

The agent file holds one ``AgentDefinition``; an optional ``agents`` list
defines the sub-agents it may call.
"""
import argparse
import asyncio
import importlib
import sys
from pathlib import Path
from typing import Any, Optional

import yaml

from europa_agent import __version__
from europa_agent.cli import setup_logging
from europa_agent.cli.display import Colors, format_error, format_event
from europa_agent.core.agent_events import AgentEvent, EventEmitter, EventEmitterCallback
from europa_agent.core.config import Settings, settings
from europa_agent.core.debug_callback import DebugCallback
from europa_agent.core.embedding import LiteLLMEmbeddingProvider
from europa_agent.core.exceptions import AgentError, RetryExhaustedError
from europa_agent.core.llm_client import LLMClient
from europa_agent.core.runtime import AgentRuntime
from europa_agent.core.services import AgentServices
from europa_agent.core.tracing import TracingCallback, create_trace_store
from europa_agent.schemas.agent import AgentDefinition
from europa_agent.tools.base import Tool


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="europa-agent",
        description="Europa Agent - run LLM agents from YAML definitions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  europa-agent run -a researcher.yaml -g "Who won the 2022 World Cup?"
  europa-agent run -a planner.yaml -g "Plan a trip" --tools my_tools -q
        """,
    )
    parser.add_argument(
        "--version",
        "-v",
        action="version",
        version=f"europa-agent {__version__}",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run an agent on a goal")
    run.add_argument("--agent", "-a", required=True, help="YAML file with the agent definition")
    run.add_argument("--goal", "-g", required=True, help="Goal for the run")
    run.add_argument("--email", default=None, help="Identity passed to the email tool")
    run.add_argument(
        "--tools",
        action="append",
        default=[],
        metavar="MODULE",
        help="Python module whose Tool objects are registered (repeatable)",
    )
    run.add_argument("--model", default=None, help="Override the definition's model")
    run.add_argument("--quiet", "-q", action="store_true", help="Only print the final answer")
    run.add_argument("--debug", action="store_true", help="Log every agent hook at DEBUG level")
    return parser.parse_args(argv)


def load_agent_file(path: str) -> tuple[AgentDefinition, list[AgentDefinition]]:
    """Read an agent definition and its sub-agent definitions from YAML."""
    data: dict[str, Any] = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    sub_agents = [AgentDefinition(**item) for item in data.pop("agents", None) or []]
    return AgentDefinition(**data), sub_agents


def load_tools(module_names: list[str]) -> list[Tool]:
    """Collect module-level ``Tool`` instances from the given modules."""
    tools: list[Tool] = []
    for module_name in module_names:
        module = importlib.import_module(module_name)
        tools.extend(value for value in vars(module).values() if isinstance(value, Tool))
    return tools


def build_services(
    sub_agents: list[AgentDefinition],
    tools: list[Tool],
    app_settings: Settings,
) -> AgentServices:
    services = AgentServices(
        chat_provider=LLMClient(settings=app_settings),
        embedding_provider=LiteLLMEmbeddingProvider(settings=app_settings),
    )
    for tool in tools:
        services.register_tool(tool)
    for definition in sub_agents:
        services.register_agent(definition)
    return services


async def run_agent_cli(args: argparse.Namespace) -> int:
    """Run one agent and print its events. Returns the exit code."""
    if not settings.LLM_API_KEY:
        print(f"{Colors.YELLOW}Warning: LLM_API_KEY not configured, relying on provider environment variables{Colors.RESET}")

    try:
        definition, sub_agents = load_agent_file(args.agent)
        tools = load_tools(args.tools)
    except (OSError, ValueError, ImportError, yaml.YAMLError) as e:
        print(format_error(str(e)))
        return 2
    if args.model:
        definition = definition.model_copy(update={"model": args.model})

    services = build_services(sub_agents, tools, settings)
    trace_store = create_trace_store(settings)

    emitter = EventEmitter()
    if not args.quiet:
        async def print_event(event: AgentEvent) -> None:
            print(format_event(event), flush=True)

        emitter.on_all(print_event)

    runtime = AgentRuntime(services, settings, callbacks=[DebugCallback()])
    try:
        answer = await runtime.run(
            definition,
            {"goal": args.goal},
            callback_factories=[
                lambda: EventEmitterCallback(emitter),
                lambda: TracingCallback(trace_store),
            ],
            email=args.email,
        )
    except (AgentError, RetryExhaustedError) as e:
        print(format_error(str(e)))
        return 1
    except Exception as e:
        # raw litellm errors that were not retried
        print(format_error(f"{type(e).__name__}: {e}"))
        return 1

    if args.quiet:
        print(answer)
    else:
        print(f"\n{Colors.BOLD}{Colors.BRIGHT_GREEN}Answer:{Colors.RESET} {answer}")
    return 0


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point for CLI."""
    args = parse_args(argv)
    setup_logging("DEBUG" if args.debug else None)
    sys.exit(asyncio.run(run_agent_cli(args)))


if __name__ == "__main__":
    main()
