"""Tools the agent can call."""

from europa_agent.tools.base import Tool, ToolResult, validate_tool_arguments
from europa_agent.tools.function_tool import FunctionTool, tool

__all__ = ["FunctionTool", "Tool", "ToolResult", "tool", "validate_tool_arguments"]
