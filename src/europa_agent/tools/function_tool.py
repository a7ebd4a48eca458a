"""Tools built from plain Python callables."""
import inspect
import json
import typing
from typing import Any, Callable, Optional, Union, get_type_hints

from europa_agent.tools.base import Tool, ToolResult


def _extract_docstring(func: Callable) -> str:
    """First docstring line, or the function name."""
    doc = inspect.getdoc(func)
    if not doc:
        return func.__name__
    return doc.split("\n")[0].strip()


def _type_to_json_schema(python_type: Any) -> dict[str, Any]:
    origin = typing.get_origin(python_type)
    args = typing.get_args(python_type)

    # Optional[T] / T | None
    if origin is Union or (origin is not None and type(None) in args):
        non_null = [a for a in args if a is not type(None)]
        if len(non_null) == 1:
            return _type_to_json_schema(non_null[0])
        return {"type": "string"}

    type_map = {
        str: {"type": "string"},
        int: {"type": "integer"},
        float: {"type": "number"},
        bool: {"type": "boolean"},
        list: {"type": "array"},
        dict: {"type": "object"},
    }
    if python_type in type_map:
        return dict(type_map[python_type])

    if origin is list:
        if args:
            return {"type": "array", "items": _type_to_json_schema(args[0])}
        return {"type": "array"}
    if origin is dict:
        return {"type": "object"}

    return {"type": "string"}


def _generate_json_schema(func: Callable) -> dict[str, Any]:
    """JSON schema of the callable's keyword parameters."""
    sig = inspect.signature(func)
    type_hints = get_type_hints(func)

    properties: dict[str, Any] = {}
    required: list[str] = []

    for param_name, param in sig.parameters.items():
        if param_name in ("self", "cls"):
            continue
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue

        properties[param_name] = {
            **_type_to_json_schema(type_hints.get(param_name, str)),
            "description": f"Parameter: {param_name}",
        }
        if param.default is inspect.Parameter.empty:
            required.append(param_name)

    return {"type": "object", "properties": properties, "required": required}


class FunctionTool(Tool):
    """Tool wrapping a sync or async callable.

    Exceptions raised by the callable propagate; the dispatcher turns them
    into a failed observation.
    """

    def __init__(
        self,
        func: Callable,
        name: Optional[str] = None,
        description: Optional[str] = None,
        parameters: Optional[dict[str, Any]] = None,
    ):
        self._func = func
        self._name = name or func.__name__
        self._description = description or _extract_docstring(func)
        self._parameters = parameters or _generate_json_schema(func)

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def parameters(self) -> dict[str, Any]:
        return self._parameters

    async def execute(self, **kwargs: Any) -> ToolResult:
        if inspect.iscoroutinefunction(self._func):
            result = await self._func(**kwargs)
        else:
            result = self._func(**kwargs)

        if isinstance(result, ToolResult):
            return result
        if isinstance(result, str):
            return ToolResult(success=True, content=result)
        if isinstance(result, (dict, list)):
            return ToolResult(success=True, content=json.dumps(result), data=result)
        return ToolResult(success=True, content=str(result))


def tool(
    name: Optional[str] = None,
    description: Optional[str] = None,
    parameters: Optional[dict[str, Any]] = None,
) -> Callable[[Callable], FunctionTool]:
    """Decorator turning a function into a ``FunctionTool``.

    Example:
        >>> @tool(description="Look up the weather")
        ... async def weather(city: str) -> str:
        ...     return f"Sunny in {city}"
    """

    def decorator(func: Callable) -> FunctionTool:
        return FunctionTool(func, name=name, description=description, parameters=parameters)

    return decorator
