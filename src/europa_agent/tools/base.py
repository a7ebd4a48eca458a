"""Base tool classes."""

from typing import Any

from pydantic import BaseModel

from europa_agent.schemas.message import FunctionDescriptor


class ToolResult(BaseModel):
    """Tool execution result."""
    success: bool
    content: str | None = None
    error: str | None = None
    data: Any | None = None

    def to_observation(self) -> str:
        """Text the model sees for a successful call."""
        if self.content is not None:
            return self.content
        if self.data is not None:
            return str(self.data)
        return ""


def validate_tool_arguments(schema: dict[str, Any], arguments: Any) -> list[str]:
    """Validate tool arguments against a JSON Schema subset.

    Supports ``type``, ``required``, ``properties``, ``items`` and ``enum``.
    Returns a list of error strings, empty when the arguments are valid.
    """
    return _validate_schema(arguments, schema, path="$")


def _validate_schema(value: Any, schema: dict[str, Any], path: str) -> list[str]:
    schema_type = schema.get("type")
    if isinstance(schema_type, list):
        if value is None and "null" in schema_type:
            return []
        non_null = [t for t in schema_type if t != "null"]
        schema_type = non_null[0] if non_null else None

    if schema_type and not _matches_type(value, schema_type):
        return [f"{path}: expected {schema_type}, got {type(value).__name__}"]

    if "enum" in schema and value not in schema["enum"]:
        return [f"{path}: value must be one of {schema['enum']}"]

    errors: list[str] = []
    if schema_type == "object" or (schema_type is None and isinstance(value, dict)):
        for key in schema.get("required", []):
            if key not in value:
                errors.append(f"{path}.{key}: missing required field")
        properties = schema.get("properties", {})
        for key, item in value.items():
            if key in properties:
                errors.extend(_validate_schema(item, properties[key], path=f"{path}.{key}"))

    if schema_type == "array" and schema.get("items"):
        for idx, item in enumerate(value):
            errors.extend(_validate_schema(item, schema["items"], path=f"{path}[{idx}]"))

    return errors


def _matches_type(value: Any, schema_type: str) -> bool:
    if schema_type == "string":
        return isinstance(value, str)
    if schema_type == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    if schema_type == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if schema_type == "boolean":
        return isinstance(value, bool)
    if schema_type == "array":
        return isinstance(value, list)
    if schema_type == "object":
        return isinstance(value, dict)
    if schema_type == "null":
        return value is None
    return True


class Tool:
    """Base class for tools the agent can call by name."""

    @property
    def name(self) -> str:
        """Tool name."""
        raise NotImplementedError

    @property
    def description(self) -> str:
        """Tool description shown to the model."""
        raise NotImplementedError

    @property
    def parameters(self) -> dict[str, Any]:
        """Tool parameters schema (JSON Schema format)."""
        raise NotImplementedError

    async def execute(self, **kwargs: Any) -> ToolResult:
        """Execute the tool with keyword arguments parsed from the call."""
        raise NotImplementedError

    def to_descriptor(self) -> FunctionDescriptor:
        return FunctionDescriptor(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )
