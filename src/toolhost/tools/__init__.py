"""
Built-in tool handlers.

Every tool is a name, a description, a JSON Schema for its arguments and
an async handler taking (args, context) and returning a ToolResult. The
handler is the only code that touches the machine; the dispatcher wraps
it with logging and error containment.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from toolhost.types import ToolContext, ToolResult


class ToolHandler(Protocol):
    """Protocol for tool handler coroutines."""
    async def __call__(self, args: dict[str, Any], context: ToolContext) -> ToolResult: ...


@dataclass
class Tool:
    """A named tool the orchestrator can invoke on this device."""
    name: str
    description: str
    handler: ToolHandler
    parameters: dict[str, Any] = field(default_factory=dict)
    source: str = "builtin"

    def to_schema(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.parameters,
            "source": self.source,
        }


def schema(properties: dict[str, Any], required: list[str] | None = None) -> dict[str, Any]:
    """Build an object JSON Schema from a property map."""
    return {"type": "object", "properties": properties, "required": required or []}


def str_arg(args: Mapping[str, Any], key: str, default: str = "") -> str:
    value = args.get(key)
    return default if value is None else str(value)


def int_arg(args: Mapping[str, Any], key: str, default: int) -> int:
    """Read an integer argument, raising ValueError for non-numeric input."""
    value = args.get(key)
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be a number, got {value!r}") from None


def bool_arg(args: Mapping[str, Any], key: str, default: bool = False) -> bool:
    value = args.get(key)
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)
