"""Tool registry exposing memory operations to an agent loop.

Each tool is a plain function registered with ``@tool``. The agent loop sees
it as a name, a description, and a JSON schema for its parameters, and runs it
through ``call_tool``.
"""

import inspect
import re
import typing
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List

from ..exceptions import ValidationError


@dataclass
class ToolInfo:
    """Information about a registered tool."""

    name: str
    func: Callable
    description: str
    parameters: Dict[str, Any]

    def schema(self) -> Dict[str, Any]:
        """Tool description in JSON schema form, as handed to an LLM."""
        properties = {}
        required = []
        for param_name, param in self.parameters.items():
            prop = _json_schema_for(param["type"])
            if param.get("description"):
                prop["description"] = param["description"]
            properties[param_name] = prop
            if param["required"]:
                required.append(param_name)

        return {
            "name": self.name,
            "description": self.description,
            "parameters": {"type": "object", "properties": properties, "required": required},
        }


# Global tool registry
_tools: Dict[str, ToolInfo] = {}

_JSON_TYPES = {str: "string", int: "integer", float: "number", bool: "boolean"}


def _json_schema_for(annotation: Any) -> Dict[str, Any]:
    """Map a parameter annotation onto a JSON schema fragment."""
    # Optional[X] -> X
    if typing.get_origin(annotation) is typing.Union:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            annotation = args[0]

    if inspect.isclass(annotation) and issubclass(annotation, Enum):
        return {"type": "string", "enum": [member.value for member in annotation]}

    return {"type": _JSON_TYPES.get(annotation, "string")}


def _parse_arg_descriptions(doc: str) -> Dict[str, str]:
    """Pull per-parameter descriptions out of a Google-style ``Args:`` section."""
    descriptions = {}
    in_args = False
    for line in doc.splitlines():
        stripped = line.strip()
        if stripped == "Args:":
            in_args = True
            continue
        if in_args:
            if not stripped or stripped.endswith(":"):
                break
            match = re.match(r"^(\w+):\s*(.+)$", stripped)
            if match:
                descriptions[match.group(1)] = match.group(2)
    return descriptions


def tool(func: Callable) -> Callable:
    """Register a function as a tool."""
    # Extract function signature and docstring
    sig = inspect.signature(func)
    doc = inspect.getdoc(func) or "No description available"
    hints = typing.get_type_hints(func)
    arg_descriptions = _parse_arg_descriptions(doc)

    # Extract parameter info
    parameters = {}
    for param_name, param in sig.parameters.items():
        parameters[param_name] = {
            "type": hints.get(param_name, str),
            "default": (param.default if param.default != inspect.Parameter.empty else None),
            "required": param.default == inspect.Parameter.empty,
            "description": arg_descriptions.get(param_name, ""),
        }

    tool_info = ToolInfo(
        name=func.__name__,
        func=func,
        description=doc.split("\n")[0].strip(),  # First line of docstring
        parameters=parameters,
    )

    _tools[func.__name__] = tool_info
    return func


def get_tool(name: str) -> ToolInfo:
    """Get a registered tool by name."""
    if name not in _tools:
        available = ", ".join(sorted(_tools)) if _tools else "none"
        raise ValidationError(f"Tool '{name}' not found. Available: {available}")
    return _tools[name]


def call_tool(name: str, **kwargs) -> Any:
    """Call a tool with the given arguments."""
    tool_info = get_tool(name)

    # Validate required parameters
    for param_name, param_info in tool_info.parameters.items():
        if param_info["required"] and param_name not in kwargs:
            raise ValidationError(f"Parameter '{param_name}' missing for tool '{name}'")

    unknown = sorted(set(kwargs) - set(tool_info.parameters))
    if unknown:
        raise ValidationError(f"Unknown parameter(s) for tool '{name}': {', '.join(unknown)}")

    return tool_info.func(**kwargs)


def list_tools() -> List[str]:
    """List all registered tool names."""
    return list(_tools.keys())


def tool_schema(name: str) -> Dict[str, Any]:
    """JSON schema description of a registered tool."""
    return get_tool(name).schema()


# Import tool modules at the end to avoid circular imports
# (they need to import 'tool' decorator from this module)
from . import memory as memory  # noqa: E402
