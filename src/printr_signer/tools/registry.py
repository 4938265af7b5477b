"""Tool registry - register and discover the tools an agent can call."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

logger = logging.getLogger("printr_signer.tools")

_TOOL_SPEC_ATTR = "__tool_spec__"


@dataclass
class Tool:
    name: str
    description: str
    parameters: dict[str, Any]
    func: Callable[..., Any] | Callable[..., Awaitable[Any]]
    is_async: bool = False

    def to_definition(self) -> dict[str, Any]:
        """Name, description and JSON-schema input, as MCP-style hosts expect."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters,
        }

    async def execute(self, **kwargs) -> str:
        try:
            if self.is_async:
                result = await self.func(**kwargs)
            else:
                result = self.func(**kwargs)
        except Exception:
            logger.exception(f"Tool {self.name} failed")
            result = {
                "ok": False,
                "error": f"{self.name} failed unexpectedly. See the signer log for details.",
            }
        if isinstance(result, str):
            return result
        return json.dumps(result, default=str)


class ToolRegistry:
    """The tools available to one signer instance."""

    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def register_object(self, obj: object) -> list[str]:
        """Register every ``@tool``-decorated method of *obj*, bound to it."""
        names = []
        for attr in dir(type(obj)):
            spec = getattr(getattr(type(obj), attr, None), _TOOL_SPEC_ATTR, None)
            if spec is None:
                continue
            name, description, parameters = spec
            method = getattr(obj, attr)
            self.register(
                Tool(
                    name=name,
                    description=description,
                    parameters=parameters,
                    func=method,
                    is_async=inspect.iscoroutinefunction(method),
                )
            )
            names.append(name)
        return names

    def get_tool(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def get_tools(self, names: list[str] | None = None) -> list[Tool]:
        if names is None:
            return list(self._tools.values())
        return [self._tools[n] for n in names if n in self._tools]

    def list_names(self) -> list[str]:
        return list(self._tools.keys())

    async def call(self, name: str, **kwargs) -> str:
        """Run a tool by name and return its JSON result."""
        t = self.get_tool(name)
        if t is None:
            return json.dumps({"ok": False, "error": f"Unknown tool: {name}"})
        return await t.execute(**kwargs)


def _extract_parameters(func: Callable) -> dict:
    """Extract JSON Schema parameters from function type hints."""
    sig = inspect.signature(func)
    properties = {}
    required = []

    # Annotations are strings under postponed evaluation
    type_map = {
        "str": "string",
        "int": "integer",
        "float": "number",
        "bool": "boolean",
        "list": "array",
        "dict": "object",
    }

    for name, param in sig.parameters.items():
        if name in ("self", "cls"):
            continue

        annotation = param.annotation
        if not isinstance(annotation, str):
            annotation = getattr(annotation, "__name__", "")
        prop: dict[str, Any] = {"type": type_map.get(annotation, "string")}
        properties[name] = prop

        if param.default is inspect.Parameter.empty:
            required.append(name)

    schema: dict[str, Any] = {
        "type": "object",
        "properties": properties,
    }
    if required:
        schema["required"] = required
    return schema


def tool(name: str, description: str, parameters: dict[str, Any] | None = None):
    """Decorator marking a method as a tool.

    Marked methods are picked up by :meth:`ToolRegistry.register_object`
    once the owning object exists.

    Usage:
        class WalletTools:
            @tool("printr_wallet_list", "List stored wallets")
            async def wallet_list(self, chain: str = "") -> dict:
                ...
    """

    def decorator(func: Callable) -> Callable:
        params = parameters if parameters is not None else _extract_parameters(func)
        setattr(func, _TOOL_SPEC_ATTR, (name, description, params))
        return func

    return decorator
