"""Registry of exposed operations."""

from __future__ import annotations

from typing import Any, Iterable

from toolchain_dispatch.tools.base import Tool, ToolResult


class ToolRegistryError(RuntimeError):
    """Raised when tool registry operations fail."""


class ToolNotFoundError(ToolRegistryError):
    """Raised when a tool is not found in the registry."""


class ToolRegistrationError(ToolRegistryError):
    """Raised when a tool cannot be registered."""


class ToolRegistry:
    """Operations keyed by name, in registration order."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Register a tool instance by name.

        Raises:
            ToolRegistrationError: If a tool with the same name already exists.
        """

        if tool.name in self._tools:
            raise ToolRegistrationError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool:
        """Retrieve a tool by name.

        Raises:
            ToolNotFoundError: If no tool exists with the given name.
        """

        try:
            return self._tools[name]
        except KeyError as exc:
            known = ", ".join(self._tools) or "none"
            raise ToolNotFoundError(f"Tool '{name}' is not registered (available: {known})") from exc

    def list_tools(self) -> Iterable[Tool]:
        """Return all registered tools."""

        return list(self._tools.values())

    def describe(self) -> dict[str, str]:
        """Return operation names mapped to their descriptions."""

        return {name: tool.description for name, tool in self._tools.items()}

    def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Execute a named tool with the provided arguments.

        Raises:
            ToolNotFoundError: If no tool exists with the given name.
            ToolExecutionError: If the arguments are malformed.
        """

        tool = self.get(name)
        return tool.execute(dict(arguments))
