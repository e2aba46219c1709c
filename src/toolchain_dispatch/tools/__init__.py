"""Operation-exposure layer for toolchain-dispatch."""

from toolchain_dispatch.tools.base import Tool, ToolExecutionError, ToolResult
from toolchain_dispatch.tools.registry import ToolNotFoundError, ToolRegistry, ToolRegistryError
from toolchain_dispatch.tools.toolchain_tools import build_default_tool_registry

__all__ = [
    "Tool",
    "ToolExecutionError",
    "ToolResult",
    "ToolNotFoundError",
    "ToolRegistry",
    "ToolRegistryError",
    "build_default_tool_registry",
]
