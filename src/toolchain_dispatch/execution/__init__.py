"""Execution engine package."""

from toolchain_dispatch.execution.base import (
    DEFAULT_HOOKS,
    ExecutionContext,
    ExecutionHooks,
    ExecutionOutcome,
    ToolLocation,
)
from toolchain_dispatch.execution.engine import ExecutionEngine, ProcessInvocation

__all__ = [
    "DEFAULT_HOOKS",
    "ExecutionContext",
    "ExecutionEngine",
    "ExecutionHooks",
    "ExecutionOutcome",
    "ProcessInvocation",
    "ToolLocation",
]
