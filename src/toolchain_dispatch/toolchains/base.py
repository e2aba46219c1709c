"""Toolchain definitions binding the execution engine to concrete tools."""

from __future__ import annotations

from dataclasses import dataclass, field

from toolchain_dispatch.config import ConfigProvider
from toolchain_dispatch.execution.base import DEFAULT_HOOKS, ExecutionHooks
from toolchain_dispatch.execution.engine import ExecutionEngine
from toolchain_dispatch.util.observability import ObservabilityManager


@dataclass(frozen=True)
class Toolchain:
    """A supported external build/run tool.

    Attributes:
        name: Human-readable name used in logs and error messages.
        config_key: Key of the tool in the ``tools`` configuration section.
        default_executable: Executable name used when the configuration has none.
        hooks: Pipeline hooks applied to every execution of this tool.
    """

    name: str
    config_key: str
    default_executable: str
    hooks: ExecutionHooks = field(default_factory=lambda: DEFAULT_HOOKS)


def create_engine(
    toolchain: Toolchain,
    config_provider: ConfigProvider,
    observability: ObservabilityManager | None = None,
) -> ExecutionEngine:
    """Create an execution engine for a toolchain."""

    return ExecutionEngine(
        toolchain.name,
        toolchain.config_key,
        toolchain.default_executable,
        config_provider,
        hooks=toolchain.hooks,
        observability=observability,
    )
