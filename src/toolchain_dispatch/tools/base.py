"""Named operations exposed to calling agents."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from toolchain_dispatch.execution.base import ExecutionOutcome


class ToolExecutionError(RuntimeError):
    """Raised when an operation is invoked with invalid arguments."""


@dataclass(frozen=True)
class ToolResult:
    """Result of invoking an operation.

    Attributes:
        name: Operation name that produced the result.
        success: Whether the underlying execution succeeded.
        output: Rendered execution report.
        error: Fatal error message when the execution could not run.
        outcome: The structured execution outcome behind the report.
    """

    name: str
    success: bool
    output: str
    error: str | None = None
    outcome: ExecutionOutcome | None = None

    @classmethod
    def from_outcome(cls, name: str, outcome: ExecutionOutcome) -> ToolResult:
        return cls(
            name=name,
            success=outcome.success,
            output=outcome.render(),
            error=outcome.fatal_error,
            outcome=outcome,
        )


class Tool(ABC):
    """Base class for operations available to callers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the unique name of the operation."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Return a human-readable description of the operation."""

    @property
    @abstractmethod
    def input_schema(self) -> dict[str, Any]:
        """Return a schema describing expected arguments."""

    @abstractmethod
    def execute(self, arguments: dict[str, Any]) -> ToolResult:
        """Run the operation with the provided arguments.

        Args:
            arguments: Structured input arguments.

        Returns:
            ToolResult carrying the rendered execution report.

        Raises:
            ToolExecutionError: If the arguments are malformed.
        """
