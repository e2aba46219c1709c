"""Execution engine base types and hook interfaces."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Any, Callable

from toolchain_dispatch.config import FeaturesConfig, ToolConfig

TIMEOUT_BANNER = "=== Execution Timed Out ==="
OUTPUT_HEADER = "=== Output ==="
ERRORS_HEADER = "=== Errors/Warnings ==="


@dataclass(frozen=True)
class ToolLocation:
    """Where an executable lives.

    Attributes:
        executable_name: File name of the executable.
        directory: Directory holding the executable; empty means "search PATH".
    """

    executable_name: str
    directory: str = ""

    def __post_init__(self) -> None:
        if not self.executable_name.strip():
            raise ValueError("Executable name must not be empty.")

    @classmethod
    def from_config(cls, config: ToolConfig, default_executable: str) -> ToolLocation:
        """Build a location from a tool configuration snapshot."""

        return cls(
            executable_name=config.executable_name.strip() or default_executable,
            directory=config.path.strip(),
        )

    @property
    def uses_search_path(self) -> bool:
        return not self.directory

    @property
    def resolved_path(self) -> str:
        """Return ``directory/executable_name``, or the bare name for PATH lookup."""

        if self.uses_search_path:
            return self.executable_name
        return os.path.join(self.directory, self.executable_name)


@dataclass(frozen=True)
class ExecutionOutcome:
    """Normalized result of one subprocess run.

    Attributes:
        exit_code: Process exit code. None when the process was killed or never ran.
        stdout: Captured standard output lines joined with newlines.
        stderr: Captured standard error lines joined with newlines.
        timed_out: Whether the process was killed after the deadline.
        fatal_error: Set when no normal process run/exit happened at all.
        command: The argument string that was executed.
        duration_s: Wall-clock duration of the run in seconds.
    """

    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    fatal_error: str | None = None
    command: str = ""
    duration_s: float = 0.0

    @classmethod
    def failure(cls, message: str, command: str = "") -> ExecutionOutcome:
        """Build an outcome for a run that could not be attempted or completed."""

        return cls(fatal_error=message or "Unknown error", command=command)

    @property
    def success(self) -> bool:
        return self.fatal_error is None and not self.timed_out and self.exit_code == 0

    def render(self) -> str:
        """Render the outcome as the human-readable report returned to callers."""

        if self.fatal_error is not None:
            return f"Error: {self.fatal_error}"

        exit_code = "N/A" if self.exit_code is None else str(self.exit_code)
        sections = [f"Exit Code: {exit_code}"]
        if self.timed_out:
            sections.append(TIMEOUT_BANNER)
        if self.stdout.strip():
            sections.append(f"{OUTPUT_HEADER}\n{self.stdout}")
        if self.stderr.strip():
            sections.append(f"{ERRORS_HEADER}\n{self.stderr}")
        return "\n\n".join(sections)

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True)
class ExecutionContext:
    """Per-call snapshot handed to every execution hook.

    Attributes:
        tool_name: Human-readable toolchain name used in messages.
        command: Argument string supplied by the caller.
        working_directory: Directory the process runs in.
        location: Configured executable location.
        tool_config: Tool configuration snapshot taken at the start of the call.
        features: Process-wide settings snapshot taken at the start of the call.
        extras: Call-specific values supplied by adapters (project path, architecture).
    """

    tool_name: str
    command: str
    working_directory: str
    location: ToolLocation
    tool_config: ToolConfig
    features: FeaturesConfig
    extras: dict[str, Any] = field(default_factory=dict)


ResolveExecutable = Callable[[ExecutionContext], str | None]
Preflight = Callable[[ExecutionContext], str | None]
FormatArguments = Callable[[str], str]
MutateEnvironment = Callable[[dict[str, str], ExecutionContext], None]
PostProcess = Callable[[ExecutionOutcome, ExecutionContext], ExecutionOutcome]


def resolve_configured_executable(context: ExecutionContext) -> str | None:
    """Return the bare name when no directory is configured, else the existing full path."""

    location = context.location
    if location.uses_search_path:
        return location.executable_name
    if not os.path.isfile(location.resolved_path):
        return None
    # Popen resolves relative program paths against the child's cwd.
    return os.path.abspath(location.resolved_path)


def no_preflight(context: ExecutionContext) -> str | None:
    return None


def pass_through_arguments(command: str) -> str:
    return command


def keep_environment(env: dict[str, str], context: ExecutionContext) -> None:
    return None


def keep_outcome(outcome: ExecutionOutcome, context: ExecutionContext) -> ExecutionOutcome:
    return outcome


@dataclass(frozen=True)
class ExecutionHooks:
    """Toolchain-specific customization points of the execution pipeline.

    Each field is a plain callable; toolchains compose behavior by supplying
    different functions rather than subclassing the engine.

    Attributes:
        resolve_executable: Returns the executable to launch, or None when it
            cannot be found.
        preflight: Returns an error message to abort before launching.
        format_arguments: Rewrites the argument string.
        mutate_environment: Adjusts the child environment copy in place.
        post_process: Inspects or transforms the outcome.
    """

    resolve_executable: ResolveExecutable = resolve_configured_executable
    preflight: Preflight = no_preflight
    format_arguments: FormatArguments = pass_through_arguments
    mutate_environment: MutateEnvironment = keep_environment
    post_process: PostProcess = keep_outcome

    def replace(self, **changes: Any) -> ExecutionHooks:
        """Return a copy with the given hooks overridden."""

        return replace(self, **changes)


DEFAULT_HOOKS = ExecutionHooks()
