"""Subprocess execution pipeline shared by every toolchain."""

from __future__ import annotations

import os
import shlex
import signal
import subprocess
import sys
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import IO, Any, Iterator

from toolchain_dispatch.config import ConfigProvider, FeaturesConfig
from toolchain_dispatch.execution.base import (
    DEFAULT_HOOKS,
    ExecutionContext,
    ExecutionHooks,
    ExecutionOutcome,
    ToolLocation,
)
from toolchain_dispatch.util.logging import get_logger
from toolchain_dispatch.util.observability import ObservabilityManager

_READER_GRACE_S = 2.0
_IS_WINDOWS = sys.platform == "win32"

_LOGGER = get_logger("toolchain_dispatch.execution")


@dataclass(frozen=True)
class ProcessInvocation:
    """Everything needed to launch one process.

    Attributes:
        executable: Executable path or bare name resolved through PATH.
        arguments: Argument string passed to the executable as a single blob.
        working_directory: Directory the process runs in.
        env: Complete environment for the child process.
    """

    executable: str
    arguments: str
    working_directory: str
    env: dict[str, str]

    def command_line(self) -> str | list[str]:
        """Return the value handed to ``subprocess.Popen``.

        On Windows the argument string is appended to the quoted executable
        and passed to CreateProcess untouched, so the target toolchain parses
        its own quoting. Elsewhere it is split with POSIX shell rules; no shell
        is ever involved.
        """

        if _IS_WINDOWS:
            executable = subprocess.list2cmdline([self.executable])
            return f"{executable} {self.arguments}" if self.arguments else executable
        return [self.executable, *shlex.split(self.arguments)]


@dataclass
class _CapturedStreams:
    stdout: list[str]
    stderr: list[str]

    def text(self) -> tuple[str, str]:
        return "\n".join(list(self.stdout)), "\n".join(list(self.stderr))


class ExecutionEngine:
    """Resolve, launch and supervise a toolchain executable.

    One engine serves one toolchain. Behavior specific to a toolchain is
    supplied through :class:`ExecutionHooks`; the pipeline itself is fixed:
    resolve executable, pre-flight check, format arguments, build the
    invocation, adjust the environment, launch with stream capture, enforce
    the deadline, post-process.
    """

    def __init__(
        self,
        tool_name: str,
        config_key: str,
        default_executable: str,
        config_provider: ConfigProvider,
        *,
        hooks: ExecutionHooks | None = None,
        observability: ObservabilityManager | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            tool_name: Human-readable toolchain name used in messages.
            config_key: Key of the toolchain in the tools configuration.
            default_executable: Executable name used when none is configured.
            config_provider: Source of configuration snapshots, read once per call.
            hooks: Toolchain-specific pipeline hooks.
            observability: Optional structured event and metrics sink.
        """

        self._tool_name = tool_name
        self._config_key = config_key
        self._default_executable = default_executable
        self._config_provider = config_provider
        self._hooks = hooks or DEFAULT_HOOKS
        self._observability = observability
        self._logger = get_logger(f"toolchain_dispatch.execution.{config_key}")

    @property
    def tool_name(self) -> str:
        return self._tool_name

    @property
    def config_provider(self) -> ConfigProvider:
        return self._config_provider

    def execute(
        self,
        command: str,
        working_directory: str | None = None,
        *,
        hooks: ExecutionHooks | None = None,
        extras: dict[str, Any] | None = None,
    ) -> ExecutionOutcome:
        """Run the toolchain executable with the given argument string.

        Args:
            command: Argument string passed to the executable.
            working_directory: Directory to run in. Defaults to the current directory.
            hooks: Per-call hooks overriding the engine's defaults.
            extras: Call-specific values exposed to hooks through the context.

        Returns:
            ExecutionOutcome describing the run. Failures are reported through
            ``fatal_error``; this method does not raise.
        """

        self._logger.info("Executing %s command: %s", self._tool_name, command)
        features: FeaturesConfig | None = None
        start = time.monotonic()
        try:
            settings = self._config_provider.current()
            features = settings.features
            tool_config = settings.tools.get(self._config_key)
            context = ExecutionContext(
                tool_name=self._tool_name,
                command=command,
                working_directory=working_directory or os.getcwd(),
                location=ToolLocation.from_config(tool_config, self._default_executable),
                tool_config=tool_config,
                features=features,
                extras=dict(extras or {}),
            )
            self._emit(features, "execution.started", {"command": command})
            outcome = self._run_pipeline(context, hooks or self._hooks)
        except Exception as exc:
            self._logger.exception("Error executing %s command: %s", self._tool_name, command)
            outcome = ExecutionOutcome.failure(str(exc), command=command)

        duration = time.monotonic() - start
        outcome = replace(outcome, command=command, duration_s=duration)
        self._record(features, outcome)
        return outcome

    def _run_pipeline(self, context: ExecutionContext, hooks: ExecutionHooks) -> ExecutionOutcome:
        executable = hooks.resolve_executable(context)
        if executable is None:
            self._logger.error(
                "%s executable not found at %s", self._tool_name, context.location.resolved_path
            )
            return ExecutionOutcome.failure(
                f"{self._tool_name} executable not found at {context.location.resolved_path}. "
                "Please update the configuration with the correct path or leave path empty "
                "to use PATH.",
                command=context.command,
            )
        if context.location.uses_search_path and executable == context.location.executable_name:
            self._logger.info("Using executable from PATH: %s", executable)

        preflight_error = hooks.preflight(context)
        if preflight_error:
            self._logger.warning("%s pre-flight check failed: %s", self._tool_name, preflight_error)
            return ExecutionOutcome.failure(preflight_error, command=context.command)

        env = dict(os.environ)
        hooks.mutate_environment(env, context)
        invocation = ProcessInvocation(
            executable=executable,
            arguments=hooks.format_arguments(context.command),
            working_directory=context.working_directory,
            env=env,
        )

        outcome = self._run_process(invocation, context.features)
        return hooks.post_process(outcome, context)

    def _run_process(
        self, invocation: ProcessInvocation, features: FeaturesConfig
    ) -> ExecutionOutcome:
        timeout_s = features.default_timeout_s
        with _spawn(invocation) as (process, captured):
            try:
                exit_code = process.wait(timeout=timeout_s)
            except subprocess.TimeoutExpired:
                self._logger.warning(
                    "%s command timed out after %s seconds: %s",
                    self._tool_name,
                    timeout_s,
                    invocation.arguments,
                )
                _terminate(process)
                exit_code = None

        stdout, stderr = captured.text()
        captured_size = len(stdout) + len(stderr)
        if captured_size > features.max_output_size:
            self._logger.warning(
                "%s captured %s characters of output, above the configured maximum of %s",
                self._tool_name,
                captured_size,
                features.max_output_size,
            )
        return ExecutionOutcome(
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            timed_out=exit_code is None,
        )

    def _emit(self, features: FeaturesConfig | None, event_type: str, payload: dict[str, Any]) -> None:
        if self._observability is None or features is None or not features.enable_logging:
            return
        self._observability.log_event(event_type, {"tool": self._tool_name, **payload})

    def _record(self, features: FeaturesConfig | None, outcome: ExecutionOutcome) -> None:
        if outcome.fatal_error is not None:
            event_type = "execution.failed"
        elif outcome.timed_out:
            event_type = "execution.timed_out"
        else:
            event_type = "execution.finished"
        if self._observability is not None:
            self._observability.metrics.increment(f"{self._config_key}.{event_type}")
            self._observability.metrics.record_duration(
                f"{self._config_key}.duration", outcome.duration_s
            )
        self._emit(
            features,
            event_type,
            {
                "command": outcome.command,
                "exit_code": outcome.exit_code,
                "timed_out": outcome.timed_out,
                "error": outcome.fatal_error,
                "duration_s": round(outcome.duration_s, 3),
            },
        )


@contextmanager
def _spawn(invocation: ProcessInvocation) -> Iterator[tuple[subprocess.Popen[str], _CapturedStreams]]:
    """Launch a process in its own process group with both output streams drained.

    On every exit path the group is killed if the process is still running
    and the process is reaped. Readers get a bounded grace period; a reader
    still blocked on a pipe held open by a surviving descendant (a build
    server, say) is left behind and closes its stream once the pipe drains.
    """

    if _IS_WINDOWS:
        platform_options: dict[str, Any] = {
            "creationflags": subprocess.CREATE_NO_WINDOW | subprocess.CREATE_NEW_PROCESS_GROUP
        }
    else:
        platform_options = {"start_new_session": True}
    process = subprocess.Popen(
        invocation.command_line(),
        cwd=invocation.working_directory,
        env=invocation.env,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
        shell=False,
        **platform_options,
    )
    captured = _CapturedStreams(stdout=[], stderr=[])
    readers = [
        _start_reader(process.stdout, captured.stdout),
        _start_reader(process.stderr, captured.stderr),
    ]
    try:
        yield process, captured
    finally:
        if process.poll() is None:
            _terminate(process)
        grace_deadline = time.monotonic() + _READER_GRACE_S
        for reader in readers:
            reader.join(timeout=max(0.0, grace_deadline - time.monotonic()))
            if reader.is_alive():
                _LOGGER.debug("Output pipe of process %s still held open by a descendant", process.pid)


def _start_reader(stream: IO[str] | None, sink: list[str]) -> threading.Thread:
    def drain() -> None:
        if stream is None:
            return
        try:
            for line in iter(stream.readline, ""):
                sink.append(line.rstrip("\r\n"))
        except (OSError, ValueError):
            # Pipe closed underneath the reader after a kill.
            return
        finally:
            stream.close()

    thread = threading.Thread(target=drain, daemon=True)
    thread.start()
    return thread


def _terminate(process: subprocess.Popen[str]) -> None:
    """Kill the process together with every process it started, then reap it."""

    if _IS_WINDOWS:
        try:
            subprocess.run(
                ["taskkill", "/F", "/T", "/PID", str(process.pid)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
                creationflags=subprocess.CREATE_NO_WINDOW,
            )
        except OSError as exc:
            _LOGGER.debug("taskkill failed for process %s: %s", process.pid, exc)
    else:
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError) as exc:
            _LOGGER.debug("Could not kill process group %s: %s", process.pid, exc)
    try:
        process.kill()
    except ProcessLookupError:
        pass
    process.wait()
