from __future__ import annotations

import logging
import os
import signal
import sys
import time
from dataclasses import replace
from pathlib import Path

import pytest

from conftest import FakePopen, make_config, python_tool_config
from toolchain_dispatch.config import StaticConfigProvider, ToolConfig
from toolchain_dispatch.execution.base import (
    ExecutionContext,
    ExecutionHooks,
    ExecutionOutcome,
    ToolLocation,
    resolve_configured_executable,
)
from toolchain_dispatch.execution.engine import ExecutionEngine, ProcessInvocation
from toolchain_dispatch.util.observability import create_observability_manager

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX argument splitting")


def python_engine(provider: StaticConfigProvider, **kwargs: object) -> ExecutionEngine:
    return ExecutionEngine("python", "python", "python", provider, **kwargs)  # type: ignore[arg-type]


def test_engine_runs_command_and_captures_output(python_provider: StaticConfigProvider) -> None:
    engine = python_engine(python_provider)

    outcome = engine.execute("-c \"print('ok'); print('second line')\"")

    assert outcome.success is True
    assert outcome.exit_code == 0
    assert outcome.stdout == "ok\nsecond line"
    assert outcome.stderr == ""
    assert outcome.fatal_error is None
    assert outcome.duration_s >= 0


def test_engine_reports_exit_code_and_stderr(python_provider: StaticConfigProvider) -> None:
    engine = python_engine(python_provider)

    outcome = engine.execute("-c \"import sys; print('warn', file=sys.stderr); sys.exit(3)\"")

    assert outcome.success is False
    assert outcome.exit_code == 3
    assert outcome.stderr == "warn"
    assert outcome.timed_out is False
    assert outcome.fatal_error is None


def test_engine_runs_in_working_directory(python_provider: StaticConfigProvider, tmp_path: Path) -> None:
    engine = python_engine(python_provider)

    outcome = engine.execute("-c \"import os; print(os.getcwd())\"", str(tmp_path))

    assert os.path.realpath(outcome.stdout) == os.path.realpath(tmp_path)


def test_missing_configured_executable_is_fatal_without_spawning(
    tmp_path: Path, forbid_popen: None
) -> None:
    missing_dir = tmp_path / "no-such-toolchain"
    provider = StaticConfigProvider(
        make_config(dotnet=ToolConfig(path=str(missing_dir), executable_name="dotnet"))
    )
    engine = ExecutionEngine("dotnet", "dotnet", "dotnet", provider)

    outcome = engine.execute("build")

    assert outcome.success is False
    assert outcome.fatal_error is not None
    assert outcome.fatal_error.startswith("dotnet executable not found at")
    assert str(missing_dir) in outcome.fatal_error
    assert outcome.render().startswith("Error: dotnet executable not found")


@posix_only
def test_empty_directory_uses_bare_executable_name(
    fake_popen: type[FakePopen], tmp_path: Path
) -> None:
    provider = StaticConfigProvider(make_config(rust=ToolConfig(path="", executable_name="cargo")))
    engine = ExecutionEngine("cargo", "rust", "cargo", provider)

    first = engine.execute("build --release")
    second = engine.execute("test", str(tmp_path))

    assert first.stdout == "fake output"
    assert second.success is True
    assert [call["args"] for call in fake_popen.calls] == [
        ["cargo", "build", "--release"],
        ["cargo", "test"],
    ]
    assert fake_popen.calls[1]["cwd"] == str(tmp_path)


def test_default_resolver_returns_bare_name_for_search_path() -> None:
    location = ToolLocation(executable_name="cargo")
    context = ExecutionContext(
        tool_name="cargo",
        command="build",
        working_directory="/somewhere/else",
        location=location,
        tool_config=ToolConfig(executable_name="cargo"),
        features=make_config().features,
    )

    assert resolve_configured_executable(context) == "cargo"
    assert location.resolved_path == "cargo"


@posix_only
def test_invocation_never_uses_a_shell(fake_popen: type[FakePopen]) -> None:
    provider = StaticConfigProvider(make_config(rust=ToolConfig(executable_name="cargo")))
    engine = ExecutionEngine("cargo", "rust", "cargo", provider)

    engine.execute("run -- 'a b' && rm -rf /")

    call = fake_popen.calls[0]
    assert call["shell"] is False
    assert call["args"] == ["cargo", "run", "--", "a b", "&&", "rm", "-rf", "/"]
    assert call["stdout"] is not None and call["stderr"] is not None


@posix_only
def test_timeout_kills_process_and_keeps_partial_output() -> None:
    provider = StaticConfigProvider(make_config(timeout_s=1, python=python_tool_config()))
    engine = python_engine(provider)

    outcome = engine.execute(
        "-c \"import os, time; print(os.getpid(), flush=True); time.sleep(30)\""
    )

    assert outcome.timed_out is True
    assert outcome.exit_code is None
    assert outcome.success is False
    assert outcome.fatal_error is None
    assert outcome.duration_s < 15
    pid = int(outcome.stdout.strip())
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)
    assert "=== Execution Timed Out ===" in outcome.render()


def test_preflight_failure_aborts_before_launch(
    python_provider: StaticConfigProvider, forbid_popen: None
) -> None:
    hooks = ExecutionHooks(preflight=lambda context: "Project file not found at nowhere.proj")
    engine = python_engine(python_provider, hooks=hooks)

    outcome = engine.execute("--version")

    assert outcome.fatal_error == "Project file not found at nowhere.proj"
    assert outcome.render() == "Error: Project file not found at nowhere.proj"


def test_hooks_customize_arguments_environment_and_outcome(
    python_provider: StaticConfigProvider,
) -> None:
    seen: list[str] = []

    def mutate(env: dict[str, str], context: ExecutionContext) -> None:
        env["DISPATCH_TEST_VALUE"] = "injected"

    def post(outcome: ExecutionOutcome, context: ExecutionContext) -> ExecutionOutcome:
        seen.append(context.extras["label"])
        return replace(outcome, stdout=outcome.stdout.upper())

    hooks = ExecutionHooks(
        format_arguments=lambda command: f"-c \"import os; print(os.environ['{command}'])\"",
        mutate_environment=mutate,
        post_process=post,
    )
    engine = python_engine(python_provider)

    outcome = engine.execute("DISPATCH_TEST_VALUE", hooks=hooks, extras={"label": "env-check"})

    assert outcome.success is True
    assert outcome.stdout == "INJECTED"
    assert outcome.command == "DISPATCH_TEST_VALUE"
    assert seen == ["env-check"]
    assert "DISPATCH_TEST_VALUE" not in os.environ


def test_hook_exception_becomes_fatal_error(python_provider: StaticConfigProvider) -> None:
    def explode(command: str) -> str:
        raise RuntimeError("formatter exploded")

    engine = python_engine(python_provider, hooks=ExecutionHooks(format_arguments=explode))

    outcome = engine.execute("anything")

    assert outcome.fatal_error == "formatter exploded"
    assert outcome.success is False


def test_launch_failure_becomes_fatal_error() -> None:
    provider = StaticConfigProvider(
        make_config(dotnet=ToolConfig(executable_name="definitely-not-a-real-toolchain-xyz"))
    )
    engine = ExecutionEngine("dotnet", "dotnet", "dotnet", provider)

    outcome = engine.execute("--info")

    assert outcome.fatal_error is not None
    assert outcome.exit_code is None
    assert outcome.render().startswith("Error: ")


def test_configuration_snapshot_is_taken_per_call(tmp_path: Path) -> None:
    provider = StaticConfigProvider(make_config(python=python_tool_config()))
    engine = python_engine(provider)

    assert engine.execute("-c \"print('first')\"").success is True

    provider.update(make_config(python=ToolConfig(path=str(tmp_path), executable_name="python")))
    outcome = engine.execute("-c \"print('second')\"")

    assert outcome.fatal_error is not None
    assert str(tmp_path) in outcome.fatal_error


def test_output_above_configured_maximum_is_logged_not_truncated(
    caplog: pytest.LogCaptureFixture,
) -> None:
    provider = StaticConfigProvider(make_config(max_output_size=4, python=python_tool_config()))
    engine = python_engine(provider)
    caplog.set_level(logging.WARNING)

    outcome = engine.execute("-c \"print('hello world')\"")

    assert outcome.stdout == "hello world"
    assert any("above the configured maximum" in record.getMessage() for record in caplog.records)


def test_engine_records_metrics_and_events(
    python_provider: StaticConfigProvider, caplog: pytest.LogCaptureFixture
) -> None:
    observability = create_observability_manager()
    engine = python_engine(python_provider, observability=observability)
    caplog.set_level(logging.INFO, logger="toolchain_dispatch.events")

    engine.execute("-c \"print('ok')\"")

    snapshot = observability.metrics.snapshot()
    assert snapshot["counters"]["python.execution.finished"] == 1
    assert snapshot["durations"]["python.duration"]["count"] == 1.0
    messages = [record.getMessage() for record in caplog.records if record.name == "toolchain_dispatch.events"]
    assert any('"execution.started"' in message for message in messages)
    assert any('"execution.finished"' in message for message in messages)


@posix_only
def test_process_invocation_splits_quoted_arguments() -> None:
    invocation = ProcessInvocation(
        executable="msbuild",
        arguments='/t:Rebuild "My Project/app.csproj"',
        working_directory=".",
        env={},
    )

    assert invocation.command_line() == ["msbuild", "/t:Rebuild", "My Project/app.csproj"]


def write_script(directory: Path, name: str, body: str) -> Path:
    script = directory / name
    script.write_text(body, encoding="utf-8")
    return script


@posix_only
def test_timeout_kills_processes_started_by_the_child(tmp_path: Path) -> None:
    script = write_script(
        tmp_path,
        "spawner.py",
        "import subprocess, sys, time\n"
        "subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(30)'])\n"
        "print('spawned', flush=True)\n"
        "time.sleep(30)\n",
    )
    provider = StaticConfigProvider(make_config(timeout_s=1, python=python_tool_config()))
    engine = python_engine(provider)

    started = time.monotonic()
    outcome = engine.execute(f'"{script}"')
    elapsed = time.monotonic() - started

    assert outcome.timed_out is True
    assert outcome.stdout == "spawned"
    assert elapsed < 8


@posix_only
def test_normal_exit_returns_while_a_descendant_holds_the_pipes(tmp_path: Path) -> None:
    script = write_script(
        tmp_path,
        "server.py",
        "import subprocess, sys\n"
        "server = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(30)'])\n"
        "print(server.pid)\n"
        "print('done')\n",
    )
    engine = python_engine(StaticConfigProvider(make_config(python=python_tool_config())))

    started = time.monotonic()
    outcome = engine.execute(f'"{script}"')
    elapsed = time.monotonic() - started

    server_pid, message = outcome.stdout.splitlines()
    os.kill(int(server_pid), signal.SIGKILL)
    assert outcome.success is True
    assert message == "done"
    assert elapsed < 10


@posix_only
def test_in_flight_call_keeps_its_configuration_snapshot() -> None:
    provider = StaticConfigProvider(make_config(python=python_tool_config()))

    def swap_config(env: dict[str, str], context: ExecutionContext) -> None:
        provider.update(make_config(timeout_s=1, python=python_tool_config()))

    engine = python_engine(provider)
    command = "-c \"import time; time.sleep(2); print('slept')\""

    first = engine.execute(command, hooks=ExecutionHooks(mutate_environment=swap_config))
    second = engine.execute(command)

    assert first.success is True
    assert first.stdout == "slept"
    assert second.timed_out is True
