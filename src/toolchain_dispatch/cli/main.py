"""CLI entrypoints for toolchain-dispatch."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import typer

from toolchain_dispatch.app import (
    AppConfigError,
    build_runtime,
    create_config_provider,
    initialize_config,
    resolve_delphi,
    run_operation,
)
from toolchain_dispatch.tools.base import ToolExecutionError, ToolResult
from toolchain_dispatch.tools.registry import ToolRegistryError
from toolchain_dispatch.util.logging import configure_logging

app = typer.Typer(help="Run build/run toolchains with timeout control and captured output.")

_COMMAND_OPERATIONS = {
    "dotnet": "execute_dotnet_command",
    "cargo": "execute_cargo_command",
    "python": "execute_python_command",
}
_state: dict[str, Any] = {"config": None}


@app.callback()
def main(
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        help="Logging level (e.g., DEBUG, INFO, WARNING).",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file or directory holding one.",
    ),
) -> None:
    """Configure CLI-level options."""

    configure_logging(log_level)
    _state["config"] = config


@app.command()
def init(directory: Path = typer.Argument(Path("."))) -> None:
    """Write a default configuration file."""

    try:
        config_path = initialize_config(directory)
    except AppConfigError as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from exc
    typer.echo(f"Created configuration at {config_path}")


@app.command("tools")
def tools_command() -> None:
    """List the available operations."""

    try:
        runtime = build_runtime(create_config_provider(_state["config"]))
    except AppConfigError as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from exc
    for name, description in runtime.registry.describe().items():
        typer.echo(f"{name}: {description}")


@app.command("exec")
def exec_command(
    toolchain: str = typer.Argument(..., help="Toolchain to run: dotnet|cargo|python"),
    command: str = typer.Argument(..., help="Argument string passed to the executable."),
    cwd: Optional[Path] = typer.Option(None, "--cwd", help="Working directory."),
) -> None:
    """Run a dotnet, cargo or python command."""

    operation = _COMMAND_OPERATIONS.get(toolchain.lower())
    if operation is None:
        typer.echo(f"Error: Unknown toolchain '{toolchain}'. Choose one of: dotnet, cargo, python.")
        raise typer.Exit(code=2)
    arguments = {"command": command, "working_directory": str(cwd) if cwd else None}
    _run(operation, arguments)


@app.command("build")
def build_command(
    project: Path = typer.Argument(..., help="Project or solution file."),
    options: Optional[str] = typer.Option(None, "--options", help="Additional MSBuild options."),
) -> None:
    """Build a project with MSBuild."""

    _run("build_project", {"project_path": str(project), "build_options": options})


@app.command("build-delphi")
def build_delphi_command(
    project: Path = typer.Argument(..., help="Delphi project file (.dproj)."),
    options: Optional[str] = typer.Option(None, "--options", help="Additional MSBuild options."),
) -> None:
    """Build a Delphi project with MSBuild."""

    _run("build_delphi_project", {"project_path": str(project), "build_options": options})


@app.command("compile-dpr")
def compile_dpr_command(
    dpr: Path = typer.Argument(..., help="Delphi program file (.dpr)."),
    arch: str = typer.Option("Win32", "--arch", help="Target architecture (Win32 or Win64)."),
) -> None:
    """Compile a Delphi program with dcc32/dcc64."""

    _run("compile_delphi_dpr", {"dpr_path": str(dpr), "architecture": arch})


@app.command("resolve-delphi")
def resolve_delphi_command(
    version: Optional[str] = typer.Option(None, "--version", help="Target ProjectVersion, e.g. 22.0."),
) -> None:
    """Show which Delphi installation a build would use."""

    try:
        install_path = resolve_delphi(version, _state["config"])
    except AppConfigError as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from exc
    if install_path is None:
        typer.echo("No Delphi installation found; the compiler will be looked up on PATH.")
        raise typer.Exit(code=1)
    typer.echo(install_path)


def _run(operation: str, arguments: dict[str, Any]) -> None:
    try:
        result: ToolResult = run_operation(operation, arguments, _state["config"])
    except (AppConfigError, ToolExecutionError, ToolRegistryError) as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from exc
    typer.echo(result.output)
    if not result.success:
        raise typer.Exit(code=1)
