"""Operations wrapping each supported toolchain."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from toolchain_dispatch.config import ConfigProvider
from toolchain_dispatch.execution.engine import ExecutionEngine
from toolchain_dispatch.installations.resolver import InstallationResolver
from toolchain_dispatch.toolchains.base import Toolchain, create_engine
from toolchain_dispatch.toolchains.delphi import (
    DccCompiler,
    make_dcc_toolchain,
    make_delphi_msbuild_toolchain,
)
from toolchain_dispatch.toolchains.generic import CARGO, DOTNET, PYTHON
from toolchain_dispatch.toolchains.msbuild import MSBUILD, MSBuildBuilder
from toolchain_dispatch.tools.base import Tool, ToolExecutionError, ToolResult
from toolchain_dispatch.tools.registry import ToolRegistry
from toolchain_dispatch.util.observability import ObservabilityManager


@dataclass
class RunCommandTool(Tool):
    """Run a toolchain executable with a caller-supplied argument string."""

    engine: ExecutionEngine
    operation_name: str
    summary: str

    @property
    def name(self) -> str:
        return self.operation_name

    @property
    def description(self) -> str:
        return self.summary

    @property
    def input_schema(self) -> dict[str, Any]:
        return {"command": "string", "working_directory": "string | null"}

    def execute(self, arguments: dict[str, Any]) -> ToolResult:
        command = _require_str(arguments, "command")
        working_directory = _optional_str(arguments, "working_directory")
        outcome = self.engine.execute(command, working_directory)
        return ToolResult.from_outcome(self.name, outcome)


@dataclass
class BuildProjectTool(Tool):
    """Build a project file with MSBuild."""

    builder: MSBuildBuilder
    operation_name: str
    summary: str

    @property
    def name(self) -> str:
        return self.operation_name

    @property
    def description(self) -> str:
        return self.summary

    @property
    def input_schema(self) -> dict[str, Any]:
        return {"project_path": "string", "build_options": "string | null"}

    def execute(self, arguments: dict[str, Any]) -> ToolResult:
        project_path = _require_str(arguments, "project_path")
        build_options = _optional_str(arguments, "build_options")
        outcome = self.builder.build_project(project_path, build_options)
        return ToolResult.from_outcome(self.name, outcome)


@dataclass
class CompileDprTool(Tool):
    """Compile a Delphi program with dcc32/dcc64."""

    compiler: DccCompiler

    @property
    def name(self) -> str:
        return "compile_delphi_dpr"

    @property
    def description(self) -> str:
        return "Compile Delphi .dpr project using dcc32/dcc64."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {"dpr_path": "string", "architecture": "string | null"}

    def execute(self, arguments: dict[str, Any]) -> ToolResult:
        # An empty path is reported by the compiler's pre-flight check.
        dpr_path = _optional_str(arguments, "dpr_path") or ""
        architecture = _optional_str(arguments, "architecture") or "Win32"
        outcome = self.compiler.compile(dpr_path, architecture)
        return ToolResult.from_outcome(self.name, outcome)


def build_default_tool_registry(
    config_provider: ConfigProvider,
    *,
    observability: ObservabilityManager | None = None,
    delphi_resolver: InstallationResolver | None = None,
) -> ToolRegistry:
    """Create a registry with one operation per supported toolchain.

    Args:
        config_provider: Source of configuration snapshots for every engine.
        observability: Optional structured event and metrics sink.
        delphi_resolver: Resolver used by the Delphi operations; defaults to
            the standard Embarcadero install roots.

    Returns:
        ToolRegistry with all toolchain operations registered.
    """

    def engine_for(toolchain: Toolchain) -> ExecutionEngine:
        return create_engine(toolchain, config_provider, observability)

    registry = ToolRegistry()
    registry.register(
        RunCommandTool(
            engine=engine_for(DOTNET),
            operation_name="execute_dotnet_command",
            summary="Execute .NET CLI commands for building, running, or managing .NET projects "
            "(e.g. 'build', 'run', 'test', 'new console').",
        )
    )
    registry.register(
        RunCommandTool(
            engine=engine_for(CARGO),
            operation_name="execute_cargo_command",
            summary="Execute Rust cargo commands for building, running, or managing Rust projects "
            "(e.g. 'build', 'run', 'test', 'new myproject').",
        )
    )
    registry.register(
        RunCommandTool(
            engine=engine_for(PYTHON),
            operation_name="execute_python_command",
            summary="Execute Python scripts or commands using the Python interpreter "
            "(e.g. 'script.py', '-m pip install package').",
        )
    )
    registry.register(
        BuildProjectTool(
            builder=MSBuildBuilder(engine_for(MSBUILD)),
            operation_name="build_project",
            summary="Build projects using MSBuild (.sln, .csproj, .vcxproj, .dproj). "
            "Optional build options such as '/t:Rebuild /p:Configuration=Release'.",
        )
    )
    registry.register(
        BuildProjectTool(
            builder=MSBuildBuilder(engine_for(make_delphi_msbuild_toolchain(delphi_resolver))),
            operation_name="build_delphi_project",
            summary="Build Delphi projects (.dproj) using MSBuild with the matching Delphi "
            "installation exported as BDS.",
        )
    )
    registry.register(
        CompileDprTool(compiler=DccCompiler(engine_for(make_dcc_toolchain(delphi_resolver))))
    )
    return registry


def _require_str(arguments: dict[str, Any], key: str) -> str:
    value = arguments.get(key)
    if not isinstance(value, str):
        raise ToolExecutionError(f"'{key}' must be a string")
    return value


def _optional_str(arguments: dict[str, Any], key: str) -> str | None:
    value = arguments.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ToolExecutionError(f"'{key}' must be a string or null")
    return value or None
