"""MSBuild project builds."""

from __future__ import annotations

import os

from toolchain_dispatch.config import default_msbuild_executable
from toolchain_dispatch.execution.base import ExecutionContext, ExecutionHooks, ExecutionOutcome
from toolchain_dispatch.execution.engine import ExecutionEngine
from toolchain_dispatch.toolchains.base import Toolchain

PROJECT_PATH = "project_path"


def require_project_file(context: ExecutionContext) -> str | None:
    """Abort when the project file passed to the build does not exist."""

    project_path = context.extras.get(PROJECT_PATH)
    if project_path is not None and not os.path.isfile(project_path):
        return f"Project file not found at {project_path}"
    return None


def format_build_command(project_path: str, build_options: str | None = None) -> str:
    """Return ``[<options> ]"<project_path>"``."""

    if build_options and build_options.strip():
        return f'{build_options.strip()} "{project_path}"'
    return f'"{project_path}"'


MSBUILD_HOOKS = ExecutionHooks(preflight=require_project_file)

MSBUILD = Toolchain(
    name="MSBuild",
    config_key="msbuild",
    default_executable=default_msbuild_executable(),
    hooks=MSBUILD_HOOKS,
)


class MSBuildBuilder:
    """Build a project file (.sln, .csproj, .vcxproj, .dproj) with MSBuild."""

    def __init__(self, engine: ExecutionEngine) -> None:
        self._engine = engine

    @property
    def engine(self) -> ExecutionEngine:
        return self._engine

    def build_project(self, project_path: str, build_options: str | None = None) -> ExecutionOutcome:
        """Build a project from inside its own directory.

        Args:
            project_path: Path to the project or solution file.
            build_options: Extra MSBuild switches, e.g. ``/t:Rebuild /p:Configuration=Release``.

        Returns:
            ExecutionOutcome of the MSBuild run.
        """

        project_path = os.path.abspath(project_path)
        working_directory = os.path.dirname(project_path)
        return self._engine.execute(
            format_build_command(project_path, build_options),
            working_directory,
            extras={PROJECT_PATH: project_path},
        )
