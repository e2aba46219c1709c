"""Delphi builds through MSBuild and the dcc32/dcc64 command-line compilers.

Both adapters locate the Delphi installation matching the project's
``ProjectVersion`` (read from its ``.dproj``) with an
:class:`InstallationResolver`. Installations listed under
``tools.msbuild_delphi.delphi_install_paths`` take priority over the
standard Embarcadero install roots.
"""

from __future__ import annotations

import os
import xml.etree.ElementTree as ElementTree
from typing import Sequence

from toolchain_dispatch.config import default_msbuild_executable
from toolchain_dispatch.execution.base import ExecutionContext, ExecutionHooks, ExecutionOutcome
from toolchain_dispatch.execution.engine import ExecutionEngine
from toolchain_dispatch.installations.resolver import InstallationResolver
from toolchain_dispatch.toolchains.base import Toolchain
from toolchain_dispatch.toolchains.msbuild import PROJECT_PATH, MSBUILD_HOOKS
from toolchain_dispatch.util.logging import get_logger

DELPHI_STANDARD_ROOTS: tuple[str, ...] = (
    r"C:\Program Files (x86)\Embarcadero\Studio",
    r"C:\Program Files\Embarcadero\Studio",
)
DELPHI_BINARIES: tuple[str, ...] = ("dcc32.exe", "dcc64.exe", "bds.exe")
BDS_ENV_VAR = "BDS"
DPR_PATH = "dpr_path"
ARCHITECTURE = "architecture"
_WIN64_ALIASES = {"win64", "x64"}

_LOGGER = get_logger("toolchain_dispatch.toolchains.delphi")


def default_delphi_resolver() -> InstallationResolver:
    """Return a resolver over the standard Embarcadero Studio install roots."""

    return InstallationResolver(
        DELPHI_STANDARD_ROOTS,
        binary_subdir="bin",
        expected_binaries=DELPHI_BINARIES,
    )


def read_project_version(project_path: str) -> str | None:
    """Return the ``ProjectVersion`` of a ``.dproj`` file, or None.

    Only the first ``PropertyGroup`` is consulted, which is where the IDE
    writes it.
    """

    if not os.path.isfile(project_path):
        _LOGGER.warning("Project file not found: %s", project_path)
        return None
    try:
        root = ElementTree.parse(project_path).getroot()
    except (ElementTree.ParseError, OSError) as exc:
        _LOGGER.error("Error extracting ProjectVersion from %s: %s", project_path, exc)
        return None

    namespace = root.tag[: root.tag.index("}") + 1] if root.tag.startswith("{") else ""
    property_group = root.find(f"{namespace}PropertyGroup")
    if property_group is None:
        _LOGGER.warning("PropertyGroup not found in project file: %s", project_path)
        return None

    version_element = property_group.find(f"{namespace}ProjectVersion")
    if version_element is None or not (version_element.text or "").strip():
        _LOGGER.warning("ProjectVersion element not found in project file: %s", project_path)
        return None
    version = version_element.text.strip()
    _LOGGER.info("Extracted ProjectVersion from %s: %s", project_path, version)
    return version


def resolve_delphi_installation(
    resolver: InstallationResolver,
    project_version: str | None,
    configured_paths: Sequence[str],
) -> str | None:
    """Resolve the Delphi installation for a project version, logging the outcome."""

    resolved = resolver.resolve_install_path(project_version, list(configured_paths))
    if resolved is not None:
        _LOGGER.info(
            "Resolved Delphi installation: %s for project version %s",
            resolved,
            project_version or "auto-detected",
        )
    elif configured_paths:
        _LOGGER.warning("No matching Delphi installation found in configured paths or standard locations")
    else:
        _LOGGER.warning(
            "No Delphi installation found in standard locations. "
            "Consider adding delphi_install_paths to the configuration"
        )
    return resolved


def make_delphi_msbuild_toolchain(resolver: InstallationResolver | None = None) -> Toolchain:
    """Return the MSBuild toolchain variant that exports ``BDS`` for Delphi projects."""

    resolver = resolver or default_delphi_resolver()

    def inject_bds(env: dict[str, str], context: ExecutionContext) -> None:
        project_path = context.extras.get(PROJECT_PATH)
        project_version = read_project_version(project_path) if project_path else None
        install_path = resolve_delphi_installation(
            resolver, project_version, context.tool_config.delphi_install_paths
        )
        if install_path is None:
            _LOGGER.warning(
                "No Delphi installation found for project %s (version: %s)",
                project_path,
                project_version or "unknown",
            )
        env[BDS_ENV_VAR] = install_path or ""

    return Toolchain(
        name="MSBuild (Delphi)",
        config_key="msbuild_delphi",
        default_executable=default_msbuild_executable(),
        hooks=MSBUILD_HOOKS.replace(mutate_environment=inject_bds),
    )


def compiler_executable(architecture: str | None) -> str:
    """Return ``dcc64.exe`` for Win64/x64 targets and ``dcc32.exe`` otherwise."""

    if architecture and architecture.strip().lower() in _WIN64_ALIASES:
        return "dcc64.exe"
    return "dcc32.exe"


def require_dpr_file(context: ExecutionContext) -> str | None:
    dpr_path = context.extras.get(DPR_PATH)
    if not dpr_path or not os.path.isfile(dpr_path):
        return "DPR file not found or path not provided."
    return None


def make_dcc_toolchain(resolver: InstallationResolver | None = None) -> Toolchain:
    """Return the dcc32/dcc64 toolchain with version-aware compiler lookup."""

    resolver = resolver or default_delphi_resolver()

    def locate_compiler(context: ExecutionContext) -> str | None:
        exe_name = compiler_executable(context.extras.get(ARCHITECTURE))
        dpr_path = context.extras.get(DPR_PATH)
        project_version = None
        if dpr_path:
            dproj_path = os.path.splitext(dpr_path)[0] + ".dproj"
            if os.path.isfile(dproj_path):
                project_version = read_project_version(dproj_path)

        install_path = resolver.resolve_install_path(
            project_version, list(context.tool_config.delphi_install_paths)
        )
        if install_path is not None:
            for candidate in (
                os.path.join(install_path, "bin", exe_name),
                os.path.join(install_path, "bin", "win32", exe_name),
            ):
                if os.path.isfile(candidate):
                    _LOGGER.info("Found %s at: %s", exe_name, candidate)
                    return candidate

        if context.tool_config.path.strip():
            candidate = os.path.join(context.tool_config.path.strip(), exe_name)
            if os.path.isfile(candidate):
                _LOGGER.info("Found %s at configured path: %s", exe_name, candidate)
                return candidate

        _LOGGER.info("Attempting to use %s from system PATH", exe_name)
        return exe_name

    return Toolchain(
        name="DCC Delphi",
        config_key="msbuild_delphi",
        default_executable="dcc32.exe",
        hooks=ExecutionHooks(resolve_executable=locate_compiler, preflight=require_dpr_file),
    )


class DccCompiler:
    """Compile a Delphi program (.dpr) with dcc32 or dcc64."""

    def __init__(self, engine: ExecutionEngine) -> None:
        self._engine = engine

    @property
    def engine(self) -> ExecutionEngine:
        return self._engine

    def compile(self, dpr_path: str, architecture: str = "Win32") -> ExecutionOutcome:
        """Compile ``dpr_path`` from inside its directory.

        Args:
            dpr_path: Path to the .dpr file.
            architecture: ``Win32`` (default) or ``Win64``/``x64``.

        Returns:
            ExecutionOutcome of the compiler run.
        """

        architecture = architecture.strip() if architecture and architecture.strip() else "Win32"
        dpr_path = os.path.abspath(dpr_path) if dpr_path else ""
        working_directory = os.path.dirname(dpr_path)
        return self._engine.execute(
            f'"{dpr_path}"',
            working_directory or None,
            extras={DPR_PATH: dpr_path, ARCHITECTURE: architecture},
        )
