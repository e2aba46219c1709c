"""Toolchain adapters built on the shared execution engine."""

from toolchain_dispatch.toolchains.base import Toolchain, create_engine
from toolchain_dispatch.toolchains.delphi import (
    DccCompiler,
    default_delphi_resolver,
    make_dcc_toolchain,
    make_delphi_msbuild_toolchain,
    read_project_version,
)
from toolchain_dispatch.toolchains.generic import CARGO, COMMAND_TOOLCHAINS, DOTNET, PYTHON
from toolchain_dispatch.toolchains.msbuild import MSBUILD, MSBuildBuilder

__all__ = [
    "CARGO",
    "COMMAND_TOOLCHAINS",
    "DOTNET",
    "DccCompiler",
    "MSBUILD",
    "MSBuildBuilder",
    "PYTHON",
    "Toolchain",
    "create_engine",
    "default_delphi_resolver",
    "make_dcc_toolchain",
    "make_delphi_msbuild_toolchain",
    "read_project_version",
]
