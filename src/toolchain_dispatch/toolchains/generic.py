"""Toolchains that run their executable with the caller's arguments unchanged."""

from __future__ import annotations

from toolchain_dispatch.toolchains.base import Toolchain

DOTNET = Toolchain(name="dotnet", config_key="dotnet", default_executable="dotnet")
CARGO = Toolchain(name="cargo", config_key="rust", default_executable="cargo")
PYTHON = Toolchain(name="python", config_key="python", default_executable="python")

COMMAND_TOOLCHAINS: dict[str, Toolchain] = {
    "dotnet": DOTNET,
    "cargo": CARGO,
    "python": PYTHON,
}
