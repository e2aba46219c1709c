from __future__ import annotations

import io
import os
import sys
from typing import Any

import pytest

from toolchain_dispatch.config import AppConfig, FeaturesConfig, StaticConfigProvider, ToolConfig, ToolsConfig


def python_tool_config() -> ToolConfig:
    return ToolConfig(
        path=os.path.dirname(sys.executable),
        executable_name=os.path.basename(sys.executable),
    )


def make_config(timeout_s: int = 30, max_output_size: int = 10 * 1024 * 1024, **tools: ToolConfig) -> AppConfig:
    return AppConfig(
        tools=ToolsConfig(**tools) if tools else ToolsConfig(),
        features=FeaturesConfig(default_timeout_s=timeout_s, max_output_size=max_output_size),
    )


@pytest.fixture
def python_provider() -> StaticConfigProvider:
    """Provider whose ``python`` tool points at the running interpreter."""

    return StaticConfigProvider(make_config(python=python_tool_config()))


class FakePopen:
    """Stand-in for ``subprocess.Popen`` that records how it was called."""

    calls: list[dict[str, Any]] = []

    def __init__(self, args: Any, **kwargs: Any) -> None:
        FakePopen.calls.append({"args": args, **kwargs})
        self.args = args
        self.stdout = io.StringIO("fake output\n")
        self.stderr = io.StringIO("")
        self.pid = 4242
        self.returncode: int | None = None

    def wait(self, timeout: float | None = None) -> int:
        self.returncode = 0
        return 0

    def poll(self) -> int | None:
        return self.returncode

    def kill(self) -> None:
        self.returncode = -9


@pytest.fixture
def fake_popen(monkeypatch: pytest.MonkeyPatch) -> type[FakePopen]:
    FakePopen.calls = []
    monkeypatch.setattr("subprocess.Popen", FakePopen)
    return FakePopen


@pytest.fixture
def forbid_popen(monkeypatch: pytest.MonkeyPatch) -> None:
    def fail(*args: Any, **kwargs: Any) -> None:
        raise AssertionError("No process should be spawned")

    monkeypatch.setattr("subprocess.Popen", fail)
