from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

from toolchain_dispatch.cli.main import app
from toolchain_dispatch.tools.base import ToolResult


def write_python_config(directory: Path) -> Path:
    config_path = directory / "toolchain_dispatch.json"
    config_path.write_text(
        json.dumps(
            {
                "tools": {
                    "python": {
                        "path": str(Path(sys.executable).parent),
                        "executable_name": Path(sys.executable).name,
                    }
                }
            }
        ),
        encoding="utf-8",
    )
    return config_path


def test_cli_init_creates_config_file(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["init", str(tmp_path)])

    assert result.exit_code == 0
    config_path = tmp_path / "toolchain_dispatch.json"
    assert config_path.exists()
    data = json.loads(config_path.read_text(encoding="utf-8"))
    assert data["features"]["default_timeout_s"] == 30
    assert data["tools"]["rust"]["executable_name"] == "cargo"


def test_cli_init_refuses_to_overwrite(tmp_path: Path) -> None:
    runner = CliRunner()
    runner.invoke(app, ["init", str(tmp_path)])

    result = runner.invoke(app, ["init", str(tmp_path)])

    assert result.exit_code == 1
    assert "already exists" in result.output


def test_cli_tools_lists_operations(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["--config", str(tmp_path), "tools"])

    assert result.exit_code == 0
    assert "execute_dotnet_command:" in result.output
    assert "compile_delphi_dpr:" in result.output


def test_cli_exec_runs_python_with_config(tmp_path: Path) -> None:
    runner = CliRunner()
    config_path = write_python_config(tmp_path)

    result = runner.invoke(
        app,
        [
            "--config",
            str(config_path),
            "exec",
            "python",
            "--cwd",
            str(tmp_path),
            "--",
            "-c \"print('from cli')\"",
        ],
    )

    assert result.exit_code == 0
    assert "Exit Code: 0" in result.output
    assert "from cli" in result.output


def test_cli_exec_rejects_unknown_toolchain() -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["exec", "go", "build"])

    assert result.exit_code == 2
    assert "Unknown toolchain 'go'" in result.output


def test_cli_missing_config_file_is_an_error(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["--config", str(tmp_path / "nope.json"), "exec", "python", "--", "--version"])

    assert result.exit_code == 1
    assert "Config file not found" in result.output


def test_cli_build_invokes_run_operation(monkeypatch: pytest.MonkeyPatch) -> None:
    runner = CliRunner()
    captured: dict[str, Any] = {}

    def fake_run_operation(name: str, arguments: dict[str, Any], config_path: Path | None = None) -> ToolResult:
        captured["name"] = name
        captured["arguments"] = arguments
        return ToolResult(name=name, success=False, output="Exit Code: 1")

    monkeypatch.setattr("toolchain_dispatch.cli.main.run_operation", fake_run_operation)

    result = runner.invoke(app, ["build-delphi", "App.dproj", "--options", "/t:Build"])

    assert result.exit_code == 1
    assert "Exit Code: 1" in result.output
    assert captured["name"] == "build_delphi_project"
    assert captured["arguments"] == {"project_path": "App.dproj", "build_options": "/t:Build"}


def test_cli_compile_dpr_passes_architecture(monkeypatch: pytest.MonkeyPatch) -> None:
    runner = CliRunner()
    captured: dict[str, Any] = {}

    def fake_run_operation(name: str, arguments: dict[str, Any], config_path: Path | None = None) -> ToolResult:
        captured["name"] = name
        captured["arguments"] = arguments
        return ToolResult(name=name, success=True, output="Exit Code: 0")

    monkeypatch.setattr("toolchain_dispatch.cli.main.run_operation", fake_run_operation)

    result = runner.invoke(app, ["compile-dpr", "App.dpr", "--arch", "Win64"])

    assert result.exit_code == 0
    assert captured == {
        "name": "compile_delphi_dpr",
        "arguments": {"dpr_path": "App.dpr", "architecture": "Win64"},
    }


def test_cli_resolve_delphi_prints_configured_installation(tmp_path: Path) -> None:
    runner = CliRunner()
    install = tmp_path / "22.0"
    (install / "bin").mkdir(parents=True)
    config_path = tmp_path / "toolchain_dispatch.json"
    config_path.write_text(
        json.dumps({"tools": {"msbuild_delphi": {"delphi_install_paths": [str(install)]}}}),
        encoding="utf-8",
    )

    result = runner.invoke(app, ["--config", str(config_path), "resolve-delphi", "--version", "22.0"])

    assert result.exit_code == 0
    assert str(install) in result.output
