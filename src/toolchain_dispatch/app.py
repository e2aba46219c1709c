"""Application wiring for CLI-friendly dispatch."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from toolchain_dispatch.config import (
    AppConfig,
    ConfigProvider,
    FileConfigProvider,
    StaticConfigProvider,
    config_to_dict,
    resolve_config_path,
)
from toolchain_dispatch.installations.resolver import InstallationResolver
from toolchain_dispatch.toolchains.delphi import default_delphi_resolver, resolve_delphi_installation
from toolchain_dispatch.tools.base import ToolResult
from toolchain_dispatch.tools.registry import ToolRegistry
from toolchain_dispatch.tools.toolchain_tools import build_default_tool_registry
from toolchain_dispatch.util.logging import get_logger
from toolchain_dispatch.util.observability import ObservabilityManager, create_observability_manager

DEFAULT_CONFIG_FILE = "toolchain_dispatch.json"


class AppConfigError(RuntimeError):
    """Raised when configuration or runtime setup fails."""


@dataclass(frozen=True)
class RuntimeContext:
    """Container for the services behind the exposed operations."""

    config_provider: ConfigProvider
    registry: ToolRegistry
    observability: ObservabilityManager


_LOGGER = get_logger("toolchain_dispatch.app")


def initialize_config(directory: Path) -> Path:
    """Create a default configuration file in ``directory``.

    Raises:
        AppConfigError: If the config file already exists.
    """

    directory = directory.resolve()
    config_path = directory / DEFAULT_CONFIG_FILE
    if config_path.exists():
        raise AppConfigError(
            f"Config file already exists at {config_path}. Remove it or choose another directory."
        )
    directory.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(config_to_dict(AppConfig()), indent=2), encoding="utf-8")
    _LOGGER.info("Initialized configuration at %s", config_path)
    return config_path


def create_config_provider(config_path: Path | None = None) -> ConfigProvider:
    """Return a hot-reloading provider for the located config file, or defaults."""

    resolved = resolve_config_path(config_path)
    if resolved is None:
        if config_path is not None and not config_path.is_dir():
            raise AppConfigError(f"Config file not found at {config_path}")
        _LOGGER.info("No configuration file found, using defaults")
        return StaticConfigProvider()
    return FileConfigProvider(resolved)


def build_runtime(
    config_provider: ConfigProvider,
    *,
    observability: ObservabilityManager | None = None,
    delphi_resolver: InstallationResolver | None = None,
) -> RuntimeContext:
    """Build the operation registry over a configuration provider."""

    observability = observability or create_observability_manager()
    registry = build_default_tool_registry(
        config_provider,
        observability=observability,
        delphi_resolver=delphi_resolver,
    )
    _LOGGER.info("Runtime initialized with %s operations.", len(registry.list_tools()))
    return RuntimeContext(
        config_provider=config_provider,
        registry=registry,
        observability=observability,
    )


def run_operation(
    name: str,
    arguments: dict[str, Any],
    config_path: Path | None = None,
) -> ToolResult:
    """Run one named operation with configuration loaded from ``config_path``."""

    runtime = build_runtime(create_config_provider(config_path))
    return runtime.registry.execute(name, arguments)


def resolve_delphi(
    project_version: str | None,
    config_path: Path | None = None,
    *,
    resolver: InstallationResolver | None = None,
) -> str | None:
    """Return the Delphi installation that builds would use for ``project_version``."""

    config = create_config_provider(config_path).current()
    return resolve_delphi_installation(
        resolver or default_delphi_resolver(),
        project_version,
        config.tools.msbuild_delphi.delphi_install_paths,
    )
