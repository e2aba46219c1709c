"""Configuration models, loaders and snapshot providers for toolchain-dispatch."""

from __future__ import annotations

import json
import sys
import threading
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from toolchain_dispatch.util.logging import get_logger

CONFIG_FILE_NAMES: tuple[str, ...] = (
    "toolchain_dispatch.json",
    "toolchain_dispatch.yaml",
    "toolchain_dispatch.yml",
    "pyproject.toml",
)
DEFAULT_TIMEOUT_S = 30
DEFAULT_MAX_OUTPUT_SIZE = 10 * 1024 * 1024

_LOGGER = get_logger("toolchain_dispatch.config")


class ConfigError(ValueError):
    """Raised when a configuration file cannot be parsed."""


def default_msbuild_executable() -> str:
    return "MSBuild.exe" if sys.platform == "win32" else "msbuild"


@dataclass(frozen=True)
class ToolConfig:
    """Location of a single toolchain executable.

    Attributes:
        path: Directory holding the executable. Empty means "search PATH".
        executable_name: File name of the executable inside ``path``.
        delphi_install_paths: Delphi installation roots to prefer over the
            standard install locations (legacy compiler tools only).
    """

    path: str = ""
    executable_name: str = ""
    delphi_install_paths: tuple[str, ...] = ()


@dataclass(frozen=True)
class ToolsConfig:
    """Per-toolchain executable configuration."""

    dotnet: ToolConfig = field(default_factory=lambda: ToolConfig(executable_name="dotnet"))
    rust: ToolConfig = field(default_factory=lambda: ToolConfig(executable_name="cargo"))
    python: ToolConfig = field(default_factory=lambda: ToolConfig(executable_name="python"))
    msbuild: ToolConfig = field(
        default_factory=lambda: ToolConfig(executable_name=default_msbuild_executable())
    )
    msbuild_delphi: ToolConfig = field(
        default_factory=lambda: ToolConfig(executable_name=default_msbuild_executable())
    )

    def get(self, key: str) -> ToolConfig:
        """Return the tool configuration for a config key.

        Raises:
            ConfigError: If the key does not name a known toolchain.
        """

        if key not in _TOOL_KEYS:
            raise ConfigError(f"Unknown toolchain configuration key: {key}")
        return getattr(self, key)


_TOOL_KEYS: tuple[str, ...] = ("dotnet", "rust", "python", "msbuild", "msbuild_delphi")


@dataclass(frozen=True)
class FeaturesConfig:
    """Process-wide execution settings.

    Attributes:
        enable_logging: Whether engines emit structured execution events.
        default_timeout_s: Seconds to wait for a process before killing it.
        max_output_size: Advisory limit on captured output, in characters.
            Exceeding it is logged but never enforced.
    """

    enable_logging: bool = True
    default_timeout_s: int = DEFAULT_TIMEOUT_S
    max_output_size: int = DEFAULT_MAX_OUTPUT_SIZE


@dataclass(frozen=True)
class AppConfig:
    """Top-level configuration snapshot.

    Instances are immutable; configuration changes produce a new snapshot.
    """

    tools: ToolsConfig = field(default_factory=lambda: ToolsConfig())
    features: FeaturesConfig = field(default_factory=lambda: FeaturesConfig())


class ConfigProvider(Protocol):
    """Source of configuration snapshots consumed by execution engines."""

    def current(self) -> AppConfig:
        """Return the configuration snapshot to use for the next call."""


class StaticConfigProvider:
    """Provider holding an in-memory snapshot that can be swapped atomically."""

    def __init__(self, config: AppConfig | None = None) -> None:
        self._config = config or AppConfig()
        self._lock = threading.Lock()

    def current(self) -> AppConfig:
        with self._lock:
            return self._config

    def update(self, config: AppConfig) -> None:
        """Replace the snapshot; in-flight calls keep the one they took."""

        with self._lock:
            self._config = config


class FileConfigProvider:
    """Provider backed by a configuration file with hot reload.

    The file is re-read whenever its modification time changes. A file that
    fails to parse leaves the previous snapshot in place.
    """

    def __init__(self, path: Path) -> None:
        """Initialize the provider.

        Args:
            path: Configuration file to watch. A missing file yields defaults.
        """

        self._path = path
        self._lock = threading.Lock()
        self._mtime: float | None = None
        self._config = AppConfig()
        self._refresh()

    @property
    def path(self) -> Path:
        return self._path

    def current(self) -> AppConfig:
        with self._lock:
            self._refresh()
            return self._config

    def reload(self) -> AppConfig:
        """Force a re-read of the configuration file."""

        with self._lock:
            self._mtime = None
            self._refresh()
            return self._config

    def _refresh(self) -> None:
        try:
            mtime = self._path.stat().st_mtime
        except OSError:
            if self._mtime is not None:
                _LOGGER.warning("Configuration file %s disappeared, keeping last snapshot", self._path)
            return
        if mtime == self._mtime:
            return
        try:
            self._config = load_config(self._path)
        except (ConfigError, OSError) as exc:
            _LOGGER.error("Error loading configuration from %s: %s", self._path, exc)
            return
        self._mtime = mtime
        _LOGGER.info("Configuration loaded from %s", self._path)


def load_config(path: Path | None = None) -> AppConfig:
    """Load application configuration from disk.

    Args:
        path: Optional path to a configuration file or directory.

    Returns:
        Parsed AppConfig with defaults applied when no config exists.

    Raises:
        ConfigError: If the file type is unsupported or its content is invalid.
    """

    config_path = resolve_config_path(path)
    if config_path is None:
        return AppConfig()

    if config_path.suffix == ".json":
        raw_data = _load_json(config_path)
    elif config_path.suffix in {".yaml", ".yml"}:
        raw_data = _load_yaml(config_path)
    elif config_path.suffix == ".toml":
        raw_data = _load_toml(config_path)
    else:
        raise ConfigError(f"Unsupported config file type: {config_path}")

    return parse_app_config(raw_data)


def config_to_dict(config: AppConfig) -> dict[str, Any]:
    """Serialize an AppConfig into a JSON-compatible dictionary."""

    return {
        "tools": {
            key: {
                "path": tool.path,
                "executable_name": tool.executable_name,
                "delphi_install_paths": list(tool.delphi_install_paths),
            }
            for key, tool in ((key, config.tools.get(key)) for key in _TOOL_KEYS)
        },
        "features": {
            "enable_logging": config.features.enable_logging,
            "default_timeout_s": config.features.default_timeout_s,
            "max_output_size": config.features.max_output_size,
        },
    }


def resolve_config_path(path: Path | None) -> Path | None:
    """Locate the configuration file for a file path, directory, or the CWD."""

    candidate_paths: list[Path] = []
    if path is None:
        candidate_paths.extend(Path(name) for name in CONFIG_FILE_NAMES)
    elif path.is_dir():
        candidate_paths.extend(path / name for name in CONFIG_FILE_NAMES)
    else:
        candidate_paths.append(path)

    for candidate in candidate_paths:
        if candidate.exists():
            return candidate
    return None


def _load_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON configuration in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError("JSON configuration must be a mapping.")
    return data


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML configuration in {path}: {exc}") from exc
    if path.name == "pyproject.toml":
        tool_config = data.get("tool", {}).get("toolchain_dispatch", {})
        if not isinstance(tool_config, dict):
            raise ConfigError("tool.toolchain_dispatch must be a mapping.")
        return tool_config
    return data


def _load_yaml(path: Path) -> dict[str, Any]:
    import yaml  # type: ignore[import-untyped]

    try:
        parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML configuration in {path}: {exc}") from exc
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ConfigError("YAML configuration must be a mapping.")
    return parsed


def parse_app_config(raw_data: dict[str, Any]) -> AppConfig:
    """Build an AppConfig from a decoded mapping.

    Keys may be snake_case or camelCase (``executableName``,
    ``defaultTimeout``), and section names are matched case-insensitively.
    """

    data = _lower_keys(raw_data)
    return AppConfig(
        tools=_parse_tools_config(data.get("tools", {})),
        features=_parse_features_config(data.get("features", {})),
    )


def _parse_tools_config(raw: Any) -> ToolsConfig:
    if not isinstance(raw, dict):
        return ToolsConfig()
    raw = _lower_keys(raw)
    defaults = ToolsConfig()
    parsed: dict[str, ToolConfig] = {}
    for key in _TOOL_KEYS:
        entry = raw.get(key)
        if entry is None:
            entry = raw.get(key.replace("_", ""))
        parsed[key] = _parse_tool_config(entry, defaults.get(key))
    return ToolsConfig(**parsed)


def _parse_tool_config(raw: Any, default: ToolConfig) -> ToolConfig:
    if raw is None:
        return default
    if not isinstance(raw, dict):
        raise ConfigError("Tool configuration must be a mapping.")
    raw = _lower_keys(raw)
    install_paths = raw.get("delphi_install_paths", ())
    if not isinstance(install_paths, (list, tuple)):
        raise ConfigError("delphi_install_paths must be a list of directories.")
    executable_name = _optional_str(raw.get("executable_name")) or default.executable_name
    return ToolConfig(
        path=_optional_str(raw.get("path")) or "",
        executable_name=executable_name,
        delphi_install_paths=tuple(str(item) for item in install_paths if str(item).strip()),
    )


def _parse_features_config(raw: Any) -> FeaturesConfig:
    if not isinstance(raw, dict):
        return FeaturesConfig()
    raw = _lower_keys(raw)
    timeout = raw.get("default_timeout_s", raw.get("default_timeout", DEFAULT_TIMEOUT_S))
    return FeaturesConfig(
        enable_logging=_parse_bool(raw.get("enable_logging", True), "enable_logging"),
        default_timeout_s=_parse_positive_int(timeout, "default_timeout_s"),
        max_output_size=_parse_positive_int(
            raw.get("max_output_size", DEFAULT_MAX_OUTPUT_SIZE), "max_output_size"
        ),
    )


_TRUE_STRINGS = {"true", "yes", "on", "1"}
_FALSE_STRINGS = {"false", "no", "off", "0"}


def _parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in _TRUE_STRINGS:
            return True
        if normalized in _FALSE_STRINGS:
            return False
    raise ConfigError(f"Invalid features configuration: {name} must be a boolean, got {value!r}")


def _parse_positive_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"Invalid features configuration: {name} must be an integer, got {value!r}")
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid features configuration: {name} must be an integer, got {value!r}") from exc
    if parsed <= 0:
        raise ConfigError(f"Invalid features configuration: {name} must be positive, got {parsed}")
    return parsed


def _lower_keys(raw: dict[str, Any]) -> dict[str, Any]:
    return {_snake_case(str(key)): value for key, value in raw.items()}


def _snake_case(name: str) -> str:
    chars: list[str] = []
    for index, char in enumerate(name):
        if char.isupper() and index > 0 and not name[index - 1].isupper() and name[index - 1] != "_":
            chars.append("_")
        chars.append(char.lower())
    return "".join(chars)


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
