"""YAML configuration parser for SharpKit.

This module turns host-provided settings (a ``sharpkit.yaml`` file or a
plain mapping) into an immutable InstallConfig.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

import yaml

from sharpkit.core.exceptions import ConfigError

DEFAULT_BINARY_PATH = "data/assets/sharpkit/sharp"
DEFAULT_ARTIFACT_VERSION = "0.33.5"
DEFAULT_TIMEOUT_MS = 60000
DEFAULT_MAX_REDIRECTS = 10
DEFAULT_LOCK_TIMEOUT = 300
CONFIG_FILE_NAME = "sharpkit.yaml"

# YAML key -> InstallConfig field
_KEYS = {
    "binaryInstallPath": "binary_install_path",
    "tempDir": "temp_dir",
    "artifactVersion": "artifact_version",
    "requestTimeoutMs": "request_timeout_ms",
    "forceSourceBuild": "force_source_build",
    "fallbackToSource": "fallback_to_source",
    "maxRedirects": "max_redirects",
    "packageManager": "package_manager",
    "lockTimeout": "lock_timeout",
}


@dataclass(frozen=True)
class InstallConfig:
    """Settings for one provisioning run, fixed for the process lifetime."""

    binary_install_path: Path
    temp_dir: Path
    artifact_version: str = DEFAULT_ARTIFACT_VERSION
    request_timeout_ms: int = DEFAULT_TIMEOUT_MS
    force_source_build: bool = False
    fallback_to_source: bool = True
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    package_manager: str = "npm"
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT

    @property
    def request_timeout(self) -> float:
        """Request timeout in seconds."""
        return self.request_timeout_ms / 1000

    @classmethod
    def for_directory(cls, binary_install_path: Path, **kwargs) -> "InstallConfig":
        """Build a config rooted at binary_install_path with default temp dir."""
        binary_install_path = Path(binary_install_path)
        temp_dir = kwargs.pop("temp_dir", None) or binary_install_path / "tmp"
        return cls(
            binary_install_path=binary_install_path, temp_dir=Path(temp_dir), **kwargs
        )


def parse_config(config_path: Path, base_dir: Optional[Path] = None) -> InstallConfig:
    """
    Parse sharpkit.yaml configuration file.

    Args:
        config_path: Path to sharpkit.yaml
        base_dir: Directory relative paths are resolved against
            (default: the config file's directory)

    Returns:
        Parsed and validated configuration

    Raises:
        ConfigError: If configuration is invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}")

    if data is None:
        data = {}

    if base_dir is None:
        base_dir = config_path.parent

    return config_from_mapping(data, base_dir)


def config_from_mapping(
    data: Mapping[str, Any], base_dir: Optional[Path] = None
) -> InstallConfig:
    """
    Build an InstallConfig from a host-provided mapping.

    Args:
        data: Mapping using the camelCase option names
        base_dir: Host data root; relative paths resolve against it
            (default: current directory)

    Returns:
        Validated configuration

    Raises:
        ConfigError: If a key is unknown or a value is invalid
    """
    if not isinstance(data, Mapping):
        raise ConfigError("Configuration must be a mapping")

    unknown = sorted(set(data) - set(_KEYS))
    if unknown:
        raise ConfigError(f"Unknown configuration option(s): {', '.join(unknown)}")

    base_dir = Path(base_dir) if base_dir is not None else Path.cwd()

    binary_path = _resolve_path(
        data.get("binaryInstallPath", DEFAULT_BINARY_PATH), base_dir, "binaryInstallPath"
    )
    temp_value = data.get("tempDir")
    temp_dir = (
        _resolve_path(temp_value, base_dir, "tempDir")
        if temp_value is not None
        else binary_path / "tmp"
    )

    version = validate_version(
        data.get("artifactVersion", DEFAULT_ARTIFACT_VERSION), "artifactVersion"
    )

    package_manager = data.get("packageManager", "npm")
    if not isinstance(package_manager, str) or not package_manager:
        raise ConfigError("packageManager must be a non-empty string")

    return InstallConfig(
        binary_install_path=binary_path,
        temp_dir=temp_dir,
        artifact_version=version,
        request_timeout_ms=_positive_int(data, "requestTimeoutMs", DEFAULT_TIMEOUT_MS),
        force_source_build=_bool(data, "forceSourceBuild", False),
        fallback_to_source=_bool(data, "fallbackToSource", True),
        max_redirects=_positive_int(
            data, "maxRedirects", DEFAULT_MAX_REDIRECTS, allow_zero=True
        ),
        package_manager=package_manager,
        lock_timeout=_positive_int(data, "lockTimeout", DEFAULT_LOCK_TIMEOUT),
    )


def validate_version(version: Any, key: str = "artifactVersion") -> str:
    """
    Check that version looks like X.Y.Z with an optional prerelease tag.

    Raises:
        ConfigError: If version is not a semantic version
    """
    if not isinstance(version, str) or not _is_version(version):
        raise ConfigError(f"{key} must be a semantic version, got {version!r}")
    return version


def _resolve_path(value: Any, base_dir: Path, key: str) -> Path:
    if not isinstance(value, (str, Path)) or not str(value):
        raise ConfigError(f"{key} must be a path")
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path.resolve()


def _positive_int(
    data: Mapping[str, Any], key: str, default: int, allow_zero: bool = False
) -> int:
    value = data.get(key, default)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key} must be an integer, got {value!r}")
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(f"{key} must be positive, got {value}")
    return value


def _bool(data: Mapping[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false, got {value!r}")
    return value


def _is_version(version: str) -> bool:
    parts: Tuple[str, ...] = tuple(version.split("-", 1)[0].split("."))
    return len(parts) == 3 and all(p.isdigit() for p in parts)


__all__ = [
    "InstallConfig",
    "parse_config",
    "config_from_mapping",
    "validate_version",
    "CONFIG_FILE_NAME",
    "DEFAULT_ARTIFACT_VERSION",
    "DEFAULT_BINARY_PATH",
]
