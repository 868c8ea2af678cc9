"""Configuration management for SharpKit."""

from .parser import (
    InstallConfig,
    parse_config,
    config_from_mapping,
    validate_version,
    CONFIG_FILE_NAME,
    DEFAULT_ARTIFACT_VERSION,
    DEFAULT_BINARY_PATH,
)

__all__ = [
    "InstallConfig",
    "parse_config",
    "config_from_mapping",
    "validate_version",
    "CONFIG_FILE_NAME",
    "DEFAULT_ARTIFACT_VERSION",
    "DEFAULT_BINARY_PATH",
]
