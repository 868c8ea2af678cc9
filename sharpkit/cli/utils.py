"""
Shared utilities for CLI commands.
"""

import logging
from pathlib import Path

from sharpkit.config.parser import (
    CONFIG_FILE_NAME,
    InstallConfig,
    config_from_mapping,
    parse_config,
)

logger = logging.getLogger(__name__)


def load_install_config(args) -> InstallConfig:
    """
    Load the install configuration for a CLI invocation.

    Uses --config when given, then ./sharpkit.yaml under --base-dir, and
    finally the built-in defaults.

    Args:
        args: Parsed arguments with config and base_dir

    Returns:
        InstallConfig

    Raises:
        ConfigError: If the configuration file is invalid
    """
    base_dir = Path(args.base_dir).resolve()

    config_file = Path(args.config) if args.config else base_dir / CONFIG_FILE_NAME
    if args.config or config_file.exists():
        logger.debug(f"Loading configuration from {config_file}")
        return parse_config(config_file, base_dir=base_dir)

    logger.debug("No configuration file found, using defaults")
    return config_from_mapping({}, base_dir=base_dir)


__all__ = ["load_install_config"]
