"""
Locate command implementation.
"""

import logging

from sharpkit.binary.locator import locate_module_dir
from sharpkit.cli.utils import load_install_config

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Print the directory holding the installed native module.

    Returns:
        0 if a module is installed, 1 otherwise
    """
    config = load_install_config(args)
    module_dir = locate_module_dir(
        config.binary_install_path, exclude=[config.temp_dir]
    )

    if module_dir is None:
        logger.error(f"No native module installed under {config.binary_install_path}")
        return 1

    print(module_dir)
    return 0
