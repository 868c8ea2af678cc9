"""
Install command implementation.

Runs the full provisioning sequence without loading the module into the
CLI process.
"""

import dataclasses
import logging

from sharpkit.binary.orchestrator import InstallOrchestrator, Outcome
from sharpkit.cli.utils import load_install_config
from sharpkit.config.parser import validate_version

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the install command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    config = load_install_config(args)

    overrides = {}
    if args.from_source:
        overrides["force_source_build"] = True
    if args.sharp_version:
        overrides["artifact_version"] = validate_version(
            args.sharp_version, "--sharp-version"
        )
    if overrides:
        config = dataclasses.replace(config, **overrides)

    result = InstallOrchestrator(config).run()

    if Outcome.FOUND in result.outcomes:
        logger.info("sharp binary already installed")
    print(result.module.path)
    return 0
