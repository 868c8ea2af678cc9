"""
SharpKit - provision the platform-specific native sharp binary at startup.

Usage:
    from sharpkit import InstallConfig, SharpService

    service = SharpService(InstallConfig.for_directory(Path("data/assets/sharpkit/sharp")))
    sharp = service.start()
"""

from sharpkit.binary.orchestrator import (
    InstallOrchestrator,
    InstallResult,
    InstallState,
    Outcome,
    SharpService,
)
from sharpkit.config.parser import InstallConfig, config_from_mapping, parse_config

__all__ = [
    "InstallConfig",
    "config_from_mapping",
    "parse_config",
    "InstallOrchestrator",
    "InstallResult",
    "InstallState",
    "Outcome",
    "SharpService",
]
