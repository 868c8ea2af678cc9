"""
Native sharp module provisioning.

This package locates, downloads, extracts, builds and loads the
platform-specific sharp binary.
"""

from .builder import SourceBuilder
from .installer import install_archive, flatten_release_dir, cleanup_download
from .loader import (
    LoadedModule,
    ModuleLoader,
    NativeLibraryLoader,
    ModuleFileLoader,
)
from .locator import locate_module_dir, is_installed
from .orchestrator import (
    InstallState,
    Outcome,
    InstallResult,
    InstallOrchestrator,
    SharpService,
    prebuilt_url,
)

__all__ = [
    "SourceBuilder",
    "install_archive",
    "flatten_release_dir",
    "cleanup_download",
    "LoadedModule",
    "ModuleLoader",
    "NativeLibraryLoader",
    "ModuleFileLoader",
    "locate_module_dir",
    "is_installed",
    "InstallState",
    "Outcome",
    "InstallResult",
    "InstallOrchestrator",
    "SharpService",
    "prebuilt_url",
]
