"""
Core functionality for SharpKit.

This package contains the foundational modules that the installer depends on.
"""

from .exceptions import (
    SharpKitError,
    ConfigError,
    UnsupportedPlatformError,
    InstallError,
    DownloadError,
    TooManyRedirectsError,
    ExtractError,
    BuildError,
    LoadError,
    InstallLockTimeout,
    ServiceNotReadyError,
)

from .locking import (
    LockManager,
)

from .platform import (
    PlatformInfo,
    detect_platform,
    resolve_platform_key,
    artifact_name,
    is_supported_platform,
    get_supported_platforms,
    clear_platform_cache,
)

__all__ = [
    "SharpKitError",
    "ConfigError",
    "UnsupportedPlatformError",
    "InstallError",
    "DownloadError",
    "TooManyRedirectsError",
    "ExtractError",
    "BuildError",
    "LoadError",
    "InstallLockTimeout",
    "ServiceNotReadyError",
    "LockManager",
    "PlatformInfo",
    "detect_platform",
    "resolve_platform_key",
    "artifact_name",
    "is_supported_platform",
    "get_supported_platforms",
    "clear_platform_cache",
]
