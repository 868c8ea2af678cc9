"""
Centralized exception hierarchy for SharpKit.

This module defines all custom exceptions raised while provisioning the
native sharp module so callers can tell installation failures apart.
"""

from typing import Optional


# ============================================================================
# Base Exceptions
# ============================================================================


class SharpKitError(Exception):
    """Base exception for all SharpKit errors."""

    pass


class ConfigError(SharpKitError):
    """Configuration parsing or validation error."""

    pass


# ============================================================================
# Platform Exceptions
# ============================================================================


class UnsupportedPlatformError(SharpKitError):
    """Raised when no prebuilt binary exists for the OS/architecture pair."""

    def __init__(self, os_name: str, arch: str):
        self.os_name = os_name
        self.arch = arch
        super().__init__(f"Unsupported platform or architecture: {os_name}-{arch}")


# ============================================================================
# Installation Exceptions
# ============================================================================


class InstallError(SharpKitError):
    """Base exception for installation pipeline errors."""

    pass


class DownloadError(InstallError):
    """Raised when an archive cannot be fetched."""

    def __init__(self, message: str, url: str = "", status_code: Optional[int] = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class TooManyRedirectsError(DownloadError):
    """Raised when a download exceeds the redirect limit."""

    pass


class ExtractError(InstallError):
    """Raised when an archive is corrupt or cannot be unpacked."""

    pass


class BuildError(InstallError):
    """Raised when building the native module from source fails."""

    def __init__(self, message: str, exit_code: Optional[int] = None):
        self.exit_code = exit_code
        super().__init__(message)


class LoadError(InstallError):
    """Raised when an installed native module cannot be loaded."""

    pass


class InstallLockTimeout(InstallError):
    """Raised when the install directory lock cannot be acquired in time."""

    pass


# ============================================================================
# Service Exceptions
# ============================================================================


class ServiceNotReadyError(SharpKitError):
    """Raised when the sharp module is accessed before the service started."""

    pass
