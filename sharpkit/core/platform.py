"""
Platform detection for SharpKit.

This module maps the running host to the platform key used by the sharp
binary registry, and derives the prebuilt artifact name from it.

Features:
- Operating system detection (win32, darwin, linux)
- CPU architecture detection (x64, ia32, arm64, arm, s390x)
- libc flavour detection on Linux (glibc or musl)
- Canonical platform key generation (e.g., 'linux-x64', 'linuxmusl-arm64')
- Artifact name generation (e.g., 'sharp-v0.33.5-napi-v9-linux-x64')

Usage:
    from sharpkit.core.platform import detect_platform, artifact_name

    info = detect_platform()
    print(f"Platform key: {info.platform_string()}")
    print(f"Artifact: {artifact_name('0.33.5', info)}")
"""

import functools
import logging
import platform
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from sharpkit.core.exceptions import UnsupportedPlatformError

logger = logging.getLogger(__name__)

PACKAGE_NAME = "sharp"
NAPI_LABEL = "napi-v9"
MODULE_SUFFIX = ".node"

# Supported (os, arch) pairs; True marks pairs that branch on libc flavour.
SUPPORTED_PLATFORMS = {
    "win32": {"x64": False, "ia32": False},
    "darwin": {"x64": False, "arm64": False},
    "linux": {"x64": True, "arm64": True, "arm": False, "s390x": False},
}


@dataclass(frozen=True)
class PlatformInfo:
    """
    Platform information used to select a prebuilt binary.

    Attributes:
        os: Operating system ('win32', 'darwin', 'linux')
        arch: CPU architecture ('x64', 'ia32', 'arm64', 'arm', 's390x')
        libc: libc flavour on Linux ('glibc' or 'musl'), empty elsewhere
    """

    os: str
    arch: str
    libc: str = ""

    def platform_string(self) -> str:
        """
        Get canonical platform key (e.g., 'linux-x64', 'linuxmusl-x64').

        Returns:
            Platform key used in artifact names

        Raises:
            UnsupportedPlatformError: If the os/arch pair has no prebuilt binary

        Example:
            >>> PlatformInfo('linux', 'arm64', 'musl').platform_string()
            'linuxmusl-arm64'
        """
        arches = SUPPORTED_PLATFORMS.get(self.os)
        if arches is None or self.arch not in arches:
            raise UnsupportedPlatformError(self.os, self.arch)

        if arches[self.arch] and self.libc == "musl":
            return f"{self.os}musl-{self.arch}"
        return f"{self.os}-{self.arch}"

    def __str__(self) -> str:
        """String representation of platform info."""
        if self.libc:
            return f"{self.os}-{self.arch} [{self.libc}]"
        return f"{self.os}-{self.arch}"


@functools.lru_cache(maxsize=1)
def detect_platform() -> PlatformInfo:
    """
    Detect current platform information.

    This function is cached - it only runs detection once per process.

    Returns:
        PlatformInfo instance for the running host
    """
    os_name = _detect_os()
    arch = _detect_architecture()
    libc = ""
    if os_name == "linux":
        libc = "musl" if is_musl() else "glibc"

    info = PlatformInfo(os=os_name, arch=arch, libc=libc)
    logger.debug(f"Detected platform: {info}")
    return info


def _detect_os() -> str:
    """
    Detect operating system.

    Returns:
        Normalized OS name: 'win32', 'darwin', 'linux', or the raw lowercase
        system name for anything else
    """
    system = platform.system().lower()

    if system == "windows":
        return "win32"
    elif system == "darwin":
        return "darwin"
    elif system == "linux":
        return "linux"
    else:
        return system


def _detect_architecture() -> str:
    """
    Detect CPU architecture.

    Returns:
        Normalized architecture: 'x64', 'ia32', 'arm64', 'arm', 's390x'
    """
    machine = platform.machine().lower()

    if machine in ("x86_64", "amd64", "x64"):
        return "x64"
    elif machine in ("aarch64", "arm64"):
        return "arm64"
    elif machine in ("i386", "i686", "x86", "ia32"):
        return "ia32"
    elif machine.startswith("arm"):
        return "arm"
    else:
        # Return original for unknown architectures (s390x passes through)
        return machine


def is_musl() -> bool:
    """
    Detect whether the C library is musl.

    Tries the interpreter's own libc report first, then inspects the
    ``ldd`` wrapper for a musl marker. If neither gives an answer the
    host is assumed to be musl.

    Returns:
        True for musl, False for glibc
    """
    libc_name, libc_version = platform.libc_ver()
    if libc_name == "glibc" and libc_version:
        return False

    try:
        return _ldd_mentions_musl()
    except OSError as e:
        logger.debug(f"Could not inspect dynamic linker, assuming musl: {e}")
        return True


def _ldd_mentions_musl() -> bool:
    """
    Inspect the ldd binary for a musl marker.

    Raises:
        OSError: If ldd cannot be found or read
    """
    ldd_path: Optional[str] = shutil.which("ldd")
    if not ldd_path:
        raise FileNotFoundError("ldd not found on PATH")

    content = Path(ldd_path).read_bytes()
    return b"musl" in content


def resolve_platform_key(info: Optional[PlatformInfo] = None) -> str:
    """
    Resolve the platform key for the given (or current) platform.

    Args:
        info: PlatformInfo to resolve. If None, detects current platform.

    Returns:
        Platform key string

    Raises:
        UnsupportedPlatformError: If platform is not supported
    """
    if info is None:
        info = detect_platform()
    return info.platform_string()


def artifact_name(version: str, info: Optional[PlatformInfo] = None) -> str:
    """
    Build the prebuilt artifact name for a sharp version.

    Args:
        version: sharp version (e.g., '0.33.5')
        info: Platform to build the name for (default: current platform)

    Returns:
        Artifact name without extension

    Example:
        >>> artifact_name('1.2.3', PlatformInfo('linux', 'x64', 'glibc'))
        'sharp-v1.2.3-napi-v9-linux-x64'
    """
    return f"{PACKAGE_NAME}-v{version}-{NAPI_LABEL}-{resolve_platform_key(info)}"


def is_supported_platform(info: Optional[PlatformInfo] = None) -> bool:
    """
    Check if a prebuilt binary exists for the platform.

    Args:
        info: PlatformInfo to check. If None, detects current platform.

    Returns:
        True if platform is supported
    """
    if info is None:
        info = detect_platform()

    return info.arch in SUPPORTED_PLATFORMS.get(info.os, {})


def get_supported_platforms() -> list[str]:
    """
    Get list of all supported platform keys.

    Returns:
        List of platform keys, including musl variants
    """
    keys = []
    for os_name, arches in SUPPORTED_PLATFORMS.items():
        for arch, has_libc_variant in arches.items():
            keys.append(f"{os_name}-{arch}")
            if has_libc_variant:
                keys.append(f"{os_name}musl-{arch}")
    return keys


def clear_platform_cache():
    """
    Clear the platform detection cache.

    This forces the next call to detect_platform() to re-detect.
    """
    detect_platform.cache_clear()


__all__ = [
    "PlatformInfo",
    "PACKAGE_NAME",
    "NAPI_LABEL",
    "MODULE_SUFFIX",
    "SUPPORTED_PLATFORMS",
    "detect_platform",
    "is_musl",
    "resolve_platform_key",
    "artifact_name",
    "is_supported_platform",
    "get_supported_platforms",
    "clear_platform_cache",
]
