"""
Pytest configuration and shared fixtures for SharpKit tests.
"""

import logging
from pathlib import Path
from typing import Callable, Dict

import pytest

from sharpkit.config.parser import InstallConfig
from sharpkit.core.platform import PlatformInfo, clear_platform_cache
from tests.utils.helpers import build_tar_gz


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


# ============================================================================
# Shared Test Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def _reset_platform_cache():
    """Ensure platform detection never leaks between tests."""
    clear_platform_cache()
    yield
    clear_platform_cache()


@pytest.fixture
def linux_x64() -> PlatformInfo:
    """glibc Linux on x64."""
    return PlatformInfo("linux", "x64", "glibc")


@pytest.fixture
def binary_dir(tmp_path: Path) -> Path:
    """Canonical binary directory (not created)."""
    return tmp_path / "data" / "assets" / "sharpkit" / "sharp"


@pytest.fixture
def install_config(binary_dir: Path) -> InstallConfig:
    """Install configuration rooted at binary_dir."""
    return InstallConfig.for_directory(
        binary_dir, artifact_version="1.2.3", lock_timeout=5
    )


@pytest.fixture
def make_archive(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a .tar.gz archive into its own staging directory."""

    def _make(files: Dict[str, bytes], name: str = "archive.tar.gz") -> Path:
        staging = tmp_path / "staging"
        staging.mkdir(parents=True, exist_ok=True)
        archive = staging / name
        archive.write_bytes(build_tar_gz(files))
        return archive

    return _make


@pytest.fixture
def caplog_info(caplog):
    """caplog capturing INFO and above."""
    caplog.set_level(logging.INFO)
    return caplog
