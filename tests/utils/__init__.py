"""
Test utilities for SharpKit testing.
"""

from .helpers import build_tar_gz, compile_napi_addon, has_command

__all__ = ["build_tar_gz", "compile_napi_addon", "has_command"]
