"""
Test helper utilities for SharpKit testing.

This module provides utility functions for building test archives and
compiling small native modules.
"""

import io
import subprocess
import tarfile
from pathlib import Path
from typing import Dict

# Minimal addon: registers itself through N-API, leaving the napi_* symbol
# for the JavaScript runtime to provide, as a real sharp build does.
NAPI_ADDON_SOURCE = """
extern int napi_module_register(void *mod);

static char module_record[64];

__attribute__((constructor))
static void register_module(void) {
    napi_module_register(module_record);
}

int sharp_addon_version(void) {
    return 9;
}
"""


def build_tar_gz(files: Dict[str, bytes]) -> bytes:
    """
    Build an in-memory .tar.gz archive.

    Args:
        files: Mapping of member name to content

    Returns:
        Compressed archive bytes

    Example:
        >>> data = build_tar_gz({"build/Release/sharp.node": b"bin"})
    """
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


def has_command(command: str, timeout: int = 5) -> bool:
    """
    Check if a command is available in PATH.

    Example:
        >>> if not has_command("cc"):
        ...     pytest.skip("C compiler not available")
    """
    try:
        result = subprocess.run(
            [command, "--version"],
            capture_output=True,
            timeout=timeout,
            check=False,
        )
        return result.returncode == 0
    except (FileNotFoundError, subprocess.TimeoutExpired, OSError):
        return False


def compile_napi_addon(output: Path, compiler: str = "cc") -> Path:
    """
    Compile NAPI_ADDON_SOURCE into a shared library at output.

    Returns:
        output
    """
    source = output.with_suffix(".c")
    source.write_text(NAPI_ADDON_SOURCE)
    subprocess.run(
        [compiler, "-shared", "-fPIC", "-o", str(output), str(source)],
        capture_output=True,
        check=True,
        timeout=60,
    )
    source.unlink()
    return output
