"""
File system utilities for SharpKit.

This module provides the platform-aware file operations the installer needs:
- Streaming tar.gz extraction with directory traversal protection
- Safe deletion of directory trees
- Moving directory contents between locations
- Directory helpers

Extraction failures raise ExtractError (InsecureArchiveError for members
escaping the destination); other operations raise FilesystemError or
ValueError with readable messages.
"""

import os
import shutil
import sys
import tarfile
from pathlib import Path
from typing import Callable, Optional, Union

from sharpkit.core.exceptions import ExtractError, SharpKitError

IS_WINDOWS = os.name == "nt"


# ============================================================================
# Error Handling
# ============================================================================


class FilesystemError(SharpKitError):
    """Base exception for filesystem operations."""

    pass


class InsecureArchiveError(ExtractError):
    """Archive contains insecure paths (directory traversal attempt)."""

    pass


# ============================================================================
# Path Utilities
# ============================================================================


def is_relative_to(path: Path, parent: Path) -> bool:
    """
    Check if path is relative to (under) parent directory.

    Example:
        >>> is_relative_to(Path("/home/user/project/file.txt"), Path("/home/user"))
        True
    """
    try:
        path.relative_to(parent)
        return True
    except ValueError:
        return False


def ensure_directory(path: Union[str, Path]) -> Path:
    """
    Ensure a directory exists (idempotent).

    Args:
        path: Directory path

    Returns:
        Path object (resolved)
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path.resolve()


def is_empty_directory(path: Union[str, Path]) -> bool:
    """
    Check if a directory exists and is empty.
    """
    path = Path(path)

    if not path.is_dir():
        return False

    return not any(path.iterdir())


# ============================================================================
# Archive Extraction
# ============================================================================


def _validate_archive_path(path: str, destination: Path) -> None:
    """
    Validate that an archive member path is safe to extract.

    Prevents directory traversal attacks (e.g., paths containing '../').

    Raises:
        InsecureArchiveError: If path attempts directory traversal
    """
    member_path = (destination / path).resolve()

    if not is_relative_to(member_path, destination.resolve()):
        raise InsecureArchiveError(
            f"Archive member '{path}' attempts directory traversal. "
            "This is a security risk and extraction has been blocked."
        )


def extract_tar_gz(
    archive_path: Union[str, Path],
    destination: Union[str, Path],
    progress_callback: Optional[Callable[[int], None]] = None,
) -> int:
    """
    Stream-extract a gzip compressed tar archive.

    The archive is read sequentially (tarfile stream mode), so the whole
    member list never has to be held in memory. Every member is validated
    against directory traversal before it is written.

    Args:
        archive_path: Path to the .tar.gz file
        destination: Directory to extract to (created if missing)
        progress_callback: Optional callback(members_extracted)

    Returns:
        Number of members extracted

    Raises:
        ExtractError: If the archive is missing, corrupt or truncated
        InsecureArchiveError: If archive contains malicious paths

    Example:
        >>> extract_tar_gz('sharp-v0.33.5-napi-v9-linux-x64.tar.gz', 'data/sharp/package')
    """
    archive_path = Path(archive_path)
    destination = Path(destination)

    if not archive_path.exists():
        raise ExtractError(f"Archive not found: {archive_path}")

    destination.mkdir(parents=True, exist_ok=True)

    count = 0
    try:
        with open(archive_path, "rb") as fileobj:
            with tarfile.open(fileobj=fileobj, mode="r|gz") as tar:
                for member in tar:
                    _validate_archive_path(member.name, destination)
                    # Extract with filter for security (Python 3.12+)
                    if sys.version_info >= (3, 12):
                        tar.extract(member, destination, filter="data")
                    else:
                        tar.extract(member, destination)
                    count += 1
                    if progress_callback:
                        progress_callback(count)
    except InsecureArchiveError:
        raise
    except Exception as e:
        raise ExtractError(f"Failed to extract {archive_path}: {e}") from e

    return count


# ============================================================================
# Safe File Operations
# ============================================================================


def safe_rmtree(
    path: Union[str, Path], require_prefix: Optional[Union[str, Path]] = None
) -> None:
    """
    Safely remove a directory tree with safeguards.

    Args:
        path: Directory to remove
        require_prefix: If specified, path must be under this directory

    Raises:
        ValueError: If path is not under require_prefix
        FilesystemError: If deletion fails

    Example:
        >>> safe_rmtree('/tmp/build', require_prefix='/tmp')
        >>> safe_rmtree('/usr/bin', require_prefix='/home')  # ValueError
    """
    path = Path(path).resolve()

    if require_prefix is not None:
        require_prefix = Path(require_prefix).resolve()
        if not is_relative_to(path, require_prefix):
            raise ValueError(
                f"Refusing to delete '{path}': not under required prefix '{require_prefix}'"
            )

    if not path.exists():
        return  # Already gone, nothing to do

    if not path.is_dir():
        raise FilesystemError(f"Path is not a directory: {path}")

    try:
        if IS_WINDOWS:

            def handle_remove_readonly(func, path, exc):
                """Error handler for Windows read-only files."""
                if not os.access(path, os.W_OK):
                    os.chmod(path, 0o777)
                    func(path)
                else:
                    raise

            shutil.rmtree(path, onerror=handle_remove_readonly)
        else:
            shutil.rmtree(path)

    except Exception as e:
        raise FilesystemError(f"Failed to remove directory '{path}': {e}") from e


def move_contents(source: Union[str, Path], destination: Union[str, Path]) -> int:
    """
    Move every entry of source directly into destination.

    Entries that already exist in destination are replaced.

    Args:
        source: Directory whose entries are moved
        destination: Directory receiving the entries

    Returns:
        Number of entries moved

    Raises:
        FilesystemError: If an entry cannot be moved
    """
    source = Path(source)
    destination = Path(destination)
    destination.mkdir(parents=True, exist_ok=True)

    moved = 0
    for entry in list(source.iterdir()):
        target = destination / entry.name
        try:
            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            elif target.exists() or target.is_symlink():
                target.unlink()
            shutil.move(str(entry), str(target))
        except OSError as e:
            raise FilesystemError(f"Failed to move '{entry}' to '{target}': {e}") from e
        moved += 1

    return moved


def move_tree(source: Union[str, Path], destination: Union[str, Path]) -> Path:
    """
    Move a whole directory tree to a new location.

    An existing tree at destination is removed first.

    Returns:
        Destination path
    """
    source = Path(source)
    destination = Path(destination)

    if destination.exists():
        safe_rmtree(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)

    try:
        shutil.move(str(source), str(destination))
    except OSError as e:
        raise FilesystemError(
            f"Failed to move '{source}' to '{destination}': {e}"
        ) from e

    return destination


__all__ = [
    "FilesystemError",
    "InsecureArchiveError",
    "is_relative_to",
    "ensure_directory",
    "is_empty_directory",
    "extract_tar_gz",
    "safe_rmtree",
    "move_contents",
    "move_tree",
]
