"""
Prebuilt archive installation.

Unpacks a downloaded sharp ``.tar.gz`` into the canonical binary directory,
flattens the ``build/Release`` layout some archives use, and removes the
temporary download afterwards.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from sharpkit.core.filesystem import (
    FilesystemError,
    extract_tar_gz,
    is_empty_directory,
    is_relative_to,
    move_contents,
    safe_rmtree,
)

logger = logging.getLogger(__name__)

RELEASE_SUBDIR = Path("build") / "Release"


def install_archive(
    archive_path: Union[str, Path],
    target_dir: Union[str, Path],
    staging_dir: Optional[Union[str, Path]] = None,
) -> Path:
    """
    Extract a prebuilt archive into target_dir and clean up.

    If extraction fails the error propagates before normalisation or
    cleanup run, leaving target_dir as the decoder left it.

    Args:
        archive_path: Downloaded .tar.gz file
        target_dir: Directory the module must end up in
        staging_dir: Temporary download directory to delete afterwards
            (default: the archive's parent directory)

    Returns:
        target_dir

    Raises:
        ExtractError: If the archive is corrupt or cannot be unpacked
        ValueError: If staging_dir is target_dir or one of its parents
    """
    archive_path = Path(archive_path)
    target_dir = Path(target_dir)
    staging_dir = Path(staging_dir) if staging_dir else archive_path.parent

    # staging_dir is deleted afterwards; it must not hold the installed files
    if is_relative_to(target_dir.resolve(), staging_dir.resolve()):
        raise ValueError(
            f"Staging directory {staging_dir} contains target directory {target_dir}"
        )

    logger.info(f"Extracting {archive_path.name} to {target_dir}")
    count = extract_tar_gz(archive_path, target_dir)
    logger.info(f"Extracted {count} entries to {target_dir}")

    flatten_release_dir(target_dir)
    cleanup_download(archive_path, staging_dir)

    return target_dir


def flatten_release_dir(target_dir: Union[str, Path]) -> bool:
    """
    Move the contents of target_dir/build/Release up into target_dir.

    Args:
        target_dir: Extraction directory

    Returns:
        True if a build/Release directory was flattened
    """
    target_dir = Path(target_dir)
    release_dir = target_dir / RELEASE_SUBDIR

    if not release_dir.is_dir():
        logger.debug(f"No {RELEASE_SUBDIR} directory under {target_dir}")
        return False

    moved = move_contents(release_dir, target_dir)
    release_dir.rmdir()

    build_dir = release_dir.parent
    if is_empty_directory(build_dir):
        build_dir.rmdir()

    logger.info(f"Moved {moved} entries from {release_dir} to {target_dir}")
    return True


def cleanup_download(archive_path: Path, staging_dir: Path) -> None:
    """
    Remove the downloaded archive and its staging directory.

    Failures are logged as warnings; stale temporary files never affect
    the next install attempt.
    """
    try:
        archive_path.unlink(missing_ok=True)
        logger.debug(f"Removed archive: {archive_path}")
    except OSError as e:
        logger.warning(f"Failed to remove archive {archive_path}, remove it manually: {e}")

    try:
        safe_rmtree(staging_dir)
        logger.debug(f"Removed staging directory: {staging_dir}")
    except (FilesystemError, ValueError) as e:
        logger.warning(
            f"Failed to remove staging directory {staging_dir}, remove it manually: {e}"
        )


__all__ = [
    "install_archive",
    "flatten_release_dir",
    "cleanup_download",
    "RELEASE_SUBDIR",
]
