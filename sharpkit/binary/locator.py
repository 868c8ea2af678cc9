"""
Locate an installed native sharp module.

The canonical binary directory is "installed" when a ``*.node`` file is
reachable from it. The walk is read-only and safe to call speculatively.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional, Union

from sharpkit.core.platform import MODULE_SUFFIX

logger = logging.getLogger(__name__)


def locate_module_dir(
    root_dir: Union[str, Path],
    suffix: str = MODULE_SUFFIX,
    exclude: Iterable[Union[str, Path]] = (),
) -> Optional[Path]:
    """
    Find the directory holding an installed native module.

    Walks root_dir depth-first with an explicit stack. The first file whose
    name ends with suffix wins. Symlinked directories are not descended
    into, so link cycles cannot trap the walk.

    Args:
        root_dir: Directory to search
        suffix: Native module file suffix
        exclude: Directories to skip (e.g. the temporary workspace)

    Returns:
        Directory containing the module, or None if nothing is installed
        (including when root_dir is missing or unreadable)

    Example:
        >>> locate_module_dir(Path("data/assets/sharpkit/sharp"))
        PosixPath('data/assets/sharpkit/sharp/package')
    """
    skipped = {Path(p).resolve() for p in exclude}
    stack = [Path(root_dir)]

    while stack:
        directory = stack.pop()
        try:
            entries = sorted(directory.iterdir())
        except OSError as e:
            logger.debug(f"Cannot read {directory}: {e}")
            continue

        subdirs = []
        for entry in entries:
            if entry.is_symlink() and entry.is_dir():
                continue
            if entry.is_dir():
                if entry.resolve() not in skipped:
                    subdirs.append(entry)
            elif entry.name.endswith(suffix):
                logger.debug(f"Found native module: {entry}")
                return directory

        # Reverse so the first subdirectory is popped first
        stack.extend(reversed(subdirs))

    return None


def is_installed(root_dir: Union[str, Path]) -> bool:
    """Check whether a native module is installed under root_dir."""
    return locate_module_dir(root_dir) is not None


__all__ = ["locate_module_dir", "is_installed"]
