"""
Loaders for an installed native sharp module.

A loader receives the directory that holds the module explicitly; nothing
is communicated through process-wide state.
"""

import ctypes
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from sharpkit.core.exceptions import LoadError
from sharpkit.core.platform import MODULE_SUFFIX

logger = logging.getLogger(__name__)


@dataclass
class LoadedModule:
    """An installed native module and its loaded handle."""

    path: Path
    handle: Any = None

    @property
    def directory(self) -> Path:
        return self.path.parent

    @property
    def name(self) -> str:
        return self.path.name


class ModuleLoader(ABC):
    """Base class for native module loaders."""

    @abstractmethod
    def load(self, module_dir: Path) -> Any:
        """
        Load the native module found in module_dir.

        Raises:
            LoadError: If the module cannot be loaded
        """


def find_module_file(module_dir: Path, suffix: str = MODULE_SUFFIX) -> Path:
    """
    Return the native module file directly inside module_dir.

    Raises:
        LoadError: If module_dir holds no module file
    """
    module_dir = Path(module_dir)
    try:
        candidates = sorted(
            p for p in module_dir.iterdir() if p.name.endswith(suffix) and p.is_file()
        )
    except OSError as e:
        raise LoadError(f"Cannot read module directory {module_dir}: {e}") from e

    if not candidates:
        raise LoadError(f"No {suffix} file in {module_dir}")
    return candidates[0]


class NativeLibraryLoader(ModuleLoader):
    """
    Load the module as a shared library with ctypes.

    Co-located shared libraries (libvips) are resolved from module_dir,
    so the loader switches to global symbol visibility for the module.

    The addon leaves its napi_* symbols for the JavaScript runtime to
    provide, so this only succeeds inside a process that already exports
    them. Pass it to InstallOrchestrator explicitly where that holds.
    """

    def __init__(self, mode: Optional[int] = None):
        self.mode = ctypes.RTLD_GLOBAL if mode is None else mode

    def load(self, module_dir: Path) -> LoadedModule:
        module_file = find_module_file(module_dir)
        logger.debug(f"Loading native module: {module_file}")
        try:
            handle = ctypes.CDLL(str(module_file), mode=self.mode)
        except OSError as e:
            raise LoadError(f"Failed to load {module_file}: {e}") from e
        return LoadedModule(path=module_file, handle=handle)


class ModuleFileLoader(ModuleLoader):
    """
    Resolve and verify the module file without loading it into the process.

    This is the default loader. The host hands LoadedModule.path to its
    JavaScript runtime, which resolves the N-API symbols when it loads it.
    """

    def load(self, module_dir: Path) -> LoadedModule:
        module_file = find_module_file(module_dir)
        try:
            with open(module_file, "rb") as f:
                header = f.read(4)
        except OSError as e:
            raise LoadError(f"Cannot read {module_file}: {e}") from e
        if not header:
            raise LoadError(f"Native module is empty: {module_file}")
        logger.debug(f"Resolved native module: {module_file}")
        return LoadedModule(path=module_file)


__all__ = [
    "LoadedModule",
    "ModuleLoader",
    "NativeLibraryLoader",
    "ModuleFileLoader",
    "find_module_file",
]
