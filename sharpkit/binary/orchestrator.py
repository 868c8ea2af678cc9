"""
Startup orchestration for the native sharp module.

This module sequences the installation pipeline as an explicit state
machine:

    UNINITIALIZED -> LOCATING -> FOUND -> LOADING -> READY
                              -> NOT_FOUND -> DOWNLOADING -> EXTRACTING -> LOADING
                              -> NOT_FOUND -> SOURCE_BUILDING -> LOADING
    any state -> FAILED

Every step records a tagged Outcome so callers can see which path was
taken. Re-running after FAILED is safe; no attempt counter is persisted.

Example:
    >>> config = InstallConfig.for_directory(Path("data/assets/sharpkit/sharp"))
    >>> result = InstallOrchestrator(config).run()
    >>> print(result.module_dir)
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional

import requests

from sharpkit.binary.builder import SourceBuilder
from sharpkit.binary.installer import install_archive
from sharpkit.binary.loader import ModuleFileLoader, ModuleLoader
from sharpkit.binary.locator import locate_module_dir
from sharpkit.config.parser import InstallConfig
from sharpkit.core.download import download_file
from sharpkit.core.exceptions import (
    BuildError,
    DownloadError,
    ExtractError,
    LoadError,
    ServiceNotReadyError,
)
from sharpkit.core.filesystem import FilesystemError, ensure_directory, safe_rmtree
from sharpkit.core.locking import LockManager
from sharpkit.core.platform import PACKAGE_NAME, PlatformInfo, artifact_name

logger = logging.getLogger(__name__)

REGISTRY_URL = "https://registry.npmmirror.com"
PREBUILT_SUBDIR = "package"


class InstallState(Enum):
    """States of the provisioning state machine."""

    UNINITIALIZED = "uninitialized"
    LOCATING = "locating"
    FOUND = "found"
    NOT_FOUND = "not_found"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    SOURCE_BUILDING = "source_building"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class Outcome(Enum):
    """Tagged result of a single transition."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    NO_PREBUILT = "no_prebuilt"
    INSTALLED = "installed"
    BUILT = "built"
    BUILD_FAILED = "build_failed"
    LOADED = "loaded"
    FAILED = "failed"


@dataclass
class InstallResult:
    """Result of a provisioning run."""

    state: InstallState
    """Terminal state (READY on success)"""

    module_dir: Optional[Path] = None
    """Directory holding the native module"""

    module: Any = None
    """Object returned by the module loader"""

    outcomes: List[Outcome] = field(default_factory=list)
    """Tagged outcomes in the order they happened"""

    states: List[InstallState] = field(default_factory=list)
    """Every state visited, starting with LOCATING"""

    @property
    def downloaded(self) -> bool:
        return Outcome.INSTALLED in self.outcomes


def prebuilt_url(version: str, name: str) -> str:
    """
    URL of the prebuilt archive for an artifact.

    Example:
        >>> prebuilt_url("0.33.5", "sharp-v0.33.5-napi-v9-linux-x64")
        'https://registry.npmmirror.com/-/binary/sharp/v0.33.5/sharp-v0.33.5-napi-v9-linux-x64.tar.gz'
    """
    return f"{REGISTRY_URL}/-/binary/{PACKAGE_NAME}/v{version}/{name}.tar.gz"


class InstallOrchestrator:
    """
    Locate, install or build, then load the native sharp module.

    Collaborators are injectable so hosts and tests can replace the
    network session, the source builder or the loader.
    """

    def __init__(
        self,
        config: InstallConfig,
        platform: Optional[PlatformInfo] = None,
        loader: Optional[ModuleLoader] = None,
        builder: Optional[SourceBuilder] = None,
        session: Optional[requests.Session] = None,
        lock_manager: Optional[LockManager] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            config: Install configuration
            platform: Platform to install for (default: detected lazily)
            loader: Module loader (default: ModuleFileLoader)
            builder: Source builder used for the fallback path
            session: Optional requests session for downloads
            lock_manager: Optional lock manager for the binary directory
        """
        self.config = config
        self.platform = platform
        self.loader = loader or ModuleFileLoader()
        self.builder = builder or SourceBuilder(package_manager=config.package_manager)
        self.session = session
        self.lock_manager = lock_manager or LockManager(config.binary_install_path)
        self.state = InstallState.UNINITIALIZED
        self._result: Optional[InstallResult] = None

    @property
    def binary_dir(self) -> Path:
        return self.config.binary_install_path

    def run(self) -> InstallResult:
        """
        Run the full provisioning sequence.

        Returns:
            InstallResult in state READY

        Raises:
            SharpKitError: Any pipeline error, unmodified, after moving to FAILED
        """
        self._result = InstallResult(state=InstallState.UNINITIALIZED)

        try:
            ensure_directory(self.config.temp_dir)
            ensure_directory(self.binary_dir)

            with self.lock_manager.install_lock(timeout=self.config.lock_timeout):
                module_dir = self._locate_or_install()

            self._transition(InstallState.LOADING)
            module = self.loader.load(module_dir)
        except Exception as e:
            self._record(Outcome.FAILED)
            self._transition(InstallState.FAILED)
            logger.error(f"sharp could not be provisioned: {e}")
            raise

        self._result.module_dir = module_dir
        self._result.module = module
        self._record(Outcome.LOADED)
        self._transition(InstallState.READY)
        logger.info(f"sharp loaded from {module_dir}")
        return self._result

    def _locate_or_install(self) -> Path:
        self._transition(InstallState.LOCATING)
        module_dir = self._locate()
        if module_dir is not None:
            self._record(Outcome.FOUND)
            self._transition(InstallState.FOUND)
            logger.info(f"Found installed native module in {module_dir}")
            return module_dir

        self._record(Outcome.NOT_FOUND)
        self._transition(InstallState.NOT_FOUND)

        if self.config.force_source_build:
            logger.info("Source build forced by configuration")
            return self._build_from_source()

        name = artifact_name(self.config.artifact_version, self.platform)
        try:
            self._download_and_extract(name)
        except DownloadError as e:
            if e.status_code == 404 and self.config.fallback_to_source:
                logger.warning(f"No prebuilt archive for {name}, building from source")
                self._record(Outcome.NO_PREBUILT)
                return self._build_from_source()
            raise

        module_dir = self._locate()
        if module_dir is None:
            raise ExtractError(f"Archive {name}.tar.gz did not contain a native module")
        self._record(Outcome.INSTALLED)
        return module_dir

    def _download_and_extract(self, name: str) -> None:
        staging_dir = self.config.temp_dir / name
        archive_path = staging_dir / f"{name}.tar.gz"
        url = prebuilt_url(self.config.artifact_version, name)

        self._transition(InstallState.DOWNLOADING)
        logger.info("Initializing sharp binary")
        try:
            download_file(
                url,
                archive_path,
                timeout=self.config.request_timeout,
                max_redirects=self.config.max_redirects,
                session=self.session,
            )
        except DownloadError:
            self._discard(staging_dir)
            raise
        logger.info(f"Downloaded {url} to {archive_path}")

        self._transition(InstallState.EXTRACTING)
        try:
            install_archive(
                archive_path, self.binary_dir / PREBUILT_SUBDIR, staging_dir=staging_dir
            )
        except ExtractError:
            self._discard(staging_dir)
            raise

    def _build_from_source(self) -> Path:
        self._transition(InstallState.SOURCE_BUILDING)
        work_dir = self.config.temp_dir / f"build-{self.config.artifact_version}"

        try:
            self.builder.build_from_source(
                self.config.artifact_version, work_dir, self.binary_dir
            )
        except BuildError:
            self._record(Outcome.BUILD_FAILED)
            raise
        finally:
            self._discard(work_dir)

        self._record(Outcome.BUILT)
        module_dir = self._locate()
        if module_dir is None:
            raise LoadError(
                f"No native module under {self.binary_dir} after building from source"
            )
        return module_dir

    def _locate(self) -> Optional[Path]:
        return locate_module_dir(self.binary_dir, exclude=[self.config.temp_dir])

    def _discard(self, path: Path) -> None:
        """Best-effort removal of a temporary workspace."""
        try:
            safe_rmtree(path)
        except (FilesystemError, ValueError) as e:
            logger.warning(f"Failed to remove temporary directory {path}: {e}")

    def _transition(self, state: InstallState) -> None:
        logger.debug(f"State: {self.state.value} -> {state.value}")
        self.state = state
        if self._result is not None:
            self._result.state = state
            self._result.states.append(state)

    def _record(self, outcome: Outcome) -> None:
        if self._result is not None:
            self._result.outcomes.append(outcome)


class SharpService:
    """
    Expose the loaded sharp module to a host application.

    The module is only available after start() succeeded.

    Example:
        >>> service = SharpService(config)
        >>> service.start()
        >>> sharp = service.sharp
    """

    def __init__(
        self,
        config: InstallConfig,
        orchestrator_factory: Optional[
            Callable[[InstallConfig], InstallOrchestrator]
        ] = None,
    ):
        self.config = config
        self._factory = orchestrator_factory or InstallOrchestrator
        self._module: Any = None
        self.result: Optional[InstallResult] = None

    @property
    def ready(self) -> bool:
        return self.result is not None and self.result.state is InstallState.READY

    @property
    def sharp(self) -> Any:
        """
        The loaded native module.

        Raises:
            ServiceNotReadyError: If start() has not completed successfully
        """
        if not self.ready:
            raise ServiceNotReadyError("sharp service has not started")
        return self._module

    def start(self) -> Any:
        """
        Provision and load the native module.

        Returns:
            The loaded module
        """
        logger.info(f"Starting sharp service, temporary directory: {self.config.temp_dir}")
        result = self._factory(self.config).run()
        self._module = result.module
        self.result = result
        logger.info("sharp service is ready")
        return self._module

    def start_in_background(self) -> "Future[Any]":
        """
        Run start() on a worker thread.

        Returns:
            Future resolving to the loaded module
        """
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sharpkit")
        future = executor.submit(self.start)
        executor.shutdown(wait=False)
        return future


__all__ = [
    "InstallState",
    "Outcome",
    "InstallResult",
    "InstallOrchestrator",
    "SharpService",
    "prebuilt_url",
    "REGISTRY_URL",
    "PREBUILT_SUBDIR",
]
