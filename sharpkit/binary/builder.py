"""
Build the native sharp module from source.

Used when the binary registry has no prebuilt archive for the platform, or
when the operator forces a source build. The package is installed into an
isolated work directory with the Node package manager, its native build
step is run as a child process, and the compiled output is moved into the
canonical binary directory.
"""

import json
import logging
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from sharpkit.core.exceptions import BuildError
from sharpkit.core.filesystem import move_tree
from sharpkit.core.platform import PACKAGE_NAME

logger = logging.getLogger(__name__)

# Packages the native build step needs next to the sources
BUILD_DEPENDENCIES = ("node-addon-api", "node-gyp")


class SourceBuilder:
    """
    Install sharp sources into a work directory and compile them.

    Example:
        >>> builder = SourceBuilder(package_manager="npm")
        >>> builder.build_from_source("0.33.5", Path("tmp/build-0.33.5"), binary_dir)
    """

    def __init__(
        self,
        package_manager: str = "npm",
        package: str = PACKAGE_NAME,
        build_output: str = "build",
        build_command: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize source builder.

        Args:
            package_manager: Node package manager executable (npm, pnpm, yarn)
            package: Package to install and build
            build_output: Output directory the build tool writes, relative to
                the installed package
            build_command: Build command run inside the installed package
                (default: '<package_manager> run build')
            timeout: Timeout in seconds for the install step
        """
        self.package_manager = package_manager
        self.package = package
        self.build_output = build_output
        self.build_command = list(build_command or [package_manager, "run", "build"])
        self.timeout = timeout

    def build_from_source(
        self, version: str, work_dir: Path, binary_dir: Path
    ) -> Optional[Path]:
        """
        Install, build and relocate the native module.

        Args:
            version: Package version to build
            work_dir: Isolated project directory owned by this attempt
            binary_dir: Canonical binary directory receiving the build output

        Returns:
            Path of the relocated build output, or None if the build reported
            success but produced no output directory

        Raises:
            BuildError: If installing or building fails
        """
        work_dir = Path(work_dir)
        binary_dir = Path(binary_dir)
        work_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"Building {self.package}@{version} from source in {work_dir}")

        self.write_project_descriptor(work_dir)
        self.install_package(version, work_dir)

        package_dir = self.package_dir(work_dir)
        self.run_build(package_dir)

        output_dir = package_dir / self.build_output
        if not output_dir.is_dir():
            logger.warning(
                f"Build finished but {output_dir} does not exist; nothing to relocate"
            )
            return None

        destination = binary_dir / self.build_output
        move_tree(output_dir, destination)
        logger.info(f"Moved build output to {destination}")
        return destination

    def package_dir(self, work_dir: Path) -> Path:
        """Installed location of the package inside work_dir."""
        return Path(work_dir) / "node_modules" / self.package

    def write_project_descriptor(self, work_dir: Path) -> Path:
        """
        Create a private package.json in work_dir if none exists.

        Returns:
            Path to package.json
        """
        descriptor = Path(work_dir) / "package.json"
        if descriptor.exists():
            logger.debug(f"Using existing project descriptor: {descriptor}")
            return descriptor

        content = {
            "name": f"{self.package}-source-build",
            "version": "0.0.0",
            "private": True,
        }
        descriptor.write_text(json.dumps(content, indent=2) + "\n", encoding="utf-8")
        logger.debug(f"Created project descriptor: {descriptor}")
        return descriptor

    def install_package(self, version: str, work_dir: Path) -> None:
        """
        Install the package and its build tool without saving it as a dependency.

        Raises:
            BuildError: If the package manager is missing or the install fails
        """
        executable = self._require_executable(self.package_manager)
        cmd = [
            executable,
            "install",
            "--no-save",
            "--ignore-scripts",
            f"{self.package}@{version}",
            *BUILD_DEPENDENCIES,
        ]
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                cwd=str(work_dir),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise BuildError(f"Installing {self.package} timed out: {e}") from e
        except OSError as e:
            raise BuildError(f"Failed to run {self.package_manager}: {e}") from e

        if result.returncode != 0:
            raise BuildError(
                f"Failed to install {self.package}@{version}: {result.stderr.strip()}",
                exit_code=result.returncode,
            )

        logger.info(f"Installed {self.package}@{version} into {work_dir}")

    def run_build(self, package_dir: Path) -> None:
        """
        Run the native build step, streaming its output to the log.

        Raises:
            BuildError: If the command cannot start or exits non-zero
        """
        cmd = self._build_cmd()
        logger.info(f"Running native build: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                cwd=str(package_dir),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except OSError as e:
            raise BuildError(f"Failed to start native build: {e}") from e

        with process:
            assert process.stdout is not None
            for line in process.stdout:
                line = line.rstrip()
                if line:
                    logger.info(f"[build] {line}")
            exit_code = process.wait()

        if exit_code != 0:
            raise BuildError(
                f"Native build exited with code {exit_code}", exit_code=exit_code
            )

        logger.info("Native build finished")

    def _build_cmd(self) -> List[str]:
        cmd = list(self.build_command)
        cmd[0] = self._require_executable(cmd[0])
        return cmd

    @staticmethod
    def _require_executable(name: str) -> str:
        path = shutil.which(name)
        if path is None:
            raise BuildError(f"Executable not found on PATH: {name}")
        return path


__all__ = ["SourceBuilder", "BUILD_DEPENDENCIES"]
