"""
Tests for the provisioning state machine.

Network access is mocked with `responses`; the source builder and module
loader are replaced with test doubles.
"""

import sys
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
import responses

from sharpkit.binary.loader import LoadedModule, ModuleFileLoader, ModuleLoader
from sharpkit.binary.orchestrator import (
    InstallOrchestrator,
    InstallState,
    Outcome,
    SharpService,
    prebuilt_url,
)
from sharpkit.config.parser import InstallConfig
from sharpkit.core.exceptions import (
    BuildError,
    DownloadError,
    ExtractError,
    LoadError,
    ServiceNotReadyError,
    UnsupportedPlatformError,
)
from sharpkit.core.platform import PlatformInfo
from tests.utils.helpers import build_tar_gz, compile_napi_addon, has_command

ARTIFACT = "sharp-v1.2.3-napi-v9-linux-x64"
URL = (
    "https://registry.npmmirror.com/-/binary/sharp/v1.2.3/"
    "sharp-v1.2.3-napi-v9-linux-x64.tar.gz"
)


class RecordingLoader(ModuleLoader):
    """Loader recording the directories it was asked to load."""

    def __init__(self, error: Exception = None):
        self.calls = []
        self.error = error

    def load(self, module_dir: Path):
        self.calls.append(module_dir)
        if self.error:
            raise self.error
        return LoadedModule(path=module_dir / "loaded")


@pytest.fixture
def loader():
    return RecordingLoader()


@pytest.fixture
def prebuilt_archive():
    return build_tar_gz({f"build/Release/{ARTIFACT}.node": b"native"})


def make_orchestrator(config, linux_x64, loader, builder=None):
    return InstallOrchestrator(
        config, platform=linux_x64, loader=loader, builder=builder or Mock()
    )


class TestPrebuiltUrl:
    def test_url_shape(self):
        assert prebuilt_url("1.2.3", ARTIFACT) == URL


class TestInstallFromPrebuilt:
    """Empty canonical directory, prebuilt archive available."""

    @responses.activate
    def test_end_to_end(self, install_config, linux_x64, loader, prebuilt_archive):
        responses.add(responses.GET, URL, body=prebuilt_archive, status=200)

        result = make_orchestrator(install_config, linux_x64, loader).run()

        module_dir = install_config.binary_install_path / "package"
        assert result.state is InstallState.READY
        assert result.module_dir == module_dir
        assert (module_dir / f"{ARTIFACT}.node").read_bytes() == b"native"
        assert loader.calls == [module_dir]
        assert result.module == LoadedModule(path=module_dir / "loaded")
        assert result.outcomes == [Outcome.NOT_FOUND, Outcome.INSTALLED, Outcome.LOADED]
        assert result.states == [
            InstallState.LOCATING,
            InstallState.NOT_FOUND,
            InstallState.DOWNLOADING,
            InstallState.EXTRACTING,
            InstallState.LOADING,
            InstallState.READY,
        ]
        assert result.downloaded is True
        # Temporary workspace is gone
        assert not (install_config.temp_dir / ARTIFACT).exists()

    @responses.activate
    def test_follows_registry_redirects(
        self, install_config, linux_x64, loader, prebuilt_archive
    ):
        responses.add(
            responses.GET,
            URL,
            status=302,
            headers={"Location": "https://cdn.npmmirror.com/binaries/sharp.tar.gz"},
        )
        responses.add(
            responses.GET,
            "https://cdn.npmmirror.com/binaries/sharp.tar.gz",
            body=prebuilt_archive,
            status=200,
        )

        result = make_orchestrator(install_config, linux_x64, loader).run()

        assert result.state is InstallState.READY
        assert len(responses.calls) == 2

    @responses.activate
    def test_second_run_skips_network(
        self, install_config, linux_x64, prebuilt_archive
    ):
        responses.add(responses.GET, URL, body=prebuilt_archive, status=200)

        first = make_orchestrator(install_config, linux_x64, RecordingLoader()).run()
        second_loader = RecordingLoader()
        second = make_orchestrator(install_config, linux_x64, second_loader).run()

        assert len(responses.calls) == 1
        assert first.downloaded is True
        assert second.downloaded is False
        assert second.outcomes == [Outcome.FOUND, Outcome.LOADED]
        assert second.states == [
            InstallState.LOCATING,
            InstallState.FOUND,
            InstallState.LOADING,
            InstallState.READY,
        ]
        assert second_loader.calls == [first.module_dir]

    @responses.activate
    def test_real_file_loader(self, install_config, linux_x64, prebuilt_archive):
        responses.add(responses.GET, URL, body=prebuilt_archive, status=200)

        result = make_orchestrator(install_config, linux_x64, ModuleFileLoader()).run()

        assert result.module.name == f"{ARTIFACT}.node"


class TestDefaultLoader:
    """The orchestrator works with a real addon when no loader is injected."""

    def test_default_loader(self, install_config):
        orchestrator = InstallOrchestrator(install_config)
        assert isinstance(orchestrator.loader, ModuleFileLoader)

    @pytest.mark.skipif(
        not sys.platform.startswith("linux") or not has_command("cc"),
        reason="Needs a Linux C compiler",
    )
    @responses.activate
    def test_compiled_addon_reaches_ready(self, install_config, linux_x64, tmp_path):
        addon = compile_napi_addon(tmp_path / f"{ARTIFACT}.node")
        responses.add(
            responses.GET,
            URL,
            body=build_tar_gz({f"build/Release/{ARTIFACT}.node": addon.read_bytes()}),
            status=200,
        )

        result = InstallOrchestrator(
            install_config, platform=linux_x64, builder=Mock()
        ).run()

        module_dir = install_config.binary_install_path / "package"
        assert result.state is InstallState.READY
        assert result.module.path == module_dir / f"{ARTIFACT}.node"
        assert result.module.path.read_bytes() == addon.read_bytes()


class TestExistingInstallation:
    def test_found_without_platform_resolution(self, install_config, loader):
        module_dir = install_config.binary_install_path / "custom" / "place"
        module_dir.mkdir(parents=True)
        (module_dir / "manually-placed.node").write_bytes(b"bin")

        # An unsupported platform does not matter when a module exists
        orchestrator = make_orchestrator(
            install_config, PlatformInfo("freebsd", "x64"), loader
        )
        result = orchestrator.run()

        assert result.state is InstallState.READY
        assert result.module_dir == module_dir
        assert orchestrator.state is InstallState.READY

    def test_leftover_temp_files_are_ignored(self, install_config, loader):
        stale = install_config.temp_dir / "build-1.2.3" / "node_modules" / "sharp"
        stale.mkdir(parents=True)
        (stale / "half-built.node").write_bytes(b"bin")

        orchestrator = make_orchestrator(
            install_config, PlatformInfo("freebsd", "x64"), loader
        )
        with pytest.raises(UnsupportedPlatformError):
            orchestrator.run()


class TestFailures:
    """Failure paths transition to FAILED and re-raise unmodified."""

    def test_unsupported_platform(self, install_config, loader):
        orchestrator = make_orchestrator(
            install_config, PlatformInfo("linux", "ia32", "glibc"), loader
        )

        with pytest.raises(UnsupportedPlatformError):
            orchestrator.run()

        assert orchestrator.state is InstallState.FAILED
        assert loader.calls == []

    @responses.activate
    def test_server_error_is_fatal(self, install_config, linux_x64, loader):
        responses.add(responses.GET, URL, status=503)
        builder = Mock()

        orchestrator = make_orchestrator(install_config, linux_x64, loader, builder)
        with pytest.raises(DownloadError) as exc_info:
            orchestrator.run()

        assert exc_info.value.status_code == 503
        assert orchestrator.state is InstallState.FAILED
        builder.build_from_source.assert_not_called()
        assert not (install_config.temp_dir / ARTIFACT).exists()

    @responses.activate
    def test_write_error_discards_staging(self, install_config, linux_x64, loader):
        responses.add(responses.GET, URL, body=b"x" * 100000, status=200)
        builder = Mock()

        def fail_after_first_chunk(*args, **kwargs):
            yield b"partial"
            raise OSError("No space left on device")

        orchestrator = make_orchestrator(install_config, linux_x64, loader, builder)
        with patch(
            "requests.models.Response.iter_content",
            side_effect=fail_after_first_chunk,
        ):
            with pytest.raises(DownloadError, match="No space left"):
                orchestrator.run()

        assert orchestrator.state is InstallState.FAILED
        assert not (install_config.temp_dir / ARTIFACT).exists()
        builder.build_from_source.assert_not_called()

    @responses.activate
    def test_corrupt_archive(self, install_config, linux_x64, loader):
        responses.add(responses.GET, URL, body=b"garbage", status=200)

        orchestrator = make_orchestrator(install_config, linux_x64, loader)
        with pytest.raises(ExtractError):
            orchestrator.run()

        assert orchestrator.state is InstallState.FAILED
        assert not (install_config.temp_dir / ARTIFACT).exists()

    @responses.activate
    def test_archive_without_module(self, install_config, linux_x64, loader):
        responses.add(
            responses.GET, URL, body=build_tar_gz({"README.md": b"hi"}), status=200
        )

        with pytest.raises(ExtractError, match="did not contain"):
            make_orchestrator(install_config, linux_x64, loader).run()

    @responses.activate
    def test_load_failure(self, install_config, linux_x64, prebuilt_archive):
        responses.add(responses.GET, URL, body=prebuilt_archive, status=200)
        loader = RecordingLoader(error=LoadError("undefined symbol: napi_create"))

        orchestrator = make_orchestrator(install_config, linux_x64, loader)
        with pytest.raises(LoadError, match="undefined symbol"):
            orchestrator.run()

        assert orchestrator.state is InstallState.FAILED

    @responses.activate
    def test_retry_after_failure(
        self, install_config, linux_x64, loader, prebuilt_archive
    ):
        responses.add(responses.GET, URL, status=500)
        responses.add(responses.GET, URL, body=prebuilt_archive, status=200)

        with pytest.raises(DownloadError):
            make_orchestrator(install_config, linux_x64, loader).run()

        result = make_orchestrator(install_config, linux_x64, loader).run()
        assert result.state is InstallState.READY


class TestSourceBuildFallback:
    """No prebuilt archive, or source build forced."""

    @staticmethod
    def _builder_producing_module():
        def build(version, work_dir, binary_dir):
            (work_dir / "node_modules").mkdir(parents=True)
            release = binary_dir / "build" / "Release"
            release.mkdir(parents=True)
            (release / "sharp-linux-x64.node").write_bytes(b"compiled")
            return binary_dir / "build"

        builder = Mock()
        builder.build_from_source.side_effect = build
        return builder

    @responses.activate
    def test_404_falls_back_to_source(self, install_config, linux_x64, loader):
        responses.add(responses.GET, URL, status=404)
        builder = self._builder_producing_module()

        result = make_orchestrator(install_config, linux_x64, loader, builder).run()

        release = install_config.binary_install_path / "build" / "Release"
        assert result.state is InstallState.READY
        assert result.module_dir == release
        assert result.outcomes == [
            Outcome.NOT_FOUND,
            Outcome.NO_PREBUILT,
            Outcome.BUILT,
            Outcome.LOADED,
        ]
        assert InstallState.SOURCE_BUILDING in result.states
        builder.build_from_source.assert_called_once_with(
            "1.2.3",
            install_config.temp_dir / "build-1.2.3",
            install_config.binary_install_path,
        )
        assert not (install_config.temp_dir / "build-1.2.3").exists()

    @responses.activate
    def test_404_without_fallback(self, binary_dir, linux_x64, loader):
        config = InstallConfig.for_directory(
            binary_dir, artifact_version="1.2.3", fallback_to_source=False
        )
        responses.add(responses.GET, URL, status=404)
        builder = Mock()

        with pytest.raises(DownloadError):
            make_orchestrator(config, linux_x64, loader, builder).run()

        builder.build_from_source.assert_not_called()

    def test_forced_source_build_skips_download(self, binary_dir, linux_x64, loader):
        config = InstallConfig.for_directory(
            binary_dir, artifact_version="1.2.3", force_source_build=True
        )
        builder = self._builder_producing_module()

        with responses.RequestsMock() as rsps:
            result = make_orchestrator(config, linux_x64, loader, builder).run()
            assert len(rsps.calls) == 0

        assert result.state is InstallState.READY
        assert Outcome.BUILT in result.outcomes

    def test_build_failure(self, binary_dir, linux_x64, loader):
        config = InstallConfig.for_directory(
            binary_dir, artifact_version="1.2.3", force_source_build=True
        )
        builder = Mock()
        builder.build_from_source.side_effect = BuildError("gyp failed", exit_code=1)

        orchestrator = make_orchestrator(config, linux_x64, loader, builder)
        with pytest.raises(BuildError):
            orchestrator.run()

        assert orchestrator.state is InstallState.FAILED
        assert orchestrator._result.outcomes[-2:] == [
            Outcome.BUILD_FAILED,
            Outcome.FAILED,
        ]

    def test_build_without_output_fails_at_load(self, binary_dir, linux_x64, loader):
        config = InstallConfig.for_directory(
            binary_dir, artifact_version="1.2.3", force_source_build=True
        )
        builder = Mock()
        builder.build_from_source.return_value = None

        with pytest.raises(LoadError, match="after building from source"):
            make_orchestrator(config, linux_x64, loader, builder).run()


class TestSharpService:
    """Tests for the host-facing service wrapper."""

    @responses.activate
    def test_start_exposes_module(self, install_config, linux_x64, prebuilt_archive):
        responses.add(responses.GET, URL, body=prebuilt_archive, status=200)
        loader = RecordingLoader()

        service = SharpService(
            install_config,
            orchestrator_factory=lambda config: make_orchestrator(
                config, linux_x64, loader
            ),
        )

        with pytest.raises(ServiceNotReadyError):
            service.sharp

        module = service.start()

        assert service.ready is True
        assert service.sharp is module

    def test_failed_start_keeps_service_unavailable(self, install_config, loader):
        service = SharpService(
            install_config,
            orchestrator_factory=lambda config: make_orchestrator(
                config, PlatformInfo("linux", "ia32", "glibc"), loader
            ),
        )

        with pytest.raises(UnsupportedPlatformError):
            service.start()

        assert service.ready is False
        with pytest.raises(ServiceNotReadyError):
            service.sharp

    def test_start_in_background(self, install_config, loader):
        module_dir = install_config.binary_install_path / "package"
        module_dir.mkdir(parents=True)
        (module_dir / "x.node").write_bytes(b"bin")

        service = SharpService(
            install_config,
            orchestrator_factory=lambda config: make_orchestrator(
                config, PlatformInfo("linux", "x64", "glibc"), loader
            ),
        )

        future = service.start_in_background()

        assert future.result(timeout=10) == LoadedModule(path=module_dir / "loaded")
        assert service.ready is True
