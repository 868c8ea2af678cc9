"""
Platform command implementation.

Shows what the installer would download on this host.
"""

from sharpkit.binary.orchestrator import prebuilt_url
from sharpkit.cli.utils import load_install_config
from sharpkit.config.parser import validate_version
from sharpkit.core.platform import artifact_name, detect_platform


def run(args) -> int:
    """
    Print the platform key, artifact name and prebuilt URL.

    Returns:
        Exit code (0 for success)

    Raises:
        ConfigError: If --sharp-version is not a semantic version
        UnsupportedPlatformError: If the host has no prebuilt binary
    """
    config = load_install_config(args)
    version = config.artifact_version
    if args.sharp_version:
        version = validate_version(args.sharp_version, "--sharp-version")

    info = detect_platform()
    name = artifact_name(version, info)

    print(f"Platform:     {info}")
    print(f"Platform key: {info.platform_string()}")
    print(f"Artifact:     {name}")
    print(f"URL:          {prebuilt_url(version, name)}")
    return 0
