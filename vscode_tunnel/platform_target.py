#!/usr/bin/env python3
"""
Platform resolution for the VS Code CLI download.

Maps the host operating system and CPU architecture to the archive that
has to be fetched and where it is unpacked. Resolution is a pure mapping;
unsupported hosts are rejected before any network or filesystem access.
"""

import platform
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .errors import UnsupportedArchitectureError, UnsupportedPlatformError

CLI_TOOL_CACHE_NAME = "vscode-cli"
DOWNLOAD_BASE_URL = "https://code.visualstudio.com/sha/download?build=stable&os="
SUPPORTED_ARCHITECTURE = "x64"

_SYSTEM_ALIASES = {
    "linux": "linux",
    "darwin": "darwin",
    "windows": "win32",
    "win32": "win32",
}

_MACHINE_ALIASES = {
    "x86_64": "x64",
    "amd64": "x64",
    "x64": "x64",
}

# os -> (download os key, archive file name, archive format, executable)
_PLATFORM_TABLE = {
    "linux": ("cli-alpine-x64", "code-cli.tar.gz", "tar", "code"),
    "darwin": ("cli-darwin-x64", "code-cli.zip", "zip", "code"),
    "win32": ("cli-win32-x64", "code-cli.zip", "zip", "code.exe"),
}


@dataclass(frozen=True)
class PlatformTarget:
    """Everything needed to fetch and unpack the CLI for one host."""
    operating_system: str
    architecture: str
    download_url: str
    archive_file_name: str
    archive_format: str
    extract_directory: Path
    executable_name: str

    @property
    def is_windows(self) -> bool:
        return self.operating_system == "win32"


def normalize_system(system: str) -> str:
    lowered = system.strip().lower()
    return _SYSTEM_ALIASES.get(lowered, lowered)


def normalize_machine(machine: str) -> str:
    lowered = machine.strip().lower()
    return _MACHINE_ALIASES.get(lowered, lowered)


def resolve_platform(system: Optional[str] = None,
                     machine: Optional[str] = None,
                     home: Optional[Union[str, Path]] = None) -> PlatformTarget:
    """
    Resolve the download target for a host.

    Args:
        system: Operating system identifier, defaults to platform.system()
        machine: CPU architecture identifier, defaults to platform.machine()
        home: Home directory for the extraction path, defaults to Path.home()

    Returns:
        The resolved PlatformTarget

    Raises:
        UnsupportedArchitectureError: If the architecture is not x64
        UnsupportedPlatformError: If the OS is not linux, darwin or win32
    """
    if system is None:
        system = platform.system()
    if machine is None:
        machine = platform.machine()

    architecture = normalize_machine(machine)
    if architecture != SUPPORTED_ARCHITECTURE:
        raise UnsupportedArchitectureError(machine)

    operating_system = normalize_system(system)
    if operating_system not in _PLATFORM_TABLE:
        raise UnsupportedPlatformError(system)

    os_key, archive_file_name, archive_format, executable_name = _PLATFORM_TABLE[operating_system]
    home = Path(home) if home is not None else Path.home()

    return PlatformTarget(
        operating_system=operating_system,
        architecture=architecture,
        download_url=f"{DOWNLOAD_BASE_URL}{os_key}",
        archive_file_name=archive_file_name,
        archive_format=archive_format,
        extract_directory=home / CLI_TOOL_CACHE_NAME,
        executable_name=executable_name,
    )
