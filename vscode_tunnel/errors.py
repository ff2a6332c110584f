#!/usr/bin/env python3
"""
Exception hierarchy for the VS Code tunnel action.

Every fatal path raises a subclass of TunnelActionError so that the
top-level routine can report it through a single handler.
"""

from typing import Optional


class TunnelActionError(Exception):
    """Base exception for tunnel action operations."""
    pass


class ConfigurationError(TunnelActionError):
    """Configuration is invalid or the host is unsupported."""
    pass


class UnsupportedArchitectureError(ConfigurationError):
    """Host CPU architecture is not supported."""

    def __init__(self, architecture: str):
        self.architecture = architecture
        super().__init__(
            f"Unsupported architecture: {architecture}. Only x64 is supported yet."
        )


class UnsupportedPlatformError(ConfigurationError):
    """Host operating system is not supported."""

    def __init__(self, operating_system: str):
        self.operating_system = operating_system
        super().__init__(f"Unsupported platform: {operating_system}")


class VersionResolutionError(TunnelActionError):
    """Stable release version could not be determined."""
    pass


class ProvisioningError(TunnelActionError):
    """Obtaining the CLI binary failed."""
    pass


class DownloadError(ProvisioningError):
    """Downloading the CLI archive failed."""
    pass


class ExtractionError(ProvisioningError):
    """Extracting the CLI archive failed."""
    pass


class ExecutableNotFoundError(ProvisioningError):
    """Extracted archive did not contain the expected executable."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"VS Code CLI not found at expected path: {path}")


class TunnelError(TunnelActionError):
    """Base exception for tunnel process failures."""
    pass


class TunnelSpawnError(TunnelError):
    """The tunnel process could not be started."""
    pass


class TunnelExitError(TunnelError):
    """The tunnel process exited with a non-zero code."""

    def __init__(self, exit_code: int):
        self.exit_code = exit_code
        super().__init__(f"VS Code tunnel exited with code {exit_code}")


class TunnelTimeoutError(TunnelError):
    """A supervision timeout elapsed and the tunnel was killed."""

    def __init__(self, message: str, timeout_seconds: Optional[float] = None):
        self.timeout_seconds = timeout_seconds
        super().__init__(message)


class ConnectionTimeoutError(TunnelTimeoutError):
    """No client connected within the connection timeout."""
    pass


class SessionTimeoutError(TunnelTimeoutError):
    """The connected session exceeded the session timeout."""
    pass
