#!/usr/bin/env python3
"""
Top-level routine of the VS Code tunnel action.

Runs every step from platform resolution to the supervised tunnel and
returns an Outcome. Exit codes are the business of the CLI entry point.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .config import TunnelConfig
from .data_cache import DataDirectoryCache
from .errors import VersionResolutionError
from .platform_target import PlatformTarget, resolve_platform
from .provisioner import BinaryProvisioner
from .supervisor import TunnelSupervisor
from .toolcache import ToolCache
from .version_resolver import STABLE_RELEASES_URL, fetch_stable_release_version

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Outcome:
    """Final result of a tunnel action run."""
    success: bool
    message: str = ""

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    @classmethod
    def ok(cls, message: str = "") -> "Outcome":
        return cls(True, message)

    @classmethod
    def failure(cls, message: str) -> "Outcome":
        return cls(False, message)


def resolve_version(releases_url: str = STABLE_RELEASES_URL,
                    fetch: Callable[[str], str] = fetch_stable_release_version) -> str:
    """
    Resolve the stable version, treating an empty answer as fatal.

    Raises:
        VersionResolutionError: If no version could be determined
    """
    logger.info("Checking stable releases API for version...")
    version = fetch(releases_url)
    if not version:
        raise VersionResolutionError(
            f"Failed to determine stable VS Code version from {releases_url}"
        )
    logger.info(f"Stable VS Code version: {version}")
    return version


def _run_supervisor(supervisor: TunnelSupervisor) -> int:
    return asyncio.run(supervisor.run())


def run_tunnel(config: TunnelConfig,
               target: Optional[PlatformTarget] = None,
               tool_cache: Optional[ToolCache] = None,
               data_cache: Optional[DataDirectoryCache] = None,
               fetch_version: Callable[[str], str] = fetch_stable_release_version,
               provisioner_factory: Callable[..., BinaryProvisioner] = BinaryProvisioner,
               supervisor_factory: Callable[..., TunnelSupervisor] = TunnelSupervisor,
               run_supervisor: Callable[[TunnelSupervisor], int] = _run_supervisor) -> Outcome:
    """
    Provision the CLI and run a supervised tunnel.

    Args:
        config: Action configuration
        target: Platform target, resolved from the host when omitted
        tool_cache: Tool cache, the default root when omitted
        data_cache: Data-directory cache, derived from config when omitted
        fetch_version: Releases lookup
        provisioner_factory: Builds the BinaryProvisioner
        supervisor_factory: Builds the TunnelSupervisor
        run_supervisor: Drives the supervisor to completion

    Returns:
        Outcome of the run
    """
    try:
        config.validate()
        logger.info(f"Starting VS Code Tunnel: {config.tunnel_name}")
        logger.debug(
            f"keep-alive-duration of {config.keep_alive_seconds}s is superseded by "
            f"session-timeout ({config.session_timeout_minutes:g} minutes)"
        )

        if target is None:
            target = resolve_platform()
        logger.info(f"Platform: {target.operating_system}, Architecture: {target.architecture}")
        logger.info(f"Download URL: {target.download_url}")

        version = resolve_version(fetch=fetch_version)

        provisioner = provisioner_factory(target, tool_cache or ToolCache())
        cli_path = provisioner.provision(version)

        data_dir = Path(config.data_dir)
        data_dir.mkdir(parents=True, exist_ok=True)

        if data_cache is None:
            data_cache = DataDirectoryCache.from_identity(config.cache_identity)
        if data_cache is not None:
            data_cache.restore(data_dir)
        else:
            logger.debug("No cache identity available; CLI data will not be cached")

        logger.info("Starting VS Code tunnel...")
        supervisor = supervisor_factory(
            cli_path,
            data_dir,
            tunnel_name=config.tunnel_name or None,
            verbose=config.verbose,
            connection_timeout=config.connection_timeout_seconds,
            session_timeout=config.session_timeout_seconds,
        )
        run_supervisor(supervisor)

        if data_cache is not None:
            data_cache.save(data_dir)
    except Exception as e:
        message = f"Action failed with error: {e}"
        logger.debug(message, exc_info=True)
        return Outcome.failure(message)

    return Outcome.ok("VS Code tunnel session completed")
