#!/usr/bin/env python3
"""
VS Code CLI provisioning.

Returns a runnable CLI for a given stable version, downloading and
unpacking it only when the tool cache has no entry for that version.
"""

import logging
import os
from pathlib import Path
from typing import Callable, Dict, Optional

from .errors import ExecutableNotFoundError
from .platform_target import CLI_TOOL_CACHE_NAME, PlatformTarget
from .toolcache import ToolCache, download_tool, extract_tar, extract_zip

logger = logging.getLogger(__name__)


class BinaryProvisioner:
    """Obtains the VS Code CLI for one platform target."""

    def __init__(self, target: PlatformTarget, tool_cache: ToolCache,
                 downloader: Callable = download_tool,
                 extractors: Optional[Dict[str, Callable]] = None):
        """
        Initialize the provisioner.

        Args:
            target: Resolved platform target
            tool_cache: Cache used for lookups and stores
            downloader: Callable(url, dest) -> Path
            extractors: Archive format -> callable(archive, dest) -> Path
        """
        self.target = target
        self.tool_cache = tool_cache
        self.downloader = downloader
        self.extractors = extractors or {"zip": extract_zip, "tar": extract_tar}

    def find_cached(self, version: str) -> Optional[Path]:
        """
        Look up the CLI in the tool cache.

        Lookup failures are reported and treated as a miss.
        """
        logger.info("Checking runner tool cache for cached VS Code CLI...")
        try:
            found = self.tool_cache.find(CLI_TOOL_CACHE_NAME, version, self.target.architecture)
        except Exception as e:
            logger.warning(f"Tool cache check failed: {e}")
            return None

        if found:
            cli_path = Path(found) / self.target.executable_name
            logger.info(f"Found cached VS Code CLI {version} in tool cache: {cli_path}")
            return cli_path

        logger.info("No cached VS Code CLI found for this version/arch.")
        return None

    def provision(self, version: str) -> Path:
        """
        Return the path to a runnable CLI for the given version.

        Args:
            version: Stable release version

        Returns:
            Absolute path to the executable

        Raises:
            DownloadError, ExtractionError: If fetching the archive fails
            ExecutableNotFoundError: If the archive lacks the executable
        """
        extract_dir = self.target.extract_directory
        extract_dir.mkdir(parents=True, exist_ok=True)

        cached = self.find_cached(version)
        if cached:
            return cached.absolute()

        logger.info("Downloading VS Code CLI...")
        archive_path = self.downloader(
            self.target.download_url, extract_dir / self.target.archive_file_name
        )
        logger.info(f"Downloaded to: {archive_path}")

        logger.info("Extracting VS Code CLI...")
        extract = self.extractors[self.target.archive_format]
        extract_dir = Path(extract(archive_path, extract_dir))

        extracted_cli = extract_dir / self.target.executable_name
        if not extracted_cli.exists():
            raise ExecutableNotFoundError(extracted_cli)

        if not self.target.is_windows:
            logger.info(f"Making {extracted_cli} executable...")
            os.chmod(extracted_cli, 0o755)

        logger.info("Caching VS Code CLI...")
        cache_dir = self.tool_cache.cache_file(
            extracted_cli,
            self.target.executable_name,
            CLI_TOOL_CACHE_NAME,
            version,
            self.target.architecture,
        )
        logger.info(f"Cached VS Code CLI to: {cache_dir}")

        return (Path(cache_dir) / self.target.executable_name).absolute()
