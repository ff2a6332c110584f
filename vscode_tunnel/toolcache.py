#!/usr/bin/env python3
"""
Download, extraction and keyed tool cache primitives.

The tool cache stores one directory per (tool name, version, arch) and
marks an entry complete only after every file has been copied, so a
half-written entry is never returned by find().
"""

import logging
import os
import shutil
import tarfile
import zipfile
from pathlib import Path
from typing import Optional, Union

import requests

from .errors import DownloadError, ExtractionError

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 64 * 1024
DEFAULT_DOWNLOAD_TIMEOUT = 60


def default_tool_cache_root() -> Path:
    """Tool cache root: RUNNER_TOOL_CACHE when the runner provides one."""
    runner_cache = os.environ.get("RUNNER_TOOL_CACHE")
    if runner_cache:
        return Path(runner_cache)
    return Path.home() / ".cache" / "vscode-tunnel" / "tool-cache"


def download_tool(url: str, dest: Union[str, Path],
                  session: Optional[requests.Session] = None,
                  timeout: float = DEFAULT_DOWNLOAD_TIMEOUT) -> Path:
    """
    Download a file over HTTP(S).

    Args:
        url: URL to fetch
        dest: Destination file path
        session: Optional requests session
        timeout: Connect/read timeout in seconds

    Returns:
        Path to the downloaded file

    Raises:
        DownloadError: If the request fails or the file cannot be written
    """
    dest = Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    http = session or requests
    partial = dest.with_name(dest.name + ".part")

    try:
        with http.get(url, stream=True, timeout=timeout, allow_redirects=True) as response:
            response.raise_for_status()
            with open(partial, "wb") as f:
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
        os.replace(partial, dest)
    except (requests.RequestException, OSError) as e:
        partial.unlink(missing_ok=True)
        raise DownloadError(f"Failed to download {url}: {e}") from e

    logger.debug(f"Downloaded {url} to {dest} ({dest.stat().st_size} bytes)")
    return dest


def _check_member_path(dest: Path, member_name: str) -> None:
    target = (dest / member_name).resolve()
    root = dest.resolve()
    if target != root and root not in target.parents:
        raise ExtractionError(f"Archive member escapes extraction directory: {member_name}")


def extract_zip(archive_path: Union[str, Path], dest: Union[str, Path]) -> Path:
    """
    Extract a zip archive.

    Returns:
        The extraction directory
    """
    archive_path = Path(archive_path)
    dest = Path(dest)
    dest.mkdir(parents=True, exist_ok=True)
    logger.debug(f"Extracting {archive_path} to {dest}")

    try:
        with zipfile.ZipFile(archive_path, "r") as zip_file:
            for name in zip_file.namelist():
                _check_member_path(dest, name)
            zip_file.extractall(dest)
    except (zipfile.BadZipFile, OSError) as e:
        raise ExtractionError(f"Failed to extract {archive_path}: {e}") from e

    return dest


def extract_tar(archive_path: Union[str, Path], dest: Union[str, Path]) -> Path:
    """
    Extract a (possibly compressed) tar archive.

    Returns:
        The extraction directory
    """
    archive_path = Path(archive_path)
    dest = Path(dest)
    dest.mkdir(parents=True, exist_ok=True)
    logger.debug(f"Extracting {archive_path} to {dest}")

    try:
        with tarfile.open(archive_path, "r:*") as tar_file:
            for member in tar_file.getmembers():
                _check_member_path(dest, member.name)
            tar_file.extractall(dest)
    except (tarfile.TarError, OSError) as e:
        raise ExtractionError(f"Failed to extract {archive_path}: {e}") from e

    return dest


class ToolCache:
    """Keyed on-disk store of tool binaries by name, version and arch."""

    def __init__(self, root: Optional[Union[str, Path]] = None):
        self.root = Path(root) if root is not None else default_tool_cache_root()

    def _entry_dir(self, name: str, version: str, arch: str) -> Path:
        if not name or not version:
            raise ValueError("Tool name and version are required")
        for part in (name, version, arch):
            if "/" in part or "\\" in part or part in (".", ".."):
                raise ValueError(f"Invalid tool cache key component: {part!r}")
        return self.root / name / version / arch

    def find(self, name: str, version: str, arch: str = "x64") -> Optional[Path]:
        """
        Look up a cached tool.

        Returns:
            The cached tool directory, or None on a miss
        """
        entry = self._entry_dir(name, version, arch)
        marker = entry.with_name(entry.name + ".complete")
        if entry.is_dir() and marker.exists():
            return entry
        return None

    def cache_file(self, source_file: Union[str, Path], target_name: str,
                   name: str, version: str, arch: str = "x64") -> Path:
        """
        Store a single file in the cache.

        Args:
            source_file: File to copy into the cache
            target_name: File name inside the cache entry
            name: Tool name
            version: Tool version
            arch: Tool architecture

        Returns:
            The cache entry directory
        """
        entry = self._entry_dir(name, version, arch)
        marker = entry.with_name(entry.name + ".complete")
        marker.unlink(missing_ok=True)
        if entry.exists():
            shutil.rmtree(entry)
        entry.mkdir(parents=True)

        shutil.copy2(source_file, entry / target_name)
        marker.touch()
        logger.debug(f"Cached {source_file} as {name}@{version} ({arch}) in {entry}")
        return entry
