#!/usr/bin/env python3
"""
Persistence of the CLI data directory between runs.

The VS Code CLI keeps its login state in the --cli-data-dir directory.
Saving that directory under a key derived from the invoking identity lets
a later run of the same user skip the device login. Every failure here is
reported as a warning and never stops the tunnel.
"""

import hashlib
import logging
import os
import tarfile
import tempfile
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "vscode-tunnel-data"


def default_data_cache_root() -> Path:
    return Path.home() / ".cache" / "vscode-tunnel" / "data-cache"


def derive_cache_key(identity: str) -> str:
    """Derive a filesystem-safe cache key from an identity string."""
    digest = hashlib.sha256(identity.encode("utf-8")).hexdigest()
    return f"{CACHE_KEY_PREFIX}-{digest[:16]}"


class DataDirectoryCache:
    """Keyed archive store for one CLI data directory."""

    def __init__(self, identity: str, cache_root: Optional[Union[str, Path]] = None):
        if not identity:
            raise ValueError("A cache identity is required")
        self.identity = identity
        self.cache_root = Path(cache_root) if cache_root is not None else default_data_cache_root()
        self.key = derive_cache_key(identity)

    @classmethod
    def from_identity(cls, identity: Optional[str],
                      cache_root: Optional[Union[str, Path]] = None) -> Optional["DataDirectoryCache"]:
        """Build a cache for the identity, or return None when there is none."""
        if not identity:
            return None
        return cls(identity, cache_root)

    @property
    def archive_path(self) -> Path:
        return self.cache_root / f"{self.key}.tar.gz"

    def restore(self, data_dir: Union[str, Path]) -> bool:
        """
        Restore the data directory from the cache.

        Returns:
            True if a cached copy was restored
        """
        data_dir = Path(data_dir)
        archive = self.archive_path
        if not archive.exists():
            logger.info(f"No cached CLI data found for key {self.key}")
            return False

        try:
            data_dir.mkdir(parents=True, exist_ok=True)
            root = data_dir.resolve()
            with tarfile.open(archive, "r:gz") as tar_file:
                for member in tar_file.getmembers():
                    target = (data_dir / member.name).resolve()
                    if target != root and root not in target.parents:
                        raise tarfile.TarError(f"Unsafe member in data cache: {member.name}")
                tar_file.extractall(data_dir)
        except (tarfile.TarError, OSError) as e:
            logger.warning(f"Failed to restore CLI data from cache: {e}")
            return False

        logger.info(f"Restored CLI data from cache key {self.key}")
        return True

    def save(self, data_dir: Union[str, Path]) -> bool:
        """
        Save the data directory into the cache.

        Returns:
            True if the directory was saved
        """
        data_dir = Path(data_dir)
        if not data_dir.is_dir():
            logger.warning(f"CLI data directory does not exist, nothing to cache: {data_dir}")
            return False

        temp_path = None
        try:
            self.cache_root.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(prefix=f"{self.key}-", suffix=".tmp", dir=self.cache_root)
            os.close(fd)
            with tarfile.open(temp_path, "w:gz") as tar_file:
                for entry in sorted(data_dir.iterdir()):
                    tar_file.add(entry, arcname=entry.name)
            os.replace(temp_path, self.archive_path)
        except (tarfile.TarError, OSError) as e:
            logger.warning(f"Failed to save CLI data to cache: {e}")
            if temp_path and os.path.exists(temp_path):
                os.unlink(temp_path)
            return False

        logger.info(f"Saved CLI data to cache key {self.key}")
        return True

