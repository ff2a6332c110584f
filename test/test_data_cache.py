"""
Tests for CLI data directory persistence.
"""

import shutil
import tempfile
import unittest
from pathlib import Path

from vscode_tunnel.data_cache import DataDirectoryCache, derive_cache_key


class TestDataDirectoryCache(unittest.TestCase):

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.cache = DataDirectoryCache("octocat", self.temp_dir / "cache")
        self.data_dir = self.temp_dir / "data"

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_key_is_derived_from_identity(self):
        self.assertEqual(self.cache.key, derive_cache_key("octocat"))
        self.assertTrue(self.cache.key.startswith("vscode-tunnel-data-"))
        self.assertNotEqual(derive_cache_key("octocat"), derive_cache_key("hubot"))
        self.assertNotIn("octocat", self.cache.key)

    def test_no_identity_skips_cache(self):
        self.assertIsNone(DataDirectoryCache.from_identity(None))
        self.assertIsNone(DataDirectoryCache.from_identity(""))
        self.assertIsNotNone(DataDirectoryCache.from_identity("octocat"))

    def test_restore_miss(self):
        with self.assertLogs("vscode_tunnel.data_cache", level="INFO") as logs:
            self.assertFalse(self.cache.restore(self.data_dir))

        self.assertIn("No cached CLI data", logs.output[0])

    def test_save_then_restore(self):
        (self.data_dir / "server").mkdir(parents=True)
        (self.data_dir / "token.json").write_text('{"token": "t"}')
        (self.data_dir / "server" / "log.txt").write_text("log")

        self.assertTrue(self.cache.save(self.data_dir))
        self.assertTrue(self.cache.archive_path.exists())

        restored = self.temp_dir / "restored"
        self.assertTrue(self.cache.restore(restored))
        self.assertEqual((restored / "token.json").read_text(), '{"token": "t"}')
        self.assertEqual((restored / "server" / "log.txt").read_text(), "log")

    def test_save_missing_directory_is_a_warning(self):
        with self.assertLogs("vscode_tunnel.data_cache", level="WARNING"):
            self.assertFalse(self.cache.save(self.temp_dir / "missing"))

    def test_corrupt_archive_is_a_warning(self):
        self.cache.archive_path.parent.mkdir(parents=True)
        self.cache.archive_path.write_bytes(b"garbage")

        with self.assertLogs("vscode_tunnel.data_cache", level="WARNING") as logs:
            self.assertFalse(self.cache.restore(self.data_dir))

        self.assertIn("Failed to restore", logs.output[0])
