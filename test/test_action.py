"""
Tests for the top-level tunnel routine.
"""

import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock, patch

from vscode_tunnel.action import Outcome, resolve_version, run_tunnel
from vscode_tunnel.config import TunnelConfig
from vscode_tunnel.errors import ConnectionTimeoutError, TunnelExitError, VersionResolutionError
from vscode_tunnel.platform_target import resolve_platform


class TestOutcome(unittest.TestCase):

    def test_exit_codes(self):
        self.assertEqual(Outcome.ok().exit_code, 0)
        self.assertEqual(Outcome.failure("boom").exit_code, 1)
        self.assertFalse(Outcome.failure("boom").success)


class TestResolveVersion(unittest.TestCase):

    def test_version_returned(self):
        fetch = Mock(return_value="1.2.3")
        self.assertEqual(resolve_version("https://example.invalid/releases", fetch=fetch), "1.2.3")
        fetch.assert_called_once_with("https://example.invalid/releases")

    def test_empty_version_is_fatal(self):
        with self.assertRaises(VersionResolutionError) as ctx:
            resolve_version("https://example.invalid/releases", fetch=Mock(return_value=""))

        self.assertIn("https://example.invalid/releases", str(ctx.exception))


class TestRunTunnel(unittest.TestCase):

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.config = TunnelConfig(
            tunnel_name="ci-box",
            connection_timeout_minutes=2,
            session_timeout_minutes=30,
            data_dir=self.temp_dir / "data",
        )
        self.target = resolve_platform("Linux", "x86_64", home=self.temp_dir / "home")
        self.fetch_version = Mock(return_value="1.2.3")
        self.provisioner = Mock()
        self.provisioner.provision.return_value = self.temp_dir / "bin" / "code"
        self.provisioner_factory = Mock(return_value=self.provisioner)
        self.supervisor_factory = Mock()
        self.run_supervisor = Mock(return_value=0)
        self.data_cache = Mock()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def run_action(self, **overrides):
        kwargs = dict(
            target=self.target,
            tool_cache=Mock(),
            data_cache=self.data_cache,
            fetch_version=self.fetch_version,
            provisioner_factory=self.provisioner_factory,
            supervisor_factory=self.supervisor_factory,
            run_supervisor=self.run_supervisor,
        )
        kwargs.update(overrides)
        return run_tunnel(self.config, **kwargs)

    def test_success(self):
        outcome = self.run_action()

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.exit_code, 0)
        self.provisioner.provision.assert_called_once_with("1.2.3")
        self.supervisor_factory.assert_called_once_with(
            self.temp_dir / "bin" / "code",
            self.temp_dir / "data",
            tunnel_name="ci-box",
            verbose=False,
            connection_timeout=120,
            session_timeout=1800,
        )
        self.run_supervisor.assert_called_once_with(self.supervisor_factory.return_value)
        self.assertTrue((self.temp_dir / "data").is_dir())
        self.data_cache.restore.assert_called_once_with(self.temp_dir / "data")
        self.data_cache.save.assert_called_once_with(self.temp_dir / "data")

    def test_empty_version_stops_before_provisioning(self):
        self.fetch_version.return_value = ""

        outcome = self.run_action()

        self.assertFalse(outcome.success)
        self.assertIn("Failed to determine stable VS Code version", outcome.message)
        self.provisioner_factory.assert_not_called()
        self.run_supervisor.assert_not_called()

    def test_non_zero_exit_is_reported(self):
        self.run_supervisor.side_effect = TunnelExitError(137)

        outcome = self.run_action()

        self.assertFalse(outcome.success)
        self.assertEqual(outcome.message, "Action failed with error: VS Code tunnel exited with code 137")
        self.data_cache.save.assert_not_called()

    def test_timeout_is_reported(self):
        self.run_supervisor.side_effect = ConnectionTimeoutError("Connection timeout: no client connected within 2 minutes")

        outcome = self.run_action()

        self.assertFalse(outcome.success)
        self.assertIn("Connection timeout", outcome.message)

    def test_invalid_config_stops_before_io(self):
        self.config.tunnel_name = "x" * 21

        outcome = self.run_action()

        self.assertFalse(outcome.success)
        self.assertIn("20 characters or fewer", outcome.message)
        self.fetch_version.assert_not_called()

    @patch("vscode_tunnel.platform_target.platform.machine", return_value="arm64")
    @patch("vscode_tunnel.platform_target.platform.system", return_value="Linux")
    def test_unsupported_architecture_stops_before_io(self, mock_system, mock_machine):
        outcome = self.run_action(target=None)

        self.assertFalse(outcome.success)
        self.assertIn("Unsupported architecture: arm64", outcome.message)
        self.fetch_version.assert_not_called()
        self.provisioner_factory.assert_not_called()
        self.assertFalse((self.temp_dir / "data").exists())

    def test_no_identity_skips_data_cache(self):
        outcome = self.run_action(data_cache=None)

        self.assertTrue(outcome.success)
        self.run_supervisor.assert_called_once()

    def test_identity_enables_data_cache(self):
        self.config.cache_identity = "octocat"
        with patch("vscode_tunnel.action.DataDirectoryCache") as mock_cache_class:
            outcome = self.run_action(data_cache=None)

        self.assertTrue(outcome.success)
        mock_cache_class.from_identity.assert_called_once_with("octocat")
        cache = mock_cache_class.from_identity.return_value
        cache.restore.assert_called_once_with(self.temp_dir / "data")
        cache.save.assert_called_once_with(self.temp_dir / "data")

    def test_cache_failures_are_not_fatal(self):
        self.data_cache.restore.return_value = False
        self.data_cache.save.return_value = False

        outcome = self.run_action()

        self.assertTrue(outcome.success)
