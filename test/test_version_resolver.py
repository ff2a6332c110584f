"""
Tests for the stable release version lookup.
"""

import unittest
from unittest.mock import Mock, PropertyMock

import requests

from vscode_tunnel.version_resolver import (
    STABLE_RELEASES_URL,
    fetch_stable_release_version,
    parse_release_version,
)


class TestParseReleaseVersion(unittest.TestCase):

    def test_list_of_objects(self):
        self.assertEqual(parse_release_version('[{"version": "1.2.3"}]'), "1.2.3")

    def test_list_of_objects_name_fallback(self):
        self.assertEqual(parse_release_version('[{"name": "1.2.3"}, {"name": "1.2.2"}]'), "1.2.3")

    def test_list_of_strings(self):
        self.assertEqual(parse_release_version('["1.95.3", "1.95.2"]'), "1.95.3")

    def test_object_version_preferred_over_name(self):
        self.assertEqual(parse_release_version('{"version": "2.0.0", "name": "1.0.0"}'), "2.0.0")

    def test_object_name(self):
        self.assertEqual(parse_release_version('{"name": "1.2.3"}'), "1.2.3")

    def test_object_without_fields(self):
        self.assertEqual(parse_release_version('{"other": "x"}'), "")

    def test_json_string(self):
        self.assertEqual(parse_release_version('"1.2.3"'), "1.2.3")

    def test_plain_text(self):
        self.assertEqual(parse_release_version("1.2.3\n"), "1.2.3")

    def test_empty_list(self):
        self.assertEqual(parse_release_version("[]"), "")

    def test_other_json_values(self):
        self.assertEqual(parse_release_version("null"), "")
        self.assertEqual(parse_release_version("42"), "")


class TestFetchStableReleaseVersion(unittest.TestCase):

    def make_session(self, text="", ok=True, status_code=200):
        session = Mock()
        session.get.return_value = Mock(text=text, ok=ok, status_code=status_code)
        return session

    def test_single_request(self):
        session = self.make_session('[{"version": "1.2.3"}]')

        self.assertEqual(fetch_stable_release_version(session=session), "1.2.3")
        session.get.assert_called_once_with(STABLE_RELEASES_URL, timeout=30)

    def test_network_error_resolves_empty(self):
        session = Mock()
        session.get.side_effect = requests.ConnectionError("no route to host")

        self.assertEqual(fetch_stable_release_version(session=session), "")
        self.assertEqual(session.get.call_count, 1)

    def test_http_error_status_resolves_empty(self):
        session = self.make_session("Not Found", ok=False, status_code=404)

        self.assertEqual(fetch_stable_release_version(session=session), "")

    def test_unexpected_error_resolves_empty(self):
        response = Mock(ok=True)
        type(response).text = PropertyMock(side_effect=UnicodeDecodeError("utf-8", b"", 0, 1, "bad"))
        session = Mock()
        session.get.return_value = response

        self.assertEqual(fetch_stable_release_version(session=session), "")
