"""
Tests for logging setup.
"""

import io
import json
import logging
import unittest

from vscode_tunnel.logging_config import PACKAGE_LOGGER, setup_logging


class TestSetupLogging(unittest.TestCase):

    def tearDown(self):
        logger = logging.getLogger(PACKAGE_LOGGER)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
        logger.propagate = True

    def test_text_format(self):
        stream = io.StringIO()
        setup_logging("INFO", "text", stream=stream)

        logging.getLogger("vscode_tunnel.supervisor").info("Open this link")
        logging.getLogger("vscode_tunnel.supervisor").debug("hidden trace")

        output = stream.getvalue()
        self.assertIn("[INFO] vscode-tunnel: Open this link", output)
        self.assertNotIn("hidden trace", output)

    def test_json_format(self):
        stream = io.StringIO()
        setup_logging("debug", "json", stream=stream)

        logging.getLogger("vscode_tunnel.action").debug("checking cache")

        record = json.loads(stream.getvalue().strip())
        self.assertEqual(record["level"], "DEBUG")
        self.assertEqual(record["component"], "vscode_tunnel.action")
        self.assertEqual(record["message"], "checking cache")

    def test_repeated_setup_keeps_one_handler(self):
        setup_logging("INFO", stream=io.StringIO())
        logger = setup_logging("WARNING", stream=io.StringIO())

        self.assertEqual(len(logger.handlers), 1)
        self.assertEqual(logger.level, logging.WARNING)
