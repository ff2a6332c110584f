#!/usr/bin/env python3
"""
Logging setup for the VS Code tunnel action.

Installs a single stream handler on the package logger, with either a
plain text or a JSON-shaped line format.
"""

import logging
import sys
from typing import Optional, Union

PACKAGE_LOGGER = "vscode_tunnel"

TEXT_FORMAT = "%(asctime)s [%(levelname)s] vscode-tunnel: %(message)s"
JSON_FORMAT = (
    '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
    '"component": "%(name)s", "message": "%(message)s"}'
)


def setup_logging(level: Union[str, int] = "INFO", fmt: str = "text",
                  stream: Optional[object] = None) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        level: Log level name or number
        fmt: "text" or "json"
        stream: Output stream, defaults to stderr

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)

    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(level)

    # Replace handlers installed by an earlier call
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    if fmt == "json":
        formatter = logging.Formatter(JSON_FORMAT)
    else:
        formatter = logging.Formatter(TEXT_FORMAT)
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.propagate = False

    return logger
