#!/usr/bin/env python3
"""
Stable release version lookup for the VS Code CLI.

The releases endpoint has answered both with JSON (a list of versions or
release objects) and with plain text over time, so both shapes are
accepted. Any failure resolves to an empty string; deciding that an empty
version is fatal is left to the caller.
"""

import json
import logging
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)

STABLE_RELEASES_URL = "https://update.code.visualstudio.com/api/releases/stable"
DEFAULT_TIMEOUT = 30


def _version_from_object(payload: Any) -> str:
    if not isinstance(payload, dict):
        return ""
    value = payload.get("version") or payload.get("name") or ""
    return str(value).strip()


def parse_release_version(body: str) -> str:
    """
    Extract a version string from a releases response body.

    Args:
        body: Full response body

    Returns:
        The version, or an empty string when none can be found
    """
    try:
        parsed = json.loads(body)
    except ValueError:
        # Not JSON, the body is the version itself
        return body.strip()

    if isinstance(parsed, list):
        if not parsed:
            return ""
        first = parsed[0]
        if isinstance(first, dict):
            return _version_from_object(first) or str(first)
        return str(first).strip() if first else ""
    if isinstance(parsed, dict):
        return _version_from_object(parsed)
    if isinstance(parsed, str):
        return parsed.strip()
    return ""


def fetch_stable_release_version(url: str = STABLE_RELEASES_URL,
                                 session: Optional[requests.Session] = None,
                                 timeout: float = DEFAULT_TIMEOUT) -> str:
    """
    Query the releases endpoint once for the latest stable version.

    Args:
        url: Releases metadata URL
        session: Optional requests session to issue the GET with
        timeout: Request timeout in seconds

    Returns:
        The version string, or "" if the request or parsing failed
    """
    http = session or requests
    try:
        response = http.get(url, timeout=timeout)
        if not response.ok:
            logger.debug(f"Releases endpoint returned HTTP {response.status_code}")
            return ""
        return parse_release_version(response.text)
    except requests.RequestException as e:
        logger.debug(f"Releases request failed: {e}")
        return ""
    except Exception as e:
        logger.debug(f"Could not read releases response: {e}")
        return ""
