"""
VS Code tunnel provisioning for CI jobs.

Fetches the VS Code CLI for the runner, starts `code tunnel` and keeps it
under a connection timeout and a session timeout.
"""

from .action import Outcome, run_tunnel
from .config import TunnelConfig, load_config
from .errors import TunnelActionError

__version__ = "0.1.0"

__all__ = ["Outcome", "TunnelActionError", "TunnelConfig", "load_config", "run_tunnel"]
